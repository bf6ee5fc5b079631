"""
cryptofolio/services/prices.py

Live price cache used for unrealized P&L.

 - get_price_map(): {ticker: Decimal USD price} from the cache, stables at 1
 - set_price(): manual upsert
 - refresh_prices(): pull current USD rates for every non-stable ticker the
   user's ledger mentions from LiveCoinWatch (/coins/map, batched) and upsert
   them. Provider errors are logged and reported back, never raised.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import AbstractSet, Dict, Iterable, List, Optional

import httpx
from sqlalchemy.orm import Session

from cryptofolio import config
from cryptofolio.models.price import PriceCache
from cryptofolio.models.transaction import Transaction

logger = logging.getLogger(__name__)

LCW_MAP_PATH = "/coins/map"
SOURCE_LCW = "livecoinwatch"
SOURCE_MANUAL = "manual"


# ---------------------------------------------------------------------
# Cache access
# ---------------------------------------------------------------------
def get_all_prices(db: Session) -> List[PriceCache]:
    return db.query(PriceCache).order_by(PriceCache.ticker).all()


def get_price_map(db: Session, stables: Optional[AbstractSet[str]] = None) -> Dict[str, Decimal]:
    stables = config.STABLE_TICKERS if stables is None else stables
    prices = {row.ticker: Decimal(row.price_usd) for row in get_all_prices(db)}
    for ticker in stables:
        prices[ticker] = Decimal("1")
    return prices


def upsert_price(db: Session, ticker: str, price_usd: Decimal, source: str) -> PriceCache:
    """Insert or update one cache row. Does not commit."""
    ticker = ticker.upper()
    row = db.query(PriceCache).filter(PriceCache.ticker == ticker).first()
    if row is None:
        row = PriceCache(ticker=ticker, price_usd=price_usd, source=source)
        db.add(row)
    else:
        row.price_usd = price_usd
        row.source = source
        row.updated_at = datetime.now(timezone.utc)
    return row


def set_price(db: Session, ticker: str, price_usd: Decimal) -> PriceCache:
    row = upsert_price(db, ticker, price_usd, SOURCE_MANUAL)
    db.commit()
    db.refresh(row)
    return row


# ---------------------------------------------------------------------
# Refresh from LiveCoinWatch
# ---------------------------------------------------------------------
def collect_tickers(db: Session, user_id: int, stables: Optional[AbstractSet[str]] = None) -> List[str]:
    """Every non-stable ticker appearing in the user's ledger, sorted."""
    stables = config.STABLE_TICKERS if stables is None else stables
    rows = (
        db.query(Transaction.ticker, Transaction.price_currency, Transaction.from_ticker, Transaction.to_ticker)
        .filter(Transaction.user_id == user_id)
        .all()
    )
    tickers = set()
    for row in rows:
        for value in row:
            if value:
                tickers.add(value.upper())
    return sorted(t for t in tickers if t not in stables)


def _batches(items: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


async def fetch_lcw_rates(client: httpx.AsyncClient, codes: List[str]) -> Dict[str, Decimal]:
    """POST one batch to /coins/map. Returns {CODE: rate} for positive rates."""
    resp = await client.post(
        LCW_MAP_PATH,
        json={
            "codes": codes,
            "currency": "USD",
            "sort": "rank",
            "order": "ascending",
            "offset": 0,
            "limit": 0,
            "meta": False,
        },
    )
    resp.raise_for_status()
    payload = resp.json()
    if not isinstance(payload, list):
        raise ValueError(f"Unexpected /coins/map payload: {str(payload)[:200]}")
    rates = {}
    for coin in payload:
        if not isinstance(coin, dict):
            continue
        code = str(coin.get("code") or "").upper()
        try:
            rate = Decimal(str(coin.get("rate")))
        except (InvalidOperation, ValueError):
            continue
        if code and rate.is_finite() and rate > 0:
            rates[code] = rate
    return rates


async def refresh_prices(
    db: Session,
    user_id: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, object]:
    tickers = collect_tickers(db, user_id)
    result = {"requested": len(tickers), "updated": 0, "errors": []}
    if not tickers:
        return result
    if not config.LCW_API_KEY and transport is None:
        logger.warning("LCW_API_KEY is not set; skipping price refresh")
        result["errors"].append("LCW_API_KEY is not configured.")
        return result

    rates: Dict[str, Decimal] = {}
    async with httpx.AsyncClient(
        base_url=config.LCW_BASE_URL,
        headers={"x-api-key": config.LCW_API_KEY, "content-type": "application/json"},
        timeout=10.0,
        transport=transport,
    ) as client:
        for batch in _batches(tickers, config.PRICE_REFRESH_BATCH):
            try:
                rates.update(await fetch_lcw_rates(client, batch))
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"LiveCoinWatch batch of {len(batch)} failed: {e}")
                result["errors"].append(str(e))

    for ticker in tickers:
        if ticker in rates:
            upsert_price(db, ticker, rates[ticker], SOURCE_LCW)
            result["updated"] += 1
    db.commit()
    logger.info(f"Price refresh: {result['updated']}/{result['requested']} tickers updated")
    return result
