"""
cryptofolio/services/accounting/normalizer.py

Turns raw transaction rows (ORM objects or plain mappings) into
NormalizedTransaction values the engine can replay without further checks:
 - action aliases (OPEN/CLOSE) rewritten according to direction
 - tickers and currencies upper-cased
 - numeric fields coerced to Decimal, with missing or non-finite values as 0
 - dates parsed to timezone-aware UTC datetimes

Nothing here raises on bad data; unusable fields come back as None or 0 and
the engine decides whether to skip the row.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, date, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from cryptofolio.constants import (
    ZERO,
    ACTION_BUY,
    ACTION_SELL,
    ACTION_OPEN,
    ACTION_CLOSE,
    ACTION_SWAP,
    DIRECTION_LONG,
    DIRECTION_SHORT,
    DEFAULT_QUOTE_CURRENCY,
)


@dataclass(frozen=True)
class NormalizedTransaction:
    id: Any
    date: Optional[datetime]
    action: str
    ticker: str
    quantity: Decimal
    price: Decimal
    price_currency: str
    fees: Decimal
    fees_currency: str
    wallet_id: Optional[int]
    direction: str
    leverage: Optional[Decimal]
    from_ticker: Optional[str] = None
    to_ticker: Optional[str] = None


def to_decimal(value: Any) -> Decimal:
    """Coerce a numeric-ish value to a finite Decimal, or 0."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def normalize_ticker(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().upper()
    return text or None


def normalize_direction(value: Any) -> str:
    return DIRECTION_SHORT if normalize_ticker(value) == DIRECTION_SHORT else DIRECTION_LONG


def normalize_action(action: Any, direction: Any) -> str:
    """
    Rewrite OPEN/CLOSE aliases into BUY/SELL for the given direction.
    CLOSE on a short buys back, OPEN on a short sells. Every other action
    passes through upper-cased, including ones the engine does not know.
    """
    tag = str(action or "").strip().upper()
    is_short = normalize_direction(direction) == DIRECTION_SHORT
    if tag == ACTION_CLOSE:
        return ACTION_BUY if is_short else ACTION_SELL
    if tag == ACTION_OPEN:
        return ACTION_SELL if is_short else ACTION_BUY
    return tag


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a datetime/date/ISO string into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _read(raw: Any, name: str) -> Any:
    if isinstance(raw, Mapping):
        return raw.get(name)
    return getattr(raw, name, None)


def normalize_transaction(raw: Any) -> NormalizedTransaction:
    direction = normalize_direction(_read(raw, "direction"))
    action = normalize_action(_read(raw, "action"), direction)
    leverage = to_decimal(_read(raw, "leverage"))
    to_ticker = normalize_ticker(_read(raw, "to_ticker"))
    ticker = normalize_ticker(_read(raw, "ticker"))
    if ticker is None and action == ACTION_SWAP:
        ticker = to_ticker
    return NormalizedTransaction(
        id=_read(raw, "id"),
        date=parse_timestamp(_read(raw, "date")),
        action=action,
        ticker=ticker or "",
        quantity=to_decimal(_read(raw, "quantity")),
        price=to_decimal(_read(raw, "price")),
        price_currency=normalize_ticker(_read(raw, "price_currency")) or DEFAULT_QUOTE_CURRENCY,
        fees=to_decimal(_read(raw, "fees")),
        fees_currency=normalize_ticker(_read(raw, "fees_currency")) or DEFAULT_QUOTE_CURRENCY,
        wallet_id=_read(raw, "wallet_id"),
        direction=direction,
        leverage=leverage if leverage > 1 else None,
        from_ticker=normalize_ticker(_read(raw, "from_ticker")),
        to_ticker=to_ticker,
    )
