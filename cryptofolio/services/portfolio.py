"""
cryptofolio/services/portfolio.py

Portfolio views built on the accounting engine. Each call loads the relevant
transactions once, replays them with compute_accounting() and shapes the
result for the API:

 - get_closed_positions(): closed rows (newest first) and their summary
 - get_open_positions(): open lots priced from the cache, with unrealized P&L
 - get_accounting_summary(): one wallet's budget, invested, P&L and cash
 - get_root_summary(): a root wallet and every wallet below it
 - get_portfolio_kpis(): headline figures per root wallet, with totals
 - get_exchange_stats() / get_exchange_detail(): the same engine replayed
   per exchange label

Values are Decimal; the routers convert them to floats.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from cryptofolio import config
from cryptofolio.constants import ZERO
from cryptofolio.models.wallet import Wallet
from cryptofolio.services import prices as price_service
from cryptofolio.services import transaction as tx_service
from cryptofolio.services import wallet as wallet_service
from cryptofolio.services.accounting import compute_accounting, OpenPosition
from cryptofolio.services.accounting.aggregator import (
    collect_descendants,
    net_stable_deposits,
    stable_flows,
    summarize_closed_positions,
    summarize_root,
    summarize_wallet,
    transfer_fees_usd,
    unrealized_pl,
    unrealized_total,
)

logger = logging.getLogger(__name__)

# A root wallet without an explicit target share owns all of its deposits.
ROOT_DEFAULT_TARGET_PCT = Decimal("100")

# Label for transactions recorded without an exchange.
UNKNOWN_EXCHANGE = "Unknown"
EXCHANGE_MOVEMENTS_LIMIT = 50


def _position_view(position: OpenPosition, prices: Dict[str, Decimal]) -> dict:
    data = position.to_dict()
    price = prices.get(position.ticker)
    data["live_price"] = price
    data["market_value"] = position.qty_open * price if price is not None else None
    data["pl_unrealized"] = unrealized_pl(position, price)
    return data


def _diagnostics(result) -> List[dict]:
    return [d.to_dict() for d in result.diagnostics]


# ---------------------------------------------------------------------
# Position lists
# ---------------------------------------------------------------------
def get_closed_positions(db: Session, user_id: int, wallet_id: Optional[int] = None,
                         include_descendants: bool = True) -> dict:
    scope = tx_service.get_wallet_scope(db, user_id, wallet_id, include_descendants)
    txs = tx_service.get_transactions(db, user_id, scope)
    result = compute_accounting(txs, config.STABLE_TICKERS)

    rows = sorted(result.closed, key=lambda r: r.date_close, reverse=True)
    return {
        "positions": [r.to_dict() for r in rows],
        "summary": summarize_closed_positions(rows),
        "warnings": result.warnings,
        "diagnostics": _diagnostics(result),
    }


def get_open_positions(db: Session, user_id: int, wallet_id: Optional[int] = None,
                       include_descendants: bool = True) -> dict:
    scope = tx_service.get_wallet_scope(db, user_id, wallet_id, include_descendants)
    txs = tx_service.get_transactions(db, user_id, scope)
    result = compute_accounting(txs, config.STABLE_TICKERS)
    prices = price_service.get_price_map(db)

    views = [_position_view(p, prices) for p in result.positions]
    unrealized = sum(
        (v["pl_unrealized"] for v in views
         if v["pl_unrealized"] is not None and v["ticker"] not in config.STABLE_TICKERS),
        ZERO,
    )
    return {
        "positions": views,
        "invested_open_total": result.invested_open_total,
        "pl_realized_total": result.pl_realized_total,
        "pl_unrealized_total": unrealized,
        "fees_usd_total": result.fees_usd_total,
        "warnings": result.warnings,
        "diagnostics": _diagnostics(result),
    }


# ---------------------------------------------------------------------
# Wallet summaries
# ---------------------------------------------------------------------
def get_accounting_summary(db: Session, user_id: int, wallet_id: int) -> dict:
    """
    Budget = root net deposits x target_pct / 100
    Cash   = budget - invested_open + pl_realized
    """
    stables = config.STABLE_TICKERS
    wallet = wallet_service.get_wallet_or_404(db, user_id, wallet_id)
    root = wallet_service.find_root(db, user_id, wallet_id)
    deposits = net_stable_deposits(tx_service.get_transactions(db, user_id, [root.id]), stables)

    target_pct = wallet.target_pct
    if target_pct is None and wallet.id == root.id:
        target_pct = ROOT_DEFAULT_TARGET_PCT

    txs = tx_service.get_transactions(db, user_id, [wallet_id])
    result = compute_accounting(txs, stables)
    prices = price_service.get_price_map(db)
    fees = result.fees_usd_total + transfer_fees_usd(txs, stables)

    return {
        "wallet": {"id": wallet.id, "name": wallet.name},
        "root": {"id": root.id, "name": root.name, "deposits": deposits},
        "settings": {"target_pct": target_pct or ZERO},
        "summary": summarize_wallet(
            result.positions, result.closed, deposits, target_pct, prices, stables, fees
        ),
        "positions": [_position_view(p, prices) for p in result.positions],
        "warnings": result.warnings,
    }


def get_root_summary(db: Session, user_id: int, wallet_id: int) -> dict:
    """
    Aggregates for a root wallet and all of its descendants, replayed in a
    single pass (lots are keyed by wallet, so per-wallet results are slices).
    Totals include trades booked on the root wallet itself.
    """
    stables = config.STABLE_TICKERS
    root = wallet_service.get_wallet_or_404(db, user_id, wallet_id)
    if root.parent_wallet_id is not None:
        raise HTTPException(status_code=400, detail="Not a root wallet.")

    descendant_ids = wallet_service.get_descendant_ids(db, user_id, root.id)
    txs = tx_service.get_transactions(db, user_id, [root.id] + descendant_ids)
    result = compute_accounting(txs, stables)
    prices = price_service.get_price_map(db)

    txs_by_wallet: Dict[int, list] = {}
    for tx in txs:
        txs_by_wallet.setdefault(tx.wallet_id, []).append(tx)

    root_txs = txs_by_wallet.get(root.id, [])
    deposits = net_stable_deposits(root_txs, stables)

    def wallet_summary(w: Wallet, target_pct) -> dict:
        wallet_txs = txs_by_wallet.get(w.id, [])
        part = result.for_wallet(w.id, stables)
        fees = part.fees_usd_total + transfer_fees_usd(wallet_txs, stables)
        return summarize_wallet(part.positions, part.closed, deposits, target_pct, prices, stables, fees)

    wallets = {
        w.id: w for w in db.query(Wallet).filter(Wallet.id.in_(descendant_ids)).all()
    } if descendant_ids else {}

    subwallets = []
    for sub_id in descendant_ids:
        sub = wallets[sub_id]
        summary = wallet_summary(sub, sub.target_pct)
        subwallets.append({
            "id": sub.id,
            "name": sub.name,
            "parent_wallet_id": sub.parent_wallet_id,
            "target_pct": sub.target_pct or ZERO,
            "tx_count": len(txs_by_wallet.get(sub.id, [])),
            **summary,
        })

    own = wallet_summary(root, ZERO)
    totals = summarize_root(deposits, [own] + subwallets)
    return {
        "root": {"id": root.id, "name": root.name, **totals},
        "subwallets": subwallets,
        "warnings": result.warnings,
    }


# ---------------------------------------------------------------------
# Portfolio KPIs (one row per root wallet)
# ---------------------------------------------------------------------
_KPI_TOTAL_FIELDS = (
    "deposits",
    "pl_realized",
    "pl_unrealized",
    "deposits_plus_realized",
    "invested_open",
    "invested_plus_realized",
    "invested_plus_unrealized",
    "balance_live",
    "cash",
    "fees_total",
    "deposits_gross",
    "withdrawals_gross",
)


def exchange_label(tx) -> str:
    return (tx.exchange or "").strip() or UNKNOWN_EXCHANGE


def _root_kpis(root: Wallet, txs: list, prices: Dict[str, Decimal]) -> dict:
    stables = config.STABLE_TICKERS
    result = compute_accounting(txs, stables)
    flows = stable_flows(txs, stables)

    by_exchange: Dict[str, list] = {}
    for tx in txs:
        by_exchange.setdefault(exchange_label(tx).upper(), []).append(tx)
    deposits_by_exchange = {}
    for name in sorted(by_exchange):
        ex_flows = stable_flows(by_exchange[name], stables)
        if ex_flows["deposits"] or ex_flows["withdrawals"]:
            deposits_by_exchange[name] = ex_flows

    deposits = flows["net"]
    invested = result.invested_open_total
    realized = result.pl_realized_total
    unrealized = unrealized_total(result.positions, prices, stables)
    return {
        "root_wallet_id": root.id,
        "root_wallet_name": root.name,
        "deposits": deposits,
        "pl_realized": realized,
        "pl_unrealized": unrealized,
        "deposits_plus_realized": deposits + realized,
        "invested_open": invested,
        "invested_plus_realized": invested + realized,
        "invested_plus_unrealized": invested + unrealized,
        "balance_live": deposits + realized + unrealized,
        "cash": deposits + realized - invested,
        "fees_total": result.fees_usd_total + transfer_fees_usd(txs, stables),
        "deposits_gross": flows["deposits"],
        "withdrawals_gross": flows["withdrawals"],
        "deposits_by_exchange": deposits_by_exchange,
        "warnings": result.warnings,
    }


def get_portfolio_kpis(db: Session, user_id: int, root_id: Optional[int] = None,
                       root_name: Optional[str] = None) -> dict:
    """
    Headline figures for every root wallet (optionally filtered by id or by
    case-insensitive name), each replayed over the root and all wallets
    below it, plus grand totals across the selected roots.
    """
    parent_of = wallet_service.get_parent_map(db, user_id)
    roots = [w for w in wallet_service.get_all_wallets(db, user_id) if w.parent_wallet_id is None]
    if root_id is not None:
        roots = [w for w in roots if w.id == root_id]
    if root_name:
        wanted = root_name.strip().upper()
        roots = [w for w in roots if (w.name or "").strip().upper() == wanted]

    prices = price_service.get_price_map(db)
    rows = []
    for root in roots:
        scope = [root.id] + collect_descendants(parent_of, root.id)
        rows.append(_root_kpis(root, tx_service.get_transactions(db, user_id, scope), prices))

    totals = {name: sum((row[name] for row in rows), ZERO) for name in _KPI_TOTAL_FIELDS}
    return {
        "meta": {"roots_count": len(rows)},
        "totals": totals,
        "rows": rows,
    }


# ---------------------------------------------------------------------
# Exchange stats
# ---------------------------------------------------------------------
def _movement_view(tx) -> dict:
    return {
        "id": tx.id,
        "date": tx.date,
        "action": tx.action,
        "ticker": tx.ticker,
        "wallet_id": tx.wallet_id,
        "wallet_name": tx.wallet.name if tx.wallet is not None else None,
        "quantity": tx.quantity,
        "price": tx.price,
        "price_currency": tx.price_currency,
        "fees": tx.fees,
        "fees_currency": tx.fees_currency,
        "notes": tx.notes,
    }


def _exchange_report(name: str, txs: list, prices: Dict[str, Decimal]) -> dict:
    """
    Replays one exchange's transactions on their own. Stable coins count as
    cash, everything else as open tokens; lots are still per wallet.
    """
    stables = config.STABLE_TICKERS
    result = compute_accounting(txs, stables)
    tokens = [p for p in result.positions if p.ticker not in stables]

    invested = sum((p.invested_open for p in tokens), ZERO)
    views = []
    value_live = ZERO
    for position in tokens:
        view = _position_view(position, prices)
        if view["pl_unrealized"] is not None:
            view["value_live"] = position.invested_open + view["pl_unrealized"]
            value_live += view["value_live"]
        else:
            view["value_live"] = None
        view["weight_invested_pct"] = position.invested_open / invested * 100 if invested else ZERO
        views.append(view)

    realized = result.pl_realized_total
    unrealized = unrealized_total(tokens, prices, stables)
    cash = stable_flows(txs, stables)["net"]
    pl_total = realized + unrealized
    stats = {
        "exchange_name": name,
        "total_invested": invested,
        "cash_balance": cash,
        "fees_total": result.fees_usd_total + transfer_fees_usd(txs, stables),
        "total_value_live": value_live,
        "global_live_value": cash + value_live,
        "pl_unrealized": unrealized,
        "pl_realized": realized,
        "pl_total": pl_total,
        "pl_total_pct": pl_total / invested * 100 if invested else ZERO,
        "transaction_count": len(txs),
        "first_transaction_date": txs[0].date,
        "last_transaction_date": txs[-1].date,
        "token_count": len(tokens),
        "warnings": result.warnings,
    }
    return {"stats": stats, "positions": views}


def _transactions_by_exchange(db: Session, user_id: int) -> Dict[str, list]:
    groups: Dict[str, list] = {}
    for tx in tx_service.get_transactions(db, user_id):
        groups.setdefault(exchange_label(tx), []).append(tx)
    return groups


def get_exchange_stats(db: Session, user_id: int) -> List[dict]:
    """One stats row per exchange label, largest invested amount first."""
    prices = price_service.get_price_map(db)
    rows = [
        _exchange_report(name, txs, prices)["stats"]
        for name, txs in _transactions_by_exchange(db, user_id).items()
    ]
    return sorted(rows, key=lambda r: r["total_invested"], reverse=True)


def get_exchange_detail(db: Session, user_id: int, exchange_name: str) -> dict:
    """
    Stats, open token positions and the most recent movements of one
    exchange. An exact name match wins over a case-insensitive one.
    """
    groups = _transactions_by_exchange(db, user_id)
    wanted = exchange_name.strip()
    name = wanted if wanted in groups else next(
        (label for label in groups if label.lower() == wanted.lower()), None
    )
    if name is None:
        raise HTTPException(status_code=404, detail="Exchange not found.")

    txs = groups[name]
    report = _exchange_report(name, txs, price_service.get_price_map(db))
    movements = sorted(txs, key=lambda t: (t.date, t.id), reverse=True)[:EXCHANGE_MOVEMENTS_LIMIT]
    return {
        **report["stats"],
        "positions": report["positions"],
        "movements": [_movement_view(tx) for tx in movements],
    }
