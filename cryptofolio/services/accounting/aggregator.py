"""
cryptofolio/services/accounting/aggregator.py

Roll-ups built on top of an AccountingResult:

 - summarize_closed_positions(): count, totals, winners/losers, win rate
 - collect_descendants(): wallet subtree by graph traversal (cycle safe)
 - stable_flows() / net_stable_deposits(): stable DEPOSIT minus stable
   WITHDRAWAL (and the stable fees paid on withdrawals)
 - summarize_wallet() / summarize_root(): budget, invested, realized and
   unrealized P&L, and the derived cash figure
"""

from collections import deque
from decimal import Decimal
from typing import AbstractSet, Any, Dict, Iterable, List, Mapping, Optional

from cryptofolio.constants import (
    ZERO,
    ACTION_BUY,
    ACTION_SELL,
    ACTION_SWAP,
    ACTION_DEPOSIT,
    ACTION_WITHDRAWAL,
    DIRECTION_SHORT,
)
from cryptofolio.services.accounting.normalizer import normalize_transaction, to_decimal
from cryptofolio.services.accounting.reporting import ClosedPositionRow, OpenPosition

_TRADE_ACTIONS = {ACTION_BUY, ACTION_SELL, ACTION_SWAP}


def summarize_closed_positions(rows: Iterable[ClosedPositionRow]) -> Dict[str, Any]:
    rows = list(rows)
    total_pl = sum((r.pl_usd for r in rows), ZERO)
    total_invested = sum((r.invested_cost for r in rows), ZERO)
    winners = sum(1 for r in rows if r.pl_usd > 0)
    losers = sum(1 for r in rows if r.pl_usd < 0)
    count = len(rows)
    return {
        "count": count,
        "total_pl_usd": total_pl,
        "total_invested": total_invested,
        "total_pl_pct": total_pl / total_invested * 100 if total_invested else ZERO,
        "winners": winners,
        "losers": losers,
        "win_rate": Decimal(winners) / Decimal(count) * 100 if count else ZERO,
    }


def collect_descendants(parent_of: Mapping[int, Optional[int]], root_id: int) -> List[int]:
    """
    Breadth-first list of wallet ids under `root_id` (root excluded).
    `parent_of` maps wallet id -> parent wallet id. A wallet reached twice
    (bad data forming a cycle) is only visited once.
    """
    children: Dict[int, List[int]] = {}
    for wallet_id, parent_id in parent_of.items():
        if parent_id is not None:
            children.setdefault(parent_id, []).append(wallet_id)

    seen = {root_id}
    order: List[int] = []
    queue = deque([root_id])
    while queue:
        current = queue.popleft()
        for child in sorted(children.get(current, [])):
            if child in seen:
                continue
            seen.add(child)
            order.append(child)
            queue.append(child)
    return order


def stable_flows(transactions: Iterable[Any], stables: AbstractSet[str]) -> Dict[str, Decimal]:
    """
    Gross stable deposits and withdrawals, and the net of the two after the
    stable fees charged on withdrawals.
    """
    deposits = withdrawals = withdrawal_fees = ZERO
    for raw in transactions:
        tx = normalize_transaction(raw)
        if tx.ticker not in stables:
            continue
        if tx.action == ACTION_DEPOSIT:
            deposits += tx.quantity
        elif tx.action == ACTION_WITHDRAWAL:
            withdrawals += tx.quantity
            if tx.fees > 0 and tx.fees_currency in stables:
                withdrawal_fees += tx.fees
    return {
        "deposits": deposits,
        "withdrawals": withdrawals,
        "net": deposits - withdrawals - withdrawal_fees,
    }


def net_stable_deposits(transactions: Iterable[Any], stables: AbstractSet[str]) -> Decimal:
    return stable_flows(transactions, stables)["net"]


def transfer_fees_usd(transactions: Iterable[Any], stables: AbstractSet[str]) -> Decimal:
    """
    Stable fees on rows the engine does not trade (DEPOSIT, WITHDRAWAL,
    AIRDROP, FEE). Trade fees are already in AccountingResult.fees_by_wallet.
    """
    total = ZERO
    for raw in transactions:
        tx = normalize_transaction(raw)
        if tx.action in _TRADE_ACTIONS:
            continue
        if tx.fees > 0 and tx.fees_currency in stables:
            total += tx.fees
    return total


def unrealized_pl(position: OpenPosition, price: Optional[Decimal]) -> Optional[Decimal]:
    """Mark-to-market P&L of an open position, None when no price is known."""
    if price is None:
        return None
    market_value = position.qty_open * price
    if position.direction == DIRECTION_SHORT:
        return position.notional_open - market_value
    return market_value - position.notional_open


def unrealized_total(
    positions: Iterable[OpenPosition],
    prices: Mapping[str, Decimal],
    stables: AbstractSet[str],
) -> Decimal:
    total = ZERO
    for position in positions:
        if position.ticker in stables:
            continue
        pl = unrealized_pl(position, prices.get(position.ticker))
        if pl is not None:
            total += pl
    return total


def summarize_wallet(
    positions: List[OpenPosition],
    closed: List[ClosedPositionRow],
    root_deposits: Decimal,
    target_pct: Optional[Decimal],
    prices: Mapping[str, Decimal],
    stables: AbstractSet[str],
    fees_usd: Decimal = ZERO,
) -> Dict[str, Decimal]:
    """Budget is the wallet's target share of the root's net deposits."""
    budget = root_deposits * to_decimal(target_pct) / 100
    invested = sum((p.invested_open for p in positions if p.ticker not in stables), ZERO)
    realized = sum((r.pl_usd for r in closed), ZERO)
    return {
        "budget": budget,
        "invested_open": invested,
        "pl_realized": realized,
        "pl_unrealized": unrealized_total(positions, prices, stables),
        "fees_usd": fees_usd,
        "cash": budget - invested + realized,
    }


def summarize_root(deposits: Decimal, wallet_summaries: Iterable[Mapping[str, Decimal]]) -> Dict[str, Decimal]:
    invested = realized = unrealized = fees = ZERO
    for summary in wallet_summaries:
        invested += summary["invested_open"]
        realized += summary["pl_realized"]
        unrealized += summary["pl_unrealized"]
        fees += summary["fees_usd"]
    return {
        "deposits": deposits,
        "invested_open": invested,
        "pl_realized": realized,
        "pl_unrealized": unrealized,
        "fees_usd": fees,
        "cash": deposits + realized - invested,
    }
