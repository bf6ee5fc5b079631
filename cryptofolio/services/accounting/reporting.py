"""
cryptofolio/services/accounting/reporting.py

Output rows of the accounting engine:
 - ClosedPositionRow: one per partial or full closing trade, appended as the
   replay goes.
 - OpenPosition: snapshot of every lot still holding quantity once the replay
   is finished, carrying the realized P&L booked on the same lot key.

Values stay Decimal here; to_dict() keeps them Decimal too and the routers
convert to float at the edge.
"""

from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from cryptofolio.constants import ZERO, EPSILON
from cryptofolio.services.accounting.ledger import CloseResult, Lot, LotKey, LotLedger
from cryptofolio.services.accounting.normalizer import NormalizedTransaction

STATUS_CLOSED = "CLOSED"
STATUS_PARTIAL = "PARTIAL"

SECONDS_PER_DAY = Decimal(86400)


@dataclass
class ClosedPositionRow:
    transaction_id: object
    ticker: str
    wallet_id: Optional[int]
    direction: str
    qty_sold: Decimal
    entry_price: Decimal
    exit_price: Decimal
    invested_cost: Decimal
    proceeds: Decimal
    fees_sell: Decimal
    pl_usd: Decimal
    pl_pct: Decimal
    date_open: Optional[datetime]
    date_close: Optional[datetime]
    holding_days: Optional[int]
    qty_remaining: Decimal
    status: str
    leverage: Optional[Decimal] = None

    @property
    def key(self) -> LotKey:
        return LotKey(self.wallet_id, self.ticker, self.direction)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OpenPosition:
    ticker: str
    wallet_id: Optional[int]
    direction: str
    qty_open: Decimal
    invested_open: Decimal
    notional_open: Decimal
    margin_open: Decimal
    avg_cost: Decimal
    pl_realized: Decimal
    leverage: Optional[Decimal]
    short_open_action: Optional[str]
    first_open_date: Optional[datetime]

    def to_dict(self) -> dict:
        return asdict(self)


def holding_days(date_open: Optional[datetime], date_close: Optional[datetime]) -> Optional[int]:
    """Whole days between open and close, rounded half-up; None if either is unknown."""
    if date_open is None or date_close is None:
        return None
    seconds = Decimal(str((date_close - date_open).total_seconds()))
    return int((seconds / SECONDS_PER_DAY).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_closed_row(
    tx: NormalizedTransaction,
    lot: Lot,
    result: CloseResult,
    exit_price: Decimal,
    fees_usd: Decimal,
) -> ClosedPositionRow:
    return ClosedPositionRow(
        transaction_id=tx.id,
        ticker=lot.ticker,
        wallet_id=lot.wallet_id,
        direction=lot.direction,
        qty_sold=result.qty_closed,
        entry_price=result.avg_notional_cost,
        exit_price=exit_price,
        invested_cost=result.margin_basis,
        proceeds=result.proceeds,
        fees_sell=fees_usd,
        pl_usd=result.pl_usd,
        pl_pct=result.pl_pct,
        date_open=result.date_open,
        date_close=tx.date,
        holding_days=holding_days(result.date_open, tx.date),
        qty_remaining=result.qty_remaining,
        status=STATUS_CLOSED if result.fully_closed else STATUS_PARTIAL,
        leverage=result.leverage if result.leverage is not None else tx.leverage,
    )


def realized_by_key(rows: Iterable[ClosedPositionRow]) -> Dict[LotKey, Decimal]:
    totals: Dict[LotKey, Decimal] = defaultdict(lambda: ZERO)
    for row in rows:
        totals[row.key] += row.pl_usd
    return dict(totals)


def build_open_positions(ledger: LotLedger, rows: List[ClosedPositionRow]) -> List[OpenPosition]:
    """One OpenPosition per lot with qty > EPSILON, in first-seen lot order."""
    realized = realized_by_key(rows)
    positions = []
    for lot in ledger:
        if lot.qty <= EPSILON:
            continue
        positions.append(OpenPosition(
            ticker=lot.ticker,
            wallet_id=lot.wallet_id,
            direction=lot.direction,
            qty_open=lot.qty,
            invested_open=lot.cost_notional_usd,
            notional_open=lot.cost_notional_usd,
            margin_open=lot.cost_margin_usd,
            avg_cost=lot.avg_notional_cost,
            pl_realized=realized.get(lot.key, ZERO),
            leverage=lot.leverage,
            short_open_action=lot.short_open_action,
            first_open_date=lot.first_open_date,
        ))
    return positions
