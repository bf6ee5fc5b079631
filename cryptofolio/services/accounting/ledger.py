"""
cryptofolio/services/accounting/ledger.py

The Lot Ledger: one average-cost Lot per (wallet_id, ticker, direction).

Lots are created zero-valued on first access and never removed; when a close
brings qty to EPSILON or below the lot is reset to its neutral state, which
also clears the short-side opening convention so the next cycle can pick a
new one.

Short convention state machine (per SHORT lot):

    EMPTY --SELL--> OPEN_VIA_SELL   (classic: SELL opens, BUY closes)
    EMPTY --BUY---> OPEN_VIA_BUY    (alternative: BUY opens, SELL closes)
    any   --qty<=EPSILON--> EMPTY
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterator, NamedTuple, Optional, Tuple

from cryptofolio.constants import (
    ZERO,
    EPSILON,
    ACTION_BUY,
    ACTION_SELL,
    DIRECTION_LONG,
    DIRECTION_SHORT,
)


class ShortState(str, Enum):
    EMPTY = "EMPTY"
    OPEN_VIA_BUY = "OPEN_VIA_BUY"
    OPEN_VIA_SELL = "OPEN_VIA_SELL"


class LotKey(NamedTuple):
    wallet_id: Optional[int]
    ticker: str
    direction: str


@dataclass
class Lot:
    wallet_id: Optional[int]
    ticker: str
    direction: str
    qty: Decimal = ZERO
    cost_notional_usd: Decimal = ZERO
    cost_margin_usd: Decimal = ZERO
    first_open_date: Optional[datetime] = None
    leverage: Optional[Decimal] = None
    short_state: ShortState = ShortState.EMPTY

    @property
    def key(self) -> LotKey:
        return LotKey(self.wallet_id, self.ticker, self.direction)

    @property
    def is_open(self) -> bool:
        return self.qty > EPSILON

    @property
    def avg_notional_cost(self) -> Decimal:
        return self.cost_notional_usd / self.qty if self.is_open else ZERO

    @property
    def avg_margin_cost(self) -> Decimal:
        return self.cost_margin_usd / self.qty if self.is_open else ZERO

    @property
    def short_open_action(self) -> Optional[str]:
        """The action that opened the current short cycle (BUY, SELL or None)."""
        if self.short_state == ShortState.OPEN_VIA_BUY:
            return ACTION_BUY
        if self.short_state == ShortState.OPEN_VIA_SELL:
            return ACTION_SELL
        return None

    def reset(self) -> None:
        self.qty = ZERO
        self.cost_notional_usd = ZERO
        self.cost_margin_usd = ZERO
        self.first_open_date = None
        self.leverage = None
        self.short_state = ShortState.EMPTY


@dataclass(frozen=True)
class CloseResult:
    """What a single closing trade removed from a lot and what it realized."""
    qty_closed: Decimal
    avg_notional_cost: Decimal
    margin_basis: Decimal
    proceeds: Decimal
    close_cost: Decimal
    pl_usd: Decimal
    pl_pct: Decimal
    date_open: Optional[datetime]
    leverage: Optional[Decimal]
    qty_remaining: Decimal

    @property
    def fully_closed(self) -> bool:
        return self.qty_remaining <= EPSILON


def margin_cost(notional: Decimal, leverage: Optional[Decimal]) -> Decimal:
    """Notional divided by leverage when leverage > 1, else the notional itself."""
    if leverage is not None and leverage > 1:
        return notional / leverage
    return notional


class LotLedger:
    """Explicit keyed store of Lots with create-on-miss access."""

    def __init__(self):
        self._lots: Dict[LotKey, Lot] = {}

    def __iter__(self) -> Iterator[Lot]:
        return iter(self._lots.values())

    def __len__(self) -> int:
        return len(self._lots)

    def get_or_create_lot(self, wallet_id: Optional[int], ticker: str, direction: str) -> Lot:
        key = LotKey(wallet_id, ticker, direction)
        lot = self._lots.get(key)
        if lot is None:
            lot = Lot(wallet_id=wallet_id, ticker=ticker, direction=direction)
            self._lots[key] = lot
        return lot

    def find_lot(self, wallet_id: Optional[int], ticker: str, direction: str) -> Optional[Lot]:
        return self._lots.get(LotKey(wallet_id, ticker, direction))

    def holdings(self, wallet_id: Optional[int], ticker: str) -> Tuple[Decimal, Decimal]:
        """(qty, cost_notional_usd) summed over the LONG and SHORT lots of a ticker."""
        qty = ZERO
        notional = ZERO
        for direction in (DIRECTION_LONG, DIRECTION_SHORT):
            lot = self.find_lot(wallet_id, ticker, direction)
            if lot is not None:
                qty += lot.qty
                notional += lot.cost_notional_usd
        return qty, notional

    def open_quantity(
        self,
        lot: Lot,
        qty: Decimal,
        notional_cost_usd: Decimal,
        margin_cost_usd: Decimal,
        date: Optional[datetime],
        leverage: Optional[Decimal] = None,
        opened_by: Optional[str] = None,
    ) -> Lot:
        """
        Add qty and cost to a lot. On a SHORT lot that is still EMPTY,
        `opened_by` fixes the opening convention for this cycle.
        """
        if lot.direction == DIRECTION_SHORT and lot.short_state == ShortState.EMPTY:
            if opened_by == ACTION_BUY:
                lot.short_state = ShortState.OPEN_VIA_BUY
            elif opened_by == ACTION_SELL:
                lot.short_state = ShortState.OPEN_VIA_SELL
        lot.qty += qty
        lot.cost_notional_usd += notional_cost_usd
        lot.cost_margin_usd += margin_cost_usd
        if lot.first_open_date is None:
            lot.first_open_date = date
        if leverage is not None and leverage > 1:
            lot.leverage = leverage
        return lot

    def remove_at_cost(self, lot: Lot, qty: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
        """
        Take up to `qty` out of the lot at its average cost without realizing
        anything. Returns (qty_removed, notional_removed, margin_removed).
        """
        qty_removed = min(qty, lot.qty) if lot.is_open else ZERO
        if qty_removed <= 0:
            return ZERO, ZERO, ZERO
        notional_removed = qty_removed * lot.avg_notional_cost
        margin_removed = qty_removed * lot.avg_margin_cost
        lot.qty -= qty_removed
        lot.cost_notional_usd -= notional_removed
        lot.cost_margin_usd -= margin_removed
        if lot.qty <= EPSILON:
            lot.reset()
        return qty_removed, notional_removed, margin_removed

    def close_quantity(self, lot: Lot, qty_to_close: Decimal, close_notional_usd: Decimal) -> CloseResult:
        """
        Realize P&L on `qty_to_close` units of an open lot.

        LONG:  proceeds = close_notional_usd, cost = qty * avg notional
        SHORT: proceeds = qty * avg notional, cost = close_notional_usd
        pl_pct is measured against the margin basis of the closed units.
        """
        avg_notional = lot.avg_notional_cost
        margin_basis = qty_to_close * lot.avg_margin_cost
        basis = qty_to_close * avg_notional
        if lot.direction == DIRECTION_SHORT:
            proceeds, close_cost = basis, close_notional_usd
        else:
            proceeds, close_cost = close_notional_usd, basis
        pl_usd = proceeds - close_cost
        pl_pct = pl_usd / margin_basis * 100 if margin_basis != 0 else ZERO
        date_open = lot.first_open_date
        leverage = lot.leverage

        self.remove_at_cost(lot, qty_to_close)

        return CloseResult(
            qty_closed=qty_to_close,
            avg_notional_cost=avg_notional,
            margin_basis=margin_basis,
            proceeds=proceeds,
            close_cost=close_cost,
            pl_usd=pl_usd,
            pl_pct=pl_pct,
            date_open=date_open,
            leverage=leverage,
            qty_remaining=lot.qty,
        )
