"""
cryptofolio/services/accounting/processor.py

The action processor replays one normalized transaction at a time against the
Lot Ledger. Each action has its own handler:

 - DEPOSIT     stable/fiat only: opens a LONG lot at 1:1 cost
 - WITHDRAWAL  no effect on cost basis (counted by the deposit aggregates)
 - AIRDROP     opens a LONG lot at zero cost
 - BUY / SELL  require a stable price currency; LONG buys open and sells
               close, SHORT lots infer their convention from the first touch
 - SWAP        stable->crypto opens, crypto->stable closes,
               crypto->crypto rotates cost basis without realizing P&L
 - FEE         no effect (fees are carried on the trade rows)

Rows that cannot be applied are skipped and leave a Diagnostic; nothing in
here raises on ledger data.
"""

import logging
from decimal import Decimal
from typing import AbstractSet, Callable, Dict, List

from cryptofolio.constants import (
    ZERO,
    EPSILON,
    ACTION_BUY,
    ACTION_SELL,
    ACTION_DEPOSIT,
    ACTION_WITHDRAWAL,
    ACTION_SWAP,
    ACTION_AIRDROP,
    ACTION_FEE,
    DIRECTION_LONG,
    DIRECTION_SHORT,
)
from cryptofolio.services.accounting.diagnostics import Diagnostic, SkipReason
from cryptofolio.services.accounting.fees import fee_to_usd
from cryptofolio.services.accounting.ledger import Lot, LotLedger, ShortState, margin_cost
from cryptofolio.services.accounting.normalizer import NormalizedTransaction
from cryptofolio.services.accounting.reporting import ClosedPositionRow, build_closed_row

logger = logging.getLogger(__name__)


class ActionProcessor:
    def __init__(self, ledger: LotLedger, stables: AbstractSet[str]):
        self.ledger = ledger
        self.stables = frozenset(stables)
        self.closed: List[ClosedPositionRow] = []
        self.diagnostics: List[Diagnostic] = []
        self.fees_by_wallet: Dict[object, Decimal] = {}
        self._handlers: Dict[str, Callable[[NormalizedTransaction], None]] = {
            ACTION_DEPOSIT: self._deposit,
            ACTION_WITHDRAWAL: self._ignore,
            ACTION_AIRDROP: self._airdrop,
            ACTION_BUY: self._buy,
            ACTION_SELL: self._sell,
            ACTION_SWAP: self._swap,
            ACTION_FEE: self._ignore,
        }

    @property
    def fees_usd_total(self) -> Decimal:
        return sum(self.fees_by_wallet.values(), ZERO)

    def process(self, tx: NormalizedTransaction) -> None:
        handler = self._handlers.get(tx.action)
        if handler is None:
            self.skip(tx, SkipReason.UNSUPPORTED_ACTION, f"Unsupported action '{tx.action}'")
            return
        handler(tx)

    def skip(self, tx: NormalizedTransaction, reason: SkipReason, message: str) -> None:
        logger.debug(f"Transaction {tx.id} skipped ({reason.value}): {message}")
        self.diagnostics.append(Diagnostic(tx.id, reason, message))

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------
    def _has_quantity(self, tx: NormalizedTransaction) -> bool:
        if tx.quantity <= 0:
            self.skip(tx, SkipReason.INVALID_QUANTITY, f"Quantity {tx.quantity} is not positive")
            return False
        return True

    def _fee_usd(self, tx: NormalizedTransaction) -> Decimal:
        return fee_to_usd(tx.fees, tx.fees_currency, self.ledger, tx.wallet_id, self.stables)

    def _add_fee(self, tx: NormalizedTransaction, fee_usd: Decimal) -> None:
        if fee_usd:
            self.fees_by_wallet[tx.wallet_id] = self.fees_by_wallet.get(tx.wallet_id, ZERO) + fee_usd

    def _closable_quantity(self, tx: NormalizedTransaction, lot: Lot, requested: Decimal) -> Decimal:
        """min(requested, held); records an OVERSELL note when the excess is dropped."""
        if requested - lot.qty > EPSILON:
            self.skip(
                tx,
                SkipReason.OVERSELL,
                f"Closing {requested} {lot.ticker} but only {lot.qty} held; excess ignored",
            )
            return lot.qty
        return min(requested, lot.qty)

    def _open(self, tx: NormalizedTransaction, lot: Lot, qty: Decimal, notional: Decimal,
              fee_usd: Decimal, opened_by: str = None) -> None:
        self.ledger.open_quantity(
            lot,
            qty,
            notional + fee_usd,
            margin_cost(notional, tx.leverage) + fee_usd,
            tx.date,
            leverage=tx.leverage,
            opened_by=opened_by,
        )
        self._add_fee(tx, fee_usd)

    def _close(self, tx: NormalizedTransaction, lot: Lot, qty_close: Decimal,
               close_notional: Decimal, fee_usd: Decimal) -> None:
        # exit price is net of the closing fee, matching proceeds / close cost
        exit_price = close_notional / qty_close if qty_close > 0 else ZERO
        result = self.ledger.close_quantity(lot, qty_close, close_notional)
        self.closed.append(build_closed_row(tx, lot, result, exit_price, fee_usd))
        self._add_fee(tx, fee_usd)

    def _open_lot_or_skip(self, tx: NormalizedTransaction, ticker: str, direction: str):
        lot = self.ledger.find_lot(tx.wallet_id, ticker, direction)
        if lot is None or not lot.is_open:
            self.skip(tx, SkipReason.NOTHING_TO_CLOSE, f"No open {direction} {ticker} position to close")
            return None
        return lot

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    def _ignore(self, tx: NormalizedTransaction) -> None:
        pass

    def _deposit(self, tx: NormalizedTransaction) -> None:
        if tx.ticker not in self.stables:
            self.skip(tx, SkipReason.NON_STABLE_DEPOSIT, f"Deposit of {tx.ticker} carries no cost basis")
            return
        if not self._has_quantity(tx):
            return
        lot = self.ledger.get_or_create_lot(tx.wallet_id, tx.ticker, DIRECTION_LONG)
        self.ledger.open_quantity(lot, tx.quantity, tx.quantity, tx.quantity, tx.date)

    def _airdrop(self, tx: NormalizedTransaction) -> None:
        if not self._has_quantity(tx):
            return
        lot = self.ledger.get_or_create_lot(tx.wallet_id, tx.ticker, DIRECTION_LONG)
        self.ledger.open_quantity(lot, tx.quantity, ZERO, ZERO, tx.date)

    def _priced_trade(self, tx: NormalizedTransaction) -> bool:
        if tx.price_currency not in self.stables:
            self.skip(
                tx,
                SkipReason.UNPRICED_CURRENCY,
                f"{tx.action} {tx.ticker} priced in {tx.price_currency}, not a stable unit",
            )
            return False
        return self._has_quantity(tx)

    def _buy(self, tx: NormalizedTransaction) -> None:
        if not self._priced_trade(tx):
            return
        fee_usd = self._fee_usd(tx)
        notional = tx.quantity * tx.price

        if tx.direction == DIRECTION_SHORT:
            lot = self.ledger.get_or_create_lot(tx.wallet_id, tx.ticker, DIRECTION_SHORT)
            if lot.short_state == ShortState.OPEN_VIA_SELL:
                qty_close = self._closable_quantity(tx, lot, tx.quantity)
                self._close(tx, lot, qty_close, qty_close * tx.price + fee_usd, fee_usd)
            else:
                self._open(tx, lot, tx.quantity, notional, fee_usd, opened_by=ACTION_BUY)
            return

        lot = self.ledger.get_or_create_lot(tx.wallet_id, tx.ticker, DIRECTION_LONG)
        self._open(tx, lot, tx.quantity, notional, fee_usd)

    def _sell(self, tx: NormalizedTransaction) -> None:
        if not self._priced_trade(tx):
            return
        fee_usd = self._fee_usd(tx)

        if tx.direction == DIRECTION_SHORT:
            lot = self.ledger.get_or_create_lot(tx.wallet_id, tx.ticker, DIRECTION_SHORT)
            if lot.short_state == ShortState.OPEN_VIA_BUY:
                qty_close = self._closable_quantity(tx, lot, tx.quantity)
                self._close(tx, lot, qty_close, qty_close * tx.price - fee_usd, fee_usd)
                return
            # Classic short: sale proceeds are banked as the position's cost.
            notional = tx.quantity * tx.price
            self.ledger.open_quantity(
                lot,
                tx.quantity,
                notional - fee_usd,
                margin_cost(notional, tx.leverage) + fee_usd,
                tx.date,
                leverage=tx.leverage,
                opened_by=ACTION_SELL,
            )
            self._add_fee(tx, fee_usd)
            return

        lot = self._open_lot_or_skip(tx, tx.ticker, DIRECTION_LONG)
        if lot is None:
            return
        qty_close = self._closable_quantity(tx, lot, tx.quantity)
        self._close(tx, lot, qty_close, qty_close * tx.price - fee_usd, fee_usd)

    def _swap(self, tx: NormalizedTransaction) -> None:
        paid_ticker, recv_ticker = tx.from_ticker, tx.to_ticker
        if not paid_ticker or not recv_ticker:
            logger.warning(f"Swap {tx.id} skipped: missing from_ticker/to_ticker")
            self.skip(tx, SkipReason.MALFORMED_SWAP, "Swap is missing from_ticker or to_ticker")
            return
        # quantity is the amount received, price the amount paid per unit received.
        recv_qty = tx.quantity
        paid_qty = tx.quantity * tx.price
        if recv_qty <= 0 or paid_qty <= 0:
            logger.warning(f"Swap {tx.id} skipped: non-positive leg amount")
            self.skip(tx, SkipReason.MALFORMED_SWAP, f"Swap {paid_ticker}->{recv_ticker} has no amount")
            return

        fee_usd = self._fee_usd(tx)

        if paid_ticker in self.stables:
            lot = self.ledger.get_or_create_lot(tx.wallet_id, recv_ticker, DIRECTION_LONG)
            self.ledger.open_quantity(lot, recv_qty, paid_qty + fee_usd, paid_qty + fee_usd, tx.date)
            self._add_fee(tx, fee_usd)
            return

        if recv_ticker in self.stables:
            lot = self._open_lot_or_skip(tx, paid_ticker, DIRECTION_LONG)
            if lot is None:
                return
            qty_close = self._closable_quantity(tx, lot, paid_qty)
            received = recv_qty * (qty_close / paid_qty)
            self._close(tx, lot, qty_close, received - fee_usd, fee_usd)
            return

        # crypto -> crypto: carry the paid lot's basis into the received lot.
        paid_lot = self.ledger.find_lot(tx.wallet_id, paid_ticker, DIRECTION_LONG)
        notional_moved = margin_moved = ZERO
        if paid_lot is not None and paid_lot.is_open:
            qty_moved = self._closable_quantity(tx, paid_lot, paid_qty)
            _, notional_moved, margin_moved = self.ledger.remove_at_cost(paid_lot, qty_moved)
        recv_lot = self.ledger.get_or_create_lot(tx.wallet_id, recv_ticker, DIRECTION_LONG)
        self.ledger.open_quantity(
            recv_lot, recv_qty, notional_moved + fee_usd, margin_moved + fee_usd, tx.date
        )
        self._add_fee(tx, fee_usd)
