"""
cryptofolio/services/accounting/engine.py

Entry point of the position accounting engine.

compute_accounting() takes a user's transactions (ORM rows or mappings) and
the stable-ticker allowlist, replays them in date order against a fresh Lot
Ledger and returns open positions, closed-position rows and totals. It keeps
no state between calls, so the same input always gives the same output.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import AbstractSet, Any, Dict, Iterable, List, Optional

from cryptofolio import config
from cryptofolio.constants import (
    ZERO,
    ACTION_PRIORITY,
    DEFAULT_ACTION_PRIORITY,
    ACTION_BUY,
    ACTION_SELL,
    DIRECTION_SHORT,
    SHORT_ACTION_PRIORITY,
)
from cryptofolio.services.accounting.diagnostics import Diagnostic, SkipReason, summarize_diagnostics
from cryptofolio.services.accounting.ledger import LotLedger
from cryptofolio.services.accounting.normalizer import NormalizedTransaction, normalize_transaction
from cryptofolio.services.accounting.processor import ActionProcessor
from cryptofolio.services.accounting.reporting import (
    ClosedPositionRow,
    OpenPosition,
    build_open_positions,
)

logger = logging.getLogger(__name__)


@dataclass
class AccountingResult:
    positions: List[OpenPosition] = field(default_factory=list)
    closed: List[ClosedPositionRow] = field(default_factory=list)
    invested_open_total: Decimal = ZERO
    pl_realized_total: Decimal = ZERO
    fees_usd_total: Decimal = ZERO
    fees_by_wallet: Dict[Any, Decimal] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return summarize_diagnostics(self.diagnostics)

    def for_wallet(self, wallet_id: Optional[int], stables: AbstractSet[str]) -> "AccountingResult":
        """Slice of this result restricted to one wallet's lots and rows."""
        positions = [p for p in self.positions if p.wallet_id == wallet_id]
        closed = [r for r in self.closed if r.wallet_id == wallet_id]
        return AccountingResult(
            positions=positions,
            closed=closed,
            invested_open_total=_invested_total(positions, stables),
            pl_realized_total=sum((r.pl_usd for r in closed), ZERO),
            fees_usd_total=self.fees_by_wallet.get(wallet_id, ZERO),
            fees_by_wallet={wallet_id: self.fees_by_wallet.get(wallet_id, ZERO)},
            diagnostics=[],
        )

    def to_dict(self) -> dict:
        return {
            "positions": [p.to_dict() for p in self.positions],
            "closed": [r.to_dict() for r in self.closed],
            "invested_open_total": self.invested_open_total,
            "pl_realized_total": self.pl_realized_total,
            "fees_usd_total": self.fees_usd_total,
            "warnings": self.warnings,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def _invested_total(positions: Iterable[OpenPosition], stables: AbstractSet[str]) -> Decimal:
    # Stable balances are cash, not invested capital.
    return sum((p.invested_open for p in positions if p.ticker not in stables), ZERO)


def _sort_key(tx: NormalizedTransaction):
    if tx.direction == DIRECTION_SHORT and tx.action in (ACTION_BUY, ACTION_SELL):
        return tx.date, SHORT_ACTION_PRIORITY
    return tx.date, ACTION_PRIORITY.get(tx.action, DEFAULT_ACTION_PRIORITY)


def compute_accounting(
    transactions: Iterable[Any],
    stables: Optional[AbstractSet[str]] = None,
) -> AccountingResult:
    """
    Replay `transactions` and derive positions.

    Ordering is by date, then by action priority (inflows before outflows),
    then by input order, so LONG rows sharing a timestamp give the same
    totals whichever order they were supplied in. SHORT rows are not
    reordered among themselves, since the first one to touch a flat lot
    fixes its BUY/SELL convention.
    """
    stables = frozenset(s.upper() for s in (config.STABLE_TICKERS if stables is None else stables))
    ledger = LotLedger()
    processor = ActionProcessor(ledger, stables)

    replayable = []
    for raw in transactions:
        tx = normalize_transaction(raw)
        if tx.date is None or not tx.ticker:
            processor.skip(tx, SkipReason.MISSING_FIELD, "Transaction has no usable date or ticker")
            continue
        replayable.append(tx)

    for tx in sorted(replayable, key=_sort_key):
        processor.process(tx)

    positions = build_open_positions(ledger, processor.closed)
    result = AccountingResult(
        positions=positions,
        closed=processor.closed,
        invested_open_total=_invested_total(positions, stables),
        pl_realized_total=sum((r.pl_usd for r in processor.closed), ZERO),
        fees_usd_total=processor.fees_usd_total,
        fees_by_wallet=dict(processor.fees_by_wallet),
        diagnostics=processor.diagnostics,
    )
    if result.diagnostics:
        logger.info(
            f"Accounting replay of {len(replayable)} transactions finished with "
            f"{len(result.diagnostics)} diagnostics"
        )
    return result
