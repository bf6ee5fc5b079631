"""
Position accounting engine: replays a transaction ledger into average-cost
lots, open positions and realized P&L.
"""

from cryptofolio.services.accounting.engine import AccountingResult, compute_accounting
from cryptofolio.services.accounting.diagnostics import Diagnostic, SkipReason, summarize_diagnostics
from cryptofolio.services.accounting.ledger import Lot, LotKey, LotLedger, ShortState
from cryptofolio.services.accounting.reporting import ClosedPositionRow, OpenPosition

__all__ = [
    "AccountingResult",
    "compute_accounting",
    "Diagnostic",
    "SkipReason",
    "summarize_diagnostics",
    "Lot",
    "LotKey",
    "LotLedger",
    "ShortState",
    "ClosedPositionRow",
    "OpenPosition",
]
