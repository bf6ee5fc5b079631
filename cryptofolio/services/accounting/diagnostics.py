"""
Diagnostics recorded when the engine skips (part of) a transaction.

The engine never raises on ledger data. Instead each skipped row leaves a
Diagnostic behind, and summarize_diagnostics() folds them into short
user-facing warnings returned next to the results.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List


class SkipReason(str, Enum):
    UNPRICED_CURRENCY = "UNPRICED_CURRENCY"
    NOTHING_TO_CLOSE = "NOTHING_TO_CLOSE"
    OVERSELL = "OVERSELL"
    MALFORMED_SWAP = "MALFORMED_SWAP"
    NON_STABLE_DEPOSIT = "NON_STABLE_DEPOSIT"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    MISSING_FIELD = "MISSING_FIELD"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"


# Templates for the aggregated warnings, keyed by reason.
_SUMMARY_TEMPLATES = {
    SkipReason.UNPRICED_CURRENCY: "{n} transaction(s) skipped due to unrecognized pricing currency",
    SkipReason.NOTHING_TO_CLOSE: "{n} closing transaction(s) skipped because no open position existed",
    SkipReason.OVERSELL: "{n} transaction(s) closed more than was held; the excess was ignored",
    SkipReason.MALFORMED_SWAP: "{n} swap(s) skipped because a leg ticker or amount was missing",
    SkipReason.NON_STABLE_DEPOSIT: "{n} non-stable deposit(s) ignored for cost basis",
    SkipReason.INVALID_QUANTITY: "{n} transaction(s) skipped due to a zero or negative quantity",
    SkipReason.MISSING_FIELD: "{n} transaction(s) skipped due to a missing date or ticker",
    SkipReason.UNSUPPORTED_ACTION: "{n} transaction(s) skipped due to an unsupported action",
}


@dataclass(frozen=True)
class Diagnostic:
    transaction_id: Any
    reason: SkipReason
    message: str

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "code": self.reason.value,
            "message": self.message,
        }


def summarize_diagnostics(diagnostics: Iterable[Diagnostic]) -> List[str]:
    """One warning line per reason, in the order reasons first occurred."""
    counts = Counter(d.reason for d in diagnostics)
    return [
        _SUMMARY_TEMPLATES[reason].format(n=count)
        for reason, count in counts.items()
    ]
