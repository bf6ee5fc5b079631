"""
Fee valuation: convert a transaction fee into USD.

Stable and fiat currencies are taken 1:1. Fees paid in another asset are
valued at that asset's current average cost in the same wallet; an asset with
no open lot values the fee at 0.
"""

from decimal import Decimal
from typing import Optional, AbstractSet

from cryptofolio.constants import ZERO, EPSILON
from cryptofolio.services.accounting.ledger import LotLedger


def fee_to_usd(
    fees: Decimal,
    fees_currency: str,
    ledger: LotLedger,
    wallet_id: Optional[int],
    stables: AbstractSet[str],
) -> Decimal:
    if fees <= 0:
        return ZERO
    if fees_currency in stables:
        return fees
    qty, notional = ledger.holdings(wallet_id, fees_currency)
    if qty <= EPSILON:
        return ZERO
    return fees * (notional / qty)
