"""
Shared constants for transactions and the accounting engine.
"""

from decimal import Decimal

# Quantities at or below this are treated as exactly zero.
EPSILON = Decimal("1e-9")

ZERO = Decimal("0")

# Transaction actions
ACTION_BUY = "BUY"
ACTION_SELL = "SELL"
ACTION_DEPOSIT = "DEPOSIT"
ACTION_WITHDRAWAL = "WITHDRAWAL"
ACTION_SWAP = "SWAP"
ACTION_AIRDROP = "AIRDROP"
ACTION_FEE = "FEE"

# Aliases rewritten by the normalizer according to direction
ACTION_OPEN = "OPEN"
ACTION_CLOSE = "CLOSE"

DIRECTION_LONG = "LONG"
DIRECTION_SHORT = "SHORT"

# Default currency for price/fees when a row leaves it empty
DEFAULT_QUOTE_CURRENCY = "USDT"

# Same-timestamp processing order for LONG rows: inflows first, outflows last.
ACTION_PRIORITY = {
    ACTION_DEPOSIT: 0,
    ACTION_AIRDROP: 0,
    ACTION_BUY: 1,
    ACTION_SWAP: 2,
    ACTION_SELL: 3,
    ACTION_WITHDRAWAL: 4,
}
DEFAULT_ACTION_PRIORITY = 5
# SHORT rows share one rank and keep their recorded order: the first action
# on a flat short lot decides its convention.
SHORT_ACTION_PRIORITY = ACTION_PRIORITY[ACTION_BUY]
