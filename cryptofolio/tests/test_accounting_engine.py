"""
cryptofolio/tests/test_accounting_engine.py

Unit tests for the position accounting engine. These run on plain dicts,
no database or HTTP involved.

Usage:
    pytest cryptofolio/tests/test_accounting_engine.py -v
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cryptofolio.services.accounting import (
    SkipReason,
    compute_accounting,
)
from cryptofolio.services.accounting.reporting import STATUS_CLOSED, STATUS_PARTIAL, holding_days

STABLES = {"USD", "USDT", "USDC"}
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

_next_id = [0]


def tx(action, ticker, quantity, price=None, days=0, **extra):
    """Build a raw transaction mapping the way the ORM row would expose it."""
    _next_id[0] += 1
    row = {
        "id": _next_id[0],
        "date": T0 + timedelta(days=days),
        "action": action,
        "ticker": ticker,
        "quantity": quantity,
        "price": price,
        "price_currency": "USDT",
        "fees": 0,
        "fees_currency": "USDT",
        "wallet_id": 1,
        "direction": "LONG",
    }
    row.update(extra)
    return row


def run(*rows):
    return compute_accounting(list(rows), STABLES)


def position(result, ticker, direction="LONG", wallet_id=1):
    for p in result.positions:
        if p.ticker == ticker and p.direction == direction and p.wallet_id == wallet_id:
            return p
    return None


def codes(result):
    return [d.reason for d in result.diagnostics]


# =============================================================================
# LONG round trips
# =============================================================================

class TestLongPositions:

    def test_round_trip_realizes_profit(self):
        result = run(
            tx("DEPOSIT", "USDT", 1000),
            tx("BUY", "BTC", 1, 50000, days=1),
            tx("SELL", "BTC", 1, 60000, days=2),
        )
        assert len(result.closed) == 1
        row = result.closed[0]
        assert row.pl_usd == Decimal("10000")
        assert row.entry_price == Decimal("50000")
        assert row.exit_price == Decimal("60000")
        assert row.pl_pct == Decimal("20")
        assert row.status == STATUS_CLOSED
        assert row.qty_remaining == 0

        assert position(result, "BTC") is None
        usdt = position(result, "USDT")
        assert usdt.qty_open == Decimal("1000")
        assert result.invested_open_total == 0
        assert result.pl_realized_total == Decimal("10000")

    def test_partial_close_keeps_average_cost(self):
        result = run(
            tx("BUY", "ETH", 2, 100),
            tx("SELL", "ETH", 1, 150, days=1),
        )
        row = result.closed[0]
        assert row.status == STATUS_PARTIAL
        assert row.qty_remaining == Decimal("1")
        assert row.pl_usd == Decimal("50")

        eth = position(result, "ETH")
        assert eth.qty_open == Decimal("1")
        assert eth.invested_open == Decimal("100")
        assert eth.avg_cost == Decimal("100")
        assert eth.pl_realized == Decimal("50")
        assert result.invested_open_total == Decimal("100")

    def test_average_cost_across_buys(self):
        result = run(
            tx("BUY", "ETH", 1, 100),
            tx("BUY", "ETH", 1, 200, days=1),
            tx("SELL", "ETH", 2, 300, days=2),
        )
        row = result.closed[0]
        assert row.entry_price == Decimal("150")
        assert row.pl_usd == Decimal("300")

    def test_buy_fee_raises_cost_and_sell_fee_lowers_proceeds(self):
        result = run(
            tx("BUY", "BTC", 1, 1000, fees=10),
            tx("SELL", "BTC", 1, 1100, days=1, fees=5),
        )
        row = result.closed[0]
        assert row.proceeds == Decimal("1095")
        assert row.fees_sell == Decimal("5")
        assert row.pl_usd == Decimal("85")
        assert result.fees_usd_total == Decimal("15")

    def test_exit_price_is_net_of_the_sell_fee(self):
        result = run(
            tx("BUY", "BTC", 2, 1000),
            tx("SELL", "BTC", 2, 1100, days=1, fees=10),
        )
        row = result.closed[0]
        assert row.exit_price == Decimal("1095")
        assert row.exit_price * row.qty_sold == row.proceeds

    def test_leverage_measures_pct_against_margin(self):
        result = run(
            tx("BUY", "BTC", 1, 1000, leverage=10),
            tx("SELL", "BTC", 1, 1100, days=1),
        )
        row = result.closed[0]
        assert row.pl_usd == Decimal("100")
        assert row.invested_cost == Decimal("100")
        assert row.pl_pct == Decimal("100")
        assert row.leverage == Decimal("10")

    def test_leverage_of_one_is_spot(self):
        result = run(tx("BUY", "BTC", 1, 1000, leverage=1))
        btc = position(result, "BTC")
        assert btc.leverage is None
        assert btc.margin_open == Decimal("1000")

    def test_close_alias_sells_a_long(self):
        result = run(
            tx("OPEN", "SOL", 10, 20),
            tx("CLOSE", "SOL", 10, 25, days=1),
        )
        assert len(result.closed) == 1
        assert result.closed[0].pl_usd == Decimal("50")

    def test_wallets_keep_separate_lots(self):
        result = run(
            tx("BUY", "BTC", 1, 100, wallet_id=1),
            tx("BUY", "BTC", 1, 300, wallet_id=2),
            tx("SELL", "BTC", 1, 200, days=1, wallet_id=1),
        )
        assert result.closed[0].pl_usd == Decimal("100")
        assert position(result, "BTC", wallet_id=1) is None
        assert position(result, "BTC", wallet_id=2).avg_cost == Decimal("300")


# =============================================================================
# Deposits, airdrops, withdrawals
# =============================================================================

class TestInflows:

    def test_airdrop_has_zero_cost(self):
        result = run(
            tx("AIRDROP", "XYZ", 10),
            tx("SELL", "XYZ", 10, 5, days=1),
        )
        row = result.closed[0]
        assert row.pl_usd == Decimal("50")
        assert row.entry_price == 0
        assert row.pl_pct == 0

    def test_stable_deposit_opens_at_par(self):
        result = run(tx("DEPOSIT", "usdc", 250))
        usdc = position(result, "USDC")
        assert usdc.qty_open == Decimal("250")
        assert usdc.invested_open == Decimal("250")
        assert result.invested_open_total == 0

    def test_non_stable_deposit_is_skipped(self):
        result = run(tx("DEPOSIT", "BTC", 1))
        assert result.positions == []
        assert codes(result) == [SkipReason.NON_STABLE_DEPOSIT]

    def test_withdrawal_leaves_cost_basis_alone(self):
        result = run(
            tx("DEPOSIT", "USDT", 1000),
            tx("WITHDRAWAL", "USDT", 400, days=1),
        )
        assert position(result, "USDT").qty_open == Decimal("1000")
        assert result.diagnostics == []


# =============================================================================
# Swaps
# =============================================================================

class TestSwaps:

    def test_stable_to_crypto_opens(self):
        result = run(
            tx("SWAP", "BTC", "0.5", 40000, from_ticker="USDT", to_ticker="BTC", fees=10),
        )
        btc = position(result, "BTC")
        assert btc.qty_open == Decimal("0.5")
        assert btc.invested_open == Decimal("20010")
        assert result.closed == []

    def test_crypto_to_stable_closes(self):
        result = run(
            tx("BUY", "BTC", 1, 30000),
            tx("SWAP", "USDT", 40000, "0.000025", days=1, from_ticker="BTC", to_ticker="USDT"),
        )
        row = result.closed[0]
        assert row.qty_sold == Decimal("1.000000")
        assert row.exit_price == Decimal("40000")
        assert row.pl_usd == Decimal("10000")
        assert row.status == STATUS_CLOSED

    def test_crypto_to_crypto_moves_basis_without_realizing(self):
        result = run(
            tx("BUY", "ETH", 1, 2000),
            tx("SWAP", "SOL", 10, "0.1", days=1, from_ticker="ETH", to_ticker="SOL", fees=5),
        )
        assert result.closed == []
        assert position(result, "ETH") is None
        sol = position(result, "SOL")
        assert sol.qty_open == Decimal("10")
        assert sol.invested_open == Decimal("2005")
        assert result.pl_realized_total == 0

    def test_swap_ticker_defaults_to_received_leg(self):
        result = run(
            tx("SWAP", None, 2, 100, from_ticker="USDT", to_ticker="eth"),
        )
        assert position(result, "ETH").invested_open == Decimal("200")

    def test_swap_missing_leg_is_skipped(self):
        result = run(tx("SWAP", "SOL", 10, "0.1", to_ticker="SOL"))
        assert result.positions == []
        assert codes(result) == [SkipReason.MALFORMED_SWAP]
        assert any("swap" in w for w in result.warnings)

    def test_swap_without_amount_is_skipped(self):
        result = run(tx("SWAP", "SOL", 10, 0, from_ticker="ETH", to_ticker="SOL"))
        assert codes(result) == [SkipReason.MALFORMED_SWAP]


# =============================================================================
# SHORT conventions
# =============================================================================

class TestShortPositions:

    def test_classic_short_profits_when_price_falls(self):
        result = run(
            tx("SELL", "BTC", 1, 50000, direction="SHORT"),
            tx("BUY", "BTC", 1, 40000, days=1, direction="SHORT"),
        )
        row = result.closed[0]
        assert row.direction == "SHORT"
        assert row.pl_usd == Decimal("10000")
        assert row.pl_usd > 0
        assert position(result, "BTC", "SHORT") is None

    def test_classic_short_at_one_timestamp_keeps_recorded_order(self):
        result = run(
            tx("SELL", "BTC", 1, 100, direction="SHORT"),
            tx("BUY", "BTC", 1, 80, direction="SHORT"),
        )
        assert len(result.closed) == 1
        assert result.closed[0].pl_usd == Decimal("20")
        assert position(result, "BTC", "SHORT") is None
        assert result.diagnostics == []

    def test_buy_opened_short_at_one_timestamp_keeps_recorded_order(self):
        result = run(
            tx("BUY", "BTC", 1, 80, direction="SHORT"),
            tx("SELL", "BTC", 1, 100, direction="SHORT"),
        )
        # BUY came first, so SELL closes it: 80 booked as entry, 100 as cover
        assert result.closed[0].pl_usd == Decimal("-20")

    def test_short_cover_exit_price_includes_fee(self):
        result = run(
            tx("SELL", "BTC", 1, 100, direction="SHORT"),
            tx("BUY", "BTC", 1, 80, days=1, direction="SHORT", fees=2),
        )
        row = result.closed[0]
        assert row.exit_price == Decimal("82")
        assert row.pl_usd == Decimal("18")

    def test_classic_short_reports_opening_action(self):
        result = run(tx("SELL", "BTC", 1, 50000, direction="SHORT"))
        short = position(result, "BTC", "SHORT")
        assert short.short_open_action == "SELL"
        assert short.invested_open == Decimal("50000")

    def test_buy_opened_short_keeps_its_convention(self):
        result = run(
            tx("BUY", "BTC", 1, 50000, direction="SHORT"),
            tx("BUY", "BTC", 1, 40000, days=1, direction="SHORT"),
        )
        assert result.closed == []
        short = position(result, "BTC", "SHORT")
        assert short.qty_open == Decimal("2")
        assert short.short_open_action == "BUY"

    def test_sell_closes_buy_opened_short(self):
        result = run(
            tx("BUY", "BTC", 2, 50000, direction="SHORT"),
            tx("SELL", "BTC", 2, 40000, days=1, direction="SHORT"),
        )
        row = result.closed[0]
        assert row.qty_sold == Decimal("2")
        assert row.pl_usd == Decimal("20000")
        assert position(result, "BTC", "SHORT") is None

    def test_convention_resets_after_full_close(self):
        result = run(
            tx("BUY", "BTC", 1, 100, direction="SHORT"),
            tx("SELL", "BTC", 1, 90, days=1, direction="SHORT"),
            tx("SELL", "BTC", 1, 120, days=2, direction="SHORT"),
        )
        assert len(result.closed) == 1
        short = position(result, "BTC", "SHORT")
        assert short.short_open_action == "SELL"
        assert short.qty_open == Decimal("1")

    def test_open_close_aliases_on_short(self):
        result = run(
            tx("OPEN", "ETH", 1, 3000, direction="SHORT"),
            tx("CLOSE", "ETH", 1, 2500, days=1, direction="SHORT"),
        )
        assert result.closed[0].pl_usd == Decimal("500")

    def test_short_and_long_lots_are_independent(self):
        result = run(
            tx("BUY", "BTC", 1, 100),
            tx("SELL", "BTC", 1, 200, direction="SHORT", days=1),
        )
        assert result.closed == []
        assert position(result, "BTC").qty_open == Decimal("1")
        assert position(result, "BTC", "SHORT").qty_open == Decimal("1")
        assert position(result, "BTC", "SHORT").short_open_action == "SELL"


# =============================================================================
# Fees
# =============================================================================

class TestFees:

    def test_fee_in_held_asset_uses_its_average_cost(self):
        result = run(
            tx("BUY", "BNB", 10, 10),
            tx("BUY", "BTC", 1, 1000, days=1, fees=1, fees_currency="BNB"),
        )
        assert position(result, "BTC").invested_open == Decimal("1010")
        assert result.fees_usd_total == Decimal("10")

    def test_fee_in_untracked_asset_is_zero(self):
        result = run(tx("BUY", "BTC", 1, 100, fees=5, fees_currency="XYZ"))
        btc = position(result, "BTC")
        assert btc.invested_open == Decimal("100")
        assert btc.invested_open.is_finite()
        assert result.fees_usd_total == 0

    def test_fees_are_tracked_per_wallet(self):
        result = run(
            tx("BUY", "BTC", 1, 100, fees=2, wallet_id=1),
            tx("BUY", "BTC", 1, 100, fees=3, wallet_id=2),
        )
        assert result.fees_by_wallet == {1: Decimal("2"), 2: Decimal("3")}
        assert result.for_wallet(2, STABLES).fees_usd_total == Decimal("3")


# =============================================================================
# Skips and diagnostics
# =============================================================================

class TestDiagnostics:

    def test_unpriced_currency_is_skipped_with_warning(self):
        result = run(tx("BUY", "BTC", 1, 20, price_currency="ETH"))
        assert result.positions == []
        assert codes(result) == [SkipReason.UNPRICED_CURRENCY]
        assert result.warnings == [
            "1 transaction(s) skipped due to unrecognized pricing currency"
        ]

    def test_sell_without_position_is_skipped(self):
        result = run(tx("SELL", "BTC", 1, 100))
        assert result.closed == []
        assert codes(result) == [SkipReason.NOTHING_TO_CLOSE]

    def test_oversell_closes_what_is_held(self):
        result = run(
            tx("BUY", "BTC", 1, 100),
            tx("SELL", "BTC", 2, 150, days=1),
        )
        row = result.closed[0]
        assert row.qty_sold == Decimal("1")
        assert row.pl_usd == Decimal("50")
        assert codes(result) == [SkipReason.OVERSELL]
        assert result.positions == []

    def test_zero_and_garbage_quantities_are_skipped(self):
        result = run(
            tx("BUY", "BTC", 0, 100),
            tx("BUY", "BTC", "nan", 100),
            tx("AIRDROP", "XYZ", None),
        )
        assert result.positions == []
        assert codes(result) == [SkipReason.INVALID_QUANTITY] * 3

    def test_missing_date_or_ticker_is_skipped(self):
        result = run(
            tx("BUY", "BTC", 1, 100, date=None),
            tx("BUY", "", 1, 100),
        )
        assert codes(result) == [SkipReason.MISSING_FIELD] * 2

    def test_unknown_action_is_reported(self):
        result = run(tx("STAKE", "ETH", 1))
        assert codes(result) == [SkipReason.UNSUPPORTED_ACTION]

    def test_fee_rows_are_ignored(self):
        result = run(tx("FEE", "USDT", 3))
        assert result.positions == []
        assert result.diagnostics == []

    def test_diagnostic_dict_shape(self):
        result = run(tx("SELL", "BTC", 1, 100))
        diag = result.to_dict()["diagnostics"][0]
        assert diag["code"] == "NOTHING_TO_CLOSE"
        assert diag["transaction_id"] == result.diagnostics[0].transaction_id
        assert "BTC" in diag["message"]


# =============================================================================
# Replay properties
# =============================================================================

def _mixed_ledger():
    return [
        tx("DEPOSIT", "USDT", 5000),
        tx("BUY", "BTC", "0.1", 20000, days=1, fees=2),
        tx("BUY", "ETH", 2, 1500, days=2),
        tx("SWAP", "SOL", 20, "0.05", days=3, from_ticker="ETH", to_ticker="SOL"),
        tx("SELL", "BTC", "0.05", 30000, days=4, fees=1),
        tx("SELL", "SOL", 5, 120, days=5),
        tx("SELL", "ETH", 3, 1800, days=6),
        tx("SELL", "DOGE", 10, 1, days=6, direction="SHORT"),
        tx("BUY", "DOGE", 4, "0.5", days=7, direction="SHORT"),
        tx("WITHDRAWAL", "USDT", 100, days=8),
    ]


class TestReplayProperties:

    def test_same_input_same_output(self):
        rows = _mixed_ledger()
        assert run(*rows).to_dict() == run(*rows).to_dict()

    def test_input_order_does_not_matter_for_distinct_dates(self):
        rows = _mixed_ledger()
        assert run(*rows).to_dict() == run(*reversed(rows)).to_dict()

    def test_same_timestamp_buy_and_sell_is_order_invariant(self):
        buy = tx("BUY", "BTC", 1, 100)
        sell = tx("SELL", "BTC", 1, 150)
        a = run(buy, sell)
        b = run(sell, buy)
        assert a.pl_realized_total == b.pl_realized_total == Decimal("50")
        assert a.invested_open_total == b.invested_open_total == 0
        assert a.diagnostics == b.diagnostics == []

    def test_same_timestamp_buys_are_order_invariant(self):
        first = tx("BUY", "ETH", 1, 100)
        second = tx("BUY", "ETH", 3, 200)
        later = tx("SELL", "ETH", 2, 300, days=1)
        a = run(first, second, later)
        b = run(second, first, later)
        assert a.pl_realized_total == b.pl_realized_total
        assert a.invested_open_total == b.invested_open_total

    def test_quantities_never_go_negative(self):
        result = run(*_mixed_ledger())
        assert all(p.qty_open > 0 for p in result.positions)
        assert all(r.qty_remaining >= 0 for r in result.closed)
        assert all(r.qty_sold > 0 for r in result.closed)

    def test_realized_total_matches_rows(self):
        result = run(*_mixed_ledger())
        assert result.pl_realized_total == sum(r.pl_usd for r in result.closed)
        assert codes(result) == [SkipReason.OVERSELL]

    def test_naive_dates_are_treated_as_utc(self):
        naive = tx("BUY", "BTC", 1, 100, date=datetime(2024, 1, 1))
        aware = tx("SELL", "BTC", 1, 110, date="2024-01-01T06:00:00Z")
        result = run(aware, naive)
        assert result.closed[0].pl_usd == Decimal("10")
        assert result.closed[0].date_open.tzinfo is not None


class TestHoldingDays:

    @pytest.mark.parametrize("hours, expected", [
        (0, 0),
        (11, 0),
        (12, 1),
        (24 * 10 + 11, 10),
        (24 * 10 + 12, 11),
    ])
    def test_rounds_half_up(self, hours, expected):
        assert holding_days(T0, T0 + timedelta(hours=hours)) == expected

    def test_unknown_open_date(self):
        assert holding_days(None, T0) is None

    def test_closed_row_carries_holding_days(self):
        result = run(
            tx("BUY", "BTC", 1, 100),
            tx("SELL", "BTC", 1, 100, days=30),
        )
        assert result.closed[0].holding_days == 30
