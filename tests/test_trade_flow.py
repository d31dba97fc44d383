"""
Tests for trade classification, rolling window aggregation and
large trade cluster detection.
"""

import pytest

from conftest import NOW_MS, make_trade
from orderflow.continuous.data_types import SignalDirection, TradeSide
from orderflow.engines.flow_config import FlowThresholds
from orderflow.engines.trade_flow import (
    calculate_notional,
    calculate_rolling_stats,
    classify_trade_side,
    classify_trades,
    detect_large_trade_cluster,
    select_window,
)

MINUTE_MS = 60_000


class TestTradeClassification:
    """Tests for side and notional classification."""

    def test_resting_buyer_is_sell_aggression(self):
        """A buyer-maker trade means the taker sold."""
        trade = make_trade(1, is_buyer_maker=True)
        assert classify_trade_side(trade) is TradeSide.SELL

    def test_resting_seller_is_buy_aggression(self):
        """A seller-maker trade means the taker bought."""
        trade = make_trade(1, is_buyer_maker=False)
        assert classify_trade_side(trade) is TradeSide.BUY

    def test_notional(self):
        """Notional is price times quantity."""
        trade = make_trade(1, price=50_000.0, quantity=2.5)
        assert calculate_notional(trade) == pytest.approx(125_000.0)

    def test_classify_preserves_length_and_order(self):
        """Output mirrors input order one-to-one."""
        trades = [make_trade(i, is_buyer_maker=i % 2 == 0) for i in (5, 4, 3, 2, 1)]
        result = classify_trades(trades, FlowThresholds())

        assert len(result) == len(trades)
        assert [c.trade.id for c in result] == [5, 4, 3, 2, 1]
        assert [c.side for c in result] == [
            TradeSide.BUY,
            TradeSide.SELL,
            TradeSide.BUY,
            TradeSide.SELL,
            TradeSide.BUY,
        ]

    def test_large_flag_inclusive_at_threshold(self):
        """Notional equal to the threshold counts as large."""
        thresholds = FlowThresholds(large_trade_notional=100_000.0)
        trades = [
            make_trade(1, price=100_000.0, quantity=1.0),
            make_trade(2, price=99_999.0, quantity=1.0),
        ]
        result = classify_trades(trades, thresholds)

        assert result[0].is_large is True
        assert result[1].is_large is False


class TestRollingWindow:
    """Tests for rolling window statistics."""

    def test_empty_input_all_zero(self):
        """No trades gives zero stats anchored at now."""
        stats = calculate_rolling_stats([], FlowThresholds(), now_ms=NOW_MS)

        assert stats.total_buy_notional == 0
        assert stats.total_sell_notional == 0
        assert stats.net_delta == 0
        assert stats.buy_count == 0
        assert stats.sell_count == 0
        assert stats.large_trade_count == 0
        assert stats.avg_trade_size == 0
        assert stats.window_start == NOW_MS
        assert stats.window_end == NOW_MS

    def test_count_window_used_when_shorter(self):
        """60 recent trades with a 50-trade window keeps the 50 newest."""
        trades = [make_trade(i, time_ms=NOW_MS - i) for i in range(60)]
        classified = classify_trades(trades, FlowThresholds())
        stats = calculate_rolling_stats(
            classified, FlowThresholds(rolling_window_trades=50), now_ms=NOW_MS
        )

        assert stats.trade_count == 50
        assert stats.window_end == NOW_MS
        assert stats.window_start == NOW_MS - 49

    def test_time_window_used_when_shorter(self):
        """Trades older than the time window are dropped."""
        recent = [make_trade(i, time_ms=NOW_MS - i * 1000) for i in range(7)]
        stale = [make_trade(100 + i, time_ms=NOW_MS - 10 * MINUTE_MS - i) for i in range(3)]
        classified = classify_trades(recent + stale, FlowThresholds())

        window = select_window(classified, FlowThresholds(rolling_window_minutes=5), now_ms=NOW_MS)
        stats = calculate_rolling_stats(classified, FlowThresholds(), now_ms=NOW_MS)

        assert len(window) == 7
        assert stats.trade_count == 7
        assert stats.window_start == NOW_MS - 6000

    def test_all_stale_gives_empty_window(self):
        """When every trade is outside the time window nothing is aggregated."""
        trades = [make_trade(i, time_ms=NOW_MS - 10 * MINUTE_MS) for i in range(5)]
        stats = calculate_rolling_stats(classify_trades(trades, FlowThresholds()), FlowThresholds(), now_ms=NOW_MS)

        assert stats.trade_count == 0
        assert stats.avg_trade_size == 0
        assert stats.window_start == NOW_MS
        assert stats.window_end == NOW_MS

    def test_aggregates_by_side(self):
        """Buy and sell notionals and counts are split by aggressor."""
        trades = [
            make_trade(4, price=100.0, quantity=3.0, is_buyer_maker=False),
            make_trade(3, price=100.0, quantity=1.0, is_buyer_maker=True),
            make_trade(2, price=100.0, quantity=2.0, is_buyer_maker=False),
            make_trade(1, price=100.0, quantity=2.0, is_buyer_maker=True),
        ]
        stats = calculate_rolling_stats(classify_trades(trades, FlowThresholds()), FlowThresholds(), now_ms=NOW_MS)

        assert stats.total_buy_notional == pytest.approx(500.0)
        assert stats.total_sell_notional == pytest.approx(300.0)
        assert stats.buy_count == 2
        assert stats.sell_count == 2
        assert stats.avg_trade_size == pytest.approx(200.0)
        assert stats.imbalance_percent == pytest.approx(25.0)
        assert stats.direction is SignalDirection.BULLISH

    def test_net_delta_invariant(self):
        """net_delta always equals buy minus sell."""
        trades = [
            make_trade(i, price=100.0 + i, quantity=0.5 + i / 10, is_buyer_maker=i % 3 == 0)
            for i in range(20)
        ]
        stats = calculate_rolling_stats(classify_trades(trades, FlowThresholds()), FlowThresholds(), now_ms=NOW_MS)

        assert stats.net_delta == pytest.approx(stats.total_buy_notional - stats.total_sell_notional)

    def test_large_count_bounded_by_window(self):
        """Large trade count never exceeds the window length."""
        thresholds = FlowThresholds(large_trade_notional=1.0, rolling_window_trades=5)
        trades = [make_trade(i, price=100.0, quantity=1.0) for i in range(10)]
        stats = calculate_rolling_stats(classify_trades(trades, thresholds), thresholds, now_ms=NOW_MS)

        assert stats.large_trade_count == 5
        assert stats.large_trade_count <= stats.trade_count

    def test_all_sells_bearish(self):
        """Pure selling flow is bearish with -100% imbalance."""
        trades = [make_trade(i, is_buyer_maker=True) for i in range(3)]
        stats = calculate_rolling_stats(classify_trades(trades, FlowThresholds()), FlowThresholds(), now_ms=NOW_MS)

        assert stats.direction is SignalDirection.BEARISH
        assert stats.imbalance_percent == pytest.approx(-100.0)


class TestLargeTradeCluster:
    """Tests for large trade cluster detection."""

    @staticmethod
    def _classified(times, large=True):
        quantity = 2_000.0 if large else 1.0
        trades = [make_trade(i, price=100.0, quantity=quantity, time_ms=t) for i, t in enumerate(times)]
        return classify_trades(trades, FlowThresholds(large_trade_notional=100_000.0))

    def test_three_large_within_window(self):
        """Three large trades inside 60s form a cluster."""
        classified = self._classified([NOW_MS, NOW_MS - 20_000, NOW_MS - 59_000])
        assert detect_large_trade_cluster(classified) is True

    def test_span_exactly_window_is_cluster(self):
        """Span equal to the window still counts."""
        classified = self._classified([NOW_MS, NOW_MS - 30_000, NOW_MS - 60_000])
        assert detect_large_trade_cluster(classified) is True

    def test_span_too_wide(self):
        """Three large trades spread over more than 60s are not a cluster."""
        classified = self._classified([NOW_MS, NOW_MS - 30_000, NOW_MS - 61_000])
        assert detect_large_trade_cluster(classified) is False

    def test_too_few_large_trades(self):
        """Fewer than the minimum large trades is never a cluster."""
        classified = self._classified([NOW_MS, NOW_MS - 1_000])
        assert detect_large_trade_cluster(classified) is False

    def test_small_trades_ignored(self):
        """Small trades between large ones do not count toward the span."""
        large = self._classified([NOW_MS, NOW_MS - 10_000, NOW_MS - 20_000])
        small = self._classified([NOW_MS - 5_000] * 10, large=False)
        mixed = [large[0], *small, large[1], large[2]]

        assert detect_large_trade_cluster(mixed) is True

    def test_only_most_recent_large_trades_considered(self):
        """An older tight group does not rescue a loose recent group."""
        classified = self._classified(
            [NOW_MS, NOW_MS - 50_000, NOW_MS - 200_000, NOW_MS - 200_500, NOW_MS - 201_000]
        )
        assert detect_large_trade_cluster(classified) is False

    def test_custom_cluster_size(self):
        """min_cluster_size is configurable."""
        classified = self._classified([NOW_MS, NOW_MS - 1_000])
        assert detect_large_trade_cluster(classified, min_cluster_size=2) is True
