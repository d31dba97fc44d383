"""
Trade Flow Engine

Classifies public trades by aggressor side and reduces them into rolling
window statistics.

Side rule (Binance `isBuyerMaker`):
- True  -> the resting order was a buy, so the taker SOLD  -> SELL aggression
- False -> the resting order was a sell, so the taker BOUGHT -> BUY aggression

Inputs are ordered most-recent-first, the way the REST endpoint is consumed.
"""

import time
from typing import List, Optional, Sequence

from ..continuous.data_types import (
    RawTrade,
    RollingWindowStats,
    TradeClassification,
    TradeSide,
)
from .flow_config import FlowThresholds

DEFAULT_CLUSTER_WINDOW_MS = 60_000
DEFAULT_MIN_CLUSTER_SIZE = 3


def _now_ms() -> int:
    return int(time.time() * 1000)


def classify_trade_side(trade: RawTrade) -> TradeSide:
    """Aggressor side of a single trade."""
    return TradeSide.SELL if trade.is_buyer_maker else TradeSide.BUY


def calculate_notional(trade: RawTrade) -> float:
    """Trade value in quote currency (price * quantity)."""
    return trade.price * trade.quantity


def classify_trades(
    trades: Sequence[RawTrade],
    thresholds: FlowThresholds,
) -> List[TradeClassification]:
    """
    Classify trades with side, notional and large-trade flag.

    Output has the same length and order as the input.
    """
    classified = []
    for trade in trades:
        notional = calculate_notional(trade)
        classified.append(
            TradeClassification(
                trade=trade,
                side=classify_trade_side(trade),
                notional=notional,
                is_large=notional >= thresholds.large_trade_notional,
            )
        )
    return classified


def empty_stats(now_ms: Optional[int] = None) -> RollingWindowStats:
    """All-zero stats anchored at `now`."""
    now = now_ms if now_ms is not None else _now_ms()
    return RollingWindowStats(
        total_buy_notional=0.0,
        total_sell_notional=0.0,
        net_delta=0.0,
        buy_count=0,
        sell_count=0,
        large_trade_count=0,
        avg_trade_size=0.0,
        window_start=now,
        window_end=now,
    )


def select_window(
    classifications: Sequence[TradeClassification],
    thresholds: FlowThresholds,
    now_ms: Optional[int] = None,
) -> List[TradeClassification]:
    """
    Pick the more restrictive of the count window and the time window.

    The count window is the first `rolling_window_trades` entries; the time
    window keeps trades younger than `rolling_window_minutes`. Whichever is
    shorter wins.
    """
    now = now_ms if now_ms is not None else _now_ms()
    window_ms = thresholds.rolling_window_minutes * 60 * 1000

    by_count = list(classifications[: thresholds.rolling_window_trades])
    by_time = [c for c in classifications if now - c.trade.time_ms < window_ms]

    return by_count if len(by_count) < len(by_time) else by_time


def calculate_rolling_stats(
    classifications: Sequence[TradeClassification],
    thresholds: FlowThresholds,
    now_ms: Optional[int] = None,
) -> RollingWindowStats:
    """
    Reduce classified trades into rolling window statistics.

    Args:
        classifications: Classified trades, most recent first
        thresholds: Window sizing
        now_ms: Clock override (defaults to wall clock)

    Returns:
        RollingWindowStats; all zeros when there are no trades
    """
    now = now_ms if now_ms is not None else _now_ms()
    if not classifications:
        return empty_stats(now)

    window = select_window(classifications, thresholds, now)

    total_buy = 0.0
    total_sell = 0.0
    buy_count = 0
    sell_count = 0
    large_count = 0

    for c in window:
        if c.side is TradeSide.BUY:
            total_buy += c.notional
            buy_count += 1
        else:
            total_sell += c.notional
            sell_count += 1
        if c.is_large:
            large_count += 1

    total = total_buy + total_sell
    avg_trade_size = total / len(window) if window else 0.0

    return RollingWindowStats(
        total_buy_notional=total_buy,
        total_sell_notional=total_sell,
        net_delta=total_buy - total_sell,
        buy_count=buy_count,
        sell_count=sell_count,
        large_trade_count=large_count,
        avg_trade_size=avg_trade_size,
        window_start=window[-1].trade.time_ms if window else now,
        window_end=window[0].trade.time_ms if window else now,
    )


def detect_large_trade_cluster(
    classifications: Sequence[TradeClassification],
    cluster_window_ms: int = DEFAULT_CLUSTER_WINDOW_MS,
    min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
) -> bool:
    """
    True if the most recent `min_cluster_size` large trades happened within
    `cluster_window_ms` of each other.
    """
    if min_cluster_size < 1:
        return False

    large = [c for c in classifications if c.is_large]
    if len(large) < min_cluster_size:
        return False

    recent = large[:min_cluster_size]
    span = recent[0].trade.time_ms - recent[-1].trade.time_ms
    return span <= cluster_window_ms
