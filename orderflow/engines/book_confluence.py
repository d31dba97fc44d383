"""
Book Confluence Engine

Spread/direction tracking on the best bid/ask and detection of confluence
between trade-flow imbalance and book movement.

Confluence is a heuristic, not a validated model:
- BUY:  buy imbalance + (spread tightening OR bid stepping up)
- SELL: sell imbalance + (spread widening OR ask stepping down)
Both also require a significant change in spread percent. Imbalance without
corroborating book movement never emits.
"""

import logging
import time
import uuid
from typing import List, Optional, Sequence

from ..continuous.data_types import (
    BookDirection,
    BookTicker,
    ConfluenceEvent,
    ConfluenceMetrics,
    ConfluenceSeverity,
    ConfluenceType,
    PriceTrend,
    RollingWindowStats,
    SignalDirection,
    SpreadMetrics,
    SpreadTrend,
)
from .flow_config import MAX_HISTORY, ConfluenceThresholds, safe_divide

logger = logging.getLogger(__name__)

# Percent move below which a bid/ask/spread is considered unchanged
DEFAULT_DIRECTION_THRESHOLD = 0.01


# =============================================================================
# SPREAD & DIRECTION
# =============================================================================


def calculate_spread_metrics(book: Optional[BookTicker]) -> Optional[SpreadMetrics]:
    """
    Derive spread and mid price from a book snapshot.

    Args:
        book: Best bid/ask snapshot, or None

    Returns:
        SpreadMetrics, or None when there is no book
    """
    if book is None:
        return None

    bid = book.bid
    ask = book.ask
    spread = ask - bid
    mid = (bid + ask) / 2

    return SpreadMetrics(
        bid_price=bid,
        ask_price=ask,
        spread=spread,
        mid_price=mid,
        spread_percent=safe_divide(spread, mid) * 100,
    )


def _percent_change(current: float, previous: float) -> float:
    return safe_divide(current - previous, previous) * 100


def _price_trend(change: float, threshold: float) -> PriceTrend:
    if abs(change) < threshold:
        return PriceTrend.STABLE
    return PriceTrend.UP if change > 0 else PriceTrend.DOWN


def _spread_trend(change: float, threshold: float) -> SpreadTrend:
    if abs(change) < threshold:
        return SpreadTrend.STABLE
    return SpreadTrend.WIDENING if change > 0 else SpreadTrend.TIGHTENING


def determine_book_direction(
    current: Optional[SpreadMetrics],
    previous: Optional[SpreadMetrics],
    threshold: float = DEFAULT_DIRECTION_THRESHOLD,
) -> BookDirection:
    """
    Compare two snapshots and tag bid, ask and spread movement.

    Either side missing yields all STABLE.
    """
    if current is None or previous is None:
        return BookDirection()

    bid_change = _percent_change(current.bid_price, previous.bid_price)
    ask_change = _percent_change(current.ask_price, previous.ask_price)
    spread_change = _percent_change(current.spread_percent, previous.spread_percent)

    return BookDirection(
        bid_trend=_price_trend(bid_change, threshold),
        ask_trend=_price_trend(ask_change, threshold),
        spread_trend=_spread_trend(spread_change, threshold),
    )


# =============================================================================
# CONFLUENCE
# =============================================================================


def _confluence_severity(imbalance: float) -> ConfluenceSeverity:
    magnitude = abs(imbalance)
    if magnitude > 70:
        return ConfluenceSeverity.HIGH
    if magnitude > 50:
        return ConfluenceSeverity.MEDIUM
    return ConfluenceSeverity.LOW


def _new_event_id(prefix: str, now_ms: int) -> str:
    # Timestamp alone collides when two events land in the same millisecond
    return f"{prefix}_{now_ms}_{uuid.uuid4().hex[:8]}"


def detect_confluence_events(
    stats: RollingWindowStats,
    current_spread: Optional[SpreadMetrics],
    previous_spread: Optional[SpreadMetrics],
    direction: BookDirection,
    thresholds: ConfluenceThresholds,
    previous_events: Sequence[ConfluenceEvent],
    now_ms: Optional[int] = None,
    limit: int = MAX_HISTORY,
) -> List[ConfluenceEvent]:
    """
    Prepend at most one confluence event to the history.

    Args:
        stats: Current rolling window stats
        current_spread: Spread metrics for this cycle
        previous_spread: Spread metrics from the previous cycle
        direction: Book direction from current vs previous spread
        thresholds: Confluence thresholds
        previous_events: Existing history, most recent first (not mutated)
        now_ms: Clock override
        limit: History cap

    Returns:
        New history list, most recent first, at most `limit` long
    """
    unchanged = list(previous_events)

    if current_spread is None or previous_spread is None:
        return unchanged

    total_flow = stats.total_buy_notional + stats.total_sell_notional
    if total_flow == 0:
        return unchanged

    imbalance = stats.net_delta / total_flow * 100
    spread_change = _percent_change(current_spread.spread_percent, previous_spread.spread_percent)

    if abs(imbalance) < thresholds.min_imbalance_percent:
        return unchanged

    significant_spread_change = abs(spread_change) >= thresholds.min_spread_change_percent
    if not significant_spread_change:
        return unchanged

    movement = f"Bid {direction.bid_trend.value}, Ask {direction.ask_trend.value}"
    is_buy_pressure = imbalance > 0

    if is_buy_pressure:
        tightening = direction.spread_trend is SpreadTrend.TIGHTENING
        if not (tightening or direction.bid_trend is PriceTrend.UP):
            return unchanged
        event_type = ConfluenceType.BUY_CONFLUENCE
        signal = SignalDirection.BULLISH
        corroboration = "spread tightening" if tightening else "bid rising"
        description = f"Buy pressure ({imbalance:.1f}%) + {corroboration}"
    else:
        widening = direction.spread_trend is SpreadTrend.WIDENING
        if not (widening or direction.ask_trend is PriceTrend.DOWN):
            return unchanged
        event_type = ConfluenceType.SELL_CONFLUENCE
        signal = SignalDirection.BEARISH
        corroboration = "spread widening" if widening else "ask falling"
        description = f"Sell pressure ({abs(imbalance):.1f}%) + {corroboration}"

    now = now_ms if now_ms is not None else int(time.time() * 1000)
    event = ConfluenceEvent(
        id=_new_event_id("confluence", now),
        timestamp_ms=now,
        type=event_type,
        description=description,
        severity=_confluence_severity(imbalance),
        direction=signal,
        metrics=ConfluenceMetrics(
            flow_imbalance=imbalance,
            spread_change=spread_change,
            bid_ask_movement=movement,
        ),
    )
    logger.debug(f"Confluence detected: {event.type.value} {description}")

    return [event, *unchanged][:limit]
