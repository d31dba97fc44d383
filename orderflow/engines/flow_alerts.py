"""
Flow Alert Engine

Anomaly alerts raised against the previous cycle and smoothed baselines:

1. Proxy liquidation - flow volume spike together with a sharp price move.
   Real liquidation data needs authenticated access; this is an
   observable-behavior proxy only.
2. Volume spike      - current flow notional vs its EMA baseline.
3. Spread anomaly    - current spread percent vs its EMA baseline.
"""

import time
import uuid
from typing import List, Optional, Sequence

from ..continuous.data_types import (
    AlertSeverity,
    AlertType,
    OrderFlowAlert,
    RollingWindowStats,
    SpreadMetrics,
)
from .flow_config import MAX_HISTORY, AlertThresholds


def _now_ms() -> int:
    return int(time.time() * 1000)


def _alert_id(alert_type: AlertType, now_ms: int) -> str:
    return f"{alert_type.value}_{now_ms}_{uuid.uuid4().hex[:8]}"


def _total_volume(stats: RollingWindowStats) -> float:
    return stats.total_buy_notional + stats.total_sell_notional


# =============================================================================
# ALERT RULES
# =============================================================================


def generate_proxy_liquidation_alert(
    current_stats: RollingWindowStats,
    previous_stats: Optional[RollingWindowStats],
    current_price: float,
    previous_price: float,
    thresholds: AlertThresholds,
    now_ms: Optional[int] = None,
) -> Optional[OrderFlowAlert]:
    """
    Volume spike vs previous cycle combined with a sharp price move.

    Severity by |price change|: >5% CRITICAL, >3% HIGH, >2% MEDIUM, else LOW.
    """
    if not thresholds.enabled or previous_stats is None:
        return None

    previous_volume = _total_volume(previous_stats)
    if previous_volume == 0 or previous_price <= 0:
        return None

    current_volume = _total_volume(current_stats)
    volume_ratio = current_volume / previous_volume
    price_change = (current_price - previous_price) / previous_price * 100

    if volume_ratio < thresholds.volume_spike_multiplier:
        return None
    if abs(price_change) < thresholds.price_change_percent:
        return None

    magnitude = abs(price_change)
    if magnitude > 5:
        severity = AlertSeverity.CRITICAL
    elif magnitude > 3:
        severity = AlertSeverity.HIGH
    elif magnitude > 2:
        severity = AlertSeverity.MEDIUM
    else:
        severity = AlertSeverity.LOW

    now = now_ms if now_ms is not None else _now_ms()
    sign = "+" if price_change > 0 else ""
    return OrderFlowAlert(
        id=_alert_id(AlertType.LIQUIDATION_PROXY, now),
        timestamp_ms=now,
        type=AlertType.LIQUIDATION_PROXY,
        severity=severity,
        title="Possible Liquidation Detected",
        description=(
            f"Volume spike ({volume_ratio:.1f}x) + price move ({sign}{price_change:.2f}%) "
            f"may indicate cascading liquidations"
        ),
        metrics={
            "volume_ratio": volume_ratio,
            "price_change": price_change,
            "total_volume": current_volume,
        },
    )


def generate_volume_spike_alert(
    current_stats: RollingWindowStats,
    avg_volume: float,
    thresholds: AlertThresholds,
    now_ms: Optional[int] = None,
) -> Optional[OrderFlowAlert]:
    """Flow notional vs its EMA. Ratio >5 HIGH, >3 MEDIUM, else LOW."""
    if not thresholds.enabled or avg_volume == 0:
        return None

    current_volume = _total_volume(current_stats)
    volume_ratio = current_volume / avg_volume
    if volume_ratio < thresholds.volume_spike_multiplier:
        return None

    if volume_ratio > 5:
        severity = AlertSeverity.HIGH
    elif volume_ratio > 3:
        severity = AlertSeverity.MEDIUM
    else:
        severity = AlertSeverity.LOW

    now = now_ms if now_ms is not None else _now_ms()
    return OrderFlowAlert(
        id=_alert_id(AlertType.VOLUME_SPIKE, now),
        timestamp_ms=now,
        type=AlertType.VOLUME_SPIKE,
        severity=severity,
        title="Volume Spike",
        description=f"Volume {volume_ratio:.1f}x above average - possible institutional entry",
        metrics={
            "volume_ratio": volume_ratio,
            "current_volume": current_volume,
            "avg_volume": avg_volume,
        },
    )


def generate_spread_anomaly_alert(
    current_spread: Optional[SpreadMetrics],
    avg_spread: float,
    thresholds: AlertThresholds,
    now_ms: Optional[int] = None,
) -> Optional[OrderFlowAlert]:
    """Spread percent vs its EMA. Ratio >3 HIGH, >2 MEDIUM, else LOW."""
    if not thresholds.enabled or current_spread is None or avg_spread == 0:
        return None

    spread_ratio = current_spread.spread_percent / avg_spread
    if spread_ratio < thresholds.spread_anomaly_multiplier:
        return None

    if spread_ratio > 3:
        severity = AlertSeverity.HIGH
    elif spread_ratio > 2:
        severity = AlertSeverity.MEDIUM
    else:
        severity = AlertSeverity.LOW

    now = now_ms if now_ms is not None else _now_ms()
    return OrderFlowAlert(
        id=_alert_id(AlertType.SPREAD_ANOMALY, now),
        timestamp_ms=now,
        type=AlertType.SPREAD_ANOMALY,
        severity=severity,
        title="Spread Anomaly",
        description=(
            f"Spread {spread_ratio:.1f}x wider than average - possible thin liquidity or manipulation"
        ),
        metrics={
            "spread_ratio": spread_ratio,
            "current_spread": current_spread.spread_percent,
            "avg_spread": avg_spread,
        },
    )


# =============================================================================
# BATCHING
# =============================================================================


def generate_alerts(
    current_stats: RollingWindowStats,
    previous_stats: Optional[RollingWindowStats],
    current_spread: Optional[SpreadMetrics],
    current_price: float,
    previous_price: float,
    avg_volume: float,
    avg_spread: float,
    thresholds: AlertThresholds,
    now_ms: Optional[int] = None,
) -> List[OrderFlowAlert]:
    """
    Run every rule in fixed order (liquidation, volume, spread).

    Returns:
        Alerts that fired, in rule order
    """
    now = now_ms if now_ms is not None else _now_ms()
    candidates = (
        generate_proxy_liquidation_alert(
            current_stats, previous_stats, current_price, previous_price, thresholds, now
        ),
        generate_volume_spike_alert(current_stats, avg_volume, thresholds, now),
        generate_spread_anomaly_alert(current_spread, avg_spread, thresholds, now),
    )
    return [alert for alert in candidates if alert is not None]


def prepend_alerts(
    new_alerts: Sequence[OrderFlowAlert],
    history: Sequence[OrderFlowAlert],
    limit: int = MAX_HISTORY,
) -> List[OrderFlowAlert]:
    """Put the whole batch in front of history and cap the result."""
    return [*new_alerts, *history][:limit]
