"""
Order Flow Configuration Module
Centralizes thresholds for flow aggregation, confluence detection and alerts.

Threshold structs are validated here, at the boundary. Engines always
receive well-typed, positive values; anything malformed falls back to the
default for that field.
"""

import json
import logging
import math
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

EPSILON = 1e-12

# Smoothing factor for the volume/spread moving averages
EMA_ALPHA = 0.05

# History caps (most recent first)
MAX_HISTORY = 20

DEFAULT_THRESHOLDS_PATH = "~/.orderflow/thresholds.json"


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is near zero.

    Args:
        numerator: The numerator
        denominator: The denominator
        default: Value to return if division is unsafe (default: 0.0)

    Returns:
        numerator / denominator if safe, otherwise default
    """
    return numerator / denominator if abs(denominator) > EPSILON else default


# =============================================================================
# THRESHOLD STRUCTS
# =============================================================================


@dataclass
class FlowThresholds:
    """Trade classification and rolling window settings."""

    large_trade_notional: float = 100_000.0  # USD notional for a "large" trade
    rolling_window_trades: int = 50  # Window by trade count
    rolling_window_minutes: float = 5.0  # Window by time


@dataclass
class ConfluenceThresholds:
    """Flow/book confluence settings."""

    min_imbalance_percent: float = 30.0
    min_spread_change_percent: float = 10.0
    detection_window_ms: int = 60_000


@dataclass
class AlertThresholds:
    """Anomaly alert settings."""

    volume_spike_multiplier: float = 2.5
    price_change_percent: float = 1.5
    spread_anomaly_multiplier: float = 2.0
    enabled: bool = True


@dataclass
class ThresholdSet:
    """All three threshold structs, as supplied by the caller."""

    flow: FlowThresholds = field(default_factory=FlowThresholds)
    confluence: ConfluenceThresholds = field(default_factory=ConfluenceThresholds)
    alerts: AlertThresholds = field(default_factory=AlertThresholds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow": asdict(self.flow),
            "confluence": asdict(self.confluence),
            "alerts": asdict(self.alerts),
        }


# =============================================================================
# BOUNDARY VALIDATION
# =============================================================================


def _positive_number(value: Any) -> bool:
    # bool is an int subclass; a flag is never a valid threshold
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def _pick(raw: Dict[str, Any], key: str, default: Any, cast=float) -> Any:
    value = raw.get(key)
    if _positive_number(value) and cast(value) > 0:
        return cast(value)
    if value is not None:
        logger.warning(f"Invalid threshold {key}={value!r}, using default {default}")
    return default


def validate_flow_thresholds(raw: Any) -> FlowThresholds:
    """Build FlowThresholds from untrusted input, defaulting bad fields."""
    defaults = FlowThresholds()
    if not isinstance(raw, dict):
        return defaults
    return FlowThresholds(
        large_trade_notional=_pick(raw, "large_trade_notional", defaults.large_trade_notional),
        rolling_window_trades=_pick(
            raw, "rolling_window_trades", defaults.rolling_window_trades, cast=int
        ),
        rolling_window_minutes=_pick(
            raw, "rolling_window_minutes", defaults.rolling_window_minutes
        ),
    )


def validate_confluence_thresholds(raw: Any) -> ConfluenceThresholds:
    """Build ConfluenceThresholds from untrusted input, defaulting bad fields."""
    defaults = ConfluenceThresholds()
    if not isinstance(raw, dict):
        return defaults
    return ConfluenceThresholds(
        min_imbalance_percent=_pick(raw, "min_imbalance_percent", defaults.min_imbalance_percent),
        min_spread_change_percent=_pick(
            raw, "min_spread_change_percent", defaults.min_spread_change_percent
        ),
        detection_window_ms=_pick(
            raw, "detection_window_ms", defaults.detection_window_ms, cast=int
        ),
    )


def validate_alert_thresholds(raw: Any) -> AlertThresholds:
    """Build AlertThresholds from untrusted input, defaulting bad fields."""
    defaults = AlertThresholds()
    if not isinstance(raw, dict):
        return defaults
    enabled = raw.get("enabled")
    return AlertThresholds(
        volume_spike_multiplier=_pick(
            raw, "volume_spike_multiplier", defaults.volume_spike_multiplier
        ),
        price_change_percent=_pick(raw, "price_change_percent", defaults.price_change_percent),
        spread_anomaly_multiplier=_pick(
            raw, "spread_anomaly_multiplier", defaults.spread_anomaly_multiplier
        ),
        enabled=enabled if isinstance(enabled, bool) else defaults.enabled,
    )


def validate_threshold_set(raw: Any) -> ThresholdSet:
    """Validate a {"flow": ..., "confluence": ..., "alerts": ...} mapping."""
    if not isinstance(raw, dict):
        return ThresholdSet()
    return ThresholdSet(
        flow=validate_flow_thresholds(raw.get("flow")),
        confluence=validate_confluence_thresholds(raw.get("confluence")),
        alerts=validate_alert_thresholds(raw.get("alerts")),
    )


# =============================================================================
# PERSISTENCE
# =============================================================================


def load_thresholds(path: Optional[str] = None) -> ThresholdSet:
    """
    Load persisted thresholds.

    Missing or unreadable files yield defaults; this never raises.
    """
    resolved = os.path.expanduser(path or DEFAULT_THRESHOLDS_PATH)
    if not os.path.exists(resolved):
        return ThresholdSet()
    try:
        with open(resolved, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning(f"Failed to read thresholds from {resolved}: {exc}")
        return ThresholdSet()
    return validate_threshold_set(payload)


def save_thresholds(thresholds: ThresholdSet, path: Optional[str] = None) -> bool:
    """Persist thresholds as JSON. Returns False if the write failed."""
    resolved = os.path.expanduser(path or DEFAULT_THRESHOLDS_PATH)
    try:
        state_dir = os.path.dirname(resolved)
        if state_dir:
            os.makedirs(state_dir, exist_ok=True)
        with open(resolved, "w", encoding="utf-8") as handle:
            json.dump(thresholds.to_dict(), handle, indent=2)
        return True
    except OSError as exc:
        logger.warning(f"Failed to persist thresholds to {resolved}: {exc}")
        return False
