"""Real-time Order Flow Monitor.

Public symbols are exposed lazily so importing `orderflow` does not eagerly
import network dependencies (for example `aiohttp` via the data fetcher).
"""

from __future__ import annotations

import importlib
from typing import Dict, Tuple

__version__ = "0.1.0"

__all__ = [
    # Monitor
    "OrderFlowMonitor",
    "MonitorConfig",
    "NoOrderFlowDataError",
    "OrderFlowMemory",
    # Data types
    "MarketType",
    "Ticker24h",
    "RawTrade",
    "BookTicker",
    "OrderFlowData",
    "SignalDirection",
    "TradeSide",
    "TradeClassification",
    "RollingWindowStats",
    "SpreadMetrics",
    "BookDirection",
    "ConfluenceEvent",
    "OrderFlowAlert",
    "MonitorState",
    "OrderFlowSnapshot",
    # Thresholds
    "FlowThresholds",
    "ConfluenceThresholds",
    "AlertThresholds",
    "ThresholdSet",
    "load_thresholds",
    "save_thresholds",
    "validate_threshold_set",
    # Data fetcher
    "BinanceOrderFlowFetcher",
    "OrderFlowFetcher",
    "RequestConfig",
    "BinanceAPIError",
    "BinanceRateLimitError",
    "BinanceTimeoutError",
    "BinanceConnectionError",
    # Engines
    "classify_trades",
    "calculate_rolling_stats",
    "detect_large_trade_cluster",
    "calculate_spread_metrics",
    "determine_book_direction",
    "detect_confluence_events",
    "generate_alerts",
    "generate_fingerprint",
    "fingerprints_equal",
    # Logging
    "setup_logging",
]


_EXPORT_TO_SOURCE: Dict[str, Tuple[str, str]] = {}


def _register(module: str, names: list[str]) -> None:
    for name in names:
        _EXPORT_TO_SOURCE[name] = (module, name)


_register(
    ".continuous.orchestrator",
    ["OrderFlowMonitor", "MonitorConfig", "NoOrderFlowDataError"],
)

_register(".continuous.memory", ["OrderFlowMemory"])

_register(
    ".continuous.data_types",
    [
        "MarketType",
        "Ticker24h",
        "RawTrade",
        "BookTicker",
        "OrderFlowData",
        "SignalDirection",
        "TradeSide",
        "TradeClassification",
        "RollingWindowStats",
        "SpreadMetrics",
        "BookDirection",
        "ConfluenceEvent",
        "OrderFlowAlert",
        "MonitorState",
        "OrderFlowSnapshot",
    ],
)

_register(
    ".engines.flow_config",
    [
        "FlowThresholds",
        "ConfluenceThresholds",
        "AlertThresholds",
        "ThresholdSet",
        "load_thresholds",
        "save_thresholds",
        "validate_threshold_set",
    ],
)

_register(
    ".engines.data_fetcher",
    [
        "BinanceOrderFlowFetcher",
        "OrderFlowFetcher",
        "RequestConfig",
        "BinanceAPIError",
        "BinanceRateLimitError",
        "BinanceTimeoutError",
        "BinanceConnectionError",
    ],
)

_register(
    ".engines.trade_flow",
    ["classify_trades", "calculate_rolling_stats", "detect_large_trade_cluster"],
)

_register(
    ".engines.book_confluence",
    ["calculate_spread_metrics", "determine_book_direction", "detect_confluence_events"],
)

_register(".engines.flow_alerts", ["generate_alerts"])

_register(".engines.fingerprint", ["generate_fingerprint", "fingerprints_equal"])

_register(".logging_config", ["setup_logging"])


_missing_exports = [name for name in __all__ if name not in _EXPORT_TO_SOURCE]
if _missing_exports:
    raise RuntimeError(f"Lazy export map incomplete: {_missing_exports}")


def __getattr__(name: str):
    if name not in _EXPORT_TO_SOURCE:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, symbol_name = _EXPORT_TO_SOURCE[name]
    module = importlib.import_module(module_name, __name__)
    value = getattr(module, symbol_name)

    # Cache resolved symbol on module globals for subsequent fast access.
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
