"""
Polling Order Flow Architecture

"Poll on a timer, publish on change."

```
REST FETCH (concurrent, per cycle)
├─ 24h ticker
├─ recent trades
└─ best bid/ask
        ↓
FINGERPRINT GATE (skip unchanged)
        ↓
FLOW ENGINES
├─ trade classification
├─ rolling window (count vs time)
└─ large trade cluster
        ↓
BOOK ENGINES
├─ spread / direction
└─ confluence
        ↓
ALERT RULES (vs EMA baselines)
        ↓
OBSERVERS (frozen snapshots)
```

Usage:
    from orderflow.continuous import OrderFlowMonitor, MonitorConfig

    async def main():
        monitor = OrderFlowMonitor(MonitorConfig(symbol="BTCUSDT"))
        monitor.on_update(lambda snapshot: print(snapshot.to_dict()))

        async with monitor:
            await asyncio.sleep(3600)

    asyncio.run(main())

Exports resolve lazily: the engines import `data_types` from this package,
and the orchestrator imports the engines.
"""

from __future__ import annotations

import importlib
from typing import Dict, Tuple

_EXPORT_TO_SOURCE: Dict[str, Tuple[str, str]] = {}


def _register(module: str, names: list[str]) -> None:
    for name in names:
        _EXPORT_TO_SOURCE[name] = (module, name)


_register(
    ".data_types",
    [
        # Raw data
        "MarketType",
        "Ticker24h",
        "RawTrade",
        "BookTicker",
        "OrderFlowData",
        # Tags
        "SignalDirection",
        "TradeSide",
        "PriceTrend",
        "SpreadTrend",
        # Derived
        "TradeClassification",
        "RollingWindowStats",
        "SpreadMetrics",
        "BookDirection",
        # Events and alerts
        "ConfluenceType",
        "ConfluenceSeverity",
        "ConfluenceMetrics",
        "ConfluenceEvent",
        "AlertType",
        "AlertSeverity",
        "OrderFlowAlert",
        # Published state
        "MonitorState",
        "OrderFlowSnapshot",
    ],
)
_register(".memory", ["OrderFlowMemory", "ema_update"])
_register(".orchestrator", ["MonitorConfig", "NoOrderFlowDataError", "OrderFlowMonitor"])

__all__ = list(_EXPORT_TO_SOURCE)


def __getattr__(name: str):
    if name not in _EXPORT_TO_SOURCE:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, symbol_name = _EXPORT_TO_SOURCE[name]
    module = importlib.import_module(module_name, __name__)
    value = getattr(module, symbol_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
