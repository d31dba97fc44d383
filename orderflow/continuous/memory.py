"""
Scratch memory carried between poll cycles.

Owned by the monitor and never handed out; observers only see frozen
snapshots built from it.
"""

from dataclasses import dataclass
from typing import Optional

from ..engines.flow_config import EMA_ALPHA
from .data_types import RollingWindowStats, SpreadMetrics


def ema_update(average: float, current: float, alpha: float = EMA_ALPHA) -> float:
    """
    One EMA step, seeded with the first observation.

    An average of exactly 0 means "no baseline yet" and is replaced by the
    current value.
    """
    if average == 0:
        return current
    return average * (1 - alpha) + current * alpha


@dataclass
class OrderFlowMemory:
    """Previous-cycle values and smoothed baselines."""

    previous_spread: Optional[SpreadMetrics] = None
    previous_stats: Optional[RollingWindowStats] = None
    previous_price: float = 0.0
    avg_volume: float = 0.0  # EMA of flow notional
    avg_spread: float = 0.0  # EMA of spread percent
    alpha: float = EMA_ALPHA

    def update_avg_volume(self, current_volume: float) -> float:
        self.avg_volume = ema_update(self.avg_volume, current_volume, self.alpha)
        return self.avg_volume

    def update_avg_spread(self, current_spread: float) -> float:
        self.avg_spread = ema_update(self.avg_spread, current_spread, self.alpha)
        return self.avg_spread

    def reset(self) -> None:
        """Forget everything (market switch). The smoothing factor is kept."""
        self.previous_spread = None
        self.previous_stats = None
        self.previous_price = 0.0
        self.avg_volume = 0.0
        self.avg_spread = 0.0
