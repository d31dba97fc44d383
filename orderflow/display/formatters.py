"""Formatting utilities for order flow display."""

from datetime import datetime
from typing import Optional

from ..continuous.data_types import BookDirection, PriceTrend, SpreadTrend
from .colors import Colors


def format_notional(value: float) -> str:
    """Compact quote-currency amount ($1.2M, $350.0K, $87)."""
    magnitude = abs(value)
    sign = "-" if value < 0 else ""
    if magnitude >= 1_000_000_000:
        return f"{sign}${magnitude / 1_000_000_000:.2f}B"
    if magnitude >= 1_000_000:
        return f"{sign}${magnitude / 1_000_000:.2f}M"
    if magnitude >= 1_000:
        return f"{sign}${magnitude / 1_000:.1f}K"
    return f"{sign}${magnitude:.0f}"


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    """Local wall-clock time of a millisecond timestamp, or '--'."""
    if not timestamp_ms:
        return "--"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%H:%M:%S")


def imbalance_bar(imbalance_percent: float, width: int = 20) -> str:
    """Create a visual bar for imbalance in [-100, +100].

    Args:
        imbalance_percent: Signed flow imbalance
        width: Bar width in characters

    Returns:
        Colored bar string with center marker
    """
    center = width // 2
    clamped = max(-100.0, min(100.0, imbalance_percent))
    filled = int((clamped + 100.0) / 200.0 * width)

    bar = ""
    for i in range(width):
        if i == center:
            bar += Colors.DIM + "│" + Colors.RESET
        elif i < center:
            # Sell side fills from the center leftwards
            if i >= filled:
                bar += Colors.RED + "█" + Colors.RESET
            else:
                bar += Colors.DIM + "░" + Colors.RESET
        else:
            if i < filled:
                bar += Colors.GREEN + "█" + Colors.RESET
            else:
                bar += Colors.DIM + "░" + Colors.RESET
    return bar


_TREND_ARROWS = {
    PriceTrend.UP: f"{Colors.GREEN}▲{Colors.RESET}",
    PriceTrend.DOWN: f"{Colors.RED}▼{Colors.RESET}",
    PriceTrend.STABLE: f"{Colors.DIM}={Colors.RESET}",
}

_SPREAD_LABELS = {
    SpreadTrend.TIGHTENING: f"{Colors.GREEN}tightening{Colors.RESET}",
    SpreadTrend.WIDENING: f"{Colors.RED}widening{Colors.RESET}",
    SpreadTrend.STABLE: f"{Colors.DIM}stable{Colors.RESET}",
}


def format_book_direction(direction: Optional[BookDirection]) -> str:
    if direction is None:
        return f"{Colors.DIM}--{Colors.RESET}"
    return (
        f"bid {_TREND_ARROWS[direction.bid_trend]} "
        f"ask {_TREND_ARROWS[direction.ask_trend]} "
        f"spread {_SPREAD_LABELS[direction.spread_trend]}"
    )
