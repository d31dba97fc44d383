"""ANSI color codes for terminal output."""

from ..continuous.data_types import AlertSeverity, ConfluenceSeverity, SignalDirection


class Colors:
    """ANSI escape codes for terminal coloring."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    # Foreground
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"

    # Background
    BG_RED = "\033[41m"


DIRECTION_COLORS = {
    SignalDirection.BULLISH: Colors.GREEN,
    SignalDirection.BEARISH: Colors.RED,
    SignalDirection.NEUTRAL: Colors.YELLOW,
}

ALERT_COLORS = {
    AlertSeverity.LOW: Colors.CYAN,
    AlertSeverity.MEDIUM: Colors.YELLOW,
    AlertSeverity.HIGH: Colors.RED,
    AlertSeverity.CRITICAL: Colors.BOLD + Colors.BG_RED + Colors.WHITE,
}

CONFLUENCE_COLORS = {
    ConfluenceSeverity.LOW: Colors.DIM,
    ConfluenceSeverity.MEDIUM: Colors.YELLOW,
    ConfluenceSeverity.HIGH: Colors.BOLD,
}


def direction_color(direction: SignalDirection) -> str:
    """Color for a directional tag."""
    return DIRECTION_COLORS.get(direction, Colors.WHITE)
