"""Display utilities for order flow monitor output."""

from .colors import Colors, direction_color
from .formatters import format_book_direction, format_notional, format_timestamp, imbalance_bar
from .printers import (
    SnapshotPrinter,
    print_alert,
    print_confluence_event,
    print_flow_status,
    print_header,
)

__all__ = [
    # Colors
    "Colors",
    "direction_color",
    # Formatters
    "format_notional",
    "format_timestamp",
    "format_book_direction",
    "imbalance_bar",
    # Printers
    "print_header",
    "print_flow_status",
    "print_confluence_event",
    "print_alert",
    "SnapshotPrinter",
]
