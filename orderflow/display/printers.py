"""Print functions for order flow monitor output."""

from typing import Set

from ..continuous.data_types import (
    ConfluenceEvent,
    OrderFlowAlert,
    OrderFlowSnapshot,
    SignalDirection,
)
from .colors import ALERT_COLORS, CONFLUENCE_COLORS, Colors, direction_color
from .formatters import (
    format_book_direction,
    format_notional,
    format_timestamp,
    imbalance_bar,
)


def print_header(symbol: str, market: str, interval_ms: int) -> None:
    """Print the banner shown once at startup."""
    print()
    print(f"{Colors.BOLD}{Colors.CYAN}{'═' * 70}{Colors.RESET}")
    print(
        f"{Colors.BOLD}  ORDER FLOW MONITOR{Colors.RESET}  "
        f"{Colors.WHITE}{symbol}{Colors.RESET} {Colors.DIM}({market}, every {interval_ms}ms){Colors.RESET}"
    )
    print(f"{Colors.BOLD}{Colors.CYAN}{'═' * 70}{Colors.RESET}")
    print()


def print_flow_status(snapshot: OrderFlowSnapshot) -> None:
    """One compact block with flow, book and ticker state."""
    stats = snapshot.rolling_stats
    spread = snapshot.spread_metrics
    ticker = snapshot.data.ticker if snapshot.data else None
    timestamp = format_timestamp(snapshot.last_updated)

    if ticker is not None:
        ticker_color = direction_color(snapshot.ticker_direction)
        print(
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} {Colors.BOLD}{snapshot.symbol}{Colors.RESET} "
            f"{ticker.last_price} {ticker_color}{ticker.price_change_percent}%{Colors.RESET} (24h)"
        )
    else:
        print(f"{Colors.DIM}[{timestamp}]{Colors.RESET} {Colors.BOLD}{snapshot.symbol}{Colors.RESET}")

    if stats is not None:
        color = direction_color(stats.direction)
        print(
            f"  Flow   {imbalance_bar(stats.imbalance_percent)} "
            f"{color}{stats.imbalance_percent:+.1f}%{Colors.RESET} "
            f"buy {format_notional(stats.total_buy_notional)} / "
            f"sell {format_notional(stats.total_sell_notional)} "
            f"({stats.trade_count} trades, {stats.large_trade_count} large)"
        )
    if spread is not None:
        print(
            f"  Book   {spread.bid_price} / {spread.ask_price} "
            f"spread {spread.spread_percent:.4f}%  {format_book_direction(snapshot.book_direction)}"
        )
    if snapshot.has_large_trade_cluster:
        print(f"  {Colors.MAGENTA}{Colors.BOLD}Large trade cluster{Colors.RESET}")


def print_confluence_event(event: ConfluenceEvent) -> None:
    color = CONFLUENCE_COLORS.get(event.severity, "")
    side_color = Colors.GREEN if event.direction is SignalDirection.BULLISH else Colors.RED
    print(
        f"  {side_color}◆ CONFLUENCE{Colors.RESET} {color}[{event.severity.value.upper()}]{Colors.RESET} "
        f"{event.description} {Colors.DIM}({event.metrics.bid_ask_movement}, "
        f"spread {event.metrics.spread_change:+.1f}%){Colors.RESET}"
    )


def print_alert(alert: OrderFlowAlert) -> None:
    color = ALERT_COLORS.get(alert.severity, "")
    print(
        f"  {color}⚠ {alert.title} [{alert.severity.value.upper()}]{Colors.RESET} "
        f"{alert.description}"
    )


class SnapshotPrinter:
    """
    Observer that prints each published snapshot.

    Events and alerts are printed once, the first time their id is seen.
    """

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self._seen_ids: Set[str] = set()
        self._last_error = None

    def __call__(self, snapshot: OrderFlowSnapshot) -> None:
        if snapshot.last_error and snapshot.last_error != self._last_error:
            print(f"{Colors.RED}Error: {snapshot.last_error}{Colors.RESET}")
        self._last_error = snapshot.last_error

        if snapshot.data is None:
            return

        if not self.quiet:
            print_flow_status(snapshot)

        # History is most recent first; print oldest new entry first
        for event in reversed(snapshot.confluence_events):
            if event.id not in self._seen_ids:
                self._seen_ids.add(event.id)
                print_confluence_event(event)
        for alert in reversed(snapshot.alerts):
            if alert.id not in self._seen_ids:
                self._seen_ids.add(alert.id)
                print_alert(alert)

    def reset(self) -> None:
        self._seen_ids.clear()
        self._last_error = None
