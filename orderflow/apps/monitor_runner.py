#!/usr/bin/env python3
"""
Order Flow Monitor Runner

Polls public Binance endpoints, prints flow/book state on every change and
highlights new confluence events and alerts.

Usage:
    orderflow-monitor                         # Default: BTCUSDT futures
    orderflow-monitor ETHUSDT --market spot   # Spot market
    orderflow-monitor SOLUSDT --interval 5000 # Poll every 5s
    orderflow-monitor BTCUSDT --quiet         # Only events and alerts

Environment defaults: ORDERFLOW_SYMBOL, ORDERFLOW_MARKET, ORDERFLOW_POLL_MS.
"""

import argparse
import asyncio
import logging
import os
from typing import List, Optional

from ..continuous.data_types import MarketType
from ..continuous.orchestrator import MonitorConfig, OrderFlowMonitor
from ..display.colors import Colors
from ..display.printers import SnapshotPrinter, print_header
from ..engines.flow_config import DEFAULT_THRESHOLDS_PATH, load_thresholds
from ..logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Real-time order flow monitor (Binance public data)")
    parser.add_argument(
        "symbol",
        nargs="?",
        default=os.getenv("ORDERFLOW_SYMBOL", "BTCUSDT"),
        help="Trading pair symbol (default: BTCUSDT)",
    )
    parser.add_argument(
        "--market",
        choices=[m.value for m in MarketType],
        default=os.getenv("ORDERFLOW_MARKET", MarketType.FUTURES.value),
        help="Market to poll (default: futures)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=int(os.getenv("ORDERFLOW_POLL_MS", "3000")),
        help="Polling interval in ms, 0 for a single cycle (default: 3000)",
    )
    parser.add_argument(
        "--thresholds",
        default=DEFAULT_THRESHOLDS_PATH,
        help=f"Threshold JSON file (default: {DEFAULT_THRESHOLDS_PATH})",
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true", help="Minimal output (only events and alerts)"
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: ORDERFLOW_LOG_LEVEL or INFO)")
    return parser


async def run_monitor(config: MonitorConfig, quiet: bool = False) -> None:
    """Run the monitor until cancelled."""
    print_header(config.symbol, config.market.value, config.polling_interval_ms)

    monitor = OrderFlowMonitor(config)
    monitor.on_update(SnapshotPrinter(quiet=quiet))

    print(f"{Colors.DIM}Polling...{Colors.RESET}")

    if config.polling_interval_ms <= 0:
        # Single cycle mode
        try:
            await monitor.refetch()
        finally:
            await monitor.stop()
        return

    async with monitor:
        while True:
            await asyncio.sleep(3600)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(level=args.log_level)

    if args.market not in [m.value for m in MarketType]:
        print(f"{Colors.RED}Unknown market: {args.market}{Colors.RESET}")
        return 2

    config = MonitorConfig(
        symbol=args.symbol.upper().replace("/", "").replace("-", ""),
        market=MarketType(args.market),
        polling_interval_ms=max(0, args.interval),
        thresholds=load_thresholds(args.thresholds),
    )

    try:
        asyncio.run(run_monitor(config, quiet=args.quiet))
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Shutting down...{Colors.RESET}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
