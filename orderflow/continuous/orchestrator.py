"""
Order Flow Monitor

Wires together:
- Public REST fetcher (ticker, trades, book)
- Flow engines (classification, rolling window, cluster)
- Book engines (spread, direction, confluence)
- Alert rules (liquidation proxy, volume spike, spread anomaly)
- Change fingerprint gate

This is the main entry point for polling analysis.
"""

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..engines.book_confluence import (
    calculate_spread_metrics,
    detect_confluence_events,
    determine_book_direction,
)
from ..engines.data_fetcher import BinanceOrderFlowFetcher, OrderFlowFetcher, RequestConfig
from ..engines.fingerprint import OrderFlowFingerprint, fingerprints_equal, generate_fingerprint
from ..engines.flow_alerts import generate_alerts, prepend_alerts
from ..engines.flow_config import (
    EMA_ALPHA,
    MAX_HISTORY,
    AlertThresholds,
    ConfluenceThresholds,
    FlowThresholds,
    ThresholdSet,
    validate_alert_thresholds,
    validate_confluence_thresholds,
    validate_flow_thresholds,
)
from ..engines.trade_flow import (
    calculate_rolling_stats,
    classify_trades,
    detect_large_trade_cluster,
)
from ..logging_config import log_exception
from .data_types import (
    BookDirection,
    ConfluenceEvent,
    MarketType,
    MonitorState,
    OrderFlowAlert,
    OrderFlowData,
    OrderFlowSnapshot,
    RollingWindowStats,
    SpreadMetrics,
)
from .memory import OrderFlowMemory

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No data available from Binance API"


class NoOrderFlowDataError(Exception):
    """Raised when every sub-fetch of a cycle came back empty."""

    def __init__(self, symbol: str = "", market: Optional[MarketType] = None):
        self.symbol = symbol
        self.market = market
        super().__init__(NO_DATA_MESSAGE)


@dataclass
class MonitorConfig:
    """Configuration for the order flow monitor."""

    symbol: str = "BTCUSDT"
    market: MarketType = MarketType.FUTURES

    # Poll cadence (ms); 0 disables the repeating timer
    polling_interval_ms: int = 3000

    # Trades requested per cycle
    trade_limit: int = 100

    # Percent move below which bid/ask/spread count as stable
    direction_threshold_percent: float = 0.01

    # Confluence/alert history cap
    history_limit: int = MAX_HISTORY

    # Large trade cluster detection
    cluster_window_ms: int = 60_000
    min_cluster_size: int = 3

    # EMA smoothing for volume/spread baselines
    ema_alpha: float = EMA_ALPHA

    thresholds: ThresholdSet = None
    request: RequestConfig = None

    def __post_init__(self):
        if isinstance(self.market, str):
            self.market = MarketType(self.market)
        if self.thresholds is None:
            self.thresholds = ThresholdSet()
        if self.request is None:
            self.request = RequestConfig()


@dataclass
class _AnalysisResult:
    """Everything one analysis pass produces, committed in one step."""

    stats: RollingWindowStats
    has_cluster: bool
    spread: Optional[SpreadMetrics]
    direction: BookDirection
    confluence_events: List[ConfluenceEvent]
    alerts: List[OrderFlowAlert]
    new_events: int
    new_alerts: List[OrderFlowAlert]
    memory: OrderFlowMemory


def _now_ms() -> int:
    return int(time.time() * 1000)


class OrderFlowMonitor:
    """
    Polling orchestrator for one symbol on one market.

    Lifecycle:
    ```
    IDLE ──start()──> FETCHING ──settle──> SETTLED
                         ^                   │
                         └──tick/refetch()───┘
    any ──stop()──> IDLE
    ```

    Each cycle runs as its own task. A new tick or refetch cancels the
    previous cycle, and a cycle whose sequence number is no longer current
    when its fetches return is discarded without touching any state.

    Usage:
        monitor = OrderFlowMonitor(MonitorConfig(symbol="ETHUSDT"))

        def handle_update(snapshot: OrderFlowSnapshot):
            print(snapshot.rolling_stats)

        monitor.on_update(handle_update)
        async with monitor:
            await asyncio.sleep(60)
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        fetcher: Optional[OrderFlowFetcher] = None,
    ):
        self.config = config or MonitorConfig()
        self._symbol = self._normalize_symbol(self.config.symbol)
        self._market = self.config.market
        self._polling_interval_ms = self.config.polling_interval_ms
        self._thresholds = dataclasses.replace(self.config.thresholds)

        # Data source
        if fetcher is None:
            self._fetcher: OrderFlowFetcher = BinanceOrderFlowFetcher(
                request_config=self.config.request
            )
            self._owns_fetcher = True
        else:
            self._fetcher = fetcher
            self._owns_fetcher = False

        # Scratch memory (never exposed)
        self._memory = OrderFlowMemory(alpha=self.config.ema_alpha)
        self._fingerprint: Optional[OrderFlowFingerprint] = None
        self._initial_load = True

        # Published state
        self._state = MonitorState.IDLE
        self._data: Optional[OrderFlowData] = None
        self._is_loading = False
        self._last_error: Optional[str] = None
        self._last_updated: Optional[int] = None
        self._rolling_stats: Optional[RollingWindowStats] = None
        self._spread_metrics: Optional[SpreadMetrics] = None
        self._book_direction: Optional[BookDirection] = None
        self._has_cluster = False
        self._confluence_events: Tuple[ConfluenceEvent, ...] = ()
        self._alerts: Tuple[OrderFlowAlert, ...] = ()

        # Tasks
        self._running = False
        self._poll_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._cycle_seq = 0
        self._loading_cycle: Optional[int] = None

        # External callbacks
        self._on_update_callbacks: List[Callable] = []
        self._notified_error: Optional[str] = None

    @staticmethod
    def _normalize_symbol(symbol: str) -> str:
        return symbol.upper().replace("/", "").replace("-", "").replace("_", "")

    # === Properties ===

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def market(self) -> MarketType:
        return self._market

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def polling_interval_ms(self) -> int:
        return self._polling_interval_ms

    @property
    def thresholds(self) -> ThresholdSet:
        return dataclasses.replace(self._thresholds)

    @property
    def data(self) -> Optional[OrderFlowData]:
        return self._data

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def last_updated(self) -> Optional[int]:
        return self._last_updated

    @property
    def rolling_stats(self) -> Optional[RollingWindowStats]:
        return self._rolling_stats

    @property
    def spread_metrics(self) -> Optional[SpreadMetrics]:
        return self._spread_metrics

    @property
    def book_direction(self) -> Optional[BookDirection]:
        return self._book_direction

    @property
    def has_large_trade_cluster(self) -> bool:
        return self._has_cluster

    @property
    def confluence_events(self) -> Tuple[ConfluenceEvent, ...]:
        return self._confluence_events

    @property
    def alerts(self) -> Tuple[OrderFlowAlert, ...]:
        return self._alerts

    @property
    def snapshot(self) -> OrderFlowSnapshot:
        """Frozen view of everything published so far."""
        return OrderFlowSnapshot(
            symbol=self._symbol,
            market=self._market,
            state=self._state,
            data=self._data,
            is_loading=self._is_loading,
            last_error=self._last_error,
            last_updated=self._last_updated,
            rolling_stats=self._rolling_stats,
            spread_metrics=self._spread_metrics,
            book_direction=self._book_direction,
            has_large_trade_cluster=self._has_cluster,
            confluence_events=self._confluence_events,
            alerts=self._alerts,
        )

    # === Callback Registration ===

    def on_update(self, callback: Callable[[OrderFlowSnapshot], Any]) -> None:
        """Register callback for published updates (sync or async)."""
        self._on_update_callbacks.append(callback)

    async def _notify(self) -> None:
        snapshot = self.snapshot
        self._notified_error = snapshot.last_error
        for callback in self._on_update_callbacks:
            try:
                result = callback(snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Update callback error: {e}")

    # === Controls ===

    async def refetch(self) -> None:
        """
        Run a forced cycle now, regardless of the timer phase.

        Always shows loading and surfaces errors. Returns once the cycle has
        settled or been superseded. On a monitor that is not running, an
        owned HTTP session is closed again afterwards.
        """
        await self._open_fetcher()
        task = self._start_cycle(manual=True)
        await asyncio.wait([task])

        if not self._running and self._owns_fetcher:
            await self._fetcher.close()

    async def set_market(self, market: Union[MarketType, str]) -> None:
        """Switch market. Analytics, history and fingerprint start over."""
        market = MarketType(market) if isinstance(market, str) else market
        if market is self._market:
            return
        logger.info(f"Switching {self._symbol} market {self._market.value} -> {market.value}")
        self._market = market
        await self._restart_after_switch()

    async def set_symbol(self, symbol: str) -> None:
        """Switch symbol. Analytics, history and fingerprint start over."""
        symbol = self._normalize_symbol(symbol)
        if symbol == self._symbol:
            return
        logger.info(f"Switching symbol {self._symbol} -> {symbol} ({self._market.value})")
        self._symbol = symbol
        await self._restart_after_switch()

    async def set_polling_interval(self, interval_ms: int) -> None:
        """Change the poll cadence; re-arms the timer if running."""
        self._polling_interval_ms = max(0, int(interval_ms))
        logger.info(f"Polling interval set to {self._polling_interval_ms}ms")
        if self._running:
            await self._cancel_poll_task()
            self._poll_task = asyncio.create_task(self._poll_loop(immediate=False))

    def update_thresholds(
        self,
        flow: Optional[Union[FlowThresholds, Dict[str, Any]]] = None,
        confluence: Optional[Union[ConfluenceThresholds, Dict[str, Any]]] = None,
        alerts: Optional[Union[AlertThresholds, Dict[str, Any]]] = None,
    ) -> None:
        """
        Replace threshold groups; takes effect on the next cycle.

        Dicts are validated and malformed fields fall back to defaults.
        """
        if isinstance(flow, dict):
            flow = validate_flow_thresholds(flow)
        if isinstance(confluence, dict):
            confluence = validate_confluence_thresholds(confluence)
        if isinstance(alerts, dict):
            alerts = validate_alert_thresholds(alerts)

        self._thresholds = ThresholdSet(
            flow=flow or self._thresholds.flow,
            confluence=confluence or self._thresholds.confluence,
            alerts=alerts or self._thresholds.alerts,
        )
        logger.debug(f"Thresholds updated: {self._thresholds.to_dict()}")

    def clear_alerts(self) -> None:
        """Empty alert history. Confluence events are kept."""
        self._alerts = ()

    # === Cycle ===

    def _start_cycle(self, manual: bool) -> asyncio.Task:
        """Cancel any in-flight cycle and launch a new one."""
        if self._cycle_task is not None and not self._cycle_task.done():
            self._cycle_task.cancel()

        self._cycle_seq += 1
        seq = self._cycle_seq
        observable = manual or self._initial_load

        if observable:
            self._is_loading = True
            self._last_error = None
            self._loading_cycle = seq
        self._state = MonitorState.FETCHING

        task = asyncio.create_task(self._run_cycle(seq, observable, self._thresholds))
        task.add_done_callback(lambda _t, s=seq: self._finish_loading(s))
        self._cycle_task = task
        return task

    def _finish_loading(self, seq: int) -> None:
        # Runs on settle and on cancellation, even before the task started
        if self._loading_cycle == seq:
            self._loading_cycle = None
            self._is_loading = False

    def _is_current(self, seq: int) -> bool:
        return seq == self._cycle_seq

    async def _fetch_all(self, symbol: str, market: MarketType) -> OrderFlowData:
        """Run the three fetches concurrently and combine them."""
        ticker, trades, book = await asyncio.gather(
            self._fetcher.fetch_ticker(symbol, market),
            self._fetcher.fetch_recent_trades(symbol, market, self.config.trade_limit),
            self._fetcher.fetch_book_ticker(symbol, market),
        )
        data = OrderFlowData(ticker=ticker, trades=tuple(trades or ()), book=book)
        if not data.has_data:
            raise NoOrderFlowDataError(symbol, market)
        return data

    async def _run_cycle(self, seq: int, observable: bool, thresholds: ThresholdSet) -> None:
        symbol, market = self._symbol, self._market

        try:
            data = await self._fetch_all(symbol, market)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._is_current(seq):
                return
            await self._settle_error(seq, observable, e)
            return

        if not self._is_current(seq):
            logger.debug(f"Discarding stale cycle #{seq} for {symbol}")
            return

        self._state = MonitorState.SETTLED
        self._last_error = None
        self._initial_load = False

        fingerprint = generate_fingerprint(data)
        if fingerprints_equal(fingerprint, self._fingerprint):
            logger.debug(f"No change for {symbol} in cycle #{seq}")
            if self._notified_error is not None:
                # Observers still show an error that no longer applies
                self._finish_loading(seq)
                await self._notify()
            return

        self._fingerprint = fingerprint
        self._data = data
        self._last_updated = _now_ms()
        self._analyze(data, thresholds)

        self._finish_loading(seq)
        await self._notify()

    async def _settle_error(self, seq: int, observable: bool, error: Exception) -> None:
        """Surface an error on initial/manual cycles; stay quiet otherwise."""
        self._state = MonitorState.SETTLED
        if not isinstance(error, NoOrderFlowDataError):
            log_exception(logger, error, f"Cycle #{seq} failed for {self._symbol}")

        if observable:
            self._last_error = str(error)
            logger.warning(f"{self._symbol} ({self._market.value}): {error}")
            self._finish_loading(seq)
            await self._notify()
        else:
            logger.debug(f"Background poll for {self._symbol} returned no data, keeping last good")

    # === Analysis ===

    def _analyze(self, data: OrderFlowData, thresholds: ThresholdSet) -> None:
        """Run analysis and commit it, or keep previous analytics on failure."""
        if not data.trades:
            logger.debug(f"No trades for {self._symbol}, keeping previous analytics")
            return

        try:
            result = self._compute_analysis(data, thresholds)
        except Exception:
            logger.exception(f"Analysis failed for {self._symbol}")
            return

        self._commit(result)

    def _compute_analysis(self, data: OrderFlowData, thresholds: ThresholdSet) -> _AnalysisResult:
        """Compute everything against a scratch copy of memory."""
        now = _now_ms()
        limit = self.config.history_limit
        scratch = dataclasses.replace(self._memory)

        classifications = classify_trades(data.trades, thresholds.flow)
        stats = calculate_rolling_stats(classifications, thresholds.flow, now)
        has_cluster = detect_large_trade_cluster(
            classifications,
            cluster_window_ms=self.config.cluster_window_ms,
            min_cluster_size=self.config.min_cluster_size,
        )

        spread = calculate_spread_metrics(data.book)
        direction = determine_book_direction(
            spread, scratch.previous_spread, self.config.direction_threshold_percent
        )

        events = list(self._confluence_events)
        alerts = list(self._alerts)
        new_events = 0
        new_alerts: List[OrderFlowAlert] = []

        if spread is not None:
            updated_events = detect_confluence_events(
                stats,
                spread,
                scratch.previous_spread,
                direction,
                thresholds.confluence,
                events,
                now_ms=now,
                limit=limit,
            )
            if updated_events and (not events or updated_events[0] is not events[0]):
                new_events = 1
            events = updated_events
            scratch.previous_spread = spread

            scratch.update_avg_volume(stats.total_notional)
            scratch.update_avg_spread(spread.spread_percent)

            new_alerts = generate_alerts(
                current_stats=stats,
                previous_stats=scratch.previous_stats,
                current_spread=spread,
                current_price=spread.mid_price,
                previous_price=scratch.previous_price,
                avg_volume=scratch.avg_volume,
                avg_spread=scratch.avg_spread,
                thresholds=thresholds.alerts,
                now_ms=now,
            )
            alerts = prepend_alerts(new_alerts, alerts, limit)

            scratch.previous_stats = stats
            scratch.previous_price = spread.mid_price

        return _AnalysisResult(
            stats=stats,
            has_cluster=has_cluster,
            spread=spread,
            direction=direction,
            confluence_events=events,
            alerts=alerts,
            new_events=new_events,
            new_alerts=new_alerts,
            memory=scratch,
        )

    def _commit(self, result: _AnalysisResult) -> None:
        self._memory = result.memory
        self._rolling_stats = result.stats
        self._has_cluster = result.has_cluster
        self._spread_metrics = result.spread
        self._book_direction = result.direction
        self._confluence_events = tuple(result.confluence_events)
        self._alerts = tuple(result.alerts)

        if result.new_events:
            event = self._confluence_events[0]
            logger.info(
                f"Confluence {event.type.value} [{event.severity.value}] "
                f"{self._symbol}: {event.description}"
            )
        for alert in result.new_alerts:
            logger.info(
                f"Alert {alert.type.value} [{alert.severity.value}] "
                f"{self._symbol}: {alert.description}"
            )

    def _reset_analysis(self) -> None:
        """Forget everything tied to the previous symbol/market."""
        self._memory.reset()
        self._fingerprint = None
        self._initial_load = True
        self._data = None
        self._last_error = None
        self._last_updated = None
        self._rolling_stats = None
        self._spread_metrics = None
        self._book_direction = None
        self._has_cluster = False
        self._confluence_events = ()
        self._alerts = ()

    # === Polling ===

    async def _poll_loop(self, immediate: bool = True) -> None:
        """Timer loop: optionally one cycle now, then one per interval."""
        if immediate:
            self._start_cycle(manual=False)

        interval_s = self._polling_interval_ms / 1000
        if interval_s <= 0:
            return

        while self._running:
            try:
                await asyncio.sleep(interval_s)
                self._start_cycle(manual=False)
            except asyncio.CancelledError:
                break

    async def _cancel_poll_task(self) -> None:
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

    async def _cancel_cycle_task(self) -> None:
        # Bump the sequence so a cycle past its last await is also discarded
        self._cycle_seq += 1
        if self._cycle_task:
            self._cycle_task.cancel()
            try:
                await self._cycle_task
            except asyncio.CancelledError:
                pass
            self._cycle_task = None
        self._loading_cycle = None
        self._is_loading = False

    async def _restart_after_switch(self) -> None:
        await self._cancel_poll_task()
        await self._cancel_cycle_task()
        self._reset_analysis()
        if self._running:
            self._poll_task = asyncio.create_task(self._poll_loop(immediate=True))
        else:
            self._state = MonitorState.IDLE

    async def _open_fetcher(self) -> None:
        if self._owns_fetcher:
            await self._fetcher.open()

    # === Lifecycle ===

    async def start(self) -> None:
        """Start polling: one cycle now, then one per interval."""
        if self._running:
            return

        self._running = True
        await self._open_fetcher()

        logger.info(
            f"Starting order flow monitor for {self._symbol} "
            f"({self._market.value}, every {self._polling_interval_ms}ms)"
        )
        self._poll_task = asyncio.create_task(self._poll_loop(immediate=True))

    async def stop(self) -> None:
        """Stop polling. Last published state is kept."""
        self._running = False
        logger.info(f"Stopping order flow monitor for {self._symbol}")

        await self._cancel_poll_task()
        await self._cancel_cycle_task()
        self._state = MonitorState.IDLE

        if self._owns_fetcher:
            await self._fetcher.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    # === Utility Methods ===

    def get_status(self) -> Dict[str, Any]:
        """Get current monitor status."""
        stats = self._rolling_stats
        return {
            "symbol": self._symbol,
            "market": self._market.value,
            "running": self._running,
            "state": self._state.value,
            "polling_interval_ms": self._polling_interval_ms,
            "is_loading": self._is_loading,
            "last_error": self._last_error,
            "last_updated": self._last_updated,
            "imbalance_percent": stats.imbalance_percent if stats else None,
            "confluence_events": len(self._confluence_events),
            "alerts": len(self._alerts),
            "avg_volume": self._memory.avg_volume,
            "avg_spread": self._memory.avg_spread,
        }
