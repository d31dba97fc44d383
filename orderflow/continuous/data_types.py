"""
Core data types for the order-flow pipeline.

Raw records come from the public REST endpoints; derived records are
recomputed every poll cycle and never mutated once built.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

# =============================================================================
# RAW DATA (from exchange)
# =============================================================================


class MarketType(Enum):
    """Which Binance market the monitor is tracking."""

    SPOT = "spot"
    FUTURES = "futures"


@dataclass(frozen=True)
class Ticker24h:
    """
    24h rolling ticker.

    Numeric fields are kept as the exchange's decimal strings so that
    fingerprints compare exactly what the API returned.
    """

    symbol: str
    price_change: str = "0"
    price_change_percent: str = "0"
    last_price: str = "0"
    volume: str = "0"
    quote_volume: str = "0"

    @property
    def last_price_value(self) -> float:
        return float(self.last_price)

    @property
    def price_change_percent_value(self) -> float:
        return float(self.price_change_percent)


@dataclass(frozen=True, slots=True)
class RawTrade:
    """
    Single public trade.

    From Binance /trades:
    - is_buyer_maker=True  -> resting order was a buy, taker sold -> SELL
    - is_buyer_maker=False -> resting order was a sell, taker bought -> BUY
    """

    id: int
    price: float
    quantity: float
    time_ms: int
    is_buyer_maker: bool
    quote_quantity: float = 0.0


@dataclass(frozen=True)
class BookTicker:
    """Best bid/ask snapshot (raw decimal strings)."""

    symbol: str
    bid_price: str
    ask_price: str
    bid_qty: str = "0"
    ask_qty: str = "0"

    @property
    def bid(self) -> float:
        return float(self.bid_price)

    @property
    def ask(self) -> float:
        return float(self.ask_price)


@dataclass(frozen=True)
class OrderFlowData:
    """Combined result of one poll cycle's three fetches."""

    ticker: Optional[Ticker24h] = None
    trades: Tuple[RawTrade, ...] = ()  # Most recent first
    book: Optional[BookTicker] = None

    @property
    def has_data(self) -> bool:
        """False only when every sub-fetch came back empty."""
        return self.ticker is not None or len(self.trades) > 0 or self.book is not None


# =============================================================================
# CLASSIFICATION / DIRECTION TAGS
# =============================================================================


class SignalDirection(Enum):
    """Directional bias, assigned once at the classification boundary."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class TradeSide(Enum):
    """Aggressor side of a trade."""

    BUY = "buy"
    SELL = "sell"


class PriceTrend(Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class SpreadTrend(Enum):
    TIGHTENING = "tightening"
    WIDENING = "widening"
    STABLE = "stable"


# =============================================================================
# DERIVED RECORDS (from engines)
# =============================================================================


@dataclass(frozen=True, slots=True)
class TradeClassification:
    """Side-tagged, notional-valued trade."""

    trade: RawTrade
    side: TradeSide
    notional: float
    is_large: bool


@dataclass(frozen=True)
class RollingWindowStats:
    """Flow statistics over the active rolling window."""

    total_buy_notional: float
    total_sell_notional: float
    net_delta: float  # buy - sell
    buy_count: int
    sell_count: int
    large_trade_count: int
    avg_trade_size: float
    window_start: int  # Oldest trade time in window (ms)
    window_end: int  # Newest trade time in window (ms)

    @property
    def total_notional(self) -> float:
        return self.total_buy_notional + self.total_sell_notional

    @property
    def trade_count(self) -> int:
        return self.buy_count + self.sell_count

    @property
    def imbalance_percent(self) -> float:
        """net_delta / total_notional * 100, 0 when there is no flow."""
        total = self.total_notional
        return self.net_delta / total * 100 if total > 0 else 0.0

    @property
    def direction(self) -> SignalDirection:
        if self.net_delta > 0:
            return SignalDirection.BULLISH
        if self.net_delta < 0:
            return SignalDirection.BEARISH
        return SignalDirection.NEUTRAL


@dataclass(frozen=True)
class SpreadMetrics:
    """Spread and mid price derived from a book snapshot."""

    bid_price: float
    ask_price: float
    spread: float
    mid_price: float
    spread_percent: float


@dataclass(frozen=True)
class BookDirection:
    """Book movement versus the previous snapshot."""

    bid_trend: PriceTrend = PriceTrend.STABLE
    ask_trend: PriceTrend = PriceTrend.STABLE
    spread_trend: SpreadTrend = SpreadTrend.STABLE


# =============================================================================
# EVENTS AND ALERTS
# =============================================================================


class ConfluenceType(Enum):
    BUY_CONFLUENCE = "buy_confluence"
    SELL_CONFLUENCE = "sell_confluence"


class ConfluenceSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ConfluenceMetrics:
    flow_imbalance: float  # Percent, signed
    spread_change: float  # Percent change of spread_percent
    bid_ask_movement: str


@dataclass(frozen=True)
class ConfluenceEvent:
    """Flow imbalance corroborated by book movement."""

    id: str
    timestamp_ms: int
    type: ConfluenceType
    description: str
    severity: ConfluenceSeverity
    direction: SignalDirection
    metrics: ConfluenceMetrics


class AlertType(Enum):
    LIQUIDATION_PROXY = "liquidation_proxy"
    VOLUME_SPIKE = "volume_spike"
    SPREAD_ANOMALY = "spread_anomaly"


class AlertSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class OrderFlowAlert:
    """Anomaly alert raised by one of the alert rules."""

    id: str
    timestamp_ms: int
    type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    metrics: Dict[str, float] = field(default_factory=dict)


# =============================================================================
# PUBLISHED STATE
# =============================================================================


class MonitorState(Enum):
    """Polling orchestrator lifecycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    SETTLED = "settled"


@dataclass(frozen=True)
class OrderFlowSnapshot:
    """
    Read-only view of the monitor handed to observers.

    Everything here is immutable; the monitor's scratch memory is never
    exposed.
    """

    symbol: str
    market: MarketType
    state: MonitorState
    data: Optional[OrderFlowData]
    is_loading: bool
    last_error: Optional[str]
    last_updated: Optional[int]
    rolling_stats: Optional[RollingWindowStats]
    spread_metrics: Optional[SpreadMetrics]
    book_direction: Optional[BookDirection]
    has_large_trade_cluster: bool
    confluence_events: Tuple[ConfluenceEvent, ...]
    alerts: Tuple[OrderFlowAlert, ...]
    timestamp_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def ticker_direction(self) -> SignalDirection:
        """24h direction from the ticker's percent change."""
        if self.data is None or self.data.ticker is None:
            return SignalDirection.NEUTRAL
        change = self.data.ticker.price_change_percent_value
        if change > 0:
            return SignalDirection.BULLISH
        if change < 0:
            return SignalDirection.BEARISH
        return SignalDirection.NEUTRAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        stats = self.rolling_stats
        spread = self.spread_metrics
        return {
            "symbol": self.symbol,
            "market": self.market.value,
            "state": self.state.value,
            "is_loading": self.is_loading,
            "last_error": self.last_error,
            "last_updated": self.last_updated,
            "flow": (
                {
                    "buy_notional": stats.total_buy_notional,
                    "sell_notional": stats.total_sell_notional,
                    "net_delta": stats.net_delta,
                    "imbalance_percent": stats.imbalance_percent,
                    "large_trades": stats.large_trade_count,
                }
                if stats
                else None
            ),
            "book": (
                {
                    "bid": spread.bid_price,
                    "ask": spread.ask_price,
                    "spread_percent": spread.spread_percent,
                }
                if spread
                else None
            ),
            "cluster": self.has_large_trade_cluster,
            "confluence_events": [e.type.value for e in self.confluence_events],
            "alerts": [a.type.value for a in self.alerts],
        }
