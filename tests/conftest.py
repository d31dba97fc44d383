"""
Shared fixtures for order flow tests.

Builders produce exchange-shaped records with recent timestamps so the
time window never trims them unless a test asks for it.
"""

import time
from typing import List, Optional, Sequence

import pytest

from orderflow.continuous.data_types import (
    BookTicker,
    MarketType,
    RawTrade,
    RollingWindowStats,
    SpreadMetrics,
    Ticker24h,
)
from orderflow.engines.data_fetcher import OrderFlowFetcher, RequestConfig

NOW_MS = 1_700_000_000_000


def now_ms() -> int:
    return int(time.time() * 1000)


def make_trade(
    trade_id: int,
    price: float = 100.0,
    quantity: float = 1.0,
    time_ms: Optional[int] = None,
    is_buyer_maker: bool = False,
) -> RawTrade:
    return RawTrade(
        id=trade_id,
        price=price,
        quantity=quantity,
        time_ms=time_ms if time_ms is not None else NOW_MS,
        is_buyer_maker=is_buyer_maker,
    )


def make_trades(count: int, start_id: int = 1000, time_ms: Optional[int] = None, **kwargs) -> List[RawTrade]:
    """`count` trades, most recent (highest id) first."""
    return [
        make_trade(start_id + count - 1 - i, time_ms=time_ms, **kwargs) for i in range(count)
    ]


def make_book(bid: str = "100.0", ask: str = "101.0", symbol: str = "BTCUSDT") -> BookTicker:
    return BookTicker(symbol=symbol, bid_price=bid, ask_price=ask, bid_qty="1", ask_qty="1")


def make_ticker(last_price: str = "100.5", change_percent: str = "1.25") -> Ticker24h:
    return Ticker24h(
        symbol="BTCUSDT",
        price_change="1.0",
        price_change_percent=change_percent,
        last_price=last_price,
        volume="1000",
        quote_volume="100000",
    )


def make_stats(buy: float, sell: float, window_ms: int = NOW_MS) -> RollingWindowStats:
    return RollingWindowStats(
        total_buy_notional=buy,
        total_sell_notional=sell,
        net_delta=buy - sell,
        buy_count=1 if buy else 0,
        sell_count=1 if sell else 0,
        large_trade_count=0,
        avg_trade_size=(buy + sell) / 2,
        window_start=window_ms,
        window_end=window_ms,
    )


def make_spread(bid: float, ask: float) -> SpreadMetrics:
    spread = ask - bid
    mid = (bid + ask) / 2
    return SpreadMetrics(
        bid_price=bid,
        ask_price=ask,
        spread=spread,
        mid_price=mid,
        spread_percent=spread / mid * 100,
    )


def make_spread_percent(spread_percent: float, bid: float = 100.0, ask: float = 101.0) -> SpreadMetrics:
    """Spread metrics with an explicit spread percent (prices only steer direction)."""
    return SpreadMetrics(
        bid_price=bid,
        ask_price=ask,
        spread=ask - bid,
        mid_price=(bid + ask) / 2,
        spread_percent=spread_percent,
    )


NO_WAIT = RequestConfig(max_retries=2, retry_base_delay=0.0, retry_max_delay=0.0)

TICKER_PAYLOAD = {
    "symbol": "BTCUSDT",
    "priceChange": "120.50",
    "priceChangePercent": "0.190",
    "lastPrice": "63500.10",
    "volume": "1234.5",
    "quoteVolume": "78000000.0",
}

BOOK_PAYLOAD = {
    "symbol": "BTCUSDT",
    "bidPrice": "63500.00",
    "bidQty": "2.1",
    "askPrice": "63500.10",
    "askQty": "0.4",
}

TRADES_PAYLOAD = [
    {"id": 1, "price": "63499.9", "qty": "0.010", "quoteQty": "634.999", "time": 1700000000000, "isBuyerMaker": True},
    {"id": 2, "price": "63500.0", "qty": "0.500", "quoteQty": "31750.0", "time": 1700000000100, "isBuyerMaker": False},
    {"id": 3, "price": 63500.1, "qty": "0.1", "time": 1700000000200, "isBuyerMaker": False},
    {"id": 4, "price": "63500.1", "qty": "0.2", "time": "1700000000300", "isBuyerMaker": False},
    {"id": 5, "price": "63500.2", "qty": "0.3", "time": 1700000000400, "isBuyerMaker": True},
]


class FakeResponse:
    """Scripted aiohttp response; `json_error` makes json() raise."""

    def __init__(self, status=200, payload=None, headers=None, text="", json_error=None):
        self.status = status
        self._payload = payload
        self._json_error = json_error
        self.headers = headers or {}
        self._text = text

    async def json(self):
        if self._json_error is not None:
            raise self._json_error
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class RoutingSession:
    """Fake aiohttp session answering by URL path, one fixed response each."""

    def __init__(self, routes):
        self._routes = routes
        self.requests = []
        self.closed = False

    def get(self, url, params=None):
        self.requests.append((url, params))
        for path, response in self._routes.items():
            if url.endswith(path):
                return response
        raise AssertionError(f"unexpected request {url}")

    async def close(self):
        self.closed = True


class FakeFetcher(OrderFlowFetcher):
    """
    In-memory fetcher.

    Each fetch pops the next scripted response for its endpoint; when the
    script runs out the last response repeats. `gate` (an asyncio.Event)
    lets tests hold fetches in flight.
    """

    def __init__(
        self,
        tickers: Sequence[Optional[Ticker24h]] = (None,),
        trades: Sequence[List[RawTrade]] = ([],),
        books: Sequence[Optional[BookTicker]] = (None,),
    ):
        self.tickers = list(tickers)
        self.trades = list(trades)
        self.books = list(books)
        self.calls: List[tuple] = []
        self.gate = None
        self.started = 0

    @staticmethod
    def _next(script: list):
        return script.pop(0) if len(script) > 1 else script[0]

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()

    async def fetch_ticker(self, symbol: str, market: MarketType) -> Optional[Ticker24h]:
        self.calls.append(("ticker", symbol, market))
        self.started += 1
        await self._wait()
        return self._next(self.tickers)

    async def fetch_recent_trades(self, symbol: str, market: MarketType, limit: int = 100) -> List[RawTrade]:
        self.calls.append(("trades", symbol, market))
        await self._wait()
        return list(self._next(self.trades))

    async def fetch_book_ticker(self, symbol: str, market: MarketType) -> Optional[BookTicker]:
        self.calls.append(("book", symbol, market))
        await self._wait()
        return self._next(self.books)


@pytest.fixture
def fake_fetcher():
    """Fetcher returning a steady ticker, 10 buy trades and a 100/101 book."""
    return FakeFetcher(
        tickers=[make_ticker()],
        trades=[make_trades(10, time_ms=now_ms())],
        books=[make_book()],
    )
