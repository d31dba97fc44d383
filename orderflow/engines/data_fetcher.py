"""
Binance Order Flow Fetcher
Fetches the three public endpoints the monitor polls: 24h ticker, recent
trades and best bid/ask. No API key is needed for any of them.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..continuous.data_types import BookTicker, MarketType, RawTrade, Ticker24h

logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class BinanceAPIError(Exception):
    """Base exception for Binance API errors."""

    def __init__(self, status_code: int, message: str, response_text: str = ""):
        self.status_code = status_code
        self.message = message
        self.response_text = response_text
        super().__init__(f"Binance API error {status_code}: {message}")


class BinanceRateLimitError(BinanceAPIError):
    """Raised when rate limit (HTTP 429) is hit."""

    def __init__(self, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        super().__init__(429, "Rate limit exceeded", "")


class BinanceTimeoutError(BinanceAPIError):
    """Raised when request times out."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(0, f"Request timed out after {timeout}s", "")


class BinanceConnectionError(BinanceAPIError):
    """Raised when connection fails."""

    def __init__(self, original_error: Exception):
        self.original_error = original_error
        super().__init__(0, f"Connection error: {original_error}", "")


class InvalidResponseError(BinanceAPIError):
    """Raised when a 200 response does not have the expected shape."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__(200, f"Invalid response shape from {endpoint}", "")


# =============================================================================
# REQUEST CONFIGURATION
# =============================================================================


@dataclass
class RequestConfig:
    """Configuration for HTTP requests."""

    timeout_total: float = 10.0  # Total request timeout in seconds
    timeout_connect: float = 5.0  # Connection timeout in seconds
    max_retries: int = 2  # Maximum number of attempts per request
    retry_base_delay: float = 0.5  # Base delay for exponential backoff
    retry_max_delay: float = 5.0  # Maximum delay between retries
    retry_on_status: tuple = (429, 500, 502, 503, 504)  # HTTP status codes to retry


DEFAULT_REQUEST_CONFIG = RequestConfig()


# =============================================================================
# FETCHER INTERFACE
# =============================================================================


class OrderFlowFetcher(ABC):
    """
    Base class for order flow data sources.

    Implementations return None / [] on any failure and only ever raise
    asyncio.CancelledError.
    """

    @abstractmethod
    async def fetch_ticker(self, symbol: str, market: MarketType) -> Optional[Ticker24h]:
        """24h rolling ticker."""
        pass

    @abstractmethod
    async def fetch_recent_trades(
        self, symbol: str, market: MarketType, limit: int = 100
    ) -> List[RawTrade]:
        """Recent trades, most recent first."""
        pass

    @abstractmethod
    async def fetch_book_ticker(self, symbol: str, market: MarketType) -> Optional[BookTicker]:
        """Best bid/ask."""
        pass


# =============================================================================
# RESPONSE PARSING
# =============================================================================


def parse_ticker(data: Any) -> Optional[Ticker24h]:
    """Build Ticker24h from a /ticker/24hr payload; None if malformed."""
    if not isinstance(data, dict) or not isinstance(data.get("symbol"), str):
        return None
    return Ticker24h(
        symbol=data["symbol"],
        price_change=str(data.get("priceChange", "0")),
        price_change_percent=str(data.get("priceChangePercent", "0")),
        last_price=str(data.get("lastPrice", "0")),
        volume=str(data.get("volume", "0")),
        quote_volume=str(data.get("quoteVolume", "0")),
    )


def parse_trade(data: Any) -> Optional[RawTrade]:
    """
    Build RawTrade from a /trades entry.

    Requires string price/qty and an integer time; anything else is dropped.
    """
    if not isinstance(data, dict):
        return None
    price = data.get("price")
    qty = data.get("qty")
    trade_time = data.get("time")
    if not isinstance(price, str) or not isinstance(qty, str):
        return None
    if isinstance(trade_time, bool) or not isinstance(trade_time, int):
        return None
    try:
        return RawTrade(
            id=int(data.get("id", 0)),
            price=float(price),
            quantity=float(qty),
            time_ms=trade_time,
            is_buyer_maker=bool(data.get("isBuyerMaker", False)),
            quote_quantity=float(data.get("quoteQty") or 0),
        )
    except (TypeError, ValueError):
        return None


def parse_trades(data: Any) -> List[RawTrade]:
    """Parse a /trades array, filtering invalid entries. Order is preserved."""
    if not isinstance(data, list):
        return []
    trades = []
    for entry in data:
        trade = parse_trade(entry)
        if trade is not None:
            trades.append(trade)
    return trades


def parse_book_ticker(data: Any) -> Optional[BookTicker]:
    """Build BookTicker from a /ticker/bookTicker payload; None if malformed."""
    if not isinstance(data, dict):
        return None
    if not isinstance(data.get("bidPrice"), str) or not isinstance(data.get("askPrice"), str):
        return None
    return BookTicker(
        symbol=str(data.get("symbol", "")),
        bid_price=data["bidPrice"],
        ask_price=data["askPrice"],
        bid_qty=str(data.get("bidQty", "0")),
        ask_qty=str(data.get("askQty", "0")),
    )


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Seconds from a Retry-After header; the HTTP-date form is ignored."""
    if not value:
        return None
    try:
        return max(0, int(value))
    except ValueError:
        return None


# =============================================================================
# BINANCE FETCHER
# =============================================================================


class BinanceOrderFlowFetcher(OrderFlowFetcher):
    """
    Public REST fetcher for order flow data.
    Supports both spot and USD-M futures markets.
    """

    SPOT_BASE = "https://api.binance.com"
    FUTURES_BASE = "https://fapi.binance.com"

    ENDPOINTS = {
        MarketType.SPOT: {
            "ticker": "/api/v3/ticker/24hr",
            "trades": "/api/v3/trades",
            "book": "/api/v3/ticker/bookTicker",
        },
        MarketType.FUTURES: {
            "ticker": "/fapi/v1/ticker/24hr",
            "trades": "/fapi/v1/trades",
            "book": "/fapi/v1/ticker/bookTicker",
        },
    }

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        request_config: Optional[RequestConfig] = None,
    ):
        self._session = session
        self._owns_session = session is None
        self._config = request_config or DEFAULT_REQUEST_CONFIG

    async def open(self) -> None:
        """Create the HTTP session if none was supplied."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(
                total=self._config.timeout_total, connect=self._config.timeout_connect
            )
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        """Close the HTTP session if this fetcher created it."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _normalize_symbol(self, symbol: str) -> str:
        """Normalize symbol format (BTC/USDT -> BTCUSDT)."""
        return symbol.upper().replace("/", "").replace("-", "").replace("_", "")

    def _url(self, market: MarketType, endpoint: str) -> str:
        base = self.FUTURES_BASE if market is MarketType.FUTURES else self.SPOT_BASE
        return f"{base}{self.ENDPOINTS[market][endpoint]}"

    def _calculate_backoff_delay(self, attempt: int, retry_after: Optional[int] = None) -> float:
        """Calculate exponential backoff delay with jitter."""
        if retry_after is not None:
            return min(retry_after, self._config.retry_max_delay)

        # Exponential backoff: base_delay * 2^attempt
        delay = self._config.retry_base_delay * (2**attempt)
        jitter = random.uniform(0, 0.1 * delay)
        return min(delay + jitter, self._config.retry_max_delay)

    async def _get(self, url: str, params: Optional[Dict] = None) -> Any:
        """
        Make GET request with timeout and retry logic.

        Args:
            url: The URL to request
            params: Optional query parameters

        Returns:
            Parsed JSON response

        Raises:
            BinanceAPIError: For non-retryable API errors
            BinanceRateLimitError: When rate limit is exceeded after retries
            BinanceTimeoutError: When request times out after retries
            BinanceConnectionError: When connection fails after retries
            InvalidResponseError: When a 200 body is not JSON
        """
        if self._session is None:
            raise RuntimeError(
                "Session not initialized. Use 'async with BinanceOrderFlowFetcher()' "
                "or pass a session to __init__."
            )

        last_error: Optional[Exception] = None
        attempts = max(1, self._config.max_retries)

        for attempt in range(attempts):
            try:
                logger.debug(
                    "GET %s params=%s (attempt %d/%d)", url, params, attempt + 1, attempts
                )
                async with self._session.get(url, params=params) as response:
                    if response.status == 429:
                        retry_after = response.headers.get("Retry-After")
                        retry_after_sec = _parse_retry_after(retry_after)
                        if attempt < attempts - 1:
                            delay = self._calculate_backoff_delay(attempt, retry_after_sec)
                            logger.warning(
                                f"Rate limited on {url}, attempt {attempt + 1}/{attempts}. "
                                f"Retrying in {delay:.1f}s"
                            )
                            await asyncio.sleep(delay)
                            continue
                        raise BinanceRateLimitError(retry_after_sec)

                    if response.status in self._config.retry_on_status:
                        text = await response.text()
                        if attempt < attempts - 1:
                            delay = self._calculate_backoff_delay(attempt)
                            logger.warning(
                                f"Retryable error {response.status} on {url}, "
                                f"attempt {attempt + 1}/{attempts}. Retrying in {delay:.1f}s"
                            )
                            await asyncio.sleep(delay)
                            continue
                        raise BinanceAPIError(response.status, text, text)

                    if response.status != 200:
                        text = await response.text()
                        raise BinanceAPIError(response.status, text, text)

                    try:
                        return await response.json()
                    except (ValueError, aiohttp.ContentTypeError):
                        raise InvalidResponseError(url)

            except asyncio.TimeoutError:
                last_error = BinanceTimeoutError(self._config.timeout_total)
                if attempt < attempts - 1:
                    delay = self._calculate_backoff_delay(attempt)
                    logger.warning(
                        f"Timeout on {url}, attempt {attempt + 1}/{attempts}. "
                        f"Retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise last_error

            except aiohttp.ClientError as e:
                last_error = BinanceConnectionError(e)
                if attempt < attempts - 1:
                    delay = self._calculate_backoff_delay(attempt)
                    logger.warning(
                        f"Connection error on {url}: {e}, "
                        f"attempt {attempt + 1}/{attempts}. Retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise last_error

        if last_error:
            raise last_error
        raise BinanceAPIError(0, "Unknown error after retries", "")

    # -------------------------------------------------------------------------
    # Public endpoints. Failures are logged and mapped to None / [].
    # -------------------------------------------------------------------------

    async def fetch_ticker(self, symbol: str, market: MarketType) -> Optional[Ticker24h]:
        """
        Fetch the 24h rolling ticker.

        Args:
            symbol: Trading pair (e.g., 'BTCUSDT')
            market: Spot or futures

        Returns:
            Ticker24h, or None on any failure
        """
        url = self._url(market, "ticker")
        try:
            data = await self._get(url, {"symbol": self._normalize_symbol(symbol)})
            ticker = parse_ticker(data)
            if ticker is None:
                raise InvalidResponseError(url)
            return ticker
        except (BinanceAPIError, ValueError, RuntimeError) as e:
            logger.warning(f"Failed to fetch 24h ticker for {symbol}: {e}")
            return None

    async def fetch_recent_trades(
        self, symbol: str, market: MarketType, limit: int = 100
    ) -> List[RawTrade]:
        """
        Fetch recent public trades, most recent first.

        Args:
            symbol: Trading pair (e.g., 'BTCUSDT')
            market: Spot or futures
            limit: Number of trades to request

        Returns:
            Valid trades (malformed entries filtered), or [] on any failure
        """
        url = self._url(market, "trades")
        params = {"symbol": self._normalize_symbol(symbol), "limit": limit}
        try:
            data = await self._get(url, params)
            if not isinstance(data, list):
                raise InvalidResponseError(url)
        except (BinanceAPIError, ValueError, RuntimeError) as e:
            logger.warning(f"Failed to fetch recent trades for {symbol}: {e}")
            return []

        trades = parse_trades(data)
        dropped = len(data) - len(trades)
        if dropped:
            logger.debug(f"Dropped {dropped} malformed trades for {symbol}")
        # Endpoint returns oldest first
        trades.reverse()
        return trades

    async def fetch_book_ticker(self, symbol: str, market: MarketType) -> Optional[BookTicker]:
        """
        Fetch the best bid/ask.

        Args:
            symbol: Trading pair (e.g., 'BTCUSDT')
            market: Spot or futures

        Returns:
            BookTicker, or None on any failure
        """
        url = self._url(market, "book")
        try:
            data = await self._get(url, {"symbol": self._normalize_symbol(symbol)})
            book = parse_book_ticker(data)
            if book is None:
                raise InvalidResponseError(url)
            return book
        except (BinanceAPIError, ValueError, RuntimeError) as e:
            logger.warning(f"Failed to fetch book ticker for {symbol}: {e}")
            return None
