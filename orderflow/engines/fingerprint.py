"""
Change fingerprint for poll results.

Only the fields that matter to consumers take part, compared as the raw
strings the exchange returned. Differences past the 5 newest trades do not
count as a change.
"""

from dataclasses import dataclass
from typing import Optional

from ..continuous.data_types import OrderFlowData

FINGERPRINT_TRADE_COUNT = 5


@dataclass(frozen=True)
class OrderFlowFingerprint:
    ticker_last_price: str
    ticker_price_change_percent: str
    book_bid: str
    book_ask: str
    latest_trade_ids: str  # Comma-joined ids of the newest trades


def _or_zero(value: Optional[str]) -> str:
    return value if value else "0"


def generate_fingerprint(data: Optional[OrderFlowData]) -> Optional[OrderFlowFingerprint]:
    """Fingerprint a poll result; None when there is no result at all."""
    if data is None:
        return None

    ticker = data.ticker
    book = data.book
    trade_ids = ",".join(str(t.id) for t in data.trades[:FINGERPRINT_TRADE_COUNT])

    return OrderFlowFingerprint(
        ticker_last_price=_or_zero(ticker.last_price if ticker else None),
        ticker_price_change_percent=_or_zero(ticker.price_change_percent if ticker else None),
        book_bid=_or_zero(book.bid_price if book else None),
        book_ask=_or_zero(book.ask_price if book else None),
        latest_trade_ids=trade_ids,
    )


def fingerprints_equal(
    a: Optional[OrderFlowFingerprint],
    b: Optional[OrderFlowFingerprint],
) -> bool:
    """True only if both exist and all fields match exactly."""
    if a is None or b is None:
        return False
    return a == b
