"""
Tests for the change fingerprint gate.
"""

from conftest import make_book, make_ticker, make_trades
from orderflow.continuous.data_types import OrderFlowData
from orderflow.engines.fingerprint import fingerprints_equal, generate_fingerprint


def _data(trades=None, ticker=None, book=None) -> OrderFlowData:
    return OrderFlowData(
        ticker=ticker if ticker is not None else make_ticker(),
        trades=tuple(trades if trades is not None else make_trades(10)),
        book=book if book is not None else make_book(),
    )


class TestFingerprint:
    """Tests for fingerprint generation and comparison."""

    def test_fields_from_raw_strings(self):
        """Fields are the raw exchange strings and the 5 newest trade ids."""
        fp = generate_fingerprint(_data(trades=make_trades(10, start_id=1)))

        assert fp.ticker_last_price == "100.5"
        assert fp.ticker_price_change_percent == "1.25"
        assert fp.book_bid == "100.0"
        assert fp.book_ask == "101.0"
        assert fp.latest_trade_ids == "10,9,8,7,6"

    def test_missing_parts_become_zero(self):
        """Absent ticker or book fields fingerprint as '0'."""
        fp = generate_fingerprint(OrderFlowData(trades=tuple(make_trades(2, start_id=1))))

        assert fp.ticker_last_price == "0"
        assert fp.ticker_price_change_percent == "0"
        assert fp.book_bid == "0"
        assert fp.book_ask == "0"
        assert fp.latest_trade_ids == "2,1"

    def test_none_data(self):
        assert generate_fingerprint(None) is None

    def test_equal_for_identical_data(self):
        assert fingerprints_equal(generate_fingerprint(_data()), generate_fingerprint(_data()))

    def test_differences_past_fifth_trade_ignored(self):
        """Trades #6 and beyond do not affect equality."""
        base = make_trades(10, start_id=1)
        altered = base[:5] + make_trades(5, start_id=500)

        assert fingerprints_equal(
            generate_fingerprint(_data(trades=base)),
            generate_fingerprint(_data(trades=altered)),
        )

    def test_new_trade_changes_fingerprint(self):
        """A new most-recent trade is a change."""
        assert not fingerprints_equal(
            generate_fingerprint(_data(trades=make_trades(10, start_id=1))),
            generate_fingerprint(_data(trades=make_trades(10, start_id=2))),
        )

    def test_string_not_numeric_equality(self):
        """'100.0' and '100.00' are different fingerprints."""
        assert not fingerprints_equal(
            generate_fingerprint(_data(book=make_book(bid="100.0"))),
            generate_fingerprint(_data(book=make_book(bid="100.00"))),
        )

    def test_ticker_change(self):
        assert not fingerprints_equal(
            generate_fingerprint(_data(ticker=make_ticker(change_percent="1.25"))),
            generate_fingerprint(_data(ticker=make_ticker(change_percent="1.26"))),
        )

    def test_none_never_equal(self):
        """Missing fingerprints are never equal, not even to each other."""
        fp = generate_fingerprint(_data())

        assert not fingerprints_equal(None, fp)
        assert not fingerprints_equal(fp, None)
        assert not fingerprints_equal(None, None)
