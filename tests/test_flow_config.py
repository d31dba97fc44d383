"""
Tests for threshold validation and persistence.
"""

import json

from orderflow.engines.flow_config import (
    AlertThresholds,
    ConfluenceThresholds,
    FlowThresholds,
    ThresholdSet,
    load_thresholds,
    safe_divide,
    save_thresholds,
    validate_alert_thresholds,
    validate_confluence_thresholds,
    validate_flow_thresholds,
    validate_threshold_set,
)


class TestDefaults:
    """Tests for default threshold values."""

    def test_flow_defaults(self):
        flow = FlowThresholds()
        assert flow.large_trade_notional == 100_000
        assert flow.rolling_window_trades == 50
        assert flow.rolling_window_minutes == 5

    def test_confluence_defaults(self):
        confluence = ConfluenceThresholds()
        assert confluence.min_imbalance_percent == 30
        assert confluence.min_spread_change_percent == 10
        assert confluence.detection_window_ms == 60_000

    def test_alert_defaults(self):
        alerts = AlertThresholds()
        assert alerts.volume_spike_multiplier == 2.5
        assert alerts.price_change_percent == 1.5
        assert alerts.spread_anomaly_multiplier == 2.0
        assert alerts.enabled is True


class TestValidation:
    """Tests for boundary validation."""

    def test_valid_values_kept(self):
        flow = validate_flow_thresholds(
            {"large_trade_notional": 50_000, "rolling_window_trades": 20, "rolling_window_minutes": 2}
        )
        assert flow == FlowThresholds(50_000.0, 20, 2.0)

    def test_non_positive_falls_back(self):
        """Zero and negative values use the defaults."""
        confluence = validate_confluence_thresholds(
            {"min_imbalance_percent": 0, "min_spread_change_percent": -5, "detection_window_ms": 1000}
        )
        assert confluence.min_imbalance_percent == 30
        assert confluence.min_spread_change_percent == 10
        assert confluence.detection_window_ms == 1000

    def test_wrong_types_fall_back(self):
        """Strings, None and booleans are rejected field by field."""
        alerts = validate_alert_thresholds(
            {
                "volume_spike_multiplier": "3",
                "price_change_percent": True,
                "spread_anomaly_multiplier": None,
                "enabled": "no",
            }
        )
        assert alerts == AlertThresholds()

    def test_non_finite_falls_back(self):
        """Infinity and NaN never reach the engines."""
        flow = validate_flow_thresholds(
            {"large_trade_notional": float("inf"), "rolling_window_trades": float("inf")}
        )
        alerts = validate_alert_thresholds({"volume_spike_multiplier": float("nan")})

        assert flow == FlowThresholds()
        assert alerts.volume_spike_multiplier == 2.5

    def test_fractional_count_falls_back(self):
        """A count that truncates to zero would leave the window empty."""
        flow = validate_flow_thresholds({"rolling_window_trades": 0.5})
        confluence = validate_confluence_thresholds({"detection_window_ms": 0.9})

        assert flow.rolling_window_trades == 50
        assert confluence.detection_window_ms == 60_000

    def test_enabled_flag(self):
        assert validate_alert_thresholds({"enabled": False}).enabled is False

    def test_non_dict_gives_defaults(self):
        assert validate_flow_thresholds(None) == FlowThresholds()
        assert validate_confluence_thresholds([1, 2]) == ConfluenceThresholds()
        assert validate_threshold_set("bad") == ThresholdSet()

    def test_threshold_set(self):
        result = validate_threshold_set(
            {"flow": {"large_trade_notional": 250_000}, "alerts": {"enabled": False}}
        )
        assert result.flow.large_trade_notional == 250_000
        assert result.confluence == ConfluenceThresholds()
        assert result.alerts.enabled is False

    def test_safe_divide(self):
        assert safe_divide(1.0, 0.0) == 0.0
        assert safe_divide(1.0, 0.0, default=-1.0) == -1.0
        assert safe_divide(3.0, 2.0) == 1.5


class TestPersistence:
    """Tests for JSON threshold persistence."""

    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "thresholds.json"
        thresholds = ThresholdSet(
            flow=FlowThresholds(large_trade_notional=42_000.0),
            alerts=AlertThresholds(enabled=False),
        )

        assert save_thresholds(thresholds, str(path)) is True
        assert load_thresholds(str(path)) == thresholds

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_thresholds(str(tmp_path / "absent.json")) == ThresholdSet()

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "thresholds.json"
        path.write_text("{not json", encoding="utf-8")

        assert load_thresholds(str(path)) == ThresholdSet()

    def test_partially_invalid_file(self, tmp_path):
        """Bad fields in a stored file are defaulted, good ones kept."""
        path = tmp_path / "thresholds.json"
        path.write_text(
            json.dumps({"flow": {"large_trade_notional": -1, "rolling_window_trades": 10}}),
            encoding="utf-8",
        )

        flow = load_thresholds(str(path)).flow
        assert flow.large_trade_notional == 100_000
        assert flow.rolling_window_trades == 10

    def test_infinity_in_file_gives_defaults(self, tmp_path):
        """JSON's Infinity literal is rejected rather than crashing the load."""
        path = tmp_path / "thresholds.json"
        path.write_text('{"flow": {"rolling_window_trades": Infinity}}', encoding="utf-8")

        assert load_thresholds(str(path)).flow.rolling_window_trades == 50

    def test_save_failure_returns_false(self, tmp_path):
        """Writing into a path whose parent is a file fails softly."""
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")

        assert save_thresholds(ThresholdSet(), str(blocker / "thresholds.json")) is False
