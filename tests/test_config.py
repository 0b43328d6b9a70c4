"""
Environment-driven settings.
"""

import logging

import pytest
from pydantic import ValidationError

from matchup_forecast import config
from matchup_forecast.schemas import LineMovementThresholds, RecalibrationParams


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "RECALIBRATION_A",
        "RECALIBRATION_B",
        "LINE_MOVE_SPREAD_THRESHOLD",
        "LINE_MOVE_TOTAL_THRESHOLD",
        "LINE_MOVE_ML_THRESHOLD",
        "LINE_MOVE_HOURS_BEFORE_GAME",
        "LINE_MOVE_MIN_MINUTES_BEFORE_GAME",
        "LINE_MOVE_MAX_REPREDICTIONS",
        "LINE_MOVE_COOLDOWN_MINUTES",
        "MONITOR_SPORTS",
        "OPTIMIZER_SAMPLE_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)


class TestRecalibrationParams:
    def test_identity_by_default(self):
        params = config.load_recalibration_params()
        assert params == RecalibrationParams(a=1.0, b=0.0)
        assert params.is_identity

    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("RECALIBRATION_A", "0.85")
        monkeypatch.setenv("RECALIBRATION_B", "-0.1")
        params = config.load_recalibration_params()
        assert params.a == pytest.approx(0.85)
        assert params.b == pytest.approx(-0.1)

    def test_malformed_value_falls_back(self, monkeypatch, caplog):
        monkeypatch.setenv("RECALIBRATION_A", "not-a-number")
        with caplog.at_level(logging.WARNING, logger="matchup_forecast.config"):
            params = config.load_recalibration_params()
        assert params.a == 1.0
        assert "RECALIBRATION_A" in caplog.text

    def test_blank_value_is_default(self, monkeypatch):
        monkeypatch.setenv("RECALIBRATION_B", "  ")
        assert config.load_recalibration_params().b == 0.0


class TestLineMovementThresholds:
    def test_defaults(self):
        assert config.load_line_movement_thresholds() == LineMovementThresholds()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("LINE_MOVE_SPREAD_THRESHOLD", "1.5")
        monkeypatch.setenv("LINE_MOVE_MAX_REPREDICTIONS", "5")
        monkeypatch.setenv("LINE_MOVE_COOLDOWN_MINUTES", "15")
        t = config.load_line_movement_thresholds()
        assert t.spread_threshold == 1.5
        assert t.max_repredictions_per_game == 5
        assert t.reprediction_cooldown_minutes == 15.0
        assert t.total_threshold == 5.0

    def test_negative_threshold_rejected(self, monkeypatch):
        monkeypatch.setenv("LINE_MOVE_TOTAL_THRESHOLD", "-2")
        with pytest.raises(ValidationError):
            config.load_line_movement_thresholds()


def test_monitor_sports_default():
    assert config.load_monitor_sports() == list(config.DEFAULT_MONITOR_SPORTS)


def test_monitor_sports_from_env(monkeypatch):
    monkeypatch.setenv("MONITOR_SPORTS", "basketball_ncaab, icehockey_nhl,,")
    assert config.load_monitor_sports() == ["basketball_ncaab", "icehockey_nhl"]


def test_optimizer_sample_size(monkeypatch):
    assert config.load_optimizer_sample_size() == 100
    monkeypatch.setenv("OPTIMIZER_SAMPLE_SIZE", "0")
    assert config.load_optimizer_sample_size() == 1
    monkeypatch.setenv("OPTIMIZER_SAMPLE_SIZE", "250")
    assert config.load_optimizer_sample_size() == 250


def test_configure_logging_uses_level(monkeypatch):
    calls = []
    monkeypatch.setattr(config.logging, "basicConfig", lambda **kw: calls.append(kw))
    config.configure_logging("debug")
    assert calls[0]["level"] == logging.DEBUG
    assert calls[0]["format"] == config.LOG_FORMAT
