"""Tests for prediction-vs-result validation metrics."""

import pytest

from matchup_forecast.models import (
    AlternateSpread,
    FallbackTrace,
    MatchupPrediction,
    PredictedScore,
    WinProbability,
)
from matchup_forecast.services.validation import (
    GameValidation,
    calculate_validation_metrics,
    validate_game_prediction,
)


def _prediction(home=75, away=70, home_pct=70.0, confidence=80.0):
    return MatchupPrediction(
        home_team="Duke",
        away_team="Navy",
        sport="cbb",
        win_probability=WinProbability(home_pct, 100.0 - home_pct),
        predicted_score=PredictedScore(home, away),
        predicted_spread=float(home - away),
        predicted_total=float(home + away),
        alternate_spread=AlternateSpread(3.5, "sell", "Navy", "", 70.0, "safer"),
        confidence=confidence,
        key_factors=(),
        trace=FallbackTrace(0, 0, 0, 0, 0, 0, 0.7, 0.7, False),
    )


class TestValidateGame:
    def test_errors(self):
        v = validate_game_prediction(_prediction(), 80, 70)
        assert v.home_score_error == 5
        assert v.away_score_error == 0
        assert v.total_error == 5
        assert v.actual_spread == 10
        assert v.spread_error == 5
        assert v.actual_winner == "home"
        assert v.winner_correct

    def test_wrong_winner(self):
        v = validate_game_prediction(_prediction(), 65, 72, game_id="g1")
        assert v.actual_winner == "away"
        assert not v.winner_correct
        assert v.game_id == "g1"


class TestMetrics:
    def test_empty(self):
        m = calculate_validation_metrics([])
        assert m.game_count == 0
        assert m.mae_total == 0.0
        assert m.ats_record == "0-0-0"
        assert m.ats_win_rate == 0.0

    def test_aggregate(self):
        validations = [
            validate_game_prediction(_prediction(), 80, 70, market_spread=-3.0),   # covers 3
            validate_game_prediction(_prediction(), 73, 70, market_spread=-3.0),   # push
            validate_game_prediction(_prediction(), 60, 70, market_spread=-3.0),   # loses
        ]
        m = calculate_validation_metrics(validations)
        assert m.game_count == 3
        assert m.mae_home == pytest.approx((5 + 2 + 15) / 3)
        assert m.mae_away == pytest.approx(0.0)
        assert m.mae_total == pytest.approx((5 + 2 + 15) / 3)
        assert m.winner_accuracy == pytest.approx(200.0 / 3)
        assert (m.ats_wins, m.ats_losses, m.ats_pushes) == (1, 1, 1)
        assert m.ats_record == "1-1-1"
        assert m.ats_win_rate == pytest.approx(50.0)
        assert m.spread_within_3 == pytest.approx(100.0 / 3)
        assert m.spread_within_5 == pytest.approx(200.0 / 3)

    def test_ats_without_market_uses_prediction(self):
        v = validate_game_prediction(_prediction(), 77, 70)
        m = calculate_validation_metrics([v])
        assert m.ats_wins == 1

    def test_high_confidence_bucket(self):
        validations = [
            validate_game_prediction(_prediction(confidence=80.0), 80, 70),
            validate_game_prediction(_prediction(confidence=70.0), 60, 70),
        ]
        m = calculate_validation_metrics(validations)
        assert m.high_confidence_count == 1
        assert m.high_confidence_accuracy == pytest.approx(100.0)

    def test_probability_scores(self):
        v = validate_game_prediction(_prediction(home_pct=70.0), 80, 70)
        m = calculate_validation_metrics([v])
        assert m.brier_score == pytest.approx(0.09)
        assert m.calibration_bins[0].bucket == "70-80%"
        assert m.calibration_bins[0].actual == pytest.approx(100.0)
        assert m.expected_calibration_error == pytest.approx(0.25)

    def test_direct_records(self):
        v = GameValidation("A", "B", 70, 60, 70, 60, 10.0, 10.0, 80.0, "home")
        m = calculate_validation_metrics([v])
        assert m.mae_spread == 0.0
        assert m.rmse_spread == 0.0
        assert m.high_confidence_accuracy is None
