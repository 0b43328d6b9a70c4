"""
Prediction-vs-result validation metrics.

Used by the coefficient optimizer to score a backtest and by the Platt fit
to gather (probability, outcome) pairs.  Spreads here use the prediction
convention: positive = home margin.  Market spreads from The Odds API
(negative = home favoured) are negated before comparison.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 75.0
_LOG_EPS = 1e-7

CALIBRATION_BINS = (
    (48.0, 52.0, "~50%"),
    (52.0, 60.0, "52-60%"),
    (60.0, 70.0, "60-70%"),
    (70.0, 80.0, "70-80%"),
    (80.0, 90.0, "80-90%"),
    (90.0, 100.0, "90-100%"),
)


@dataclass(frozen=True)
class GameValidation:
    home_team: str
    away_team: str
    predicted_home_score: float
    predicted_away_score: float
    actual_home_score: float
    actual_away_score: float
    predicted_spread: float
    actual_spread: float
    home_win_prob: float          # percent
    actual_winner: str            # "home" | "away"
    confidence: Optional[float] = None
    market_spread: Optional[float] = None
    game_id: Optional[str] = None

    @property
    def home_score_error(self) -> float:
        return abs(self.predicted_home_score - self.actual_home_score)

    @property
    def away_score_error(self) -> float:
        return abs(self.predicted_away_score - self.actual_away_score)

    @property
    def spread_error(self) -> float:
        return abs(self.predicted_spread - self.actual_spread)

    @property
    def total_error(self) -> float:
        return self.home_score_error + self.away_score_error

    @property
    def predicted_winner(self) -> str:
        return "home" if self.predicted_spread > 0 else "away"

    @property
    def winner_correct(self) -> bool:
        return self.predicted_winner == self.actual_winner


@dataclass(frozen=True)
class CalibrationBin:
    bucket: str
    predicted: float
    actual: float
    count: int


@dataclass(frozen=True)
class ValidationMetrics:
    game_count: int = 0
    mae_home: float = 0.0
    mae_away: float = 0.0
    mae_spread: float = 0.0
    mae_total: float = 0.0
    rmse_home: float = 0.0
    rmse_away: float = 0.0
    rmse_spread: float = 0.0
    winner_accuracy: float = 0.0
    spread_within_3: float = 0.0
    spread_within_5: float = 0.0
    high_confidence_accuracy: Optional[float] = None
    high_confidence_count: int = 0
    ats_wins: int = 0
    ats_losses: int = 0
    ats_pushes: int = 0
    brier_score: float = 0.0
    log_loss: float = 0.0
    expected_calibration_error: float = 0.0
    calibration_bins: List[CalibrationBin] = field(default_factory=list)

    @property
    def ats_record(self) -> str:
        return f"{self.ats_wins}-{self.ats_losses}-{self.ats_pushes}"

    @property
    def ats_win_rate(self) -> float:
        decided = self.ats_wins + self.ats_losses
        return self.ats_wins / decided * 100.0 if decided else 0.0


def validate_game_prediction(
    prediction,
    actual_home_score: float,
    actual_away_score: float,
    market_spread: Optional[float] = None,
    game_id: Optional[str] = None,
) -> GameValidation:
    """Compare a :class:`~matchup_forecast.models.MatchupPrediction` with a final score."""
    actual_spread = actual_home_score - actual_away_score
    return GameValidation(
        home_team=prediction.home_team,
        away_team=prediction.away_team,
        predicted_home_score=prediction.predicted_score.home,
        predicted_away_score=prediction.predicted_score.away,
        actual_home_score=actual_home_score,
        actual_away_score=actual_away_score,
        predicted_spread=prediction.predicted_spread,
        actual_spread=actual_spread,
        home_win_prob=prediction.win_probability.home,
        actual_winner="home" if actual_home_score > actual_away_score else "away",
        confidence=prediction.confidence,
        market_spread=market_spread,
        game_id=game_id,
    )


def _ats_result(v: GameValidation) -> int:
    """+1 covered, -1 lost, 0 push, for the side the prediction favours."""
    line = -v.market_spread if v.market_spread is not None else v.predicted_spread
    if v.predicted_spread > 0:
        cover = v.actual_spread - line
    else:
        cover = line - v.actual_spread
    if cover > 0:
        return 1
    if cover < 0:
        return -1
    return 0


def calculate_validation_metrics(validations: Sequence[GameValidation]) -> ValidationMetrics:
    n = len(validations)
    if n == 0:
        return ValidationMetrics()

    home_err = np.array([v.home_score_error for v in validations], dtype=float)
    away_err = np.array([v.away_score_error for v in validations], dtype=float)
    spread_err = np.array([v.spread_error for v in validations], dtype=float)
    total_err = home_err + away_err

    correct = sum(1 for v in validations if v.winner_correct)

    high_conf = [
        v for v in validations
        if v.confidence is not None and v.confidence > HIGH_CONFIDENCE_THRESHOLD
    ]
    high_conf_acc = None
    if high_conf:
        high_conf_acc = sum(1 for v in high_conf if v.winner_correct) / len(high_conf) * 100.0

    ats = [_ats_result(v) for v in validations]

    probs = np.array([v.home_win_prob / 100.0 for v in validations], dtype=float)
    outcomes = np.array([1.0 if v.actual_winner == "home" else 0.0 for v in validations])
    brier = float(np.mean((probs - outcomes) ** 2))
    clipped = np.clip(probs, _LOG_EPS, 1.0 - _LOG_EPS)
    ll = float(-np.mean(outcomes * np.log(clipped) + (1.0 - outcomes) * np.log(1.0 - clipped)))

    bins: List[CalibrationBin] = []
    for lo, hi, label in CALIBRATION_BINS:
        in_bin = [v for v in validations if lo <= v.home_win_prob < hi]
        if not in_bin:
            continue
        home_wins = sum(1 for v in in_bin if v.actual_winner == "home")
        bins.append(CalibrationBin(label, (lo + hi) / 2.0, home_wins / len(in_bin) * 100.0, len(in_bin)))
    ece = sum(abs(b.predicted - b.actual) / 100.0 * (b.count / n) for b in bins)

    return ValidationMetrics(
        game_count=n,
        mae_home=float(home_err.mean()),
        mae_away=float(away_err.mean()),
        mae_spread=float(spread_err.mean()),
        mae_total=float(total_err.mean()),
        rmse_home=math.sqrt(float(np.mean(home_err ** 2))),
        rmse_away=math.sqrt(float(np.mean(away_err ** 2))),
        rmse_spread=math.sqrt(float(np.mean(spread_err ** 2))),
        winner_accuracy=correct / n * 100.0,
        spread_within_3=float(np.mean(spread_err <= 3.0)) * 100.0,
        spread_within_5=float(np.mean(spread_err <= 5.0)) * 100.0,
        high_confidence_accuracy=high_conf_acc,
        high_confidence_count=len(high_conf),
        ats_wins=ats.count(1),
        ats_losses=ats.count(-1),
        ats_pushes=ats.count(0),
        brier_score=brier,
        log_loss=ll,
        expected_calibration_error=ece,
        calibration_bins=bins,
    )
