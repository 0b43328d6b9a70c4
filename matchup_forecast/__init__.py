"""Matchup forecast engine.

Raw team stats and recent results go in; calibrated win probabilities,
projected scores, alternate spreads and value bets come out.  The same
pipeline is re-run offline to tune coefficients, and a line-movement
monitor decides when a stored prediction should be regenerated.
"""

from matchup_forecast.models import GameResult, MatchupPrediction, TeamAnalytics, TeamStats
from matchup_forecast.schemas import (
    DEFAULT_COEFFICIENTS,
    CalibrationCoefficients,
    LineMovementThresholds,
    RecalibrationParams,
)
from matchup_forecast.services.coefficient_optimizer import (
    compare_coefficients,
    optimize_coefficients,
    validate_coefficients,
)
from matchup_forecast.services.matchup_predictor import identify_value_bets, predict_matchup
from matchup_forecast.services.odds_monitor import (
    LineMovementMonitor,
    analyze_line_movement,
    repredict_movements,
)
from matchup_forecast.services.recalibration import calibrate, fit_platt_scaling
from matchup_forecast.services.team_analytics import compute_team_analytics

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_COEFFICIENTS",
    "CalibrationCoefficients",
    "GameResult",
    "LineMovementMonitor",
    "LineMovementThresholds",
    "MatchupPrediction",
    "RecalibrationParams",
    "TeamAnalytics",
    "TeamStats",
    "analyze_line_movement",
    "calibrate",
    "compare_coefficients",
    "compute_team_analytics",
    "fit_platt_scaling",
    "identify_value_bets",
    "optimize_coefficients",
    "predict_matchup",
    "repredict_movements",
    "validate_coefficients",
]
