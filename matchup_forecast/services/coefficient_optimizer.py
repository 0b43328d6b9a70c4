"""
Offline coefficient tuning against historical games.

A brute-force grid over three coefficients:

    recent_form_weight               0.40 .. 0.80  step 0.10  (season = 1 - rf)
    sos_adjustment_factor            0.20 .. 0.40  step 0.05
    base_defensive_adjustment_factor 0.08 .. 0.16  step 0.02

For each grid point the full analytics -> prediction pipeline is re-run
over every sampled game and scored by mean absolute total-score error.
Defaults are scored first and only a strictly lower MAE replaces them.

This is a batch job (125 trials x games), never called on the request path.
It sits behind :class:`CoefficientSearch` so another search strategy can be
dropped in without touching callers.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from matchup_forecast.config import load_optimizer_sample_size
from matchup_forecast.models import GameResult, MatchupPrediction, TeamStats
from matchup_forecast.schemas import DEFAULT_COEFFICIENTS, CalibrationCoefficients
from matchup_forecast.services.matchup_predictor import MatchupPredictor
from matchup_forecast.services.schedule_strength import OpponentRatingCache
from matchup_forecast.services.team_analytics import TeamAnalyticsCalculator
from matchup_forecast.services.validation import (
    GameValidation,
    ValidationMetrics,
    calculate_validation_metrics,
    validate_game_prediction,
)

logger = logging.getLogger(__name__)

MAX_RECENT_GAMES = 20


# ---------------------------------------------------------------------------
# Historical dataset
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HistoricalGame:
    game_id: str
    date: Optional[date]
    season: int
    home_team: str
    away_team: str
    home_team_id: str
    away_team_id: str
    home_score: float
    away_score: float
    market_spread: Optional[float] = None

    def to_result(self) -> GameResult:
        return GameResult(
            home_team=self.home_team,
            away_team=self.away_team,
            home_score=self.home_score,
            away_score=self.away_score,
            home_team_key=str(self.home_team_id),
            away_team_key=str(self.away_team_id),
            game_id=str(self.game_id),
            date=self.date,
        )


@dataclass(frozen=True)
class HistoricalTeamStats:
    team_id: str
    team_name: str
    season: int
    stats: TeamStats
    recent_games: Tuple[GameResult, ...] = ()


@dataclass
class HistoricalDataSet:
    games: List[HistoricalGame] = field(default_factory=list)
    team_stats: List[HistoricalTeamStats] = field(default_factory=list)
    seasons: List[int] = field(default_factory=list)
    collected_at: Optional[datetime] = None

    def __post_init__(self):
        self._stats_index: Dict[str, HistoricalTeamStats] = {}
        self._indexed_for = None

    def _index(self) -> Dict[str, HistoricalTeamStats]:
        # rebuilt when team_stats is appended to or reassigned
        marker = (id(self.team_stats), len(self.team_stats))
        if self._indexed_for != marker:
            self._stats_index = {_stats_key(ts.team_id, ts.season): ts for ts in self.team_stats}
            self._indexed_for = marker
        return self._stats_index

    def stats_for(self, team_id, season) -> Optional[HistoricalTeamStats]:
        return self._index().get(_stats_key(team_id, season))

    def prior_games(self, team_id, before: Optional[date], limit: int = MAX_RECENT_GAMES) -> List[GameResult]:
        """Games involving ``team_id`` strictly before ``before``, most recent first."""
        if before is None:
            return []
        cutoff = _as_datetime(before)
        team_id = str(team_id)
        prior = [
            g for g in self.games
            if g.date is not None
            and _as_datetime(g.date) < cutoff
            and team_id in (str(g.home_team_id), str(g.away_team_id))
        ]
        prior.sort(key=lambda g: _as_datetime(g.date), reverse=True)
        return [g.to_result() for g in prior[:limit]]


def _stats_key(team_id, season) -> str:
    return f"{team_id}-{season}"


def _as_datetime(value) -> datetime:
    if value is None:
        return datetime.min
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime.combine(value, time.min)


def sample_games(dataset: HistoricalDataSet, sample_size: int) -> List[HistoricalGame]:
    """Most recent ``sample_size`` games by date."""
    ordered = sorted(dataset.games, key=lambda g: _as_datetime(g.date), reverse=True)
    return ordered[:max(0, sample_size)]


# ---------------------------------------------------------------------------
# Backtest
# ---------------------------------------------------------------------------

def predict_historical_game(
    game: HistoricalGame,
    dataset: HistoricalDataSet,
    coefficients: CalibrationCoefficients,
    sport=None,
    rating_cache: Optional[OpponentRatingCache] = None,
) -> Optional[MatchupPrediction]:
    """Run the full pipeline for one historical game; None when stats are missing."""
    home_ts = dataset.stats_for(game.home_team_id, game.season)
    away_ts = dataset.stats_for(game.away_team_id, game.season)
    if home_ts is None or away_ts is None:
        return None

    home_recent = dataset.prior_games(game.home_team_id, game.date) or list(home_ts.recent_games)
    away_recent = dataset.prior_games(game.away_team_id, game.date) or list(away_ts.recent_games)

    calculator = TeamAnalyticsCalculator(sport, coefficients, rating_cache)
    home = calculator.compute(home_ts.stats, home_recent, is_home=True)
    away = calculator.compute(away_ts.stats, away_recent, is_home=False)
    return MatchupPredictor(sport, coefficients).predict(away, home, away_ts.stats, home_ts.stats)


def backtest(
    coefficients: CalibrationCoefficients,
    games: Sequence[HistoricalGame],
    dataset: HistoricalDataSet,
    sport=None,
    rating_cache: Optional[OpponentRatingCache] = None,
) -> List[GameValidation]:
    validations: List[GameValidation] = []
    for game in games:
        try:
            prediction = predict_historical_game(game, dataset, coefficients, sport, rating_cache)
        except Exception as exc:
            logger.warning("Error processing game %s: %s", game.game_id, exc)
            continue
        if prediction is None:
            logger.debug("Skipping game %s: missing team stats", game.game_id)
            continue
        validations.append(validate_game_prediction(
            prediction, game.home_score, game.away_score, game.market_spread, game.game_id
        ))
    return validations


def validate_coefficients(
    coefficients: CalibrationCoefficients,
    dataset: HistoricalDataSet,
    sample_size: int = 100,
    sport=None,
) -> ValidationMetrics:
    games = sample_games(dataset, sample_size)
    return calculate_validation_metrics(backtest(coefficients, games, dataset, sport))


@dataclass(frozen=True)
class CoefficientComparison:
    first: ValidationMetrics
    second: ValidationMetrics
    mae_improvement: float                # first MAE - second MAE; > 0 means second is better
    winner_accuracy_improvement: float    # second - first, percentage points

    @property
    def better(self) -> str:
        if self.mae_improvement > 0:
            return "second"
        if self.mae_improvement < 0:
            return "first"
        return "tie"


def compare_coefficients(
    first: CalibrationCoefficients,
    second: CalibrationCoefficients,
    dataset: HistoricalDataSet,
    sample_size: int = 100,
    sport=None,
) -> CoefficientComparison:
    m1 = validate_coefficients(first, dataset, sample_size, sport)
    m2 = validate_coefficients(second, dataset, sample_size, sport)
    return CoefficientComparison(
        first=m1,
        second=m2,
        mae_improvement=m1.mae_total - m2.mae_total,
        winner_accuracy_improvement=m2.winner_accuracy - m1.winner_accuracy,
    )


# ---------------------------------------------------------------------------
# Search strategies
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OptimizationResult:
    coefficients: CalibrationCoefficients
    best_mae: float
    default_mae: float
    trials: int
    games_used: int

    @property
    def improvement(self) -> float:
        return self.default_mae - self.best_mae


class CoefficientSearch(ABC):
    """Batch-job contract: dataset in, best coefficient set out."""

    @abstractmethod
    def search(
        self,
        dataset: HistoricalDataSet,
        sample_size: int = 100,
        base: CalibrationCoefficients = DEFAULT_COEFFICIENTS,
    ) -> OptimizationResult:
        ...


class GridSearchOptimizer(CoefficientSearch):
    RECENT_FORM_GRID = np.round(np.arange(0.4, 0.8 + 1e-9, 0.1), 2)
    SOS_GRID = np.round(np.arange(0.2, 0.4 + 1e-9, 0.05), 2)
    DEFENSE_GRID = np.round(np.arange(0.08, 0.16 + 1e-9, 0.02), 2)

    def __init__(self, sport=None, rating_cache: Optional[OpponentRatingCache] = None):
        self.sport = sport
        self.rating_cache = rating_cache

    def grid(self, base: CalibrationCoefficients) -> List[CalibrationCoefficients]:
        points = []
        for rf in self.RECENT_FORM_GRID:
            for sos in self.SOS_GRID:
                for dfn in self.DEFENSE_GRID:
                    points.append(base.with_overrides(
                        recent_form_weight=float(rf),
                        season_avg_weight=round(1.0 - float(rf), 2),
                        sos_adjustment_factor=float(sos),
                        base_defensive_adjustment_factor=float(dfn),
                        version=f"grid-rf{rf:.2f}-sos{sos:.2f}-def{dfn:.2f}",
                    ))
        return points

    def _mae(self, coefficients, games, dataset) -> Tuple[float, int]:
        validations = backtest(coefficients, games, dataset, self.sport, self.rating_cache)
        if not validations:
            return float("inf"), 0
        return calculate_validation_metrics(validations).mae_total, len(validations)

    def search(
        self,
        dataset: HistoricalDataSet,
        sample_size: int = 100,
        base: CalibrationCoefficients = DEFAULT_COEFFICIENTS,
    ) -> OptimizationResult:
        games = sample_games(dataset, sample_size)
        if not games:
            logger.warning("No games available for optimization")
            return OptimizationResult(base, float("inf"), float("inf"), 0, 0)

        if not base.pairs_balanced():
            logger.debug("Base coefficients %s have unbalanced weight pairs", base.version)

        default_mae, used = self._mae(base, games, dataset)
        logger.info("Optimizing over %d games; default MAE %.2f", used, default_mae)

        best, best_mae, trials = base, default_mae, 0
        for candidate in self.grid(base):
            trials += 1
            mae, _ = self._mae(candidate, games, dataset)
            if mae < best_mae:
                best, best_mae = candidate, mae

        logger.info(
            "Grid search done: %d trials, best MAE %.2f (improvement %.2f) -> %s",
            trials, best_mae, default_mae - best_mae, best.version,
        )
        return OptimizationResult(best, best_mae, default_mae, trials, used)


def optimize_coefficients(
    dataset: HistoricalDataSet,
    sample_size: Optional[int] = None,
    sport=None,
    search: Optional[CoefficientSearch] = None,
) -> CalibrationCoefficients:
    """
    Best coefficient set for ``dataset``; defaults when it is empty.

    ``sample_size`` falls back to OPTIMIZER_SAMPLE_SIZE.
    """
    if sample_size is None:
        sample_size = load_optimizer_sample_size()
    search = search or GridSearchOptimizer(sport)
    return search.search(dataset, sample_size).coefficients
