"""
Domain value objects for the forecast engine.

Inputs (``TeamStats``, ``GameResult``) arrive sparse and in mixed scales;
outputs (``TeamAnalytics``, ``MatchupPrediction``) are immutable snapshots
recomputed per call and never persisted by this package.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from datetime import date
from typing import Any, ClassVar, Literal, Optional, Tuple, Union


def _finite_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class TeamStats:
    """
    Season aggregate for one team.

    Every numeric field is optional.  Shooting and Four Factors fields may be
    fractions (0.55) or percentages (55.0); consumers normalise them.
    NaN / inf values are dropped to ``None`` on construction.
    """

    name: str
    id: Optional[str] = None
    code: Optional[str] = None

    wins: Optional[float] = None
    losses: Optional[float] = None
    points_per_game: Optional[float] = None
    points_allowed_per_game: Optional[float] = None

    field_goal_pct: Optional[float] = None
    three_point_pct: Optional[float] = None
    free_throw_pct: Optional[float] = None
    rebounds_per_game: Optional[float] = None
    assists_per_game: Optional[float] = None
    turnovers_per_game: Optional[float] = None
    assist_turnover_ratio: Optional[float] = None

    # Four Factors
    effective_fg_pct: Optional[float] = None
    turnover_rate: Optional[float] = None
    offensive_rebound_rate: Optional[float] = None
    free_throw_rate: Optional[float] = None

    # Tempo-free ratings
    offensive_efficiency: Optional[float] = None
    defensive_efficiency: Optional[float] = None
    pace: Optional[float] = None

    _TEXT_FIELDS: ClassVar[frozenset] = frozenset({"name", "id", "code"})

    def __post_init__(self):
        for f in fields(self):
            if f.name in self._TEXT_FIELDS:
                continue
            setattr(self, f.name, _finite_or_none(getattr(self, f.name)))
        if not isinstance(self.name, str):
            self.name = "" if self.name is None else str(self.name)

    def has_four_factors(self) -> bool:
        return all(
            v is not None
            for v in (
                self.effective_fg_pct,
                self.turnover_rate,
                self.offensive_rebound_rate,
                self.free_throw_rate,
            )
        )


@dataclass(frozen=True)
class GameResult:
    """One completed game.  Lists of results are ordered most-recent-first."""

    home_team: str
    away_team: str
    home_score: float
    away_score: float
    winner: Optional[str] = None
    home_team_key: Optional[str] = None
    away_team_key: Optional[str] = None
    winner_key: Optional[str] = None
    game_id: Optional[str] = None
    date: Optional[date] = None

    def __post_init__(self):
        object.__setattr__(self, "home_score", _finite_or_none(self.home_score) or 0.0)
        object.__setattr__(self, "away_score", _finite_or_none(self.away_score) or 0.0)
        if self.winner is None:
            if self.home_score > self.away_score:
                object.__setattr__(self, "winner", self.home_team)
                object.__setattr__(self, "winner_key", self.winner_key or self.home_team_key)
            elif self.away_score > self.home_score:
                object.__setattr__(self, "winner", self.away_team)
                object.__setattr__(self, "winner_key", self.winner_key or self.away_team_key)

    @property
    def margin(self) -> float:
        """Home minus away."""
        return self.home_score - self.away_score

    @property
    def total(self) -> float:
        return self.home_score + self.away_score


# ---------------------------------------------------------------------------
# Team analytics
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WinLossRecord:
    wins: int = 0
    losses: int = 0


@dataclass(frozen=True)
class TeamAnalytics:
    """Per-team snapshot derived from stats and recent games."""

    team_name: str

    # Season ratings (explicit or derived from PPG / pace)
    season_offensive_efficiency: float
    season_defensive_efficiency: float

    # Final blended ratings consumed by the predictor
    offensive_efficiency: float
    defensive_efficiency: float

    # Schedule and tier adjustments
    strength_of_schedule: float
    sos_adjusted_offensive_efficiency: float
    sos_adjusted_defensive_efficiency: float
    tier_adjusted_offensive_efficiency: float
    tier_adjusted_defensive_efficiency: float

    # Form
    momentum: float = 0.0
    win_streak: int = 0
    recent_form: str = ""
    last5_record: WinLossRecord = field(default_factory=WinLossRecord)
    consistency: float = 50.0
    recent_offensive_efficiency: Optional[float] = None
    recent_defensive_efficiency: Optional[float] = None

    # Box-score composites
    shooting_efficiency: float = 50.0
    three_point_threat: float = 0.0
    free_throw_reliability: float = 0.0
    rebounding_advantage: float = 0.0
    assist_to_turnover_ratio: float = 1.0

    pace: float = 70.0
    home_advantage: float = 0.0
    is_home: bool = False
    sos_source: str = "none"
    games_analyzed: int = 0

    @property
    def net_rating(self) -> float:
        return self.offensive_efficiency - self.defensive_efficiency

    @property
    def season_net_rating(self) -> float:
        return self.season_offensive_efficiency - self.season_defensive_efficiency


# ---------------------------------------------------------------------------
# Prediction output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WinProbability:
    """Percentages; ``home + away == 100``."""

    home: float
    away: float


@dataclass(frozen=True)
class PredictedScore:
    home: int
    away: int


@dataclass(frozen=True)
class AlternateSpread:
    spread: float
    direction: Literal["buy", "sell"]
    team: str
    reason: str
    confidence: float
    risk_level: Literal["safer", "standard", "aggressive"]


@dataclass(frozen=True)
class ValueBet:
    bet_type: Literal["moneyline", "spread"]
    team: str
    edge: float
    model_value: float
    market_value: float
    confidence: float
    description: str


@dataclass(frozen=True)
class FourFactorsTrace:
    """Audit trail for a prediction scored on Four Factors box stats."""

    path: ClassVar[str] = "four_factors"

    factor_score: float
    tempo_adjustment: float
    home_advantage: float
    momentum_term: float
    four_factors_total: float
    efficiency_score: float
    override_applied: bool
    final_score: float
    raw_probability: float
    calibrated_probability: float
    calibration_applied: bool


@dataclass(frozen=True)
class FallbackTrace:
    """Audit trail for a prediction scored on ratings only."""

    path: ClassVar[str] = "fallback"

    net_rating_term: float
    matchup_term: float
    momentum_term: float
    home_term: float
    efficiency_score: float
    final_score: float
    raw_probability: float
    calibrated_probability: float
    calibration_applied: bool


PredictionTrace = Union[FourFactorsTrace, FallbackTrace]


@dataclass(frozen=True)
class MatchupPrediction:
    home_team: str
    away_team: str
    sport: str
    win_probability: WinProbability
    predicted_score: PredictedScore
    predicted_spread: float
    predicted_total: float
    alternate_spread: AlternateSpread
    confidence: float
    key_factors: Tuple[str, ...]
    trace: PredictionTrace
    value_bets: Tuple[ValueBet, ...] = ()
    simulation: Optional[Any] = None

    @property
    def favorite(self) -> str:
        if self.win_probability.home >= self.win_probability.away:
            return self.home_team
        return self.away_team

    def with_value_bets(self, value_bets) -> "MatchupPrediction":
        return replace(self, value_bets=tuple(value_bets))
