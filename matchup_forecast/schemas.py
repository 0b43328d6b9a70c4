"""
Pydantic schemas for tunable parameters and market payloads.

Coefficient sets and thresholds are frozen models: a backtest trial or a
monitor sweep gets its own object and never mutates a shared one.  Market
payloads mirror The Odds API response shape so a provider can hand its JSON
straight to :meth:`OddsGame.model_validate`.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Engine coefficients
# ---------------------------------------------------------------------------

class PercentileMultipliers(BaseModel):
    """Scale applied to the defensive adjustment by opponent percentile tier."""

    elite: float = Field(1.5, gt=0)
    good: float = Field(1.2, gt=0)
    average: float = Field(1.0, gt=0)
    below_average: float = Field(0.8, gt=0)
    poor: float = Field(0.6, gt=0)

    model_config = {"frozen": True}


class CalibrationCoefficients(BaseModel):
    """
    Named weights consumed by team analytics and the matchup predictor.

    Complementary pairs (recent_form_weight / season_avg_weight and
    tier_adjusted_weight / weighted_eff_weight) are expected to sum to 1.
    That is a caller contract: nothing here rejects an unbalanced set, and
    :meth:`pairs_balanced` exists for diagnostics only.
    """

    version: str = Field("default", description="Label for audit and backtest reports")

    recent_form_weight: float = Field(0.6, ge=0.0, le=1.0)
    season_avg_weight: float = Field(0.4, ge=0.0, le=1.0)

    sos_adjustment_factor: float = Field(0.3, ge=0.0)

    tier_adjusted_weight: float = Field(0.7, ge=0.0, le=1.0)
    weighted_eff_weight: float = Field(0.3, ge=0.0, le=1.0)

    base_defensive_adjustment_factor: float = Field(0.12, ge=0.0)
    percentile_multipliers: PercentileMultipliers = Field(default_factory=PercentileMultipliers)

    home_advantage: float = Field(3.5, description="Home-court points (basketball)")

    model_config = {"frozen": True}

    def with_overrides(self, **changes) -> "CalibrationCoefficients":
        """Return a new coefficient set with ``changes`` applied."""
        return self.model_copy(update=changes)

    def pairs_balanced(self, tol: float = 1e-6) -> bool:
        return (
            abs(self.recent_form_weight + self.season_avg_weight - 1.0) <= tol
            and abs(self.tier_adjusted_weight + self.weighted_eff_weight - 1.0) <= tol
        )


DEFAULT_COEFFICIENTS = CalibrationCoefficients()


class RecalibrationParams(BaseModel):
    """Platt scaling parameters: ``p' = sigmoid(a * logit(p) + b)``."""

    a: float = 1.0
    b: float = 0.0

    model_config = {"frozen": True}

    @property
    def is_identity(self) -> bool:
        return self.a == 1.0 and self.b == 0.0


# ---------------------------------------------------------------------------
# Line-movement monitoring
# ---------------------------------------------------------------------------

class LineMovementThresholds(BaseModel):
    """When a line move is big enough, and when a game is eligible, to re-predict."""

    spread_threshold: float = Field(2.5, ge=0, description="Points")
    total_threshold: float = Field(5.0, ge=0, description="Points")
    moneyline_threshold: float = Field(
        20.0, ge=0, description="Implied-probability change in percentage points"
    )
    hours_before_game: float = Field(24.0, gt=0)
    min_minutes_before_game: float = Field(30.0, ge=0)
    max_repredictions_per_game: int = Field(3, ge=0)
    reprediction_cooldown_minutes: float = Field(60.0, ge=0)

    model_config = {"frozen": True}


class OddsSnapshot(BaseModel):
    """Consensus market line captured at prediction time (home perspective)."""

    spread: Optional[float] = Field(None, description="Home spread, negative = home favoured")
    total: Optional[float] = None
    moneyline_home: Optional[float] = None
    moneyline_away: Optional[float] = None

    @field_validator("moneyline_home", "moneyline_away")
    @classmethod
    def validate_american_odds(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        if -100 < v < 100:
            raise ValueError(
                f"{v} is not valid American odds. Must be >= +100 or <= -100."
            )
        return v


class TrackedPrediction(BaseModel):
    """A stored prediction the monitor compares against live prices."""

    prediction_id: str
    game_id: str
    sport: str = Field(..., description="Odds API sport key, e.g. basketball_ncaab")
    home_team: str
    away_team: str
    game_time: datetime
    original_odds: OddsSnapshot = Field(default_factory=OddsSnapshot)
    predicted_spread: Optional[float] = None
    confidence: Optional[float] = None
    validated: bool = False
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Market payloads (The Odds API shape)
# ---------------------------------------------------------------------------

class MarketOutcome(BaseModel):
    name: str
    price: Optional[float] = None
    point: Optional[float] = None


class Market(BaseModel):
    key: str = Field(..., description="h2h | spreads | totals")
    outcomes: List[MarketOutcome] = Field(default_factory=list)


class Bookmaker(BaseModel):
    key: str
    title: Optional[str] = None
    markets: List[Market] = Field(default_factory=list)

    def market(self, key: str) -> Optional[Market]:
        for m in self.markets:
            if m.key == key:
                return m
        return None


class OddsGame(BaseModel):
    id: str
    sport_key: Optional[str] = None
    commence_time: Optional[datetime] = None
    home_team: str
    away_team: str
    bookmakers: List[Bookmaker] = Field(default_factory=list)
