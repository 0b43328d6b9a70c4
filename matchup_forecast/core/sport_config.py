"""League constants: every number that differs between sports, in one place.

:class:`LeagueConstants` is a frozen dataclass; named constructors return
pre-populated instances and :func:`for_sport` resolves short ids and
The Odds API sport keys to one of them.  Unknown sports fall back to college
basketball, which is the reference calibration.

Efficiency figures are points per 100 possessions.  College basketball is
indexed so the league average is 100; the plausibility band (70-130) and the
opponent-tier cut points (95 / 105) are expressed as ratios of the league
average so other sports scale with their own baseline.

Typical usage::

    from matchup_forecast.core.sport_config import for_sport

    league = for_sport("basketball_nba")
    lo, hi = league.efficiency_band
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Final, Tuple

SPORT_ID_CBB: Final[str] = "cbb"
SPORT_ID_NBA: Final[str] = "nba"
SPORT_ID_NHL: Final[str] = "nhl"
SPORT_ID_MLB: Final[str] = "mlb"

#: Plausible efficiency band as a fraction of the league average.
_BAND_LOW_RATIO: Final[float] = 0.70
_BAND_HIGH_RATIO: Final[float] = 1.30

#: Opponent tier cut points as a fraction of the league average.
_ELITE_RATIO: Final[float] = 1.05
_WEAK_RATIO: Final[float] = 0.95


@dataclass(frozen=True)
class AltLineSteps:
    """Point adjustments used when suggesting an alternate spread."""

    key_number: float = 1.5
    aggressive: float = 3.0
    safer: float = 2.0
    standard: float = 1.5


@dataclass(frozen=True)
class LeagueConstants:
    """Immutable league constants for a single sport.

    Attributes:
        sport_id: Short identifier (``"cbb"``, ``"nba"``, ...).
        sport_name: Human-readable name for logging.
        odds_api_sport_key: The Odds API sport key.
        league_avg_ppg: Average points (runs, goals) per team per game.
        league_avg_pace: Possessions (or the sport's tempo unit) per game.
        pace_min / pace_max: Bounds for a projected game pace.
        score_min / score_max: Bounds for a projected team score.
        league_avg_efficiency: League-average points per 100 possessions.
        home_advantage_pts: Home edge in points when not taken from the
            coefficient set.
        home_advantage_from_coefficients: True for the sport whose home edge
            is a tunable coefficient (college basketball).
        key_numbers: Common final margins for alternate-line suggestions.
        alt_line_steps: Alternate-spread step sizes.
        points_per_logit: Margin per logit unit of win probability.
        max_margin: Absolute cap on the projected margin.
        is_basketball: Four Factors and shooting descriptors apply.
    """

    sport_id: str
    sport_name: str
    odds_api_sport_key: str

    league_avg_ppg: float
    league_avg_pace: float
    pace_min: float
    pace_max: float
    score_min: float
    score_max: float
    league_avg_efficiency: float

    home_advantage_pts: float
    home_advantage_from_coefficients: bool

    key_numbers: Tuple[float, ...]
    alt_line_steps: AltLineSteps

    points_per_logit: float
    max_margin: float
    is_basketball: bool = True

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def college_basketball(cls) -> LeagueConstants:
        return cls(
            sport_id=SPORT_ID_CBB,
            sport_name="NCAA Basketball",
            odds_api_sport_key="basketball_ncaab",
            league_avg_ppg=72.0,
            league_avg_pace=70.0,
            pace_min=60.0,
            pace_max=80.0,
            score_min=50.0,
            score_max=105.0,
            league_avg_efficiency=100.0,
            home_advantage_pts=3.5,
            home_advantage_from_coefficients=True,
            key_numbers=(3.0, 4.0, 5.0, 7.0, 10.0),
            alt_line_steps=AltLineSteps(),
            points_per_logit=5.0,
            max_margin=25.0,
        )

    @classmethod
    def nba(cls) -> LeagueConstants:
        return cls(
            sport_id=SPORT_ID_NBA,
            sport_name="NBA",
            odds_api_sport_key="basketball_nba",
            league_avg_ppg=112.0,
            league_avg_pace=99.0,
            pace_min=92.0,
            pace_max=106.0,
            score_min=85.0,
            score_max=135.0,
            league_avg_efficiency=112.0 / 99.0 * 100.0,
            home_advantage_pts=2.5,
            home_advantage_from_coefficients=False,
            key_numbers=(3.0, 4.0, 5.0, 7.0, 10.0),
            alt_line_steps=AltLineSteps(),
            points_per_logit=5.0,
            max_margin=25.0,
        )

    @classmethod
    def nhl(cls) -> LeagueConstants:
        return cls(
            sport_id=SPORT_ID_NHL,
            sport_name="NHL",
            odds_api_sport_key="icehockey_nhl",
            league_avg_ppg=3.0,
            league_avg_pace=60.0,
            pace_min=55.0,
            pace_max=65.0,
            score_min=1.0,
            score_max=8.0,
            league_avg_efficiency=3.0 / 60.0 * 100.0,
            home_advantage_pts=0.15,
            home_advantage_from_coefficients=False,
            key_numbers=(1.0, 1.5, 2.0),
            alt_line_steps=AltLineSteps(key_number=0.5, aggressive=1.0, safer=0.5, standard=0.5),
            points_per_logit=1.0,
            max_margin=4.0,
            is_basketball=False,
        )

    @classmethod
    def mlb(cls) -> LeagueConstants:
        return cls(
            sport_id=SPORT_ID_MLB,
            sport_name="MLB",
            odds_api_sport_key="baseball_mlb",
            league_avg_ppg=4.5,
            league_avg_pace=9.0,
            pace_min=8.0,
            pace_max=12.0,
            score_min=0.0,
            score_max=15.0,
            league_avg_efficiency=4.5 / 9.0 * 100.0,
            home_advantage_pts=0.25,
            home_advantage_from_coefficients=False,
            key_numbers=(1.0, 1.5, 2.0),
            alt_line_steps=AltLineSteps(key_number=0.5, aggressive=1.0, safer=0.5, standard=0.5),
            points_per_logit=1.5,
            max_margin=6.0,
            is_basketball=False,
        )

    # ------------------------------------------------------------------ #
    #  Derived thresholds                                                  #
    # ------------------------------------------------------------------ #

    @property
    def efficiency_band(self) -> Tuple[float, float]:
        avg = self.league_avg_efficiency
        return avg * _BAND_LOW_RATIO, avg * _BAND_HIGH_RATIO

    @property
    def elite_threshold(self) -> float:
        return self.league_avg_efficiency * _ELITE_RATIO

    @property
    def weak_threshold(self) -> float:
        return self.league_avg_efficiency * _WEAK_RATIO

    def in_band(self, efficiency: float) -> bool:
        lo, hi = self.efficiency_band
        return lo <= efficiency <= hi

    def clamp_to_band(self, efficiency: float) -> float:
        lo, hi = self.efficiency_band
        return max(lo, min(hi, efficiency))

    def home_advantage(self, coefficients) -> float:
        if self.home_advantage_from_coefficients:
            return coefficients.home_advantage
        return self.home_advantage_pts


_REGISTRY: Dict[str, LeagueConstants] = {}


def _register(league: LeagueConstants, *aliases: str) -> None:
    for alias in (league.sport_id, league.odds_api_sport_key) + aliases:
        _REGISTRY[alias] = league


_register(LeagueConstants.college_basketball(), "ncaab", "ncaam", "cbb")
_register(LeagueConstants.nba(), "basketball_nba")
_register(LeagueConstants.nhl(), "hockey")
_register(LeagueConstants.mlb(), "baseball")

DEFAULT_LEAGUE: Final[LeagueConstants] = _REGISTRY[SPORT_ID_CBB]


def for_sport(sport) -> LeagueConstants:
    """Resolve a sport id or Odds API key; unknown or empty -> college basketball."""
    if isinstance(sport, LeagueConstants):
        return sport
    if not isinstance(sport, str) or not sport.strip():
        return DEFAULT_LEAGUE
    return _REGISTRY.get(sport.strip().lower(), DEFAULT_LEAGUE)
