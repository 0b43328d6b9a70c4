"""
Strength-of-schedule adjustment.

Re-rates a team's offensive and defensive efficiency by the quality of the
opponents it actually played.  Opponent quality comes from an injected rating
cache when it has enough hits, otherwise from the game scores themselves.

The cache is read synchronously and never blocks: a miss falls through to
score-based estimation.  Refreshing the cache is the caller's job (a
background task calls :meth:`InMemoryRatingCache.refresh`).
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from matchup_forecast.core.sport_config import DEFAULT_LEAGUE, LeagueConstants
from matchup_forecast.core.team_matcher import (
    TeamGameView,
    game_perspective,
    normalize_team_name,
    team_matches,
)
from matchup_forecast.models import GameResult
from matchup_forecast.schemas import DEFAULT_COEFFICIENTS, CalibrationCoefficients

logger = logging.getLogger(__name__)

MIN_GAMES_FOR_SOS = 5
MAX_OPPONENTS = 20
MIN_RATED_OPPONENTS = 3


# ---------------------------------------------------------------------------
# Opponent rating cache
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OpponentRating:
    team_name: str
    offensive_efficiency: float
    defensive_efficiency: float
    key: Optional[str] = None


class OpponentRatingCache(ABC):
    """Read-mostly store of opponent ratings, refreshed out-of-band."""

    @abstractmethod
    def lookup(self, team_name: str, team_key: Optional[str] = None) -> Optional[OpponentRating]:
        """Best-effort synchronous lookup; None on miss."""

    @abstractmethod
    def refresh(self, ratings: Iterable[OpponentRating]) -> None:
        """Replace the cached ratings."""


class InMemoryRatingCache(OpponentRatingCache):
    """
    Dict-backed cache.  Lookup order: team key, normalised name, then the
    shared team matcher over every cached name.

    ``refresh`` builds new dicts and swaps them in as one tuple so readers see
    either the old or the new snapshot, never a partial one.
    """

    def __init__(self, ratings: Iterable[OpponentRating] = ()):
        self._lock = threading.Lock()
        self._snapshot: Tuple[Dict[str, OpponentRating], Dict[str, OpponentRating]] = ({}, {})
        self.refresh(ratings)

    def refresh(self, ratings: Iterable[OpponentRating]) -> None:
        by_key: Dict[str, OpponentRating] = {}
        by_name: Dict[str, OpponentRating] = {}
        for rating in ratings:
            if rating.key:
                by_key[rating.key.lower()] = rating
            by_name[normalize_team_name(rating.team_name)] = rating
        with self._lock:
            self._snapshot = (by_key, by_name)
        logger.debug("Rating cache refreshed: %d teams", len(by_name))

    def lookup(self, team_name: str, team_key: Optional[str] = None) -> Optional[OpponentRating]:
        by_key, by_name = self._snapshot
        if isinstance(team_key, str) and team_key.lower() in by_key:
            return by_key[team_key.lower()]
        norm = normalize_team_name(team_name)
        if not norm:
            return None
        if norm in by_name:
            return by_name[norm]
        for cached_name, rating in by_name.items():
            if team_matches(cached_name, team_name):
                return rating
        return None

    def __len__(self) -> int:
        return len(self._snapshot[1])


# ---------------------------------------------------------------------------
# Adjuster
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScheduleAdjustment:
    strength_of_schedule: float
    offensive_sos: float
    defensive_sos: float
    adjusted_offensive_efficiency: float
    adjusted_defensive_efficiency: float
    source: str = "none"
    samples: int = 0


class StrengthOfScheduleAdjuster:
    """
    SOS = mean of offensive SOS (average opponent defensive rating minus the
    league average) and defensive SOS (average opponent offensive rating
    minus the league average).  Each component moves the matching team
    efficiency by ``coefficients.sos_adjustment_factor``.
    """

    def __init__(
        self,
        league: LeagueConstants = DEFAULT_LEAGUE,
        coefficients: CalibrationCoefficients = DEFAULT_COEFFICIENTS,
        rating_cache: Optional[OpponentRatingCache] = None,
    ):
        self.league = league
        self.coefficients = coefficients
        self.rating_cache = rating_cache

    def _no_op(self, off_eff: float, def_eff: float) -> ScheduleAdjustment:
        return ScheduleAdjustment(0.0, 0.0, 0.0, off_eff, def_eff)

    def adjust(
        self,
        team_name: str,
        offensive_efficiency: float,
        defensive_efficiency: float,
        recent_games: Sequence[GameResult],
        pace: Optional[float] = None,
        team_code: Optional[str] = None,
    ) -> ScheduleAdjustment:
        views: List[TeamGameView] = []
        for game in (recent_games or [])[:MAX_OPPONENTS]:
            view = game_perspective(team_name, game, team_code)
            if view is not None:
                views.append(view)

        if len(views) < MIN_GAMES_FOR_SOS:
            return self._no_op(offensive_efficiency, defensive_efficiency)

        n = len(views)
        weights = [1.0 - (i / n) * 0.5 for i in range(n)]

        samples = self._cached_samples(views, weights)
        source = "cache"
        if len(samples) < MIN_RATED_OPPONENTS:
            samples = self._estimated_samples(views, weights, pace)
            source = "estimate"
        if len(samples) < MIN_RATED_OPPONENTS:
            logger.debug("SOS for %s: only %d usable opponents, skipping", team_name, len(samples))
            return self._no_op(offensive_efficiency, defensive_efficiency)

        total_w = sum(w for _, _, w in samples)
        avg_opp_off = sum(o * w for o, _, w in samples) / total_w
        avg_opp_def = sum(d * w for _, d, w in samples) / total_w

        league_avg = self.league.league_avg_efficiency
        offensive_sos = avg_opp_def - league_avg
        defensive_sos = avg_opp_off - league_avg
        sos = (offensive_sos + defensive_sos) / 2.0

        factor = self.coefficients.sos_adjustment_factor
        adj_off = self.league.clamp_to_band(offensive_efficiency + offensive_sos * factor)
        adj_def = self.league.clamp_to_band(defensive_efficiency + defensive_sos * factor)

        return ScheduleAdjustment(
            strength_of_schedule=sos,
            offensive_sos=offensive_sos,
            defensive_sos=defensive_sos,
            adjusted_offensive_efficiency=adj_off,
            adjusted_defensive_efficiency=adj_def,
            source=source,
            samples=len(samples),
        )

    def _cached_samples(self, views, weights):
        if self.rating_cache is None:
            return []
        samples = []
        for view, w in zip(views, weights):
            rating = self.rating_cache.lookup(view.opponent_name, view.opponent_key)
            if rating is None:
                continue
            if not (
                self.league.in_band(rating.offensive_efficiency)
                and self.league.in_band(rating.defensive_efficiency)
            ):
                continue
            samples.append((rating.offensive_efficiency, rating.defensive_efficiency, w))
        return samples

    def _estimated_samples(self, views, weights, pace):
        pace = pace if pace and pace > 0 else self.league.league_avg_pace
        samples = []
        for view, w in zip(views, weights):
            # opponent offence ~ what they scored on us; defence ~ what they allowed
            opp_off = view.opponent_score / pace * 100.0
            opp_def = view.team_score / pace * 100.0
            if self.league.in_band(opp_off) and self.league.in_band(opp_def):
                samples.append((opp_off, opp_def, w))
        return samples
