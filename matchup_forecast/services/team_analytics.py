"""
Per-team analytics: efficiency, form, momentum and box-score composites.

``TeamAnalyticsCalculator`` turns one team's season stats plus its recent
games into a :class:`~matchup_forecast.models.TeamAnalytics` snapshot.  It is
pure given the state of the injected rating cache, and never raises for
sparse input: every missing field has a documented fallback.

Efficiency pipeline::

    season  = explicit rating, else PPG / pace * 100, else league average
    recent  = last-5 average scored/allowed / pace * 100  (>= 3 games, in band)
    blended = recent * recent_form_weight + season * season_avg_weight
    sos     = blended + (SOS-adjusted season - season)
    final   = sos * weighted_eff_weight + tier * tier_adjusted_weight
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from matchup_forecast.core.odds_math import clamp
from matchup_forecast.core.sport_config import LeagueConstants, for_sport
from matchup_forecast.core.team_matcher import TeamGameView, game_perspective
from matchup_forecast.models import GameResult, TeamAnalytics, TeamStats, WinLossRecord
from matchup_forecast.schemas import DEFAULT_COEFFICIENTS, CalibrationCoefficients
from matchup_forecast.services.opponent_tiers import OpponentTierAdjuster
from matchup_forecast.services.schedule_strength import (
    OpponentRatingCache,
    StrengthOfScheduleAdjuster,
)

logger = logging.getLogger(__name__)

# League-average box-score references for the composites
LEAGUE_AVG_FG = 45.0
LEAGUE_AVG_3P = 35.0
LEAGUE_AVG_FT = 72.0
LEAGUE_AVG_REB = 36.0
DEFAULT_ASSISTS = 12.0
DEFAULT_TURNOVERS = 12.0

MOMENTUM_GAMES = 5
FORM_GAMES = 5
CONSISTENCY_GAMES = 10
MIN_GAMES_FOR_CONSISTENCY = 3
MIN_GAMES_FOR_RECENT_FORM = 3


def as_percentage(value: Optional[float]) -> Optional[float]:
    """Percentages arrive as 0.45 or 45.0; return the 0-100 scale."""
    if value is None:
        return None
    return value * 100.0 if value <= 1.0 else value


# ---------------------------------------------------------------------------
# Form metrics
# ---------------------------------------------------------------------------

def momentum_score(views: Sequence[TeamGameView]) -> float:
    """Recency-weighted win/loss impact over the last five games, in [-100, 100]."""
    total = 0.0
    for i, view in enumerate(views[:MOMENTUM_GAMES]):
        weight = (MOMENTUM_GAMES - i) / MOMENTUM_GAMES
        impact = 20.0 + min(abs(view.margin), 20.0)
        total += (impact if view.won else -impact) * weight
    return clamp(total, -100.0, 100.0)


def recent_form(views: Sequence[TeamGameView]) -> Tuple[str, int, WinLossRecord]:
    """(form string, signed streak, last-5 record), most recent first."""
    last = views[:FORM_GAMES]
    if not last:
        return "", 0, WinLossRecord(0, 0)

    results = ["W" if v.won else "L" for v in last]
    wins = results.count("W")

    streak = 0
    for view in views:
        if view.won != last[0].won:
            break
        streak += 1
    if not last[0].won:
        streak = -streak

    return "-".join(results), streak, WinLossRecord(wins, len(results) - wins)


def consistency_score(games: Sequence[GameResult]) -> float:
    """100 - 5 * stddev(|margin|) over the last ten games; 50 with < 3 games."""
    margins = [abs(g.home_score - g.away_score) for g in list(games or [])[:CONSISTENCY_GAMES]]
    if len(margins) < MIN_GAMES_FOR_CONSISTENCY:
        return 50.0
    return clamp(100.0 - float(np.std(margins)) * 5.0, 0.0, 100.0)


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

class TeamAnalyticsCalculator:
    """Computes :class:`TeamAnalytics` with injected league, coefficients and cache."""

    def __init__(
        self,
        sport=None,
        coefficients: Optional[CalibrationCoefficients] = None,
        rating_cache: Optional[OpponentRatingCache] = None,
    ):
        self.league: LeagueConstants = for_sport(sport)
        self.coefficients = coefficients or DEFAULT_COEFFICIENTS
        self.sos_adjuster = StrengthOfScheduleAdjuster(self.league, self.coefficients, rating_cache)
        self.tier_adjuster = OpponentTierAdjuster(self.league)

    def season_efficiency(self, stats: TeamStats) -> Tuple[float, float, float]:
        """(offensive, defensive, pace) from explicit ratings or PPG / pace."""
        pace = stats.pace if stats.pace and stats.pace > 0 else self.league.league_avg_pace
        avg = self.league.league_avg_efficiency

        off = stats.offensive_efficiency
        if off is None:
            ppg = stats.points_per_game
            off = ppg / pace * 100.0 if ppg and ppg > 0 else avg
        dfn = stats.defensive_efficiency
        if dfn is None:
            papg = stats.points_allowed_per_game
            dfn = papg / pace * 100.0 if papg and papg > 0 else avg
        return off, dfn, pace

    def recent_form_efficiency(
        self, views: Sequence[TeamGameView], pace: float
    ) -> Tuple[Optional[float], Optional[float]]:
        last = views[:FORM_GAMES]
        if len(last) < MIN_GAMES_FOR_RECENT_FORM:
            return None, None
        scored = sum(v.team_score for v in last) / len(last)
        allowed = sum(v.opponent_score for v in last) / len(last)
        off = scored / pace * 100.0
        dfn = allowed / pace * 100.0
        return (
            off if self.league.in_band(off) else None,
            dfn if self.league.in_band(dfn) else None,
        )

    def compute(
        self,
        stats: TeamStats,
        recent_games: Sequence[GameResult] = (),
        is_home: bool = False,
    ) -> TeamAnalytics:
        recent_games = list(recent_games or [])
        coeffs = self.coefficients

        views: List[TeamGameView] = []
        for game in recent_games:
            view = game_perspective(stats.name, game, stats.code)
            if view is not None:
                views.append(view)
        if len(views) < len(recent_games):
            logger.debug(
                "%s: %d of %d recent games could not be matched",
                stats.name, len(recent_games) - len(views), len(recent_games),
            )

        season_off, season_def, pace = self.season_efficiency(stats)

        momentum = momentum_score(views)
        form, streak, last5 = recent_form(views)
        consistency = consistency_score(recent_games)

        # Recent form blend
        recent_off, recent_def = self.recent_form_efficiency(views, pace)
        weighted_off = season_off
        weighted_def = season_def
        if recent_off is not None:
            weighted_off = recent_off * coeffs.recent_form_weight + season_off * coeffs.season_avg_weight
        if recent_def is not None:
            weighted_def = recent_def * coeffs.recent_form_weight + season_def * coeffs.season_avg_weight

        sos = self.sos_adjuster.adjust(
            stats.name, season_off, season_def, recent_games, pace, stats.code
        )
        tier = self.tier_adjuster.adjust(
            stats.name, season_off, season_def, recent_games, pace, stats.code
        )

        sos_weighted_off = weighted_off + (sos.adjusted_offensive_efficiency - season_off)
        sos_weighted_def = weighted_def + (sos.adjusted_defensive_efficiency - season_def)

        final_off = (
            sos_weighted_off * coeffs.weighted_eff_weight
            + tier.offensive_efficiency * coeffs.tier_adjusted_weight
        )
        final_def = (
            sos_weighted_def * coeffs.weighted_eff_weight
            + tier.defensive_efficiency * coeffs.tier_adjusted_weight
        )

        # Box-score composites
        fg = as_percentage(stats.field_goal_pct) or LEAGUE_AVG_FG
        tp = as_percentage(stats.three_point_pct) or LEAGUE_AVG_3P
        ft = as_percentage(stats.free_throw_pct) or LEAGUE_AVG_FT
        shooting = fg / LEAGUE_AVG_FG * 50.0 + tp / LEAGUE_AVG_3P * 30.0 + ft / LEAGUE_AVG_FT * 20.0
        rebounds = stats.rebounds_per_game or LEAGUE_AVG_REB

        ast_to = stats.assist_turnover_ratio
        if ast_to is None:
            ast_to = (stats.assists_per_game or DEFAULT_ASSISTS) / max(
                stats.turnovers_per_game or DEFAULT_TURNOVERS, 1.0
            )

        return TeamAnalytics(
            team_name=stats.name,
            season_offensive_efficiency=season_off,
            season_defensive_efficiency=season_def,
            offensive_efficiency=final_off,
            defensive_efficiency=final_def,
            strength_of_schedule=sos.strength_of_schedule,
            sos_adjusted_offensive_efficiency=sos.adjusted_offensive_efficiency,
            sos_adjusted_defensive_efficiency=sos.adjusted_defensive_efficiency,
            tier_adjusted_offensive_efficiency=tier.offensive_efficiency,
            tier_adjusted_defensive_efficiency=tier.defensive_efficiency,
            momentum=momentum,
            win_streak=streak,
            recent_form=form,
            last5_record=last5,
            consistency=consistency,
            recent_offensive_efficiency=recent_off,
            recent_defensive_efficiency=recent_def,
            shooting_efficiency=shooting,
            three_point_threat=tp / LEAGUE_AVG_3P * 100.0,
            free_throw_reliability=ft / LEAGUE_AVG_FT * 100.0,
            rebounding_advantage=rebounds / LEAGUE_AVG_REB * 100.0,
            assist_to_turnover_ratio=ast_to,
            pace=pace,
            home_advantage=self.league.home_advantage(coeffs) if is_home else 0.0,
            is_home=is_home,
            sos_source=sos.source,
            games_analyzed=len(views),
        )


def compute_team_analytics(
    stats: TeamStats,
    recent_games: Sequence[GameResult] = (),
    is_home: bool = False,
    sport=None,
    coefficients: Optional[CalibrationCoefficients] = None,
    rating_cache: Optional[OpponentRatingCache] = None,
) -> TeamAnalytics:
    """Module-level entry point; see :class:`TeamAnalyticsCalculator`."""
    calculator = TeamAnalyticsCalculator(sport, coefficients, rating_cache)
    return calculator.compute(stats, recent_games, is_home)
