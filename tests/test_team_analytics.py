"""
Tests for per-team analytics
Run with: pytest tests/test_team_analytics.py -v
"""

import pytest

from matchup_forecast.core.team_matcher import TeamGameView
from matchup_forecast.models import GameResult, TeamStats, WinLossRecord
from matchup_forecast.schemas import DEFAULT_COEFFICIENTS
from matchup_forecast.services.team_analytics import (
    TeamAnalyticsCalculator,
    as_percentage,
    compute_team_analytics,
    consistency_score,
    momentum_score,
    recent_form,
)

OPPONENTS = ["Army", "Navy", "Rice", "Tulane", "Memphis", "Temple", "Houston", "Wichita"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _view(won, margin=10.0):
    team, opp = (70.0 + margin, 70.0) if won else (70.0, 70.0 + margin)
    return TeamGameView("home", team, opp, "Opp", None, won)


def _stats(name="Duke", **kw):
    defaults = dict(points_per_game=70.0, points_allowed_per_game=70.0, pace=70.0)
    defaults.update(kw)
    return TeamStats(name=name, **defaults)


def _wins(n, team="Duke", scored=77, allowed=67):
    return [
        GameResult(home_team=team, away_team=OPPONENTS[i], home_score=scored, away_score=allowed)
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Form metrics
# ---------------------------------------------------------------------------

class TestFormMetrics:
    def test_as_percentage(self):
        assert as_percentage(0.45) == pytest.approx(45.0)
        assert as_percentage(45.0) == 45.0
        assert as_percentage(None) is None

    def test_momentum_weights_recent_games(self):
        views = [_view(True)] * 5
        # impact 30 * (1.0 + 0.8 + 0.6 + 0.4 + 0.2)
        assert momentum_score(views) == pytest.approx(90.0)

    def test_momentum_clamped(self):
        assert momentum_score([_view(True, 30)] * 5) == 100.0
        assert momentum_score([_view(False, 30)] * 5) == -100.0

    def test_recent_loss_outweighs_older_win(self):
        assert momentum_score([_view(False), _view(True)]) < 0

    def test_recent_form(self):
        form, streak, record = recent_form([_view(True), _view(True), _view(False)])
        assert form == "W-W-L"
        assert streak == 2
        assert record == WinLossRecord(2, 1)

    def test_losing_streak_negative(self):
        _, streak, _ = recent_form([_view(False)] * 3 + [_view(True)])
        assert streak == -3

    def test_streak_counts_past_five(self):
        form, streak, record = recent_form([_view(True)] * 7)
        assert form == "W-W-W-W-W"
        assert streak == 7
        assert record == WinLossRecord(5, 0)

    def test_consistency(self):
        assert consistency_score(_wins(2)) == 50.0
        assert consistency_score(_wins(6)) == pytest.approx(100.0)
        varied = [
            GameResult("Duke", "Army", 90, 60),
            GameResult("Duke", "Navy", 71, 70),
            GameResult("Duke", "Rice", 80, 70),
        ]
        assert consistency_score(varied) < 100.0


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

class TestTeamAnalytics:
    def test_no_recent_games_neutral_defaults(self):
        a = compute_team_analytics(_stats(), [])
        assert a.momentum == 0.0
        assert a.recent_form == ""
        assert a.last5_record == WinLossRecord(0, 0)
        assert a.consistency == 50.0
        assert a.win_streak == 0
        assert a.games_analyzed == 0
        assert a.sos_source == "none"

    def test_season_efficiency_from_ppg(self):
        calc = TeamAnalyticsCalculator()
        off, dfn, pace = calc.season_efficiency(_stats(points_per_game=77.0, points_allowed_per_game=63.0))
        assert off == pytest.approx(110.0)
        assert dfn == pytest.approx(90.0)
        assert pace == 70.0

    def test_season_efficiency_fallbacks(self):
        calc = TeamAnalyticsCalculator()
        off, dfn, pace = calc.season_efficiency(TeamStats(name="Empty"))
        assert (off, dfn, pace) == (100.0, 100.0, 70.0)

    def test_explicit_ratings_win(self):
        a = compute_team_analytics(_stats(offensive_efficiency=112.0, defensive_efficiency=94.0))
        assert a.season_offensive_efficiency == 112.0
        # no games: weighted and tier both fall back to season
        assert a.offensive_efficiency == pytest.approx(112.0)
        assert a.defensive_efficiency == pytest.approx(94.0)
        assert a.net_rating == pytest.approx(18.0)

    def test_full_pipeline_with_recent_games(self):
        a = compute_team_analytics(_stats(), _wins(5))

        assert a.recent_offensive_efficiency == pytest.approx(110.0)
        assert a.recent_defensive_efficiency == pytest.approx(67 / 70 * 100)
        assert a.sos_source == "estimate"
        assert a.strength_of_schedule == pytest.approx((10.0 + (67 / 70 * 100 - 100.0)) / 2.0)
        assert a.sos_adjusted_offensive_efficiency == pytest.approx(103.0)
        assert a.tier_adjusted_offensive_efficiency == pytest.approx(110.0)
        # (110 * .6 + 100 * .4 + 3) * .3 + 110 * .7
        assert a.offensive_efficiency == pytest.approx(109.7)
        assert a.defensive_efficiency == pytest.approx(95.842857, abs=1e-4)
        assert a.momentum == pytest.approx(90.0)
        assert a.recent_form == "W-W-W-W-W"
        assert a.consistency == pytest.approx(100.0)
        assert a.games_analyzed == 5

    def test_unmatched_games_ignored(self):
        games = _wins(3, team="Gonzaga")
        a = compute_team_analytics(_stats(), games)
        assert a.games_analyzed == 0
        assert a.recent_form == ""

    def test_coefficients_change_blend(self):
        heavy_recent = DEFAULT_COEFFICIENTS.with_overrides(recent_form_weight=1.0, season_avg_weight=0.0)
        base = compute_team_analytics(_stats(), _wins(5))
        tuned = compute_team_analytics(_stats(), _wins(5), coefficients=heavy_recent)
        assert tuned.offensive_efficiency > base.offensive_efficiency

    def test_home_advantage(self):
        assert compute_team_analytics(_stats(), is_home=True).home_advantage == 3.5
        assert compute_team_analytics(_stats(), is_home=False).home_advantage == 0.0
        assert compute_team_analytics(_stats(), is_home=True, sport="nba").home_advantage == 2.5

    def test_box_score_composites(self):
        a = compute_team_analytics(_stats(
            field_goal_pct=0.45, three_point_pct=35.0, free_throw_pct=0.72,
            rebounds_per_game=36.0, assists_per_game=15.0, turnovers_per_game=10.0,
        ))
        assert a.shooting_efficiency == pytest.approx(100.0)
        assert a.three_point_threat == pytest.approx(100.0)
        assert a.free_throw_reliability == pytest.approx(100.0)
        assert a.rebounding_advantage == pytest.approx(100.0)
        assert a.assist_to_turnover_ratio == pytest.approx(1.5)

    def test_sparse_stats_never_raise(self):
        a = compute_team_analytics(TeamStats(name="Sparse", pace=float("nan")))
        assert a.pace == 70.0
        assert a.assist_to_turnover_ratio == pytest.approx(1.0)
