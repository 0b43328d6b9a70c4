"""Tests for core/sport_config.py."""

import dataclasses

import pytest

from matchup_forecast.core.sport_config import DEFAULT_LEAGUE, LeagueConstants, for_sport
from matchup_forecast.schemas import DEFAULT_COEFFICIENTS


@pytest.mark.parametrize("key,expected", [
    ("basketball_ncaab", "cbb"),
    ("ncaab", "cbb"),
    ("basketball_nba", "nba"),
    ("NBA", "nba"),
    ("icehockey_nhl", "nhl"),
    ("hockey", "nhl"),
    ("baseball_mlb", "mlb"),
])
def test_for_sport_aliases(key, expected):
    assert for_sport(key).sport_id == expected


@pytest.mark.parametrize("key", [None, "", "cricket", 42])
def test_unknown_sport_falls_back_to_college(key):
    assert for_sport(key) is DEFAULT_LEAGUE


def test_passes_league_through():
    nhl = LeagueConstants.nhl()
    assert for_sport(nhl) is nhl


def test_college_thresholds():
    league = for_sport("cbb")
    assert league.efficiency_band == pytest.approx((70.0, 130.0))
    assert league.elite_threshold == pytest.approx(105.0)
    assert league.weak_threshold == pytest.approx(95.0)
    assert league.in_band(100.0)
    assert not league.in_band(140.0)
    assert league.clamp_to_band(150.0) == pytest.approx(130.0)


def test_thresholds_scale_with_league_average():
    nba = for_sport("nba")
    lo, hi = nba.efficiency_band
    assert lo == pytest.approx(nba.league_avg_efficiency * 0.7)
    assert hi == pytest.approx(nba.league_avg_efficiency * 1.3)


def test_home_advantage_source():
    coeffs = DEFAULT_COEFFICIENTS.with_overrides(home_advantage=4.0)
    assert for_sport("cbb").home_advantage(coeffs) == 4.0
    assert for_sport("nba").home_advantage(coeffs) == 2.5
    assert for_sport("nhl").home_advantage(coeffs) == pytest.approx(0.15)


def test_non_basketball_flags():
    assert not for_sport("nhl").is_basketball
    assert not for_sport("mlb").is_basketball
    assert for_sport("nba").is_basketball


def test_league_constants_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_LEAGUE.league_avg_pace = 80.0
