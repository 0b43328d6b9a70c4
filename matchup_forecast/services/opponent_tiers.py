"""
Opponent-tier adjustment.

Buckets recent opponents into elite / average / weak by their estimated
offensive efficiency and re-rates the team by how it performed against each
bucket, with elite games weighted more heavily.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from matchup_forecast.core.sport_config import DEFAULT_LEAGUE, LeagueConstants
from matchup_forecast.core.team_matcher import game_perspective
from matchup_forecast.models import GameResult

logger = logging.getLogger(__name__)

TIER_WEIGHTS: Dict[str, float] = {"elite": 1.2, "average": 1.0, "weak": 0.8}
MAX_OPPONENTS = 20
MAX_GAMES_PER_TIER = 10


@dataclass(frozen=True)
class TierAdjustment:
    offensive_efficiency: float
    defensive_efficiency: float
    games_by_tier: Dict[str, int] = field(default_factory=dict)

    @property
    def samples(self) -> int:
        return sum(self.games_by_tier.values())


class OpponentTierAdjuster:
    def __init__(self, league: LeagueConstants = DEFAULT_LEAGUE):
        self.league = league

    def classify(self, efficiency: float) -> str:
        if efficiency >= self.league.elite_threshold:
            return "elite"
        if efficiency >= self.league.weak_threshold:
            return "average"
        return "weak"

    def adjust(
        self,
        team_name: str,
        season_offensive_efficiency: float,
        season_defensive_efficiency: float,
        recent_games: Sequence[GameResult],
        pace: Optional[float] = None,
        team_code: Optional[str] = None,
    ) -> TierAdjustment:
        pace = pace if pace and pace > 0 else self.league.league_avg_pace

        offense: Dict[str, List[float]] = {tier: [] for tier in TIER_WEIGHTS}
        defense: Dict[str, List[float]] = {tier: [] for tier in TIER_WEIGHTS}

        for game in (recent_games or [])[:MAX_OPPONENTS]:
            view = game_perspective(team_name, game, team_code)
            if view is None:
                continue
            opp_eff = view.opponent_score / pace * 100.0
            team_eff = view.team_score / pace * 100.0
            tier = self.classify(opp_eff)
            if len(offense[tier]) >= MAX_GAMES_PER_TIER:
                continue
            offense[tier].append(team_eff)
            defense[tier].append(opp_eff)

        games_by_tier = {tier: len(offense[tier]) for tier in TIER_WEIGHTS}

        total_weight = 0.0
        weighted_off = 0.0
        weighted_def = 0.0
        for tier, tier_weight in TIER_WEIGHTS.items():
            games = games_by_tier[tier]
            if games == 0:
                continue
            weight = games * tier_weight
            weighted_off += sum(offense[tier]) / games * weight
            weighted_def += sum(defense[tier]) / games * weight
            total_weight += weight

        if total_weight == 0:
            return TierAdjustment(
                season_offensive_efficiency, season_defensive_efficiency, games_by_tier
            )

        return TierAdjustment(
            offensive_efficiency=weighted_off / total_weight,
            defensive_efficiency=weighted_def / total_weight,
            games_by_tier=games_by_tier,
        )
