"""Dependency-injection interface for an optional game simulator.

The matchup predictor never runs Monte Carlo itself.  When a deployment has a
simulator it passes one to :class:`~matchup_forecast.services.matchup_predictor.MatchupPredictor`
at construction time and the predictor embeds the result; when it does not,
the prediction simply carries ``simulation=None``.

* :class:`GameSimulator` is an ABC rather than a ``typing.Protocol`` so the
  predictor can ``isinstance``-check it once at startup.
* :class:`SimulationResult` is frozen and slotted so it can be embedded in an
  immutable prediction and passed across threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from matchup_forecast.core.sport_config import LeagueConstants
    from matchup_forecast.models import TeamAnalytics, TeamStats


@dataclass(frozen=True, slots=True)
class SimulationResult:
    """Summary of a simulated game distribution.

    Attributes:
        home_win_prob: Fraction of simulations the home team won.
        projected_margin: Mean home-minus-away margin.
        projected_total: Mean combined score.
        n_sims: Number of simulated games.
        margin_percentiles: Optional ``{"p10": ..., "p50": ..., "p90": ...}``.
    """

    home_win_prob: float
    projected_margin: float
    projected_total: float
    n_sims: int
    margin_percentiles: Dict[str, float] = field(default_factory=dict)


class GameSimulator(ABC):
    """Contract for a pluggable game simulator."""

    @abstractmethod
    def simulate(
        self,
        home: "TeamAnalytics",
        away: "TeamAnalytics",
        home_stats: "TeamStats",
        away_stats: "TeamStats",
        league: "LeagueConstants",
    ) -> SimulationResult:
        """Simulate one game and summarise the outcome distribution."""
