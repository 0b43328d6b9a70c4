"""
Matchup predictor: two teams' analytics in, one full game forecast out.

Scoring runs down one of two paths:

    Four Factors  both teams carry eFG%, TOV%, ORB% and FTR.  Weighted
                  40/25/20/15 on percentage-point gaps, plus tempo, a
                  damped home bonus and a small momentum term.  If the
                  schedule-aware efficiency score strongly disagrees in sign,
                  the two are blended 70/30 in favour of efficiency.
    Fallback      net-rating gap, offence-vs-defence cross term, momentum
                  and home advantage.

Either path yields a matchup score; ``p = sigmoid(score / 8)`` clamped to
[0.02, 0.98], then Platt-recalibrated, is the home win probability.  With
no calibrator injected, (A, B) come from RECALIBRATION_A / RECALIBRATION_B.  The projected total is tempo-free; the margin is
re-derived from ``p`` so the scoreboard winner always matches the
probability favourite.

Nothing here raises for sparse stats: every missing field degrades to a
fallback term.
"""

import logging
import math
from dataclasses import replace
from typing import List, Optional, Tuple

from matchup_forecast.config import load_recalibration_params
from matchup_forecast.core.odds_math import (
    clamp,
    implied_prob,
    is_valid_american,
    probability_to_margin,
    remove_vig_shin,
    round_half_up,
    round_to_half,
    score_to_probability,
)
from matchup_forecast.core.sim_interface import GameSimulator, SimulationResult
from matchup_forecast.core.sport_config import LeagueConstants, for_sport
from matchup_forecast.models import (
    AlternateSpread,
    FallbackTrace,
    FourFactorsTrace,
    MatchupPrediction,
    PredictedScore,
    TeamAnalytics,
    TeamStats,
    ValueBet,
    WinProbability,
)
from matchup_forecast.schemas import DEFAULT_COEFFICIENTS, CalibrationCoefficients
from matchup_forecast.services.recalibration import ProbabilityCalibrator
from matchup_forecast.services.team_analytics import as_percentage

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Model constants
# ---------------------------------------------------------------------------

EFG_WEIGHT = 0.40
TOV_WEIGHT = 0.25
ORB_WEIGHT = 0.20
FTR_WEIGHT = 0.15

NET_RATING_WEIGHT = 0.04
CROSS_TERM_WEIGHT = 0.03

FF_MOMENTUM_SCALE = 2.0
FALLBACK_MOMENTUM_SCALE = 1.5
FALLBACK_HOME_WEIGHT = 0.35
TEMPO_SCALE = 3.0

# Home bonus shrinks once Four Factors favour the away side by more than this
HOME_DAMPING_TRIGGER = -3.0
HOME_DAMPING_FLOOR = 0.4

STRONG_DISAGREEMENT = 0.8
DISAGREEMENT_DEAD_ZONE = 0.5
OVERRIDE_EFFICIENCY_SHARE = 0.7

LOGISTIC_SCALE = 8.0

PACE_MISMATCH_GAP = 5.0
PACE_MISMATCH_FACTOR = 0.3

DATA_QUALITY_FOUR_FACTORS = 85.0
DATA_QUALITY_FALLBACK = 70.0
CERTAINTY_SCALE = 20.0

MONEYLINE_EDGE_THRESHOLD = 5.0
SPREAD_EDGE_THRESHOLD = 3.0

OVERRIDE_NOTE = "Schedule-adjusted ratings override raw Four Factors (large disagreement)"


def _finite(value: float, default: float = 0.0) -> float:
    return value if value is not None and math.isfinite(value) else default


# ---------------------------------------------------------------------------
# Defensive percentile adjustment
# ---------------------------------------------------------------------------

def defensive_percentile(defensive_rating: float, league: LeagueConstants) -> Tuple[float, str]:
    """
    Percentile (0 = best defence) and tier for a defensive rating.

    Cut points are 90 / 95 / 105 / 110 on the college index (league average
    100) and scale with the league average elsewhere.
    """
    r = defensive_rating / league.league_avg_efficiency * 100.0
    if r < 90:
        pct, tier = 5 + (90 - r) * 0.5, "elite"
    elif r < 95:
        pct, tier = 10 + (95 - r) * 3, "good"
    elif r < 105:
        pct, tier = 25 + (105 - r) * 2.5, "average"
    elif r < 110:
        pct, tier = 75 + (110 - r) * 3, "below_average"
    else:
        pct, tier = 90 + min(10.0, r - 110), "poor"
    return clamp(pct, 0.0, 100.0), tier


def defensive_adjustment(
    offensive_rating: float,
    opponent_defensive_rating: float,
    league: LeagueConstants,
    coefficients: CalibrationCoefficients,
) -> float:
    """Fractional scoring adjustment a defence imposes on an offence."""
    percentile, _ = defensive_percentile(opponent_defensive_rating, league)
    mult = coefficients.percentile_multipliers
    if percentile < 10:
        multiplier = mult.elite
    elif percentile < 25:
        multiplier = mult.good
    elif percentile < 75:
        multiplier = mult.average
    elif percentile < 90:
        multiplier = mult.below_average
    else:
        multiplier = mult.poor

    avg = league.league_avg_efficiency
    adjustment = (
        (opponent_defensive_rating - avg) / avg
        * coefficients.base_defensive_adjustment_factor
        * multiplier
    )
    ratio = offensive_rating / max(opponent_defensive_rating, avg * 0.8)
    if ratio > 1.1:
        adjustment += 0.05
    return adjustment


def expected_pace(home_pace: float, away_pace: float, league: LeagueConstants) -> float:
    """Mean pace; past a five-possession gap, the slower pace plus 70% of the gap."""
    gap = abs(home_pace - away_pace)
    pace = (home_pace + away_pace) / 2.0
    if gap > PACE_MISMATCH_GAP:
        pace = min(home_pace, away_pace) + gap * (1.0 - PACE_MISMATCH_FACTOR)
    return clamp(pace, league.pace_min, league.pace_max)


# ---------------------------------------------------------------------------
# Alternate spread
# ---------------------------------------------------------------------------

def suggest_alternate_spread(
    main_spread: float,
    home_win_prob: float,
    confidence: float,
    home_team: str,
    away_team: str,
    league: LeagueConstants,
) -> AlternateSpread:
    """
    Suggest an alternate line around ``main_spread`` (home margin convention).

    Near a key number with confidence >= 70: buy past it at >= 80, else sell
    past it.  Otherwise >= 85 buys aggressively, <= 65 sells for safety, and
    anything between nudges toward the favourite when the probability edge
    exceeds 15 points.
    """
    steps = league.alt_line_steps
    abs_spread = abs(main_spread)
    home_favored = main_spread > 0
    favored_name = home_team if home_favored else away_team
    underdog_name = away_team if home_favored else home_team
    sign = 1.0 if home_favored else -1.0

    near_key = next((k for k in league.key_numbers if abs(abs_spread - k) <= 0.5), None)

    if near_key is not None and confidence >= 70:
        if confidence >= 80:
            alt = main_spread + sign * steps.key_number
            direction, team, risk = "buy", favored_name, "aggressive"
            reason = f"High confidence pick - buy {favored_name} past key number {near_key:g}"
            alt_conf = confidence - 5
        else:
            alt = main_spread - sign * steps.key_number
            direction, team, risk = "sell", underdog_name, "safer"
            reason = f"Sell past key number {near_key:g} - take {underdog_name} +{abs(alt):.1f}"
            alt_conf = confidence + 5
    elif confidence >= 85:
        alt = main_spread + sign * steps.aggressive
        direction, team, risk = "buy", favored_name, "aggressive"
        reason = f"Strong edge detected - consider {favored_name} -{abs(alt):.1f}"
        alt_conf = confidence - 10
    elif confidence <= 65:
        alt = main_spread - sign * steps.safer
        direction, team, risk = "sell", underdog_name, "safer"
        reason = f"Lower confidence game - safer to take {underdog_name} +{abs(alt):.1f}"
        alt_conf = min(85.0, confidence + 10)
    elif abs(home_win_prob - 0.5) > 0.15:
        alt = main_spread + sign * steps.standard
        direction, team, risk = "buy", favored_name, "standard"
        reason = f"Consider buying {favored_name} to -{abs(alt):.1f}"
        alt_conf = confidence - 3
    else:
        alt = main_spread - sign * steps.standard
        direction, team, risk = "sell", underdog_name, "safer"
        reason = f"Close matchup - consider {underdog_name} +{abs(alt):.1f} for safety"
        alt_conf = confidence + 3

    return AlternateSpread(
        spread=round_to_half(alt),
        direction=direction,
        team=team,
        reason=reason,
        confidence=clamp(alt_conf, 50.0, 95.0),
        risk_level=risk,
    )


# ---------------------------------------------------------------------------
# Predictor
# ---------------------------------------------------------------------------

class MatchupPredictor:
    """
    Combines two :class:`TeamAnalytics` into a :class:`MatchupPrediction`.

    The calibrator and simulator are optional collaborators resolved once at
    construction (the calibrator falls back to the configured Platt
    parameters); a simulator failure is logged and the prediction is
    returned without a simulation.
    """

    def __init__(
        self,
        sport=None,
        coefficients: Optional[CalibrationCoefficients] = None,
        calibrator: Optional[ProbabilityCalibrator] = None,
        simulator: Optional[GameSimulator] = None,
    ):
        if simulator is not None and not isinstance(simulator, GameSimulator):
            raise TypeError("simulator must implement GameSimulator")
        self.league: LeagueConstants = for_sport(sport)
        self.coefficients = coefficients or DEFAULT_COEFFICIENTS
        self.calibrator = calibrator or ProbabilityCalibrator(load_recalibration_params())
        self.simulator = simulator

    # -- scoring terms ------------------------------------------------------

    @staticmethod
    def efficiency_score(home: TeamAnalytics, away: TeamAnalytics) -> float:
        net = (home.net_rating - away.net_rating) * NET_RATING_WEIGHT
        cross = (
            (home.offensive_efficiency - away.defensive_efficiency)
            - (away.offensive_efficiency - home.defensive_efficiency)
        ) * CROSS_TERM_WEIGHT
        return _finite(net + cross)

    def _four_factors(
        self,
        home: TeamAnalytics,
        away: TeamAnalytics,
        home_stats: TeamStats,
        away_stats: TeamStats,
        eff_score: float,
    ) -> Tuple[float, FourFactorsTrace, List[str]]:
        efg_diff = as_percentage(home_stats.effective_fg_pct) - as_percentage(away_stats.effective_fg_pct)
        tov_diff = as_percentage(away_stats.turnover_rate) - as_percentage(home_stats.turnover_rate)
        orb_diff = as_percentage(home_stats.offensive_rebound_rate) - as_percentage(away_stats.offensive_rebound_rate)
        ftr_diff = as_percentage(home_stats.free_throw_rate) - as_percentage(away_stats.free_throw_rate)

        factor_score = _finite(
            efg_diff * EFG_WEIGHT
            + tov_diff * TOV_WEIGHT
            + orb_diff * ORB_WEIGHT
            + ftr_diff * FTR_WEIGHT
        )

        tempo = 0.0
        if (
            home_stats.pace and away_stats.pace
            and home_stats.offensive_efficiency and away_stats.offensive_efficiency
        ):
            pace = (home_stats.pace + away_stats.pace) / 2.0
            cross = (
                (home.season_offensive_efficiency - away.season_defensive_efficiency)
                - (away.season_offensive_efficiency - home.season_defensive_efficiency)
            )
            tempo = _finite(cross / 100.0 * (pace / self.league.league_avg_pace) * TEMPO_SCALE)

        home_adv = home.home_advantage
        if factor_score < HOME_DAMPING_TRIGGER:
            home_adv = home_adv * max(HOME_DAMPING_FLOOR, 1.0 + factor_score / 6.0)

        momentum = (home.momentum - away.momentum) / 200.0 * FF_MOMENTUM_SCALE
        ff_total = factor_score + tempo + home_adv + momentum

        override = (
            abs(eff_score) > STRONG_DISAGREEMENT
            and (
                (ff_total > 0 and eff_score < -DISAGREEMENT_DEAD_ZONE)
                or (ff_total <= 0 and eff_score > DISAGREEMENT_DEAD_ZONE)
            )
        )
        if override:
            final = eff_score * OVERRIDE_EFFICIENCY_SHARE + ff_total * (1.0 - OVERRIDE_EFFICIENCY_SHARE)
        else:
            final = ff_total

        factors: List[str] = []
        if abs(efg_diff) > 3:
            team = home_stats.name if efg_diff > 0 else away_stats.name
            factors.append(f"{team} has {abs(efg_diff):.1f}% better eFG% (40% of prediction)")
        if abs(tov_diff) > 2:
            team = home_stats.name if tov_diff > 0 else away_stats.name
            factors.append(f"{team} turns ball over {abs(tov_diff):.1f}% less (25% of prediction)")
        if abs(orb_diff) > 3:
            team = home_stats.name if orb_diff > 0 else away_stats.name
            factors.append(f"{team} has {abs(orb_diff):.1f}% better ORB% (20% of prediction)")
        if abs(ftr_diff) > 3:
            team = home_stats.name if ftr_diff > 0 else away_stats.name
            factors.append(f"{team} gets to the line {abs(ftr_diff):.1f}% more often (15% of prediction)")
        if home_stats.pace and away_stats.pace:
            factors.append(self._pace_description((home_stats.pace + away_stats.pace) / 2.0))
        if override:
            factors.append(OVERRIDE_NOTE)

        trace = FourFactorsTrace(
            factor_score=factor_score,
            tempo_adjustment=tempo,
            home_advantage=home_adv,
            momentum_term=momentum,
            four_factors_total=ff_total,
            efficiency_score=eff_score,
            override_applied=override,
            final_score=final,
            raw_probability=0.0,
            calibrated_probability=0.0,
            calibration_applied=False,
        )
        return final, trace, factors

    def _fallback(
        self,
        home: TeamAnalytics,
        away: TeamAnalytics,
        eff_score: float,
    ) -> Tuple[float, FallbackTrace, List[str]]:
        net_term = _finite((home.net_rating - away.net_rating) * NET_RATING_WEIGHT)
        matchup_term = _finite(eff_score - net_term)
        momentum_term = (home.momentum - away.momentum) / 200.0 * FALLBACK_MOMENTUM_SCALE
        home_term = home.home_advantage * FALLBACK_HOME_WEIGHT
        final = net_term + matchup_term + momentum_term + home_term

        factors: List[str] = []
        if abs(net_term) > 0.5:
            factors.append(f"{home.team_name if net_term > 0 else away.team_name} has superior overall rating")
        if abs(momentum_term) > 0.5:
            factors.append(f"{home.team_name if momentum_term > 0 else away.team_name} has strong momentum")
        if home.shooting_efficiency > away.shooting_efficiency + 10:
            factors.append(f"{home.team_name} has better shooting efficiency")
        elif away.shooting_efficiency > home.shooting_efficiency + 10:
            factors.append(f"{away.team_name} has better shooting efficiency")

        trace = FallbackTrace(
            net_rating_term=net_term,
            matchup_term=matchup_term,
            momentum_term=momentum_term,
            home_term=home_term,
            efficiency_score=eff_score,
            final_score=final,
            raw_probability=0.0,
            calibrated_probability=0.0,
            calibration_applied=False,
        )
        return final, trace, factors

    def _pace_description(self, pace: float) -> str:
        base = self.league.league_avg_pace
        if pace > base * 72.0 / 70.0:
            label = "fast"
        elif pace > base * 68.0 / 70.0:
            label = "average"
        else:
            label = "slow"
        return f"Expected pace: {pace:.1f} possessions ({label})"

    # -- score projection ---------------------------------------------------

    def projected_total(self, home: TeamAnalytics, away: TeamAnalytics) -> float:
        """Tempo-free total from SOS-adjusted efficiencies and defensive percentiles."""
        league = self.league
        pace = expected_pace(home.pace, away.pace, league)

        home_off = home.sos_adjusted_offensive_efficiency
        away_off = away.sos_adjusted_offensive_efficiency
        home_def = home.sos_adjusted_defensive_efficiency
        away_def = away.sos_adjusted_defensive_efficiency

        home_impact = defensive_adjustment(home_off, away_def, league, self.coefficients)
        away_impact = defensive_adjustment(away_off, home_def, league, self.coefficients)

        home_pts = clamp(home_off / 100.0 * pace * (1.0 + home_impact), league.score_min, league.score_max)
        away_pts = clamp(away_off / 100.0 * pace * (1.0 + away_impact), league.score_min, league.score_max)
        return _finite(home_pts + away_pts, league.league_avg_ppg * 2.0)

    def _final_scores(self, total: float, home_prob: float) -> Tuple[int, int]:
        league = self.league
        margin = probability_to_margin(home_prob, league.points_per_logit, league.max_margin)
        home_pts = clamp((total + margin) / 2.0, league.score_min, league.score_max)
        away_pts = clamp((total - margin) / 2.0, league.score_min, league.score_max)
        home_final = round_half_up(home_pts)
        away_final = round_half_up(away_pts)
        if home_final == away_final:
            if home_prob >= 0.5:
                home_final += 1
            else:
                away_final += 1
        return home_final, away_final

    # -- entry point --------------------------------------------------------

    def predict(
        self,
        away: TeamAnalytics,
        home: TeamAnalytics,
        away_stats: TeamStats,
        home_stats: TeamStats,
    ) -> MatchupPrediction:
        eff_score = self.efficiency_score(home, away)

        if home_stats.has_four_factors() and away_stats.has_four_factors():
            score, trace, factors = self._four_factors(home, away, home_stats, away_stats, eff_score)
        else:
            score, trace, factors = self._fallback(home, away, eff_score)

        raw_prob = score_to_probability(_finite(score), LOGISTIC_SCALE)
        home_prob = raw_prob
        applied = self.calibrator is not None and self.calibrator.is_active
        if applied:
            home_prob = self.calibrator.apply(raw_prob)
        trace = replace(
            trace,
            raw_probability=raw_prob,
            calibrated_probability=home_prob,
            calibration_applied=applied,
        )

        total = self.projected_total(home, away)
        home_final, away_final = self._final_scores(total, home_prob)
        spread = float(home_final - away_final)

        avg_consistency = (home.consistency + away.consistency) / 2.0
        quality = DATA_QUALITY_FOUR_FACTORS if isinstance(trace, FourFactorsTrace) else DATA_QUALITY_FALLBACK
        confidence = clamp(
            (quality + avg_consistency + abs(home_prob - 0.5) * CERTAINTY_SCALE) / 3.0, 60.0, 95.0
        )

        alternate = suggest_alternate_spread(
            spread, home_prob, confidence, home_stats.name, away_stats.name, self.league
        )

        home_pct = home_prob * 100.0
        prediction = MatchupPrediction(
            home_team=home_stats.name,
            away_team=away_stats.name,
            sport=self.league.sport_id,
            win_probability=WinProbability(home=home_pct, away=100.0 - home_pct),
            predicted_score=PredictedScore(home=home_final, away=away_final),
            predicted_spread=spread,
            predicted_total=float(home_final + away_final),
            alternate_spread=alternate,
            confidence=confidence,
            key_factors=tuple(factors),
            trace=trace,
            simulation=self._simulate(home, away, home_stats, away_stats),
        )
        logger.debug(
            "%s @ %s: path=%s p_home=%.3f score %d-%d",
            away_stats.name, home_stats.name, trace.path, home_prob, away_final, home_final,
        )
        return prediction

    def _simulate(self, home, away, home_stats, away_stats) -> Optional[SimulationResult]:
        if self.simulator is None:
            return None
        try:
            return self.simulator.simulate(home, away, home_stats, away_stats, self.league)
        except Exception as exc:
            logger.warning(
                "Simulation failed for %s @ %s: %s", away_stats.name, home_stats.name, exc
            )
            return None


def predict_matchup(
    away_analytics: TeamAnalytics,
    home_analytics: TeamAnalytics,
    away_stats: TeamStats,
    home_stats: TeamStats,
    sport=None,
    coefficients: Optional[CalibrationCoefficients] = None,
    calibrator: Optional[ProbabilityCalibrator] = None,
    simulator: Optional[GameSimulator] = None,
) -> MatchupPrediction:
    """Module-level entry point; see :class:`MatchupPredictor`."""
    predictor = MatchupPredictor(sport, coefficients, calibrator, simulator)
    return predictor.predict(away_analytics, home_analytics, away_stats, home_stats)


# ---------------------------------------------------------------------------
# Value bets
# ---------------------------------------------------------------------------

def identify_value_bets(
    prediction: MatchupPrediction,
    moneyline_home: Optional[float] = None,
    moneyline_away: Optional[float] = None,
    home_spread: Optional[float] = None,
) -> MatchupPrediction:
    """
    Return a copy of ``prediction`` carrying value bets against a market.

    Moneylines: edge = model win% - market win%, flagged above five points.
    With both sides quoted the market is de-vigged with Shin; with one side
    the raw implied probability is used.  Invalid prices are ignored.

    Spread: ``home_spread`` is the market home line (negative = home
    favoured); flagged when the model margin differs by more than three.
    """
    bets: List[ValueBet] = []

    home_valid = is_valid_american(moneyline_home)
    away_valid = is_valid_american(moneyline_away)
    market_home = market_away = None
    if home_valid and away_valid:
        h, a = remove_vig_shin(moneyline_home, moneyline_away)
        market_home, market_away = h * 100.0, a * 100.0
    elif home_valid:
        market_home = implied_prob(moneyline_home) * 100.0
    elif away_valid:
        market_away = implied_prob(moneyline_away) * 100.0

    for team, model_pct, market_pct in (
        (prediction.away_team, prediction.win_probability.away, market_away),
        (prediction.home_team, prediction.win_probability.home, market_home),
    ):
        if market_pct is None:
            continue
        edge = model_pct - market_pct
        if edge > MONEYLINE_EDGE_THRESHOLD:
            bets.append(ValueBet(
                bet_type="moneyline",
                team=team,
                edge=edge,
                model_value=model_pct,
                market_value=market_pct,
                confidence=min(95.0, prediction.confidence + edge),
                description=(
                    f"Model gives {team} {model_pct:.1f}%, market implies "
                    f"{market_pct:.1f}% ({edge:.1f}% edge)"
                ),
            ))

    if home_spread is not None and math.isfinite(home_spread):
        market_margin = -home_spread
        diff = prediction.predicted_spread - market_margin
        if abs(diff) > SPREAD_EDGE_THRESHOLD:
            team = prediction.home_team if diff > 0 else prediction.away_team
            bets.append(ValueBet(
                bet_type="spread",
                team=team,
                edge=abs(diff),
                model_value=prediction.predicted_spread,
                market_value=market_margin,
                confidence=min(90.0, prediction.confidence + abs(diff) * 2.0),
                description=(
                    f"Model projects home margin {prediction.predicted_spread:+.1f}, "
                    f"line is {home_spread:+.1f}"
                ),
            ))

    return prediction.with_value_bets(bets)
