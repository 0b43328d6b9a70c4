"""
Line-movement monitor for tracked pregame predictions.

Each sweep compares the line captured when a prediction was made against
the live bookmaker consensus and decides whether the prediction is stale
enough to regenerate.  A prediction is *actionable* only when:

    1. The spread, total or either moneyline moved past its threshold.
       Moneylines are compared in implied-probability space, so a 20-point
       threshold means 20 percentage points of win probability.
    2. The game has not started (hard guardrail, checked twice).
    3. It sits inside the monitoring window and has re-prediction budget
       left (max count, cooldown since the last re-prediction).

Collaborators (odds feed, tracked predictions, prediction history) are
injected behind small ABCs so a sweep can run against The Odds API and a
database in production or plain fakes in tests.
"""

import enum
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from matchup_forecast.config import load_line_movement_thresholds, load_monitor_sports
from matchup_forecast.core.odds_math import implied_prob, is_valid_american, prob_to_american
from matchup_forecast.schemas import LineMovementThresholds, OddsGame, TrackedPrediction

logger = logging.getLogger(__name__)

LIVE_GAME_REASON = "Game is live - pregame predictions only"

# A regenerated prediction counts as changed when either moves this much
MATERIAL_SPREAD_CHANGE = 1.0
MATERIAL_CONFIDENCE_CHANGE = 5.0


class MovementState(str, enum.Enum):
    NO_MOVE = "no_move"
    ELIGIBLE = "eligible"
    COOLDOWN = "cooldown"
    MAX_REACHED = "max_reached"
    OUTSIDE_WINDOW = "outside_window"
    EXPIRED = "expired"
    REPREDICTED = "repredicted"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class LineMovement:
    """Captured line vs. live consensus for one tracked prediction."""

    prediction_id: str
    game_id: str
    sport: str
    home_team: str
    away_team: str
    game_time: datetime

    original_spread: Optional[float]
    original_total: Optional[float]
    original_moneyline_home: Optional[float]
    original_moneyline_away: Optional[float]

    current_spread: Optional[float]
    current_total: Optional[float]
    current_moneyline_home: Optional[float]
    current_moneyline_away: Optional[float]

    spread_movement: Optional[float] = None
    total_movement: Optional[float] = None
    home_ml_change: Optional[float] = None    # implied-probability points
    away_ml_change: Optional[float] = None

    significant_spread_move: bool = False
    significant_total_move: bool = False
    significant_ml_move: bool = False
    should_repredict: bool = False
    state: MovementState = MovementState.NO_MOVE
    reasons: List[str] = field(default_factory=list)

    predicted_spread: Optional[float] = None
    confidence: Optional[float] = None
    reprediction_count: int = 0
    last_repredicted_at: Optional[datetime] = None
    minutes_to_start: Optional[float] = None

    @property
    def is_significant(self) -> bool:
        return self.significant_spread_move or self.significant_total_move or self.significant_ml_move


@dataclass
class MonitoringResult:
    timestamp: datetime
    games_checked: int = 0
    predictions_matched: int = 0
    significant_movements: int = 0
    repredictions_triggered: int = 0
    movements: List[LineMovement] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def summary(self) -> Dict:
        return {
            "total": len(self.movements),
            "significant_spread": sum(1 for m in self.movements if m.significant_spread_move),
            "significant_total": sum(1 for m in self.movements if m.significant_total_move),
            "significant_ml": sum(1 for m in self.movements if m.significant_ml_move),
            "pending_reprediction": sum(1 for m in self.movements if m.should_repredict),
        }


@dataclass
class RepredictionResult:
    prediction_id: str
    game_id: str
    success: bool
    previous_spread: Optional[float] = None
    previous_confidence: Optional[float] = None
    new_spread: Optional[float] = None
    new_confidence: Optional[float] = None
    spread_change: Optional[float] = None
    confidence_change: Optional[float] = None
    material_change: bool = False
    reasons: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RepredictionBatchResult:
    timestamp: datetime
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    material_changes: int = 0
    results: List[RepredictionResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class MarketOddsProvider(ABC):
    """Live odds feed; one call returns every upcoming game for a sport."""

    @abstractmethod
    def get_upcoming_games(self, sport: str) -> List[OddsGame]:
        ...


class TrackedPredictionSource(ABC):
    @abstractmethod
    def get_unvalidated_predictions(
        self,
        sports: Sequence[str],
        window_start: datetime,
        window_end: datetime,
    ) -> List[TrackedPrediction]:
        ...


class PredictionHistoryStore(ABC):
    """Read-only view of past line-movement re-predictions."""

    @abstractmethod
    def get_reprediction_counts(self, prediction_ids: Sequence[str]) -> Dict[str, int]:
        ...

    @abstractmethod
    def get_last_repredicted_at(self, prediction_ids: Sequence[str]) -> Dict[str, datetime]:
        ...


# ---------------------------------------------------------------------------
# Consensus
# ---------------------------------------------------------------------------

def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def consensus_spread(game: OddsGame) -> Optional[float]:
    """Mean home spread point across books."""
    points = []
    for book in game.bookmakers:
        market = book.market("spreads")
        if market is None:
            continue
        for outcome in market.outcomes:
            if outcome.name == game.home_team and outcome.point is not None:
                points.append(outcome.point)
                break
    return _mean(points)


def consensus_total(game: OddsGame) -> Optional[float]:
    points = []
    for book in game.bookmakers:
        market = book.market("totals")
        if market is None:
            continue
        for outcome in market.outcomes:
            if outcome.name == "Over" and outcome.point is not None:
                points.append(outcome.point)
                break
    return _mean(points)


def consensus_moneyline_probs(game: OddsGame) -> Dict[str, Optional[float]]:
    """
    Mean implied probability per side across books.

    Averaging is done on probabilities, not American prices: the mean of
    -110 and +110 is not a meaningful price.  Invalid quotes are skipped.
    """
    home, away = [], []
    for book in game.bookmakers:
        market = book.market("h2h")
        if market is None:
            continue
        for outcome in market.outcomes:
            if not is_valid_american(outcome.price):
                if outcome.price is not None:
                    logger.debug("Skipping invalid price %r from %s", outcome.price, book.key)
                continue
            if outcome.name == game.home_team:
                home.append(implied_prob(outcome.price))
            elif outcome.name == game.away_team:
                away.append(implied_prob(outcome.price))
    return {"home": _mean(home), "away": _mean(away)}


def _safe_implied(american: Optional[float]) -> Optional[float]:
    if not is_valid_american(american):
        return None
    return implied_prob(american)


def _as_american(prob: Optional[float]) -> Optional[float]:
    if prob is None or not 0.0 < prob < 1.0:
        return None
    return round(prob_to_american(prob), 2)


def _prob_change(original: Optional[float], current: Optional[float]) -> Optional[float]:
    if original is None or current is None:
        return None
    return round(abs(current - original) * 100.0, 4)


# ---------------------------------------------------------------------------
# Single-game analysis
# ---------------------------------------------------------------------------

def analyze_line_movement(
    prediction: TrackedPrediction,
    current_odds: OddsGame,
    thresholds: Optional[LineMovementThresholds] = None,
    now: Optional[datetime] = None,
    reprediction_count: int = 0,
    last_repredicted_at: Optional[datetime] = None,
) -> LineMovement:
    """Compare one tracked prediction with the live consensus."""
    thresholds = thresholds or LineMovementThresholds()
    now = _utc(now or datetime.now(timezone.utc))
    game_time = _utc(prediction.game_time)
    original = prediction.original_odds

    cur_spread = consensus_spread(current_odds)
    cur_total = consensus_total(current_odds)
    cur_ml = consensus_moneyline_probs(current_odds)

    movement = LineMovement(
        prediction_id=prediction.prediction_id,
        game_id=prediction.game_id,
        sport=prediction.sport,
        home_team=prediction.home_team,
        away_team=prediction.away_team,
        game_time=game_time,
        original_spread=original.spread,
        original_total=original.total,
        original_moneyline_home=original.moneyline_home,
        original_moneyline_away=original.moneyline_away,
        current_spread=cur_spread,
        current_total=cur_total,
        current_moneyline_home=_as_american(cur_ml["home"]),
        current_moneyline_away=_as_american(cur_ml["away"]),
        predicted_spread=prediction.predicted_spread,
        confidence=prediction.confidence,
        reprediction_count=reprediction_count,
        last_repredicted_at=last_repredicted_at,
    )

    if original.spread is not None and cur_spread is not None:
        movement.spread_movement = abs(cur_spread - original.spread)
    if original.total is not None and cur_total is not None:
        movement.total_movement = abs(cur_total - original.total)
    movement.home_ml_change = _prob_change(_safe_implied(original.moneyline_home), cur_ml["home"])
    movement.away_ml_change = _prob_change(_safe_implied(original.moneyline_away), cur_ml["away"])

    minutes_to_start = (game_time - now).total_seconds() / 60.0
    movement.minutes_to_start = minutes_to_start

    if minutes_to_start <= 0:
        movement.state = MovementState.EXPIRED
        movement.reasons.append(LIVE_GAME_REASON)
        return movement

    movement.significant_spread_move = (
        movement.spread_movement is not None
        and movement.spread_movement >= thresholds.spread_threshold
    )
    movement.significant_total_move = (
        movement.total_movement is not None
        and movement.total_movement >= thresholds.total_threshold
    )
    movement.significant_ml_move = any(
        change is not None and change >= thresholds.moneyline_threshold
        for change in (movement.home_ml_change, movement.away_ml_change)
    )

    if movement.significant_spread_move:
        direction = "away" if cur_spread > original.spread else "home"
        movement.reasons.append(f"Spread moved {movement.spread_movement:.1f} pts toward {direction}")
    if movement.significant_total_move:
        direction = "up" if cur_total > original.total else "down"
        movement.reasons.append(f"Total moved {direction} {movement.total_movement:.1f} pts")
    if movement.significant_ml_move:
        movement.reasons.append("Moneyline shifted significantly")

    if not movement.is_significant:
        movement.reasons.append("No significant line movement")
        return movement

    in_window = (
        minutes_to_start <= thresholds.hours_before_game * 60.0
        and minutes_to_start >= thresholds.min_minutes_before_game
    )
    if not in_window:
        movement.state = MovementState.OUTSIDE_WINDOW
        movement.reasons.append(f"Outside monitoring window ({minutes_to_start:.0f}min to start)")
        return movement

    blocked = None
    if last_repredicted_at is not None:
        since = (now - _utc(last_repredicted_at)).total_seconds() / 60.0
        if since < thresholds.reprediction_cooldown_minutes:
            remaining = round(thresholds.reprediction_cooldown_minutes - since)
            movement.reasons.append(f"Cooldown: {remaining}min remaining")
            blocked = MovementState.COOLDOWN
    if reprediction_count >= thresholds.max_repredictions_per_game:
        movement.reasons.append(f"Max repredictions ({thresholds.max_repredictions_per_game}) reached")
        blocked = MovementState.MAX_REACHED

    if blocked is not None:
        movement.state = blocked
        return movement

    movement.state = MovementState.ELIGIBLE
    movement.should_repredict = True
    return movement


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

class LineMovementMonitor:
    """
    Periodic sweep over tracked predictions.

    Usage::

        monitor = LineMovementMonitor(odds_provider, prediction_source, history)
        result = monitor.monitor_odds_movement()   # call from a scheduler
    """

    def __init__(
        self,
        odds_provider: MarketOddsProvider,
        prediction_source: TrackedPredictionSource,
        history_store: PredictionHistoryStore,
        thresholds: Optional[LineMovementThresholds] = None,
        sports: Optional[Sequence[str]] = None,
    ):
        self._odds = odds_provider
        self._predictions = prediction_source
        self._history = history_store
        self.thresholds = thresholds or load_line_movement_thresholds()
        self.sports = list(sports) if sports else None
        self._sport_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._last_run: Optional[datetime] = None

    def _lock_for(self, sport: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._sport_locks.get(sport)
            if lock is None:
                lock = threading.Lock()
                self._sport_locks[sport] = lock
            return lock

    def monitor_odds_movement(
        self,
        sports: Optional[Iterable[str]] = None,
        thresholds: Optional[LineMovementThresholds] = None,
        now: Optional[datetime] = None,
    ) -> MonitoringResult:
        if sports is None:
            sports = self.sports
        if sports is None:
            sports = load_monitor_sports()
        sports = list(sports)
        thresholds = thresholds or self.thresholds
        now = _utc(now or datetime.now(timezone.utc))
        result = MonitoringResult(timestamp=now)

        window_start = now + timedelta(minutes=thresholds.min_minutes_before_game)
        window_end = now + timedelta(hours=thresholds.hours_before_game)

        try:
            candidates = self._predictions.get_unvalidated_predictions(sports, window_start, window_end)
            predictions = [
                p for p in candidates
                if not p.validated
                and p.sport in sports
                and window_start < _utc(p.game_time) < window_end
            ]
            ids = [p.prediction_id for p in predictions]
            counts = self._history.get_reprediction_counts(ids) if ids else {}
            last_times = self._history.get_last_repredicted_at(ids) if ids else {}
        except Exception as exc:
            msg = f"Error loading tracked predictions: {exc}"
            logger.error(msg)
            result.errors.append(msg)
            return result

        result.predictions_matched = len(predictions)

        by_sport: Dict[str, List[TrackedPrediction]] = {}
        for pred in predictions:
            by_sport.setdefault(pred.sport, []).append(pred)

        for sport, sport_predictions in by_sport.items():
            lock = self._lock_for(sport)
            if not lock.acquire(blocking=False):
                msg = f"Sweep already in progress for {sport}, skipped"
                logger.warning(msg)
                result.errors.append(msg)
                continue
            try:
                self._sweep_sport(sport, sport_predictions, thresholds, now, counts, last_times, result)
            except Exception as exc:
                msg = f"Error fetching odds for {sport}: {exc}"
                logger.error(msg)
                result.errors.append(msg)
            finally:
                lock.release()

        result.significant_movements = len(result.movements)
        result.repredictions_triggered = sum(1 for m in result.movements if m.should_repredict)
        self._last_run = now

        logger.info(
            "Line movement sweep: %d predictions, %d games checked, %d significant (%d eligible), %d errors",
            result.predictions_matched,
            result.games_checked,
            result.significant_movements,
            result.repredictions_triggered,
            len(result.errors),
        )
        return result

    def _sweep_sport(self, sport, predictions, thresholds, now, counts, last_times, result) -> None:
        games = [
            g if isinstance(g, OddsGame) else OddsGame.model_validate(g)
            for g in self._odds.get_upcoming_games(sport)
        ]
        result.games_checked += len(games)
        by_id = {g.id: g for g in games}

        for pred in predictions:
            game = by_id.get(pred.game_id)
            if game is None:
                logger.debug("No live odds for %s (%s)", pred.game_id, sport)
                continue
            movement = analyze_line_movement(
                pred,
                game,
                thresholds,
                now=now,
                reprediction_count=counts.get(pred.prediction_id, 0),
                last_repredicted_at=last_times.get(pred.prediction_id),
            )
            if movement.is_significant:
                result.movements.append(movement)

    def get_status(self) -> Dict:
        with self._locks_guard:
            locks = list(self._sport_locks.items())
        return {
            "sports": self.sports,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "sports_in_progress": sorted(s for s, lock in locks if lock.locked()),
        }


# ---------------------------------------------------------------------------
# Re-prediction
# ---------------------------------------------------------------------------

def repredict_movements(
    movements: Iterable[LineMovement],
    regenerate: Callable[[LineMovement], object],
    now: Optional[datetime] = None,
) -> RepredictionBatchResult:
    """
    Regenerate every eligible movement's prediction via ``regenerate``.

    ``regenerate`` returns the fresh prediction (anything exposing
    ``predicted_spread`` and ``confidence``) or ``None`` on failure.
    Persisting it is the caller's job.
    """
    now = _utc(now or datetime.now(timezone.utc))
    batch = RepredictionBatchResult(timestamp=now)

    for movement in movements:
        if not movement.should_repredict:
            continue
        if _utc(movement.game_time) <= now:
            logger.info("Skipping live game: %s @ %s", movement.away_team, movement.home_team)
            continue

        batch.attempted += 1
        outcome = RepredictionResult(
            prediction_id=movement.prediction_id,
            game_id=movement.game_id,
            success=False,
            previous_spread=movement.predicted_spread,
            previous_confidence=movement.confidence,
            reasons=list(movement.reasons),
        )
        try:
            fresh = regenerate(movement)
        except Exception as exc:
            outcome.error = str(exc)
            fresh = None
        if fresh is None:
            outcome.error = outcome.error or "Generation failed"
            batch.failed += 1
            batch.errors.append(f"{movement.game_id}: {outcome.error}")
            batch.results.append(outcome)
            logger.warning("Failed to repredict %s: %s", movement.game_id, outcome.error)
            continue

        outcome.success = True
        outcome.new_spread = fresh.predicted_spread
        outcome.new_confidence = fresh.confidence
        if movement.predicted_spread is not None and fresh.predicted_spread is not None:
            outcome.spread_change = abs(fresh.predicted_spread - movement.predicted_spread)
        if movement.confidence is not None and fresh.confidence is not None:
            outcome.confidence_change = abs(fresh.confidence - movement.confidence)
        outcome.material_change = (
            (outcome.spread_change is not None and outcome.spread_change >= MATERIAL_SPREAD_CHANGE)
            or (outcome.confidence_change is not None and outcome.confidence_change >= MATERIAL_CONFIDENCE_CHANGE)
        )

        movement.state = MovementState.REPREDICTED
        movement.should_repredict = False
        movement.reprediction_count += 1
        movement.last_repredicted_at = now

        batch.succeeded += 1
        if outcome.material_change:
            batch.material_changes += 1
        batch.results.append(outcome)

    logger.info(
        "Re-prediction batch: %d attempted, %d succeeded, %d material changes",
        batch.attempted, batch.succeeded, batch.material_changes,
    )
    return batch
