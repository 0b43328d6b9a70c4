"""
Tests for the line-movement monitor
Run with: pytest tests/test_odds_monitor.py -v
"""

import threading
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from matchup_forecast.schemas import LineMovementThresholds, OddsGame, OddsSnapshot, TrackedPrediction
from matchup_forecast.services.odds_monitor import (
    LIVE_GAME_REASON,
    LineMovementMonitor,
    MarketOddsProvider,
    MovementState,
    PredictionHistoryStore,
    TrackedPredictionSource,
    analyze_line_movement,
    consensus_moneyline_probs,
    consensus_spread,
    consensus_total,
    repredict_movements,
)

NOW = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)
HOME = "Duke Blue Devils"
AWAY = "North Carolina Tar Heels"
NCAAB = "basketball_ncaab"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _book(key="dk", spread=-3.0, total=140.0, ml_home=-150, ml_away=130):
    return {
        "key": key,
        "markets": [
            {"key": "spreads", "outcomes": [
                {"name": HOME, "price": -110, "point": spread},
                {"name": AWAY, "price": -110, "point": -spread},
            ]},
            {"key": "totals", "outcomes": [
                {"name": "Over", "price": -110, "point": total},
                {"name": "Under", "price": -110, "point": total},
            ]},
            {"key": "h2h", "outcomes": [
                {"name": HOME, "price": ml_home},
                {"name": AWAY, "price": ml_away},
            ]},
        ],
    }


def _odds(game_id="g1", books=None, **kw):
    return OddsGame.model_validate({
        "id": game_id,
        "sport_key": NCAAB,
        "home_team": HOME,
        "away_team": AWAY,
        "bookmakers": books if books is not None else [_book(**kw)],
    })


def _tracked(pid="p1", game_id="g1", starts_in=timedelta(hours=3), sport=NCAAB, validated=False,
             spread=-3.0, total=140.0, ml_home=-150, ml_away=130):
    return TrackedPrediction(
        prediction_id=pid,
        game_id=game_id,
        sport=sport,
        home_team=HOME,
        away_team=AWAY,
        game_time=NOW + starts_in,
        original_odds=OddsSnapshot(spread=spread, total=total, moneyline_home=ml_home, moneyline_away=ml_away),
        predicted_spread=5.0,
        confidence=70.0,
        validated=validated,
    )


class _Odds(MarketOddsProvider):
    def __init__(self, games_by_sport, failing=()):
        self.games_by_sport = games_by_sport
        self.failing = set(failing)
        self.calls = []

    def get_upcoming_games(self, sport):
        self.calls.append(sport)
        if sport in self.failing:
            raise ConnectionError("odds feed down")
        return self.games_by_sport.get(sport, [])


class _Predictions(TrackedPredictionSource):
    def __init__(self, predictions):
        self.predictions = predictions

    def get_unvalidated_predictions(self, sports, window_start, window_end):
        return list(self.predictions)


class _History(PredictionHistoryStore):
    def __init__(self, counts=None, last=None):
        self.counts = counts or {}
        self.last = last or {}

    def get_reprediction_counts(self, prediction_ids):
        return {pid: c for pid, c in self.counts.items() if pid in prediction_ids}

    def get_last_repredicted_at(self, prediction_ids):
        return {pid: t for pid, t in self.last.items() if pid in prediction_ids}


# ---------------------------------------------------------------------------
# Consensus
# ---------------------------------------------------------------------------

class TestConsensus:
    def test_spread_and_total_averaged(self):
        game = _odds(books=[_book("a", spread=-5.0, total=140.0), _book("b", spread=-7.0, total=144.0)])
        assert consensus_spread(game) == pytest.approx(-6.0)
        assert consensus_total(game) == pytest.approx(142.0)

    def test_moneyline_averaged_in_probability_space(self):
        game = _odds(books=[_book("a", ml_home=-150), _book("b", ml_home=-400)])
        probs = consensus_moneyline_probs(game)
        assert probs["home"] == pytest.approx(0.7)

    def test_invalid_prices_skipped(self):
        game = _odds(books=[_book("a", ml_home=-150), _book("b", ml_home=50)])
        assert consensus_moneyline_probs(game)["home"] == pytest.approx(0.6)

    def test_no_markets(self):
        game = _odds(books=[])
        assert consensus_spread(game) is None
        assert consensus_total(game) is None
        assert consensus_moneyline_probs(game) == {"home": None, "away": None}


# ---------------------------------------------------------------------------
# analyze_line_movement
# ---------------------------------------------------------------------------

class TestAnalyzeLineMovement:
    def test_spread_move(self):
        m = analyze_line_movement(_tracked(spread=-3.0), _odds(spread=-6.0), now=NOW)
        assert m.spread_movement == pytest.approx(3.0)
        assert m.significant_spread_move
        assert m.should_repredict
        assert m.state is MovementState.ELIGIBLE
        assert m.reasons == ["Spread moved 3.0 pts toward home"]

    def test_spread_toward_away(self):
        m = analyze_line_movement(_tracked(spread=-6.0), _odds(spread=-3.0), now=NOW)
        assert m.reasons[0] == "Spread moved 3.0 pts toward away"

    def test_below_threshold(self):
        m = analyze_line_movement(_tracked(spread=-3.0), _odds(spread=-5.0), now=NOW)
        assert not m.significant_spread_move
        assert m.state is MovementState.NO_MOVE
        assert not m.should_repredict
        assert m.reasons

    def test_moneyline_in_implied_probability(self):
        m = analyze_line_movement(_tracked(ml_home=-150), _odds(ml_home=-400), now=NOW)
        assert m.home_ml_change == pytest.approx(20.0)
        assert m.significant_ml_move
        assert "Moneyline shifted significantly" in m.reasons
        assert m.current_moneyline_home == pytest.approx(-400.0)

    def test_total_move(self):
        m = analyze_line_movement(_tracked(total=140.0), _odds(total=146.0), now=NOW)
        assert m.significant_total_move
        assert m.reasons == ["Total moved up 6.0 pts"]

    def test_threshold_override(self):
        strict = LineMovementThresholds(spread_threshold=1.0)
        m = analyze_line_movement(_tracked(spread=-3.0), _odds(spread=-4.5), thresholds=strict, now=NOW)
        assert m.significant_spread_move

    @pytest.mark.parametrize("starts_in", [timedelta(0), timedelta(minutes=-5), timedelta(hours=-2)])
    def test_live_game_guardrail(self, starts_in):
        m = analyze_line_movement(_tracked(starts_in=starts_in), _odds(spread=-10.0), now=NOW)
        assert not m.should_repredict
        assert not m.is_significant
        assert m.state is MovementState.EXPIRED
        assert m.reasons == [LIVE_GAME_REASON]

    def test_outside_window_not_actionable(self):
        m = analyze_line_movement(_tracked(starts_in=timedelta(minutes=10)), _odds(spread=-10.0), now=NOW)
        assert m.significant_spread_move
        assert not m.should_repredict
        assert m.state is MovementState.OUTSIDE_WINDOW

    def test_cooldown(self):
        m = analyze_line_movement(
            _tracked(), _odds(spread=-6.0), now=NOW, last_repredicted_at=NOW - timedelta(minutes=20)
        )
        assert not m.should_repredict
        assert m.state is MovementState.COOLDOWN
        assert "Cooldown: 40min remaining" in m.reasons

    def test_cooldown_elapsed(self):
        m = analyze_line_movement(
            _tracked(), _odds(spread=-6.0), now=NOW, last_repredicted_at=NOW - timedelta(minutes=90)
        )
        assert m.should_repredict

    def test_max_repredictions(self):
        m = analyze_line_movement(_tracked(), _odds(spread=-6.0), now=NOW, reprediction_count=3)
        assert not m.should_repredict
        assert m.state is MovementState.MAX_REACHED
        assert "Max repredictions (3) reached" in m.reasons

    def test_naive_game_time_treated_as_utc(self):
        pred = _tracked().model_copy(update={"game_time": (NOW + timedelta(hours=3)).replace(tzinfo=None)})
        m = analyze_line_movement(pred, _odds(spread=-6.0), now=NOW)
        assert m.minutes_to_start == pytest.approx(180.0)


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

class TestMonitorSweep:
    def _monitor(self, predictions, games_by_sport, failing=(), history=None):
        odds = _Odds(games_by_sport, failing)
        monitor = LineMovementMonitor(odds, _Predictions(predictions), history or _History())
        return monitor, odds

    def test_window_and_significance_filters(self):
        predictions = [
            _tracked("p1", "g1"),
            _tracked("p2", "g2", starts_in=timedelta(minutes=10)),
            _tracked("p3", "g3", starts_in=timedelta(hours=30)),
            _tracked("p4", "g4", validated=True),
            _tracked("p5", "g5"),
        ]
        games = {NCAAB: [_odds("g1", spread=-6.0), _odds("g5", spread=-3.5)]}
        monitor, odds = self._monitor(predictions, games)

        result = monitor.monitor_odds_movement(sports=[NCAAB], now=NOW)

        assert result.predictions_matched == 2
        assert result.games_checked == 2
        assert result.significant_movements == 1
        assert result.repredictions_triggered == 1
        assert [m.prediction_id for m in result.movements] == ["p1"]
        assert odds.calls == [NCAAB]
        assert result.errors == []

    def test_window_edges_exclusive(self):
        predictions = [
            _tracked("p1", "g1", starts_in=timedelta(minutes=30)),
            _tracked("p2", "g2", starts_in=timedelta(hours=24)),
        ]
        monitor, _ = self._monitor(predictions, {NCAAB: [_odds("g1", spread=-9.0), _odds("g2", spread=-9.0)]})
        result = monitor.monitor_odds_movement(sports=[NCAAB], now=NOW)
        assert result.predictions_matched == 0

    def test_one_fetch_per_sport(self):
        predictions = [_tracked(f"p{i}", f"g{i}") for i in range(4)]
        games = {NCAAB: [_odds(f"g{i}", spread=-6.0) for i in range(4)]}
        monitor, odds = self._monitor(predictions, games)
        result = monitor.monitor_odds_movement(sports=[NCAAB], now=NOW)
        assert odds.calls == [NCAAB]
        assert result.significant_movements == 4

    def test_sport_failure_isolated(self):
        predictions = [_tracked("p1", "g1"), _tracked("p2", "g2", sport="icehockey_nhl")]
        monitor, _ = self._monitor(
            predictions, {NCAAB: [_odds("g1", spread=-6.0)]}, failing={"icehockey_nhl"}
        )
        result = monitor.monitor_odds_movement(sports=[NCAAB, "icehockey_nhl"], now=NOW)
        assert [m.prediction_id for m in result.movements] == ["p1"]
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Error fetching odds for icehockey_nhl")

    def test_history_applied(self):
        history = _History(counts={"p1": 3})
        monitor, _ = self._monitor([_tracked("p1", "g1")], {NCAAB: [_odds("g1", spread=-6.0)]}, history=history)
        result = monitor.monitor_odds_movement(sports=[NCAAB], now=NOW)
        movement = result.movements[0]
        assert movement.state is MovementState.MAX_REACHED
        assert movement.reprediction_count == 3
        assert result.repredictions_triggered == 0

    def test_overlapping_sweep_skips_sport(self):
        monitor, odds = self._monitor([_tracked("p1", "g1")], {NCAAB: [_odds("g1", spread=-6.0)]})
        lock = monitor._lock_for(NCAAB)
        lock.acquire()
        try:
            result = monitor.monitor_odds_movement(sports=[NCAAB], now=NOW)
        finally:
            lock.release()
        assert odds.calls == []
        assert result.movements == []
        assert "already in progress" in result.errors[0]

    def test_prediction_source_failure(self):
        source = MagicMock(spec=TrackedPredictionSource)
        source.get_unvalidated_predictions.side_effect = RuntimeError("db down")
        monitor = LineMovementMonitor(_Odds({}), source, _History())
        result = monitor.monitor_odds_movement(sports=[NCAAB], now=NOW)
        assert result.predictions_matched == 0
        assert "db down" in result.errors[0]

    def test_summary_and_status(self):
        monitor, _ = self._monitor([_tracked("p1", "g1")], {NCAAB: [_odds("g1", spread=-6.0, total=150.0)]})
        result = monitor.monitor_odds_movement(sports=[NCAAB], now=NOW)
        summary = result.summary()
        assert summary["total"] == 1
        assert summary["significant_spread"] == 1
        assert summary["significant_total"] == 1
        assert summary["pending_reprediction"] == 1
        assert monitor.get_status()["last_run"] == NOW.isoformat()


# ---------------------------------------------------------------------------
# Re-prediction
# ---------------------------------------------------------------------------

def _eligible_movement(starts_in=timedelta(hours=3)):
    return analyze_line_movement(_tracked(starts_in=starts_in), _odds(spread=-6.0), now=NOW)


class TestRepredict:
    def test_material_change(self):
        movement = _eligible_movement()
        batch = repredict_movements(
            [movement], lambda m: SimpleNamespace(predicted_spread=8.0, confidence=71.0), now=NOW
        )
        assert batch.attempted == 1
        assert batch.succeeded == 1
        assert batch.material_changes == 1
        assert batch.results[0].spread_change == pytest.approx(3.0)
        assert movement.state is MovementState.REPREDICTED
        assert movement.reprediction_count == 1

    def test_immaterial_change(self):
        batch = repredict_movements(
            [_eligible_movement()], lambda m: SimpleNamespace(predicted_spread=5.5, confidence=72.0), now=NOW
        )
        assert batch.succeeded == 1
        assert batch.material_changes == 0

    def test_failures_collected(self):
        def boom(movement):
            raise RuntimeError("model unavailable")

        batch = repredict_movements([_eligible_movement(), _eligible_movement()], boom, now=NOW)
        assert batch.failed == 2
        assert batch.results[0].error == "model unavailable"
        assert len(batch.errors) == 2

    def test_none_result_is_failure(self):
        batch = repredict_movements([_eligible_movement()], lambda m: None, now=NOW)
        assert batch.failed == 1
        assert batch.results[0].error == "Generation failed"

    def test_ineligible_and_live_skipped(self):
        quiet = analyze_line_movement(_tracked(), _odds(), now=NOW)
        started = _eligible_movement()
        regenerate = MagicMock()
        batch = repredict_movements([quiet, started], regenerate, now=NOW + timedelta(hours=4))
        assert batch.attempted == 0
        regenerate.assert_not_called()


# ---------------------------------------------------------------------------
# Configuration and status
# ---------------------------------------------------------------------------

def test_thresholds_from_environment(monkeypatch):
    monkeypatch.setenv("LINE_MOVE_SPREAD_THRESHOLD", "1.0")
    monitor = LineMovementMonitor(_Odds({}), _Predictions([]), _History())
    assert monitor.thresholds.spread_threshold == 1.0

    explicit = LineMovementMonitor(
        _Odds({}), _Predictions([]), _History(), thresholds=LineMovementThresholds()
    )
    assert explicit.thresholds.spread_threshold == 2.5


def test_environment_thresholds_drive_sweep(monkeypatch):
    monkeypatch.setenv("LINE_MOVE_SPREAD_THRESHOLD", "1.0")
    monitor = LineMovementMonitor(
        _Odds({NCAAB: [_odds("g1", spread=-4.5)]}), _Predictions([_tracked("p1", "g1")]), _History()
    )
    result = monitor.monitor_odds_movement(sports=[NCAAB], now=NOW)
    assert result.significant_movements == 1


def test_status_snapshot_while_sweeps_register_sports():
    monitor = LineMovementMonitor(_Odds({}), _Predictions([]), _History(), thresholds=LineMovementThresholds())
    held = monitor._lock_for(NCAAB)
    held.acquire()
    errors = []

    def register():
        for i in range(500):
            monitor._lock_for(f"sport_{i}")

    def poll():
        for _ in range(200):
            try:
                monitor.get_status()
            except RuntimeError as exc:  # pragma: no cover
                errors.append(exc)

    threads = [threading.Thread(target=register), threading.Thread(target=poll)]
    try:
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        status = monitor.get_status()
    finally:
        held.release()
    assert errors == []
    assert status["sports_in_progress"] == [NCAAB]
