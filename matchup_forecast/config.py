"""
Runtime settings for the forecast engine.

Values come from the process environment (optionally seeded from a ``.env``
file).  Everything here is read once at import; services take the typed
objects below as constructor arguments so tests never touch the environment.
"""

import logging
import os
from typing import List

from dotenv import load_dotenv

from matchup_forecast.schemas import LineMovementThresholds, RecalibrationParams

load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_MONITOR_SPORTS = (
    "basketball_ncaab",
    "basketball_nba",
    "icehockey_nhl",
    "baseball_mlb",
)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


def configure_logging(level: str = None) -> None:
    """Install the root handler for command-line and service entry points."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )


def load_recalibration_params() -> RecalibrationParams:
    """Platt (A, B) fitted offline; identity when unset."""
    return RecalibrationParams(
        a=_env_float("RECALIBRATION_A", 1.0),
        b=_env_float("RECALIBRATION_B", 0.0),
    )


def load_line_movement_thresholds() -> LineMovementThresholds:
    return LineMovementThresholds(
        spread_threshold=_env_float("LINE_MOVE_SPREAD_THRESHOLD", 2.5),
        total_threshold=_env_float("LINE_MOVE_TOTAL_THRESHOLD", 5.0),
        moneyline_threshold=_env_float("LINE_MOVE_ML_THRESHOLD", 20.0),
        hours_before_game=_env_float("LINE_MOVE_HOURS_BEFORE_GAME", 24.0),
        min_minutes_before_game=_env_float("LINE_MOVE_MIN_MINUTES_BEFORE_GAME", 30.0),
        max_repredictions_per_game=_env_int("LINE_MOVE_MAX_REPREDICTIONS", 3),
        reprediction_cooldown_minutes=_env_float("LINE_MOVE_COOLDOWN_MINUTES", 60.0),
    )


def load_monitor_sports() -> List[str]:
    raw = os.getenv("MONITOR_SPORTS", "")
    sports = [s.strip() for s in raw.split(",") if s.strip()]
    return sports or list(DEFAULT_MONITOR_SPORTS)


def load_optimizer_sample_size() -> int:
    return max(1, _env_int("OPTIMIZER_SAMPLE_SIZE", 100))
