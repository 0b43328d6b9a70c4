"""
Probability recalibration (Platt scaling).

The raw win probability from the matchup score is post-processed by::

    p' = clamp(sigmoid(A * logit(p) + B), 0.02, 0.98)

``A < 1`` pulls over-confident probabilities toward 0.5, ``A > 1`` spreads
under-confident ones, and ``B`` corrects a constant home/away bias.  With
``A = 1, B = 0`` the transform is the identity up to the clamp.

(A, B) are fitted offline from settled predictions by a small grid search
that minimises log loss, then read cheaply at startup from configuration.

Minimum sample requirement: MIN_CALIBRATION_SAMPLES (env var, default 20).
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np
from scipy.special import expit, logit

from matchup_forecast.core.odds_math import PROB_CEILING, PROB_FLOOR, clamp_prob
from matchup_forecast.schemas import RecalibrationParams

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tuning constants
# ---------------------------------------------------------------------------

_MIN_SAMPLES = int(os.getenv("MIN_CALIBRATION_SAMPLES", "20"))

# Search grid for the fit
_A_GRID = np.round(np.arange(0.5, 2.0 + 1e-9, 0.1), 2)
_B_GRID = np.round(np.arange(-0.5, 0.5 + 1e-9, 0.1), 2)

_LOG_EPS = 1e-7

IDENTITY = RecalibrationParams(a=1.0, b=0.0)


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------

def calibrate(p: float, a: float = 1.0, b: float = 0.0) -> float:
    """Platt-scale a probability; output is clamped to [0.02, 0.98]."""
    if p is None or not math.isfinite(p):
        return 0.5
    if a == 1.0 and b == 0.0:
        return clamp_prob(p)
    q = min(max(float(p), _LOG_EPS), 1.0 - _LOG_EPS)
    return clamp_prob(float(expit(a * logit(q) + b)))


class ProbabilityCalibrator:
    """Holds fitted (A, B) and applies them; injected into the predictor."""

    def __init__(self, params: Optional[RecalibrationParams] = None):
        self.params = params or IDENTITY

    @property
    def is_active(self) -> bool:
        return not self.params.is_identity

    def apply(self, p: float) -> float:
        return calibrate(p, self.params.a, self.params.b)

    def __repr__(self) -> str:
        return f"ProbabilityCalibrator(a={self.params.a}, b={self.params.b})"


# ---------------------------------------------------------------------------
# Fitting
# ---------------------------------------------------------------------------

def log_loss(probs: Sequence[float], outcomes: Sequence[int]) -> float:
    """Mean cross-entropy of probabilities against 0/1 outcomes."""
    p = np.clip(np.asarray(probs, dtype=float), _LOG_EPS, 1.0 - _LOG_EPS)
    y = np.asarray(outcomes, dtype=float)
    if p.size == 0:
        return 0.0
    return float(-np.mean(y * np.log(p) + (1.0 - y) * np.log(1.0 - p)))


@dataclass(frozen=True)
class PlattFit:
    params: RecalibrationParams
    n_samples: int
    log_loss_before: float
    log_loss_after: float
    fitted: bool


def fit_platt_scaling(
    pairs: Iterable[Tuple[float, int]],
    min_samples: int = _MIN_SAMPLES,
) -> PlattFit:
    """
    Fit (A, B) over a fixed grid (A in 0.5..2.0, B in -0.5..0.5, step 0.1).

    ``pairs`` are ``(predicted_home_win_prob, home_won)`` with probabilities
    as fractions.  Non-finite probabilities are skipped.  Fewer than
    ``min_samples`` usable pairs returns the identity unfitted.
    """
    probs, outcomes = [], []
    for p, won in pairs:
        if p is None or not math.isfinite(p):
            continue
        probs.append(float(p))
        outcomes.append(1 if won else 0)

    n = len(probs)
    baseline = log_loss(probs, outcomes)
    if n < min_samples:
        logger.info("Platt fit skipped: %d samples (need %d)", n, min_samples)
        return PlattFit(IDENTITY, n, baseline, baseline, False)

    p = np.clip(np.asarray(probs), _LOG_EPS, 1.0 - _LOG_EPS)
    y = np.asarray(outcomes, dtype=float)
    logits = logit(p)

    best_a, best_b, best_loss = 1.0, 0.0, math.inf
    for a in _A_GRID:
        for b in _B_GRID:
            q = np.clip(expit(a * logits + b), PROB_FLOOR, PROB_CEILING)
            loss = float(-np.mean(y * np.log(q) + (1.0 - y) * np.log(1.0 - q)))
            if loss < best_loss:
                best_a, best_b, best_loss = float(a), float(b) + 0.0, loss

    params = RecalibrationParams(a=best_a, b=best_b)
    logger.info(
        "Platt fit on %d samples: A=%.2f B=%.2f log_loss %.4f -> %.4f",
        n, best_a, best_b, baseline, best_loss,
    )
    return PlattFit(params, n, baseline, best_loss, True)


def fit_from_validations(validations, min_samples: int = _MIN_SAMPLES) -> Dict:
    """
    Fit Platt parameters from :class:`~matchup_forecast.services.validation.GameValidation`
    records (raw home probability vs. actual winner).

    Returns a status dict; the caller persists ``params`` if ``status`` is
    ``"fitted"``.
    """
    pairs = [(v.home_win_prob / 100.0, v.actual_winner == "home") for v in validations]
    fit = fit_platt_scaling(pairs, min_samples=min_samples)
    if not fit.fitted:
        return {
            "status": "insufficient_data",
            "n_samples": fit.n_samples,
            "min_required": min_samples,
            "params": {"a": IDENTITY.a, "b": IDENTITY.b},
        }
    return {
        "status": "fitted",
        "n_samples": fit.n_samples,
        "params": {"a": fit.params.a, "b": fit.params.b},
        "log_loss_before": round(fit.log_loss_before, 6),
        "log_loss_after": round(fit.log_loss_after, 6),
    }
