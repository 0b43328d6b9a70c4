"""Odds and probability mathematics used across the engine.

Every function here is **pure**: no I/O, no logging, no side effects.

1. **Odds conversion**: American <-> decimal <-> implied probability.
2. **Vig removal**: Shin (1993) two-outcome solve for no-vig probabilities,
   used when comparing a model probability against a two-sided market.
3. **Probability transforms**: clamped logistic / logit wrappers around
   :mod:`scipy.special` plus the rounding helpers the score projection needs.

All conversions accept ``int`` or ``float`` American odds because The Odds
API returns integers but consensus averaging produces floats.
"""

from __future__ import annotations

import math
from typing import Final

from scipy.special import expit, logit

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: American-odds magnitude floor.  Anything smaller is a data error.
_MIN_ODDS_MAGNITUDE: Final[int] = 100

#: Below this distance from 0.5 the market is a coin flip and proportional
#: normalisation equals Shin.
_SHIN_SYMMETRY_TOL: Final[float] = 1e-3

_SHIN_INNER_TOL: Final[float] = 1e-10
_SHIN_MAX_ITER: Final[int] = 200

#: Overround floor; a book summing below this is treated as mispriced.
_MIN_OVERROUND: Final[float] = 1.001

#: Bounds every published win probability is clamped into.
PROB_FLOOR: Final[float] = 0.02
PROB_CEILING: Final[float] = 0.98


# ---------------------------------------------------------------------------
# Odds conversion
# ---------------------------------------------------------------------------


def is_valid_american(american) -> bool:
    """True when ``american`` is a finite number with ``|odds| >= 100``."""
    if american is None or isinstance(american, bool):
        return False
    try:
        value = float(american)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and abs(value) >= _MIN_ODDS_MAGNITUDE


def american_to_decimal(american: int | float) -> float:
    """Convert American odds to decimal (European) format.

    Examples::

        american_to_decimal(-110) -> 1.9091
        american_to_decimal(+150) -> 2.5000

    Raises:
        ValueError: If ``|american| < 100`` or the value is not finite.
    """
    if not is_valid_american(american):
        raise ValueError(
            f"Invalid American odds {american!r}: magnitude must be >= 100."
        )
    if american > 0:
        return american / 100.0 + 1.0
    return 100.0 / abs(american) + 1.0


def implied_prob(american: int | float) -> float:
    """Raw implied probability from American odds (vig-inclusive).

    Examples::

        implied_prob(-150) -> 0.6000
        implied_prob(-400) -> 0.8000
        implied_prob(+150) -> 0.4000
    """
    return 1.0 / american_to_decimal(american)


def prob_to_american(prob: float) -> float:
    """Fair American price for a probability in ``(0, 1)``.

    Inverse of :func:`implied_prob`.  Returns a float so averaged consensus
    probabilities can be reported without rounding drift.

    Raises:
        ValueError: If ``prob`` is not strictly between 0 and 1.
    """
    if not 0.0 < prob < 1.0:
        raise ValueError(f"Probability {prob!r} must be in (0, 1).")
    if prob > 0.5:
        return -100.0 * prob / (1.0 - prob)
    return 100.0 * (1.0 - prob) / prob


# ---------------------------------------------------------------------------
# Vig removal (Shin 1993)
# ---------------------------------------------------------------------------


def remove_vig_shin(
    odds_a: int | float,
    odds_b: int | float,
    *,
    inner_tol: float = _SHIN_INNER_TOL,
    max_iter: int = _SHIN_MAX_ITER,
) -> tuple[float, float]:
    """No-vig probabilities for a two-outcome market via Shin's model.

    Shin attributes the overround to informed ("insider") money rather than a
    uniform margin, which corrects the favourite-longshot bias that plain
    proportional normalisation leaves in.  Stated probability ``w_i`` obeys::

        w_i / K = (1 - z) * p_i + z * p_i**2 / sum(p_j**2)

    The insider fraction ``z`` is estimated from the overround ``K`` and the
    equation is then solved for ``p_a`` by bisection.

    Returns:
        ``(true_prob_a, true_prob_b)`` summing to exactly 1.0.

    Raises:
        ValueError: If either price violates the ``|odds| >= 100`` contract.
    """
    raw_a = implied_prob(odds_a)
    raw_b = implied_prob(odds_b)
    overround = raw_a + raw_b

    if overround < _MIN_OVERROUND:
        return raw_a / overround, raw_b / overround

    q_a = raw_a / overround
    q_b = raw_b / overround

    if abs(q_a - 0.5) < _SHIN_SYMMETRY_TOL:
        return q_a, q_b

    herfindahl = q_a ** 2 + q_b ** 2
    z = (overround - 1.0) / max(1.0 - herfindahl, 1e-10)
    z = max(0.0, min(z, 0.499))

    # f(p) = (1 - z) p + z p^2 / (p^2 + (1 - p)^2) is increasing on (0, 1)
    lo, hi = 1e-9, 1.0 - 1e-9
    for _ in range(max_iter):
        mid = (lo + hi) * 0.5
        spread_sq = mid ** 2 + (1.0 - mid) ** 2
        if spread_sq < 1e-12:
            break
        value = (1.0 - z) * mid + z * (mid ** 2) / spread_sq
        if value < q_a:
            lo = mid
        else:
            hi = mid
        if (hi - lo) < inner_tol:
            break

    p_a = (lo + hi) * 0.5
    p_b = 1.0 - p_a
    total = p_a + p_b
    return p_a / total, p_b / total


# ---------------------------------------------------------------------------
# Probability transforms
# ---------------------------------------------------------------------------


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def clamp_prob(p: float) -> float:
    """Clamp into the published ``[0.02, 0.98]`` band; NaN maps to 0.5."""
    if p is None or not math.isfinite(p):
        return 0.5
    return clamp(float(p), PROB_FLOOR, PROB_CEILING)


def score_to_probability(score: float, scale: float = 8.0) -> float:
    """Logistic map from a matchup score to a clamped home win probability."""
    if not math.isfinite(score):
        score = 0.0
    return clamp_prob(float(expit(score / scale)))


def probability_to_margin(p: float, points_per_logit: float, max_margin: float) -> float:
    """Expected home margin implied by a win probability.

    ``p`` is clamped to ``[0.01, 0.99]`` before the logit so the mapping is
    always finite.
    """
    p = clamp(p, 0.01, 0.99)
    return clamp(points_per_logit * float(logit(p)), -max_margin, max_margin)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (no banker's rounding)."""
    return int(math.floor(value + 0.5))


def round_to_half(value: float) -> float:
    """Nearest half point, e.g. 3.3 -> 3.5, -7.2 -> -7.0."""
    return math.floor(value * 2.0 + 0.5) / 2.0
