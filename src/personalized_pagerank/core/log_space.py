"""
Log-space probability arithmetic.

PageRank mass is stored as natural logarithms so that many rounds of
splitting small probabilities do not underflow. Adding two masses then
becomes log(exp(a) + exp(b)), computed without leaving log space:

  log(exp(a) + exp(b)) = hi + log1p(exp(lo - hi))

where hi = max(a, b) and lo = min(a, b). The term exp(lo - hi) is always
in (0, 1], so nothing overflows. -inf (log of zero) is the identity.
"""

import math
from collections.abc import Iterable, Sequence

LOG_ZERO = float("-inf")
LOG_ONE = 0.0


def sum_log_probs(a: float, b: float) -> float:
    """Add two log probabilities: log(exp(a) + exp(b))."""
    if a == LOG_ZERO:
        return b
    if b == LOG_ZERO:
        return a

    if a < b:
        return b + math.log1p(math.exp(a - b))
    return a + math.log1p(math.exp(b - a))


def sum_all_log_probs(values: Iterable[float]) -> float:
    """Fold sum_log_probs over any number of log probabilities."""
    total = LOG_ZERO
    for value in values:
        total = sum_log_probs(total, value)
    return total


def sum_log_prob_vectors(a: Sequence[float], b: Sequence[float]) -> tuple[float, ...]:
    """Slot-wise sum_log_probs of two equal-length mass vectors."""
    if len(a) != len(b):
        raise ValueError(f"Mass vectors differ in length: {len(a)} != {len(b)}")
    return tuple(sum_log_probs(x, y) for x, y in zip(a, b))


def log_prob(probability: float) -> float:
    """Convert a probability to log space, mapping p <= 0 to -inf.

    math.log raises on zero and negative input; a missing mass of exactly
    zero (or a tiny negative rounding residue) must simply contribute
    nothing.
    """
    if probability <= 0.0:
        return LOG_ZERO
    return math.log(probability)


def empty_masses(num_sources: int) -> tuple[float, ...]:
    """A mass vector holding no probability in any slot."""
    return (LOG_ZERO,) * num_sources
