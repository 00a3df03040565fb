"""
Risk Level Reducer

Maps a flag count (0-4) to a risk level. Settled and trending assessments use
separate cutoff tables. The two tables currently agree for every count, but
they are kept as distinct code paths so either can change independently.

Settled:  >= 3 high, >= 1 medium, else low
Trending: 0 low, 1-2 medium, >= 3 high
"""

from churnguard.models.enums import AssessmentMode, RiskLevel
from churnguard.services.period_series import InvalidInputError


MAX_FLAG_COUNT = 4


def _reduce_settled(flag_count: int) -> RiskLevel:
    if flag_count >= 3:
        return RiskLevel.HIGH
    if flag_count >= 1:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _reduce_trending(flag_count: int) -> RiskLevel:
    if flag_count == 0:
        return RiskLevel.LOW
    if 1 <= flag_count <= 2:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def reduce_risk_level(flag_count: int, mode: AssessmentMode) -> RiskLevel:
    """
    Reduce a flag count to a risk level using the table for `mode`.

    Args:
        flag_count: Number of active flags, 0 to 4.
        mode: AssessmentMode.SETTLED or AssessmentMode.TRENDING.

    Returns:
        RiskLevel for the count.

    Raises:
        InvalidInputError: If flag_count is outside 0..4 or mode is OVERRIDE
            (overrides bypass the reducer).
    """
    if isinstance(flag_count, bool) or not isinstance(flag_count, int):
        raise InvalidInputError(f"flag_count must be an integer, got {flag_count!r}")
    if flag_count < 0 or flag_count > MAX_FLAG_COUNT:
        raise InvalidInputError(f"flag_count {flag_count} outside 0..{MAX_FLAG_COUNT}")

    if mode == AssessmentMode.SETTLED:
        return _reduce_settled(flag_count)
    if mode == AssessmentMode.TRENDING:
        return _reduce_trending(flag_count)
    raise InvalidInputError(f"No reducer table for mode {mode!r}")


__all__ = [
    "MAX_FLAG_COUNT",
    "reduce_risk_level",
]
