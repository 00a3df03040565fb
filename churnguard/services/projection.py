"""
Trend Projector

For the current, still-open period, extrapolates end-of-period totals from
partial-period actuals so the open period can be classified as if it were
complete ("trending" risk).

Algorithm:
1. progress = max(0.1, elapsed_days_excluding_today / days_in_period).
   Today is excluded because its data is incomplete; the 0.1 floor keeps the
   projection bounded early in the period.
2. projected_spend = spend / progress; projected_redemptions = redemptions / progress.
3. The previous period baseline is the previous actual (recoverable from
   account deltas as current - delta).
4. Drops are computed against the projected figures with no elapsed-period
   gating; a zero or missing baseline yields a drop of 0.
5. Low Activity uses the actual subscriber count with projected redemptions.
"""

import calendar
import logging
from datetime import date
from typing import Optional, Tuple

from churnguard.models.enums import PeriodGranularity
from churnguard.models.schemas import PeriodMetric, ProjectedMetric, RiskFlags, ThresholdPolicy
from churnguard.services.flags import calculate_drop, evaluate_flag_predicates
from churnguard.services.thresholds import DEFAULT_POLICY


logger = logging.getLogger(__name__)

# Floor for the elapsed fraction of a period
MIN_PROGRESS: float = 0.1

DAYS_PER_WEEK: int = 7


def clamp_progress(fraction: Optional[float]) -> float:
    """
    Clamp a calendar progress fraction into [MIN_PROGRESS, 1].

    None, zero and negative values (period not started) clamp to the floor.
    """
    if fraction is None or fraction != fraction:  # NaN
        return MIN_PROGRESS
    return min(1.0, max(MIN_PROGRESS, float(fraction)))


def calculate_progress(
    as_of: date,
    granularity: PeriodGranularity = PeriodGranularity.MONTH,
) -> float:
    """
    Fraction of the period containing `as_of` that has fully elapsed.

    The as_of day itself is excluded. Weeks start on Monday, so on a Monday
    the raw fraction is 0 and the floor applies.

    Args:
        as_of: Today's date (or the date being simulated).
        granularity: Month or week periods.

    Returns:
        Progress fraction in [MIN_PROGRESS, 1].

    Example:
        >>> calculate_progress(date(2025, 7, 16))  # 15 of 31 days complete
        0.4838709677419355
    """
    if granularity == PeriodGranularity.WEEK:
        elapsed_days = as_of.weekday()
        total_days = DAYS_PER_WEEK
    else:
        elapsed_days = as_of.day - 1
        total_days = calendar.monthrange(as_of.year, as_of.month)[1]

    return clamp_progress(elapsed_days / total_days)


def project_metric(current: PeriodMetric, progress: float) -> ProjectedMetric:
    """
    Extrapolate end-of-period spend and redemptions from partial actuals.

    Args:
        current: As-of-now metrics for the open period.
        progress: Calendar progress fraction (clamped before use).

    Returns:
        ProjectedMetric with projected spend/redemptions and actual subscribers.
    """
    progress = clamp_progress(progress)
    return ProjectedMetric(
        period_key=current.period_key,
        progress=progress,
        projected_spend=current.total_spend / progress,
        projected_redemptions=current.coupons_redeemed / progress,
        active_subscribers=current.active_subscribers,
    )


def recover_previous_from_deltas(
    current: PeriodMetric,
    spend_delta: Optional[float],
    coupons_delta: Optional[float],
    texts_delta: Optional[float] = None,
    subs_delta: Optional[float] = None,
    period_key: str = "previous",
) -> PeriodMetric:
    """
    Rebuild the previous period's actuals as current - delta.

    Missing deltas are treated as 0 (previous == current). Results are
    floored at 0 since counters cannot be negative.
    """
    def _recover(value: float, delta: Optional[float]) -> float:
        return max(0.0, (value or 0.0) - (delta or 0.0))

    return PeriodMetric(
        period_key=period_key,
        total_spend=_recover(current.total_spend, spend_delta),
        total_texts_delivered=int(round(_recover(current.total_texts_delivered, texts_delta))),
        coupons_redeemed=int(round(_recover(current.coupons_redeemed, coupons_delta))),
        active_subscribers=int(round(_recover(current.active_subscribers, subs_delta))),
    )


def evaluate_trending_flags(
    current: PeriodMetric,
    previous: Optional[PeriodMetric],
    progress: float,
    policy: ThresholdPolicy = DEFAULT_POLICY,
) -> Tuple[RiskFlags, ProjectedMetric]:
    """
    Evaluate risk flags for an open period from its projected totals.

    Args:
        current: As-of-now metrics for the open period.
        previous: Previous period actuals (baseline), if any.
        progress: Calendar progress fraction.
        policy: Threshold policy to apply.

    Returns:
        Tuple of (RiskFlags, ProjectedMetric used to derive them).
    """
    projected = project_metric(current, progress)

    spend_drop = 0.0
    redemptions_drop = 0.0
    if previous is not None:
        spend_drop = calculate_drop(previous.total_spend, projected.projected_spend)
        redemptions_drop = calculate_drop(previous.coupons_redeemed, projected.projected_redemptions)

    flags = evaluate_flag_predicates(
        redemptions=projected.projected_redemptions,
        subscribers=current.active_subscribers,
        spend_drop=spend_drop,
        redemptions_drop=redemptions_drop,
        policy=policy,
    )
    logger.debug(
        f"Trending flags for {current.period_key} at progress {projected.progress:.2f}: "
        f"{[name.value for name in flags.active]}"
    )
    return flags, projected


__all__ = [
    "MIN_PROGRESS",
    "clamp_progress",
    "calculate_progress",
    "project_metric",
    "recover_previous_from_deltas",
    "evaluate_trending_flags",
]
