"""
Churn Risk Classification Engine

This module is the single entry point for classifying restaurant-client
accounts into churn risk tiers (low / medium / high). It composes the
threshold policy, flag evaluator, risk level reducer and trend projector.

Two classification modes:
- Settled: a completed period, classified from final actuals. Drop flags are
  gated on a previous period existing and the account having been active for
  at least min_elapsed_periods_for_drop_flags periods.
- Trending: the open current period, classified from end-of-period
  projections. Drop flags are NOT gated on elapsed periods.

Frozen accounts carry a provider-supplied level and reason (RiskOverride).
When present the override bypasses flag evaluation entirely and the level is
passed through verbatim, with mode "override".

Account table rows only carry the selected period and its deltas against the
preceding period; the previous period is recovered as current - delta.

Everything here is pure: no I/O, no module-level mutable state. The same
inputs always produce the same assessment.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Tuple

from churnguard.models.enums import AssessmentMode, PeriodGranularity
from churnguard.models.schemas import (
    AccountRiskRow,
    AccountSnapshot,
    PeriodMetric,
    RiskAssessment,
    RiskFlags,
    RiskOverride,
    ThresholdPolicy,
)
from churnguard.services.flags import evaluate_flags, format_flags_as_text
from churnguard.services.period_series import PeriodSeries
from churnguard.services.projection import (
    calculate_progress,
    evaluate_trending_flags,
    recover_previous_from_deltas,
)
from churnguard.services.reducer import reduce_risk_level
from churnguard.services.thresholds import DEFAULT_POLICY


logger = logging.getLogger(__name__)


# =============================================================================
# Assessment Builders
# =============================================================================


def _override_assessment(override: RiskOverride, period_key: Optional[str]) -> RiskAssessment:
    return RiskAssessment(
        mode=AssessmentMode.OVERRIDE,
        level=override.level,
        flags=None,
        flag_count=0,
        reason=override.reason or "",
        period_key=period_key,
    )


def _flag_assessment(
    flags: RiskFlags,
    mode: AssessmentMode,
    period_key: Optional[str],
) -> RiskAssessment:
    return RiskAssessment(
        mode=mode,
        level=reduce_risk_level(flags.count, mode),
        flags=flags,
        flag_count=flags.count,
        reason=format_flags_as_text(flags),
        period_key=period_key,
    )


# =============================================================================
# Series Classification
# =============================================================================


def classify_period(
    series: PeriodSeries,
    index: int,
    override: Optional[RiskOverride] = None,
    policy: Optional[ThresholdPolicy] = None,
) -> RiskAssessment:
    """
    Classify one completed period of an account's series (settled mode).

    Args:
        series: The account's period series, oldest first.
        index: Position of the period to classify.
        override: Provider risk for a frozen account; bypasses evaluation.
        policy: Threshold policy (defaults to DEFAULT_POLICY).

    Returns:
        RiskAssessment with mode SETTLED, or OVERRIDE when override is given.

    Raises:
        InvalidInputError: If the series is empty or index is out of range.
    """
    series.check_index(index)
    current = series[index]

    if override is not None:
        return _override_assessment(override, current.period_key)

    flags = evaluate_flags(
        current=current,
        previous=series.previous(index),
        elapsed_periods=series.elapsed_since_first_activity(index),
        policy=policy or DEFAULT_POLICY,
    )
    return _flag_assessment(flags, AssessmentMode.SETTLED, current.period_key)


def classify_trending(
    series: PeriodSeries,
    current_index: int,
    calendar_progress_fraction: Optional[float],
    override: Optional[RiskOverride] = None,
    policy: Optional[ThresholdPolicy] = None,
) -> RiskAssessment:
    """
    Classify the open period at current_index from projected totals.

    Args:
        series: The account's period series, oldest first.
        current_index: Position of the open (partial) period.
        calendar_progress_fraction: Elapsed fraction of the open period;
            clamped into [0.1, 1].
        override: Provider risk for a frozen account; bypasses evaluation.
        policy: Threshold policy (defaults to DEFAULT_POLICY).

    Returns:
        RiskAssessment with mode TRENDING, or OVERRIDE when override is given.

    Raises:
        InvalidInputError: If the series is empty or current_index is out of range.
    """
    series.check_index(current_index)
    current = series[current_index]

    if override is not None:
        return _override_assessment(override, current.period_key)

    flags, _ = evaluate_trending_flags(
        current=current,
        previous=series.previous(current_index),
        progress=calendar_progress_fraction,
        policy=policy or DEFAULT_POLICY,
    )
    return _flag_assessment(flags, AssessmentMode.TRENDING, current.period_key)


def classify_series(
    series: PeriodSeries,
    override: Optional[RiskOverride] = None,
    policy: Optional[ThresholdPolicy] = None,
) -> List[RiskAssessment]:
    """Settled assessment for every period in the series, in series order."""
    return [classify_period(series, index, override, policy) for index in range(len(series))]


# =============================================================================
# Account Snapshot Classification
# =============================================================================


def _snapshot_previous(snapshot: AccountSnapshot, current: PeriodMetric) -> PeriodMetric:
    return recover_previous_from_deltas(
        current,
        spend_delta=snapshot.spend_delta,
        coupons_delta=snapshot.coupons_delta,
        texts_delta=snapshot.texts_delta,
        subs_delta=snapshot.subs_delta,
    )


def classify_snapshot(
    snapshot: AccountSnapshot,
    policy: Optional[ThresholdPolicy] = None,
) -> RiskAssessment:
    """
    Settled assessment for an account table row.

    The row's previous period is recovered from its deltas. When the provider
    does not report elapsed_periods the account is treated as established, so
    drop flags are evaluated.
    """
    policy = policy or DEFAULT_POLICY
    override = snapshot.override
    if override is not None:
        return _override_assessment(override, snapshot.period_key)

    current = snapshot.as_period_metric()
    elapsed = snapshot.elapsed_periods
    if elapsed is None:
        elapsed = policy.min_elapsed_periods_for_drop_flags

    flags = evaluate_flags(
        current=current,
        previous=_snapshot_previous(snapshot, current),
        elapsed_periods=elapsed,
        policy=policy,
    )
    return _flag_assessment(flags, AssessmentMode.SETTLED, snapshot.period_key)


def classify_snapshot_trending(
    snapshot: AccountSnapshot,
    progress: float,
    policy: Optional[ThresholdPolicy] = None,
) -> RiskAssessment:
    """Trending assessment for an account table row in the open period."""
    override = snapshot.override
    if override is not None:
        return _override_assessment(override, snapshot.period_key)

    current = snapshot.as_period_metric()
    flags, _ = evaluate_trending_flags(
        current=current,
        previous=_snapshot_previous(snapshot, current),
        progress=progress,
        policy=policy or DEFAULT_POLICY,
    )
    return _flag_assessment(flags, AssessmentMode.TRENDING, snapshot.period_key)


def classify_account(
    snapshot: AccountSnapshot,
    granularity: PeriodGranularity = PeriodGranularity.MONTH,
    as_of: Optional[date] = None,
    policy: Optional[ThresholdPolicy] = None,
) -> AccountRiskRow:
    """
    Classify one account table row.

    The settled assessment is always produced. A trending assessment is added
    when the snapshot is the open current period, using the calendar progress
    of `as_of` (today when omitted).

    Args:
        snapshot: Account row from the metrics provider.
        granularity: Period size the snapshot was aggregated over.
        as_of: Date used for calendar progress in trending mode.
        policy: Threshold policy (defaults to DEFAULT_POLICY).

    Returns:
        AccountRiskRow joining the snapshot with its assessments and flag text.
    """
    risk = classify_snapshot(snapshot, policy)

    trending: Optional[RiskAssessment] = None
    if snapshot.is_current_period:
        progress = calculate_progress(as_of or date.today(), granularity)
        trending = classify_snapshot_trending(snapshot, progress, policy)

    return AccountRiskRow(
        account=snapshot,
        risk=risk,
        trending=trending,
        flag_text=describe_assessment(risk),
        trending_flag_text=describe_assessment(trending) if trending is not None else None,
    )


def classify_accounts(
    snapshots: Iterable[AccountSnapshot],
    granularity: PeriodGranularity = PeriodGranularity.MONTH,
    as_of: Optional[date] = None,
    policy: Optional[ThresholdPolicy] = None,
) -> List[AccountRiskRow]:
    """Classify a batch of account rows, preserving input order."""
    as_of = as_of or date.today()
    rows = [classify_account(snapshot, granularity, as_of, policy) for snapshot in snapshots]
    logger.debug(f"Classified {len(rows)} accounts ({granularity.value}, as of {as_of})")
    return rows


def classify_history(
    series: PeriodSeries,
    override: Optional[RiskOverride] = None,
    open_period_progress: Optional[float] = None,
    policy: Optional[ThresholdPolicy] = None,
) -> Tuple[List[RiskAssessment], Optional[RiskAssessment]]:
    """
    Settled assessments for every period plus, when the last period is still
    open, its trending assessment.

    Args:
        series: The account's period series, oldest first.
        override: Provider risk for a frozen account.
        open_period_progress: Calendar progress of the last period, or None
            when every period is complete.
        policy: Threshold policy (defaults to DEFAULT_POLICY).
    """
    settled = classify_series(series, override, policy)
    trending = None
    if open_period_progress is not None and len(series) > 0:
        trending = classify_trending(series, len(series) - 1, open_period_progress, override, policy)
    return settled, trending


def describe_assessment(assessment: RiskAssessment) -> str:
    """Flag text for flag-based assessments; the provider reason for overrides."""
    if assessment.mode == AssessmentMode.OVERRIDE:
        return assessment.reason or format_flags_as_text(None)
    return format_flags_as_text(assessment.flags)


__all__ = [
    "classify_period",
    "classify_trending",
    "classify_series",
    "classify_snapshot",
    "classify_snapshot_trending",
    "classify_account",
    "classify_accounts",
    "classify_history",
    "describe_assessment",
]
