"""
Risk Flag Evaluator

Computes the four independent risk flags for one period of one account.

Rules (each re-evaluated on every call, no hidden state):
1. Low Monthly Redemptions: redemptions <= monthly_redemptions_threshold
2. Low Activity: subscribers < low_activity_subscribers_threshold
   AND redemptions < low_activity_redemptions_threshold
3. Spend Drop: fractional spend decrease vs the previous period
   >= spend_drop_threshold
4. Redemptions Drop: fractional redemption decrease vs the previous period
   >= redemptions_drop_threshold

Drop flags (3, 4) in settled classification are only evaluated when a previous
period exists AND the account has at least min_elapsed_periods_for_drop_flags
active periods; otherwise they are False. A zero previous value yields a drop
of 0 (no previous activity cannot produce a drop) and increases are clamped to
0 so they never raise a drop flag.
"""

import logging
from typing import Optional

from churnguard.models.schemas import FLAG_LABELS, PeriodMetric, RiskFlags, ThresholdPolicy
from churnguard.services.thresholds import DEFAULT_POLICY


logger = logging.getLogger(__name__)

NO_FLAGS_TEXT = "No flags"


def calculate_drop(previous_value: Optional[float], current_value: Optional[float]) -> float:
    """
    Fractional decrease from previous_value to current_value.

    Args:
        previous_value: Baseline value (previous period actual).
        current_value: Value being compared (actual or projected).

    Returns:
        max(0, (previous - current) / previous) when previous > 0, else 0.0.
    """
    previous_value = previous_value or 0.0
    current_value = current_value or 0.0
    if previous_value <= 0:
        return 0.0
    return max(0.0, (previous_value - current_value) / previous_value)


def evaluate_flag_predicates(
    redemptions: float,
    subscribers: float,
    spend_drop: float,
    redemptions_drop: float,
    policy: ThresholdPolicy = DEFAULT_POLICY,
) -> RiskFlags:
    """
    Apply the four rule predicates to already-derived figures.

    Shared by settled evaluation (actual figures) and trending evaluation
    (projected redemptions and projected drops), so both modes always use the
    same predicate shapes.

    Args:
        redemptions: Coupon redemptions for the period (actual or projected).
        subscribers: Active subscribers (always the actual count).
        spend_drop: Fractional spend decrease, 0 when not evaluated.
        redemptions_drop: Fractional redemption decrease, 0 when not evaluated.
        policy: Threshold policy to apply.

    Returns:
        RiskFlags with each rule's result.
    """
    return RiskFlags(
        low_redemptions=redemptions <= policy.monthly_redemptions_threshold,
        low_activity=(
            subscribers < policy.low_activity_subscribers_threshold
            and redemptions < policy.low_activity_redemptions_threshold
        ),
        spend_drop=spend_drop >= policy.spend_drop_threshold,
        redemptions_drop=redemptions_drop >= policy.redemptions_drop_threshold,
    )


def drop_flags_eligible(
    previous: Optional[PeriodMetric],
    elapsed_periods: int,
    policy: ThresholdPolicy = DEFAULT_POLICY,
) -> bool:
    """True when settled drop flags may be evaluated for this period."""
    return previous is not None and elapsed_periods >= policy.min_elapsed_periods_for_drop_flags


def evaluate_flags(
    current: PeriodMetric,
    previous: Optional[PeriodMetric],
    elapsed_periods: int,
    policy: ThresholdPolicy = DEFAULT_POLICY,
) -> RiskFlags:
    """
    Evaluate the four risk flags for a settled period.

    Args:
        current: Metrics for the period being classified.
        previous: Metrics for the immediately preceding period, if any.
        elapsed_periods: Periods since first activity as of current (inclusive).
        policy: Threshold policy to apply.

    Returns:
        RiskFlags for the period.
    """
    spend_drop = 0.0
    redemptions_drop = 0.0

    if drop_flags_eligible(previous, elapsed_periods, policy):
        spend_drop = calculate_drop(previous.total_spend, current.total_spend)
        redemptions_drop = calculate_drop(previous.coupons_redeemed, current.coupons_redeemed)

    flags = evaluate_flag_predicates(
        redemptions=current.coupons_redeemed,
        subscribers=current.active_subscribers,
        spend_drop=spend_drop,
        redemptions_drop=redemptions_drop,
        policy=policy,
    )
    logger.debug(
        f"Flags for {current.period_key}: {[name.value for name in flags.active]} "
        f"(elapsed={elapsed_periods}, spend_drop={spend_drop:.3f}, "
        f"redemptions_drop={redemptions_drop:.3f})"
    )
    return flags


def format_flags_as_text(flags: Optional[RiskFlags]) -> str:
    """
    Render active flags as a comma-separated list of display labels.

    >>> format_flags_as_text(RiskFlags(low_redemptions=True, spend_drop=True))
    'Low Monthly Redemptions, Spend Drop'
    >>> format_flags_as_text(RiskFlags())
    'No flags'
    """
    if flags is None:
        return NO_FLAGS_TEXT
    labels = [FLAG_LABELS[name] for name in flags.active]
    return ", ".join(labels) if labels else NO_FLAGS_TEXT


__all__ = [
    "NO_FLAGS_TEXT",
    "calculate_drop",
    "evaluate_flag_predicates",
    "drop_flags_eligible",
    "evaluate_flags",
    "format_flags_as_text",
]
