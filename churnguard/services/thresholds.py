"""
Risk Threshold Policy

The named, versioned set of numeric thresholds consulted by every flag rule.
The built-in values are fixed for compatibility with the dashboard's historical
risk counts; deployments may override individual values through settings.

Thresholds:
- MONTHLY_REDEMPTIONS_THRESHOLD (3): redemptions <= this raises Low Monthly Redemptions
- LOW_ACTIVITY_SUBSCRIBERS_THRESHOLD (300): subscribers < this, together with
- LOW_ACTIVITY_REDEMPTIONS_THRESHOLD (35): redemptions < this, raises Low Activity
- SPEND_DROP_THRESHOLD (0.40): fractional spend decrease >= this raises Spend Drop
- REDEMPTIONS_DROP_THRESHOLD (0.50): fractional redemption decrease >= this raises Redemptions Drop
- MIN_ELAPSED_PERIODS_FOR_DROP_FLAGS (3): settled drop flags need this many active periods
"""

import logging
from functools import lru_cache
from typing import Dict, Optional

from churnguard.core.config import Settings, get_settings
from churnguard.models.schemas import ThresholdPolicy


logger = logging.getLogger(__name__)


# =============================================================================
# Built-in Thresholds
# =============================================================================

MONTHLY_REDEMPTIONS_THRESHOLD: int = 3
LOW_ACTIVITY_SUBSCRIBERS_THRESHOLD: int = 300
LOW_ACTIVITY_REDEMPTIONS_THRESHOLD: int = 35
SPEND_DROP_THRESHOLD: float = 0.40
REDEMPTIONS_DROP_THRESHOLD: float = 0.50
MIN_ELAPSED_PERIODS_FOR_DROP_FLAGS: int = 3

DEFAULT_POLICY_NAME: str = "churnguard-default"
DEFAULT_POLICY_VERSION: str = "2025.1"

DEFAULT_POLICY = ThresholdPolicy(
    name=DEFAULT_POLICY_NAME,
    version=DEFAULT_POLICY_VERSION,
    monthly_redemptions_threshold=MONTHLY_REDEMPTIONS_THRESHOLD,
    low_activity_subscribers_threshold=LOW_ACTIVITY_SUBSCRIBERS_THRESHOLD,
    low_activity_redemptions_threshold=LOW_ACTIVITY_REDEMPTIONS_THRESHOLD,
    spend_drop_threshold=SPEND_DROP_THRESHOLD,
    redemptions_drop_threshold=REDEMPTIONS_DROP_THRESHOLD,
    min_elapsed_periods_for_drop_flags=MIN_ELAPSED_PERIODS_FOR_DROP_FLAGS,
)

# Settings attribute names that may override a policy field of the same name
_OVERRIDABLE_FIELDS = (
    "monthly_redemptions_threshold",
    "low_activity_subscribers_threshold",
    "low_activity_redemptions_threshold",
    "spend_drop_threshold",
    "redemptions_drop_threshold",
    "min_elapsed_periods_for_drop_flags",
)


def build_threshold_policy(settings: Optional[Settings] = None) -> ThresholdPolicy:
    """
    Build the effective threshold policy from settings.

    Any override left unset keeps the built-in value. When at least one value
    is overridden the policy is renamed "<default>+overrides" so results can
    be traced back to a non-default policy.

    Args:
        settings: Settings to read overrides from (defaults to get_settings()).

    Returns:
        ThresholdPolicy: DEFAULT_POLICY or a copy with overridden values.
    """
    if settings is None:
        settings = get_settings()

    overrides: Dict[str, float] = {}
    for field_name in _OVERRIDABLE_FIELDS:
        value = getattr(settings, field_name, None)
        if value is not None:
            overrides[field_name] = value

    if not overrides:
        return DEFAULT_POLICY

    logger.info(f"Applying threshold overrides: {sorted(overrides)}")
    overrides["name"] = f"{DEFAULT_POLICY_NAME}+overrides"
    # model_validate re-runs field constraints that model_copy would skip
    return ThresholdPolicy.model_validate({**DEFAULT_POLICY.model_dump(), **overrides})


@lru_cache()
def get_threshold_policy() -> ThresholdPolicy:
    """
    Get the process-wide threshold policy.

    Cached like get_settings(); clear with get_threshold_policy.cache_clear()
    after changing settings in tests.
    """
    return build_threshold_policy(get_settings())


__all__ = [
    "MONTHLY_REDEMPTIONS_THRESHOLD",
    "LOW_ACTIVITY_SUBSCRIBERS_THRESHOLD",
    "LOW_ACTIVITY_REDEMPTIONS_THRESHOLD",
    "SPEND_DROP_THRESHOLD",
    "REDEMPTIONS_DROP_THRESHOLD",
    "MIN_ELAPSED_PERIODS_FOR_DROP_FLAGS",
    "DEFAULT_POLICY",
    "build_threshold_policy",
    "get_threshold_policy",
]
