"""
Enumeration definitions for the ChurnGuard backend.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, enabling automatic serialization and
deserialization in API responses.
"""

from enum import Enum


class RiskLevel(str, Enum):
    """
    Churn risk tier for an account in one period.

    - low: No risk flags raised
    - medium: One or two risk flags raised
    - high: Three or more risk flags raised
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AssessmentMode(str, Enum):
    """
    Discriminator for how a RiskAssessment was produced.

    - settled: Completed period, classified from final actuals
    - trending: Open period, classified from end-of-period projections
    - override: Frozen account, level supplied by the metrics provider
    """
    SETTLED = "settled"
    TRENDING = "trending"
    OVERRIDE = "override"


class PeriodGranularity(str, Enum):
    """Calendar bucket over which account activity is aggregated."""
    WEEK = "week"
    MONTH = "month"


class AccountStatus(str, Enum):
    """
    Lifecycle status reported by the metrics provider.

    FROZEN is terminal: the provider supplies the risk level and reason
    directly and flag evaluation is skipped.
    """
    ACTIVE = "ACTIVE"
    LAUNCHED = "LAUNCHED"
    FROZEN = "FROZEN"
    INACTIVE = "INACTIVE"
    CANCELLED = "CANCELLED"


class RiskFlagName(str, Enum):
    """
    Named risk flags, in display order.

    Values are the serialized (camelCase) field names on RiskFlags.
    """
    LOW_REDEMPTIONS = "lowRedemptions"
    LOW_ACTIVITY = "lowActivity"
    SPEND_DROP = "spendDrop"
    REDEMPTIONS_DROP = "redemptionsDrop"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ComparisonPeriod(str, Enum):
    """
    Period an account table can be shown for.

    The current_* values are the open period of each granularity; every other
    value is a settled or averaged period compared against it.
    """
    CURRENT_MONTH = "current_month"
    PREVIOUS_MONTH = "previous_month"
    LAST_3_MONTH_AVG = "last_3_month_avg"
    THIS_MONTH_LAST_YEAR = "this_month_last_year"
    CURRENT_WEEK = "current_week"
    PREVIOUS_WEEK = "previous_week"
    SIX_WEEK_AVERAGE = "six_week_average"
    SAME_WEEK_LAST_MONTH = "same_week_last_month"
    SAME_WEEK_LAST_YEAR = "same_week_last_year"

    @property
    def granularity(self) -> PeriodGranularity:
        return PeriodGranularity.WEEK if "week" in self.value else PeriodGranularity.MONTH

    @property
    def is_current(self) -> bool:
        return self.value.startswith("current_")

    @classmethod
    def current_for(cls, granularity: PeriodGranularity) -> "ComparisonPeriod":
        if granularity == PeriodGranularity.WEEK:
            return cls.CURRENT_WEEK
        return cls.CURRENT_MONTH
