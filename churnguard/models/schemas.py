"""
Pydantic data models for the ChurnGuard backend.

This module provides type-safe validation and serialization for the risk
classification engine's inputs and outputs and for every API contract:
per-period account metrics, risk flags and assessments, the threshold policy,
account snapshots served by the metrics provider, dashboard summaries, and
session requests/responses.

Field naming:
- Metric and account fields are snake_case, matching the metrics provider's
  canonical column names (total_spend, coupons_redeemed, ...).
- Risk flag and assessment fields serialize with camelCase aliases
  (lowRedemptions, flagCount, ...) as the dashboard consumes them.

Providers normalize upstream naming differences (risk_level vs riskLevel,
active_subs_cnt vs active_subscribers) before building these models; the
classification engine only ever sees the canonical names.

All models use Pydantic v2 syntax.
"""

import math
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from churnguard.models.enums import (
    AccountStatus,
    AssessmentMode,
    ComparisonPeriod,
    PeriodGranularity,
    RiskFlagName,
    RiskLevel,
)


# =============================================================================
# Shared Validators
# =============================================================================

def _coalesce_to_zero(value: Any) -> Any:
    """Treat missing counters (None/NaN) as zero so the engine never sees them."""
    if value is None:
        return 0
    # numpy scalars coming out of pandas rows
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return 0
    return value


def _coerce_period_key(value: Any) -> Any:
    """Accept date/datetime period keys and store them as ISO strings."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


Spend = Annotated[float, BeforeValidator(_coalesce_to_zero)]
Count = Annotated[int, BeforeValidator(_coalesce_to_zero)]
Delta = Annotated[float, BeforeValidator(_coalesce_to_zero)]
PeriodKey = Annotated[str, BeforeValidator(_coerce_period_key)]


# =============================================================================
# Period Metrics (engine input)
# =============================================================================


class PeriodMetric(BaseModel):
    """
    One account's activity in one period (week or month).

    period_key is opaque to the engine beyond its ordering; ISO start dates
    ("2025-07-01") sort correctly as strings. period_label is display only.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "period_key": "2025-07-01",
                "period_label": "Jul 2025",
                "total_spend": 1250.0,
                "total_texts_delivered": 4200,
                "coupons_redeemed": 48,
                "active_subscribers": 615,
            }
        }
    )

    period_key: PeriodKey = Field(..., min_length=1, description="Totally ordered period identifier")
    period_label: str = Field(default="", description="Display label, not used in logic")
    total_spend: Spend = Field(default=0.0, ge=0.0, description="Spend in the period")
    total_texts_delivered: Count = Field(default=0, ge=0, description="Texts delivered in the period")
    coupons_redeemed: Count = Field(default=0, ge=0, description="Coupon redemptions in the period")
    active_subscribers: Count = Field(default=0, ge=0, description="Active subscribers at period end")

    @property
    def has_activity(self) -> bool:
        """True when spend, texts or redemptions are non-zero."""
        return (
            self.total_spend > 0
            or self.total_texts_delivered > 0
            or self.coupons_redeemed > 0
        )


class ProjectedMetric(BaseModel):
    """
    End-of-period estimate for an open period.

    Spend and redemptions are extrapolated from partial actuals and are
    therefore fractional; subscribers stay at the actual as-of-now count.
    """
    model_config = ConfigDict(frozen=True)

    period_key: str
    progress: float = Field(..., gt=0.0, le=1.0, description="Elapsed fraction used for the projection")
    projected_spend: float = Field(..., ge=0.0)
    projected_redemptions: float = Field(..., ge=0.0)
    active_subscribers: int = Field(default=0, ge=0)


# =============================================================================
# Risk Flags and Assessments (engine output)
# =============================================================================

FLAG_LABELS: Dict[RiskFlagName, str] = {
    RiskFlagName.LOW_REDEMPTIONS: "Low Monthly Redemptions",
    RiskFlagName.LOW_ACTIVITY: "Low Activity",
    RiskFlagName.SPEND_DROP: "Spend Drop",
    RiskFlagName.REDEMPTIONS_DROP: "Redemptions Drop",
}


class RiskFlags(BaseModel):
    """
    The four independent boolean risk indicators for one period.

    Flags are not mutually exclusive and carry no ordering of their own;
    FLAG_LABELS defines the display order.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    low_redemptions: bool = Field(default=False, alias="lowRedemptions")
    low_activity: bool = Field(default=False, alias="lowActivity")
    spend_drop: bool = Field(default=False, alias="spendDrop")
    redemptions_drop: bool = Field(default=False, alias="redemptionsDrop")

    def as_dict(self) -> Dict[RiskFlagName, bool]:
        return {
            RiskFlagName.LOW_REDEMPTIONS: self.low_redemptions,
            RiskFlagName.LOW_ACTIVITY: self.low_activity,
            RiskFlagName.SPEND_DROP: self.spend_drop,
            RiskFlagName.REDEMPTIONS_DROP: self.redemptions_drop,
        }

    @property
    def count(self) -> int:
        return sum(1 for active in self.as_dict().values() if active)

    @property
    def active(self) -> List[RiskFlagName]:
        return [name for name, active in self.as_dict().items() if active]


class RiskOverride(BaseModel):
    """
    Precomputed risk supplied by the metrics provider for frozen accounts.

    The level is passed through verbatim; it is not validated against
    RiskLevel.
    """
    level: str
    reason: Optional[str] = None


class RiskAssessment(BaseModel):
    """
    Classification of one account in one period.

    mode tags how the result was produced:
    - settled: flags from final actuals, reduced with the settled table
    - trending: flags from projections, reduced with the trending table
    - override: provider-supplied level/reason; flags is None
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "mode": "settled",
                "level": "medium",
                "flags": {
                    "lowRedemptions": True,
                    "lowActivity": False,
                    "spendDrop": False,
                    "redemptionsDrop": False,
                },
                "flagCount": 1,
                "reason": "Low Monthly Redemptions",
                "periodKey": "2025-07-01",
            }
        }
    )

    mode: AssessmentMode
    level: Union[RiskLevel, str]
    flags: Optional[RiskFlags] = None
    flag_count: int = Field(default=0, ge=0, le=4, alias="flagCount")
    reason: str = ""
    period_key: Optional[str] = Field(default=None, alias="periodKey")


# =============================================================================
# Threshold Policy
# =============================================================================


class ThresholdPolicy(BaseModel):
    """
    Named, versioned set of numeric thresholds used by every flag rule.

    Immutable; build a new policy (model_copy(update=...)) to change values.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    monthly_redemptions_threshold: int = Field(..., ge=0)
    low_activity_subscribers_threshold: int = Field(..., ge=0)
    low_activity_redemptions_threshold: int = Field(..., ge=0)
    spend_drop_threshold: float = Field(..., ge=0.0, le=1.0)
    redemptions_drop_threshold: float = Field(..., ge=0.0, le=1.0)
    min_elapsed_periods_for_drop_flags: int = Field(..., ge=0)

    def as_criteria(self) -> Dict[str, float]:
        """Thresholds in the camelCase shape reported alongside risk distributions."""
        return {
            "monthlyRedemptionsThreshold": self.monthly_redemptions_threshold,
            "lowActivitySubscribers": self.low_activity_subscribers_threshold,
            "lowActivityRedemptions": self.low_activity_redemptions_threshold,
            "redemptionsDropThreshold": self.redemptions_drop_threshold,
            "spendDropThreshold": self.spend_drop_threshold,
            "minElapsedPeriodsForDropFlags": self.min_elapsed_periods_for_drop_flags,
        }


# =============================================================================
# Account Snapshots (metrics provider output)
# =============================================================================


class AccountSnapshot(BaseModel):
    """
    One row of the accounts table: an account's totals for the selected
    period plus its deltas against the preceding period.

    Deltas are current minus previous, so the previous period's actuals are
    recoverable as current - delta.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "account_id": "ACC-1001",
                "name": "Tacos El Rey",
                "csm": "Dana",
                "status": "ACTIVE",
                "period_key": "2025-07-01",
                "total_spend": 640.0,
                "total_texts_delivered": 2100,
                "coupons_redeemed": 12,
                "active_subscribers": 280,
                "spend_delta": -310.0,
                "texts_delta": -400,
                "coupons_delta": -20,
                "subs_delta": 5,
                "is_current_period": True,
            }
        }
    )

    account_id: str = Field(..., min_length=1)
    name: str = ""
    csm: Optional[str] = None
    status: str = AccountStatus.ACTIVE.value
    location_cnt: Count = Field(default=0, ge=0)
    latest_activity: Optional[str] = None

    period_key: Optional[PeriodKey] = None
    period_label: str = ""
    is_current_period: bool = False
    elapsed_periods: Optional[int] = Field(
        default=None,
        ge=0,
        description="Periods since first activity, when the provider knows it",
    )

    total_spend: Spend = Field(default=0.0, ge=0.0)
    total_texts_delivered: Count = Field(default=0, ge=0)
    coupons_redeemed: Count = Field(default=0, ge=0)
    active_subscribers: Count = Field(default=0, ge=0)

    spend_delta: Delta = 0.0
    texts_delta: Delta = 0.0
    coupons_delta: Delta = 0.0
    subs_delta: Delta = 0.0

    risk_level: Optional[str] = None
    risk_reason: Optional[str] = None

    @property
    def is_frozen(self) -> bool:
        return (self.status or "").upper() == AccountStatus.FROZEN.value

    @property
    def override(self) -> Optional[RiskOverride]:
        """Provider risk for frozen accounts that carry one; None otherwise."""
        if self.is_frozen and self.risk_level is not None:
            return RiskOverride(level=self.risk_level, reason=self.risk_reason)
        return None

    def as_period_metric(self) -> PeriodMetric:
        return PeriodMetric(
            period_key=self.period_key or "current",
            period_label=self.period_label,
            total_spend=self.total_spend,
            total_texts_delivered=self.total_texts_delivered,
            coupons_redeemed=self.coupons_redeemed,
            active_subscribers=self.active_subscribers,
        )


# =============================================================================
# API Response Models
# =============================================================================


class AccountRiskRow(BaseModel):
    """Account snapshot joined with its settled and (optional) trending risk."""
    model_config = ConfigDict(populate_by_name=True)

    account: AccountSnapshot
    risk: RiskAssessment
    trending: Optional[RiskAssessment] = None
    flag_text: str = Field(default="No flags", alias="flagText")
    trending_flag_text: Optional[str] = Field(default=None, alias="trendingFlagText")

    @property
    def risk_level(self) -> str:
        level = self.risk.level
        return level.value if isinstance(level, RiskLevel) else str(level)


class SummaryStats(BaseModel):
    """Totals and risk counts over a (filtered) set of account rows."""
    total_accounts: int = 0
    high_risk_count: int = 0
    medium_risk_count: int = 0
    low_risk_count: int = 0
    total_spend: float = 0.0
    total_redemptions: float = 0.0
    total_texts: float = 0.0
    total_subscribers: float = 0.0
    spend_delta: float = 0.0
    redemptions_delta: float = 0.0
    texts_delta: float = 0.0
    subscribers_delta: float = 0.0
    high_risk_delta: int = 0
    medium_risk_delta: int = 0
    low_risk_delta: int = 0


class AccountListResponse(BaseModel):
    granularity: PeriodGranularity
    period: ComparisonPeriod
    accounts: List[AccountRiskRow]
    summary: SummaryStats
    page: int = 1
    total_pages: int = 0
    csms: List[str] = Field(default_factory=list)
    risk_levels: List[str] = Field(default_factory=list)


class AccountHistoryPoint(BaseModel):
    period: PeriodMetric
    assessment: RiskAssessment
    flag_text: str = Field(default="No flags", alias="flagText")

    model_config = ConfigDict(populate_by_name=True)


class AccountHistoryResponse(BaseModel):
    account_id: str
    granularity: PeriodGranularity
    points: List[AccountHistoryPoint]
    trending: Optional[RiskAssessment] = None


class RiskDistributionPoint(BaseModel):
    """Risk tier counts across accounts for one period."""
    period_key: str
    period_label: str = ""
    low_risk: int = 0
    medium_risk: int = 0
    high_risk: int = 0
    total_accounts: int = 0
    criteria: Dict[str, float] = Field(default_factory=dict)


class HistoricalPerformancePoint(BaseModel):
    """Activity totals across all accounts for one period."""
    period_key: str
    period_label: str = ""
    total_spend: float = 0.0
    total_redemptions: float = 0.0
    total_subscribers: float = 0.0
    total_texts: float = 0.0
    account_count: int = 0


class RiskScoreItem(BaseModel):
    account_id: str
    risk_level: Optional[str] = None
    total_spend: float = 0.0


# =============================================================================
# Session Models
# =============================================================================


class LoginRequest(BaseModel):
    password: str


class SessionUser(BaseModel):
    id: str
    role: str = "admin"


class LoginResponse(BaseModel):
    message: str
    session_id: str = Field(..., alias="sessionId")
    user: SessionUser

    model_config = ConfigDict(populate_by_name=True)


class AuthCheckResponse(BaseModel):
    user: SessionUser
    authenticated: bool = True


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")


class MessageResponse(BaseModel):
    message: str
