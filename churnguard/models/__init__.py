"""
Package initialization file for ChurnGuard models.

Exports all Pydantic schemas and enumerations from schemas.py and enums.py so
other modules can import them from churnguard.models directly.

Usage:
    from churnguard.models import (
        PeriodMetric,
        RiskAssessment,
        RiskLevel,
        # ... etc
    )
"""

# =============================================================================
# Enums
# =============================================================================

from churnguard.models.enums import (
    RiskLevel,
    AssessmentMode,
    PeriodGranularity,
    ComparisonPeriod,
    AccountStatus,
    RiskFlagName,
    SortDirection,
)


# =============================================================================
# Schemas
# =============================================================================

from churnguard.models.schemas import (
    # -------------------------------------------------------------------------
    # Engine inputs
    # -------------------------------------------------------------------------
    PeriodMetric,
    ProjectedMetric,
    ThresholdPolicy,
    RiskOverride,

    # -------------------------------------------------------------------------
    # Engine outputs
    # -------------------------------------------------------------------------
    FLAG_LABELS,
    RiskFlags,
    RiskAssessment,

    # -------------------------------------------------------------------------
    # Metrics provider rows
    # -------------------------------------------------------------------------
    AccountSnapshot,

    # -------------------------------------------------------------------------
    # API responses
    # -------------------------------------------------------------------------
    AccountRiskRow,
    SummaryStats,
    AccountListResponse,
    AccountHistoryPoint,
    AccountHistoryResponse,
    RiskDistributionPoint,
    HistoricalPerformancePoint,
    RiskScoreItem,

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------
    LoginRequest,
    LoginResponse,
    SessionUser,
    AuthCheckResponse,
    ChangePasswordRequest,
    MessageResponse,
)


__all__ = [
    # Enums
    "RiskLevel",
    "AssessmentMode",
    "PeriodGranularity",
    "ComparisonPeriod",
    "AccountStatus",
    "RiskFlagName",
    "SortDirection",
    # Engine inputs
    "PeriodMetric",
    "ProjectedMetric",
    "ThresholdPolicy",
    "RiskOverride",
    # Engine outputs
    "FLAG_LABELS",
    "RiskFlags",
    "RiskAssessment",
    # Metrics provider rows
    "AccountSnapshot",
    # API responses
    "AccountRiskRow",
    "SummaryStats",
    "AccountListResponse",
    "AccountHistoryPoint",
    "AccountHistoryResponse",
    "RiskDistributionPoint",
    "HistoricalPerformancePoint",
    "RiskScoreItem",
    # Sessions
    "LoginRequest",
    "LoginResponse",
    "SessionUser",
    "AuthCheckResponse",
    "ChangePasswordRequest",
    "MessageResponse",
]
