"""
ChurnGuard Services Module

Business logic for churn risk classification and the dashboard built on it.
Engine services are pure and perform no I/O; the metrics provider is the only
service that reads external data.

Services:
- period_series: Ordered per-account period metrics with temporal queries
- thresholds: Named, versioned risk threshold policy
- flags: The four risk flag rules
- reducer: Flag count to risk level tables (settled / trending)
- projection: End-of-period projection for the open period
- classification: Settled, trending and override assessments
- metrics_provider: In-memory, DataFrame/CSV and BigQuery metric sources
- summary: Filtering, sorting, pagination, summary cards, risk distribution
- auth: Dashboard password and session tokens

All services are designed to be consumed by the API layer (churnguard/api/).
"""

# =============================================================================
# Risk Classification Engine Exports
# =============================================================================

from churnguard.services.period_series import InvalidInputError, PeriodSeries
from churnguard.services.thresholds import (
    DEFAULT_POLICY,
    build_threshold_policy,
    get_threshold_policy,
)
from churnguard.services.flags import (
    NO_FLAGS_TEXT,
    calculate_drop,
    evaluate_flags,
    evaluate_flag_predicates,
    format_flags_as_text,
)
from churnguard.services.reducer import reduce_risk_level
from churnguard.services.projection import (
    calculate_progress,
    clamp_progress,
    evaluate_trending_flags,
    project_metric,
    recover_previous_from_deltas,
)
from churnguard.services.classification import (
    classify_account,
    classify_accounts,
    classify_history,
    classify_period,
    classify_series,
    classify_trending,
)

# =============================================================================
# Metrics Provider Exports
# =============================================================================

from churnguard.services.metrics_provider import (
    BigQueryMetricsProvider,
    DataFrameMetricsProvider,
    InMemoryMetricsProvider,
    MetricsProvider,
    ProviderError,
    build_metrics_provider,
)

# =============================================================================
# Dashboard Summary Exports
# =============================================================================

from churnguard.services.summary import (
    filter_accounts,
    filter_options,
    paginate,
    risk_distribution,
    sort_accounts,
    summarize_accounts,
)

# =============================================================================
# Session Exports
# =============================================================================

from churnguard.services.auth import (
    AuthenticationError,
    CredentialStore,
    PasswordPolicyError,
    SessionExpiredError,
    SessionStore,
)


__all__ = [
    # Engine
    "InvalidInputError",
    "PeriodSeries",
    "DEFAULT_POLICY",
    "build_threshold_policy",
    "get_threshold_policy",
    "NO_FLAGS_TEXT",
    "calculate_drop",
    "evaluate_flags",
    "evaluate_flag_predicates",
    "format_flags_as_text",
    "reduce_risk_level",
    "calculate_progress",
    "clamp_progress",
    "evaluate_trending_flags",
    "project_metric",
    "recover_previous_from_deltas",
    "classify_account",
    "classify_accounts",
    "classify_history",
    "classify_period",
    "classify_series",
    "classify_trending",
    # Metrics provider
    "BigQueryMetricsProvider",
    "DataFrameMetricsProvider",
    "InMemoryMetricsProvider",
    "MetricsProvider",
    "ProviderError",
    "build_metrics_provider",
    # Summaries
    "filter_accounts",
    "filter_options",
    "paginate",
    "risk_distribution",
    "sort_accounts",
    "summarize_accounts",
    # Sessions
    "AuthenticationError",
    "CredentialStore",
    "PasswordPolicyError",
    "SessionExpiredError",
    "SessionStore",
]
