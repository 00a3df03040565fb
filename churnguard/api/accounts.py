"""
FastAPI router module for account risk endpoints.

Serves the accounts dashboard: the classified account table with its summary
cards, one account's risk history, the latest risk scores and the monthly
risk distribution.

Key Endpoints:
- GET /accounts: Classified, filtered, sorted and paginated account rows
- GET /accounts/{account_id}/history: Settled risk per period plus trending risk
- GET /risk-scores/latest: Flat account_id / risk_level / total_spend list
- GET /risk-distribution: Per-period low/medium/high counts with criteria
- GET /historical-performance: Per-period activity totals across accounts

Error mapping:
- InvalidInputError (bad sort field, period of the wrong granularity) -> 422
- Unknown account -> 404
- ProviderError, including malformed stored series -> 502 (logged with traceback)

All endpoints require a bearer session token.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from churnguard.core.dependencies import (
    CurrentSessionDep,
    MetricsProviderDep,
    SettingsDep,
    ThresholdPolicyDep,
)
from churnguard.models.enums import ComparisonPeriod, PeriodGranularity, SortDirection
from churnguard.models.schemas import (
    AccountHistoryPoint,
    AccountHistoryResponse,
    AccountListResponse,
    HistoricalPerformancePoint,
    RiskDistributionPoint,
    RiskScoreItem,
)
from churnguard.services.classification import classify_accounts, classify_history, describe_assessment
from churnguard.services.metrics_provider import ProviderError, resolve_comparison_period
from churnguard.services.period_series import InvalidInputError
from churnguard.services.projection import calculate_progress
from churnguard.services.summary import (
    DEFAULT_PAGE_SIZE,
    filter_accounts,
    filter_options,
    historical_performance,
    paginate,
    risk_distribution,
    sort_accounts,
    summarize_accounts,
)


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def _invalid_input(e: InvalidInputError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(e))


def _provider_failure(e: ProviderError, action: str) -> HTTPException:
    logger.exception(f"Metrics provider failed while {action}")
    return HTTPException(
        status_code=502,
        detail=f"Failed to {action}: {e}",
    )


# =============================================================================
# API Endpoints
# =============================================================================

@router.get(
    "/accounts",
    response_model=AccountListResponse,
    summary="List Classified Accounts",
)
async def list_accounts(
    provider: MetricsProviderDep,
    policy: ThresholdPolicyDep,
    session: CurrentSessionDep,
    granularity: PeriodGranularity = Query(default=PeriodGranularity.MONTH),
    period: Optional[ComparisonPeriod] = Query(
        default=None,
        description="Snapshot period to show; defaults to the current period of the granularity",
    ),
    csm: Optional[List[str]] = Query(default=None, description="Keep only these CSMs"),
    risk_level: Optional[str] = Query(default=None, description="low, medium, high or all"),
    sort: Optional[str] = Query(default=None, description="Account field or risk_level"),
    direction: SortDirection = Query(default=SortDirection.ASC),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=500),
    as_of: Optional[date] = Query(default=None, description="Date used for trending progress"),
) -> AccountListResponse:
    """
    Classify every account for the selected period and return one table page.

    Filter menus (csms, risk_levels) are built from the unfiltered rows; the
    summary is computed over the filtered rows before pagination. When a
    comparison period is selected, the current period's rows are classified
    and filtered the same way and the summary's risk deltas report current
    counts minus the counts shown.

    Raises:
        HTTPException 422: Unknown sort field or a period of the other granularity.
        HTTPException 502: If the metrics provider fails.
    """
    try:
        selected = resolve_comparison_period(granularity, period)
    except InvalidInputError as e:
        raise _invalid_input(e)

    logger.info(
        f"Listing {granularity.value} accounts for {selected.value} "
        f"(page={page}, sort={sort}, risk_level={risk_level})"
    )

    current_snapshots = None
    try:
        snapshots = await provider.get_account_snapshots(granularity, selected)
        if not selected.is_current:
            current_snapshots = await provider.get_account_snapshots(granularity)
    except ProviderError as e:
        raise _provider_failure(e, "fetch accounts")

    try:
        rows = classify_accounts(snapshots, granularity, as_of, policy)
        csms, risk_levels = filter_options(rows)
        rows = filter_accounts(rows, csms=csm, risk_level=risk_level)
        current_rows = None
        if current_snapshots is not None:
            current_rows = filter_accounts(
                classify_accounts(current_snapshots, granularity, as_of, policy),
                csms=csm,
                risk_level=risk_level,
            )
        summary = summarize_accounts(rows, comparison_rows=current_rows)
        if sort:
            rows = sort_accounts(rows, sort, descending=direction == SortDirection.DESC)
        page_rows, total_pages = paginate(rows, page, per_page)
    except InvalidInputError as e:
        raise _invalid_input(e)

    logger.info(f"Returning {len(page_rows)} of {len(rows)} accounts")
    return AccountListResponse(
        granularity=granularity,
        period=selected,
        accounts=page_rows,
        summary=summary,
        page=page,
        total_pages=total_pages,
        csms=csms,
        risk_levels=risk_levels,
    )


@router.get(
    "/accounts/{account_id}/history",
    response_model=AccountHistoryResponse,
    summary="Get Account Risk History",
)
async def get_account_history(
    account_id: str,
    provider: MetricsProviderDep,
    policy: ThresholdPolicyDep,
    settings: SettingsDep,
    session: CurrentSessionDep,
    granularity: PeriodGranularity = Query(default=PeriodGranularity.MONTH),
    as_of: Optional[date] = Query(default=None, description="Date used for trending progress"),
) -> AccountHistoryResponse:
    """
    Settled risk for each of the trailing periods, plus trending risk when the
    latest period is still open.

    Frozen accounts report their provider override for every period.

    Raises:
        HTTPException 404: If the provider knows nothing about the account.
        HTTPException 502: If the metrics provider fails or returns a malformed series.
    """
    logger.info(f"Fetching {granularity.value} risk history for account={account_id}")

    try:
        snapshot = await provider.get_account_snapshot(account_id, granularity)
        series = await provider.get_period_series(account_id, granularity, settings.history_periods)
    except ProviderError as e:
        raise _provider_failure(e, f"fetch history for account {account_id}")

    if snapshot is None and len(series) == 0:
        logger.warning(f"Account {account_id} not found")
        raise HTTPException(status_code=404, detail=f"Account {account_id} not found")

    override = snapshot.override if snapshot is not None else None

    open_period_progress = None
    if snapshot is not None and snapshot.is_current_period and len(series) > 0:
        if snapshot.period_key is None or snapshot.period_key == series[-1].period_key:
            open_period_progress = calculate_progress(as_of or date.today(), granularity)

    settled, trending = classify_history(series, override, open_period_progress, policy)

    points = [
        AccountHistoryPoint(
            period=period,
            assessment=assessment,
            flag_text=describe_assessment(assessment),
        )
        for period, assessment in zip(series, settled)
    ]
    logger.info(f"Returning {len(points)} history points for account={account_id}")
    return AccountHistoryResponse(
        account_id=account_id,
        granularity=granularity,
        points=points,
        trending=trending,
    )


@router.get(
    "/risk-scores/latest",
    response_model=List[RiskScoreItem],
    summary="Latest Risk Scores",
)
async def get_latest_risk_scores(
    provider: MetricsProviderDep,
    policy: ThresholdPolicyDep,
    session: CurrentSessionDep,
    as_of: Optional[date] = Query(default=None),
) -> List[RiskScoreItem]:
    """Settled monthly risk level and spend for every account."""
    try:
        snapshots = await provider.get_account_snapshots(PeriodGranularity.MONTH)
    except ProviderError as e:
        raise _provider_failure(e, "fetch risk scores")

    rows = classify_accounts(snapshots, PeriodGranularity.MONTH, as_of, policy)
    return [
        RiskScoreItem(
            account_id=row.account.account_id,
            risk_level=row.risk_level,
            total_spend=row.account.total_spend,
        )
        for row in rows
    ]


@router.get(
    "/risk-distribution",
    response_model=List[RiskDistributionPoint],
    summary="Risk Distribution By Period",
)
async def get_risk_distribution(
    provider: MetricsProviderDep,
    policy: ThresholdPolicyDep,
    settings: SettingsDep,
    session: CurrentSessionDep,
    granularity: PeriodGranularity = Query(default=PeriodGranularity.MONTH),
) -> List[RiskDistributionPoint]:
    """
    Count of low/medium/high accounts per period over the trailing window,
    each point tagged with the threshold criteria that produced it.
    """
    try:
        series_by_account = await provider.get_all_period_series(granularity, settings.history_periods)
        snapshots = await provider.get_account_snapshots(granularity)
    except ProviderError as e:
        raise _provider_failure(e, "fetch risk distribution")

    overrides = {
        snapshot.account_id: snapshot.override
        for snapshot in snapshots
        if snapshot.override is not None
    }
    return risk_distribution(series_by_account, overrides, policy)


@router.get(
    "/historical-performance",
    response_model=List[HistoricalPerformancePoint],
    summary="Historical Performance By Period",
)
async def get_historical_performance(
    provider: MetricsProviderDep,
    settings: SettingsDep,
    session: CurrentSessionDep,
    granularity: PeriodGranularity = Query(default=PeriodGranularity.MONTH),
) -> List[HistoricalPerformancePoint]:
    """Spend, redemptions, subscribers and texts summed across accounts per period."""
    try:
        series_by_account = await provider.get_all_period_series(granularity, settings.history_periods)
    except ProviderError as e:
        raise _provider_failure(e, "fetch historical performance")

    points = historical_performance(series_by_account)
    logger.info(f"Returning {len(points)} {granularity.value} performance points")
    return points


__all__ = ["router"]
