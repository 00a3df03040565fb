"""
Dashboard Summary Service

Table-level views over classified account rows, mirroring what the accounts
dashboard shows above and inside its table:

- Filtering by CSM and risk level
- Sorting (risk level sorts by priority high > medium > low > unknown)
- Pagination (25 rows per page)
- Summary cards: totals, risk counts and period-over-period deltas
- Monthly risk distribution: per-period counts of each risk tier
- Historical performance: per-period activity totals across accounts

Aggregations use pandas so the same code handles a handful of accounts or
the full book of business.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from churnguard.models.enums import RiskLevel
from churnguard.models.schemas import (
    AccountRiskRow,
    AccountSnapshot,
    HistoricalPerformancePoint,
    RiskDistributionPoint,
    RiskOverride,
    SummaryStats,
    ThresholdPolicy,
)
from churnguard.services.classification import classify_series
from churnguard.services.period_series import InvalidInputError, PeriodSeries
from churnguard.services.thresholds import DEFAULT_POLICY


logger = logging.getLogger(__name__)


DEFAULT_PAGE_SIZE: int = 25

# Sort priority for risk levels; anything else sorts as 0
RISK_PRIORITY: Dict[str, int] = {
    RiskLevel.HIGH.value: 3,
    RiskLevel.MEDIUM.value: 2,
    RiskLevel.LOW.value: 1,
}

RISK_SORT_FIELDS = ("risk_level", "trending_risk_level")
SORTABLE_FIELDS = tuple(AccountSnapshot.model_fields) + RISK_SORT_FIELDS


def _level_value(level: Any) -> Optional[str]:
    if level is None:
        return None
    return level.value if isinstance(level, RiskLevel) else str(level)


def _count_bucket(level: Any) -> str:
    """Risk tier a level counts toward; missing and unknown levels count as low."""
    value = (_level_value(level) or "").lower()
    if value in (RiskLevel.HIGH.value, RiskLevel.MEDIUM.value):
        return value
    return RiskLevel.LOW.value


def _trending_level(row: AccountRiskRow) -> Optional[str]:
    return _level_value(row.trending.level) if row.trending is not None else None


# =============================================================================
# Filtering, Sorting, Pagination
# =============================================================================


def filter_accounts(
    rows: Iterable[AccountRiskRow],
    csms: Optional[Iterable[str]] = None,
    risk_level: Optional[str] = None,
) -> List[AccountRiskRow]:
    """
    Keep rows whose CSM is in `csms` and whose settled level equals `risk_level`.

    An empty or missing CSM list and a risk level of None or "all" do not filter.
    """
    selected_csms = {csm for csm in (csms or []) if csm}
    filtered = list(rows)
    if selected_csms:
        filtered = [row for row in filtered if row.account.csm in selected_csms]
    if risk_level and risk_level.lower() != "all":
        filtered = [row for row in filtered if row.risk_level.lower() == risk_level.lower()]
    return filtered


def sort_accounts(
    rows: Iterable[AccountRiskRow],
    field: str,
    descending: bool = False,
) -> List[AccountRiskRow]:
    """
    Stable sort of account rows by an account field or a risk level.

    - risk_level / trending_risk_level: by RISK_PRIORITY
    - fields whose values are all strings: case-insensitive text order
    - anything else: numeric, with missing or non-numeric values as 0

    Missing text values sort as the empty string.

    Raises:
        InvalidInputError: If field is not sortable.
    """
    if field not in SORTABLE_FIELDS:
        raise InvalidInputError(f"Cannot sort by '{field}'. Sortable fields: {sorted(SORTABLE_FIELDS)}")

    rows = list(rows)

    if field in RISK_SORT_FIELDS:
        def level_of(row: AccountRiskRow) -> Optional[str]:
            return row.risk_level if field == "risk_level" else _trending_level(row)

        return sorted(
            rows,
            key=lambda row: RISK_PRIORITY.get((level_of(row) or "").lower(), 0),
            reverse=descending,
        )

    values = [getattr(row.account, field) for row in rows]
    present = [value for value in values if value is not None]
    if present and all(isinstance(value, str) for value in present):
        keyed = [((value or "").lower(), row) for value, row in zip(values, rows)]
    else:
        keyed = [(_as_number(value), row) for value, row in zip(values, rows)]

    keyed.sort(key=lambda pair: pair[0], reverse=descending)
    return [row for _, row in keyed]


def _as_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if np.isfinite(number) else 0.0


def paginate(
    rows: List[AccountRiskRow],
    page: int,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[AccountRiskRow], int]:
    """
    Slice out one 1-based page.

    Returns:
        Tuple of (rows on the page, total number of pages). Pages past the end
        are empty; zero rows means zero pages.

    Raises:
        InvalidInputError: If page < 1 or per_page < 1.
    """
    if page < 1:
        raise InvalidInputError(f"page must be >= 1, got {page}")
    if per_page < 1:
        raise InvalidInputError(f"per_page must be >= 1, got {per_page}")

    total_pages = math.ceil(len(rows) / per_page)
    start = (page - 1) * per_page
    return rows[start:start + per_page], total_pages


def filter_options(rows: Iterable[AccountRiskRow]) -> Tuple[List[str], List[str]]:
    """Sorted distinct CSMs and settled risk levels for the table's filter menus."""
    rows = list(rows)
    csms = sorted({row.account.csm for row in rows if row.account.csm})
    levels = sorted({row.risk_level for row in rows if row.risk_level})
    return csms, levels


# =============================================================================
# Summary Cards
# =============================================================================


def _rows_frame(rows: Iterable[AccountRiskRow]) -> pd.DataFrame:
    records = [
        {
            "total_spend": row.account.total_spend,
            "coupons_redeemed": row.account.coupons_redeemed,
            "total_texts_delivered": row.account.total_texts_delivered,
            "active_subscribers": row.account.active_subscribers,
            "spend_delta": row.account.spend_delta,
            "coupons_delta": row.account.coupons_delta,
            "texts_delta": row.account.texts_delta,
            "subs_delta": row.account.subs_delta,
            "is_current_period": row.account.is_current_period,
            "risk_bucket": _count_bucket(row.risk.level),
        }
        for row in rows
    ]
    columns = [
        "total_spend", "coupons_redeemed", "total_texts_delivered", "active_subscribers",
        "spend_delta", "coupons_delta", "texts_delta", "subs_delta",
        "is_current_period", "risk_bucket",
    ]
    return pd.DataFrame.from_records(records, columns=columns)


def _risk_counts(df: pd.DataFrame) -> Dict[str, int]:
    counts = df["risk_bucket"].value_counts()
    return {level.value: int(counts.get(level.value, 0)) for level in RiskLevel}


def summarize_accounts(
    rows: Iterable[AccountRiskRow],
    comparison_rows: Optional[Iterable[AccountRiskRow]] = None,
) -> SummaryStats:
    """
    Summary card figures for a (filtered) set of account rows.

    Metric deltas are the sum of each account's deltas against its preceding
    period; rows of the open current period contribute no metric deltas.
    Risk deltas are only computed when comparison_rows (the current period's
    rows, filtered the same way) are supplied, as comparison count minus
    count in `rows`; otherwise they are 0.

    Args:
        rows: Rows shown in the table.
        comparison_rows: Rows to compare risk counts against.

    Returns:
        SummaryStats for the rows.
    """
    df = _rows_frame(rows)
    counts = _risk_counts(df)

    settled = df[~df["is_current_period"].astype(bool)]
    stats = SummaryStats(
        total_accounts=len(df),
        high_risk_count=counts[RiskLevel.HIGH.value],
        medium_risk_count=counts[RiskLevel.MEDIUM.value],
        low_risk_count=counts[RiskLevel.LOW.value],
        total_spend=float(df["total_spend"].sum()),
        total_redemptions=float(df["coupons_redeemed"].sum()),
        total_texts=float(df["total_texts_delivered"].sum()),
        total_subscribers=float(df["active_subscribers"].sum()),
        spend_delta=float(settled["spend_delta"].sum()),
        redemptions_delta=float(settled["coupons_delta"].sum()),
        texts_delta=float(settled["texts_delta"].sum()),
        subscribers_delta=float(settled["subs_delta"].sum()),
    )

    if comparison_rows is None:
        return stats

    comparison_counts = _risk_counts(_rows_frame(comparison_rows))
    return stats.model_copy(update={
        "high_risk_delta": comparison_counts[RiskLevel.HIGH.value] - counts[RiskLevel.HIGH.value],
        "medium_risk_delta": comparison_counts[RiskLevel.MEDIUM.value] - counts[RiskLevel.MEDIUM.value],
        "low_risk_delta": comparison_counts[RiskLevel.LOW.value] - counts[RiskLevel.LOW.value],
    })


# =============================================================================
# Risk Distribution
# =============================================================================


def risk_distribution(
    series_by_account: Mapping[str, PeriodSeries],
    overrides: Optional[Mapping[str, RiskOverride]] = None,
    policy: Optional[ThresholdPolicy] = None,
) -> List[RiskDistributionPoint]:
    """
    Per-period counts of settled risk tiers across accounts.

    Every period of every series is classified; frozen accounts with an
    override count toward their override level. Periods are returned in
    ascending key order, each tagged with the policy criteria used.

    Args:
        series_by_account: {account_id: PeriodSeries}
        overrides: {account_id: RiskOverride} for frozen accounts.
        policy: Threshold policy (defaults to DEFAULT_POLICY).
    """
    policy = policy or DEFAULT_POLICY
    overrides = overrides or {}

    records = []
    for account_id, series in series_by_account.items():
        assessments = classify_series(series, overrides.get(account_id), policy)
        for period, assessment in zip(series, assessments):
            records.append({
                "period_key": period.period_key,
                "period_label": period.period_label,
                "account_id": account_id,
                "risk_bucket": _count_bucket(assessment.level),
            })

    if not records:
        return []

    df = pd.DataFrame.from_records(records)
    counts = pd.crosstab(df["period_key"], df["risk_bucket"]).reindex(
        columns=[level.value for level in RiskLevel], fill_value=0
    )
    totals = df.groupby("period_key")["account_id"].nunique()
    labels = df.groupby("period_key")["period_label"].agg(lambda values: next((value for value in values if value), ""))

    criteria = policy.as_criteria()
    points = [
        RiskDistributionPoint(
            period_key=str(period_key),
            period_label=labels[period_key],
            low_risk=int(row[RiskLevel.LOW.value]),
            medium_risk=int(row[RiskLevel.MEDIUM.value]),
            high_risk=int(row[RiskLevel.HIGH.value]),
            total_accounts=int(totals[period_key]),
            criteria=criteria,
        )
        for period_key, row in counts.sort_index().iterrows()
    ]
    logger.debug(f"Risk distribution over {len(series_by_account)} accounts, {len(points)} periods")
    return points


# =============================================================================
# Historical Performance
# =============================================================================


def historical_performance(series_by_account: Mapping[str, PeriodSeries]) -> List[HistoricalPerformancePoint]:
    """
    Activity totals across accounts for each period, oldest first.

    account_count is the number of distinct accounts with a row in the period.
    """
    records = [
        {
            "period_key": period.period_key,
            "period_label": period.period_label,
            "account_id": account_id,
            "total_spend": period.total_spend,
            "total_redemptions": period.coupons_redeemed,
            "total_subscribers": period.active_subscribers,
            "total_texts": period.total_texts_delivered,
        }
        for account_id, series in series_by_account.items()
        for period in series
    ]
    if not records:
        return []

    df = pd.DataFrame.from_records(records)
    totals = df.groupby("period_key").agg(
        period_label=("period_label", lambda values: next((value for value in values if value), "")),
        total_spend=("total_spend", "sum"),
        total_redemptions=("total_redemptions", "sum"),
        total_subscribers=("total_subscribers", "sum"),
        total_texts=("total_texts", "sum"),
        account_count=("account_id", "nunique"),
    )

    return [
        HistoricalPerformancePoint(
            period_key=str(period_key),
            period_label=row["period_label"],
            total_spend=float(row["total_spend"]),
            total_redemptions=float(row["total_redemptions"]),
            total_subscribers=float(row["total_subscribers"]),
            total_texts=float(row["total_texts"]),
            account_count=int(row["account_count"]),
        )
        for period_key, row in totals.sort_index().iterrows()
    ]


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "RISK_PRIORITY",
    "SORTABLE_FIELDS",
    "filter_accounts",
    "sort_accounts",
    "paginate",
    "filter_options",
    "summarize_accounts",
    "risk_distribution",
    "historical_performance",
]
