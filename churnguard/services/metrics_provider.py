"""
Metrics Provider Service

The boundary between the classification engine and wherever account activity
actually lives. A provider supplies, per granularity (week or month):

- Per-account period series: ordered PeriodMetric rows, oldest first.
- Account snapshots: one row per account for the selected period with its
  deltas against the preceding period, status, CSM and (for frozen accounts)
  a precomputed risk level and reason. Besides the current (open) period a
  provider may carry snapshot sets for comparison periods such as
  previous_month or six_week_average.

Upstream sources name the same columns differently (active_subs_cnt vs
active_subscribers, riskLevel vs risk_level, month/week vs period_key). All
of that is normalized here so the engine only sees canonical field names.
Missing numeric counters are coalesced to 0.

Implementations:
- InMemoryMetricsProvider: dict-backed, used by tests and the default app
- DataFrameMetricsProvider: pandas DataFrames or CSV files
- BigQueryMetricsProvider: reads configured tables with Client.list_rows;
  blocking client calls run in a worker thread
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Type

import pandas as pd
from google.cloud import bigquery
from pydantic import BaseModel, ValidationError

from churnguard.core.config import Settings
from churnguard.models.enums import AccountStatus, ComparisonPeriod, PeriodGranularity
from churnguard.models.schemas import AccountSnapshot, PeriodMetric
from churnguard.services.period_series import InvalidInputError, PeriodSeries


# Configure module logger
logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Raised when the backing metrics store cannot be read."""


# =============================================================================
# Column Normalization
# =============================================================================

# Lowercased upstream column name -> canonical name
COLUMN_ALIASES: Dict[str, str] = {
    "active_subs_cnt": "active_subscribers",
    "active_subs": "active_subscribers",
    "subscribers": "active_subscribers",
    "texts_delivered": "total_texts_delivered",
    "total_texts": "total_texts_delivered",
    "redemptions": "coupons_redeemed",
    "total_redemptions": "coupons_redeemed",
    "spend": "total_spend",
    "risklevel": "risk_level",
    "riskreason": "risk_reason",
    "account_name": "name",
    "accountid": "account_id",
    "month": "period_key",
    "week": "period_key",
    "month_start": "period_key",
    "week_start": "period_key",
    "month_label": "period_label",
    "week_label": "period_label",
    "locations": "location_cnt",
    "time_period": "comparison_period",
    "period": "comparison_period",
}

COUNTER_COLUMNS: List[str] = [
    "total_spend",
    "total_texts_delivered",
    "coupons_redeemed",
    "active_subscribers",
    "spend_delta",
    "texts_delta",
    "coupons_delta",
    "subs_delta",
    "location_cnt",
]

PERIOD_REQUIRED_COLUMNS: List[str] = ["account_id", "period_key"]
ACCOUNT_REQUIRED_COLUMNS: List[str] = ["account_id"]


def normalize_metrics_frame(
    df: pd.DataFrame,
    default_granularity: PeriodGranularity = PeriodGranularity.MONTH,
) -> pd.DataFrame:
    """
    Normalize column names and data types of an upstream metrics frame.

    - Column names are stripped, lowercased and mapped through COLUMN_ALIASES
      (an alias never replaces a column already present under its canonical name)
    - Counter columns are coerced to numbers with NaN filled as 0
    - period_key dates become ISO strings
    - granularity is filled with default_granularity when absent
    - comparison_period values are lowercased; blank means the current period
    - status is uppercased

    Args:
        df: Raw frame from CSV, BigQuery or a caller.
        default_granularity: Granularity for rows that do not carry one.

    Returns:
        A normalized copy of the frame.
    """
    df_normalized = df.copy()
    df_normalized.columns = df_normalized.columns.astype(str).str.strip().str.lower()

    renames = {
        column: COLUMN_ALIASES[column]
        for column in df_normalized.columns
        if column in COLUMN_ALIASES and COLUMN_ALIASES[column] not in df_normalized.columns
    }
    df_normalized = df_normalized.rename(columns=renames)
    # Two aliases of one canonical column: keep the first
    df_normalized = df_normalized.loc[:, ~df_normalized.columns.duplicated()]

    for column in COUNTER_COLUMNS:
        if column in df_normalized.columns:
            df_normalized[column] = pd.to_numeric(df_normalized[column], errors="coerce").fillna(0)

    if "elapsed_periods" in df_normalized.columns:
        df_normalized["elapsed_periods"] = pd.to_numeric(df_normalized["elapsed_periods"], errors="coerce")

    if "account_id" in df_normalized.columns:
        df_normalized["account_id"] = df_normalized["account_id"].astype(str).str.strip()

    if "period_key" in df_normalized.columns:
        keys = df_normalized["period_key"]
        if pd.api.types.is_datetime64_any_dtype(keys):
            df_normalized["period_key"] = keys.dt.strftime("%Y-%m-%d")
        else:
            df_normalized["period_key"] = keys.map(_period_key_to_str)

    if "granularity" in df_normalized.columns:
        df_normalized["granularity"] = (
            df_normalized["granularity"].fillna(default_granularity.value).astype(str).str.lower().str.strip()
        )
    else:
        df_normalized["granularity"] = default_granularity.value

    if "comparison_period" in df_normalized.columns:
        periods = df_normalized["comparison_period"]
        df_normalized["comparison_period"] = periods.where(
            periods.isna(), periods.astype(str).str.lower().str.strip()
        )

    if "status" in df_normalized.columns:
        df_normalized["status"] = (
            df_normalized["status"].fillna(AccountStatus.ACTIVE.value).astype(str).str.upper().str.strip()
        )

    return df_normalized


def _period_key_to_str(value: Any) -> Any:
    if value is None or pd.isna(value):
        return None
    if hasattr(value, "isoformat"):
        iso = value.isoformat()
        return iso[:10] if len(iso) > 10 else iso
    return str(value).strip()


def _frame_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as dicts with NaN/None entries dropped so model defaults apply."""
    records = df.astype(object).where(pd.notna(df), None).to_dict(orient="records")
    return [{key: value for key, value in record.items() if value is not None} for record in records]


def _validate_records(model: Type[BaseModel], df: pd.DataFrame, source: str) -> List[Any]:
    try:
        return [model.model_validate(record) for record in _frame_records(df)]
    except ValidationError as e:
        raise ProviderError(f"Invalid {source} row: {e}") from e


def _validate_columns(df: pd.DataFrame, required: Iterable[str], source: str) -> None:
    missing = [column for column in required if column not in df.columns]
    if missing:
        raise ProviderError(f"{source} is missing required columns: {missing}")


def _build_series(account_id: str, periods: Iterable[PeriodMetric], limit: Optional[int]) -> PeriodSeries:
    ordered = sorted(periods, key=lambda period: period.period_key)
    try:
        series = PeriodSeries(ordered, account_id=account_id)
    except InvalidInputError as e:
        logger.error(f"Provider returned a malformed series for account {account_id}: {e}")
        raise ProviderError(f"Malformed period series for account {account_id}: {e}") from e
    if limit is not None:
        series = series.tail(limit)
    return series


def resolve_comparison_period(
    granularity: PeriodGranularity,
    period: Optional[ComparisonPeriod] = None,
) -> ComparisonPeriod:
    """
    The snapshot period to read for `granularity`; None means the current one.

    Raises:
        InvalidInputError: If the period belongs to the other granularity.
    """
    if period is None:
        return ComparisonPeriod.current_for(granularity)
    period = ComparisonPeriod(period)
    if period.granularity != granularity:
        raise InvalidInputError(
            f"Period '{period.value}' does not apply to {granularity.value} granularity"
        )
    return period


# =============================================================================
# Provider Interface
# =============================================================================


class MetricsProvider(ABC):
    """
    Read-only source of account metrics.

    All methods are async so implementations backed by network stores do not
    block the event loop.
    """

    @abstractmethod
    async def get_period_series(
        self,
        account_id: str,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        limit: Optional[int] = 12,
    ) -> PeriodSeries:
        """Trailing `limit` periods for one account, oldest first (empty if unknown)."""

    @abstractmethod
    async def get_all_period_series(
        self,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        limit: Optional[int] = 12,
    ) -> Dict[str, PeriodSeries]:
        """Period series for every account keyed by account_id."""

    @abstractmethod
    async def get_account_snapshots(
        self,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        period: Optional[ComparisonPeriod] = None,
    ) -> List[AccountSnapshot]:
        """
        Account table rows of `granularity` for one snapshot period.

        Args:
            granularity: Week or month.
            period: Comparison period to read; None reads the current period.

        Raises:
            InvalidInputError: If `period` belongs to the other granularity.
            ProviderError: If the backing store cannot be read.
        """

    async def get_account_snapshot(
        self,
        account_id: str,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        period: Optional[ComparisonPeriod] = None,
    ) -> Optional[AccountSnapshot]:
        """One account's table row, or None when the account is unknown."""
        for snapshot in await self.get_account_snapshots(granularity, period):
            if snapshot.account_id == account_id:
                return snapshot
        return None


# =============================================================================
# In-Memory Provider
# =============================================================================


class InMemoryMetricsProvider(MetricsProvider):
    """
    Dict-backed provider.

    Args:
        periods: {granularity: {account_id: [PeriodMetric, ...]}}; periods may
            be given in any order.
        snapshots: {granularity: [AccountSnapshot, ...]} for the current period.
        comparison_snapshots: {ComparisonPeriod: [AccountSnapshot, ...]} for
            the other periods.
    """

    def __init__(
        self,
        periods: Optional[Dict[PeriodGranularity, Dict[str, List[PeriodMetric]]]] = None,
        snapshots: Optional[Dict[PeriodGranularity, List[AccountSnapshot]]] = None,
        comparison_snapshots: Optional[Dict[ComparisonPeriod, List[AccountSnapshot]]] = None,
    ):
        self._periods = {
            PeriodGranularity(granularity): {account_id: list(rows) for account_id, rows in by_account.items()}
            for granularity, by_account in (periods or {}).items()
        }
        self._snapshots = {
            PeriodGranularity(granularity): list(rows)
            for granularity, rows in (snapshots or {}).items()
        }
        self._comparison_snapshots = {
            ComparisonPeriod(period): list(rows)
            for period, rows in (comparison_snapshots or {}).items()
        }

    async def get_period_series(
        self,
        account_id: str,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        limit: Optional[int] = 12,
    ) -> PeriodSeries:
        rows = self._periods.get(granularity, {}).get(account_id, [])
        return _build_series(account_id, rows, limit)

    async def get_all_period_series(
        self,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        limit: Optional[int] = 12,
    ) -> Dict[str, PeriodSeries]:
        return {
            account_id: _build_series(account_id, rows, limit)
            for account_id, rows in self._periods.get(granularity, {}).items()
        }

    async def get_account_snapshots(
        self,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        period: Optional[ComparisonPeriod] = None,
    ) -> List[AccountSnapshot]:
        period = resolve_comparison_period(granularity, period)
        if period.is_current:
            return list(self._snapshots.get(granularity, []))
        return list(self._comparison_snapshots.get(period, []))


# =============================================================================
# DataFrame / CSV Provider
# =============================================================================


class DataFrameMetricsProvider(MetricsProvider):
    """
    Provider over pandas DataFrames.

    Both frames are normalized on construction. Rows without a granularity
    column belong to `default_granularity`.

    Args:
        period_frame: One row per account per period.
        account_frame: One row per account (table snapshot) per granularity and
            comparison period. Rows with no comparison_period column value
            belong to the current period.
        default_granularity: Granularity assumed for rows that carry none.

    Raises:
        ProviderError: If a frame lacks its required columns.
    """

    def __init__(
        self,
        period_frame: Optional[pd.DataFrame] = None,
        account_frame: Optional[pd.DataFrame] = None,
        default_granularity: PeriodGranularity = PeriodGranularity.MONTH,
    ):
        self.default_granularity = default_granularity
        self._period_frame = self._prepare(period_frame, PERIOD_REQUIRED_COLUMNS, "period metrics")
        self._account_frame = self._prepare(account_frame, ACCOUNT_REQUIRED_COLUMNS, "account snapshots")

    def _prepare(self, df: Optional[pd.DataFrame], required: List[str], source: str) -> pd.DataFrame:
        if df is None or df.empty:
            return pd.DataFrame(columns=list(required) + ["granularity"])
        normalized = normalize_metrics_frame(df, self.default_granularity)
        _validate_columns(normalized, required, source)
        logger.info(f"Loaded {len(normalized)} {source} rows")
        return normalized

    @classmethod
    def from_csv(
        cls,
        metrics_path: Optional[str] = None,
        accounts_path: Optional[str] = None,
        default_granularity: PeriodGranularity = PeriodGranularity.MONTH,
    ) -> "DataFrameMetricsProvider":
        """
        Build a provider from CSV files.

        Raises:
            ProviderError: If a file cannot be read or parsed.
        """
        return cls(
            period_frame=_read_csv(metrics_path),
            account_frame=_read_csv(accounts_path),
            default_granularity=default_granularity,
        )

    def _rows_for(self, df: pd.DataFrame, granularity: PeriodGranularity) -> pd.DataFrame:
        return df[df["granularity"] == granularity.value]

    def _period_metrics(self, df: pd.DataFrame) -> List[PeriodMetric]:
        return _validate_records(PeriodMetric, df, "period metrics")

    async def get_period_series(
        self,
        account_id: str,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        limit: Optional[int] = 12,
    ) -> PeriodSeries:
        rows = self._rows_for(self._period_frame, granularity)
        rows = rows[rows["account_id"] == account_id]
        return _build_series(account_id, self._period_metrics(rows), limit)

    async def get_all_period_series(
        self,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        limit: Optional[int] = 12,
    ) -> Dict[str, PeriodSeries]:
        rows = self._rows_for(self._period_frame, granularity)
        return {
            str(account_id): _build_series(str(account_id), self._period_metrics(group), limit)
            for account_id, group in rows.groupby("account_id", sort=True)
        }

    async def get_account_snapshots(
        self,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        period: Optional[ComparisonPeriod] = None,
    ) -> List[AccountSnapshot]:
        period = resolve_comparison_period(granularity, period)
        rows = self._rows_for(self._account_frame, granularity)
        if "comparison_period" in rows.columns:
            labels = rows["comparison_period"]
            in_period = labels == period.value
            if period.is_current:
                in_period = in_period | labels.isna()
            rows = rows[in_period]
        elif not period.is_current:
            rows = rows.iloc[0:0]
        return _validate_records(AccountSnapshot, rows, "account snapshot")


def _read_csv(path: Optional[str]) -> Optional[pd.DataFrame]:
    if not path:
        return None
    try:
        df = pd.read_csv(path)
    except (OSError, ValueError) as e:
        logger.exception(f"Failed to read metrics CSV {path}")
        raise ProviderError(f"Failed to read CSV {path}: {e}") from e
    logger.info(f"Parsed CSV {path} with {len(df)} rows and {len(df.columns)} columns")
    return df


# =============================================================================
# BigQuery Provider
# =============================================================================


class BigQueryMetricsProvider(MetricsProvider):
    """
    Provider reading pre-aggregated BigQuery tables.

    Tables are read whole with Client.list_rows (no query construction) and
    normalized exactly like CSV input. Each call re-reads the tables, so the
    dashboard always reflects the current warehouse state.

    Args:
        project: GCP project used for the client.
        period_table: Fully-qualified table id of per-period rows.
        account_table: Fully-qualified table id of account snapshots.
        client: Optional preconfigured bigquery.Client.
    """

    def __init__(
        self,
        project: Optional[str],
        period_table: Optional[str],
        account_table: Optional[str],
        client: Optional[bigquery.Client] = None,
    ):
        self.project = project
        self.period_table = period_table
        self.account_table = account_table
        self._client = client

    @property
    def client(self) -> bigquery.Client:
        if self._client is None:
            self._client = bigquery.Client(project=self.project)
        return self._client

    def _fetch_table(self, table_id: Optional[str]) -> Optional[pd.DataFrame]:
        if not table_id:
            return None
        rows = [dict(row.items()) for row in self.client.list_rows(table_id)]
        logger.info(f"BigQuery returned {len(rows)} rows from {table_id}")
        return pd.DataFrame(rows)

    async def _load(self, table_id: Optional[str]) -> Optional[pd.DataFrame]:
        try:
            return await asyncio.to_thread(self._fetch_table, table_id)
        except Exception as e:
            logger.exception(f"Failed to read BigQuery table {table_id}")
            raise ProviderError(f"Failed to read BigQuery table {table_id}: {e}") from e

    async def _period_provider(self) -> DataFrameMetricsProvider:
        return DataFrameMetricsProvider(period_frame=await self._load(self.period_table))

    async def _account_provider(self) -> DataFrameMetricsProvider:
        return DataFrameMetricsProvider(account_frame=await self._load(self.account_table))

    async def get_period_series(
        self,
        account_id: str,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        limit: Optional[int] = 12,
    ) -> PeriodSeries:
        provider = await self._period_provider()
        return await provider.get_period_series(account_id, granularity, limit)

    async def get_all_period_series(
        self,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        limit: Optional[int] = 12,
    ) -> Dict[str, PeriodSeries]:
        provider = await self._period_provider()
        return await provider.get_all_period_series(granularity, limit)

    async def get_account_snapshots(
        self,
        granularity: PeriodGranularity = PeriodGranularity.MONTH,
        period: Optional[ComparisonPeriod] = None,
    ) -> List[AccountSnapshot]:
        period = resolve_comparison_period(granularity, period)
        provider = await self._account_provider()
        return await provider.get_account_snapshots(granularity, period)


# =============================================================================
# Factory
# =============================================================================


def build_metrics_provider(settings: Settings) -> MetricsProvider:
    """
    Build the metrics provider selected by settings.metrics_source.

    Args:
        settings: Application settings.

    Returns:
        MetricsProvider for 'memory', 'csv' or 'bigquery'.

    Raises:
        ValueError: If the source is unknown or its settings are incomplete.
    """
    source = (settings.metrics_source or "memory").lower().strip()
    logger.info(f"Using '{source}' metrics provider")

    if source == "memory":
        return InMemoryMetricsProvider()

    if source == "csv":
        if not settings.metrics_csv_path and not settings.accounts_csv_path:
            raise ValueError("metrics_source 'csv' requires METRICS_CSV_PATH or ACCOUNTS_CSV_PATH")
        return DataFrameMetricsProvider.from_csv(settings.metrics_csv_path, settings.accounts_csv_path)

    if source == "bigquery":
        if not settings.bigquery_period_table and not settings.bigquery_account_table:
            raise ValueError(
                "metrics_source 'bigquery' requires BIGQUERY_PERIOD_TABLE or BIGQUERY_ACCOUNT_TABLE"
            )
        return BigQueryMetricsProvider(
            project=settings.bigquery_project,
            period_table=settings.bigquery_period_table,
            account_table=settings.bigquery_account_table,
        )

    raise ValueError(f"Unknown metrics_source '{settings.metrics_source}'. Must be memory, csv or bigquery")


__all__ = [
    "ProviderError",
    "COLUMN_ALIASES",
    "COUNTER_COLUMNS",
    "normalize_metrics_frame",
    "resolve_comparison_period",
    "MetricsProvider",
    "InMemoryMetricsProvider",
    "DataFrameMetricsProvider",
    "BigQueryMetricsProvider",
    "build_metrics_provider",
]
