"""
Pytest Configuration and Shared Fixtures for ChurnGuard Tests.

This module provides fixtures and configuration for all tests, supporting:
- Async test execution with pytest-asyncio (metrics provider tests)
- Builders for period metrics, period series and account snapshots
- A populated in-memory metrics provider
- A mock BigQuery client patched into the metrics provider module
- A session store with a controllable clock
- A FastAPI TestClient wired to the fixtures through dependency overrides

Test data conventions:
- Monthly period keys are ISO first-of-month dates ("2025-01-01")
- "Healthy" periods raise no flags: 600 subscribers, 60 redemptions
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import Mock, patch

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from churnguard.core.config import Settings
from churnguard.core.dependencies import (
    get_metrics_provider,
    get_session_store,
    get_settings_dependency,
    get_threshold_policy_dependency,
)
from churnguard.main import app
from churnguard.models.enums import ComparisonPeriod, PeriodGranularity
from churnguard.models.schemas import AccountSnapshot, PeriodMetric
from churnguard.services.auth import CredentialStore, SessionStore
from churnguard.services.metrics_provider import InMemoryMetricsProvider
from churnguard.services.period_series import PeriodSeries
from churnguard.services.thresholds import DEFAULT_POLICY


# ============================================================
# PYTEST PLUGINS CONFIGURATION
# ============================================================

pytest_plugins: List[str] = ['pytest_asyncio']


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - integration: Marks tests that exercise the full HTTP stack
    - scenario: Marks end-to-end classification scenarios
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks tests that exercise the full HTTP stack'
    )
    config.addinivalue_line(
        'markers',
        'scenario: marks end-to-end classification scenarios'
    )


# ============================================================
# CONSTANTS
# ============================================================

TEST_PASSWORD = 'correct-horse-battery'
AS_OF = date(2025, 7, 16)  # 15 of 31 July days complete


# ============================================================
# BUILDERS
# ============================================================

def make_period(
    period_key: str,
    spend: float = 0.0,
    texts: int = 0,
    redemptions: int = 0,
    subscribers: int = 0,
    label: str = '',
) -> PeriodMetric:
    """Build a PeriodMetric with short keyword names."""
    return PeriodMetric(
        period_key=period_key,
        period_label=label,
        total_spend=spend,
        total_texts_delivered=texts,
        coupons_redeemed=redemptions,
        active_subscribers=subscribers,
    )


def month_key(index: int, start_year: int = 2025) -> str:
    """ISO key of the index-th month after January of start_year (0-based)."""
    year = start_year + index // 12
    month = index % 12 + 1
    return f'{year:04d}-{month:02d}-01'


def make_series(rows: List[Dict[str, Any]], account_id: str = 'ACC-1') -> PeriodSeries:
    """
    Build a monthly PeriodSeries from keyword dicts, keyed from January 2025.

    Usage:
        series = make_series([
            {'spend': 1000, 'redemptions': 60, 'subscribers': 600},
            {'spend': 500, 'redemptions': 20, 'subscribers': 600},
        ])
    """
    return PeriodSeries(
        [make_period(month_key(index), **row) for index, row in enumerate(rows)],
        account_id=account_id,
    )


def healthy(spend: float = 1000.0) -> Dict[str, Any]:
    """Keyword dict of a period that raises no flags on its own."""
    return {'spend': spend, 'texts': 4000, 'redemptions': 60, 'subscribers': 600}


def make_snapshot(**overrides: Any) -> AccountSnapshot:
    """Build an AccountSnapshot of a healthy, steady account with overrides applied."""
    values: Dict[str, Any] = {
        'account_id': 'ACC-1',
        'name': 'Tacos El Rey',
        'csm': 'Dana',
        'status': 'ACTIVE',
        'period_key': '2025-07-01',
        'period_label': 'Jul 2025',
        'total_spend': 1000.0,
        'total_texts_delivered': 4000,
        'coupons_redeemed': 60,
        'active_subscribers': 600,
        'spend_delta': 0.0,
        'texts_delta': 0.0,
        'coupons_delta': 0.0,
        'subs_delta': 0.0,
    }
    values.update(overrides)
    return AccountSnapshot(**values)


def assert_close(actual: float, expected: float, tolerance: float = 0.001) -> None:
    """
    Assert two floats are close within tolerance.

    Error Format:
        AssertionError: 0.876 not close to 0.875 within tolerance 0.001
    """
    if abs(actual - expected) >= tolerance:
        raise AssertionError(
            f'{actual} not close to {expected} within tolerance {tolerance}'
        )


class FakeClock:
    """Controllable UTC clock for session expiry tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 7, 16, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ============================================================
# SETTINGS FIXTURES
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """
    Settings isolated from the environment and any .env file.

    Usage:
        def test_with_settings(test_settings):
            settings = test_settings.model_copy(update={'spend_drop_threshold': 0.3})
    """
    return Settings(
        _env_file=None,
        metrics_source='memory',
        dashboard_password=TEST_PASSWORD,
        session_ttl_hours=24,
        min_password_length=8,
        history_periods=12,
    )


# ============================================================
# METRICS PROVIDER FIXTURES
# ============================================================

@pytest.fixture
def account_snapshots() -> List[AccountSnapshot]:
    """
    Three account rows for the open July 2025 period.

    - ACC-1: healthy, steady
    - ACC-2: low redemptions and activity, spend and redemptions collapsing
    - ACC-3: frozen with a provider-supplied risk
    """
    return [
        make_snapshot(account_id='ACC-1', name='Tacos El Rey', csm='Dana', is_current_period=True),
        make_snapshot(
            account_id='ACC-2',
            name='Burger Barn',
            csm='Lee',
            total_spend=100.0,
            coupons_redeemed=2,
            active_subscribers=150,
            spend_delta=-900.0,
            coupons_delta=-58.0,
            is_current_period=True,
        ),
        make_snapshot(
            account_id='ACC-3',
            name='Pho Real',
            csm='Dana',
            status='FROZEN',
            risk_level='high',
            risk_reason='Account frozen by billing',
            is_current_period=True,
        ),
    ]


@pytest.fixture
def previous_month_snapshots() -> List[AccountSnapshot]:
    """
    June 2025 rows for the same accounts, before ACC-2 declined and ACC-3 froze.

    Every account is low risk; ACC-1 grew its spend by 50.
    """
    june = {'period_key': '2025-06-01', 'period_label': 'Jun 2025'}
    return [
        make_snapshot(account_id='ACC-1', name='Tacos El Rey', csm='Dana', spend_delta=50.0, **june),
        make_snapshot(account_id='ACC-2', name='Burger Barn', csm='Lee', **june),
        make_snapshot(account_id='ACC-3', name='Pho Real', csm='Dana', **june),
    ]


@pytest.fixture
def account_periods() -> Dict[str, List[PeriodMetric]]:
    """Monthly history (Jan-Jul 2025) for the accounts in account_snapshots."""
    steady = [make_period(month_key(index), **healthy()) for index in range(7)]
    declining = [make_period(month_key(index), **healthy()) for index in range(5)] + [
        make_period(month_key(5), spend=400.0, texts=1000, redemptions=10, subscribers=150),
        make_period(month_key(6), spend=100.0, texts=300, redemptions=2, subscribers=150),
    ]
    frozen = [make_period(month_key(index), **healthy()) for index in range(7)]
    return {'ACC-1': steady, 'ACC-2': declining, 'ACC-3': frozen}


@pytest.fixture
def in_memory_provider(
    account_periods: Dict[str, List[PeriodMetric]],
    account_snapshots: List[AccountSnapshot],
    previous_month_snapshots: List[AccountSnapshot],
) -> InMemoryMetricsProvider:
    """In-memory provider holding the monthly fixtures."""
    return InMemoryMetricsProvider(
        periods={PeriodGranularity.MONTH: account_periods},
        snapshots={PeriodGranularity.MONTH: account_snapshots},
        comparison_snapshots={ComparisonPeriod.PREVIOUS_MONTH: previous_month_snapshots},
    )


@pytest.fixture
def mock_bigquery_client() -> Generator[Mock, None, None]:
    """
    Mock BigQuery client patched into the metrics provider module.

    Mocked Methods:
        - client.list_rows(table_id): returns an iterable of row mappings

    Usage:
        async def test_bigquery_rows(mock_bigquery_client):
            mock_bigquery_client.list_rows.return_value = [{'account_id': 'ACC-1', ...}]
    """
    client = Mock()
    client.list_rows = Mock(return_value=[])

    with patch('churnguard.services.metrics_provider.bigquery.Client', return_value=client):
        yield client


@pytest.fixture
def sample_period_frame() -> pd.DataFrame:
    """
    Upstream-shaped monthly rows using alias column names.

    Uses month / month_label / active_subs_cnt and leaves a NaN counter.
    """
    return pd.DataFrame([
        {'account_id': 'ACC-1', 'month': '2025-06-01', 'month_label': 'Jun 2025', 'total_spend': 900.0,
         'total_texts_delivered': 3000, 'coupons_redeemed': 50, 'active_subs_cnt': 550},
        {'account_id': 'ACC-1', 'month': '2025-05-01', 'month_label': 'May 2025', 'total_spend': 800.0,
         'total_texts_delivered': 2800, 'coupons_redeemed': 45, 'active_subs_cnt': 540},
        {'account_id': 'ACC-2', 'month': '2025-06-01', 'month_label': 'Jun 2025', 'total_spend': None,
         'total_texts_delivered': 100, 'coupons_redeemed': 1, 'active_subs_cnt': 90},
    ])


@pytest.fixture
def sample_account_frame() -> pd.DataFrame:
    """Upstream-shaped account rows with camelCase risk columns."""
    return pd.DataFrame([
        {'account_id': 'ACC-1', 'name': 'Tacos El Rey', 'csm': 'Dana', 'status': 'active',
         'month': '2025-06-01', 'total_spend': 900.0, 'total_texts_delivered': 3000,
         'coupons_redeemed': 50, 'active_subs_cnt': 550, 'spend_delta': 100.0,
         'coupons_delta': 5, 'riskLevel': None, 'riskReason': None},
        {'account_id': 'ACC-2', 'name': 'Burger Barn', 'csm': 'Lee', 'status': 'FROZEN',
         'month': '2025-06-01', 'total_spend': None, 'total_texts_delivered': 100,
         'coupons_redeemed': 1, 'active_subs_cnt': 90, 'spend_delta': None,
         'coupons_delta': -3, 'riskLevel': 'medium', 'riskReason': 'Frozen pending renewal'},
    ])


# ============================================================
# SESSION FIXTURES
# ============================================================

@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_store(fake_clock: FakeClock) -> SessionStore:
    """Session store with TEST_PASSWORD, a 24 hour TTL and a fake clock."""
    return SessionStore(
        CredentialStore(TEST_PASSWORD, min_password_length=8),
        ttl=timedelta(hours=24),
        clock=fake_clock,
    )


# ============================================================
# HTTP FIXTURES
# ============================================================

@pytest.fixture
def client(
    test_settings: Settings,
    in_memory_provider: InMemoryMetricsProvider,
    session_store: SessionStore,
) -> Generator[TestClient, None, None]:
    """
    TestClient with settings, provider, policy and session store overridden.

    The lifespan is not entered, so no process-wide singletons are built.
    """
    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    app.dependency_overrides[get_threshold_policy_dependency] = lambda: DEFAULT_POLICY
    app.dependency_overrides[get_metrics_provider] = lambda: in_memory_provider
    app.dependency_overrides[get_session_store] = lambda: session_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(session_store: SessionStore) -> Dict[str, str]:
    """Authorization header for a freshly opened session."""
    record = session_store.login(TEST_PASSWORD)
    return {'Authorization': f'Bearer {record.token}'}


# ============================================================
# MODULE EXPORTS
# ============================================================

__all__ = [
    'TEST_PASSWORD',
    'AS_OF',
    'make_period',
    'month_key',
    'make_series',
    'healthy',
    'make_snapshot',
    'assert_close',
    'FakeClock',
]
