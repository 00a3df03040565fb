'''
ChurnGuard Test Suite

Test Modules:
-------------
- test_period_series.py: Series ordering, previous period, elapsed periods
- test_flags.py: The four flag rules, drop gating, flag text
- test_reducer.py: Settled and trending reducer tables
- test_projection.py: Calendar progress and end-of-period projection
- test_classification.py: Settled, trending and override assessments,
  engine properties and end-to-end scenarios
- test_thresholds.py: Threshold policy and settings overrides
- test_summary.py: Filtering, sorting, pagination, summary cards, distribution
- test_metrics_provider.py: In-memory, DataFrame/CSV and BigQuery providers
- test_auth.py: Credentials, sessions and expiry
- test_api.py: HTTP endpoints through FastAPI's TestClient

Running Tests:
--------------
    pip install -e ".[test]"
    pytest churnguard/tests -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
