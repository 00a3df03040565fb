"""
Period Series Test Module

Covers PeriodMetric validation (missing counters coalesce to zero) and the
PeriodSeries temporal queries the flag rules depend on:
- previous(i) is None for the first period
- elapsed_since_first_activity(i) counts from the first active period
- construction rejects duplicate or descending period keys
- out-of-range indices raise InvalidInputError
"""

from datetime import date

import numpy as np
import pytest
from pydantic import ValidationError

from churnguard.models.schemas import PeriodMetric
from churnguard.services.period_series import InvalidInputError, PeriodSeries
from churnguard.tests.conftest import healthy, make_period, make_series


class TestPeriodMetric:
    """Tests for PeriodMetric validation."""

    def test_missing_counters_default_to_zero(self):
        period = PeriodMetric(period_key='2025-07-01')
        assert period.total_spend == 0.0
        assert period.total_texts_delivered == 0
        assert period.coupons_redeemed == 0
        assert period.active_subscribers == 0

    def test_none_and_nan_coalesce_to_zero(self):
        period = PeriodMetric(
            period_key='2025-07-01',
            total_spend=float('nan'),
            total_texts_delivered=None,
            coupons_redeemed=np.int64(4),
            active_subscribers=None,
        )
        assert period.total_spend == 0.0
        assert period.total_texts_delivered == 0
        assert period.coupons_redeemed == 4
        assert period.active_subscribers == 0

    def test_date_period_key_becomes_iso_string(self):
        period = PeriodMetric(period_key=date(2025, 7, 1))
        assert period.period_key == '2025-07-01'

    def test_negative_counter_rejected(self):
        with pytest.raises(ValidationError):
            PeriodMetric(period_key='2025-07-01', coupons_redeemed=-1)

    @pytest.mark.parametrize('spend,texts,redemptions,expected', [
        (0, 0, 0, False),
        (10.0, 0, 0, True),
        (0, 5, 0, True),
        (0, 0, 1, True),
    ])
    def test_has_activity(self, spend, texts, redemptions, expected):
        period = make_period('2025-07-01', spend=spend, texts=texts, redemptions=redemptions)
        assert period.has_activity is expected

    def test_subscribers_alone_are_not_activity(self):
        assert make_period('2025-07-01', subscribers=500).has_activity is False


class TestPeriodSeriesConstruction:
    """Tests for ordering validation."""

    def test_accepts_ascending_keys(self):
        series = make_series([healthy(), healthy(), healthy()])
        assert len(series) == 3
        assert [p.period_key for p in series] == ['2025-01-01', '2025-02-01', '2025-03-01']

    def test_rejects_duplicate_keys(self):
        with pytest.raises(InvalidInputError, match='Duplicate'):
            PeriodSeries([make_period('2025-01-01'), make_period('2025-01-01')])

    def test_rejects_descending_keys(self):
        with pytest.raises(InvalidInputError, match='out of order'):
            PeriodSeries([make_period('2025-02-01'), make_period('2025-01-01')])

    def test_empty_series_is_allowed(self):
        series = PeriodSeries([])
        assert len(series) == 0
        assert series.first_active_index is None

    def test_invalid_input_error_is_value_error(self):
        assert issubclass(InvalidInputError, ValueError)


class TestTemporalQueries:
    """Tests for previous() and elapsed_since_first_activity()."""

    def test_previous_of_first_period_is_none(self):
        series = make_series([healthy(), healthy()])
        assert series.previous(0) is None

    def test_previous_returns_preceding_period(self):
        series = make_series([healthy(1000), healthy(800)])
        assert series.previous(1).total_spend == 1000

    def test_first_active_index_skips_leading_inactive_periods(self):
        series = make_series([{}, {'subscribers': 400}, healthy(), healthy()])
        assert series.first_active_index == 2

    def test_elapsed_counts_first_active_period_as_one(self):
        series = make_series([{}, healthy(), healthy(), healthy()])
        assert series.elapsed_since_first_activity(1) == 1
        assert series.elapsed_since_first_activity(3) == 3

    def test_elapsed_before_first_activity_is_not_positive(self):
        series = make_series([{}, {}, healthy()])
        assert series.elapsed_since_first_activity(0) <= 0

    def test_elapsed_is_zero_when_never_active(self):
        series = make_series([{}, {}, {}])
        assert series.first_active_index is None
        assert series.elapsed_since_first_activity(2) == 0

    @pytest.mark.parametrize('index', [-1, 3, 10])
    def test_out_of_range_index_rejected(self, index):
        series = make_series([healthy(), healthy(), healthy()])
        with pytest.raises(InvalidInputError):
            series.previous(index)

    def test_empty_series_index_rejected(self):
        with pytest.raises(InvalidInputError, match='empty'):
            PeriodSeries([]).check_index(0)

    def test_index_of(self):
        series = make_series([healthy(), healthy()])
        assert series.index_of('2025-02-01') == 1
        with pytest.raises(InvalidInputError):
            series.index_of('2030-01-01')

    def test_tail_recomputes_first_activity(self):
        series = make_series([healthy(), healthy(), healthy(), healthy()])
        trailing = series.tail(2)
        assert [p.period_key for p in trailing] == ['2025-03-01', '2025-04-01']
        assert trailing.first_active_index == 0

    def test_tail_non_positive_limit_is_empty(self):
        assert len(make_series([healthy()]).tail(0)) == 0
