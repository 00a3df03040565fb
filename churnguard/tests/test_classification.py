"""
Churn Risk Classification Engine Test Module

Test Coverage:
- Settled classification of series periods, including drop-flag gating
- Trending classification of the open period from projections
- Frozen-account overrides bypassing flag evaluation
- Account table rows (settled from deltas, trending when current)
- History classification and purity of repeated calls
"""

from unittest.mock import patch

import pytest

from churnguard.models.enums import AssessmentMode, PeriodGranularity, RiskLevel
from churnguard.models.schemas import RiskFlags, RiskOverride
from churnguard.services.classification import (
    classify_account,
    classify_accounts,
    classify_history,
    classify_period,
    classify_series,
    classify_snapshot,
    classify_trending,
    describe_assessment,
)
from churnguard.services.period_series import InvalidInputError, PeriodSeries
from churnguard.services.thresholds import DEFAULT_POLICY
from churnguard.tests.conftest import AS_OF, healthy, make_series, make_snapshot


# ============================================================================
# SCENARIOS
# ============================================================================


@pytest.mark.scenario
class TestSettledScenarios:
    """Worked examples for settled classification."""

    def test_low_redemptions_only(self):
        series = make_series([{'spend': 1000.0, 'redemptions': 2, 'subscribers': 500}])

        assessment = classify_period(series, 0)

        assert assessment.mode == AssessmentMode.SETTLED
        assert assessment.flags == RiskFlags(low_redemptions=True)
        assert assessment.flag_count == 1
        assert assessment.level == RiskLevel.MEDIUM
        assert assessment.reason == 'Low Monthly Redemptions'

    def test_spend_drop_on_established_account(self):
        baseline = {'spend': 1000.0, 'redemptions': 100, 'subscribers': 400}
        series = make_series([baseline, baseline, baseline, {'spend': 500.0, 'redemptions': 100, 'subscribers': 400}])

        assessment = classify_period(series, 3)

        assert assessment.flags == RiskFlags(spend_drop=True)
        assert assessment.level == RiskLevel.MEDIUM
        assert assessment.period_key == '2025-04-01'

    def test_spend_drop_gated_on_new_account(self):
        series = make_series([
            {'spend': 1000.0, 'redemptions': 100, 'subscribers': 400},
            {'spend': 500.0, 'redemptions': 100, 'subscribers': 400},
        ])

        assessment = classify_period(series, 1)

        assert assessment.flag_count == 0
        assert assessment.level == RiskLevel.LOW
        assert assessment.reason == 'No flags'

    def test_low_redemptions_and_low_activity(self):
        series = make_series([{'spend': 75.0, 'redemptions': 3, 'subscribers': 250}])

        assessment = classify_period(series, 0)

        assert assessment.flags.low_redemptions is True
        assert assessment.flags.low_activity is True
        assert assessment.flag_count >= 2
        assert assessment.level == RiskLevel.MEDIUM

    def test_all_four_flags_is_high(self):
        series = make_series([healthy(), healthy(), healthy(), {'spend': 100.0, 'redemptions': 1, 'subscribers': 100}])

        assessment = classify_period(series, 3)

        assert assessment.flag_count == 4
        assert assessment.level == RiskLevel.HIGH


@pytest.mark.scenario
class TestTrendingScenarios:

    def test_projected_spend_drop(self):
        series = make_series([
            {'spend': 1000.0, 'redemptions': 100, 'subscribers': 400},
            {'spend': 200.0, 'redemptions': 100, 'subscribers': 400},
        ])

        assessment = classify_trending(series, 1, 0.5)

        assert assessment.mode == AssessmentMode.TRENDING
        assert assessment.flags.spend_drop is True
        assert assessment.level == RiskLevel.MEDIUM

    def test_not_gated_on_elapsed_periods(self):
        """A settled period this young would have its drop flags forced off."""
        series = make_series([
            {'spend': 1000.0, 'redemptions': 100, 'subscribers': 400},
            {'spend': 100.0, 'redemptions': 10, 'subscribers': 400},
        ])

        settled = classify_period(series, 1)
        trending = classify_trending(series, 1, 0.5)

        assert settled.flags.spend_drop is False
        assert trending.flags.spend_drop is True
        assert trending.flags.redemptions_drop is True

    def test_progress_is_clamped(self):
        series = make_series([healthy(), {'spend': 10.0, 'redemptions': 6, 'subscribers': 600}])

        assessment = classify_trending(series, 1, 0.0)

        # 10 / 0.1 = 100 spend against 1000, 6 / 0.1 = 60 redemptions against 60
        assert assessment.flags == RiskFlags(spend_drop=True)

    def test_first_period_has_no_baseline(self):
        series = make_series([{'spend': 10.0, 'redemptions': 30, 'subscribers': 600}])
        assessment = classify_trending(series, 0, 0.5)
        assert assessment.flag_count == 0


@pytest.mark.scenario
class TestOverrides:
    """Frozen accounts pass the provider's level through untouched."""

    def test_settled_override_skips_evaluation(self):
        series = make_series([healthy(), {'spend': 0.0}])
        override = RiskOverride(level='high', reason='Account frozen by billing')

        with patch('churnguard.services.classification.evaluate_flags') as mock_evaluate:
            assessment = classify_period(series, 1, override=override)

        mock_evaluate.assert_not_called()
        assert assessment.mode == AssessmentMode.OVERRIDE
        assert assessment.level == 'high'
        assert assessment.reason == 'Account frozen by billing'
        assert assessment.flags is None
        assert assessment.flag_count == 0

    def test_unknown_level_passed_through_verbatim(self):
        series = make_series([healthy()])
        override = RiskOverride(level='On Hold', reason=None)

        assessment = classify_period(series, 0, override=override)

        assert assessment.level == 'On Hold'
        assert assessment.reason == ''

    def test_trending_override_skips_projection(self):
        series = make_series([healthy(), healthy()])
        override = RiskOverride(level='medium', reason='Frozen pending renewal')

        with patch('churnguard.services.classification.evaluate_trending_flags') as mock_evaluate:
            assessment = classify_trending(series, 1, 0.5, override=override)

        mock_evaluate.assert_not_called()
        assert assessment.mode == AssessmentMode.OVERRIDE
        assert assessment.level == 'medium'


# ============================================================================
# PROPERTIES
# ============================================================================


class TestProperties:

    def test_repeated_classification_is_identical(self):
        series = make_series([healthy(), healthy(), healthy(), {'spend': 300.0, 'redemptions': 20, 'subscribers': 200}])
        assert classify_period(series, 3) == classify_period(series, 3)
        assert classify_trending(series, 3, 0.4) == classify_trending(series, 3, 0.4)

    @pytest.mark.parametrize('spend', [1000.0, 1500.0, 10000.0])
    def test_spend_increase_never_flags(self, spend):
        series = make_series([healthy(), healthy(), healthy(1000.0), healthy(spend)])
        assert classify_period(series, 3).flags.spend_drop is False

    @pytest.mark.parametrize('spend', [0.0, 500.0, 5000.0])
    def test_zero_previous_spend_never_flags(self, spend):
        series = make_series([healthy(), healthy(), healthy(0.0), healthy(spend)])
        assert classify_period(series, 3).flags.spend_drop is False

    @pytest.mark.parametrize('index', [-1, 2])
    def test_out_of_range_index(self, index):
        series = make_series([healthy(), healthy()])
        with pytest.raises(InvalidInputError):
            classify_period(series, index)
        with pytest.raises(InvalidInputError):
            classify_trending(series, index, 0.5)

    def test_empty_series(self):
        with pytest.raises(InvalidInputError):
            classify_period(PeriodSeries([]), 0)

    def test_custom_policy(self):
        policy = DEFAULT_POLICY.model_copy(update={'monthly_redemptions_threshold': 10})
        series = make_series([{'spend': 1000.0, 'redemptions': 8, 'subscribers': 600}])
        assert classify_period(series, 0, policy=policy).flags.low_redemptions is True
        assert classify_period(series, 0).flags.low_redemptions is False


# ============================================================================
# SERIES AND HISTORY
# ============================================================================


class TestClassifySeries:

    def test_one_assessment_per_period(self, account_periods):
        series = PeriodSeries(account_periods['ACC-2'], account_id='ACC-2')

        assessments = classify_series(series)

        assert [a.period_key for a in assessments] == [p.period_key for p in series]
        assert [a.level for a in assessments] == [RiskLevel.LOW] * 5 + [RiskLevel.HIGH] * 2
        assert assessments[5].flag_count == 3
        assert assessments[6].flag_count == 4


class TestClassifyHistory:

    def test_completed_history_has_no_trending(self, account_periods):
        series = PeriodSeries(account_periods['ACC-1'])
        settled, trending = classify_history(series)
        assert len(settled) == 7
        assert trending is None

    def test_open_last_period(self, account_periods):
        series = PeriodSeries(account_periods['ACC-2'])

        settled, trending = classify_history(series, open_period_progress=0.5)

        assert len(settled) == 7
        assert trending.mode == AssessmentMode.TRENDING
        assert trending.period_key == '2025-07-01'
        # 100 / 0.5 = 200 vs 400 spend, 2 / 0.5 = 4 vs 10 redemptions
        assert trending.flags == RiskFlags(low_activity=True, spend_drop=True, redemptions_drop=True)
        assert trending.level == RiskLevel.HIGH

    def test_override_applies_to_every_period(self, account_periods):
        series = PeriodSeries(account_periods['ACC-3'])
        override = RiskOverride(level='high', reason='Account frozen by billing')

        settled, trending = classify_history(series, override=override, open_period_progress=0.5)

        assert all(a.mode == AssessmentMode.OVERRIDE for a in settled)
        assert trending.mode == AssessmentMode.OVERRIDE

    def test_empty_series(self):
        settled, trending = classify_history(PeriodSeries([]), open_period_progress=0.5)
        assert settled == []
        assert trending is None


# ============================================================================
# ACCOUNT ROWS
# ============================================================================


class TestClassifySnapshot:

    def test_steady_account_is_low(self):
        assessment = classify_snapshot(make_snapshot())
        assert assessment.level == RiskLevel.LOW
        assert assessment.period_key == '2025-07-01'

    def test_drops_recovered_from_deltas(self):
        snapshot = make_snapshot(total_spend=500.0, spend_delta=-500.0)
        assessment = classify_snapshot(snapshot)
        assert assessment.flags == RiskFlags(spend_drop=True)

    def test_young_account_gates_drop_flags(self):
        snapshot = make_snapshot(total_spend=500.0, spend_delta=-500.0, elapsed_periods=2)
        assert classify_snapshot(snapshot).flag_count == 0

    def test_frozen_without_level_is_evaluated(self):
        snapshot = make_snapshot(status='FROZEN', coupons_redeemed=1)
        assessment = classify_snapshot(snapshot)
        assert assessment.mode == AssessmentMode.SETTLED
        assert assessment.flags.low_redemptions is True

    def test_provider_level_ignored_for_active_account(self):
        snapshot = make_snapshot(risk_level='high', risk_reason='stale')
        assessment = classify_snapshot(snapshot)
        assert assessment.mode == AssessmentMode.SETTLED
        assert assessment.level == RiskLevel.LOW


class TestClassifyAccount:

    def test_current_period_row(self, account_snapshots):
        row = classify_account(account_snapshots[1], PeriodGranularity.MONTH, as_of=AS_OF)

        assert row.risk.level == RiskLevel.HIGH
        assert row.risk.flag_count == 4
        assert row.trending.level == RiskLevel.HIGH
        assert row.trending.flags == RiskFlags(low_activity=True, spend_drop=True, redemptions_drop=True)
        assert row.flag_text == 'Low Monthly Redemptions, Low Activity, Spend Drop, Redemptions Drop'
        assert row.trending_flag_text == 'Low Activity, Spend Drop, Redemptions Drop'
        assert row.risk_level == 'high'

    def test_completed_period_has_no_trending(self):
        row = classify_account(make_snapshot(is_current_period=False), as_of=AS_OF)
        assert row.trending is None
        assert row.trending_flag_text is None

    def test_frozen_row_uses_provider_reason(self, account_snapshots):
        row = classify_account(account_snapshots[2], as_of=AS_OF)

        assert row.risk.mode == AssessmentMode.OVERRIDE
        assert row.trending.mode == AssessmentMode.OVERRIDE
        assert row.flag_text == 'Account frozen by billing'
        assert row.risk_level == 'high'

    def test_weekly_progress(self):
        snapshot = make_snapshot(total_spend=300.0, coupons_redeemed=20, is_current_period=True)
        # Monday: progress floors at 0.1, so the partial week projects far above last week
        row = classify_account(snapshot, PeriodGranularity.WEEK, as_of=AS_OF.replace(day=14))
        assert row.trending.flag_count == 0


class TestClassifyAccounts:

    def test_preserves_order(self, account_snapshots):
        rows = classify_accounts(account_snapshots, as_of=AS_OF)
        assert [row.account.account_id for row in rows] == ['ACC-1', 'ACC-2', 'ACC-3']
        assert [row.risk_level for row in rows] == ['low', 'high', 'high']

    def test_empty(self):
        assert classify_accounts([], as_of=AS_OF) == []


class TestDescribeAssessment:

    def test_override_without_reason(self):
        series = make_series([healthy()])
        assessment = classify_period(series, 0, override=RiskOverride(level='high'))
        assert describe_assessment(assessment) == 'No flags'

    def test_flag_assessment(self):
        series = make_series([{'spend': 1000.0, 'redemptions': 0, 'subscribers': 600}])
        assert describe_assessment(classify_period(series, 0)) == 'Low Monthly Redemptions'
