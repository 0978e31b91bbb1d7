"""
Comprehensive test suite for Accounting module
Tests: History aggregation, growth estimation, projection, confidence, insights,
forecast service (cache + persistence), and the accounting API endpoints
"""
from datetime import date, datetime
from decimal import Decimal
from unittest import mock
import random

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.accounting.forecasting import (
    CATEGORY_JITTER_RANGE,
    OVERALL_JITTER_RANGE,
    CategoryRef,
    ForecastMonth,
    GrowthEstimate,
    MonthBucket,
    add_months,
    aggregate_history,
    average_profit_margin,
    coefficient_of_variation,
    confidence_score,
    estimate_growth,
    growth_series,
    history_window,
    month_key,
    month_keys_for_window,
    project_forecast,
    run_forecast,
)
from backend.accounting.insights import generate_insights
from backend.accounting.models import BudgetForecast, BudgetForecastCategory, BudgetForecastInsight, Expense
from backend.accounting.services import build_budget_forecast


class FixedJitter:
    """Stands in for random.Random and returns pinned jitter factors"""

    def __init__(self, overall=1.0, category=1.0):
        self.overall = overall
        self.category = category
        self.calls = []

    def uniform(self, a, b):
        self.calls.append((a, b))
        if (a, b) == OVERALL_JITTER_RANGE:
            return self.overall
        return self.category


def bucket(month, expenses=0.0, revenue=0.0, categories=None):
    month_bucket = MonthBucket(month, [])
    month_bucket.expenses = expenses
    month_bucket.revenue = revenue
    month_bucket.profit = revenue - expenses
    month_bucket.categories = dict(categories or {})
    return month_bucket


RENT = CategoryRef(1, 'Rent')
STOCK = CategoryRef(2, 'Stock')


class CalendarHelperTests(SimpleTestCase):
    """Test month arithmetic helpers"""

    def test_add_months_clamps_day(self):
        self.assertEqual(add_months(date(2024, 1, 31), 1), date(2024, 2, 29))
        self.assertEqual(add_months(date(2023, 3, 31), -1), date(2023, 2, 28))

    def test_add_months_crosses_year(self):
        self.assertEqual(add_months(date(2024, 11, 15), 3), date(2025, 2, 15))
        self.assertEqual(add_months(date(2024, 2, 15), -6), date(2023, 8, 15))

    def test_month_key(self):
        self.assertEqual(month_key(date(2024, 3, 1)), '2024-03')

    def test_month_keys_for_window_are_chronological(self):
        keys = month_keys_for_window(4, date(2024, 2, 10))
        self.assertEqual(keys, ['2023-11', '2023-12', '2024-01', '2024-02'])

    def test_history_window(self):
        start, end = history_window(6, date(2024, 8, 31))
        self.assertEqual(start, date(2024, 2, 29))
        self.assertEqual(end, date(2024, 8, 31))


class HistoryAggregationTests(SimpleTestCase):
    """Test bucketing of expenses and sales into months"""

    today = date(2024, 3, 15)

    def test_every_bucket_has_every_category(self):
        history = aggregate_history([1, 2], [(1, 100, date(2024, 3, 2))], [], 3, self.today)
        self.assertEqual([b.month for b in history], ['2024-01', '2024-02', '2024-03'])
        for month in history:
            self.assertEqual(set(month.categories), {1, 2})
        self.assertEqual(history[0].categories[2], 0.0)

    def test_totals_and_profit(self):
        expenses = [
            (1, Decimal('400.00'), date(2024, 3, 1)),
            (2, Decimal('100.50'), date(2024, 3, 20)),
            (1, Decimal('250.00'), date(2024, 2, 5)),
        ]
        sales = [
            (Decimal('900.00'), date(2024, 3, 3), 'completed'),
            (Decimal('300.00'), date(2024, 2, 3), 'pending'),
        ]
        history = aggregate_history([1, 2], expenses, sales, 2, self.today)
        february, march = history
        self.assertAlmostEqual(march.expenses, 500.5)
        self.assertAlmostEqual(march.categories[1], 400.0)
        self.assertAlmostEqual(march.categories[2], 100.5)
        self.assertAlmostEqual(march.revenue, 900.0)
        self.assertAlmostEqual(march.profit, 399.5)
        self.assertAlmostEqual(february.profit, 50.0)

    def test_records_outside_window_are_skipped(self):
        expenses = [(1, 100, date(2023, 1, 1)), (1, 50, date(2024, 4, 1))]
        sales = [(500, date(2022, 12, 1), 'completed')]
        history = aggregate_history([1], expenses, sales, 2, self.today)
        self.assertTrue(all(month.expenses == 0 and month.revenue == 0 for month in history))

    def test_cancelled_sales_are_excluded(self):
        sales = [(500, date(2024, 3, 1), 'cancelled'), (200, date(2024, 3, 2), 'completed')]
        history = aggregate_history([], [], sales, 1, self.today)
        self.assertEqual(history[0].revenue, 200.0)

    def test_unknown_category_counts_toward_total_only(self):
        history = aggregate_history([1], [(99, 80, date(2024, 3, 1))], [], 1, self.today)
        self.assertEqual(history[0].expenses, 80.0)
        self.assertEqual(history[0].categories, {1: 0.0})

    def test_aware_datetimes_use_local_month(self):
        incurred = timezone.make_aware(datetime(2024, 2, 29, 12, 0))
        history = aggregate_history([1], [(1, 10, incurred)], [], 2, self.today)
        self.assertEqual(history[0].month, '2024-02')
        self.assertEqual(history[0].expenses, 10.0)

    def test_aggregation_is_idempotent(self):
        expenses = [(1, 100, date(2024, 2, 1)), (2, 40, date(2024, 3, 1))]
        sales = [(300, date(2024, 3, 1), 'completed')]
        first = aggregate_history([1, 2], expenses, sales, 3, self.today)
        second = aggregate_history([1, 2], expenses, sales, 3, self.today)
        for a, b in zip(first, second):
            self.assertEqual((a.month, a.expenses, a.revenue, a.profit, a.categories),
                             (b.month, b.expenses, b.revenue, b.profit, b.categories))


class GrowthEstimationTests(SimpleTestCase):
    """Test month-over-month growth series"""

    def test_growth_series(self):
        self.assertEqual(growth_series([100, 150, 75]), [0.5, -0.5])

    def test_zero_previous_month_is_skipped(self):
        series = growth_series([100, 0, 50])
        self.assertEqual(len(series), 1)
        self.assertEqual(series, [-1.0])

    def test_category_starting_from_zero_has_no_data_point(self):
        self.assertEqual(growth_series([0, 500]), [])

    def test_empty_series_averages_to_zero(self):
        growth = estimate_growth([], [1])
        self.assertEqual(growth.avg_expense, 0)
        self.assertEqual(growth.avg_revenue, 0)
        self.assertEqual(growth.avg_category, {1: 0})

    def test_estimate_growth_per_category(self):
        history = [
            bucket('2024-01', 100, 200, {1: 100, 2: 0}),
            bucket('2024-02', 200, 300, {1: 150, 2: 50}),
            bucket('2024-03', 300, 300, {1: 150, 2: 150}),
        ]
        growth = estimate_growth(history, [1, 2])
        self.assertEqual(growth.expense_series, [1.0, 0.5])
        self.assertAlmostEqual(growth.avg_expense, 0.75)
        self.assertEqual(growth.revenue_series, [0.5, 0.0])
        self.assertEqual(growth.category_series[1], [0.5, 0.0])
        self.assertEqual(growth.category_series[2], [2.0])
        self.assertAlmostEqual(growth.avg_category[2], 2.0)


class ProjectionTests(SimpleTestCase):
    """Test forward projection of expenses, revenue and categories"""

    today = date(2024, 3, 15)

    def test_compounds_with_pinned_jitter(self):
        growth = GrowthEstimate([0.2], [0.1], {1: [0.2]})
        forecasts = project_forecast(1200, 1000, {1: 1200}, growth, 2, self.today, rng=FixedJitter())
        self.assertEqual([f.month for f in forecasts], ['2024-04', '2024-05'])
        self.assertAlmostEqual(forecasts[0].expenses, 1440)
        self.assertAlmostEqual(forecasts[0].revenue, 1100)
        self.assertAlmostEqual(forecasts[0].profit, -340)
        self.assertAlmostEqual(forecasts[1].expenses, 1728)
        self.assertAlmostEqual(forecasts[1].revenue, 1210)

    def test_one_overall_draw_and_one_draw_per_category(self):
        rng = FixedJitter()
        growth = GrowthEstimate([0.1], [0.1], {1: [0.1], 2: [0.1]})
        project_forecast(100, 100, {1: 50, 2: 50}, growth, 3, self.today, rng=rng)
        self.assertEqual(rng.calls.count(OVERALL_JITTER_RANGE), 3)
        self.assertEqual(rng.calls.count(CATEGORY_JITTER_RANGE), 6)

    def test_same_jitter_applies_to_expenses_and_revenue(self):
        growth = GrowthEstimate([0.1], [0.3], {})
        forecast = project_forecast(100, 100, {}, growth, 1, self.today, rng=FixedJitter(overall=1.2))[0]
        self.assertAlmostEqual(forecast.expenses, 112)
        self.assertAlmostEqual(forecast.revenue, 136)

    def test_categories_reconcile_to_total(self):
        growth = GrowthEstimate([0.05, 0.1], [0.02], {1: [0.3], 2: [-0.1], 3: []})
        forecasts = project_forecast(1000, 1500, {1: 600, 2: 300, 3: 100}, growth, 6, self.today,
                                     rng=random.Random(42))
        for forecast in forecasts:
            self.assertAlmostEqual(sum(forecast.categories.values()), forecast.expenses, places=6)

    def test_percentages_sum_to_hundred(self):
        result = run_forecast(
            [RENT, STOCK],
            [(1, 600, date(2024, 2, 1)), (2, 400, date(2024, 2, 2)),
             (1, 700, date(2024, 3, 1)), (2, 500, date(2024, 3, 2))],
            [(2000, date(2024, 2, 1), 'completed'), (2100, date(2024, 3, 1), 'completed')],
            4, 2, self.today,
        )
        for month in result.to_payload()['forecasts']:
            percentages = [category['percentage'] for category in month['categories']]
            self.assertTrue(all(0 <= value <= 100 for value in percentages))
            self.assertAlmostEqual(sum(percentages), 100, places=6)

    def test_zero_expense_month_has_zero_percentages(self):
        result = run_forecast([RENT, STOCK], [], [], 2, 3, self.today)
        for month in result.to_payload()['forecasts']:
            self.assertEqual([c['percentage'] for c in month['categories']], [0.0, 0.0])

    def test_scenario_two_months_of_history(self):
        """Expense growth of 20% projected with jitter in [0.8, 1.2]"""
        expenses = [(1, 1000, date(2024, 2, 10)), (1, 1200, date(2024, 3, 5))]
        sales = [(1500, date(2024, 2, 11), 'completed'), (1800, date(2024, 3, 6), 'completed')]
        for _ in range(25):
            result = run_forecast([RENT], expenses, sales, 1, 2, self.today)
            self.assertEqual(len(result.growth.expense_series), 1)
            self.assertAlmostEqual(result.growth.avg_expense, 0.2)
            self.assertAlmostEqual(result.growth.avg_revenue, 0.2)
            first = result.forecasts[0]
            self.assertGreaterEqual(first.expenses, 1392 - 1e-9)
            self.assertLessEqual(first.expenses, 1488 + 1e-9)
            self.assertGreaterEqual(first.revenue, 2088 - 1e-9)
            self.assertLessEqual(first.revenue, 2232 + 1e-9)
            self.assertAlmostEqual(first.categories[1], first.expenses)

    def test_seeded_projection_is_reproducible(self):
        growth = GrowthEstimate([0.1, 0.2], [0.05], {1: [0.1], 2: [0.3]})
        first = project_forecast(1000, 2000, {1: 500, 2: 500}, growth, 3, self.today, rng=random.Random(7))
        second = project_forecast(1000, 2000, {1: 500, 2: 500}, growth, 3, self.today, rng=random.Random(7))
        self.assertEqual([(f.expenses, f.revenue, f.categories) for f in first],
                         [(f.expenses, f.revenue, f.categories) for f in second])

    def test_no_history_projects_flat_zero(self):
        result = run_forecast([], [], [], 3, 0, self.today)
        self.assertEqual(result.history, [])
        self.assertEqual(result.confidence, 0)
        self.assertEqual(result.growth.avg_expense, 0)
        self.assertEqual(result.growth.avg_revenue, 0)
        self.assertEqual([(f.expenses, f.revenue, f.profit) for f in result.forecasts], [(0.0, 0.0, 0.0)] * 3)


class ConfidenceTests(SimpleTestCase):
    """Test variability-based confidence scoring"""

    def test_coefficient_of_variation(self):
        self.assertAlmostEqual(coefficient_of_variation([0.1, 0.3]), 0.5)

    def test_empty_series_is_maximum_variability(self):
        self.assertEqual(coefficient_of_variation([]), 1.0)

    def test_near_zero_mean_is_maximum_variability(self):
        self.assertEqual(coefficient_of_variation([0.5, -0.5]), 1.0)

    def test_variability_is_capped(self):
        self.assertEqual(coefficient_of_variation([0.01, 0.5, -0.3]), 1.0)

    def test_consistent_growth_gives_full_confidence(self):
        growth = GrowthEstimate([0.1, 0.1], [0.2, 0.2], {})
        self.assertEqual(confidence_score(growth), 100)

    def test_empty_history_gives_zero_confidence(self):
        self.assertEqual(confidence_score(GrowthEstimate([], [], {})), 0)

    def test_confidence_bounds(self):
        rng = random.Random(3)
        for _ in range(50):
            expense = [rng.uniform(-2, 2) for _ in range(rng.randint(0, 6))]
            revenue = [rng.uniform(-2, 2) for _ in range(rng.randint(0, 6))]
            score = confidence_score(GrowthEstimate(expense, revenue, {}))
            self.assertGreaterEqual(score, 0)
            self.assertLessEqual(score, 100)

    def test_average_profit_margin(self):
        history = [bucket('2024-01', 50, 100), bucket('2024-02', 100, 0)]
        self.assertAlmostEqual(average_profit_margin(history), 25.0)
        self.assertEqual(average_profit_margin([]), 0)


class InsightTests(SimpleTestCase):
    """Test rule-based insight generation"""

    today = date(2024, 3, 15)

    def titles(self, insights):
        return [insight.title for insight in insights]

    def test_expense_increase_warning(self):
        history = [bucket('2024-03', expenses=1000, revenue=5000)]
        forecasts = [ForecastMonth('2024-04', 1150, 5000, {})]
        insights = generate_insights(history, forecasts, [], self.today)
        self.assertEqual(insights[0].type, 'warning')
        self.assertEqual(insights[0].title, 'Expense Increase Expected')
        self.assertIn('15.0%', insights[0].description)

    def test_rules_use_most_recent_history_month(self):
        history = [bucket('2024-02', expenses=100, revenue=5000), bucket('2024-03', expenses=1000, revenue=5000)]
        forecasts = [ForecastMonth('2024-04', 1050, 5000, {})]
        self.assertNotIn('Expense Increase Expected', self.titles(generate_insights(history, forecasts, [], self.today)))

    def test_revenue_decline_alert(self):
        history = [bucket('2024-03', expenses=100, revenue=1000)]
        forecasts = [ForecastMonth('2024-04', 100, 900, {})]
        insights = generate_insights(history, forecasts, [], self.today)
        decline = [i for i in insights if i.title == 'Revenue Decline Projected'][0]
        self.assertEqual(decline.type, 'alert')
        self.assertIn('10.0%', decline.description)

    def test_profit_margin_squeeze(self):
        history = [bucket('2024-03', expenses=700, revenue=1000)]
        forecasts = [ForecastMonth('2024-04', 800, 1000, {})]
        insights = generate_insights(history, forecasts, [], self.today)
        squeeze = [i for i in insights if i.title == 'Profit Margin Squeeze'][0]
        self.assertIn('from 30.0% to 20.0%', squeeze.description)

    def test_fastest_growing_category_is_reported(self):
        history = [bucket('2024-03', expenses=200, revenue=1000, categories={1: 100, 2: 100})]
        forecasts = [ForecastMonth('2024-04', 250, 1000, {1: 130, 2: 120})]
        insights = generate_insights(history, forecasts, [RENT, STOCK], self.today)
        growing = [i for i in insights if i.title == 'Fast-Growing Expense Category']
        self.assertEqual(len(growing), 1)
        self.assertIn('"Rent"', growing[0].description)
        self.assertIn('30.0%', growing[0].description)
        self.assertEqual(growing[0].type, 'insight')

    def test_category_without_last_amount_is_ignored(self):
        history = [bucket('2024-03', expenses=100, revenue=1000, categories={1: 0, 2: 100})]
        forecasts = [ForecastMonth('2024-04', 100, 1000, {1: 50, 2: 100})]
        insights = generate_insights(history, forecasts, [RENT, STOCK], self.today)
        self.assertNotIn('Fast-Growing Expense Category', self.titles(insights))

    def test_seasonal_pattern_uses_matching_month_in_window(self):
        history = [bucket('2023-04', expenses=500, revenue=2000), bucket('2024-03', expenses=1000, revenue=2000)]
        forecasts = [ForecastMonth('2024-04', 1000, 2000, {})]
        insights = generate_insights(history, forecasts, [], self.today)
        seasonal = [i for i in insights if i.title == 'Seasonal Pattern Detected'][0]
        self.assertIn('overestimate', seasonal.description)

    def test_seasonal_pattern_skipped_without_match(self):
        history = [bucket('2024-02', expenses=500, revenue=2000), bucket('2024-03', expenses=1000, revenue=2000)]
        forecasts = [ForecastMonth('2024-04', 1000, 2000, {})]
        self.assertNotIn('Seasonal Pattern Detected', self.titles(generate_insights(history, forecasts, [], self.today)))

    def test_cash_flow_alert_counts_negative_months(self):
        forecasts = [
            ForecastMonth('2024-04', 100, 200, {}),
            ForecastMonth('2024-05', 300, 200, {}),
            ForecastMonth('2024-06', 100, 200, {}),
        ]
        insights = generate_insights([bucket('2024-03', 100, 200)], forecasts, [], self.today)
        cash_flow = [i for i in insights if i.title == 'Potential Cash Flow Issues'][0]
        self.assertEqual(cash_flow.type, 'alert')
        self.assertIn('1 of the next 3 months', cash_flow.description)

    def test_rule_order_is_stable(self):
        history = [bucket('2024-03', expenses=700, revenue=1000, categories={1: 700})]
        forecasts = [ForecastMonth('2024-04', 1100, 900, {1: 1100})]
        titles = self.titles(generate_insights(history, forecasts, [RENT], self.today))
        self.assertEqual(titles, [
            'Expense Increase Expected',
            'Revenue Decline Projected',
            'Profit Margin Squeeze',
            'Fast-Growing Expense Category',
            'Potential Cash Flow Issues',
        ])

    def test_zero_history_never_raises(self):
        history = [bucket('2024-03')]
        forecasts = [ForecastMonth('2024-04', 0, 0, {1: 0})]
        self.assertEqual(generate_insights(history, forecasts, [RENT], self.today), [])
        self.assertEqual(generate_insights([], [], [RENT], self.today), [])


@override_settings(BUDGET_FORECAST_PERSIST_IN_BACKGROUND=False)
class BudgetForecastServiceTests(TestCase):
    """Test the forecast service: reads, persistence and caching"""

    def setUp(self):
        cache.clear()
        self.today = timezone.localdate()
        self.organization = TestDataFactory.create_organization()
        self.rent = TestDataFactory.create_expense_category(self.organization, name='Rent')
        self.stock = TestDataFactory.create_expense_category(self.organization, name='Stock')
        last_month = add_months(self.today, -1).replace(day=1)
        this_month = self.today.replace(day=1)
        TestDataFactory.create_expense(self.organization, self.rent, 1000, last_month)
        TestDataFactory.create_expense(self.organization, self.stock, 500, last_month)
        TestDataFactory.create_expense(self.organization, self.rent, 1100, this_month)
        TestDataFactory.create_expense(self.organization, self.stock, 600, this_month)
        TestDataFactory.create_order(self.organization, 3000, last_month)
        TestDataFactory.create_order(self.organization, 3300, this_month)
        TestDataFactory.create_order(self.organization, 9999, this_month, status='cancelled')
        cache.clear()

    def test_payload_sections(self):
        payload, cache_hit = build_budget_forecast(self.organization, 3, 6, today=self.today)
        self.assertFalse(cache_hit)
        self.assertEqual(set(payload), {'history', 'forecasts', 'metrics', 'insights'})
        self.assertEqual(len(payload['history']), 6)
        self.assertEqual(len(payload['forecasts']), 3)
        self.assertEqual(payload['history'][0]['month'], month_key(self.today))
        self.assertEqual(payload['forecasts'][0]['month'], month_key(add_months(self.today, 1)))
        self.assertEqual(set(payload['metrics']),
                         {'avgExpenseGrowth', 'avgRevenueGrowth', 'avgProfitMargin', 'confidenceScore'})

    def test_cancelled_orders_do_not_count(self):
        payload, _ = build_budget_forecast(self.organization, 1, 2, today=self.today)
        latest = payload['history'][0]
        self.assertAlmostEqual(latest['revenue'], 3300.0)
        self.assertAlmostEqual(latest['expenses'], 1700.0)
        self.assertAlmostEqual(latest['profit'], 1600.0)

    def test_forecast_is_persisted(self):
        payload, _ = build_budget_forecast(self.organization, 2, 3, today=self.today)
        record = BudgetForecast.objects.get(organization=self.organization)
        self.assertEqual(record.forecast_months, 2)
        self.assertEqual(record.history_months, 3)
        self.assertAlmostEqual(record.confidence_score, payload['metrics']['confidenceScore'])
        self.assertEqual(BudgetForecastCategory.objects.filter(forecast=record).count(), 4)
        self.assertEqual(BudgetForecastInsight.objects.filter(forecast=record).count(), len(payload['insights']))

    def test_stored_metrics_match_response_metrics(self):
        """Test the stored run carries the same metrics as the response"""
        payload, _ = build_budget_forecast(self.organization, 3, 6, today=self.today)
        record = BudgetForecast.objects.get(organization=self.organization)
        metrics = payload['metrics']
        self.assertAlmostEqual(record.avg_expense_growth, metrics['avgExpenseGrowth'])
        self.assertAlmostEqual(record.avg_revenue_growth, metrics['avgRevenueGrowth'])
        self.assertAlmostEqual(record.avg_profit_margin, metrics['avgProfitMargin'])
        self.assertAlmostEqual(record.confidence_score, metrics['confidenceScore'])

    def test_cache_hit_returns_stored_payload(self):
        first, first_hit = build_budget_forecast(self.organization, 3, 6, today=self.today)
        second, second_hit = build_budget_forecast(self.organization, 3, 6, today=self.today)
        self.assertFalse(first_hit)
        self.assertTrue(second_hit)
        self.assertEqual(first, second)
        self.assertEqual(BudgetForecast.objects.count(), 1)

    def test_different_parameters_use_different_cache_entries(self):
        build_budget_forecast(self.organization, 3, 6, today=self.today)
        _, cache_hit = build_budget_forecast(self.organization, 2, 6, today=self.today)
        self.assertFalse(cache_hit)

    def test_persistence_failure_is_swallowed(self):
        with mock.patch('backend.accounting.services.save_forecast_record', side_effect=RuntimeError('db down')):
            with self.assertLogs('backend.accounting.services', level='ERROR'):
                payload, _ = build_budget_forecast(self.organization, 3, 6, today=self.today)
        self.assertEqual(len(payload['forecasts']), 3)
        self.assertFalse(BudgetForecast.objects.exists())
        _, cache_hit = build_budget_forecast(self.organization, 3, 6, today=self.today)
        self.assertTrue(cache_hit)

    def test_read_failure_propagates(self):
        with mock.patch('backend.accounting.services.load_forecast_inputs', side_effect=RuntimeError('db down')):
            with self.assertRaises(RuntimeError):
                build_budget_forecast(self.organization, 3, 6, today=self.today)

    def test_other_organizations_are_not_aggregated(self):
        other = TestDataFactory.create_organization()
        other_category = TestDataFactory.create_expense_category(other, name='Rent')
        TestDataFactory.create_expense(other, other_category, 50000, self.today)
        cache.clear()
        payload, _ = build_budget_forecast(self.organization, 1, 2, today=self.today)
        self.assertAlmostEqual(payload['history'][0]['expenses'], 1700.0)

    @override_settings(BUDGET_FORECAST_PERSIST_IN_BACKGROUND=True)
    def test_background_persistence_starts_thread(self):
        with mock.patch('backend.accounting.services.threading.Thread') as thread_cls:
            build_budget_forecast(self.organization, 1, 2, today=self.today)
        thread_cls.assert_called_once()
        thread_cls.return_value.start.assert_called_once()


@override_settings(BUDGET_FORECAST_PERSIST_IN_BACKGROUND=False)
class BudgetForecastAPITests(TestCase):
    """Test the budget forecast endpoint"""

    url = '/api/v1/accounting/budgets/forecast/'

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.organization = TestDataFactory.create_organization(members=[self.user])
        self.category = TestDataFactory.create_expense_category(self.organization, name='Rent')
        TestDataFactory.create_expense(self.organization, self.category, 1000, add_months(timezone.localdate(), -1))
        TestDataFactory.create_expense(self.organization, self.category, 1200, timezone.localdate())
        cache.clear()

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(BudgetForecast.objects.exists())

    def test_requires_organization_id(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Organization ID is required')

    def test_unknown_organization(self):
        response = self.client.get(self.url, {'organizationId': 999999})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invalid_months(self):
        response = self.client.get(self.url, {'organizationId': self.organization.id, 'months': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_default_parameters(self):
        response = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['forecasts']), 3)
        self.assertEqual(len(response.data['history']), 6)
        self.assertEqual(response['X-Cache'], 'MISS')

    def test_second_request_is_served_from_cache(self):
        params = {'organizationId': self.organization.id, 'months': 2, 'historyMonths': 4}
        first = self.client.get(self.url, params)
        second = self.client.get(self.url, params)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second['X-Cache'], 'HIT')
        self.assertEqual(first.data, second.data)

    def test_horizon_is_clamped(self):
        response = self.client.get(self.url, {'organizationId': self.organization.id, 'months': 500, 'historyMonths': 0})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['forecasts']), 36)
        self.assertEqual(len(response.data['history']), 1)

    def test_unexpected_error_returns_500(self):
        with mock.patch('backend.accounting.views.build_budget_forecast', side_effect=ValueError('boom')):
            response = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'error': 'Failed to generate budget forecast'})

    def test_forecast_history_lists_stored_runs(self):
        self.client.get(self.url, {'organizationId': self.organization.id})
        response = self.client.get('/api/v1/accounting/budgets/forecasts/', {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['forecast_months'], 3)
        self.assertEqual(len(response.data[0]['categories']), 3)


class ExpenseCategoryAPITests(TestCase):
    """Test expense category endpoints"""

    url = '/api/v1/accounting/expense-categories/'

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.organization = TestDataFactory.create_organization(members=[self.user])

    def test_list_active_categories(self):
        TestDataFactory.create_expense_category(self.organization, name='Utilities')
        TestDataFactory.create_expense_category(self.organization, name='Archived', is_active=False)
        response = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['name'] for c in response.data], ['Utilities'])

    def test_create_category(self):
        response = self.client.post(self.url, {'organizationId': self.organization.id, 'name': 'Rent'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'Rent')

    def test_duplicate_category_conflicts(self):
        TestDataFactory.create_expense_category(self.organization, name='Rent')
        response = self.client.post(self.url, {'organizationId': self.organization.id, 'name': 'Rent'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_missing_fields(self):
        response = self.client.post(self.url, {'organizationId': self.organization.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_created_category_shows_up_in_list(self):
        self.client.get(self.url, {'organizationId': self.organization.id})
        self.client.post(self.url, {'organizationId': self.organization.id, 'name': 'Payroll'}, format='json')
        response = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertIn('Payroll', [c['name'] for c in response.data])


class ExpenseAPITests(TestCase):
    """Test expense endpoints"""

    url = '/api/v1/accounting/expenses/'

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.organization = TestDataFactory.create_organization(members=[self.user])
        self.category = TestDataFactory.create_expense_category(self.organization, name='Rent')

    def test_create_expense(self):
        data = {
            'organizationId': self.organization.id,
            'categoryId': self.category.id,
            'amount': '250.00',
            'description': 'Warehouse rent',
            'paymentMethod': 'bank_transfer',
            'expenseDate': timezone.now().isoformat(),
        }
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment_status'], 'pending')
        self.assertEqual(Expense.objects.get().created_by, self.user)

    def test_create_expense_missing_fields(self):
        response = self.client.post(self.url, {'organizationId': self.organization.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Missing required fields')

    def test_category_from_other_organization_is_rejected(self):
        other = TestDataFactory.create_organization()
        other_category = TestDataFactory.create_expense_category(other, name='Rent')
        data = {
            'organizationId': self.organization.id,
            'categoryId': other_category.id,
            'amount': '10.00',
            'description': 'Misfiled',
            'paymentMethod': 'cash',
            'expenseDate': timezone.now().isoformat(),
        }
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_is_paginated_and_filtered(self):
        utilities = TestDataFactory.create_expense_category(self.organization, name='Utilities')
        for _ in range(3):
            TestDataFactory.create_expense(self.organization, self.category, 100)
        TestDataFactory.create_expense(self.organization, utilities, 40)

        response = self.client.get(self.url, {'organizationId': self.organization.id, 'limit': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['expenses']), 2)
        self.assertEqual(response.data['pagination'], {'total': 4, 'pages': 2, 'page': 1, 'limit': 2})

        response = self.client.get(self.url, {'organizationId': self.organization.id, 'categoryId': utilities.id})
        self.assertEqual(response.data['pagination']['total'], 1)

    def test_list_requires_organization(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_new_expense_appears_in_cached_listing(self):
        """Test a created expense is listed even after the listing was cached"""
        TestDataFactory.create_expense(self.organization, self.category, 100)
        first = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertEqual(first.data['pagination']['total'], 1)

        data = {
            'organizationId': self.organization.id,
            'categoryId': self.category.id,
            'amount': '75.00',
            'description': 'Electricity',
            'paymentMethod': 'card',
            'expenseDate': timezone.now().isoformat(),
        }
        self.assertEqual(self.client.post(self.url, data, format='json').status_code, status.HTTP_201_CREATED)

        second = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertEqual(second.data['pagination']['total'], 2)
        self.assertIn('Electricity', [expense['description'] for expense in second.data['expenses']])


class OrganizationAccessAPITests(TestCase):
    """Test that accounting endpoints only serve members of an organization"""

    def setUp(self):
        cache.clear()
        self.member = TestDataFactory.create_user()
        self.outsider = TestDataFactory.create_user()
        self.organization = TestDataFactory.create_organization(members=[self.member])
        self.category = TestDataFactory.create_expense_category(self.organization, name='Rent')
        TestDataFactory.create_expense(self.organization, self.category, 1234)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.outsider)

    def test_forecast_hidden_from_non_member(self):
        response = self.client.get('/api/v1/accounting/budgets/forecast/', {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(BudgetForecast.objects.exists())

    def test_forecast_history_hidden_from_non_member(self):
        response = self.client.get('/api/v1/accounting/budgets/forecasts/', {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_expense_categories_hidden_from_non_member(self):
        url = '/api/v1/accounting/expense-categories/'
        response = self.client.get(url, {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(url, {'organizationId': self.organization.id, 'name': 'Payroll'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(self.organization.expense_categories.filter(name='Payroll').exists())

    def test_expenses_hidden_from_non_member(self):
        url = '/api/v1/accounting/expenses/'
        response = self.client.get(url, {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        data = {
            'organizationId': self.organization.id,
            'categoryId': self.category.id,
            'amount': '10.00',
            'description': 'Not mine',
            'paymentMethod': 'cash',
            'expenseDate': timezone.now().isoformat(),
        }
        response = self.client.post(url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(Expense.objects.filter(organization=self.organization).count(), 1)

    @override_settings(BUDGET_FORECAST_PERSIST_IN_BACKGROUND=False)
    def test_staff_user_can_read_any_organization(self):
        """Test staff users are not limited to their memberships"""
        staff = TestDataFactory.create_user(is_staff=True)
        self.client.authenticate_user(staff)
        response = self.client.get('/api/v1/accounting/budgets/forecast/', {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertAlmostEqual(response.data['history'][0]['expenses'], 1234.0)


class CacheInvalidationSignalTests(TestCase):
    """Test that data changes drop cached forecasts"""

    def setUp(self):
        self.organization = TestDataFactory.create_organization()
        self.category = TestDataFactory.create_expense_category(self.organization, name='Rent')

    def test_expense_save_invalidates_forecast_and_listing(self):
        with mock.patch('backend.accounting.cache_signals.invalidate_budget_forecast_cache') as forecast_mock, \
                mock.patch('backend.accounting.cache_signals.invalidate_expenses_cache') as expenses_mock:
            TestDataFactory.create_expense(self.organization, self.category, 10)
        forecast_mock.assert_called_with(self.organization.id)
        expenses_mock.assert_called_with(self.organization.id)

    def test_order_save_invalidates_forecast(self):
        with mock.patch('backend.accounting.cache_signals.invalidate_budget_forecast_cache') as forecast_mock:
            TestDataFactory.create_order(self.organization, 10)
        forecast_mock.assert_called_with(self.organization.id)

    def test_category_save_drops_category_listing(self):
        cache.set(f'expense-categories:{self.organization.id}', ['stale'])
        TestDataFactory.create_expense_category(self.organization, name='Payroll')
        self.assertIsNone(cache.get(f'expense-categories:{self.organization.id}'))
