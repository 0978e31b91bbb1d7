"""
Budget forecasting engine

Pipeline (one pass per request, no shared state):
1. History aggregation - bucket expenses and sales into calendar months
2. Growth estimation - month-over-month growth per metric and per category
3. Projection - compound the average growth forward with bounded jitter
4. Confidence scoring - coefficient of variation of the growth series

Amounts are handled as floats here; callers convert Decimals on the way in.
Insight rules live in backend.accounting.insights.
"""
from collections import namedtuple
from datetime import date, datetime
import calendar
import math
import random

from django.utils import timezone

# Jitter applied to average growth for each projected month
OVERALL_JITTER_RANGE = (0.8, 1.2)
CATEGORY_JITTER_RANGE = (0.85, 1.15)

# Below this absolute mean a growth series is treated as having no signal
MEAN_EPSILON = 0.0001

CANCELLED_STATUS = 'cancelled'

CategoryRef = namedtuple('CategoryRef', ['id', 'name'])


# ==================== CALENDAR HELPERS ====================

def add_months(value: date, months: int) -> date:
    """Shift a date by whole calendar months, clamping the day to the target month"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_key(value: date) -> str:
    """YYYY-MM key of a date"""
    return f"{value.year}-{value.month:02d}"


def to_local_date(value):
    """Normalize a date/datetime (aware or naive) to a local calendar date"""
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    return value


def history_window(history_months: int, today: date):
    """(start_date, end_date) of the records to load for a history window"""
    return add_months(today, -history_months), today


# ==================== HISTORY AGGREGATION ====================

class MonthBucket:
    """Totals of one historical calendar month"""

    def __init__(self, month, category_ids):
        self.month = month
        self.expenses = 0.0
        self.revenue = 0.0
        self.profit = 0.0
        # Every known category is present, defaulting to zero
        self.categories = {category_id: 0.0 for category_id in category_ids}

    def __repr__(self):
        return (f"MonthBucket({self.month}, expenses={self.expenses}, "
                f"revenue={self.revenue}, profit={self.profit})")


def month_keys_for_window(history_months: int, today: date):
    """Chronologically sorted month keys ending at today's month"""
    keys = [month_key(add_months(today, -offset)) for offset in range(history_months)]
    return sorted(keys)


def aggregate_history(category_ids, expenses, sales, history_months, today):
    """
    Bucket raw records into calendar months

    Args:
        category_ids: ids of every category of the organization
        expenses: iterable of (category_id, amount, incurred_on)
        sales: iterable of (amount, ordered_on, status)
        history_months: number of months in the window (current month included)
        today: anchor date

    Returns:
        list of MonthBucket in chronological order
    """
    category_ids = list(category_ids)
    buckets = {key: MonthBucket(key, category_ids) for key in month_keys_for_window(history_months, today)}

    for category_id, amount, incurred_on in expenses:
        bucket = buckets.get(month_key(to_local_date(incurred_on)))
        if bucket is None:
            continue
        amount = float(amount or 0)
        if category_id in bucket.categories:
            bucket.categories[category_id] += amount
        bucket.expenses += amount

    for amount, ordered_on, order_status in sales:
        if order_status == CANCELLED_STATUS:
            continue
        bucket = buckets.get(month_key(to_local_date(ordered_on)))
        if bucket is None:
            continue
        bucket.revenue += float(amount or 0)

    for bucket in buckets.values():
        bucket.profit = bucket.revenue - bucket.expenses

    return [buckets[key] for key in sorted(buckets)]


# ==================== GROWTH ESTIMATION ====================

def growth_series(values):
    """
    Month-over-month growth ratios of a sequence

    Transitions whose previous value is not strictly positive are omitted.
    """
    rates = []
    for previous, current in zip(values, values[1:]):
        if previous > 0:
            rates.append((current - previous) / previous)
    return rates


def mean(values):
    return sum(values) / len(values) if values else 0.0


class GrowthEstimate:
    """Growth series and their averages for expenses, revenue and each category"""

    def __init__(self, expense_series, revenue_series, category_series):
        self.expense_series = expense_series
        self.revenue_series = revenue_series
        self.category_series = category_series
        self.avg_expense = mean(expense_series)
        self.avg_revenue = mean(revenue_series)
        self.avg_category = {category_id: mean(series) for category_id, series in category_series.items()}


def estimate_growth(buckets, category_ids):
    """Compute growth series and averages from chronological month buckets"""
    expense_series = growth_series([bucket.expenses for bucket in buckets])
    revenue_series = growth_series([bucket.revenue for bucket in buckets])
    category_series = {
        category_id: growth_series([bucket.categories.get(category_id, 0.0) for bucket in buckets])
        for category_id in category_ids
    }
    return GrowthEstimate(expense_series, revenue_series, category_series)


# ==================== PROJECTION ====================

class ForecastMonth:
    """Projected totals of one future month"""

    def __init__(self, month, expenses, revenue, categories):
        self.month = month
        self.expenses = expenses
        self.revenue = revenue
        self.profit = revenue - expenses
        self.categories = categories

    def __repr__(self):
        return (f"ForecastMonth({self.month}, expenses={self.expenses}, "
                f"revenue={self.revenue}, profit={self.profit})")


def project_forecast(last_expense, last_revenue, last_categories, growth, months, today, rng=None):
    """
    Extrapolate `months` future months from the latest actuals

    Each month compounds on the previous projected month. One jitter draw is
    shared by expenses and revenue; each category gets its own draw. Category
    projections are rescaled so they add up to the projected expense total.

    Args:
        rng: object with uniform(a, b); a fresh random.Random() when omitted
    """
    rng = rng or random.Random()
    previous_expense = float(last_expense)
    previous_revenue = float(last_revenue)
    previous_categories = dict(last_categories)

    forecasts = []
    for offset in range(1, months + 1):
        jitter = rng.uniform(*OVERALL_JITTER_RANGE)
        expenses = previous_expense * (1 + growth.avg_expense * jitter)
        revenue = previous_revenue * (1 + growth.avg_revenue * jitter)

        categories = {}
        for category_id, previous_amount in previous_categories.items():
            category_jitter = rng.uniform(*CATEGORY_JITTER_RANGE)
            avg_growth = growth.avg_category.get(category_id, 0.0)
            categories[category_id] = previous_amount * (1 + avg_growth * category_jitter)

        category_total = sum(categories.values())
        if category_total > 0:
            categories = {
                category_id: amount / category_total * expenses
                for category_id, amount in categories.items()
            }

        forecasts.append(ForecastMonth(month_key(add_months(today, offset)), expenses, revenue, categories))

        previous_expense = expenses
        previous_revenue = revenue
        previous_categories = categories

    return forecasts


# ==================== CONFIDENCE ====================

def coefficient_of_variation(values):
    """Population stddev / |mean|, capped at 1; 1 when there is no usable data"""
    if not values:
        return 1.0
    avg = mean(values)
    if abs(avg) <= MEAN_EPSILON:
        return 1.0
    variance = sum((value - avg) ** 2 for value in values) / len(values)
    return min(1.0, math.sqrt(variance) / abs(avg))


def confidence_score(growth):
    """0-100 score, high when historical growth has been consistent"""
    expense_variability = coefficient_of_variation(growth.expense_series)
    revenue_variability = coefficient_of_variation(growth.revenue_series)
    score = 100 - ((expense_variability + revenue_variability) / 2) * 100
    return max(0.0, min(100.0, score))


def profit_margin(month):
    """Profit margin (%) of a month, 0 when there was no revenue"""
    return month.profit / month.revenue * 100 if month.revenue > 0 else 0.0


def average_profit_margin(history):
    return mean([profit_margin(month) for month in history])


# ==================== PAYLOAD ====================

def category_breakdown(amounts, total, categories):
    """Per-category amount and share of the month's expenses"""
    return [
        {
            'id': category.id,
            'name': category.name,
            'amount': amounts.get(category.id, 0.0),
            'percentage': amounts.get(category.id, 0.0) / total * 100 if total > 0 else 0.0,
        }
        for category in categories
    ]


def month_summary(month, categories):
    return {
        'month': month.month,
        'expenses': month.expenses,
        'revenue': month.revenue,
        'profit': month.profit,
        'categories': category_breakdown(month.categories, month.expenses, categories),
    }


class ForecastResult:
    """Everything one forecast run produced"""

    def __init__(self, categories, history, growth, forecasts, confidence, insights):
        self.categories = categories
        self.history = history
        self.growth = growth
        self.forecasts = forecasts
        self.confidence = confidence
        self.insights = insights
        self.avg_profit_margin = average_profit_margin(history)

    def to_payload(self):
        """Response body: history (most recent first), forecasts, metrics, insights"""
        return {
            'history': [month_summary(month, self.categories) for month in reversed(self.history)],
            'forecasts': [month_summary(month, self.categories) for month in self.forecasts],
            'metrics': {
                'avgExpenseGrowth': self.growth.avg_expense * 100,
                'avgRevenueGrowth': self.growth.avg_revenue * 100,
                'avgProfitMargin': self.avg_profit_margin,
                'confidenceScore': self.confidence,
            },
            'insights': [insight.to_dict() for insight in self.insights],
        }


def run_forecast(categories, expenses, sales, months, history_months, today, rng=None):
    """
    Run the full pipeline on already-loaded records

    Args:
        categories: list of objects with `id` and `name`
        expenses: iterable of (category_id, amount, incurred_on)
        sales: iterable of (amount, ordered_on, status)
    """
    from .insights import generate_insights

    category_ids = [category.id for category in categories]
    history = aggregate_history(category_ids, expenses, sales, history_months, today)
    growth = estimate_growth(history, category_ids)

    if history:
        latest = history[-1]
        last_expense, last_revenue = latest.expenses, latest.revenue
        last_categories = {category_id: latest.categories.get(category_id, 0.0) for category_id in category_ids}
    else:
        last_expense, last_revenue = 0.0, 0.0
        last_categories = {category_id: 0.0 for category_id in category_ids}

    forecasts = project_forecast(last_expense, last_revenue, last_categories, growth, months, today, rng=rng)
    insights = generate_insights(history, forecasts, categories, today)
    return ForecastResult(categories, history, growth, forecasts, confidence_score(growth), insights)
