"""
Rule-based insights for budget forecasts

Rules compare the first forecasted month with the most recent historical
month. A rule whose inputs are missing (no history, zero denominator, no
matching month) is skipped. Generation never raises.
"""
import logging

from .forecasting import add_months, profit_margin

logger = logging.getLogger(__name__)

INSIGHT = 'insight'
WARNING = 'warning'
ALERT = 'alert'

EXPENSE_INCREASE_THRESHOLD = 1.10
REVENUE_DECLINE_THRESHOLD = 0.95
MARGIN_SQUEEZE_THRESHOLD = 0.90
FAST_GROWTH_THRESHOLD = 0.15
SEASONAL_DIVERGENCE_THRESHOLD = 0.10


class Insight:
    def __init__(self, type, title, description, action):
        self.type = type
        self.title = title
        self.description = description
        self.action = action

    def to_dict(self):
        return {
            'type': self.type,
            'title': self.title,
            'description': self.description,
            'action': self.action,
        }

    def __repr__(self):
        return f"Insight({self.type}, {self.title!r})"


def expense_increase(last, first):
    if last.expenses <= 0 or first.expenses <= last.expenses * EXPENSE_INCREASE_THRESHOLD:
        return None
    increase = (first.expenses / last.expenses - 1) * 100
    return Insight(
        WARNING,
        'Expense Increase Expected',
        f"Expenses are projected to increase by {increase:.1f}% next month.",
        'Review your budget allocations to identify areas for potential cost control.',
    )


def revenue_decline(last, first):
    if last.revenue <= 0 or first.revenue >= last.revenue * REVENUE_DECLINE_THRESHOLD:
        return None
    decline = (1 - first.revenue / last.revenue) * 100
    return Insight(
        ALERT,
        'Revenue Decline Projected',
        f"Revenue may decrease by {decline:.1f}% next month based on current trends.",
        'Consider marketing initiatives or promotions to boost sales.',
    )


def profit_margin_squeeze(last, first):
    last_margin = profit_margin(last)
    forecast_margin = profit_margin(first)
    if forecast_margin >= last_margin * MARGIN_SQUEEZE_THRESHOLD:
        return None
    return Insight(
        WARNING,
        'Profit Margin Squeeze',
        f"Your profit margin is projected to decrease from {last_margin:.1f}% to {forecast_margin:.1f}%.",
        'Analyze your cost structure and pricing strategy to maintain profitability.',
    )


def fastest_growing_category(last, first, categories):
    growing = []
    for category in categories:
        last_amount = last.categories.get(category.id, 0.0)
        if last_amount <= 0:
            continue
        growth_rate = first.categories.get(category.id, 0.0) / last_amount - 1
        if growth_rate > FAST_GROWTH_THRESHOLD:
            growing.append((growth_rate, category))

    if not growing:
        return None
    # Stable sort keeps category order on ties
    growth_rate, category = sorted(growing, key=lambda item: item[0], reverse=True)[0]
    return Insight(
        INSIGHT,
        'Fast-Growing Expense Category',
        f"\"{category.name}\" expenses are projected to grow by {growth_rate * 100:.1f}% next month.",
        'Review this category to ensure spending aligns with business objectives.',
    )


def seasonal_pattern(history, last, first, today):
    """
    Compare the forecast with the historical month sharing next month's
    calendar month number.

    The lookup only searches the loaded history window (oldest first), so
    with fewer than 12 months of history there is usually no match, and the
    match is not guaranteed to be from the previous year.
    """
    if last.expenses <= 0:
        return None
    next_month_number = add_months(today, 1).month
    same_month = next(
        (month for month in history if int(month.month.split('-')[1]) == next_month_number),
        None,
    )
    if same_month is None:
        return None

    seasonal_diff = first.expenses / last.expenses - same_month.expenses / last.expenses
    if abs(seasonal_diff) <= SEASONAL_DIVERGENCE_THRESHOLD:
        return None
    direction = 'overestimate' if seasonal_diff > 0 else 'underestimate'
    return Insight(
        INSIGHT,
        'Seasonal Pattern Detected',
        f"Based on last year's data, your forecast may {direction} expenses for next month.",
        'Adjust your budget to account for seasonal variations.',
    )


def cash_flow(forecasts):
    negative_months = [month for month in forecasts if month.profit < 0]
    if not negative_months:
        return None
    return Insight(
        ALERT,
        'Potential Cash Flow Issues',
        f"Negative cash flow projected in {len(negative_months)} of the next {len(forecasts)} months.",
        'Prepare a cash reserve or explore financing options to cover potential shortfalls.',
    )


def generate_insights(history, forecasts, categories, today):
    """
    Evaluate every rule and return the ones that fired, in rule order

    Args:
        history: chronological MonthBucket list
        forecasts: chronological ForecastMonth list
        categories: objects with `id` and `name`
        today: anchor date of the run
    """
    insights = []
    if history and forecasts:
        last = history[-1]
        first = forecasts[0]
        insights.extend([
            expense_increase(last, first),
            revenue_decline(last, first),
            profit_margin_squeeze(last, first),
            fastest_growing_category(last, first, categories),
            seasonal_pattern(history, last, first, today),
        ])
    insights.append(cash_flow(forecasts))

    insights = [insight for insight in insights if insight is not None]
    logger.debug(f"Generated {len(insights)} budget insights")
    return insights
