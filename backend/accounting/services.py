"""
Budget forecast service

Loads an organization's records, runs the forecasting engine, stores a
snapshot of the run and caches the response payload.
"""
from django.conf import settings
from django.db import connection, transaction
from django.utils import timezone
from decimal import Decimal
import logging
import threading

from backend.core.cache_utils import get_cached_budget_forecast, cache_budget_forecast
from backend.pos.models import Order
from .forecasting import CategoryRef, history_window, run_forecast
from .models import (
    ExpenseCategory, Expense, BudgetForecast, BudgetForecastCategory, BudgetForecastInsight
)

logger = logging.getLogger(__name__)


def load_forecast_inputs(organization, start_date, end_date):
    """Read categories, expenses and non-cancelled orders inside the window"""
    categories = [
        CategoryRef(category_id, name)
        for category_id, name in ExpenseCategory.objects.filter(
            organization=organization
        ).order_by('name', 'id').values_list('id', 'name')
    ]

    expenses = list(Expense.objects.filter(
        organization=organization,
        expense_date__date__gte=start_date,
        expense_date__date__lte=end_date,
    ).values_list('category_id', 'amount', 'expense_date'))

    sales = list(Order.objects.filter(
        organization=organization,
        order_date__date__gte=start_date,
        order_date__date__lte=end_date,
    ).exclude(
        status='cancelled'
    ).values_list('final_amount', 'order_date', 'status'))

    return categories, expenses, sales


def save_forecast_record(organization_id, start_date, end_date, months, history_months, result):
    """Persist a snapshot of a forecast run with its category lines and insights"""
    with transaction.atomic():
        record = BudgetForecast.objects.create(
            organization_id=organization_id,
            start_date=start_date,
            end_date=end_date,
            forecast_months=months,
            history_months=history_months,
            confidence_score=result.confidence,
            avg_expense_growth=result.growth.avg_expense * 100,
            avg_revenue_growth=result.growth.avg_revenue * 100,
            avg_profit_margin=result.avg_profit_margin,
        )
        BudgetForecastCategory.objects.bulk_create([
            BudgetForecastCategory(
                forecast=record,
                category_id=category.id,
                month=month.month,
                amount=Decimal(str(round(month.categories.get(category.id, 0.0), 2))),
                percentage=(month.categories.get(category.id, 0.0) / month.expenses * 100
                            if month.expenses > 0 else 0.0),
            )
            for month in result.forecasts
            for category in result.categories
        ])
        BudgetForecastInsight.objects.bulk_create([
            BudgetForecastInsight(
                forecast=record,
                type=insight.type,
                title=insight.title,
                description=insight.description,
                action=insight.action,
            )
            for insight in result.insights
        ])
    return record


def store_forecast_best_effort(organization_id, start_date, end_date, months, history_months, result):
    """Persist a forecast run; failures are logged and never raised"""

    def _store_task(close_connection=False):
        try:
            record = save_forecast_record(organization_id, start_date, end_date, months, history_months, result)
            logger.info(f"Stored budget forecast {record.id} for organization {organization_id}")
        except Exception as e:
            # Don't fail the request if storing the snapshot fails
            logger.error(f"Error storing forecast in database: {str(e)}", exc_info=True)
        finally:
            if close_connection:
                # The worker thread opened its own connection
                connection.close()

    if getattr(settings, 'BUDGET_FORECAST_PERSIST_IN_BACKGROUND', True):
        thread = threading.Thread(target=_store_task, kwargs={'close_connection': True})
        thread.daemon = True  # Daemon thread so it doesn't block program exit
        thread.start()
    else:
        _store_task()


def build_budget_forecast(organization, months, history_months, today=None, rng=None):
    """
    Return (payload, cache_hit) for an organization's budget forecast

    A cached payload is returned verbatim. Otherwise the forecast is computed,
    stored (best effort) and cached. Read and computation errors propagate.
    """
    cached_data, cache_key = get_cached_budget_forecast(organization.id, months, history_months)
    if cached_data is not None:
        logger.info(f"Budget forecast cache HIT (organization: {organization.id}, key: {cache_key})")
        return cached_data, True
    logger.info(f"Budget forecast cache MISS (organization: {organization.id}, key: {cache_key})")

    today = today or timezone.localdate()
    start_date, end_date = history_window(history_months, today)
    categories, expenses, sales = load_forecast_inputs(organization, start_date, end_date)

    result = run_forecast(categories, expenses, sales, months, history_months, today, rng=rng)
    payload = result.to_payload()

    logger.info(
        f"Budget forecast computed (organization: {organization.id}, months: {months}, "
        f"history: {history_months}, confidence: {result.confidence:.1f}, insights: {len(result.insights)})"
    )

    store_forecast_best_effort(organization.id, start_date, end_date, months, history_months, result)
    cache_budget_forecast(cache_key, payload)
    return payload, False
