"""
Cache invalidation signals
Drop an organization's cached forecasts and listings when its data changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from backend.core.cache_utils import (
    invalidate_budget_forecast_cache,
    invalidate_expense_categories_cache,
    invalidate_expenses_cache,
)
from backend.pos.models import Order
from .models import Expense, ExpenseCategory

logger = logging.getLogger(__name__)


@receiver([post_save, post_delete], sender=Expense)
def expense_changed(sender, instance, **kwargs):
    """Expenses feed both the expense listings and the forecast"""
    invalidate_expenses_cache(instance.organization_id)
    invalidate_budget_forecast_cache(instance.organization_id)
    logger.debug(f"Cache invalidated for expense {instance.pk} (organization {instance.organization_id})")


@receiver([post_save, post_delete], sender=ExpenseCategory)
def expense_category_changed(sender, instance, **kwargs):
    invalidate_expense_categories_cache(instance.organization_id)
    invalidate_budget_forecast_cache(instance.organization_id)
    logger.debug(f"Cache invalidated for expense category {instance.pk} (organization {instance.organization_id})")


@receiver([post_save, post_delete], sender=Order)
def order_changed(sender, instance, **kwargs):
    """Orders feed forecast revenue"""
    invalidate_budget_forecast_cache(instance.organization_id)
    logger.debug(f"Cache invalidated for order {instance.pk} (organization {instance.organization_id})")
