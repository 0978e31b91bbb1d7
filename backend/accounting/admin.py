from django.contrib import admin
from .models import (
    ExpenseCategory, Expense, BudgetForecast, BudgetForecastCategory, BudgetForecastInsight
)


@admin.register(ExpenseCategory)
class ExpenseCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'organization', 'is_active', 'created_at']
    list_filter = ['is_active', 'organization']
    search_fields = ['name', 'description']
    ordering = ['organization', 'name']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ['description', 'organization', 'category', 'amount', 'payment_method', 'payment_status', 'expense_date', 'created_by']
    list_filter = ['payment_status', 'payment_method', 'organization', 'expense_date']
    search_fields = ['description', 'category__name']
    ordering = ['-expense_date']
    readonly_fields = ['created_at', 'updated_at']


class BudgetForecastCategoryInline(admin.TabularInline):
    model = BudgetForecastCategory
    extra = 0
    readonly_fields = ['category', 'month', 'amount', 'percentage']


class BudgetForecastInsightInline(admin.TabularInline):
    model = BudgetForecastInsight
    extra = 0
    readonly_fields = ['type', 'title', 'description', 'action']


@admin.register(BudgetForecast)
class BudgetForecastAdmin(admin.ModelAdmin):
    list_display = ['organization', 'forecast_months', 'history_months', 'confidence_score', 'avg_expense_growth', 'avg_revenue_growth', 'created_at']
    list_filter = ['organization', 'created_at']
    ordering = ['-created_at']
    inlines = [BudgetForecastCategoryInline, BudgetForecastInsightInline]
    readonly_fields = ['created_at']
