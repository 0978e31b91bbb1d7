from django.db import models
from decimal import Decimal
from backend.core.models import User, Organization


class ExpenseCategory(models.Model):
    """Expense categories (rent, payroll, stock purchases, ...)"""
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='expense_categories')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'expense_categories'
        ordering = ['name']
        verbose_name_plural = 'expense categories'
        constraints = [
            models.UniqueConstraint(fields=['organization', 'name'], name='uniq_expense_category_org_name'),
        ]


class Expense(models.Model):
    """Expenses incurred by an organization"""
    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('upi', 'UPI'),
        ('bank_transfer', 'Bank Transfer'),
        ('cheque', 'Cheque'),
        ('other', 'Other'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('cancelled', 'Cancelled'),
    ]

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='expenses')
    category = models.ForeignKey(ExpenseCategory, on_delete=models.PROTECT, related_name='expenses')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.CharField(max_length=500)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='pending')
    expense_date = models.DateTimeField()
    receipt_url = models.URLField(blank=True)
    tax_deductible = models.BooleanField(default=False)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.description} ({self.amount})"

    class Meta:
        db_table = 'expenses'
        ordering = ['-expense_date']
        indexes = [
            models.Index(fields=['organization', 'expense_date'], name='idx_expense_org_date'),
            models.Index(fields=['category'], name='idx_expense_category'),
        ]


class BudgetForecast(models.Model):
    """Snapshot of one budget forecast run, kept for reference"""
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='budget_forecasts')
    start_date = models.DateField()
    end_date = models.DateField()
    forecast_months = models.PositiveIntegerField()
    history_months = models.PositiveIntegerField()
    confidence_score = models.FloatField()
    avg_expense_growth = models.FloatField(help_text='Average month-over-month expense growth (%)')
    avg_revenue_growth = models.FloatField(help_text='Average month-over-month revenue growth (%)')
    avg_profit_margin = models.FloatField(help_text='Average historical profit margin (%)')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Forecast {self.organization_id} @ {self.created_at:%Y-%m-%d %H:%M}"

    class Meta:
        db_table = 'budget_forecasts'
        ordering = ['-created_at']


class BudgetForecastCategory(models.Model):
    """Forecasted amount of one category for one month"""
    forecast = models.ForeignKey(BudgetForecast, on_delete=models.CASCADE, related_name='categories')
    category = models.ForeignKey(ExpenseCategory, on_delete=models.CASCADE, related_name='forecast_lines')
    month = models.CharField(max_length=7, help_text='YYYY-MM')
    amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    percentage = models.FloatField(default=0)

    class Meta:
        db_table = 'budget_forecast_categories'
        ordering = ['month', 'id']


class BudgetForecastInsight(models.Model):
    """Insight generated alongside a forecast run"""
    TYPE_CHOICES = [
        ('insight', 'Insight'),
        ('warning', 'Warning'),
        ('alert', 'Alert'),
    ]

    forecast = models.ForeignKey(BudgetForecast, on_delete=models.CASCADE, related_name='insights')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255)
    description = models.TextField()
    action = models.TextField(blank=True)

    class Meta:
        db_table = 'budget_forecast_insights'
        ordering = ['id']
