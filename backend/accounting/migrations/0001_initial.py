import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ExpenseCategory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='expense_categories', to='core.organization')),
            ],
            options={
                'db_table': 'expense_categories',
                'ordering': ['name'],
                'verbose_name_plural': 'expense categories',
                'constraints': [
                    models.UniqueConstraint(fields=('organization', 'name'), name='uniq_expense_category_org_name'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Expense',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('description', models.CharField(max_length=500)),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card'), ('upi', 'UPI'), ('bank_transfer', 'Bank Transfer'), ('cheque', 'Cheque'), ('other', 'Other')], default='cash', max_length=20)),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('expense_date', models.DateTimeField()),
                ('receipt_url', models.URLField(blank=True)),
                ('tax_deductible', models.BooleanField(default=False)),
                ('tax_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='expenses', to='accounting.expensecategory')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='expenses', to=settings.AUTH_USER_MODEL)),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='expenses', to='core.organization')),
            ],
            options={
                'db_table': 'expenses',
                'ordering': ['-expense_date'],
                'indexes': [
                    models.Index(fields=['organization', 'expense_date'], name='idx_expense_org_date'),
                    models.Index(fields=['category'], name='idx_expense_category'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BudgetForecast',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_date', models.DateField()),
                ('end_date', models.DateField()),
                ('forecast_months', models.PositiveIntegerField()),
                ('history_months', models.PositiveIntegerField()),
                ('confidence_score', models.FloatField()),
                ('avg_expense_growth', models.FloatField(help_text='Average month-over-month expense growth (%)')),
                ('avg_revenue_growth', models.FloatField(help_text='Average month-over-month revenue growth (%)')),
                ('avg_profit_margin', models.FloatField(help_text='Average historical profit margin (%)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='budget_forecasts', to='core.organization')),
            ],
            options={
                'db_table': 'budget_forecasts',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='BudgetForecastCategory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('month', models.CharField(help_text='YYYY-MM', max_length=7)),
                ('amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('percentage', models.FloatField(default=0)),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='forecast_lines', to='accounting.expensecategory')),
                ('forecast', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='categories', to='accounting.budgetforecast')),
            ],
            options={
                'db_table': 'budget_forecast_categories',
                'ordering': ['month', 'id'],
            },
        ),
        migrations.CreateModel(
            name='BudgetForecastInsight',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('insight', 'Insight'), ('warning', 'Warning'), ('alert', 'Alert')], max_length=20)),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField()),
                ('action', models.TextField(blank=True)),
                ('forecast', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='insights', to='accounting.budgetforecast')),
            ],
            options={
                'db_table': 'budget_forecast_insights',
                'ordering': ['id'],
            },
        ),
    ]
