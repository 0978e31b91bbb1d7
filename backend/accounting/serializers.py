from rest_framework import serializers
from .models import (
    ExpenseCategory, Expense, BudgetForecast, BudgetForecastCategory, BudgetForecastInsight
)


class ExpenseCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ExpenseCategory
        fields = ['id', 'organization', 'name', 'description', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
        # Duplicate names are answered with 409 by the view
        validators = []


class ExpenseSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True)

    class Meta:
        model = Expense
        fields = [
            'id', 'organization', 'category', 'category_name', 'amount', 'description',
            'payment_method', 'payment_status', 'expense_date', 'receipt_url',
            'tax_deductible', 'tax_amount', 'created_by', 'created_by_username',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero")
        return value

    def validate(self, attrs):
        organization = attrs.get('organization')
        category = attrs.get('category')
        if organization and category and category.organization_id != organization.id:
            raise serializers.ValidationError({'category': "Category does not belong to this organization"})
        return attrs


class BudgetForecastCategorySerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)

    class Meta:
        model = BudgetForecastCategory
        fields = ['id', 'category', 'category_name', 'month', 'amount', 'percentage']


class BudgetForecastInsightSerializer(serializers.ModelSerializer):
    class Meta:
        model = BudgetForecastInsight
        fields = ['id', 'type', 'title', 'description', 'action']


class BudgetForecastSerializer(serializers.ModelSerializer):
    categories = BudgetForecastCategorySerializer(many=True, read_only=True)
    insights = BudgetForecastInsightSerializer(many=True, read_only=True)

    class Meta:
        model = BudgetForecast
        fields = [
            'id', 'organization', 'start_date', 'end_date', 'forecast_months', 'history_months',
            'confidence_score', 'avg_expense_growth', 'avg_revenue_growth', 'avg_profit_margin',
            'categories', 'insights', 'created_at'
        ]
