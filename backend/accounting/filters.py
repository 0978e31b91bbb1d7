import django_filters
from django.db.models import Q
from .models import Expense


class ExpenseFilter(django_filters.FilterSet):
    """Filter for Expense listings using django-filter"""

    categoryId = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    startDate = django_filters.DateFilter(field_name='expense_date', lookup_expr='date__gte')
    endDate = django_filters.DateFilter(field_name='expense_date', lookup_expr='date__lte')
    paymentStatus = django_filters.CharFilter(field_name='payment_status', lookup_expr='exact')
    search = django_filters.CharFilter(method='filter_search', label='Search')

    class Meta:
        model = Expense
        fields = ['categoryId', 'startDate', 'endDate', 'paymentStatus', 'search']

    def filter_search(self, queryset, name, value):
        """Search in descriptions and category names"""
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(Q(description__icontains=value) | Q(category__name__icontains=value))
