import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.conf import settings
from django.core.cache import cache
from django.core.paginator import Paginator

from backend.core.cache_utils import (
    EXPENSE_CATEGORIES_CACHE_TTL,
    EXPENSES_LIST_CACHE_TTL,
    get_expense_categories_cache_key,
    get_expenses_list_cache_key,
)
from backend.core.utils import InvalidParameter, get_organization, parse_int_param
from .filters import ExpenseFilter
from .models import ExpenseCategory, Expense, BudgetForecast
from .serializers import ExpenseCategorySerializer, ExpenseSerializer, BudgetForecastSerializer
from .services import build_budget_forecast

logger = logging.getLogger('backend.accounting')

DEFAULT_FORECAST_MONTHS = 3
DEFAULT_HISTORY_MONTHS = 6


def _organization_or_error(request, organization_id):
    """Return (organization, error_response)"""
    if not organization_id:
        return None, Response({'error': 'Organization ID is required'}, status=status.HTTP_400_BAD_REQUEST)
    organization = get_organization(organization_id, user=request.user)
    if organization is None:
        return None, Response({'error': 'Organization not found'}, status=status.HTTP_404_NOT_FOUND)
    return organization, None


# Expense category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def expense_category_list_create(request):
    """List active expense categories of an organization or create a new one"""
    if request.method == 'GET':
        organization, error = _organization_or_error(request, request.query_params.get('organizationId'))
        if error:
            return error

        cache_key = get_expense_categories_cache_key(organization.id)
        cached_data = cache.get(cache_key)
        if cached_data is not None:
            return Response(cached_data)

        categories = ExpenseCategory.objects.filter(organization=organization, is_active=True).order_by('name')
        data = ExpenseCategorySerializer(categories, many=True).data
        cache.set(cache_key, data, EXPENSE_CATEGORIES_CACHE_TTL)
        return Response(data)

    organization_id = request.data.get('organizationId')
    name = (request.data.get('name') or '').strip()
    if not organization_id or not name:
        return Response({'error': 'Missing required fields'}, status=status.HTTP_400_BAD_REQUEST)

    organization, error = _organization_or_error(request, organization_id)
    if error:
        return error

    if ExpenseCategory.objects.filter(organization=organization, name__iexact=name).exists():
        return Response({'error': 'Category with this name already exists'}, status=status.HTTP_409_CONFLICT)

    serializer = ExpenseCategorySerializer(data={
        'organization': organization.id,
        'name': name,
        'description': request.data.get('description') or '',
    })
    if serializer.is_valid():
        category = serializer.save()
        logger.info(f"User {request.user.username} created expense category '{category.name}' (organization {organization.id})")
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Expense views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def expense_list_create(request):
    """List expenses with pagination and filtering, or create a new expense"""
    if request.method == 'GET':
        organization, error = _organization_or_error(request, request.query_params.get('organizationId'))
        if error:
            return error

        try:
            page = parse_int_param(request.query_params, 'page', 1, min_value=1)
            limit = parse_int_param(request.query_params, 'limit', 10, min_value=1, max_value=100)
        except InvalidParameter as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        filter_params = {
            key: request.query_params.get(key)
            for key in ExpenseFilter.Meta.fields
            if request.query_params.get(key)
        }
        cache_key = get_expenses_list_cache_key(organization.id, page=page, limit=limit, **filter_params)
        cached_data = cache.get(cache_key)
        if cached_data is not None:
            return Response(cached_data)

        queryset = Expense.objects.select_related('category', 'created_by').filter(organization=organization)
        filterset = ExpenseFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        queryset = filterset.qs.order_by('-expense_date')

        paginator = Paginator(queryset, limit)
        page_obj = paginator.get_page(page)

        result = {
            'expenses': ExpenseSerializer(page_obj, many=True).data,
            'pagination': {
                'total': paginator.count,
                'pages': paginator.num_pages,
                'page': page_obj.number,
                'limit': limit,
            },
        }
        cache.set(cache_key, result, EXPENSES_LIST_CACHE_TTL)
        return Response(result)

    data = request.data
    required = ['organizationId', 'categoryId', 'amount', 'description', 'paymentMethod', 'expenseDate']
    if any(not data.get(field) for field in required):
        return Response({'error': 'Missing required fields'}, status=status.HTTP_400_BAD_REQUEST)

    organization, error = _organization_or_error(request, data.get('organizationId'))
    if error:
        return error

    serializer = ExpenseSerializer(data={
        'organization': organization.id,
        'category': data.get('categoryId'),
        'amount': data.get('amount'),
        'description': data.get('description'),
        'payment_method': data.get('paymentMethod'),
        'payment_status': data.get('paymentStatus') or 'pending',
        'expense_date': data.get('expenseDate'),
        'receipt_url': data.get('receiptUrl') or '',
        'tax_deductible': data.get('taxDeductible') or False,
        'tax_amount': data.get('taxAmount'),
    })
    if serializer.is_valid():
        expense = serializer.save(created_by=request.user)
        logger.info(f"User {request.user.username} created expense {expense.id} ({expense.amount}) for organization {expense.organization_id}")
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Budget forecast views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def budget_forecast(request):
    """
    Budget forecast based on historical expenses and sales

    Query params:
        organizationId: required
        months: months to forecast (default 3)
        historyMonths: months of history to analyze (default 6)
    """
    max_months = getattr(settings, 'BUDGET_FORECAST_MAX_MONTHS', 36)
    try:
        months = parse_int_param(request.query_params, 'months', DEFAULT_FORECAST_MONTHS,
                                 min_value=1, max_value=max_months)
        history_months = parse_int_param(request.query_params, 'historyMonths', DEFAULT_HISTORY_MONTHS,
                                         min_value=1, max_value=max_months)
    except InvalidParameter as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    organization, error = _organization_or_error(request, request.query_params.get('organizationId'))
    if error:
        return error

    try:
        payload, cache_hit = build_budget_forecast(organization, months, history_months)
    except Exception as e:
        logger.error(f"Error generating budget forecast for organization {organization.id}: {str(e)}", exc_info=True)
        return Response({'error': 'Failed to generate budget forecast'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    response = Response(payload)
    response['X-Cache'] = 'HIT' if cache_hit else 'MISS'
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def budget_forecast_history(request):
    """Previously stored forecast runs of an organization, most recent first"""
    organization, error = _organization_or_error(request, request.query_params.get('organizationId'))
    if error:
        return error
    try:
        limit = parse_int_param(request.query_params, 'limit', 10, min_value=1, max_value=100)
    except InvalidParameter as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    forecasts = BudgetForecast.objects.filter(
        organization=organization
    ).prefetch_related('categories__category', 'insights').order_by('-created_at')[:limit]
    return Response(BudgetForecastSerializer(forecasts, many=True).data)
