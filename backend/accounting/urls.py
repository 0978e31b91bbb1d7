from django.urls import path
from . import views

urlpatterns = [
    path('accounting/expense-categories/', views.expense_category_list_create, name='expense-category-list-create'),
    path('accounting/expenses/', views.expense_list_create, name='expense-list-create'),
    path('accounting/budgets/forecast/', views.budget_forecast, name='budget-forecast'),
    path('accounting/budgets/forecasts/', views.budget_forecast_history, name='budget-forecast-history'),
]
