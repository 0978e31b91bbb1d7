"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.core.models import Organization
from backend.accounting.models import ExpenseCategory, Expense
from backend.pos.models import Order
from decimal import Decimal
from django.utils import timezone
from datetime import datetime, time
import random
import string
import uuid

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def aware_datetime(value):
        """Noon of a date (or a datetime) as an aware datetime in the current timezone"""
        if not isinstance(value, datetime):
            value = datetime.combine(value, time(12, 0))
        if timezone.is_naive(value):
            value = timezone.make_aware(value)
        return value

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        return user

    @staticmethod
    def create_organization(name=None, slug=None, members=None):
        """Create a test organization"""
        if not name:
            name = f'Org_{TestDataFactory.random_string(6)}'
        if not slug:
            slug = f'org-{TestDataFactory.random_string(8).lower()}'
        organization = Organization.objects.create(name=name, slug=slug)
        if members:
            organization.members.add(*members)
        return organization

    @staticmethod
    def create_expense_category(organization, name=None, description=None, is_active=True):
        """Create a test expense category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return ExpenseCategory.objects.create(
            organization=organization,
            name=name,
            description=description or f'Test category {name}',
            is_active=is_active
        )

    @staticmethod
    def create_expense(organization, category, amount=None, expense_date=None, description=None, user=None):
        """Create a test expense"""
        if amount is None:
            amount = Decimal('100.00')
        if expense_date is None:
            expense_date = timezone.localdate()
        return Expense.objects.create(
            organization=organization,
            category=category,
            amount=Decimal(str(amount)),
            description=description or f'Expense {TestDataFactory.random_string(6)}',
            payment_method='cash',
            expense_date=TestDataFactory.aware_datetime(expense_date),
            created_by=user
        )

    @staticmethod
    def create_order(organization, final_amount=None, order_date=None, status='completed', user=None):
        """Create a test sales order"""
        if final_amount is None:
            final_amount = Decimal('150.00')
        if order_date is None:
            order_date = timezone.localdate()
        order_number = f"ORD-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
        while Order.objects.filter(order_number=order_number).exists():
            order_number = f"ORD-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
        return Order.objects.create(
            organization=organization,
            order_number=order_number,
            order_date=TestDataFactory.aware_datetime(order_date),
            status=status,
            final_amount=Decimal(str(final_amount)),
            created_by=user
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
