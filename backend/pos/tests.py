"""
Test suite for POS module
Tests: Order creation, listing and filtering
"""
from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.pos.models import Order


class OrderAPITests(TestCase):
    """Test order endpoints"""

    url = '/api/v1/pos/orders/'

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.organization = TestDataFactory.create_organization(members=[self.user])

    def test_create_order_generates_number(self):
        """Test an order number is generated when none is given"""
        data = {
            'organization': self.organization.id,
            'order_date': timezone.now().isoformat(),
            'status': 'completed',
            'final_amount': '450.00',
        }
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['order_number'].startswith('ORD-'))
        self.assertEqual(Order.objects.get().created_by, self.user)

    def test_create_order_negative_amount(self):
        """Test negative final amounts are rejected"""
        data = {
            'organization': self.organization.id,
            'order_date': timezone.now().isoformat(),
            'final_amount': '-1.00',
        }
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_requires_organization(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_orders_filtered_by_status_and_date(self):
        """Test status and date filters"""
        today = timezone.localdate()
        TestDataFactory.create_order(self.organization, 100, today)
        TestDataFactory.create_order(self.organization, 200, today, status='cancelled')
        TestDataFactory.create_order(self.organization, 300, today - timedelta(days=40))

        response = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)

        response = self.client.get(self.url, {'organizationId': self.organization.id, 'status': 'cancelled'})
        self.assertEqual(response.data['count'], 1)

        response = self.client.get(self.url, {
            'organizationId': self.organization.id,
            'date_from': (today - timedelta(days=7)).isoformat(),
        })
        self.assertEqual(response.data['count'], 2)

    def test_list_pagination(self):
        for _ in range(3):
            TestDataFactory.create_order(self.organization)
        response = self.client.get(self.url, {'organizationId': self.organization.id, 'limit': 2})
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['next'], 2)
        self.assertEqual(response.data['total_pages'], 2)

    def test_orders_hidden_from_non_member(self):
        """Test users outside the organization can neither list nor create orders"""
        TestDataFactory.create_order(self.organization, 100)
        outsider = TestDataFactory.create_user()
        self.client.authenticate_user(outsider)

        response = self.client.get(self.url, {'organizationId': self.organization.id})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        data = {
            'organization': self.organization.id,
            'order_date': timezone.now().isoformat(),
            'final_amount': '10.00',
        }
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(Order.objects.count(), 1)

    def test_list_invalid_page(self):
        response = self.client.get(self.url, {'organizationId': self.organization.id, 'page': 'x'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
