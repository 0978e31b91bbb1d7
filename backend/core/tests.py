"""
Test suite for Core module
Tests: Authentication, organizations, query parameter parsing and cache helpers
"""
from unittest import mock

from django.core.cache import cache
from django.http import QueryDict
from django.test import TestCase, SimpleTestCase
from rest_framework import status

from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.cache_utils import (
    cache_budget_forecast,
    get_budget_forecast_cache_key,
    get_cached_budget_forecast,
    get_expenses_list_cache_key,
    invalidate_budget_forecast_cache,
    invalidate_cache_pattern,
    invalidate_expenses_cache,
    make_cache_key,
)
from backend.core.models import Organization
from backend.core.utils import InvalidParameter, get_organization, parse_int_param


class ParseIntParamTests(SimpleTestCase):
    """Test integer query parameter parsing"""

    def test_default_when_missing(self):
        """Test absent and blank parameters fall back to the default"""
        self.assertEqual(parse_int_param(QueryDict(''), 'months', 3), 3)
        self.assertEqual(parse_int_param(QueryDict('months='), 'months', 3), 3)

    def test_parses_integer(self):
        """Test a valid integer is returned"""
        self.assertEqual(parse_int_param(QueryDict('months=12'), 'months', 3), 12)

    def test_clamps_to_bounds(self):
        """Test out-of-range values are clamped"""
        params = QueryDict('months=500&history=-4')
        self.assertEqual(parse_int_param(params, 'months', 3, min_value=1, max_value=36), 36)
        self.assertEqual(parse_int_param(params, 'history', 6, min_value=1, max_value=36), 1)

    def test_rejects_non_integer(self):
        """Test non-integer values raise InvalidParameter"""
        with self.assertRaises(InvalidParameter) as ctx:
            parse_int_param(QueryDict('months=three'), 'months', 3)
        self.assertEqual(ctx.exception.name, 'months')
        self.assertIn('months', str(ctx.exception))

    def test_rejects_decimal(self):
        """Test fractional values are not silently truncated"""
        with self.assertRaises(InvalidParameter):
            parse_int_param({'months': '2.5'}, 'months', 3)


class OrganizationLookupTests(TestCase):
    """Test tenant lookup"""

    def test_get_active_organization(self):
        organization = TestDataFactory.create_organization()
        self.assertEqual(get_organization(str(organization.id)), organization)

    def test_inactive_or_unknown_organization(self):
        """Test inactive, unknown and malformed ids return None"""
        organization = TestDataFactory.create_organization()
        Organization.objects.filter(pk=organization.pk).update(is_active=False)
        self.assertIsNone(get_organization(organization.id))
        self.assertIsNone(get_organization(999999))
        self.assertIsNone(get_organization('abc'))

    def test_membership_is_required_for_users(self):
        """Test non-members do not see an organization while members and staff do"""
        member = TestDataFactory.create_user()
        outsider = TestDataFactory.create_user()
        staff = TestDataFactory.create_user(is_staff=True)
        organization = TestDataFactory.create_organization(members=[member])
        self.assertEqual(get_organization(organization.id, user=member), organization)
        self.assertIsNone(get_organization(organization.id, user=outsider))
        self.assertEqual(get_organization(organization.id, user=staff), organization)


class CacheUtilsTests(SimpleTestCase):
    """Test cache key helpers and pattern invalidation"""

    def setUp(self):
        cache.clear()

    def test_make_cache_key_is_stable(self):
        """Test keyword order does not change the key"""
        first = make_cache_key('expenses:1', page=1, limit=10)
        second = make_cache_key('expenses:1', limit=10, page=1)
        self.assertEqual(first, second)
        self.assertTrue(first.startswith('expenses:1:'))
        self.assertNotEqual(first, make_cache_key('expenses:1', page=2, limit=10))

    def test_budget_forecast_cache_key(self):
        self.assertEqual(get_budget_forecast_cache_key(7, 3, 6), 'budget:forecast:7:3:6')

    def test_expenses_key_is_scoped_to_organization(self):
        self.assertTrue(get_expenses_list_cache_key(4, page=1).startswith('expenses:4:'))

    def test_invalidate_expenses_cache_changes_listing_keys(self):
        """Test listing keys move to a new version without relying on SCAN"""
        with mock.patch('backend.core.cache_utils.invalidate_cache_pattern'):
            before = get_expenses_list_cache_key(3, page=1, limit=10)
            cache.set(before, {'expenses': []})
            invalidate_expenses_cache(3)
            after = get_expenses_list_cache_key(3, page=1, limit=10)
            invalidate_expenses_cache(3)
            latest = get_expenses_list_cache_key(3, page=1, limit=10)
        self.assertNotEqual(before, after)
        self.assertNotEqual(after, latest)
        self.assertIsNone(cache.get(after))
        self.assertEqual(get_expenses_list_cache_key(4, page=1, limit=10),
                         get_expenses_list_cache_key(4, limit=10, page=1))

    def test_cache_round_trip(self):
        """Test a cached forecast payload is returned with its key"""
        payload = {'history': [], 'forecasts': [], 'metrics': {}, 'insights': []}
        cache_budget_forecast(get_budget_forecast_cache_key(1, 3, 6), payload)
        cached, key = get_cached_budget_forecast(1, 3, 6)
        self.assertEqual(cached, payload)
        self.assertEqual(key, 'budget:forecast:1:3:6')
        self.assertIsNone(get_cached_budget_forecast(1, 4, 6)[0])

    def test_invalidate_cache_pattern_scans_and_deletes(self):
        """Test matching keys are collected across SCAN pages and deleted"""
        redis_conn = mock.Mock()
        redis_conn.scan.side_effect = [(5, [b'k1']), (0, [b'k2'])]
        with mock.patch('django_redis.get_redis_connection', return_value=redis_conn):
            invalidate_cache_pattern('budget:forecast:1:')
        redis_conn.scan.assert_called_with(5, match='*budget:forecast:1:*', count=100)
        redis_conn.delete.assert_called_once_with(b'k1', b'k2')

    def test_invalidate_cache_pattern_never_raises(self):
        """Test a cache backend without SCAN only logs a warning"""
        with mock.patch('django_redis.get_redis_connection', side_effect=NotImplementedError('no redis')):
            with self.assertLogs('backend.core.cache_utils', level='WARNING'):
                invalidate_cache_pattern('expenses:1:')

    def test_invalidate_budget_forecast_cache_uses_organization_prefix(self):
        with mock.patch('backend.core.cache_utils.invalidate_cache_pattern') as pattern_mock:
            invalidate_budget_forecast_cache(12)
        pattern_mock.assert_called_once_with('budget:forecast:12:')


class AuthAPITests(TestCase):
    """Test authentication endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user(username='owner', password='secret-pass-1')
        self.organization = TestDataFactory.create_organization(name='Acme', members=[self.user])

    def test_login_returns_tokens(self):
        """Test login with valid credentials"""
        response = self.client.post('/api/v1/auth/login/', {'username': 'owner', 'password': 'secret-pass-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_login_with_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'owner', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_token(self):
        """Test a refresh token yields a new access token"""
        login = self.client.post('/api/v1/auth/login/', {'username': 'owner', 'password': 'secret-pass-1'}, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_me_lists_organizations(self):
        """Test current user endpoint includes memberships"""
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'owner')
        self.assertEqual([org['name'] for org in response.data['organizations']], ['Acme'])

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class OrganizationAPITests(TestCase):
    """Test organization endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_list_only_own_organizations(self):
        """Test non-staff users only see organizations they belong to"""
        TestDataFactory.create_organization(name='Mine', members=[self.user])
        TestDataFactory.create_organization(name='Theirs')
        response = self.client.get('/api/v1/organizations/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([org['name'] for org in response.data], ['Mine'])

    def test_create_organization_adds_creator(self):
        """Test the creator becomes a member"""
        response = self.client.post('/api/v1/organizations/', {'name': 'New Shop', 'slug': 'new-shop'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        organization = Organization.objects.get(slug='new-shop')
        self.assertTrue(organization.members.filter(pk=self.user.pk).exists())

    def test_duplicate_slug_rejected(self):
        TestDataFactory.create_organization(slug='taken')
        response = self.client.post('/api/v1/organizations/', {'name': 'Other', 'slug': 'taken'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
