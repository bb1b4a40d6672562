"""
Test suite for identity and user administration
Tests: phone/identifier validation, signup, login portals, the single admin rule,
logout, API key gate and admin user management
"""
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from sitedesk.core.models import User
from sitedesk.core.test_utils import TestDataFactory, AuthenticatedAPIClient, DEFAULT_PASSWORD
from sitedesk.core.validators import is_valid_phone, normalize_identifier


class ValidatorTests(TestCase):
    """Test identity input validation"""

    def test_phone_rejects_incomplete_numbers(self):
        for phone in ['+60', '+600', '+6', '', None, '0123456789', '+65123456789']:
            self.assertFalse(is_valid_phone(phone), phone)

    def test_phone_accepts_malaysian_number(self):
        self.assertTrue(is_valid_phone('+60123456789'))

    def test_identifier_without_at_gets_domain(self):
        self.assertEqual(normalize_identifier('alice'), 'alice@aibet.asia')
        self.assertEqual(normalize_identifier('  alice '), 'alice@aibet.asia')

    def test_identifier_with_at_is_kept(self):
        self.assertEqual(normalize_identifier('alice@example.com'), 'alice@example.com')

    @override_settings(SITEDESK_EMAIL_DOMAIN='example.org')
    def test_identifier_domain_from_settings(self):
        self.assertEqual(normalize_identifier('bob'), 'bob@example.org')


class UserModelTests(TestCase):
    """Test profile model rules"""

    def test_status_drives_is_active(self):
        user = TestDataFactory.create_user()
        self.assertTrue(user.is_active)
        user.status = User.STATUS_INACTIVE
        user.save()
        user.refresh_from_db()
        self.assertFalse(user.is_active)

    def test_database_allows_one_admin(self):
        TestDataFactory.create_admin()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                TestDataFactory.create_admin()
        self.assertEqual(User.objects.filter(role=User.ROLE_ADMIN).count(), 1)

    def test_admin_exists(self):
        self.assertFalse(User.objects.admin_exists())
        TestDataFactory.create_admin()
        self.assertTrue(User.objects.admin_exists())


class SignupAPITests(TestCase):
    """Test account creation"""

    def setUp(self):
        self.client = APIClient()

    def signup(self, **overrides):
        data = {
            'email': 'alice@test.com',
            'password': 'secret123',
            'phone': '+60123456789',
            'name': 'Alice',
        }
        data.update(overrides)
        return self.client.post('/api/v1/auth/signup/', data, format='json')

    def test_signup_returns_profile_and_tokens(self):
        response = self.signup()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['user']['email'], 'alice@test.com')
        self.assertEqual(response.data['user']['role'], 'user')
        self.assertEqual(response.data['user']['ranking'], 'customer')
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_signup_then_login_round_trip(self):
        self.signup()
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'alice@test.com', 'password': 'secret123', 'as_admin': False
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['email'], 'alice@test.com')

    def test_signup_short_identifier(self):
        response = self.signup(email='alice')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(User.objects.filter(email='alice@aibet.asia').exists())

    def test_signup_invalid_phone(self):
        for phone in ['+60', '+600', '+6', '']:
            response = self.signup(phone=phone)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, phone)
            self.assertIn('phone', response.data)
        self.assertFalse(User.objects.exists())

    def test_signup_duplicate_email(self):
        TestDataFactory.create_user(email='alice@test.com')
        response = self.signup()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_signup_duplicate_phone(self):
        TestDataFactory.create_user(phone='+60123456789')
        response = self.signup()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data)

    def test_signup_short_password(self):
        response = self.signup(password='123')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_second_admin_signup_rejected(self):
        first = self.signup(email='boss@test.com', as_admin=True)
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(first.data['user']['role'], 'admin')

        second = self.signup(email='other@test.com', phone='+60198765432', as_admin=True)
        self.assertEqual(second.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('as_admin', second.data)
        self.assertEqual(User.objects.filter(role=User.ROLE_ADMIN).count(), 1)
        self.assertFalse(User.objects.filter(email='other@test.com').exists())

    def test_signup_unknown_field(self):
        response = self.signup(role='admin')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('role', response.data)
        self.assertFalse(User.objects.exists())

    def test_admin_exists_endpoint(self):
        response = self.client.get('/api/v1/auth/admin-exists/')
        self.assertEqual(response.data, {'admin_exists': False})
        TestDataFactory.create_admin()
        response = self.client.get('/api/v1/auth/admin-exists/')
        self.assertEqual(response.data, {'admin_exists': True})


class LoginAPITests(TestCase):
    """Test login through the user and admin portals"""

    def setUp(self):
        self.client = APIClient()
        self.user = TestDataFactory.create_user(email='carol@aibet.asia')
        self.admin = TestDataFactory.create_admin(email='boss@test.com')

    def login(self, email, as_admin=False, password=DEFAULT_PASSWORD):
        return self.client.post('/api/v1/auth/login/', {
            'email': email, 'password': password, 'as_admin': as_admin
        }, format='json')

    def test_user_login(self):
        response = self.login('carol@aibet.asia')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['id'], self.user.id)

    def test_login_with_account_name(self):
        response = self.login('carol')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_admin_login(self):
        response = self.login('boss@test.com', as_admin=True)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['role'], 'admin')

    def test_user_cannot_use_admin_portal(self):
        response = self.login('carol@aibet.asia', as_admin=True)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_admin_must_use_admin_portal(self):
        response = self.login('boss@test.com', as_admin=False)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_wrong_password(self):
        response = self.login('carol@aibet.asia', password='wrong-password')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_inactive_user_cannot_login(self):
        self.user.status = User.STATUS_INACTIVE
        self.user.save()
        response = self.login('carol@aibet.asia')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_is_idempotent(self):
        refresh = self.login('carol@aibet.asia').data['refresh']
        for _ in range(2):
            response = self.client.post('/api/v1/auth/logout/', {'refresh': refresh}, format='json')
            self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

        response = self.client.post('/api/v1/auth/refresh/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ProfileAPITests(TestCase):
    """Test the signed-in user's own endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_me(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], self.user.email)

    def test_me_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_change_password(self):
        response = self.client.post('/api/v1/auth/change-password/', {
            'current_password': DEFAULT_PASSWORD, 'new_password': 'brandnew456'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('brandnew456'))

    def test_change_password_wrong_current(self):
        response = self.client.post('/api/v1/auth/change-password/', {
            'current_password': 'nope-nope', 'new_password': 'brandnew456'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('current_password', response.data)

    @override_settings(SITEDESK_PUBLIC_API_KEY='public-key')
    def test_api_key_required_when_configured(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.get('/api/v1/auth/me/', HTTP_X_API_KEY='public-key')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class UserAdminAPITests(TestCase):
    """Test admin-only user management"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_list_users(self):
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({item['id'] for item in response.data}, {self.user.id, self.admin.id})

    def test_list_users_requires_admin(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_update_user(self):
        response = self.client.patch(f'/api/v1/users/{self.user.id}/', {
            'name': 'Renamed', 'email': 'renamed', 'ranking': 'master'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'renamed@aibet.asia')
        self.assertEqual(response.data['ranking'], 'master')

    def test_update_user_password(self):
        response = self.client.patch(f'/api/v1/users/{self.user.id}/', {
            'new_password': 'reset-789'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('reset-789'))

    def test_update_user_unknown_field(self):
        response = self.client.patch(f'/api/v1/users/{self.user.id}/', {'is_superuser': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('is_superuser', response.data)

    def test_promote_second_admin_rejected(self):
        response = self.client.patch(f'/api/v1/users/{self.user.id}/', {'role': 'admin'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.user.refresh_from_db()
        self.assertEqual(self.user.role, User.ROLE_USER)

    def test_admin_cannot_demote_self(self):
        response = self.client.patch(f'/api/v1/users/{self.admin.id}/', {'role': 'user'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('role', response.data)
        self.admin.refresh_from_db()
        self.assertEqual(self.admin.role, User.ROLE_ADMIN)
        response = self.client.get('/api/v1/auth/admin-exists/')
        self.assertEqual(response.data, {'admin_exists': True})

    def test_admin_role_kept_on_edit(self):
        response = self.client.patch(f'/api/v1/users/{self.admin.id}/', {'role': 'admin', 'name': 'Boss'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'Boss')

    def test_update_duplicate_phone(self):
        response = self.client.patch(f'/api/v1/users/{self.user.id}/', {'phone': self.admin.phone}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_deactivate_user(self):
        response = self.client.patch(f'/api/v1/users/{self.user.id}/status/', {'status': 'inactive'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.status, User.STATUS_INACTIVE)
        self.assertFalse(self.user.is_active)

    def test_invalid_status(self):
        response = self.client.patch(f'/api/v1/users/{self.user.id}/status/', {'status': 'banned'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_user(self):
        response = self.client.delete(f'/api/v1/users/{self.user.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(User.objects.filter(pk=self.user.id).exists())

    def test_admin_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_user(self):
        response = self.client.get('/api/v1/users/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class CreateAdminCommandTests(TestCase):
    """Test the create_admin bootstrap command"""

    def test_creates_admin(self):
        out = StringIO()
        call_command('create_admin', 'boss', '--password', 'secret123', '--phone', '+60123456789', stdout=out)
        admin = User.objects.get(email='boss@aibet.asia')
        self.assertEqual(admin.role, User.ROLE_ADMIN)
        self.assertIn('boss@aibet.asia', out.getvalue())

    def test_refuses_second_admin(self):
        TestDataFactory.create_admin()
        with self.assertRaises(CommandError):
            call_command('create_admin', 'boss', '--password', 'secret123', '--phone', '+60123456789')

    def test_rejects_bad_phone(self):
        with self.assertRaises(CommandError):
            call_command('create_admin', 'boss', '--password', 'secret123', '--phone', '+600')
