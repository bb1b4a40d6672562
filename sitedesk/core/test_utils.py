"""
Test utilities and factories for creating test data
"""
import random
import string
from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from sitedesk.websites.models import Website, ManagementRecord

User = get_user_model()

DEFAULT_PASSWORD = 'testpass123'


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))

    @staticmethod
    def random_phone():
        return '+601' + ''.join(random.choices(string.digits, k=8))

    @staticmethod
    def create_user(email=None, password=DEFAULT_PASSWORD, name=None, phone=None, **extra):
        """Create a test user"""
        if not email:
            email = f'user_{TestDataFactory.random_string(6)}@test.com'
        return User.objects.create_user(
            email=email,
            password=password,
            name=name or email.split('@')[0],
            phone=phone or TestDataFactory.random_phone(),
            **extra
        )

    @staticmethod
    def create_admin(email=None, password=DEFAULT_PASSWORD, **extra):
        """Create the (single) admin profile"""
        if not email:
            email = f'admin_{TestDataFactory.random_string(6)}@test.com'
        return TestDataFactory.create_user(
            email=email, password=password, role=User.ROLE_ADMIN, is_staff=True, **extra
        )

    @staticmethod
    def create_website(user, name=None, type='website', url=None, status=Website.STATUS_PENDING, **extra):
        """Create a test submission owned by user"""
        if not name:
            name = f'Site {TestDataFactory.random_string(6)}'
        if url is None:
            url = 'N/A' if type in ('id-card', 'bank-statement', 'document') else f'https://{TestDataFactory.random_string(8)}.example.com'
        return Website.objects.create(
            user=user,
            user_email=user.email,
            name=name,
            type=type,
            url=url,
            status=status,
            **extra
        )

    @staticmethod
    def create_record(website, day='1', credit=Decimal('100.00'), profit=Decimal('20.00'),
                      gross_profit=Decimal('25.00'), service_fee=Decimal('5.00'), **extra):
        """Create a management record against website"""
        extra.setdefault('net_profit', gross_profit - service_fee)
        extra.setdefault('start_date', date(2024, 1, 1))
        extra.setdefault('end_date', date(2024, 1, 31))
        return ManagementRecord.objects.create(
            website=website,
            day=day,
            credit=credit,
            profit=profit,
            gross_profit=gross_profit,
            service_fee=service_fee,
            **extra
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
