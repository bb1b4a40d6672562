import hmac
import os

from django.conf import settings
from rest_framework.permissions import BasePermission


def is_admin_user(user):
    """True for an authenticated profile with the admin role"""
    return bool(user and user.is_authenticated and getattr(user, 'role', None) == 'admin')


class HasPublicApiKey(BasePermission):
    """
    Require the public API key in the X-Api-Key header.

    The check is disabled when SITEDESK_PUBLIC_API_KEY is empty.
    """
    message = 'Missing or invalid API key.'

    def has_permission(self, request, view):
        expected = getattr(settings, 'SITEDESK_PUBLIC_API_KEY', os.getenv('SITEDESK_PUBLIC_API_KEY', ''))
        if not expected:
            return True
        provided = request.headers.get('X-Api-Key', '')
        return hmac.compare_digest(provided, expected)


class IsAdminRole(BasePermission):
    message = 'Admin access required.'

    def has_permission(self, request, view):
        return is_admin_user(request.user)

