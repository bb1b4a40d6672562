"""
Input normalization and validation for identity data.

These helpers are shared by the API serializers and by ``sitedesk.client`` so
that malformed input is rejected before any network call is made.
"""
import os
import re

from django.conf import settings

PHONE_PATTERN = re.compile(r'^\+60[1-9]')

PHONE_ERROR = 'Phone number must start with +60 followed by a digit from 1-9'


def get_email_domain():
    return getattr(settings, 'SITEDESK_EMAIL_DOMAIN', os.getenv('SITEDESK_EMAIL_DOMAIN', 'aibet.asia'))


def normalize_identifier(identifier: str) -> str:
    """
    Turn a login identifier into an email address.

    Identifiers without an "@" are short account names and get the platform
    domain appended, e.g. ``alice`` -> ``alice@aibet.asia``.
    """
    identifier = (identifier or '').strip()
    if identifier and '@' not in identifier:
        return f"{identifier}@{get_email_domain()}"
    return identifier


def is_valid_phone(phone: str) -> bool:
    """Malaysian numbers only: ``+60`` followed by a non-zero digit"""
    return bool(phone) and PHONE_PATTERN.match(phone) is not None
