"""Normalization shared by the API and sitedesk.client"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

NO_URL = 'N/A'

CENT = Decimal('0.01')
AMOUNT_LIMIT = Decimal('1000000000000')
AMOUNT_LIMIT_ERROR = 'Amount must be between -999,999,999,999.99 and 999,999,999,999.99'

# Submissions that are uploads only and carry no URL
DOCUMENT_TYPES = ('id-card', 'bank-statement', 'document')


def format_url(url, submission_type='website'):
    """
    Prefix bare hosts with https://.

    ``shop.example.com`` -> ``https://shop.example.com``; document uploads and
    the ``N/A`` placeholder are stored as ``N/A``.
    """
    url = (url or '').strip()
    if submission_type in DOCUMENT_TYPES or not url or url == NO_URL:
        return NO_URL
    if not url.startswith('http://') and not url.startswith('https://'):
        url = 'https://' + url
    return url


def coerce_amount(value):
    """
    Money input as Decimal rounded half-up to cents.

    Absent or unparseable input counts as 0; see ``amount_in_range`` for
    the stored magnitude limit.
    """
    if value is None or isinstance(value, bool):
        return Decimal('0')
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not amount.is_finite():
        return Decimal('0')
    if not amount_in_range(amount):
        return amount
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def amount_in_range(amount):
    """Whether a coerced amount fits the 14-digit, 2-place money columns"""
    return abs(amount) < AMOUNT_LIMIT
