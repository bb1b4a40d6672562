"""
Retry combinator for read paths.

Only ``network`` failures are retried; an ``auth`` or ``validation`` error
comes back on the first attempt. Writes are never wrapped so a timed-out
insert cannot be applied twice.
"""
import logging
import os
import time
from functools import wraps

from django.conf import settings

from .result import ErrorKind

logger = logging.getLogger(__name__)


def get_retry_policy():
    """(max_retries, base_delay) from settings"""
    max_retries = int(getattr(settings, 'SITEDESK_FETCH_MAX_RETRIES', os.getenv('SITEDESK_FETCH_MAX_RETRIES', 3)))
    base_delay = float(getattr(settings, 'SITEDESK_FETCH_BASE_DELAY', os.getenv('SITEDESK_FETCH_BASE_DELAY', 1.0)))
    return max_retries, base_delay


def backoff_schedule(max_retries, base_delay):
    """Delays before each retry: 1s, 2s, 4s with the defaults"""
    return [base_delay * (2 ** attempt) for attempt in range(max_retries)]


def retry(max_retries=None, base_delay=None):
    """
    Decorator retrying a Result-returning call on transient failures

    Usage:
        @retry(max_retries=3, base_delay=1.0)
        def load_websites(self):
            return self.transport.get('websites/')
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            default_retries, default_delay = get_retry_policy()
            schedule = backoff_schedule(
                default_retries if max_retries is None else max_retries,
                default_delay if base_delay is None else base_delay,
            )

            result = func(*args, **kwargs)
            for attempt, delay in enumerate(schedule, start=1):
                if result or result.error.kind != ErrorKind.NETWORK:
                    break
                logger.warning(
                    f"{func.__name__} failed ({result.error.message}), "
                    f"retry {attempt}/{len(schedule)} in {delay:g}s"
                )
                time.sleep(delay)
                result = func(*args, **kwargs)
            return result
        return wrapper
    return decorator
