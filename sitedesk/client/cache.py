"""
Last-known-good snapshots of read results.

Used as the opt-in fallback when a read exhausts its retries. Snapshots are
only ever written from successful reads, never from local mutations, so the
cached copy cannot drift ahead of the server.
"""
import logging
import os

from django.conf import settings
from django.core.cache import caches

logger = logging.getLogger(__name__)

SNAPSHOT_NAMES = ('websites', 'records', 'users')


class SnapshotCache:
    def __init__(self, alias='default', prefix='sitedesk:snapshot', ttl=None):
        self.alias = alias
        self.prefix = prefix
        if ttl is None:
            ttl = int(getattr(settings, 'SITEDESK_SNAPSHOT_TTL', os.getenv('SITEDESK_SNAPSHOT_TTL', 86400)))
        self.ttl = ttl

    @property
    def cache(self):
        return caches[self.alias]

    def make_key(self, name, scope):
        return f"{self.prefix}:{scope}:{name}"

    def save(self, name, scope, data):
        self.cache.set(self.make_key(name, scope), data, self.ttl)
        logger.debug(f"Saved {name} snapshot for {scope}")

    def load(self, name, scope):
        data = self.cache.get(self.make_key(name, scope))
        if data is not None:
            logger.info(f"Serving {name} snapshot for {scope}")
        return data

    def clear(self, scope):
        self.cache.delete_many([self.make_key(name, scope) for name in SNAPSHOT_NAMES])
