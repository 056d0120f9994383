"""Durable keyed storage: primary backends plus the cookie mirror."""

from tracklayer.storage.backends import DynamoDBBackend, InMemoryBackend, KeyValueBackend
from tracklayer.storage.cookies import CookieJar
from tracklayer.storage.durable import KEY_PREFIX, DurableStore, StoredItem

__all__ = [
    "CookieJar",
    "DurableStore",
    "DynamoDBBackend",
    "InMemoryBackend",
    "KEY_PREFIX",
    "KeyValueBackend",
    "StoredItem",
]
