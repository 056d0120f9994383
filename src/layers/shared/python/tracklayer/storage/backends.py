"""Primary key/value backends for the durable store.

A backend stores opaque strings. TTL envelopes, JSON encoding and failure
handling live one level up in ``DurableStore``; backends are free to raise.
"""

import os
import time
from typing import Protocol

import boto3
import structlog

from tracklayer.utils.exceptions import StorageQuotaExceeded

logger = structlog.get_logger()


class KeyValueBackend(Protocol):
    """Per-origin string storage (the localStorage contract)."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self) -> list[str]:
        ...

    def clear(self) -> None:
        ...


class InMemoryBackend:
    """Dict-backed backend.

    ``quota_bytes`` caps the total size of stored keys and values, the way
    browsers cap localStorage; a write past the cap raises
    ``StorageQuotaExceeded`` and leaves the previous value in place.
    """

    def __init__(self, quota_bytes: int | None = None):
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    def _size_with(self, key: str, value: str) -> int:
        size = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
        return size + len(key) + len(value)

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            requested = self._size_with(key, value)
            if requested > self.quota_bytes:
                raise StorageQuotaExceeded(self.quota_bytes, requested)
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()


class DynamoDBBackend:
    """Backend storing each key as one item in a single-table design.

    Items:
        PK: STORE#{namespace}
        SK: KEY#{key}
        value: raw string
        ttl: epoch seconds for DynamoDB TTL cleanup (optional)
    """

    def __init__(
        self,
        namespace: str,
        table_name: str | None = None,
        item_ttl_seconds: int | None = None,
    ):
        """Initialize backend.

        Args:
            namespace: Partition for this origin (e.g. the site host).
            table_name: DynamoDB table name. Defaults to TABLE_NAME env var.
            item_ttl_seconds: If set, items carry a ``ttl`` attribute so the
                table's TTL sweeper removes abandoned keys.
        """
        self.namespace = namespace
        self.table_name = table_name or os.environ.get("TABLE_NAME", "tracklayer-dev")
        self.item_ttl_seconds = item_ttl_seconds
        self._dynamodb = None
        self._table = None

    @property
    def dynamodb(self):
        """Get DynamoDB resource (lazy initialization)."""
        if self._dynamodb is None:
            self._dynamodb = boto3.resource("dynamodb")
        return self._dynamodb

    @property
    def table(self):
        """Get DynamoDB table (lazy initialization)."""
        if self._table is None:
            self._table = self.dynamodb.Table(self.table_name)
        return self._table

    @property
    def _pk(self) -> str:
        return f"STORE#{self.namespace}"

    def _key(self, key: str) -> dict[str, str]:
        return {"PK": self._pk, "SK": f"KEY#{key}"}

    def get(self, key: str) -> str | None:
        response = self.table.get_item(Key=self._key(key))
        item = response.get("Item")
        if not item:
            return None
        return item.get("value")

    def set(self, key: str, value: str) -> None:
        item = {**self._key(key), "value": value}
        if self.item_ttl_seconds:
            item["ttl"] = int(time.time()) + self.item_ttl_seconds
        self.table.put_item(Item=item)

    def delete(self, key: str) -> None:
        self.table.delete_item(Key=self._key(key))

    def keys(self) -> list[str]:
        keys: list[str] = []
        kwargs: dict = {
            "KeyConditionExpression": "PK = :pk AND begins_with(SK, :prefix)",
            "ExpressionAttributeValues": {":pk": self._pk, ":prefix": "KEY#"},
            "ProjectionExpression": "SK",
        }
        while True:
            response = self.table.query(**kwargs)
            keys.extend(item["SK"][len("KEY#"):] for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return keys

    def clear(self) -> None:
        keys = self.keys()
        with self.table.batch_writer() as batch:
            for key in keys:
                batch.delete_item(Key=self._key(key))
        logger.debug("Store namespace cleared", namespace=self.namespace, count=len(keys))
