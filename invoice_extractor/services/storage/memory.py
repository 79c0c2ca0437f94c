"""
In-memory collaborators (for local runs and tests).
In production, use S3AttachmentStore and DynamoInvoiceStateStore.
"""
import copy
from typing import Dict, Optional, Tuple

from ...core.errors import AttachmentFetchError
from .base import AttachmentStoreBase, InvoiceStateStoreBase


class InMemoryAttachmentStore(AttachmentStoreBase):
    def __init__(self):
        self._objects: Dict[Tuple[str, str], bytes] = {}

    def put(self, bucket: str, key: str, data: bytes) -> None:
        """Store an attachment"""
        self._objects[(bucket, key)] = data

    def get(self, bucket: str, key: str) -> bytes:
        """Fetch an attachment"""
        try:
            return self._objects[(bucket, key)]
        except KeyError:
            raise AttachmentFetchError(f"Attachment not found: s3://{bucket}/{key}", bucket=bucket, key=key)


class InMemoryInvoiceStateStore(InvoiceStateStoreBase):
    def __init__(self):
        self._items: Dict[Tuple[str, str], dict] = {}

    @staticmethod
    def _item_id(key: dict) -> Tuple[str, str]:
        return key["messageId"], key["attachmentKey"]

    def upsert(self, key: dict, fields: dict) -> None:
        """Merge fields into the item (SET semantics)"""
        item = self._items.setdefault(self._item_id(key), dict(key))
        item.update(copy.deepcopy(fields))

    def get(self, key: dict) -> Optional[dict]:
        """Get item by key"""
        item = self._items.get(self._item_id(key))
        return copy.deepcopy(item) if item is not None else None

    def list_all(self) -> list:
        """List all items (for debugging)"""
        return [copy.deepcopy(item) for item in self._items.values()]
