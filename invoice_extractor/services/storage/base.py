"""
Abstract collaborators for the extraction pipeline.

Defines the interfaces the pipeline depends on, enabling dependency
injection and easy swapping of storage backends.
"""

from abc import ABC, abstractmethod
from typing import Optional


class AttachmentStoreBase(ABC):
    """
    Read access to attachment bytes.

    Implementations can use:
    - In-memory dict (for testing/local runs)
    - Amazon S3 (production)
    """

    @abstractmethod
    def get(self, bucket: str, key: str) -> bytes:
        """
        Fetch an attachment.

        Args:
            bucket: Bucket / container name
            key: Object key

        Returns:
            Raw attachment bytes

        Raises:
            AttachmentFetchError: If the object is missing or not readable
        """
        pass


class InvoiceStateStoreBase(ABC):
    """
    Durable per-attachment state, keyed by {messageId, attachmentKey}.

    Implementations can use:
    - In-memory dict (for testing/local runs)
    - Amazon DynamoDB (production)
    """

    @abstractmethod
    def upsert(self, key: dict, fields: dict) -> None:
        """
        Set the given fields on the item, creating it if needed.

        Writing the same fields twice leaves the item unchanged, so
        redelivered work items can be re-processed safely.

        Args:
            key: {"messageId": ..., "attachmentKey": ...}
            fields: Attribute name -> value
        """
        pass

    @abstractmethod
    def get(self, key: dict) -> Optional[dict]:
        """
        Get an item by key.

        Returns:
            Item dictionary (key attributes included) or None if not found
        """
        pass
