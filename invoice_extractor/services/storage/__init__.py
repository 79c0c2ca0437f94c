from .base import AttachmentStoreBase, InvoiceStateStoreBase
from .dynamo import DynamoInvoiceStateStore
from .memory import InMemoryAttachmentStore, InMemoryInvoiceStateStore
from .s3 import S3AttachmentStore

__all__ = [
    "AttachmentStoreBase",
    "InvoiceStateStoreBase",
    "DynamoInvoiceStateStore",
    "InMemoryAttachmentStore",
    "InMemoryInvoiceStateStore",
    "S3AttachmentStore",
]
