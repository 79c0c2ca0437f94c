"""
Amazon S3 attachment store.
"""

from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from ...core.errors import AttachmentFetchError
from .base import AttachmentStoreBase

_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound"}
_ACCESS_DENIED_CODES = {"AccessDenied", "403", "Forbidden"}


class S3AttachmentStore(AttachmentStoreBase):
    """
    Reads attachment bytes from S3.

    Usage:
        store = S3AttachmentStore(region="eu-west-1")
        data = store.get("invoice-attachments", "attachments/msg-1/att-1_invoice.pdf")
    """

    def __init__(self, client: Optional[object] = None, region: Optional[str] = None):
        """
        Args:
            client: boto3 S3 client (created lazily when None)
            region: AWS region for the lazily created client
        """
        self._client = client
        self.region = region

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def get(self, bucket: str, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            data = response["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _NOT_FOUND_CODES:
                message = f"Attachment not found: s3://{bucket}/{key}"
            elif code in _ACCESS_DENIED_CODES:
                message = f"Access denied reading attachment: s3://{bucket}/{key}"
            else:
                message = f"Failed to read attachment s3://{bucket}/{key}: {exc}"
            raise AttachmentFetchError(message, bucket=bucket, key=key) from exc
        except BotoCoreError as exc:
            raise AttachmentFetchError(
                f"Failed to read attachment s3://{bucket}/{key}: {exc}", bucket=bucket, key=key
            ) from exc

        logger.debug("Fetched attachment", bucket=bucket, key=key, size_bytes=len(data))
        return data
