"""
Exception taxonomy for the extraction pipeline.

Everything raised inside one work item is caught once, at the pipeline
boundary, and turned into a FAILED record carrying ``str(error)``.
"""

from typing import Optional


class InvoiceExtractorError(Exception):
    """Base class for all pipeline errors"""


class ProviderError(InvoiceExtractorError):
    """The reasoning service call failed (or both primary and fallback failed)"""

    def __init__(self, message: str, model_id: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.model_id = model_id
        self.code = code


class RetryableProviderError(ProviderError):
    """The primary model is known to be unusable; eligible for one fallback attempt"""


class ExtractionParseError(InvoiceExtractorError):
    """Neither the model response nor the repair response contained parseable JSON"""


class ItemProcessingError(InvoiceExtractorError):
    """Any other per-item failure (storage, malformed data)"""


class AttachmentFetchError(ItemProcessingError):
    """The attachment could not be read from the object store"""

    def __init__(self, message: str, bucket: str, key: str):
        super().__init__(message)
        self.bucket = bucket
        self.key = key


class AttachmentTooLargeError(ItemProcessingError):
    """The attachment exceeds MAX_UPLOAD_BYTES"""
