from ..models.invoice import DocumentPayload, MediaType

# Suffix -> media type. Anything else is treated as a scanned PDF.
_SUFFIX_MEDIA_TYPES = (
    (".pdf", MediaType.PDF),
    (".png", MediaType.PNG),
    (".jpg", MediaType.JPEG),
    (".jpeg", MediaType.JPEG),
)


def prepare_document(key: str, data: bytes) -> DocumentPayload:
    """Classify an attachment by its key's extension (case-insensitive)"""
    lower = (key or "").lower()
    for suffix, media_type in _SUFFIX_MEDIA_TYPES:
        if lower.endswith(suffix):
            return DocumentPayload(media_type=media_type, data=data)
    return DocumentPayload(media_type=MediaType.PDF, data=data)
