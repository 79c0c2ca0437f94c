"""
Data model for work items, model calls and the canonical invoice record.

Attributes are snake_case; the persisted JSON uses camelCase aliases
(``invoiceNumber``, ``taxId``...), so always dump with ``by_alias=True``.
"""

import base64
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ItemStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class WorkItem(CamelModel):
    """One attachment to extract, as enqueued by the ingester"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    message_id: str
    attachment_id: str
    attachment_key: str
    received_at: str
    sender: str = Field(default="", alias="from")
    subject: str = ""

    def state_key(self) -> Dict[str, str]:
        """Primary key of the item in the state store"""
        return {"messageId": self.message_id, "attachmentKey": self.attachment_key}


class MediaType(str, Enum):
    PDF = "application/pdf"
    PNG = "image/png"
    JPEG = "image/jpeg"


class DocumentPayload(BaseModel):
    media_type: MediaType
    data: bytes

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class ModelResponse(BaseModel):
    text: str = ""
    model_id: str


class Vendor(CamelModel):
    name: Optional[str] = None
    tax_id: Optional[str] = None
    address: Union[str, Dict[str, Any], None] = None
    site: Optional[str] = None


class InvoiceHeader(CamelModel):
    invoice_number: Optional[str] = None
    purchase_order_number: Optional[str] = None
    invoice_type: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    currency: Optional[str] = None
    total_amount: Optional[float] = None
    tax_amount: Optional[float] = None
    payment_terms: Optional[str] = None
    description: Optional[str] = None


class LineItem(CamelModel):
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    amount: Optional[float] = None
    line_number: Optional[int] = None
    tax_amount: Optional[float] = None
    account: Optional[str] = None
    cost_center: Optional[str] = None
    department: Optional[str] = None


class InvoiceMeta(CamelModel):
    message_id: str
    received_at: str
    sender: str = Field(default="", alias="from")
    subject: str = ""
    attachment_key: str
    extraction_model: str
    confidence_score: float = 0.0
    warnings: List[str] = Field(default_factory=list)
    extracted_text_snippet: str = ""


class CanonicalInvoice(CamelModel):
    vendor: Vendor = Field(default_factory=Vendor)
    invoice: InvoiceHeader = Field(default_factory=InvoiceHeader)
    line_items: List[LineItem] = Field(default_factory=list)
    meta: Optional[InvoiceMeta] = None

    def to_record(self) -> dict:
        """JSON-compatible dict in the persisted (camelCase) shape"""
        return self.model_dump(mode="json", by_alias=True)


class WarningKind(str, Enum):
    CORRECTION = "correction"          # A business rule rewrote a field
    RECONCILIATION = "reconciliation"  # Raw extraction was internally inconsistent


RECONCILED_PREFIX = "reconciled_"


class ExtractionWarning(BaseModel):
    code: str
    detail: Optional[str] = None
    kind: WarningKind = WarningKind.CORRECTION


class WarningLog:
    """
    Ordered, append-only log of warnings raised while processing one invoice.

    Codes starting with ``reconciled_`` are recorded as reconciliation
    warnings unless a kind is given explicitly.
    """

    def __init__(self, warnings: Optional[List[ExtractionWarning]] = None):
        self._entries: List[ExtractionWarning] = list(warnings or [])

    def add(self, code: str, detail: Optional[str] = None, kind: Optional[WarningKind] = None) -> ExtractionWarning:
        if kind is None:
            kind = WarningKind.RECONCILIATION if code.startswith(RECONCILED_PREFIX) else WarningKind.CORRECTION
        warning = ExtractionWarning(code=code, detail=detail, kind=kind)
        self._entries.append(warning)
        return warning

    @classmethod
    def from_codes(cls, codes: List[str]) -> "WarningLog":
        log = cls()
        for code in codes:
            log.add(str(code))
        return log

    def codes(self) -> List[str]:
        """Distinct codes in first-seen order (the persisted form)"""
        return list(dict.fromkeys(w.code for w in self._entries))

    def has_reconciliation(self) -> bool:
        return any(w.kind == WarningKind.RECONCILIATION for w in self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, code: object) -> bool:
        return any(w.code == code for w in self._entries)
