"""
Maps whatever JSON the model produced onto the canonical invoice shape.

Models return either the requested nested layout (``vendor`` and ``invoice``
objects) or a flat object using assorted field names. The layout is decided
once by ``classify_extraction`` and each layout has its own synonym table,
tried in order; the first key whose value is not null wins.
"""

import math
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from ..models.invoice import CanonicalInvoice, InvoiceHeader, LineItem, Vendor

SynonymTable = Dict[str, Tuple[str, ...]]

# Nested layout: only the PO number and type have known aliases
STRUCTURED_VENDOR_FIELDS: SynonymTable = {
    "name": ("name",),
    "tax_id": ("taxId",),
    "address": ("address",),
    "site": ("site",),
}
STRUCTURED_INVOICE_TEXT_FIELDS: SynonymTable = {
    "invoice_number": ("invoiceNumber",),
    "purchase_order_number": ("purchaseOrderNumber", "poNumber", "po", "purchaseOrder"),
    "invoice_type": ("invoiceType", "type"),
    "invoice_date": ("invoiceDate",),
    "due_date": ("dueDate",),
    "currency": ("currency",),
    "payment_terms": ("paymentTerms",),
    "description": ("description",),
}
STRUCTURED_INVOICE_AMOUNT_FIELDS: SynonymTable = {
    "total_amount": ("totalAmount",),
    "tax_amount": ("taxAmount",),
}
STRUCTURED_LINE_ITEM_KEYS = ("lineItems",)

# Flat layout
FLAT_VENDOR_FIELDS: SynonymTable = {
    "name": ("vendorName", "vendor_name", "supplierName", "name"),
    "tax_id": ("taxId", "vatNumber", "vat"),
    "address": ("vendorAddress", "address"),
}
FLAT_INVOICE_TEXT_FIELDS: SynonymTable = {
    "invoice_number": ("invoiceNumber", "invoice_number", "number"),
    "purchase_order_number": (
        "purchaseOrderNumber", "poNumber", "po_number", "po", "purchaseOrder", "purchase_order",
    ),
    "invoice_type": ("invoiceType", "invoice_type", "type"),
    "invoice_date": ("invoiceDate", "invoice_date", "date"),
    "due_date": ("dueDate", "due_date"),
    "currency": ("currency",),
    "payment_terms": ("paymentTerms", "payment_terms"),
}
FLAT_INVOICE_AMOUNT_FIELDS: SynonymTable = {
    "total_amount": ("totalAmount", "total", "amount"),
    "tax_amount": ("taxAmount", "tax", "vat"),
}
FLAT_LINE_ITEM_KEYS = ("lineItems", "items", "lines")

# Line items, both layouts
LINE_ITEM_TEXT_FIELDS: SynonymTable = {
    "description": ("description", "desc"),
    "account": ("account",),
    "cost_center": ("costCenter", "cost_center"),
    "department": ("department",),
}
LINE_ITEM_NUMBER_FIELDS: SynonymTable = {
    "quantity": ("quantity", "qty"),
    "unit_price": ("unitPrice", "unit_price", "price"),
    "amount": ("amount", "lineAmount", "line_amount"),
    "tax_amount": ("taxAmount", "tax_amount"),
}


@dataclass(frozen=True)
class StructuredExtraction:
    vendor: Mapping[str, Any]
    invoice: Mapping[str, Any]
    line_items: Any = None
    kind: Literal["structured"] = "structured"


@dataclass(frozen=True)
class FlatExtraction:
    fields: Mapping[str, Any] = field(default_factory=dict)
    kind: Literal["flat"] = "flat"


Extraction = Union[StructuredExtraction, FlatExtraction]


def classify_extraction(raw: Mapping[str, Any]) -> Extraction:
    """Nested layout if both ``vendor`` and ``invoice`` are objects, flat otherwise"""
    vendor = raw.get("vendor")
    invoice = raw.get("invoice")
    if isinstance(vendor, dict) and isinstance(invoice, dict):
        return StructuredExtraction(vendor=vendor, invoice=invoice, line_items=raw.get("lineItems"))
    return FlatExtraction(fields=raw)


_NON_NUMERIC = re.compile(r"[^0-9.,\-]")
_NUMBER_PREFIX = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)")


def parse_money(text: str) -> Optional[float]:
    """
    Parse a money string such as "€ 1.234,56", "$1,234.56" or "100,00".

    With both separators present, whichever comes last is the decimal point.
    A lone comma is a decimal comma. Returns None when nothing numeric is left.
    """
    s = unicodedata.normalize("NFKC", text).strip()
    s = _NON_NUMERIC.sub("", s)
    if not s:
        return None

    has_comma = "," in s
    has_dot = "." in s
    if has_comma and has_dot:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".", 1)
        else:
            s = s.replace(",", "")
    elif has_comma:
        s = s.replace(",", ".", 1)

    match = _NUMBER_PREFIX.match(s)
    if not match:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def parse_number(value: Any) -> Optional[float]:
    """Finite numbers pass through unchanged, strings go through parse_money, anything else is None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # json.loads turns literals such as 1e999 into inf
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        return parse_money(value)
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, str):
        return value
    return str(value)


def _first(source: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def _resolve_text(source: Mapping[str, Any], table: SynonymTable) -> Dict[str, Optional[str]]:
    return {name: _as_text(_first(source, keys)) for name, keys in table.items()}


def _resolve_numbers(source: Mapping[str, Any], table: SynonymTable) -> Dict[str, Optional[float]]:
    return {name: parse_number(_first(source, keys)) for name, keys in table.items()}


def _address(value: Any) -> Union[str, Dict[str, Any], None]:
    if isinstance(value, dict):
        return value
    return _as_text(value)


def normalize_line_items(raw_items: Any) -> List[LineItem]:
    """Non-list input yields []; non-object entries are dropped"""
    if not isinstance(raw_items, list):
        return []

    items = []
    for entry in raw_items:
        if not isinstance(entry, dict):
            logger.debug("Dropping non-object line item", entry_type=type(entry).__name__)
            continue

        line_number = parse_number(_first(entry, ("lineNumber", "line_number")))
        if line_number is not None and (not math.isfinite(line_number) or line_number != int(line_number)):
            line_number = None

        items.append(LineItem(
            **_resolve_text(entry, LINE_ITEM_TEXT_FIELDS),
            **_resolve_numbers(entry, LINE_ITEM_NUMBER_FIELDS),
            line_number=int(line_number) if line_number is not None else None,
        ))
    return items


def _normalize_structured(extraction: StructuredExtraction) -> CanonicalInvoice:
    vendor_fields = _resolve_text(extraction.vendor, STRUCTURED_VENDOR_FIELDS)
    vendor_fields["address"] = _address(extraction.vendor.get("address"))

    return CanonicalInvoice(
        vendor=Vendor(**vendor_fields),
        invoice=InvoiceHeader(
            **_resolve_text(extraction.invoice, STRUCTURED_INVOICE_TEXT_FIELDS),
            **_resolve_numbers(extraction.invoice, STRUCTURED_INVOICE_AMOUNT_FIELDS),
        ),
        line_items=normalize_line_items(extraction.line_items),
    )


def _normalize_flat(extraction: FlatExtraction) -> CanonicalInvoice:
    raw = extraction.fields
    vendor_fields = _resolve_text(raw, FLAT_VENDOR_FIELDS)
    vendor_fields["address"] = _address(_first(raw, FLAT_VENDOR_FIELDS["address"]))

    return CanonicalInvoice(
        vendor=Vendor(**vendor_fields),
        invoice=InvoiceHeader(
            **_resolve_text(raw, FLAT_INVOICE_TEXT_FIELDS),
            **_resolve_numbers(raw, FLAT_INVOICE_AMOUNT_FIELDS),
        ),
        line_items=normalize_line_items(_first(raw, FLAT_LINE_ITEM_KEYS)),
    )


def normalize_extraction(raw: Mapping[str, Any]) -> CanonicalInvoice:
    """
    Canonicalize a raw model extraction. ``meta`` is left unset; the
    pipeline fills it in once the work item context is known.
    """
    extraction = classify_extraction(raw)
    logger.debug("Normalizing extraction", layout=extraction.kind)

    if isinstance(extraction, StructuredExtraction):
        return _normalize_structured(extraction)
    return _normalize_flat(extraction)
