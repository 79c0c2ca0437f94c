"""
Deterministic confidence score for an extracted invoice.

Six one-point checks (five presence/plausibility checks plus an arithmetic
cross-check), normalised to 0-1, then capped when the output looks like the
prompt template echoed back, has a zero total, comes from a too-short text
snippet, or needed reconciliation.
"""

import math
import re
from typing import Any, List, Optional

from ..models.invoice import CanonicalInvoice, LineItem, WarningLog

TOTAL_CHECKS = 6
ARITHMETIC_TOLERANCE = 0.01

TEMPLATE_CAP = 0.2
ZERO_TOTAL_CAP = 0.2
SHORT_SNIPPET_CAP = 0.35
SHORT_SNIPPET_CHARS = 80
RECONCILED_CAP = 0.85

VISUAL_PROCESSING_SNIPPET = "(PDF processed visually by AI)"
_VISUAL_MARKERS = ("visually by AI", "PDF processed")

# Values copied verbatim from the prompt's example JSON
PLACEHOLDERS = frozenset({
    "seller name",
    "item",
    "number",
    "address or null",
    "vat number or null",
    "vat number",
    "eur/usd/etc",
    "eur/usd/etc.",
    "...",
})

_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")
_ALPHANUMERIC = re.compile(r"[A-Za-z0-9]")
_DIGIT = re.compile(r"\d")


def is_placeholder(value: Optional[str]) -> bool:
    v = (value or "").strip().lower()
    if not v:
        return True
    return v in PLACEHOLDERS or "or null" in v


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_close(a: float, b: float, tolerance: float = ARITHMETIC_TOLERANCE) -> bool:
    max_val = max(abs(a), abs(b))
    if max_val == 0:
        return a == b
    return abs(a - b) / max_val <= tolerance


def _has_real_line_item(line_items: List[LineItem]) -> bool:
    for item in line_items:
        description = (item.description or "").strip()
        if description and not is_placeholder(description) and _is_finite_number(item.amount) and item.amount > 0:
            return True
    return False


def _arithmetic_consistent(total: Any, tax: Any, line_items: List[LineItem]) -> bool:
    """total - tax should match the sum of (pre-tax) line amounts"""
    if not (_is_finite_number(total) and _is_finite_number(tax) and total > 0 and tax >= 0):
        return False
    if not line_items:
        return False

    net = total - tax
    line_sum = sum(item.amount for item in line_items if _is_finite_number(item.amount))
    return net > 0 and line_sum > 0 and _is_close(net, line_sum)


def looks_like_template(invoice: CanonicalInvoice) -> bool:
    vendor_name = (invoice.vendor.name or "").strip()
    invoice_number = (invoice.invoice.invoice_number or "").strip()
    currency = (invoice.invoice.currency or "").strip()

    return (
        is_placeholder(vendor_name)
        or any(is_placeholder(item.description) for item in invoice.line_items)
        or vendor_name.lower() == "seller name"
        or "eur/usd" in currency.lower()
        or invoice_number.lower() == "number"
    )


def calculate_confidence(invoice: CanonicalInvoice, warnings: Optional[WarningLog] = None) -> float:
    """
    Score an invoice between 0 and 1.

    Args:
        invoice: Normalized, reconciled invoice. ``meta.extractedTextSnippet``
            and ``meta.warnings`` are read when meta is set.
        warnings: The item's warning log; defaults to one rebuilt from
            ``meta.warnings``

    Returns:
        Confidence score in [0, 1]
    """
    vendor_name = (invoice.vendor.name or "").strip()
    invoice_number = (invoice.invoice.invoice_number or "").strip()
    currency = (invoice.invoice.currency or "").strip()
    total = invoice.invoice.total_amount
    tax = invoice.invoice.tax_amount
    line_items = invoice.line_items

    checks = [
        bool(vendor_name) and not is_placeholder(vendor_name) and len(vendor_name) >= 3,
        bool(invoice_number) and not is_placeholder(invoice_number)
        and bool(_ALPHANUMERIC.search(invoice_number)) and bool(_DIGIT.search(invoice_number)),
        bool(_CURRENCY_CODE.match(currency)) and currency != "ETC",
        _is_finite_number(total) and total > 0,
        _has_real_line_item(line_items),
        _arithmetic_consistent(total, tax, line_items),
    ]
    confidence = min(1.0, max(0.0, sum(checks) / TOTAL_CHECKS))

    if looks_like_template(invoice):
        confidence = min(confidence, TEMPLATE_CAP)

    if _is_finite_number(total) and total == 0:
        confidence = min(confidence, ZERO_TOTAL_CAP)

    snippet = (invoice.meta.extracted_text_snippet if invoice.meta else "").strip()
    is_visual = any(marker in snippet for marker in _VISUAL_MARKERS)
    if snippet and len(snippet) < SHORT_SNIPPET_CHARS and not is_visual:
        confidence = min(confidence, SHORT_SNIPPET_CAP)

    if warnings is None:
        warnings = WarningLog.from_codes(invoice.meta.warnings if invoice.meta else [])
    if warnings.has_reconciliation():
        confidence = min(confidence, RECONCILED_CAP)

    return confidence
