"""
Targeted business corrections applied after normalization.

Each rule that changes the invoice records a warning in the item's
WarningLog; the invoice is modified in place.
"""

import re
from typing import Optional

from loguru import logger

from ..models.invoice import CanonicalInvoice, WarningLog

PREPAYMENT = "Prepayment"
TAGGED_PREPAYMENT = "tagged_prepayment_from_proforma"
SANITIZED_PO = "sanitized_purchase_order_number"

_PROFORMA = re.compile(r"pro\s*forma|proforma", re.IGNORECASE)

# Labels models tend to copy along with the PO code, in the languages we receive
_PO_LABEL = re.compile(
    r"^\s*(?:"
    r"po|p\.o\.|purchase\s*order|order\s*(?:no|number|nr|n[oº°])"
    r"|n[úu]mero\s+de\s+orden\s+de\s+compra|orden\s+de\s+compra|n[úu]mero\s+de\s+pedido"
    r"|bon\s+de\s+commande|num[ée]ro\s+de\s+commande"
    r"|bestellnummer|auftragsnummer"
    r"|ordine\s+d['’]?acquisto|numero\s+d['’]?ordine"
    r"|注文書番号|注文番号|発注番号|発注書番号"
    r")\s*\.?\s*[:#：]?\s*",
    re.IGNORECASE,
)
_PO_DISALLOWED = re.compile(r"[^A-Za-z0-9\-/.]")
_HAS_DIGIT = re.compile(r"\d")


def sanitize_purchase_order_number(value: Optional[str]) -> Optional[str]:
    """
    Strip labels and stray characters from a PO number.

    Returns None unless what remains contains a digit and is at least
    three characters long.
    """
    if not value:
        return None

    cleaned = _PO_LABEL.sub("", value.strip(), count=1)
    cleaned = _PO_DISALLOWED.sub("", cleaned)

    if not _HAS_DIGIT.search(cleaned):
        return None
    if len(cleaned) < 3:
        return None
    return cleaned


def tag_proforma_as_prepayment(invoice: CanonicalInvoice, warnings: WarningLog) -> None:
    current_type = (invoice.invoice.invoice_type or "").strip()
    if not _PROFORMA.search(current_type):
        return
    if invoice.invoice.invoice_type != PREPAYMENT:
        invoice.invoice.invoice_type = PREPAYMENT
        warnings.add(TAGGED_PREPAYMENT, detail=current_type)


def clean_purchase_order_number(invoice: CanonicalInvoice, warnings: WarningLog) -> None:
    original = (invoice.invoice.purchase_order_number or "").strip()
    if not original or original == "null":
        invoice.invoice.purchase_order_number = None
        return

    cleaned = sanitize_purchase_order_number(original)
    if cleaned == original:
        return

    if cleaned is None:
        logger.debug("Discarding implausible purchase order number", purchase_order_number=original)
        invoice.invoice.purchase_order_number = None
    else:
        invoice.invoice.purchase_order_number = cleaned
        warnings.add(SANITIZED_PO, detail=original)


def reconcile_extraction(invoice: CanonicalInvoice, warnings: WarningLog) -> None:
    tag_proforma_as_prepayment(invoice, warnings)
    clean_purchase_order_number(invoice, warnings)
