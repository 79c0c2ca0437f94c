"""
Oracle Fusion Cloud Payables mapping.

Transforms a canonical invoice into the payablesInterfaceInvoices shape:
header fields, one Item line per line item, one distribution per line.
Stateless; supplier lookup and default accounting come from configuration.
"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.invoice import CanonicalInvoice, LineItem


class SupplierMapping(BaseModel):
    supplier_id: Optional[int] = Field(default=None, alias="supplierId")
    supplier_number: Optional[str] = Field(default=None, alias="supplierNumber")
    supplier_site: Optional[str] = Field(default=None, alias="supplierSite")

    model_config = ConfigDict(populate_by_name=True)


class DefaultDistribution(BaseModel):
    account: Optional[str] = None
    cost_center: Optional[str] = Field(default=None, alias="costCenter")
    department: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class OracleFusionConfig(BaseModel):
    """Configuration for the Oracle Fusion mapping (loaded from environment)"""
    source: str = "INVOICE_EXTRACTOR"
    business_unit: str = "US1 Business Unit"
    default_invoice_type: str = "Standard"
    supplier_mapping: Dict[str, SupplierMapping] = {}  # Vendor name -> Oracle supplier
    default_distribution: DefaultDistribution = DefaultDistribution()


class OracleFusionDistribution(BaseModel):
    DistributionLineNumber: int
    DistributionLineType: str
    Amount: float
    DistributionCombination: Optional[str] = None


class OracleFusionLine(BaseModel):
    LineNumber: int
    LineType: str
    LineAmount: float
    Description: Optional[str] = None
    Quantity: Optional[float] = None
    UnitPrice: Optional[float] = None
    distributions: List[OracleFusionDistribution] = []


class OracleFusionInvoice(BaseModel):
    Source: str
    InvoiceNumber: str
    InvoiceAmount: Optional[float]
    InvoiceDate: str
    InvoiceCurrency: str
    InvoiceType: Optional[str] = None
    BusinessUnit: Optional[str] = None
    Supplier: Optional[str] = None
    SupplierNumber: Optional[str] = None
    SupplierId: Optional[int] = None
    SupplierSite: Optional[str] = None
    Description: Optional[str] = None
    GlDate: Optional[str] = None
    PaymentTerms: Optional[str] = None
    InvoiceReceivedDate: Optional[str] = None
    lines: Optional[List[OracleFusionLine]] = None


class OracleFusionValidation(BaseModel):
    valid: bool
    errors: List[str]


def build_distribution_combination(line: LineItem, config: OracleFusionConfig) -> Optional[str]:
    """
    Cost center - account - department, e.g. "100-5000-IT".

    Returns None when neither the line nor the defaults carry any segment.
    """
    defaults = config.default_distribution
    account = line.account or defaults.account
    cost_center = line.cost_center or defaults.cost_center
    department = line.department or defaults.department

    if not account and not cost_center and not department:
        return None

    return "-".join([cost_center or "000", account or "0000", department or "000"])


def transform_to_oracle_fusion(invoice: CanonicalInvoice, config: OracleFusionConfig) -> OracleFusionInvoice:
    vendor_name = invoice.vendor.name or ""
    supplier = config.supplier_mapping.get(vendor_name) or SupplierMapping()
    header = invoice.invoice

    received_at = invoice.meta.received_at if invoice.meta else None

    lines = []
    for index, line in enumerate(invoice.line_items):
        amount = line.amount or 0
        lines.append(OracleFusionLine(
            LineNumber=line.line_number or index + 1,
            LineType="Item",
            LineAmount=amount,
            Description=line.description,
            Quantity=line.quantity,
            UnitPrice=line.unit_price,
            distributions=[
                OracleFusionDistribution(
                    DistributionLineNumber=1,
                    DistributionLineType="Item",
                    Amount=amount,
                    DistributionCombination=build_distribution_combination(line, config),
                )
            ],
        ))

    return OracleFusionInvoice(
        Source=config.source,
        InvoiceNumber=header.invoice_number or "",
        InvoiceAmount=header.total_amount or 0,
        InvoiceDate=header.invoice_date or "",
        InvoiceCurrency=header.currency or "USD",
        InvoiceType=header.invoice_type or config.default_invoice_type,
        BusinessUnit=config.business_unit,
        GlDate=header.invoice_date or date.today().isoformat(),
        Description=header.description,
        PaymentTerms=header.payment_terms,
        InvoiceReceivedDate=received_at.split("T")[0] if received_at else None,
        Supplier=vendor_name,
        SupplierNumber=supplier.supplier_number,
        SupplierId=supplier.supplier_id,
        SupplierSite=supplier.supplier_site or invoice.vendor.site,
        lines=lines,
    )


def validate_oracle_fusion_invoice(invoice: OracleFusionInvoice) -> OracleFusionValidation:
    """Check the fields Oracle requires before the invoice can be imported"""
    errors = []

    if not invoice.Source:
        errors.append("Source is required")
    if not invoice.InvoiceNumber:
        errors.append("InvoiceNumber is required")
    if invoice.InvoiceAmount is None:
        errors.append("InvoiceAmount is required")
    if not invoice.InvoiceDate:
        errors.append("InvoiceDate is required")
    if not invoice.InvoiceCurrency:
        errors.append("InvoiceCurrency is required")
    if not invoice.BusinessUnit:
        errors.append("BusinessUnit is required")

    if not invoice.Supplier and not invoice.SupplierNumber and not invoice.SupplierId:
        errors.append("Supplier identification required (Supplier, SupplierNumber, or SupplierId)")

    return OracleFusionValidation(valid=not errors, errors=errors)


def create_oracle_fusion_config() -> OracleFusionConfig:
    """Build the mapping configuration from environment settings"""
    from ..core.config import settings

    return OracleFusionConfig(
        source=settings.oracle_source,
        business_unit=settings.oracle_business_unit,
        default_invoice_type=settings.oracle_default_invoice_type,
        supplier_mapping={
            name: SupplierMapping.model_validate(details)
            for name, details in settings.oracle_supplier_mapping.items()
        },
        default_distribution=DefaultDistribution.model_validate(settings.oracle_default_distribution),
    )
