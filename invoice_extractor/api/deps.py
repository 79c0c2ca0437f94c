from ..models.invoice import CamelModel, CanonicalInvoice
from ..services.oracle_fusion import OracleFusionConfig, create_oracle_fusion_config
from ..services.pipeline import ExtractionPipeline, create_pipeline
from ..services.storage import InMemoryAttachmentStore, InMemoryInvoiceStateStore

_pipeline: ExtractionPipeline | None = None


class ExtractResponse(CamelModel):
    invoice: CanonicalInvoice
    confidence: float = 0.0
    model_used: str | None = None


def get_pipeline() -> ExtractionPipeline:
    """
    Pipeline used by the HTTP surface.

    /invoices/extract runs the extraction stages on uploaded bytes and never
    reads or writes the AWS stores, so in-memory stores stand in for them.
    """
    global _pipeline
    if _pipeline is None:
        _pipeline = create_pipeline(
            attachment_store=InMemoryAttachmentStore(),
            state_store=InMemoryInvoiceStateStore(),
        )
    return _pipeline


def get_oracle_fusion_config() -> OracleFusionConfig:
    return create_oracle_fusion_config()
