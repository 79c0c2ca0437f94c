"""
Per-attachment extraction pipeline.

    fetch -> prepare document -> invoke model -> parse JSON (one repair attempt)
          -> normalize -> reconcile -> score -> persist

Every exception raised for a work item is caught once, here, and turned into
a FAILED record; one bad attachment never affects another.
"""

import time
from datetime import datetime, UTC
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from ..core.errors import AttachmentTooLargeError, ExtractionParseError
from ..core.metrics import MetricsEmitter
from ..models.invoice import (
    CanonicalInvoice,
    InvoiceMeta,
    ItemStatus,
    WarningLog,
    WorkItem,
)
from .bedrock import BedrockInvoker, FailoverPolicy
from .confidence import VISUAL_PROCESSING_SNIPPET, calculate_confidence
from .documents import prepare_document
from .normalizer import normalize_extraction
from .prompts import build_extraction_prompt, build_repair_prompt
from .reconciler import reconcile_extraction
from .response_parser import parse_json_response
from .storage import AttachmentStoreBase, InvoiceStateStoreBase

FILE_TOO_LARGE = "file_too_large"
RESPONSE_LOG_SNIPPET_CHARS = 200


class PipelineConfig(BaseModel):
    """Explicit pipeline configuration (read once from Settings by create_pipeline)"""
    attachment_bucket: str
    model_id: str
    max_upload_bytes: int = 0  # 0 = unlimited


class ExtractionOutcome(BaseModel):
    invoice: CanonicalInvoice
    confidence: float
    model_used: str


class ProcessingResult(BaseModel):
    status: ItemStatus
    confidence: Optional[float] = None
    model_used: Optional[str] = None
    error: Optional[str] = None


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ExtractionPipeline:
    """
    Runs one work item at a time through extraction, scoring and persistence.

    Usage:
        pipeline = ExtractionPipeline(
            config=PipelineConfig(attachment_bucket="attachments", model_id="anthropic.claude-3-5-sonnet-20240620-v1:0"),
            invoker=BedrockInvoker(),
            attachment_store=S3AttachmentStore(),
            state_store=DynamoInvoiceStateStore("invoices"),
        )
        result = pipeline.process(work_item)
    """

    def __init__(
        self,
        config: PipelineConfig,
        invoker: BedrockInvoker,
        attachment_store: AttachmentStoreBase,
        state_store: InvoiceStateStoreBase,
        metrics: Optional[MetricsEmitter] = None
    ):
        self.config = config
        self.invoker = invoker
        self.attachment_store = attachment_store
        self.state_store = state_store
        self.metrics = metrics or MetricsEmitter()

    def extract(self, item: WorkItem, data: bytes) -> ExtractionOutcome:
        """
        Extract, normalize, reconcile and score one attachment. No persistence.

        Raises:
            ProviderError: model invocation failed (after failover, if any)
            ExtractionParseError: no parseable JSON after the repair attempt
        """
        warnings = WarningLog()

        document = prepare_document(item.attachment_key, data)
        logger.info(
            "Document prepared",
            attachment_key=item.attachment_key,
            media_type=document.media_type.value,
            size_bytes=len(data)
        )

        response = self.invoker.invoke(self.config.model_id, build_extraction_prompt("", has_document=True), [document])
        model_used = response.model_id
        extracted = parse_json_response(response.text)

        if extracted is None:
            logger.warning(
                "First parse failed, trying repair",
                message_id=item.message_id,
                response_snippet=response.text[:RESPONSE_LOG_SNIPPET_CHARS]
            )
            repair = self.invoker.invoke(self.config.model_id, build_repair_prompt(response.text), [])
            model_used = repair.model_id
            extracted = parse_json_response(repair.text)

        if extracted is None:
            raise ExtractionParseError("Failed to parse AI response as JSON")

        invoice = normalize_extraction(extracted)
        reconcile_extraction(invoice, warnings)

        invoice.meta = InvoiceMeta(
            message_id=item.message_id,
            received_at=item.received_at,
            sender=item.sender,
            subject=item.subject,
            attachment_key=item.attachment_key,
            extraction_model=model_used,
            warnings=warnings.codes(),
            # The model reads the document itself; there is no OCR text layer
            extracted_text_snippet=VISUAL_PROCESSING_SNIPPET,
        )
        confidence = calculate_confidence(invoice, warnings)
        invoice.meta.confidence_score = confidence

        return ExtractionOutcome(invoice=invoice, confidence=confidence, model_used=model_used)

    def process(self, item: WorkItem) -> ProcessingResult:
        """
        Process one work item end to end and persist its terminal state.

        Stage failures are recorded as FAILED and returned, never raised.
        A failure to write the FAILED record itself does propagate.
        """
        start = time.monotonic()

        try:
            data = self.attachment_store.get(self.config.attachment_bucket, item.attachment_key)
            if self.config.max_upload_bytes > 0 and len(data) > self.config.max_upload_bytes:
                raise AttachmentTooLargeError(FILE_TOO_LARGE)

            outcome = self.extract(item, data)
            invoice = outcome.invoice

            self.state_store.upsert(
                item.state_key(),
                {
                    "status": ItemStatus.COMPLETED.value,
                    "updatedAt": _now_iso(),
                    "extractedJson": invoice.to_record(),
                    "confidence": outcome.confidence,
                    "vendorName": invoice.vendor.name,
                    "invoiceNumber": invoice.invoice.invoice_number,
                    "currency": invoice.invoice.currency,
                    "totalAmount": invoice.invoice.total_amount,
                    "modelUsed": outcome.model_used,
                }
            )
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(
                "Extraction failed",
                message_id=item.message_id,
                attachment_id=item.attachment_id,
                attachment_key=item.attachment_key,
                error_type=type(e).__name__,
                error=error
            )
            self.state_store.upsert(
                item.state_key(),
                {
                    "status": ItemStatus.FAILED.value,
                    "updatedAt": _now_iso(),
                    "errors": [error],
                }
            )
            self.metrics.emit("ExtractionFailure", 1, "Count")
            return ProcessingResult(status=ItemStatus.FAILED, error=error)

        self.metrics.emit("ExtractionSuccess", 1, "Count", Model=outcome.model_used)
        self.metrics.emit("ExtractionDurationMs", int((time.monotonic() - start) * 1000), "Milliseconds")
        logger.info(
            "Extraction complete",
            message_id=item.message_id,
            confidence=outcome.confidence,
            model_used=outcome.model_used
        )
        return ProcessingResult(
            status=ItemStatus.COMPLETED,
            confidence=outcome.confidence,
            model_used=outcome.model_used
        )


def create_pipeline(
    invoker: Optional[BedrockInvoker] = None,
    attachment_store: Optional[AttachmentStoreBase] = None,
    state_store: Optional[InvoiceStateStoreBase] = None,
    metrics: Optional[MetricsEmitter] = None,
    config: Optional[PipelineConfig] = None
) -> ExtractionPipeline:
    """
    Factory function to create a pipeline wired to AWS from Settings.

    Any collaborator can be overridden (tests inject in-memory stores and a
    stub Bedrock client).
    """
    from ..core.config import settings
    from .storage import DynamoInvoiceStateStore, S3AttachmentStore

    config = config or PipelineConfig(
        attachment_bucket=settings.attachment_bucket,
        model_id=settings.bedrock_model_id,
        max_upload_bytes=settings.max_upload_bytes,
    )

    if invoker is None:
        invoker = BedrockInvoker(
            fallback_model_id=settings.bedrock_fallback_model_id,
            failover_policy=FailoverPolicy(error_codes=settings.failover_error_codes()),
            region=settings.aws_region,
            connect_timeout=settings.bedrock_connect_timeout,
            read_timeout=settings.bedrock_read_timeout,
        )

    return ExtractionPipeline(
        config=config,
        invoker=invoker,
        attachment_store=attachment_store or S3AttachmentStore(region=settings.aws_region),
        state_store=state_store or DynamoInvoiceStateStore(settings.table_name, region=settings.aws_region),
        metrics=metrics or MetricsEmitter(namespace=settings.metrics_namespace, service=settings.metrics_service),
    )
