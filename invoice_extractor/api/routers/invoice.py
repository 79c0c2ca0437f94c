import uuid
from datetime import datetime, UTC

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from ..deps import ExtractResponse, get_oracle_fusion_config, get_pipeline
from ...core.errors import ExtractionParseError, ProviderError
from ...models.invoice import CanonicalInvoice, WorkItem
from ...services.oracle_fusion import (
    OracleFusionConfig,
    transform_to_oracle_fusion,
    validate_oracle_fusion_invoice,
)
from ...services.pipeline import ExtractionPipeline

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/extract", response_model=ExtractResponse)
async def extract(
    request: Request,
    file: UploadFile = File(None),
    filename: str = "upload.pdf",
    pipeline: ExtractionPipeline = Depends(get_pipeline)
):
    """
    Extract an invoice from an uploaded PDF or image and score it.

    Accepts either:
    - multipart/form-data (file upload via form)
    - raw binary body, with the file name in the ``filename`` query parameter
      (its extension decides PDF vs PNG vs JPEG)

    Nothing is persisted; use the queue for tracked processing.
    """
    if file:
        content = await file.read()
        filename = file.filename or filename
    else:
        content = await request.body()
    if not content:
        raise HTTPException(status_code=422, detail="No file provided (either multipart or raw body)")

    max_bytes = pipeline.config.max_upload_bytes
    if max_bytes > 0 and len(content) > max_bytes:
        raise HTTPException(status_code=413, detail="file_too_large")

    message_id = f"upload-{uuid.uuid4()}"
    item = WorkItem(
        message_id=message_id,
        attachment_id=str(uuid.uuid4()),
        attachment_key=f"uploads/{message_id}/{filename}",
        received_at=datetime.now(UTC).isoformat(),
        sender="manual-upload",
        subject=filename,
    )

    try:
        outcome = await run_in_threadpool(pipeline.extract, item, content)
    except ProviderError as e:
        logger.error("Model invocation failed", message_id=message_id, model_id=e.model_id, error=str(e))
        raise HTTPException(status_code=502, detail=str(e))
    except ExtractionParseError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Extraction failed: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))

    return ExtractResponse(
        invoice=outcome.invoice,
        confidence=outcome.confidence,
        model_used=outcome.model_used,
    )


@router.post("/oracle-fusion")
async def oracle_fusion(
    invoice: CanonicalInvoice,
    config: OracleFusionConfig = Depends(get_oracle_fusion_config)
):
    """
    Map a canonical invoice to the Oracle Fusion Payables import format.

    Example response:
    {
        "oracleFormat": {"Source": "INVOICE_EXTRACTOR", "InvoiceNumber": "INV-2024-001", ...},
        "validation": {"valid": true, "errors": []}
    }
    """
    oracle_invoice = transform_to_oracle_fusion(invoice, config)
    validation = validate_oracle_fusion_invoice(oracle_invoice)
    return {
        "oracleFormat": oracle_invoice.model_dump(exclude_none=True),
        "validation": validation.model_dump(),
    }
