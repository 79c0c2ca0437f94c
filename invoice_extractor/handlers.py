"""
Queue consumer entry point (AWS Lambda, SQS event source).

The event source is configured with a batch size of one; records are still
handled independently so a larger batch cannot let one poisonous record
block its siblings. Records that could not be processed are reported in the
partial-batch response and redelivered by the queue.
"""

from typing import Optional

from loguru import logger
from pydantic import ValidationError

from .core.logging import setup_logging
from .models.invoice import WorkItem
from .services.pipeline import ExtractionPipeline, create_pipeline

_pipeline: Optional[ExtractionPipeline] = None


def get_pipeline() -> ExtractionPipeline:
    global _pipeline
    if _pipeline is None:
        setup_logging()
        _pipeline = create_pipeline()
    return _pipeline


def extract_handler(event: dict, context: object = None, pipeline: Optional[ExtractionPipeline] = None) -> dict:
    """
    Process an SQS batch of work items.

    Returns:
        {"batchItemFailures": [{"itemIdentifier": <SQS messageId>}, ...]}
    """
    pipeline = pipeline or get_pipeline()
    failures = []

    for record in event.get("Records", []):
        record_id = record.get("messageId", "")
        try:
            item = WorkItem.model_validate_json(record.get("body") or "")
        except ValidationError as e:
            logger.error("Malformed work item", record_id=record_id, error=str(e))
            failures.append({"itemIdentifier": record_id})
            continue

        try:
            result = pipeline.process(item)
        except Exception as e:
            # Only reachable when the FAILED record itself could not be written
            logger.exception(
                "Could not record extraction outcome",
                record_id=record_id,
                message_id=item.message_id,
                attachment_key=item.attachment_key,
                error=str(e)
            )
            failures.append({"itemIdentifier": record_id})
            continue

        logger.info(
            "Work item processed",
            message_id=item.message_id,
            attachment_key=item.attachment_key,
            status=result.status.value
        )

    return {"batchItemFailures": failures}
