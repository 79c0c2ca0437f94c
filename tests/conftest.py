"""
Pytest configuration and shared fixtures.

This file registers custom pytest markers and command-line options, and
provides a stub Bedrock client plus in-memory stores so the pipeline runs
without AWS.
"""

import io
import json
from unittest.mock import Mock

import pytest

from invoice_extractor.core.metrics import MetricsEmitter
from invoice_extractor.models.invoice import WorkItem
from invoice_extractor.services.bedrock import BedrockInvoker
from invoice_extractor.services.pipeline import ExtractionPipeline, PipelineConfig
from invoice_extractor.services.storage import InMemoryAttachmentStore, InMemoryInvoiceStateStore

PRIMARY_MODEL = "anthropic.claude-3-5-sonnet-20240620-v1:0"
FALLBACK_MODEL = "amazon.nova-pro-v1:0"
BUCKET = "test-attachments"


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real AWS resources"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real AWS resources"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def anthropic_response(text: str) -> dict:
    """InvokeModel return value for a Claude model answering with text"""
    body = {"content": [{"type": "text", "text": text}], "stop_reason": "end_turn"}
    return {"body": io.BytesIO(json.dumps(body).encode("utf-8"))}


@pytest.fixture
def bedrock_client():
    """Stub bedrock-runtime client; set .side_effect or .return_value on invoke_model"""
    return Mock()


@pytest.fixture
def reply_with(bedrock_client):
    """Queue Claude text replies, one per invoke_model call"""
    def _reply(*texts):
        bedrock_client.invoke_model.side_effect = [anthropic_response(text) for text in texts]
    return _reply


@pytest.fixture
def invoker(bedrock_client):
    return BedrockInvoker(client=bedrock_client, fallback_model_id=FALLBACK_MODEL)


@pytest.fixture
def attachment_store():
    return InMemoryAttachmentStore()


@pytest.fixture
def state_store():
    return InMemoryInvoiceStateStore()


@pytest.fixture
def metric_lines():
    return []


@pytest.fixture
def pipeline(invoker, attachment_store, state_store, metric_lines):
    return ExtractionPipeline(
        config=PipelineConfig(attachment_bucket=BUCKET, model_id=PRIMARY_MODEL),
        invoker=invoker,
        attachment_store=attachment_store,
        state_store=state_store,
        metrics=MetricsEmitter(writer=metric_lines.append),
    )


@pytest.fixture
def work_item():
    return WorkItem(
        message_id="msg-001",
        attachment_id="att-001",
        attachment_key="attachments/msg-001/att-001_invoice.pdf",
        received_at="2024-05-02T09:15:00Z",
        sender="billing@acme.example",
        subject="Invoice INV-2024-001",
    )
