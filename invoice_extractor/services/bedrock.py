"""
Amazon Bedrock model invocation with single-step failover.

Request and response bodies differ per model family:
- Anthropic (Claude): PDFs as document blocks, images as image blocks, then the prompt
- Amazon Nova: images only (PDFs are dropped), plus the prompt
- Titan text and anything unrecognised: prompt text only

Failover: when the primary model is known to be unusable in this account or
region (no on-demand throughput, retired, marketplace subscription missing...)
the whole call is retried once against BEDROCK_FALLBACK_MODEL_ID. Every other
error propagates.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from loguru import logger

from ..core.errors import ProviderError, RetryableProviderError
from ..models.invoice import DocumentPayload, MediaType, ModelResponse

ANTHROPIC_VERSION = "bedrock-2023-05-31"
ANTHROPIC_MAX_TOKENS = 4096
DEFAULT_MAX_TOKENS = 2048
RESPONSE_SNIPPET_CHARS = 300


class ModelFamily(str, Enum):
    ANTHROPIC = "anthropic"
    NOVA = "nova"
    TITAN_TEXT = "titan-text"
    TEXT = "text"


def detect_model_family(model_id: str) -> ModelFamily:
    model_id = model_id or ""
    if "anthropic" in model_id or "claude" in model_id:
        return ModelFamily.ANTHROPIC
    if "nova" in model_id:
        return ModelFamily.NOVA
    if model_id.startswith("amazon.titan-text"):
        return ModelFamily.TITAN_TEXT
    return ModelFamily.TEXT


def build_request_body(model_id: str, prompt: str, documents: Sequence[DocumentPayload] = ()) -> dict:
    """Build the InvokeModel body for the model's family (temperature is always 0)"""
    family = detect_model_family(model_id)

    if family == ModelFamily.ANTHROPIC:
        content = []
        for doc in documents:
            block_type = "document" if doc.media_type == MediaType.PDF else "image"
            content.append({
                "type": block_type,
                "source": {
                    "type": "base64",
                    "media_type": doc.media_type.value,
                    "data": doc.to_base64(),
                },
            })
        content.append({"type": "text", "text": prompt})

        return {
            "anthropic_version": ANTHROPIC_VERSION,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "temperature": 0,
            "messages": [{"role": "user", "content": content}],
        }

    if family == ModelFamily.NOVA:
        # Nova has no document block; PDFs are silently skipped
        images = [
            {
                "image": {
                    "format": "png" if doc.media_type == MediaType.PNG else "jpeg",
                    "source": {"bytes": doc.to_base64()},
                }
            }
            for doc in documents
            if doc.media_type != MediaType.PDF
        ]
        return {
            "messages": [{"role": "user", "content": [{"text": prompt}, *images]}],
            "inferenceConfig": {"maxTokens": DEFAULT_MAX_TOKENS, "temperature": 0},
        }

    return {
        "inputText": prompt,
        "textGenerationConfig": {
            "maxTokenCount": DEFAULT_MAX_TOKENS,
            "temperature": 0,
            "topP": 1,
        },
    }


def _first_text_part(parts: Any) -> str:
    if not isinstance(parts, list):
        return ""
    for part in parts:
        if isinstance(part, dict) and part.get("text"):
            return str(part["text"])
    return ""


def parse_response_body(decoded: Any) -> str:
    """
    Pull the generated text out of a decoded InvokeModel response.

    Returns "" when no text-bearing element is found.
    """
    if not isinstance(decoded, dict):
        return ""

    # Titan text
    results = decoded.get("results")
    if isinstance(results, list) and results:
        first = results[0]
        if isinstance(first, dict) and isinstance(first.get("outputText"), str):
            return first["outputText"]

    # Nova
    output = decoded.get("output")
    if isinstance(output, dict):
        message = output.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), list) and message["content"]:
            return _first_text_part(message["content"])

    # Anthropic
    content = decoded.get("content")
    if isinstance(content, list) and content:
        return _first_text_part(content)

    if isinstance(decoded.get("completion"), str) and decoded["completion"]:
        return decoded["completion"]

    message = decoded.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str) and message["content"]:
        return message["content"]

    return ""


class FailureCategory(str, Enum):
    MODEL_UNAVAILABLE = "model_unavailable"
    OTHER = "other"


@dataclass(frozen=True)
class ProviderFailure:
    """Structured view of a provider error, used for failover decisions"""
    code: Optional[str]
    message: str
    category: FailureCategory


# Bedrock's wording for "this model cannot be used here". Matching on English
# substrings is brittle across SDK versions; prefer error codes via
# BEDROCK_FAILOVER_ERROR_CODES where the provider exposes a distinct one.
MODEL_UNAVAILABLE_PHRASES = (
    "on-demand throughput isn't supported",
    "inference profile",
    "Inference profile",
    "reached the end of its life",
    "model identifier is invalid",
    "Malformed input request",
    "extraneous key",
    "aws-marketplace:ViewSubscriptions",
    "aws-marketplace:Subscribe",
    "Marketplace subscription",
)


class FailoverPolicy:
    """
    Decides whether a failed call may be retried on the fallback model.

    Errors are first categorised (by provider error code, then by known
    message phrases); only MODEL_UNAVAILABLE failures are eligible.
    """

    def __init__(
        self,
        phrases: Iterable[str] = MODEL_UNAVAILABLE_PHRASES,
        error_codes: Iterable[str] = (),
    ):
        self.phrases = tuple(phrases)
        self.error_codes = frozenset(error_codes)

    def categorize(self, code: Optional[str], message: str) -> FailureCategory:
        if code and code in self.error_codes:
            return FailureCategory.MODEL_UNAVAILABLE
        if any(phrase in message for phrase in self.phrases):
            return FailureCategory.MODEL_UNAVAILABLE
        return FailureCategory.OTHER

    def describe(self, error: BaseException) -> ProviderFailure:
        code = None
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code")
        elif isinstance(error, ProviderError):
            code = error.code
        message = str(error)
        return ProviderFailure(code=code, message=message, category=self.categorize(code, message))

    def should_fail_over(self, failure: ProviderFailure) -> bool:
        return failure.category == FailureCategory.MODEL_UNAVAILABLE


def create_bedrock_client(
    region: Optional[str] = None,
    connect_timeout: int = 10,
    read_timeout: int = 120
):
    """bedrock-runtime client with bounded waits and no SDK-level retries"""
    config = Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )
    return boto3.client("bedrock-runtime", region_name=region, config=config)


class BedrockInvoker:
    """
    Invokes a Bedrock model, failing over to a secondary model once.

    Usage:
        invoker = BedrockInvoker(fallback_model_id="amazon.nova-pro-v1:0")
        response = invoker.invoke("anthropic.claude-3-5-sonnet-20240620-v1:0", prompt, [doc])
        response.text, response.model_id

        # Tests inject a stub client exposing invoke_model(**kwargs)
        invoker = BedrockInvoker(client=Mock())
    """

    def __init__(
        self,
        client: Optional[object] = None,
        fallback_model_id: str = "",
        failover_policy: Optional[FailoverPolicy] = None,
        region: Optional[str] = None,
        connect_timeout: int = 10,
        read_timeout: int = 120
    ):
        self._client = client
        self.fallback_model_id = fallback_model_id or ""
        self.failover_policy = failover_policy or FailoverPolicy()
        self.region = region
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    @property
    def client(self):
        if self._client is None:
            self._client = create_bedrock_client(self.region, self.connect_timeout, self.read_timeout)
        return self._client

    def invoke(self, model_id: str, prompt: str, documents: Sequence[DocumentPayload] = ()) -> ModelResponse:
        """
        Invoke model_id, retrying once on the fallback model if the primary is unusable.

        Raises:
            ProviderError: the call failed and failover did not apply, or the fallback failed too
        """
        try:
            return self._invoke_once(model_id, prompt, documents)
        except RetryableProviderError as err:
            if not self.fallback_model_id or self.fallback_model_id == model_id:
                raise
            logger.warning(
                "Primary model failed; retrying with fallback model",
                primary_model_id=model_id,
                fallback_model_id=self.fallback_model_id,
                error=str(err)
            )
            return self._invoke_once(self.fallback_model_id, prompt, documents)

    def _invoke_once(self, model_id: str, prompt: str, documents: Sequence[DocumentPayload]) -> ModelResponse:
        body = build_request_body(model_id, prompt, documents)
        logger.info(
            "Invoking Bedrock",
            model_id=model_id,
            prompt_length=len(prompt),
            doc_count=len(documents)
        )

        try:
            response = self.client.invoke_model(
                modelId=model_id,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(body),
            )
            raw = response["body"].read()
        except Exception as exc:
            failure = self.failover_policy.describe(exc)
            error_cls = RetryableProviderError if self.failover_policy.should_fail_over(failure) else ProviderError
            raise error_cls(failure.message, model_id=model_id, code=failure.code) from exc

        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ProviderError(f"Bedrock returned a non-JSON body: {exc}", model_id=model_id) from exc

        text = parse_response_body(decoded)
        logger.info(
            "Bedrock response",
            model_id=model_id,
            response_length=len(text),
            response_snippet=text[:RESPONSE_SNIPPET_CHARS] if text else "empty"
        )
        if not text:
            logger.warning("Bedrock response had no text content", model_id=model_id)

        return ModelResponse(text=text, model_id=model_id)
