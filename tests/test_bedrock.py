"""
Tests for Bedrock request building, response parsing and model failover.

The bedrock-runtime client is a Mock; errors are real botocore ClientErrors
so the failover policy sees the same shape it gets in production.
"""

import io
import json

import pytest
from botocore.exceptions import ClientError

from invoice_extractor.core.errors import ProviderError, RetryableProviderError
from invoice_extractor.models.invoice import DocumentPayload, MediaType
from invoice_extractor.services.bedrock import (
    BedrockInvoker,
    FailoverPolicy,
    FailureCategory,
    ModelFamily,
    build_request_body,
    detect_model_family,
    parse_response_body,
)

PRIMARY_MODEL = "anthropic.claude-3-5-sonnet-20240620-v1:0"
FALLBACK_MODEL = "amazon.nova-pro-v1:0"


def anthropic_response(text: str) -> dict:
    body = {"content": [{"type": "text", "text": text}]}
    return {"body": io.BytesIO(json.dumps(body).encode("utf-8"))}


PDF = DocumentPayload(media_type=MediaType.PDF, data=b"%PDF-1.4")
PNG = DocumentPayload(media_type=MediaType.PNG, data=b"\x89PNG")
JPEG = DocumentPayload(media_type=MediaType.JPEG, data=b"\xff\xd8")


def client_error(message: str, code: str = "ValidationException") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "InvokeModel")


class TestModelFamily:
    @pytest.mark.parametrize("model_id,family", [
        ("anthropic.claude-3-5-sonnet-20240620-v1:0", ModelFamily.ANTHROPIC),
        ("eu.anthropic.claude-3-7-sonnet-20250219-v1:0", ModelFamily.ANTHROPIC),
        ("us.amazon.nova-pro-v1:0", ModelFamily.NOVA),
        ("amazon.titan-text-express-v1", ModelFamily.TITAN_TEXT),
        ("meta.llama3-70b-instruct-v1:0", ModelFamily.TEXT),
    ])
    def test_detect(self, model_id, family):
        assert detect_model_family(model_id) == family


class TestRequestBody:
    def test_anthropic_orders_documents_then_prompt(self):
        body = build_request_body(PRIMARY_MODEL, "extract", [PDF, PNG])
        content = body["messages"][0]["content"]

        assert body["temperature"] == 0
        assert body["anthropic_version"] == "bedrock-2023-05-31"
        assert [block["type"] for block in content] == ["document", "image", "text"]
        assert content[0]["source"] == {"type": "base64", "media_type": "application/pdf", "data": "JVBERi0xLjQ="}
        assert content[1]["source"]["media_type"] == "image/png"
        assert content[2]["text"] == "extract"

    def test_nova_drops_pdfs(self):
        body = build_request_body("amazon.nova-lite-v1:0", "extract", [PDF, PNG, JPEG])
        content = body["messages"][0]["content"]

        assert body["inferenceConfig"]["temperature"] == 0
        assert content[0] == {"text": "extract"}
        assert [block["image"]["format"] for block in content[1:]] == ["png", "jpeg"]

    @pytest.mark.parametrize("model_id", ["amazon.titan-text-premier-v1:0", "cohere.command-r-v1:0"])
    def test_text_only_families(self, model_id):
        body = build_request_body(model_id, "extract", [PDF])
        assert body == {
            "inputText": "extract",
            "textGenerationConfig": {"maxTokenCount": 2048, "temperature": 0, "topP": 1},
        }


class TestParseResponseBody:
    def test_titan_results(self):
        assert parse_response_body({"results": [{"outputText": "{}"}]}) == "{}"

    def test_nova_output_message(self):
        decoded = {"output": {"message": {"content": [{"reasoning": "x"}, {"text": "hello"}]}}}
        assert parse_response_body(decoded) == "hello"

    def test_anthropic_content(self):
        decoded = {"content": [{"type": "tool_use"}, {"type": "text", "text": "hi"}]}
        assert parse_response_body(decoded) == "hi"

    def test_legacy_shapes(self):
        assert parse_response_body({"completion": "done"}) == "done"
        assert parse_response_body({"message": {"content": "msg"}}) == "msg"

    @pytest.mark.parametrize("decoded", [{}, {"content": []}, {"content": [{"type": "image"}]}, [], "text"])
    def test_no_text_yields_empty_string(self, decoded):
        assert parse_response_body(decoded) == ""


class TestFailoverPolicy:
    def test_known_phrase_is_model_unavailable(self):
        policy = FailoverPolicy()
        failure = policy.describe(client_error(
            "Invocation of model ID anthropic.claude-3-7 with on-demand throughput isn't supported."
        ))
        assert failure.code == "ValidationException"
        assert failure.category == FailureCategory.MODEL_UNAVAILABLE
        assert policy.should_fail_over(failure)

    def test_other_errors_are_not_eligible(self):
        policy = FailoverPolicy()
        failure = policy.describe(client_error("Rate exceeded", code="ThrottlingException"))
        assert failure.category == FailureCategory.OTHER
        assert not policy.should_fail_over(failure)

    def test_configured_error_code_is_eligible(self):
        policy = FailoverPolicy(phrases=(), error_codes=["ResourceNotFoundException"])
        failure = policy.describe(client_error("Model not found", code="ResourceNotFoundException"))
        assert policy.should_fail_over(failure)

    def test_phrases_are_swappable(self):
        policy = FailoverPolicy(phrases=["modèle indisponible"])
        assert policy.categorize(None, "Erreur: modèle indisponible") == FailureCategory.MODEL_UNAVAILABLE
        assert policy.categorize(None, "inference profile required") == FailureCategory.OTHER


class TestBedrockInvoker:
    def test_invoke_returns_text_and_model(self, bedrock_client, invoker):
        bedrock_client.invoke_model.return_value = anthropic_response('{"ok": true}')

        response = invoker.invoke(PRIMARY_MODEL, "extract", [PDF])

        assert response.text == '{"ok": true}'
        assert response.model_id == PRIMARY_MODEL
        kwargs = bedrock_client.invoke_model.call_args.kwargs
        assert kwargs["modelId"] == PRIMARY_MODEL
        assert kwargs["contentType"] == "application/json"
        assert json.loads(kwargs["body"])["messages"][0]["content"][0]["type"] == "document"

    def test_empty_response_is_not_an_error(self, bedrock_client, invoker):
        bedrock_client.invoke_model.return_value = {"body": io.BytesIO(b'{"content": []}')}
        assert invoker.invoke(PRIMARY_MODEL, "extract").text == ""

    def test_fails_over_on_inference_profile_error(self, bedrock_client, invoker):
        bedrock_client.invoke_model.side_effect = [
            client_error("Retry your request with the ID or ARN of an inference profile that contains this model."),
            anthropic_response("{}"),
        ]

        response = invoker.invoke(PRIMARY_MODEL, "extract", [PNG])

        assert response.model_id == FALLBACK_MODEL
        called_models = [c.kwargs["modelId"] for c in bedrock_client.invoke_model.call_args_list]
        assert called_models == [PRIMARY_MODEL, FALLBACK_MODEL]

    def test_fallback_request_uses_fallback_family(self, bedrock_client, invoker):
        bedrock_client.invoke_model.side_effect = [
            client_error("The model identifier is invalid"),
            {"body": io.BytesIO(b'{"output": {"message": {"content": [{"text": "{}"}]}}}')},
        ]

        invoker.invoke(PRIMARY_MODEL, "extract", [PNG])

        fallback_body = json.loads(bedrock_client.invoke_model.call_args_list[1].kwargs["body"])
        assert "inferenceConfig" in fallback_body

    def test_fails_over_on_non_botocore_error(self, bedrock_client, invoker):
        bedrock_client.invoke_model.side_effect = [
            Exception("Invocation with on-demand throughput isn't supported; use an inference profile"),
            anthropic_response("{}"),
        ]

        response = invoker.invoke(PRIMARY_MODEL, "extract")

        assert response.model_id == FALLBACK_MODEL
        assert bedrock_client.invoke_model.call_count == 2

    def test_non_botocore_error_becomes_provider_error(self, bedrock_client, invoker):
        bedrock_client.invoke_model.side_effect = RuntimeError("connection reset by peer")

        with pytest.raises(ProviderError) as exc_info:
            invoker.invoke(PRIMARY_MODEL, "extract")

        assert not isinstance(exc_info.value, RetryableProviderError)
        assert str(exc_info.value) == "connection reset by peer"
        assert exc_info.value.code is None
        assert bedrock_client.invoke_model.call_count == 1

    def test_other_errors_propagate_without_fallback(self, bedrock_client, invoker):
        bedrock_client.invoke_model.side_effect = client_error("Rate exceeded", code="ThrottlingException")

        with pytest.raises(ProviderError) as exc_info:
            invoker.invoke(PRIMARY_MODEL, "extract")

        assert not isinstance(exc_info.value, RetryableProviderError)
        assert exc_info.value.code == "ThrottlingException"
        assert exc_info.value.model_id == PRIMARY_MODEL
        assert bedrock_client.invoke_model.call_count == 1

    def test_fallback_failure_propagates(self, bedrock_client, invoker):
        bedrock_client.invoke_model.side_effect = [
            client_error("This model version has reached the end of its life."),
            client_error("Access denied", code="AccessDeniedException"),
        ]

        with pytest.raises(ProviderError) as exc_info:
            invoker.invoke(PRIMARY_MODEL, "extract")

        assert exc_info.value.model_id == FALLBACK_MODEL
        assert bedrock_client.invoke_model.call_count == 2

    def test_no_fallback_configured(self, bedrock_client):
        invoker = BedrockInvoker(client=bedrock_client)
        bedrock_client.invoke_model.side_effect = client_error("inference profile required")

        with pytest.raises(RetryableProviderError):
            invoker.invoke(PRIMARY_MODEL, "extract")
        assert bedrock_client.invoke_model.call_count == 1

    def test_fallback_same_as_primary_is_not_retried(self, bedrock_client):
        invoker = BedrockInvoker(client=bedrock_client, fallback_model_id=PRIMARY_MODEL)
        bedrock_client.invoke_model.side_effect = client_error("inference profile required")

        with pytest.raises(ProviderError):
            invoker.invoke(PRIMARY_MODEL, "extract")
        assert bedrock_client.invoke_model.call_count == 1

    def test_non_json_body_is_a_provider_error(self, bedrock_client, invoker):
        bedrock_client.invoke_model.return_value = {"body": io.BytesIO(b"<html>gateway timeout</html>")}

        with pytest.raises(ProviderError):
            invoker.invoke(PRIMARY_MODEL, "extract")
