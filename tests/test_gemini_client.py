import asyncio
import json

import httpx
import pytest

from appbuilder import llm_client
from appbuilder.errors import AdapterErrorKind, ErrorKind, ModelClientError, classify_error
from appbuilder.llm_client import GeminiClient, SamplingConfig

KEY = "AIzaSyValidLookingKey123456"
DOC = "<!DOCTYPE html><html><body>OK</body></html>"


def _client_with(handler, captured=None):
    def _wrapped(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return handler(request)

    async def go(prompt, model, sampling):
        async with httpx.AsyncClient(transport=httpx.MockTransport(_wrapped)) as http:
            client = GeminiClient(KEY, base_url="https://example.test/v1beta", http_client=http)
            return await client.complete(prompt, model, sampling)

    return go


def test_complete_posts_generate_content_and_returns_text():
    captured = []
    payload = {"candidates": [{"content": {"parts": [{"text": DOC}]}, "finishReason": "STOP"}]}
    go = _client_with(lambda req: httpx.Response(200, json=payload), captured)

    out = asyncio.run(go("Build a timer", "models/gemini-2.5-flash", SamplingConfig(temperature=0.1, max_output_tokens=2048)))

    assert out.text == DOC
    assert out.finish_reason == "STOP"
    req = captured[0]
    assert str(req.url) == "https://example.test/v1beta/models/gemini-2.5-flash:generateContent"
    assert req.headers["x-goog-api-key"] == KEY
    body = json.loads(req.content)
    assert body["contents"][0]["parts"][0]["text"] == "Build a timer"
    assert body["generationConfig"] == {"temperature": 0.1, "maxOutputTokens": 2048}


def test_request_body_omits_token_cap_when_unset():
    body = llm_client.build_request_body("p", SamplingConfig(temperature=0.1))
    assert body["generationConfig"] == {"temperature": 0.1}


@pytest.mark.parametrize(
    "status, vendor_status, kind",
    [
        (400, "INVALID_ARGUMENT", AdapterErrorKind.INVALID_ARGUMENT),
        (401, "UNAUTHENTICATED", AdapterErrorKind.UNAUTHORIZED),
        (403, "PERMISSION_DENIED", AdapterErrorKind.PERMISSION_DENIED),
        (429, "RESOURCE_EXHAUSTED", AdapterErrorKind.RESOURCE_EXHAUSTED),
        (503, "UNAVAILABLE", AdapterErrorKind.UNAVAILABLE),
        (500, "INTERNAL", None),
    ],
)
def test_http_errors_carry_structured_kind(status, vendor_status, kind):
    envelope = {"error": {"code": status, "message": "upstream said no", "status": vendor_status}}
    go = _client_with(lambda req: httpx.Response(status, json=envelope))

    with pytest.raises(ModelClientError) as ei:
        asyncio.run(go("p", "gemini-2.5-flash", SamplingConfig()))

    err = ei.value
    assert err.kind is kind
    assert err.status_code == status
    assert err.vendor_status == vendor_status
    assert f"HTTP {status}" in err.message and "upstream said no" in err.message


def test_http_error_without_envelope_uses_status_code():
    go = _client_with(lambda req: httpx.Response(429, text="slow down"))
    with pytest.raises(ModelClientError) as ei:
        asyncio.run(go("p", "m", SamplingConfig()))
    assert ei.value.kind is AdapterErrorKind.RESOURCE_EXHAUSTED
    assert ei.value.vendor_status is None


def test_transport_failure_is_unavailable():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    go = _client_with(boom)
    with pytest.raises(ModelClientError) as ei:
        asyncio.run(go("p", "m", SamplingConfig()))
    assert ei.value.kind is AdapterErrorKind.UNAVAILABLE
    assert "ConnectError" in ei.value.message


def test_non_json_body_is_malformed():
    go = _client_with(lambda req: httpx.Response(200, text="<html>proxy page</html>"))
    with pytest.raises(ModelClientError) as ei:
        asyncio.run(go("p", "m", SamplingConfig()))
    assert ei.value.kind is AdapterErrorKind.MALFORMED_RESPONSE


def test_blocked_prompt_without_candidates_is_malformed():
    go = _client_with(lambda req: httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}))
    with pytest.raises(ModelClientError) as ei:
        asyncio.run(go("p", "m", SamplingConfig()))
    assert ei.value.kind is AdapterErrorKind.MALFORMED_RESPONSE
    assert "SAFETY" in ei.value.message


def test_status_reports_server_key_presence(monkeypatch):
    monkeypatch.setattr(llm_client.config, "GEMINI_API_KEY", "")
    assert llm_client.status()["has_token"] is False
    monkeypatch.setattr(llm_client.config, "GEMINI_API_KEY", KEY)
    body = llm_client.status()
    assert body["provider"] == "gemini" and body["has_token"] is True


def test_unrecognised_vendor_status_is_not_a_credential_error():
    envelope = {
        "error": {
            "code": 400,
            "message": "User location is not supported for the API use.",
            "status": "FAILED_PRECONDITION",
        }
    }
    go = _client_with(lambda req: httpx.Response(400, json=envelope))

    with pytest.raises(ModelClientError) as ei:
        asyncio.run(go("p", "m", SamplingConfig()))

    assert ei.value.kind is None
    assert ei.value.vendor_status == "FAILED_PRECONDITION"
    assert classify_error(ei.value).kind is ErrorKind.UNKNOWN
