"""Model client adapters.

One request, one reply. Clients here never retry or sleep: the generator owns
retry, timeout and cancellation so it can race a call independently of the
transport.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from appbuilder import config
from appbuilder.errors import AdapterErrorKind, ModelClientError
from appbuilder.llm_parsing import error_details_from_body, extract_gemini_text

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SamplingConfig:
    temperature: float = 0.1
    max_output_tokens: Optional[int] = None


@dataclass(frozen=True)
class Completion:
    text: str
    model: str
    finish_reason: Optional[str] = None


class ModelClient(Protocol):
    async def complete(self, prompt: str, model_name: str, sampling: SamplingConfig) -> Completion:
        ...


_STATUS_KINDS: Dict[int, AdapterErrorKind] = {
    400: AdapterErrorKind.INVALID_ARGUMENT,
    401: AdapterErrorKind.UNAUTHORIZED,
    403: AdapterErrorKind.PERMISSION_DENIED,
    429: AdapterErrorKind.RESOURCE_EXHAUSTED,
    502: AdapterErrorKind.UNAVAILABLE,
    503: AdapterErrorKind.UNAVAILABLE,
    504: AdapterErrorKind.UNAVAILABLE,
}

_VENDOR_KINDS: Dict[str, AdapterErrorKind] = {
    "INVALID_ARGUMENT": AdapterErrorKind.INVALID_ARGUMENT,
    "UNAUTHENTICATED": AdapterErrorKind.UNAUTHORIZED,
    "PERMISSION_DENIED": AdapterErrorKind.PERMISSION_DENIED,
    "RESOURCE_EXHAUSTED": AdapterErrorKind.RESOURCE_EXHAUSTED,
    "UNAVAILABLE": AdapterErrorKind.UNAVAILABLE,
}


def _model_path(model_name: str) -> str:
    name = (model_name or "").strip()
    if name.startswith("models/"):
        name = name[len("models/"):]
    return name


def build_request_body(prompt: str, sampling: SamplingConfig) -> Dict[str, Any]:
    generation_config: Dict[str, Any] = {"temperature": sampling.temperature}
    if sampling.max_output_tokens:
        generation_config["maxOutputTokens"] = int(sampling.max_output_tokens)
    return {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": generation_config,
    }


class GeminiClient:
    """Adapter for the Gemini ``generateContent`` REST endpoint.

    ``timeout`` is the transport-level bound in seconds; None leaves timing to
    the caller. Pass ``http_client`` to share a connection pool (it is not
    closed here).
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = (base_url or config.GEMINI_API_BASE).rstrip("/")
        self.timeout = timeout
        self._http = http_client

    def endpoint(self, model_name: str) -> str:
        return f"{self.base_url}/models/{_model_path(model_name)}:generateContent"

    async def complete(self, prompt: str, model_name: str, sampling: SamplingConfig) -> Completion:
        url = self.endpoint(model_name)
        headers = {"x-goog-api-key": self._api_key, "Content-Type": "application/json"}
        body = build_request_body(prompt, sampling)
        log.debug("gemini: POST model=%s prompt_chars=%d", model_name, len(prompt))
        try:
            if self._http is not None:
                resp = await self._http.post(url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(url, json=body, headers=headers)
        except httpx.TransportError as exc:
            log.warning("gemini: transport error %r", exc)
            raise ModelClientError(
                f"Network error: {type(exc).__name__}: {exc}",
                AdapterErrorKind.UNAVAILABLE,
            ) from exc

        if resp.status_code != 200:
            raise self._http_error(resp)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise ModelClientError(
                "Gemini returned a non-JSON body",
                AdapterErrorKind.MALFORMED_RESPONSE,
                status_code=resp.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise ModelClientError(
                "Gemini returned an unexpected payload shape",
                AdapterErrorKind.MALFORMED_RESPONSE,
                status_code=resp.status_code,
            )

        text = extract_gemini_text(payload)
        if not text:
            reason = (payload.get("promptFeedback") or {}).get("blockReason")
            detail = f" (blockReason={reason})" if reason else ""
            raise ModelClientError(
                f"No text content in response{detail}",
                AdapterErrorKind.MALFORMED_RESPONSE,
                status_code=resp.status_code,
            )
        finish_reason = None
        candidates = payload.get("candidates") or []
        if candidates and isinstance(candidates[0], dict):
            finish_reason = candidates[0].get("finishReason")
        return Completion(text=text, model=model_name, finish_reason=finish_reason)

    @staticmethod
    def _http_error(resp: httpx.Response) -> ModelClientError:
        raw = resp.text or ""
        details = error_details_from_body(raw)
        vendor_status = details.get("status")
        message = details.get("message") or raw[:400] or resp.reason_phrase
        # An unrecognised vendor status is left to message classification
        if vendor_status:
            kind = _VENDOR_KINDS.get(vendor_status)
        else:
            kind = _STATUS_KINDS.get(resp.status_code)
        log.warning("gemini: HTTP %s status=%s", resp.status_code, vendor_status or "-")
        return ModelClientError(
            f"Gemini HTTP {resp.status_code}: {message}",
            kind,
            status_code=resp.status_code,
            vendor_status=vendor_status,
        )


def status() -> Dict[str, Any]:
    return {
        "provider": "gemini",
        "model": config.GEMINI_MODEL,
        "has_token": bool(config.GEMINI_API_KEY),
    }
