from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from appbuilder.errors import ClassifiedError, ErrorKind

_LEADING_FENCE_RE = re.compile(r"\A\s*```[A-Za-z0-9_.+-]*[ \t]*(?:\r?\n)?")
_TRAILING_FENCE_RE = re.compile(r"(?:\r?\n)?[ \t]*```\s*\Z")
_DOCTYPE_RE = re.compile(r"<!doctype\b", re.IGNORECASE)
_HTML_OPEN_RE = re.compile(r"<html(?=[\s>/])", re.IGNORECASE)
_BODY_OPEN_RE = re.compile(r"<body(?=[\s>/])", re.IGNORECASE)


def extract_gemini_text(payload: Dict[str, Any]) -> Optional[str]:
    """Join the text parts of the first candidate that has any."""
    candidates = payload.get("candidates") or []
    if not isinstance(candidates, list):
        return None
    for cand in candidates:
        if not isinstance(cand, dict):
            continue
        content = cand.get("content") or {}
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            continue
        texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        joined = "".join(texts)
        if joined.strip():
            return joined
    return None


def extract_text(response: Any) -> str:
    """Pull the completion text out of a model response.

    Accepts an object with a ``text`` attribute, a ``{"text": ...}`` mapping,
    or a raw ``generateContent`` payload. Raises MalformedResponse when the
    response is absent or carries no text.
    """
    if response is None:
        raise ClassifiedError(
            ErrorKind.MALFORMED_RESPONSE,
            "Invalid response from AI model: missing response object",
        )
    if isinstance(response, dict):
        text = response.get("text")
        if text is None and "candidates" in response:
            text = extract_gemini_text(response)
    else:
        text = getattr(response, "text", None)
    if not isinstance(text, str) or not text.strip():
        raise ClassifiedError(
            ErrorKind.MALFORMED_RESPONSE,
            "Invalid response from AI model: no text content in response",
        )
    return text


def strip_code_fences(text: str) -> str:
    """Remove surrounding Markdown code fences and trim whitespace.

    Fences are peeled until none remain at either end, so applying this twice
    gives the same result as applying it once.
    """
    out = (text or "").strip()
    while True:
        peeled = _TRAILING_FENCE_RE.sub("", _LEADING_FENCE_RE.sub("", out, count=1), count=1).strip()
        if peeled == out:
            return out
        out = peeled


def extract_html_document(text: str) -> str:
    """Return the HTML document contained in normalized model output.

    Preamble text leaked in front of the document type declaration (or the
    opening <html> tag when there is no declaration) is dropped. Output with
    neither marker, or with no <body> tag, raises InvalidGeneratedCode.
    """
    code = (text or "").strip()
    starts = [m for m in (_DOCTYPE_RE.search(code), _HTML_OPEN_RE.search(code)) if m is not None]
    # Earliest marker wins; a doctype string inside a script is not the start
    match = min(starts, key=lambda m: m.start(), default=None)
    if match is None:
        raise ClassifiedError(
            ErrorKind.INVALID_GENERATED_CODE,
            "Generated code does not appear to be valid HTML: no <!DOCTYPE> or <html> tag found",
        )
    if match.start() > 0:
        code = code[match.start():]
    if not _BODY_OPEN_RE.search(code):
        raise ClassifiedError(
            ErrorKind.INVALID_GENERATED_CODE,
            "Generated code does not appear to be valid HTML: missing <body> tag",
        )
    return code


def clean_generated_code(text: str) -> str:
    return extract_html_document(strip_code_fences(text))


def error_details_from_body(body: str) -> Dict[str, Any]:
    """Best-effort read of a Google API error envelope: {"error": {code, message, status}}."""
    try:
        data = json.loads(body or "")
    except ValueError:
        return {}
    if isinstance(data, list) and data:
        data = data[0]
    err = data.get("error") if isinstance(data, dict) else None
    if not isinstance(err, dict):
        return {}
    out: Dict[str, Any] = {}
    if isinstance(err.get("message"), str):
        out["message"] = err["message"]
    if isinstance(err.get("status"), str):
        out["status"] = err["status"]
    if isinstance(err.get("code"), int):
        out["code"] = err["code"]
    return out
