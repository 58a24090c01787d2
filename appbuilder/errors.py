from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    TRANSPORT = "transport"
    VENDOR = "vendor"
    CONTRACT_VIOLATION = "contract_violation"
    UNKNOWN = "unknown"


class ErrorKind(str, Enum):
    EMPTY_INPUT = "EmptyInput"
    TOO_SHORT = "TooShort"
    TOO_LONG = "TooLong"
    MISSING_CREDENTIAL = "MissingCredential"
    INVALID_CREDENTIAL_FORMAT = "InvalidCredentialFormat"
    INVALID_CREDENTIAL = "InvalidCredential"
    RATE_LIMITED = "RateLimited"
    QUOTA_EXCEEDED = "QuotaExceeded"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    TIMEOUT = "Timeout"
    CANCELLED = "Cancelled"
    NETWORK_ERROR = "NetworkError"
    MALFORMED_RESPONSE = "MalformedResponse"
    INVALID_GENERATED_CODE = "InvalidGeneratedCode"
    UNKNOWN = "Unknown"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]


_CATEGORIES: Dict[ErrorKind, ErrorCategory] = {
    ErrorKind.EMPTY_INPUT: ErrorCategory.VALIDATION,
    ErrorKind.TOO_SHORT: ErrorCategory.VALIDATION,
    ErrorKind.TOO_LONG: ErrorCategory.VALIDATION,
    ErrorKind.MISSING_CREDENTIAL: ErrorCategory.VALIDATION,
    ErrorKind.INVALID_CREDENTIAL_FORMAT: ErrorCategory.VALIDATION,
    ErrorKind.TIMEOUT: ErrorCategory.TRANSPORT,
    ErrorKind.CANCELLED: ErrorCategory.TRANSPORT,
    ErrorKind.NETWORK_ERROR: ErrorCategory.TRANSPORT,
    ErrorKind.INVALID_CREDENTIAL: ErrorCategory.VENDOR,
    ErrorKind.RATE_LIMITED: ErrorCategory.VENDOR,
    ErrorKind.QUOTA_EXCEEDED: ErrorCategory.VENDOR,
    ErrorKind.AUTHENTICATION_FAILED: ErrorCategory.VENDOR,
    ErrorKind.MALFORMED_RESPONSE: ErrorCategory.CONTRACT_VIOLATION,
    ErrorKind.INVALID_GENERATED_CODE: ErrorCategory.CONTRACT_VIOLATION,
    ErrorKind.UNKNOWN: ErrorCategory.UNKNOWN,
}

# Transient throttling is the only failure worth an automatic backoff loop
RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED})


class ClassifiedError(Exception):
    """A generation failure with a kind the caller can branch on.

    ``message`` is a single line suitable for direct display. ``status_code``
    and ``vendor_status`` keep the original HTTP status / vendor error code when
    one was available.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        retryable: Optional[bool] = None,
        *,
        status_code: Optional[int] = None,
        vendor_status: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retryable = kind in RETRYABLE_KINDS if retryable is None else bool(retryable)
        self.status_code = status_code
        self.vendor_status = vendor_status

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "kind": self.kind.value,
            "category": self.category.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.status_code is not None:
            out["status_code"] = self.status_code
        if self.vendor_status:
            out["vendor_status"] = self.vendor_status
        return out

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r}, retryable={self.retryable})"


class InputValidationError(ClassifiedError):
    """Raised by the input validators; never retried."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(kind, message, retryable=False)


class AdapterErrorKind(str, Enum):
    UNAUTHORIZED = "Unauthorized"
    INVALID_ARGUMENT = "InvalidArgument"
    RESOURCE_EXHAUSTED = "ResourceExhausted"
    PERMISSION_DENIED = "PermissionDenied"
    UNAVAILABLE = "Unavailable"
    MALFORMED_RESPONSE = "MalformedResponse"


class ModelClientError(Exception):
    """Raised by a model client for a single failed completion call.

    ``kind`` is None when the vendor reply did not map onto a known failure;
    the classifier then falls back to the message text.
    """

    def __init__(
        self,
        message: str,
        kind: Optional[AdapterErrorKind] = None,
        *,
        status_code: Optional[int] = None,
        vendor_status: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.vendor_status = vendor_status


_CREDENTIAL_RE = re.compile(r"api key|INVALID_ARGUMENT|\b401\b", re.IGNORECASE)
_RATE_LIMIT_RE = re.compile(r"\b429\b|rate limit|RESOURCE_EXHAUSTED|too many requests", re.IGNORECASE)
_QUOTA_RE = re.compile(
    r"quota (?:has been |was )?exceeded|exceeded (?:your |the )?(?:current |daily |monthly )?quota"
    r"|insufficient[_ ]quota|out of quota",
    re.IGNORECASE,
)
# Per-minute throttles also mention quota; a retry hint means the window resets
_THROTTLE_HINT_RE = re.compile(r"rate limit|too many requests|per minute|retry", re.IGNORECASE)
_AUTH_RE = re.compile(r"PERMISSION_DENIED|UNAUTHENTICATED|\b403\b", re.IGNORECASE)
_NETWORK_RE = re.compile(
    r"network|fetch|connection (?:refused|reset|aborted|error)|connecterror|name resolution|unreachable",
    re.IGNORECASE,
)


def _signal_suffix(status_code: Optional[int], vendor_status: Optional[str]) -> str:
    bits = []
    if status_code is not None:
        bits.append(f"HTTP {status_code}")
    if vendor_status:
        bits.append(vendor_status)
    return f" ({' '.join(bits)})" if bits else ""


def _one_line(text: str, limit: int = 200) -> str:
    line = " ".join((text or "").split())
    if len(line) > limit:
        line = line[: limit - 3].rstrip() + "..."
    return line


def _quota_kind(text: str) -> Optional[ErrorKind]:
    if not _QUOTA_RE.search(text):
        return None
    return ErrorKind.RATE_LIMITED if _THROTTLE_HINT_RE.search(text) else ErrorKind.QUOTA_EXCEEDED


def _build(kind: ErrorKind, raw: str, status_code: Optional[int], vendor_status: Optional[str]) -> ClassifiedError:
    suffix = _signal_suffix(status_code, vendor_status)
    if kind is ErrorKind.INVALID_CREDENTIAL:
        msg = "Invalid API key. Please check your Gemini API key in Settings."
    elif kind is ErrorKind.RATE_LIMITED:
        msg = "Rate limit exceeded. Please wait a few seconds and try again."
    elif kind is ErrorKind.QUOTA_EXCEEDED:
        msg = "API quota exceeded. Check your usage and limits before trying again."
    elif kind is ErrorKind.AUTHENTICATION_FAILED:
        msg = "Authentication failed. Please check your API key in Settings."
    elif kind is ErrorKind.NETWORK_ERROR:
        msg = f"Network error while contacting the AI model: {_one_line(raw)}"
    elif kind is ErrorKind.MALFORMED_RESPONSE:
        msg = f"Invalid response from AI model: {_one_line(raw)}"
    else:
        msg = f"Failed to generate code: {_one_line(raw) or 'unknown error'}"
    return ClassifiedError(kind, msg + suffix, status_code=status_code, vendor_status=vendor_status)


_ADAPTER_KINDS: Dict[AdapterErrorKind, ErrorKind] = {
    AdapterErrorKind.UNAUTHORIZED: ErrorKind.INVALID_CREDENTIAL,
    AdapterErrorKind.INVALID_ARGUMENT: ErrorKind.INVALID_CREDENTIAL,
    AdapterErrorKind.RESOURCE_EXHAUSTED: ErrorKind.RATE_LIMITED,
    AdapterErrorKind.PERMISSION_DENIED: ErrorKind.AUTHENTICATION_FAILED,
    AdapterErrorKind.UNAVAILABLE: ErrorKind.NETWORK_ERROR,
    AdapterErrorKind.MALFORMED_RESPONSE: ErrorKind.MALFORMED_RESPONSE,
}


def _kind_from_message(text: str) -> ErrorKind:
    if _CREDENTIAL_RE.search(text):
        return ErrorKind.INVALID_CREDENTIAL
    quota = _quota_kind(text)
    if quota is not None:
        return quota
    if _RATE_LIMIT_RE.search(text):
        return ErrorKind.RATE_LIMITED
    if _AUTH_RE.search(text):
        return ErrorKind.AUTHENTICATION_FAILED
    if _NETWORK_RE.search(text):
        return ErrorKind.NETWORK_ERROR
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ClassifiedError:
    """Map any raw failure onto a ClassifiedError.

    Structured adapter codes win; message matching is the fallback for
    failures that carry nothing better.
    """
    if isinstance(exc, ClassifiedError):
        return exc
    raw = str(exc) or type(exc).__name__
    if isinstance(exc, ModelClientError):
        status_code, vendor_status = exc.status_code, exc.vendor_status
        kind = _ADAPTER_KINDS.get(exc.kind) if exc.kind is not None else None
        if kind is ErrorKind.RATE_LIMITED:
            kind = _quota_kind(raw) or kind
        if kind is None:
            kind = _kind_from_message(" ".join([raw, str(status_code or ""), vendor_status or ""]))
        return _build(kind, raw, status_code, vendor_status)
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return _build(ErrorKind.NETWORK_ERROR, raw, None, None)
    return _build(_kind_from_message(raw), raw, None, None)


# Presentation table for the calling layer: (title, message, suggestion, severity)
ERROR_MESSAGES: Dict[ErrorKind, Dict[str, str]] = {
    ErrorKind.MISSING_CREDENTIAL: {
        "title": "API Key Required",
        "message": "Please configure your Gemini API key in Settings before generating an app.",
        "suggestion": "Open Settings and enter your API key.",
        "severity": "warning",
    },
    ErrorKind.INVALID_CREDENTIAL_FORMAT: {
        "title": "Invalid API Key",
        "message": "The API key you provided does not look valid.",
        "suggestion": "Check that the whole key was pasted. You can get a new key from Google AI Studio.",
        "severity": "warning",
    },
    ErrorKind.INVALID_CREDENTIAL: {
        "title": "Invalid API Key",
        "message": "The API key you provided is invalid or expired.",
        "suggestion": "Please check your API key and try again. You can get a new key from Google AI Studio.",
        "severity": "error",
    },
    ErrorKind.AUTHENTICATION_FAILED: {
        "title": "Authentication Failed",
        "message": "The API rejected your credentials.",
        "suggestion": "Check that the key is enabled for the Gemini API.",
        "severity": "error",
    },
    ErrorKind.RATE_LIMITED: {
        "title": "Rate Limit Exceeded",
        "message": "You've made too many requests. Please wait a moment before trying again.",
        "suggestion": "Wait a few seconds and try again. Consider spacing out your requests.",
        "severity": "warning",
    },
    ErrorKind.QUOTA_EXCEEDED: {
        "title": "Quota Exceeded",
        "message": "Your API quota has been exceeded.",
        "suggestion": "Check your Google Cloud Console to see your usage and limits.",
        "severity": "error",
    },
    ErrorKind.NETWORK_ERROR: {
        "title": "Connection Error",
        "message": "Failed to connect to the API. Please check your internet connection.",
        "suggestion": "Check your internet connection and try again.",
        "severity": "error",
    },
    ErrorKind.TIMEOUT: {
        "title": "Request Timed Out",
        "message": "The AI model did not respond in time.",
        "suggestion": "Try again, or simplify the description.",
        "severity": "warning",
    },
    ErrorKind.CANCELLED: {
        "title": "Cancelled",
        "message": "Generation was cancelled.",
        "suggestion": "",
        "severity": "info",
    },
    ErrorKind.EMPTY_INPUT: {
        "title": "Empty Description",
        "message": "Please describe what application you want to create.",
        "suggestion": 'Try something like "Create a todo list app" or "Build a calculator".',
        "severity": "warning",
    },
    ErrorKind.TOO_SHORT: {
        "title": "Description Too Short",
        "message": "Your description is too short. Please provide more details.",
        "suggestion": "Add more details about what you want to create.",
        "severity": "warning",
    },
    ErrorKind.TOO_LONG: {
        "title": "Description Too Long",
        "message": "Your description is too long. Please keep it under 2000 characters.",
        "suggestion": "Simplify your description and focus on the main features.",
        "severity": "warning",
    },
    ErrorKind.MALFORMED_RESPONSE: {
        "title": "Invalid Response",
        "message": "The AI model returned an empty or unreadable response.",
        "suggestion": "Try again in a moment.",
        "severity": "error",
    },
    ErrorKind.INVALID_GENERATED_CODE: {
        "title": "Invalid Code Generated",
        "message": "The generated code is not valid HTML.",
        "suggestion": "Try a different description or try again.",
        "severity": "error",
    },
    ErrorKind.UNKNOWN: {
        "title": "Code Generation Failed",
        "message": "Failed to generate code. Please try again.",
        "suggestion": "Try a simpler description or check your API key.",
        "severity": "error",
    },
}

_SETTINGS_KINDS = frozenset(
    {
        ErrorKind.MISSING_CREDENTIAL,
        ErrorKind.INVALID_CREDENTIAL_FORMAT,
        ErrorKind.INVALID_CREDENTIAL,
        ErrorKind.AUTHENTICATION_FAILED,
    }
)


def describe_error(exc: BaseException) -> Dict[str, str]:
    """Return {title, message, suggestion, severity} for display."""
    err = classify_error(exc)
    entry = dict(ERROR_MESSAGES.get(err.kind) or ERROR_MESSAGES[ErrorKind.UNKNOWN])
    if err.kind is ErrorKind.UNKNOWN:
        # Nothing better to show than what actually went wrong
        entry["message"] = err.message
    return entry


def format_error_for_display(exc: BaseException) -> str:
    entry = describe_error(exc)
    return f"{entry['title']}: {entry['message']}"


def recovery_actions(exc: BaseException) -> List[Dict[str, str]]:
    """UI actions worth offering for a failure; empty for user cancellation."""
    err = classify_error(exc)
    if err.kind is ErrorKind.CANCELLED:
        return []
    entry = describe_error(err)
    actions: List[Dict[str, str]] = []
    if entry["severity"] == "warning" and err.kind not in _SETTINGS_KINDS:
        actions.append({"label": "Try Again", "action": "retry"})
    if err.kind in _SETTINGS_KINDS:
        actions.append({"label": "Open Settings", "action": "open_settings"})
    if err.kind is ErrorKind.NETWORK_ERROR:
        actions.append({"label": "Check Connection", "action": "check_connection"})
    actions.append({"label": "Dismiss", "action": "dismiss"})
    return actions
