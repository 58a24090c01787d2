from __future__ import annotations

from appbuilder.errors import ErrorKind, InputValidationError

MIN_DESCRIPTION_LENGTH = 5
MAX_DESCRIPTION_LENGTH = 2000
MIN_CREDENTIAL_LENGTH = 10


def validate_description(text: str | None) -> str:
    """Return the trimmed description or raise InputValidationError.

    Lengths are measured after trimming; the bounds are inclusive.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        raise InputValidationError(ErrorKind.EMPTY_INPUT, "Description is required")
    if len(trimmed) < MIN_DESCRIPTION_LENGTH:
        raise InputValidationError(
            ErrorKind.TOO_SHORT,
            f"Description is too short. Please provide at least {MIN_DESCRIPTION_LENGTH} characters.",
        )
    if len(trimmed) > MAX_DESCRIPTION_LENGTH:
        raise InputValidationError(
            ErrorKind.TOO_LONG,
            f"Description is too long. Please keep it under {MAX_DESCRIPTION_LENGTH} characters.",
        )
    return trimmed


def validate_credential(text: str | None) -> str:
    trimmed = (text or "").strip()
    if not trimmed:
        raise InputValidationError(ErrorKind.MISSING_CREDENTIAL, "API key is required")
    if len(trimmed) < MIN_CREDENTIAL_LENGTH:
        raise InputValidationError(ErrorKind.INVALID_CREDENTIAL_FORMAT, "API key appears to be invalid")
    return trimmed
