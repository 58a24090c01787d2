import pytest

from appbuilder.errors import ErrorKind, InputValidationError
from appbuilder.validators import validate_credential, validate_description


def test_description_is_trimmed():
    assert validate_description("   Create a todo list app \n") == "Create a todo list app"


@pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
def test_empty_description_rejected(text):
    with pytest.raises(InputValidationError) as ei:
        validate_description(text)
    assert ei.value.kind is ErrorKind.EMPTY_INPUT
    assert ei.value.retryable is False


def test_description_length_bounds_are_inclusive():
    assert validate_description("abcde") == "abcde"
    assert validate_description("x" * 2000) == "x" * 2000
    # Surrounding whitespace does not count toward the limit
    assert validate_description("  " + "y" * 2000 + "  ") == "y" * 2000


def test_short_description_rejected():
    with pytest.raises(InputValidationError) as ei:
        validate_description("  abc  ")
    assert ei.value.kind is ErrorKind.TOO_SHORT
    assert "too short" in ei.value.message


def test_long_description_rejected():
    with pytest.raises(InputValidationError) as ei:
        validate_description("z" * 2001)
    assert ei.value.kind is ErrorKind.TOO_LONG
    assert "2000" in ei.value.message


def test_credential_is_trimmed():
    assert validate_credential("  AIzaSyValidLookingKey123456 ") == "AIzaSyValidLookingKey123456"
    assert validate_credential("0123456789") == "0123456789"


@pytest.mark.parametrize("text", ["", "    ", None])
def test_missing_credential(text):
    with pytest.raises(InputValidationError) as ei:
        validate_credential(text)
    assert ei.value.kind is ErrorKind.MISSING_CREDENTIAL


def test_short_credential():
    with pytest.raises(InputValidationError) as ei:
        validate_credential("  short  ")
    assert ei.value.kind is ErrorKind.INVALID_CREDENTIAL_FORMAT
