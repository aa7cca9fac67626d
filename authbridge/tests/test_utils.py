"""
Tests for email normalisation, password policy and the JSON log formatter.
"""

import json
import logging
import sys

import pytest

from authbridge.core.exceptions import ValidationError
from authbridge.core.logging import JSONFormatter
from authbridge.utils.email import normalize_email
from authbridge.utils.password_policy import validate_password_strength


def test_normalize_email():
    assert normalize_email("  Ada@Example.COM ") == "ada@example.com"


@pytest.mark.parametrize("value", ["", "   ", None, "no-at-sign"])
def test_normalize_email_rejects(value):
    with pytest.raises(ValidationError) as exc_info:
        normalize_email(value)
    assert exc_info.value.rule == "email"


def test_password_policy_accepts_strong_password():
    validate_password_strength("Secret123")


def test_password_policy_reports_first_failure_only():
    with pytest.raises(ValidationError) as exc_info:
        validate_password_strength("abc")
    assert exc_info.value.rule == "min_length"
    assert "8 characters" in exc_info.value.message
    assert exc_info.value.details == {"rule": "min_length"}


def test_password_policy_min_length_override():
    validate_password_strength("Ab1", min_length=3)


def test_password_policy_zero_min_length_is_honoured():
    # 0 is an explicit override, not "use the configured default"
    validate_password_strength("Ab1", min_length=0)


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord(
        "authbridge.test", logging.INFO, __file__, 1, "Shell account refreshed", None, None
    )
    record.email = "a@x.com"
    record.new_user_id = "sb-1"

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "Shell account refreshed"
    assert data["level"] == "INFO"
    assert data["email"] == "a@x.com"
    assert data["new_user_id"] == "sb-1"


def test_json_formatter_single_line_exception():
    try:
        raise RuntimeError("line one\nline two")
    except RuntimeError:
        record = logging.LogRecord(
            "authbridge.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )

    output = JSONFormatter().format(record)

    assert "\n" not in output
    assert json.loads(output)["exc_type"] == "RuntimeError"
