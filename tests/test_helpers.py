"""
Tests for helper utilities.
"""

import re

import pytest

from profile_migration.utils.helpers import (
    format_duration,
    generate_session_id,
    normalize_host_name,
    safe_filename,
    sanitize_dict,
)


def test_generate_session_id():
    session_id = generate_session_id()

    assert re.fullmatch(r"\d{8}_\d{6}_[0-9a-f]{8}", session_id)
    assert generate_session_id() != session_id


@pytest.mark.parametrize("raw,expected", [
    ("old-pc01", "OLD-PC01"),
    ("  Old-PC01 ", "OLD-PC01"),
    ("old-pc01.corp.example.com", "OLD-PC01"),
    ("", ""),
])
def test_normalize_host_name(raw, expected):
    assert normalize_host_name(raw) == expected


def test_format_duration():
    assert format_duration(42) == "42.0s"
    assert format_duration(90) == "1.5m"
    assert format_duration(5400) == "1.5h"


def test_safe_filename():
    assert safe_filename('migration OLD/PC01:x') == "migration_OLD_PC01_x"


def test_sanitize_dict():
    data = {
        "site": {"username": "CORP\\svc", "password": "pw", "bearer_token": "abc"},
        "notification": {"recipients": ["a@corp.example.com"], "password": None},
    }

    sanitized = sanitize_dict(data)

    assert sanitized["site"]["username"] == "CORP\\svc"
    assert sanitized["site"]["password"] == "***MASKED***"
    assert sanitized["site"]["bearer_token"] == "***MASKED***"
    assert sanitized["notification"]["password"] is None
    assert sanitized["notification"]["recipients"] == ["a@corp.example.com"]
