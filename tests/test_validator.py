"""
Tests for card id normalization and validation.
"""
from __future__ import annotations

import pytest

from card_registry.app.core.errors import ValidationError
from card_registry.app.services.validator import clean_card_id, normalize, validate


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1234567890abcdef", "1234567890ABCDEF"),
        ("1234 5678 90AB cdef", "1234567890ABCDEF"),
        ("  12\t34\n5678 90ab CDEF ", "1234567890ABCDEF"),
        ("", ""),
        ("not-a-card", "NOT-A-CARD"),
    ],
)
def test_normalize(raw, expected):
    assert normalize(raw) == expected


@pytest.mark.parametrize("raw", ["a b\tc", " x y z", "MiXeD case\r\n"])
def test_normalize_is_uppercase_without_whitespace(raw):
    result = normalize(raw)
    assert result == result.upper()
    assert not any(ch.isspace() for ch in result)


@pytest.mark.parametrize("value", ["1234567890ABCDEF", "0000000000000000", "FFFFFFFFFFFFFFFF"])
def test_validate_accepts_sixteen_hex_digits(value):
    assert validate(value)


@pytest.mark.parametrize(
    "value",
    [
        "",
        "1234567890ABCDE",  # 15 chars
        "1234567890ABCDEF0",  # 17 chars
        "1234567890abcdef",  # not normalized
        "1234567890ABCDEG",
        "1234567890ABCDEF\n",
        "NOT-A-CARD",
    ],
)
def test_validate_rejects(value):
    assert not validate(value)


def test_validate_after_normalize():
    assert validate(normalize("1234 5678 90ab cdef"))


def test_clean_card_id():
    assert clean_card_id(" 1234 5678 90ab cdef ") == "1234567890ABCDEF"
    with pytest.raises(ValidationError):
        clean_card_id("not-a-card")
