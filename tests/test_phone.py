"""Tests for phone number normalization."""

import pytest

from marketplace_core.errors import InvalidIdentity
from marketplace_core.phone import is_normalized, normalize_phone


@pytest.mark.parametrize(
    "raw",
    ["+256700000001", "0700000001", "700000001", "0700 000 001", "+256 (700) 000-001"],
)
def test_local_formats_become_e164(raw):
    assert normalize_phone(raw) == "+256700000001"


def test_other_country_code():
    assert normalize_phone("0712345678", default_country_code="254") == "+254712345678"


@pytest.mark.parametrize("raw", ["", "abc", "+12", "+1234567890123456789"])
def test_garbage_is_rejected(raw):
    with pytest.raises(InvalidIdentity):
        normalize_phone(raw)


def test_is_normalized():
    assert is_normalized("+256700000001")
    assert not is_normalized("0700000001")
