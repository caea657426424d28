"""
Tests for destination number normalization.
"""

import pytest

from smsgateway.delivery.address import normalize_address
from smsgateway.utils.exceptions import InvalidAddress


def test_normalized_number_is_unchanged():
    """An 11-digit number with country code passes through unchanged."""
    assert normalize_address("59170012345") == "59170012345"
    assert normalize_address(normalize_address("59170012345")) == "59170012345"


def test_local_number_gets_country_code():
    assert normalize_address("70012345") == "59170012345"
    assert normalize_address("60012345") == "59160012345"


def test_formatting_characters_are_stripped():
    assert normalize_address("+591 700-12-345") == "59170012345"
    assert normalize_address("(7) 001 2345") == "59170012345"


def test_invalid_operator_prefix_is_rejected():
    with pytest.raises(InvalidAddress) as exc_info:
        normalize_address("59150012345")
    assert exc_info.value.address == "59150012345"


@pytest.mark.parametrize("raw", ["1234", "", "7001234567", "5917001234"])
def test_wrong_length_is_rejected(raw):
    with pytest.raises(InvalidAddress):
        normalize_address(raw)


def test_custom_country_and_prefixes():
    assert normalize_address("51912345678", country_code="519", operator_prefixes="1") == "51912345678"
    with pytest.raises(InvalidAddress):
        normalize_address("70012345", operator_prefixes="6")
