"""
Destination number normalization.
"""

import re

from smsgateway.utils.exceptions import InvalidAddress


LOCAL_NUMBER_LENGTH = 8

_NON_DIGITS = re.compile(r"\D")


def normalize_address(
    raw: str,
    country_code: str = "591",
    operator_prefixes: str = "67",
) -> str:
    """
    Normalize a destination number to country code + local mobile number.

    Non-digits are stripped and an existing country code is removed before
    validation, so already normalized numbers pass through unchanged.

    Args:
        raw: Number as received from the queue API
        country_code: Country calling code to prepend
        operator_prefixes: Valid leading digits of a local mobile number

    Returns:
        The normalized number, e.g. "59170012345"

    Raises:
        InvalidAddress: If the number is not a valid local mobile number
    """
    digits = _NON_DIGITS.sub("", raw or "")

    if len(digits) == len(country_code) + LOCAL_NUMBER_LENGTH and digits.startswith(country_code):
        digits = digits[len(country_code):]

    if len(digits) != LOCAL_NUMBER_LENGTH:
        raise InvalidAddress(raw, f"expected {LOCAL_NUMBER_LENGTH} digits, got {len(digits)}")

    if digits[0] not in operator_prefixes:
        raise InvalidAddress(raw, f"must start with one of {', '.join(operator_prefixes)}")

    return f"{country_code}{digits}"


__all__ = ["normalize_address", "LOCAL_NUMBER_LENGTH"]
