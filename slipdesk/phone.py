"""
Phone number normalization and matching.

Matching is a suffix heuristic, not equality: a stored `9825533053` matches
a contact reporting `919825533053` and vice versa. Short stored numbers can
therefore produce false positives ("123" matches "4567123"); this trade-off
is kept so registrations made without a country code keep working.
"""

import re

from slipdesk.errors import InvalidInputError

WHATSAPP_USER_SUFFIX = "@s.whatsapp.net"
GROUP_SUFFIX = "@g.us"
BROADCAST_ADDRESS = "status@broadcast"

MIN_MOBILE_DIGITS = 8
MAX_MOBILE_DIGITS = 15


def normalize(raw: str | int | None) -> str:
    """Strip everything but digits."""
    if raw is None:
        return ""
    return re.sub(r"[^0-9]", "", str(raw))


def contact_digits(address: str) -> str:
    """Digits of a transport address such as `919825533053@s.whatsapp.net`."""
    return normalize(address.split("@", 1)[0])


def is_group_address(address: str) -> bool:
    return address.endswith(GROUP_SUFFIX) or address == BROADCAST_ADDRESS


def validate_mobile(raw: str | int | None) -> str:
    """
    Normalize a user-supplied mobile number.

    Raises:
        InvalidInputError: If there are no digits or the length is outside 8-15
    """
    digits = normalize(raw)
    if not digits:
        raise InvalidInputError("mobile number is required")
    if not MIN_MOBILE_DIGITS <= len(digits) <= MAX_MOBILE_DIGITS:
        raise InvalidInputError(
            f"mobile number must be {MIN_MOBILE_DIGITS}-{MAX_MOBILE_DIGITS} digits"
        )
    return digits


class PhoneMatcher:
    """Converts between stored mobiles and transport addresses."""

    def __init__(self, country_code: str = "91", address_suffix: str = WHATSAPP_USER_SUFFIX):
        self.country_code = normalize(country_code)
        self.address_suffix = address_suffix

    def normalize(self, raw: str | int | None) -> str:
        return normalize(raw)

    def to_address(self, mobile: str | int) -> str:
        """
        Transport address for a mobile number.

        A bare 10-digit number that does not already start with the country
        code gets the default country code prepended.
        """
        digits = normalize(mobile)
        if not digits:
            raise InvalidInputError("Mobile number is required")
        if len(digits) == 10 and not digits.startswith(self.country_code):
            digits = self.country_code + digits
        return digits + self.address_suffix

    def matches(self, stored_mobile: str | None, contact: str | None) -> bool:
        """True when either digit string is a suffix of the other."""
        stored = normalize(stored_mobile)
        reported = contact_digits(contact) if contact else ""
        if not stored or not reported:
            return False
        return stored.endswith(reported) or reported.endswith(stored)
