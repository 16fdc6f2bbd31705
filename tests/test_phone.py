"""
Tests for phone normalization, addressing and matching.
"""

import pytest

from slipdesk.errors import InvalidInputError
from slipdesk.phone import (
    PhoneMatcher,
    contact_digits,
    is_group_address,
    normalize,
    validate_mobile,
)


class TestNormalize:
    def test_strips_non_digits(self):
        assert normalize("+91 (982) 553-3053") == "919825533053"

    def test_none_and_numbers(self):
        assert normalize(None) == ""
        assert normalize(9825533053) == "9825533053"

    def test_contact_digits_drops_transport_suffix(self):
        assert contact_digits("919825533053@s.whatsapp.net") == "919825533053"


class TestToAddress:
    def test_ten_digit_number_gets_country_code(self):
        matcher = PhoneMatcher(country_code="91")
        assert matcher.to_address("98255 33053") == "919825533053@s.whatsapp.net"

    def test_number_with_country_code_kept(self):
        matcher = PhoneMatcher(country_code="91")
        assert matcher.to_address("+919825533053") == "919825533053@s.whatsapp.net"

    def test_ten_digits_already_starting_with_country_code_kept(self):
        """A 10-digit number starting with the code is treated as already prefixed."""
        matcher = PhoneMatcher(country_code="91")
        assert matcher.to_address("9123456789") == "9123456789@s.whatsapp.net"

    def test_other_lengths_kept(self):
        matcher = PhoneMatcher(country_code="91")
        assert matcher.to_address("14155550123") == "14155550123@s.whatsapp.net"

    def test_empty_number_rejected(self):
        with pytest.raises(InvalidInputError):
            PhoneMatcher().to_address("n/a")


class TestMatches:
    @pytest.fixture
    def matcher(self):
        return PhoneMatcher(country_code="91")

    @pytest.mark.parametrize(
        "stored",
        ["9825533053", "919825533053", "+91 98255 33053", "+919825533053"],
    )
    def test_stored_forms_match_contact(self, matcher, stored):
        """Exact form and forms with or without the country code all match."""
        assert matcher.matches(stored, "919825533053@s.whatsapp.net")
        assert matcher.matches(stored, "9825533053")

    def test_different_number_does_not_match(self, matcher):
        assert not matcher.matches("9825533054", "919825533053@s.whatsapp.net")

    def test_missing_values_never_match(self, matcher):
        assert not matcher.matches(None, "919825533053@s.whatsapp.net")
        assert not matcher.matches("", "919825533053@s.whatsapp.net")
        assert not matcher.matches("9825533053", "")

    def test_short_number_suffix_false_positive_is_kept(self, matcher):
        """Suffix matching is a heuristic; short numbers can collide."""
        assert matcher.matches("123", "4567123")


class TestAddressKinds:
    def test_group_and_broadcast_addresses(self):
        assert is_group_address("120363041234567890@g.us")
        assert is_group_address("status@broadcast")
        assert not is_group_address("919825533053@s.whatsapp.net")


class TestValidateMobile:
    def test_valid_number_normalized(self):
        assert validate_mobile("+91 98255-33053") == "919825533053"

    @pytest.mark.parametrize("raw", [None, "", "abc", "1234567", "1234567890123456"])
    def test_invalid_numbers_rejected(self, raw):
        with pytest.raises(InvalidInputError):
            validate_mobile(raw)
