"""Tests for unit conversion helpers"""

from decimal import Decimal

import pytest

from polygon_nodes.utils.units import (
    calculate_transaction_cost,
    decimal_to_hex,
    format_gas_price,
    format_large_number,
    format_matic,
    format_token_amount,
    format_transaction_cost,
    format_units,
    gwei_to_wei,
    hex_to_decimal,
    parse_matic,
    parse_units,
    to_quantity,
    wei_to_gwei,
)


class TestFormatUnits:
    """Test formatting of smallest-unit amounts"""

    def test_one_ether_from_hex(self):
        """Test a hex quantity of 10**18 wei"""
        assert format_units("0xde0b6b3a7640000") == "1.0"

    def test_fraction_trimmed(self):
        assert format_units(1_500_000_000_000_000_000) == "1.5"
        assert format_units(1, 18) == "0.000000000000000001"

    def test_zero(self):
        assert format_units(0) == "0.0"

    def test_named_units(self):
        assert format_units(30_000_000_000, "gwei") == "30.0"
        assert wei_to_gwei(1_500_000_000) == "1.5"

    def test_token_decimals(self):
        """Test six-decimal tokens like USDC"""
        assert format_units(1_234_567, 6) == "1.234567"

    def test_negative(self):
        assert format_units(-500_000_000_000_000_000) == "-0.5"

    def test_unknown_unit(self):
        with pytest.raises(ValueError, match="Unknown unit"):
            format_units(1, "lovelace")


class TestParseUnits:
    """Test parsing decimal strings"""

    def test_parse(self):
        assert parse_units("1.5") == 1_500_000_000_000_000_000
        assert parse_units("0.000000000000000001") == 1
        assert parse_units(".5", 1) == 5
        assert parse_units(Decimal("2.25"), 2) == 225

    @pytest.mark.parametrize("decimals", [0, 1, 6, 9, 18, 30])
    def test_round_trip(self, decimals):
        """Test parse undoes format for any decimals"""
        for amount in (0, 1, -1, 10**18, -(10**18) - 5, 123_456_789_012_345_678_901):
            assert parse_units(format_units(amount, decimals), decimals) == amount

    def test_zero_decimals(self):
        assert format_units(42, 0) == "42.0"
        assert parse_units("42.0", 0) == 42
        assert parse_units("-7", 0) == -7

    def test_too_many_decimals(self):
        with pytest.raises(ValueError, match="Too many decimals"):
            parse_units("1.0000001", 6)

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3", "."])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_units(value)

    def test_matic_helpers(self):
        assert parse_matic("2") == 2 * 10**18
        assert format_matic(2 * 10**18) == "2.0"
        assert gwei_to_wei(30) == 30_000_000_000


class TestDisplayHelpers:
    """Test display formatting"""

    def test_format_token_amount_rounded(self):
        assert format_token_amount(1_234_567, 6, display_decimals=2) == "1.23"
        assert format_token_amount(1_234_567, 6) == "1.234567"

    def test_gas_price(self):
        assert format_gas_price(30_000_000_000) == "30.00 Gwei"

    def test_transaction_cost(self):
        assert calculate_transaction_cost(21000, 30_000_000_000) == 630_000_000_000_000
        assert format_transaction_cost(21000, 30_000_000_000) == "0.00063 MATIC"

    def test_large_number(self):
        assert format_large_number(1234567) == "1,234,567"


class TestHexConversion:
    """Test hex quantity conversion"""

    def test_decimal_to_hex(self):
        assert decimal_to_hex(137) == "0x89"
        assert decimal_to_hex("80002") == "0x13882"
        assert decimal_to_hex(0) == "0x0"

    def test_hex_to_decimal(self):
        assert hex_to_decimal("0x89") == 137
        assert hex_to_decimal("ff") == 255

    def test_to_quantity(self):
        assert to_quantity(None) is None
        assert to_quantity("") is None
        assert to_quantity(21000) == "0x5208"
        assert to_quantity("0x5208") == "0x5208"
        assert to_quantity("21000") == "0x5208"
