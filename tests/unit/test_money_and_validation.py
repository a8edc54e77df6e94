"""
Tests for money parsing and input validation.

Tests cover:
- Half-up rounding to 6 places
- Rejection of non-numeric, non-finite and non-positive amounts
- Identifier, period and level validation
"""

from decimal import Decimal

import pytest

from yieldcycle.utils.exceptions import ValidationError
from yieldcycle.utils.money import positive_money, round_money, to_money
from yieldcycle.utils.validation import (
    validate_commission_level,
    validate_identifier,
    validate_period,
)


class TestMoney:
    """Test money helpers."""

    def test_round_half_up(self):
        assert round_money(Decimal("80.0000005")) == Decimal("80.000001")
        assert round_money(Decimal("80.0000004")) == Decimal("80.000000")

    def test_float_goes_through_string(self):
        assert to_money(0.1) == Decimal("0.100000")

    def test_int_and_str_accepted(self):
        assert to_money(10) == Decimal("10.000000")
        assert to_money("12.5") == Decimal("12.500000")

    @pytest.mark.parametrize("value", ["abc", None, True, "NaN", "Infinity"])
    def test_invalid_amounts(self, value):
        with pytest.raises(ValidationError):
            to_money(value)

    @pytest.mark.parametrize("value", ["0", "-1", "0.0000004"])
    def test_non_positive_rejected(self, value):
        with pytest.raises(ValidationError):
            positive_money(value)


class TestIdentifiers:
    """Test identifier validation."""

    @pytest.mark.parametrize(
        "value", ["user-1", "42", "a.b:c_d", "0f8fad5b-d9cb-469f-a165-70867728950e"]
    )
    def test_valid(self, value):
        assert validate_identifier(value) == value

    def test_stripped(self):
        assert validate_identifier("  user-1 ") == "user-1"

    @pytest.mark.parametrize("value", ["", None, "a/b", "x" * 65, "has space"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_identifier(value)

    def test_error_names_field(self):
        with pytest.raises(ValidationError, match="deposit_id"):
            validate_identifier("", "deposit_id")


class TestPeriods:
    """Test period validation."""

    def test_valid(self):
        assert validate_period("2026-10") == "2026-10"

    @pytest.mark.parametrize("value", ["2026-13", "2026-00", "26-10", "2026/10", ""])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_period(value)


class TestCommissionLevel:
    """Test commission level validation."""

    def test_valid(self):
        assert validate_commission_level(5) == 5

    @pytest.mark.parametrize("value", [0, 6, True, "1"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_commission_level(value)
