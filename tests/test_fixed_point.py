from decimal import Decimal, localcontext

import hypothesis
import hypothesis.strategies
import pytest

from pegkeeper.constants import MAX_UINT8, MAX_UINT256, MIN_UINT8, MIN_UINT256
from pegkeeper.exceptions import ArithmeticOverflow
from pegkeeper.fixed_point import (
    DECIMAL_CONTEXT,
    from_base_units,
    is_within_range,
    to_base_units,
)


def test_to_base_units():
    assert to_base_units(Decimal("1"), 18) == 10**18
    assert to_base_units(Decimal("1.5"), 6) == 1_500_000
    assert to_base_units(Decimal("0"), 18) == 0
    assert to_base_units(Decimal("42"), 0) == 42


def test_to_base_units_truncates_toward_zero():
    assert to_base_units(Decimal("1.0000009"), 6) == 1_000_000
    assert to_base_units(Decimal("0.9999999"), 6) == 999_999
    assert to_base_units(Decimal("0.0000001"), 6) == 0


def test_to_base_units_keeps_full_precision_for_large_values():
    # 29 significant digits, beyond the default decimal context precision
    value = Decimal("12345678901.123456789012345678")
    assert to_base_units(value, 18) == 12345678901123456789012345678


def test_to_base_units_rejects_out_of_range():
    with pytest.raises(ArithmeticOverflow):
        to_base_units(Decimal(MAX_UINT256 + 1), 0)

    with pytest.raises(ArithmeticOverflow):
        to_base_units(Decimal("-1"), 18)

    with pytest.raises(ArithmeticOverflow):
        to_base_units(Decimal("Infinity"), 18)

    with pytest.raises(ArithmeticOverflow):
        to_base_units(Decimal("NaN"), 18)


def test_invalid_decimals():
    with pytest.raises(ArithmeticOverflow):
        to_base_units(Decimal("1"), 256)

    with pytest.raises(ArithmeticOverflow):
        from_base_units(1, -1)


def test_from_base_units():
    assert from_base_units(10**18, 18) == Decimal("1")
    assert from_base_units(1_500_000, 6) == Decimal("1.5")
    assert from_base_units(1, 18) == Decimal("0.000000000000000001")
    assert from_base_units(MAX_UINT256, 0) == Decimal(MAX_UINT256)


def test_from_base_units_rejects_out_of_range():
    with pytest.raises(ArithmeticOverflow):
        from_base_units(MAX_UINT256 + 1, 18)

    with pytest.raises(ArithmeticOverflow):
        from_base_units(-1, 18)


@pytest.mark.parametrize(
    ("value", "decimals"),
    [
        ("1050000", 18),
        ("0.000001", 6),
        ("123.456789", 6),
        ("999999999999.999999999999999999", 18),
    ],
)
def test_conversion_is_exact_at_token_precision(value: str, decimals: int):
    assert from_base_units(to_base_units(Decimal(value), decimals), decimals) == Decimal(value)


@hypothesis.given(
    base_units=hypothesis.strategies.integers(min_value=MIN_UINT256, max_value=MAX_UINT256),
    decimals=hypothesis.strategies.integers(min_value=MIN_UINT8, max_value=MAX_UINT8),
)
def test_conversion_round_trip_fuzzing(base_units: int, decimals: int) -> None:
    with localcontext(DECIMAL_CONTEXT):
        value = Decimal(base_units).scaleb(-decimals)

    assert to_base_units(value, decimals) == base_units
    assert from_base_units(to_base_units(value, decimals), decimals) == value


def test_is_within_range():
    allowed = (Decimal("0.996"), Decimal("1.002"))
    assert is_within_range(Decimal("1"), allowed)
    assert is_within_range(Decimal("0.996"), allowed)
    assert is_within_range(Decimal("1.002"), allowed)
    assert not is_within_range(Decimal("0.995"), allowed)
    assert not is_within_range(Decimal("1.0021"), allowed)
