"""
Conversion between human-scale decimal quantities and a token's integer base units.

All operations run under `DECIMAL_CONTEXT`, which carries enough significant digits to hold any
uint256 exactly. The default `decimal` context (28 digits) silently rounds large reserves of
18-decimal tokens.
"""

import decimal
from decimal import Decimal

from pegkeeper.constants import MAX_UINT8, MAX_UINT256, MIN_UINT8, MIN_UINT256
from pegkeeper.exceptions import ArithmeticOverflow

DECIMAL_CONTEXT = decimal.Context(
    prec=80,
    rounding=decimal.ROUND_HALF_EVEN,
    traps=[decimal.InvalidOperation, decimal.DivisionByZero, decimal.Overflow],
)


def _check_decimals(decimals: int) -> None:
    if not MIN_UINT8 <= decimals <= MAX_UINT8:
        raise ArithmeticOverflow(message=f"Token decimals {decimals} outside of uint8 range.")


def to_base_units(value: Decimal, decimals: int) -> int:
    """
    Scale a decimal quantity to integer base units, truncating toward zero.

    The result is never rounded up: overstating an amount to sell can revert the swap on an
    insufficient balance or allowance.
    """

    _check_decimals(decimals)

    if not value.is_finite():
        raise ArithmeticOverflow(message=f"Cannot convert non-finite value {value} to base units.")

    try:
        with decimal.localcontext(DECIMAL_CONTEXT):
            scaled = value.scaleb(decimals)
            base_units = int(scaled.to_integral_value(rounding=decimal.ROUND_DOWN))
    except decimal.Overflow:
        raise ArithmeticOverflow(
            message=f"{value} scaled by 10**{decimals} exceeds the decimal range."
        ) from None

    if not MIN_UINT256 <= base_units <= MAX_UINT256:
        raise ArithmeticOverflow(
            message=f"{value} scaled by 10**{decimals} is not a valid uint256."
        )

    return base_units


def from_base_units(value: int, decimals: int) -> Decimal:
    """
    Scale an integer base unit amount down to a decimal quantity. The conversion is exact.
    """

    _check_decimals(decimals)

    if not MIN_UINT256 <= value <= MAX_UINT256:
        raise ArithmeticOverflow(message=f"{value} is not a valid uint256.")

    with decimal.localcontext(DECIMAL_CONTEXT):
        return Decimal(value).scaleb(-decimals)


def is_within_range(value: Decimal, allowed_range: tuple[Decimal, Decimal]) -> bool:
    """
    Check if the value lies inside the range, inclusive of both ends.
    """

    low, high = allowed_range
    return low <= value <= high
