"""
Exceptions raised by the fixed-point helpers and the arithmetic guards inside the rebalance
calculator. A `DivisionByZero` or `InvariantViolation` indicates a bug or a broken pool, never a
normal market condition.
"""

from pegkeeper.exceptions.base import PegKeeperError


class PegKeeperArithmeticError(PegKeeperError): ...


class ArithmeticOverflow(PegKeeperArithmeticError):
    """
    Raised when a value cannot be represented after scaling to or from integer base units.
    """


class DivisionByZero(PegKeeperArithmeticError):
    """
    Raised when a price is requested from a reserve snapshot with an empty denominator.
    """


class InvariantViolation(PegKeeperArithmeticError):
    """
    Raised when a computed swap quantity breaks an invariant that the direction check should have
    guaranteed, e.g. a negative purchase amount.
    """
