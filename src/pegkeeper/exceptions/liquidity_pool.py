from typing import Any

from eth_typing import ChecksumAddress

from pegkeeper.exceptions.base import PegKeeperError


class LiquidityPoolError(PegKeeperError):
    """
    Exception raised inside liquidity pool helpers.
    """


class PoolNotFound(LiquidityPoolError):
    """
    Raised when the factory has no pool deployed for a token pair.
    """

    def __init__(self, token_a: ChecksumAddress, token_b: ChecksumAddress) -> None:
        self.token_a = token_a
        self.token_b = token_b
        super().__init__(message=f"No pool found for tokens {token_a} and {token_b}.")

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.token_a, self.token_b)
