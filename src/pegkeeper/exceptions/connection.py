"""
Connection-related exceptions for the pegkeeper package.

This module contains exceptions raised when a node cannot be reached, a read fails, or a submitted
transaction cannot be followed to completion.
"""

from typing import Any

from pegkeeper.exceptions.base import PegKeeperError


class PegKeeperConnectionError(PegKeeperError):
    """
    Base exception for connection-related errors.
    """


class RpcError(PegKeeperConnectionError):
    """
    Raised when a read from the node fails at the transport level, or the node returns an error.
    """

    def __init__(self, error: str) -> None:
        self.error = error
        super().__init__(message=f"RPC error: {error}")

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.error,)


class TransportFailure(PegKeeperConnectionError):
    """
    Raised when a transaction cannot be submitted, or its confirmation cannot be observed, and the
    underlying error carries no decodable revert reason.
    """

    def __init__(self, error: str) -> None:
        self.error = error
        super().__init__(message=f"Transport failure: {error}")

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.error,)


class ConfirmationTimeout(TransportFailure):
    """
    Raised when a submitted transaction does not reach the required confirmation depth before the
    deadline.
    """

    def __init__(self, transaction_hash: str, timeout_seconds: float) -> None:
        self.transaction_hash = transaction_hash
        self.timeout_seconds = timeout_seconds
        super().__init__(
            error=(
                f"Transaction {transaction_hash} was not confirmed within "
                f"{timeout_seconds} seconds"
            )
        )

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.transaction_hash, self.timeout_seconds)
