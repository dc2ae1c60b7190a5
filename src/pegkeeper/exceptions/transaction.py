from typing import Any

from pegkeeper.exceptions.base import PegKeeperError

"""
Exceptions defined here are raised by the action executor and the chain client when a contract
call reverts.
"""


class ContractRevert(PegKeeperError):
    """
    Raised when a contract call or transaction reverts. The `reason` attribute holds the decoded
    revert reason, or `None` if the revert data did not match a known error.
    """

    def __init__(self, reason: str | None, data: bytes = b"") -> None:
        self.reason = reason
        self.data = data
        super().__init__(
            message=f"Contract reverted: {reason}"
            if reason is not None
            else f"Contract reverted with undecoded data 0x{data.hex()}"
        )

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.reason, self.data)
