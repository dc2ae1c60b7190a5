__all__ = (
    "ADAPTER_ID_LENGTH",
    "DEFAULT_CONFIRMATION_TIMEOUT_SECONDS",
    "DEFAULT_SWAP_DEADLINE_SECONDS",
    "MAX_UINT8",
    "MAX_UINT112",
    "MAX_UINT256",
    "MIN_UINT8",
    "MIN_UINT256",
    "ZERO_ADDRESS",
)

import typing

from eth_typing import ChecksumAddress

from pegkeeper.functions import get_checksum_address


def _min_uint(_: int) -> int:
    return 0


def _max_uint(bits: int) -> int:
    return typing.cast("int", 2**bits - 1)


MIN_UINT8 = _min_uint(8)
MAX_UINT8 = _max_uint(8)

MAX_UINT112 = _max_uint(112)

MIN_UINT256 = _min_uint(256)
MAX_UINT256 = _max_uint(256)

ZERO_ADDRESS: ChecksumAddress = get_checksum_address("0x0000000000000000000000000000000000000000")

# Width of the bytes32 adapter identifier passed to the stability module
ADAPTER_ID_LENGTH = 32

DEFAULT_SWAP_DEADLINE_SECONDS = 120
DEFAULT_CONFIRMATION_TIMEOUT_SECONDS = 300.0
