import functools
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

import eth_abi.abi
from cchecksum import to_checksum_address
from eth_abi.exceptions import DecodingError
from eth_typing import BlockIdentifier, ChecksumAddress, HexAddress
from eth_utils.crypto import keccak

from pegkeeper.exceptions import RpcError

if TYPE_CHECKING:
    from pegkeeper.connection import AbstractChainClient


# Revert payloads emitted by `require`/`revert` with a string, and by failed assertions / checked
# arithmetic. These are understood by every contract regardless of its declared error set.
STANDARD_ERROR_PROTOTYPES = ("Error(string)", "Panic(uint256)")


@functools.lru_cache(maxsize=512)
def get_checksum_address(address: HexAddress | str | bytes) -> ChecksumAddress:
    return to_checksum_address(address)


def function_selector(function_prototype: str) -> bytes:
    """
    Get the 4-byte selector for a function or custom error prototype, e.g. 'getReserves()'.
    """

    return keccak(text=function_prototype)[:4]


def encode_function_calldata(
    function_prototype: str, function_arguments: Sequence[Any] | None
) -> bytes:
    """
    Encode the calldata to execute a call to the given function prototype, with ordered arguments.
    The resulting bytes array will include the 4-byte function selector, followed by the
    ABI-encoded arguments.
    """

    if function_arguments is None:
        function_arguments = ()

    return function_selector(function_prototype) + eth_abi.abi.encode(
        types=extract_argument_types_from_function_prototype(function_prototype),
        args=function_arguments,
    )


def extract_argument_types_from_function_prototype(function_prototype: str) -> list[str]:
    """
    Extract the argument types from the function prototype.

    e.g. the argument types for the prototype 'function(address,uint256)' are ['address','uint256']
    """

    if function_args := function_prototype[
        function_prototype.find("(") + 1 : function_prototype.find(")") :
    ]:
        return function_args.split(",")

    return []


def raw_call(
    client: "AbstractChainClient",
    address: ChecksumAddress,
    calldata: bytes,
    return_types: list[str],
    block_identifier: BlockIdentifier | None = None,
) -> tuple[Any, ...]:
    """
    Perform an eth_call at the given address and returns the decoded response.
    """

    response = client.call(
        address=address,
        calldata=calldata,
        block_identifier=block_identifier,
    )
    try:
        return eth_abi.abi.decode(types=return_types, data=response)
    except DecodingError as exc:
        raise RpcError(error=f"Could not decode response from {address}: {exc}") from exc


def decode_revert_reason(
    data: bytes,
    error_prototypes: Iterable[str] = (),
) -> str | None:
    """
    Decode revert data against the standard error payloads and the given custom error prototypes,
    e.g. 'InsufficientReserves(uint256,uint256)'.

    Returns a human-readable reason, or `None` if the selector is unknown or the payload is
    malformed.
    """

    if len(data) < 4:
        return None

    selector, payload = data[:4], data[4:]

    for prototype in (*STANDARD_ERROR_PROTOTYPES, *error_prototypes):
        if function_selector(prototype) != selector:
            continue

        try:
            args = eth_abi.abi.decode(
                types=extract_argument_types_from_function_prototype(prototype),
                data=payload,
            )
        except DecodingError:
            return None

        match prototype:
            case "Error(string)":
                (reason,) = args
                return str(reason)
            case "Panic(uint256)":
                (code,) = args
                return f"Panic(0x{code:02x})"
            case _:
                error_name = prototype[: prototype.find("(")]
                return f"{error_name}({', '.join(str(arg) for arg in args)})"

    return None


def next_base_fee(
    parent_base_fee: int,
    parent_gas_used: int,
    parent_gas_limit: int,
    min_base_fee: int | None = None,
    base_fee_max_change_denominator: int = 8,
    elasticity_multiplier: int = 2,
) -> int:
    """
    Calculate next base fee for an EIP-1559 compatible blockchain. The
    formula is taken from the example code in the EIP-1559 proposal (ref:
    https://eips.ethereum.org/EIPS/eip-1559).

    Enforces `min_base_fee` if provided.
    """

    last_gas_target = parent_gas_limit // elasticity_multiplier

    if parent_gas_used == last_gas_target:
        _next_base_fee = parent_base_fee
    elif parent_gas_used > last_gas_target:
        gas_used_delta = parent_gas_used - last_gas_target
        base_fee_delta = max(
            parent_base_fee * gas_used_delta // last_gas_target // base_fee_max_change_denominator,
            1,
        )
        _next_base_fee = parent_base_fee + base_fee_delta
    else:
        gas_used_delta = last_gas_target - parent_gas_used
        base_fee_delta = (
            parent_base_fee * gas_used_delta // last_gas_target // base_fee_max_change_denominator
        )
        _next_base_fee = parent_base_fee - base_fee_delta

    return max(min_base_fee, _next_base_fee) if min_base_fee else _next_base_fee
