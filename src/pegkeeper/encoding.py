"""
Calldata builders for the stability module and its swap adapter.

The stability module forwards `delegate_data` to the adapter unchanged, so the adapter payload
layout is a wire contract: `(uint256 amountIn, uint256 amountOutMin, address[] path,
uint256 deadline, address router)`, wrapped in a call to the adapter's `swap(bytes)`.
"""

from collections.abc import Sequence

import eth_abi.abi
from eth_typing import ChecksumAddress

from pegkeeper.constants import (
    ADAPTER_ID_LENGTH,
    DEFAULT_SWAP_DEADLINE_SECONDS,
    MAX_UINT256,
    MIN_UINT256,
)
from pegkeeper.exceptions import ArithmeticOverflow, PegKeeperValueError
from pegkeeper.functions import encode_function_calldata

ADAPTER_SWAP_ARGUMENT_TYPES = ("uint256", "uint256", "address[]", "uint256", "address")

ADAPTER_SWAP_FUNCTION = "swap(bytes)"
EXPAND_AND_BUY_FUNCTION = "expandAndBuy(bytes32,bytes,uint256)"
CONTRACT_AND_SELL_FUNCTION = "contractAndSell(bytes32,bytes)"


def raise_if_invalid_uint256(number: int) -> None:
    if (MIN_UINT256 <= number <= MAX_UINT256) is False:
        raise ArithmeticOverflow(message=f"{number} is not a valid uint256.")


def adapter_id(name: str) -> bytes:
    """
    Format an adapter name as the bytes32 identifier used by the stability module: the UTF-8 name,
    left-aligned and zero-padded. At most 31 bytes are allowed, leaving room for a terminating
    zero byte.
    """

    encoded_name = name.encode("utf-8")
    if not encoded_name:
        raise PegKeeperValueError(message="Adapter name cannot be empty.")
    if len(encoded_name) > ADAPTER_ID_LENGTH - 1:
        raise PegKeeperValueError(
            message=f"Adapter name {name!r} is longer than {ADAPTER_ID_LENGTH - 1} bytes."
        )
    return encoded_name.ljust(ADAPTER_ID_LENGTH, b"\x00")


def swap_deadline(now: float, horizon_seconds: int = DEFAULT_SWAP_DEADLINE_SECONDS) -> int:
    """
    Get the swap deadline timestamp. Compute it immediately before submission, the window shrinks
    with every second of latency.
    """

    return int(now) + horizon_seconds


def encode_adapter_swap(
    amount_in: int,
    amount_out_min: int,
    path: Sequence[ChecksumAddress],
    deadline: int,
    router_address: ChecksumAddress,
) -> bytes:
    """
    ABI-encode the adapter swap arguments.
    """

    for value in (amount_in, amount_out_min, deadline):
        raise_if_invalid_uint256(value)
    if not path:
        raise PegKeeperValueError(message="Swap path cannot be empty.")

    return eth_abi.abi.encode(
        types=ADAPTER_SWAP_ARGUMENT_TYPES,
        args=(amount_in, amount_out_min, list(path), deadline, router_address),
    )


def encode_adapter_swap_call(
    amount_in: int,
    amount_out_min: int,
    path: Sequence[ChecksumAddress],
    deadline: int,
    router_address: ChecksumAddress,
) -> bytes:
    """
    Build the delegate payload for the stability module: calldata for the adapter's `swap(bytes)`
    carrying the encoded swap arguments.
    """

    return encode_function_calldata(
        function_prototype=ADAPTER_SWAP_FUNCTION,
        function_arguments=[
            encode_adapter_swap(
                amount_in=amount_in,
                amount_out_min=amount_out_min,
                path=path,
                deadline=deadline,
                router_address=router_address,
            )
        ],
    )


def encode_expand_and_buy(adapter: bytes, delegate_data: bytes, mint_amount: int) -> bytes:
    raise_if_invalid_uint256(mint_amount)
    return encode_function_calldata(
        function_prototype=EXPAND_AND_BUY_FUNCTION,
        function_arguments=[adapter, delegate_data, mint_amount],
    )


def encode_contract_and_sell(adapter: bytes, delegate_data: bytes) -> bytes:
    return encode_function_calldata(
        function_prototype=CONTRACT_AND_SELL_FUNCTION,
        function_arguments=[adapter, delegate_data],
    )
