import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import eth_abi.abi
import pytest
from eth_typing import BlockIdentifier, ChecksumAddress
from eth_utils.crypto import keccak
from hexbytes import HexBytes

from pegkeeper.connection import AbstractChainClient, TransactionReceipt
from pegkeeper.constants import ZERO_ADDRESS
from pegkeeper.exceptions import RpcError
from pegkeeper.executor import ActionExecutor
from pegkeeper.functions import function_selector, get_checksum_address
from pegkeeper.logging import logger
from pegkeeper.types import Token, TokenPair
from pegkeeper.uniswap import (
    UniswapV2Factory,
    UniswapV2ReserveReader,
    UniswapV2Router,
    constant_product_calc_exact_in,
    constant_product_calc_exact_out,
    sort_token_addresses,
)

KEEPER_ADDRESS = get_checksum_address("0x9999999999999999999999999999999999999999")
FACTORY_ADDRESS = get_checksum_address("0x5c69bee701ef814a2b6a3edd4b1652cb9cc5aa6f")
ROUTER_ADDRESS = get_checksum_address("0x7a250d5630b4cf539739df2c5dacb4c659f2488d")
STABILITY_MODULE_ADDRESS = get_checksum_address("0x4444444444444444444444444444444444444444")
ADAPTER_ADDRESS = get_checksum_address("0x5555555555555555555555555555555555555555")

STABLE_TOKEN_ADDRESS = get_checksum_address("0x2222222222222222222222222222222222222222")
REFERENCE_TOKEN_ADDRESS = get_checksum_address("0x1111111111111111111111111111111111111111")
SECOND_STABLE_TOKEN_ADDRESS = get_checksum_address("0x3333333333333333333333333333333333333333")

POOL_ADDRESS = get_checksum_address("0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa")
SECOND_POOL_ADDRESS = get_checksum_address("0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb")

# Hardhat's first default account, never use outside of tests
KEEPER_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

ADAPTER_NAME = "UniswapV2"

RATIO_RANGE_ALLOWED = (Decimal("0.996"), Decimal("1.002"))
RATIO_RANGE_TARGETS = (Decimal("0.997"), Decimal("1.001"))

STABLE_TOKEN = Token(symbol="AZUSD", address=STABLE_TOKEN_ADDRESS, decimals=18)
REFERENCE_TOKEN = Token(symbol="USDC", address=REFERENCE_TOKEN_ADDRESS, decimals=6)
# The stable token has the higher address, so the pair order is the reverse of the pool order
TOKEN_PAIR = TokenPair(symbol="AZUSD-USDC", token_0=STABLE_TOKEN, token_1=REFERENCE_TOKEN)

GET_PAIR_SELECTOR = function_selector("getPair(address,address)")
GET_RESERVES_SELECTOR = function_selector("getReserves()")
GET_AMOUNTS_IN_SELECTOR = function_selector("getAmountsIn(uint256,address[])")
GET_AMOUNTS_OUT_SELECTOR = function_selector("getAmountsOut(uint256,address[])")


class FakeChainClient(AbstractChainClient):
    """
    An in-memory chain holding a V2 factory, its router and a set of pools. Reads are dispatched on
    the function selector, swaps are priced with the constant product helpers, and transactions are
    recorded instead of being executed.
    """

    chain_id = 1

    def __init__(self) -> None:
        self.pools: dict[tuple[str, str], ChecksumAddress] = {}
        # Reserves in pool order (lower token address first), plus `blockTimestampLast`
        self.reserves: dict[ChecksumAddress, tuple[int, int, int]] = {}

        self.block_numbers: list[int] = [100]
        self.balance = 10**18

        self.calls: list[tuple[ChecksumAddress, bytes, BlockIdentifier | None]] = []
        self.sent: list[tuple[ChecksumAddress, bytes, int]] = []
        self.waited: list[tuple[HexBytes, int, float]] = []

        # Failure injection
        self.read_errors: dict[ChecksumAddress, Exception] = {}
        self.block_number_error: Exception | None = None
        self.balance_error: Exception | None = None
        self.send_error: Exception | None = None
        self.wait_error: Exception | None = None
        self.replay_error: Exception | None = None
        self.receipt_status = 1

    @property
    def address(self) -> ChecksumAddress:
        return KEEPER_ADDRESS

    def add_pool(
        self,
        pair: TokenPair,
        supply_0: int | str,
        supply_1: int | str,
        pool_address: ChecksumAddress = POOL_ADDRESS,
    ) -> None:
        """
        Deploy a pool for the pair holding the given human-scale supplies of `token_0` and
        `token_1`.
        """

        reserves = {
            pair.token_0.address: int(Decimal(supply_0).scaleb(pair.token_0.decimals)),
            pair.token_1.address: int(Decimal(supply_1).scaleb(pair.token_1.decimals)),
        }
        pool_token0, pool_token1 = sort_token_addresses(pair.token_0.address, pair.token_1.address)
        self.pools[pool_token0, pool_token1] = pool_address
        self.reserves[pool_address] = (reserves[pool_token0], reserves[pool_token1], 1_700_000_000)

    def _reserves_for_path(self, path: Sequence[str]) -> tuple[int, int]:
        # Single hop only
        token_in, token_out = (get_checksum_address(token) for token in path)
        pool_token0, pool_token1 = sort_token_addresses(token_in, token_out)
        pool_address = self.pools[pool_token0, pool_token1]
        reserves_0, reserves_1, _ = self.reserves[pool_address]
        if token_in == pool_token0:
            return reserves_0, reserves_1
        return reserves_1, reserves_0

    def call(
        self,
        address: ChecksumAddress,
        calldata: bytes,
        block_identifier: BlockIdentifier | None = None,
    ) -> bytes:
        self.calls.append((address, calldata, block_identifier))

        if address in self.read_errors:
            raise self.read_errors[address]

        selector, payload = calldata[:4], calldata[4:]

        if address == FACTORY_ADDRESS and selector == GET_PAIR_SELECTOR:
            token_a, token_b = (
                get_checksum_address(token)
                for token in eth_abi.abi.decode(["address", "address"], payload)
            )
            pool_address = self.pools.get(sort_token_addresses(token_a, token_b), ZERO_ADDRESS)
            return eth_abi.abi.encode(["address"], [pool_address])

        if address in self.reserves and selector == GET_RESERVES_SELECTOR:
            return eth_abi.abi.encode(["uint112", "uint112", "uint32"], self.reserves[address])

        if address == ROUTER_ADDRESS and selector == GET_AMOUNTS_IN_SELECTOR:
            amount_out, path = eth_abi.abi.decode(["uint256", "address[]"], payload)
            reserves_in, reserves_out = self._reserves_for_path(path[:2])
            amount_in = constant_product_calc_exact_out(amount_out, reserves_in, reserves_out)
            return eth_abi.abi.encode(["uint256[]"], [[amount_in, amount_out]])

        if address == ROUTER_ADDRESS and selector == GET_AMOUNTS_OUT_SELECTOR:
            amount_in, path = eth_abi.abi.decode(["uint256", "address[]"], payload)
            reserves_in, reserves_out = self._reserves_for_path(path[:2])
            amount_out = constant_product_calc_exact_in(amount_in, reserves_in, reserves_out)
            return eth_abi.abi.encode(["uint256[]"], [[amount_in, amount_out]])

        if address == STABILITY_MODULE_ADDRESS:
            if self.replay_error is not None:
                raise self.replay_error
            return b""

        raise RpcError(error=f"No contract code at {address} for selector 0x{selector.hex()}")

    def block_number(self) -> int:
        if self.block_number_error is not None:
            raise self.block_number_error
        if len(self.block_numbers) > 1:
            return self.block_numbers.pop(0)
        return self.block_numbers[0]

    def get_balance(self, address: ChecksumAddress) -> int:
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance

    def send_transaction(self, to: ChecksumAddress, data: bytes, value: int = 0) -> HexBytes:
        self.sent.append((to, data, value))
        if self.send_error is not None:
            raise self.send_error
        return HexBytes(keccak(data + len(self.sent).to_bytes(32, "big")))

    def wait_for_confirmations(
        self,
        transaction_hash: HexBytes,
        confirmations: int,
        timeout: float,
    ) -> TransactionReceipt:
        self.waited.append((transaction_hash, confirmations, timeout))
        if self.wait_error is not None:
            raise self.wait_error
        return TransactionReceipt(
            transaction_hash=transaction_hash,
            block_number=self.block_numbers[0],
            status=self.receipt_status,
            gas_used=150_000,
        )


class RecordingQuoter:
    """
    A router stand-in that records every quote request and answers with a fixed input amount.
    """

    def __init__(self, amount_in: int) -> None:
        self.amount_in = amount_in
        self.requests: list[tuple[int, tuple[ChecksumAddress, ...]]] = []

    def get_amounts_in(self, amount_out: int, path: Sequence[ChecksumAddress]) -> list[int]:
        self.requests.append((amount_out, tuple(path)))
        return [self.amount_in, amount_out]


@pytest.fixture(scope="session", autouse=True)
def _set_pegkeeper_logging():
    """
    Set the logging level to DEBUG for the test run
    """
    logger.setLevel(logging.DEBUG)


@pytest.fixture
def stable_token() -> Token:
    return STABLE_TOKEN


@pytest.fixture
def reference_token() -> Token:
    return REFERENCE_TOKEN


@pytest.fixture
def token_pair() -> TokenPair:
    return TOKEN_PAIR


@pytest.fixture
def second_token_pair(reference_token: Token) -> TokenPair:
    return TokenPair(
        symbol="AZEUR-USDC",
        token_0=Token(symbol="AZEUR", address=SECOND_STABLE_TOKEN_ADDRESS, decimals=18),
        token_1=reference_token,
    )


@pytest.fixture
def fake_client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def factory(fake_client: FakeChainClient) -> UniswapV2Factory:
    return UniswapV2Factory(address=FACTORY_ADDRESS, client=fake_client)


@pytest.fixture
def router(fake_client: FakeChainClient) -> UniswapV2Router:
    return UniswapV2Router(address=ROUTER_ADDRESS, client=fake_client)


@pytest.fixture
def reserve_reader(
    fake_client: FakeChainClient, factory: UniswapV2Factory
) -> UniswapV2ReserveReader:
    return UniswapV2ReserveReader(client=fake_client, factory=factory)


@pytest.fixture
def executor(fake_client: FakeChainClient) -> ActionExecutor:
    return ActionExecutor(
        fake_client,
        stability_module_address=STABILITY_MODULE_ADDRESS,
        router_address=ROUTER_ADDRESS,
        adapter_name=ADAPTER_NAME,
        adapter_address=ADAPTER_ADDRESS,
        confirmations=2,
        confirmation_timeout=30.0,
        clock=lambda: 1_700_000_000.5,
    )


@pytest.fixture
def settings_values() -> dict[str, Any]:
    """
    A complete, valid set of keeper settings as they would be parsed from a TOML file.
    """

    return {
        "rpc_url": "http://localhost:8545",
        "keeper_private_key": KEEPER_PRIVATE_KEY,
        "uniswap_router_address": ROUTER_ADDRESS.lower(),
        "uniswap_factory_address": FACTORY_ADDRESS,
        "stability_module_address": STABILITY_MODULE_ADDRESS,
        "adapter_address": ADAPTER_ADDRESS,
        "adapter_name": ADAPTER_NAME,
        "token_pairs": [
            {
                "symbol": "AZUSD-USDC",
                "token_0": {"symbol": "AZUSD", "address": STABLE_TOKEN_ADDRESS, "decimals": 18},
                "token_1": {"symbol": "USDC", "address": REFERENCE_TOKEN_ADDRESS, "decimals": 6},
            }
        ],
        "ratio_range_allowed": ["0.996", "1.002"],
        "ratio_range_targets": ["0.997", "1.001"],
        "tx_confirmations_required": 2,
        "delay_between_checks_ms": 1000,
    }
