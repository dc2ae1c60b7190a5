from collections.abc import Sequence

from eth_typing import ChecksumAddress

from pegkeeper.connection import AbstractChainClient
from pegkeeper.constants import ZERO_ADDRESS
from pegkeeper.exceptions import PoolNotFound, RpcError
from pegkeeper.fixed_point import from_base_units
from pegkeeper.functions import encode_function_calldata, get_checksum_address, raw_call
from pegkeeper.logging import logger
from pegkeeper.types import ReserveSnapshot, Token, TokenPair
from pegkeeper.uniswap.v2_functions import sort_token_addresses


class UniswapV2Factory:
    """
    The pool factory for a Uniswap V2-based exchange.
    """

    def __init__(self, address: str, client: AbstractChainClient) -> None:
        self.address = get_checksum_address(address)
        self.client = client

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}(address={self.address})"

    def get_pair(self, token_a: ChecksumAddress, token_b: ChecksumAddress) -> ChecksumAddress:
        """
        Look up the pool deployed for two tokens. The factory accepts the tokens in either order.
        """

        (pool_address,) = raw_call(
            client=self.client,
            address=self.address,
            calldata=encode_function_calldata(
                function_prototype="getPair(address,address)",
                function_arguments=[token_a, token_b],
            ),
            return_types=["address"],
        )
        pool_address = get_checksum_address(pool_address)

        if pool_address == ZERO_ADDRESS:
            raise PoolNotFound(token_a=token_a, token_b=token_b)

        return pool_address


class UniswapV2Router:
    """
    The periphery router for a Uniswap V2-based exchange. Quotes include the pool fee and follow
    the pool's real constant product curve.
    """

    def __init__(self, address: str, client: AbstractChainClient) -> None:
        self.address = get_checksum_address(address)
        self.client = client

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}(address={self.address})"

    def _get_amounts(
        self,
        function_prototype: str,
        amount: int,
        path: Sequence[ChecksumAddress],
    ) -> list[int]:
        (amounts,) = raw_call(
            client=self.client,
            address=self.address,
            calldata=encode_function_calldata(
                function_prototype=function_prototype,
                function_arguments=[amount, list(path)],
            ),
            return_types=["uint256[]"],
        )
        if len(amounts) != len(path):
            raise RpcError(
                error=f"Router returned {len(amounts)} amounts for a path of length {len(path)}"
            )
        return list(amounts)

    def get_amounts_in(self, amount_out: int, path: Sequence[ChecksumAddress]) -> list[int]:
        """
        Get the input amounts required at each hop to receive exactly `amount_out` of the last
        token in the path.
        """

        return self._get_amounts("getAmountsIn(uint256,address[])", amount_out, path)

    def get_amounts_out(self, amount_in: int, path: Sequence[ChecksumAddress]) -> list[int]:
        """
        Get the output amounts at each hop for an exact input of `amount_in` of the first token in
        the path.
        """

        return self._get_amounts("getAmountsOut(uint256,address[])", amount_in, path)


class UniswapV2ReserveReader:
    """
    Reads reserve snapshots for token pairs from Uniswap V2-based pools.
    """

    RESERVES_STRUCT_TYPES = ["uint112", "uint112", "uint32"]

    def __init__(self, client: AbstractChainClient, factory: UniswapV2Factory) -> None:
        self.client = client
        self.factory = factory

    def get_pool_address(self, token_a: Token, token_b: Token) -> ChecksumAddress:
        return self.factory.get_pair(token_a.address, token_b.address)

    def get_reserves(self, pair: TokenPair, pool_address: ChecksumAddress) -> ReserveSnapshot:
        """
        Read the pool reserves and normalize them to decimal quantities, in the order of the
        pair's `token_0` and `token_1`.
        """

        pool_reserves_0, pool_reserves_1, block_timestamp_last = raw_call(
            client=self.client,
            address=pool_address,
            calldata=encode_function_calldata(
                function_prototype="getReserves()",
                function_arguments=None,
            ),
            return_types=self.RESERVES_STRUCT_TYPES,
        )

        # The pool holds the reserves for the lower token address first
        pool_token0, _ = sort_token_addresses(pair.token_0.address, pair.token_1.address)
        if pool_token0 == pair.token_0.address:
            reserves_0, reserves_1 = pool_reserves_0, pool_reserves_1
        else:
            reserves_0, reserves_1 = pool_reserves_1, pool_reserves_0

        snapshot = ReserveSnapshot(
            pool=pool_address,
            reserves_0=reserves_0,
            reserves_1=reserves_1,
            supply_0=from_base_units(reserves_0, pair.token_0.decimals),
            supply_1=from_base_units(reserves_1, pair.token_1.decimals),
            block_timestamp_last=block_timestamp_last,
        )
        logger.debug(
            f"{pair.symbol} reserves: {pair.token_0}={snapshot.supply_0}, "
            f"{pair.token_1}={snapshot.supply_1}"
        )
        return snapshot
