import time
from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import Self

from pegkeeper.calculator import RebalanceStrategy, calculate_rebalance
from pegkeeper.config import KeeperSettings
from pegkeeper.connection import AbstractChainClient
from pegkeeper.exceptions import (
    ArithmeticOverflow,
    ContractRevert,
    DivisionByZero,
    InvariantViolation,
    PegKeeperError,
    PoolNotFound,
    RpcError,
)
from pegkeeper.executor import ActionExecutor, ExecutionResult
from pegkeeper.logging import logger
from pegkeeper.types import BlockNumber, KeeperAction, TokenPair
from pegkeeper.uniswap import UniswapV2Factory, UniswapV2ReserveReader, UniswapV2Router


class Keeper:
    """
    Watch the configured pairs once per new block and correct any pool priced outside the allowed
    band.

    Pairs are processed one at a time, so at most one transaction from the keeper wallet is in
    flight. An error while processing one pair is logged and does not affect the others.
    """

    def __init__(
        self,
        *,
        client: AbstractChainClient,
        reserve_reader: UniswapV2ReserveReader,
        router: UniswapV2Router,
        executor: ActionExecutor,
        token_pairs: Iterable[TokenPair],
        ratio_range_allowed: tuple[Decimal, Decimal],
        ratio_range_targets: tuple[Decimal, Decimal],
        delay_between_checks_ms: int,
        rebalance_strategy: RebalanceStrategy = RebalanceStrategy.LINEAR,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.reserve_reader = reserve_reader
        self.router = router
        self.executor = executor
        self.token_pairs = tuple(token_pairs)
        self.ratio_range_allowed = ratio_range_allowed
        self.ratio_range_targets = ratio_range_targets
        self.delay_between_checks_ms = delay_between_checks_ms
        self.rebalance_strategy = rebalance_strategy
        self._sleep = sleep

        if rebalance_strategy is not RebalanceStrategy.LINEAR:
            logger.warning(
                f"Using the {rebalance_strategy} rebalance strategy. Swap sizes differ from the "
                f"default {RebalanceStrategy.LINEAR} strategy."
            )

    @classmethod
    def from_settings(
        cls,
        settings: KeeperSettings,
        client: AbstractChainClient,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Self:
        router = UniswapV2Router(address=settings.uniswap_router_address, client=client)
        factory = UniswapV2Factory(address=settings.uniswap_factory_address, client=client)
        executor = ActionExecutor(
            client,
            stability_module_address=settings.stability_module_address,
            router_address=settings.uniswap_router_address,
            adapter_name=settings.adapter_name,
            adapter_address=settings.adapter_address,
            confirmations=settings.tx_confirmations_required,
            confirmation_timeout=settings.confirmation_timeout_seconds,
            swap_deadline_seconds=settings.swap_deadline_seconds,
            module_errors=settings.module_errors,
            dry_run=settings.dry_run,
        )
        return cls(
            client=client,
            reserve_reader=UniswapV2ReserveReader(client=client, factory=factory),
            router=router,
            executor=executor,
            token_pairs=settings.get_token_pairs(),
            ratio_range_allowed=settings.ratio_range_allowed,
            ratio_range_targets=settings.ratio_range_targets,
            delay_between_checks_ms=settings.delay_between_checks_ms,
            rebalance_strategy=settings.rebalance_strategy,
            sleep=sleep,
        )

    def determine_action(self, pair: TokenPair) -> KeeperAction:
        """
        Read the pair's pool and decide what to do about its price.
        """

        pool_address = self.reserve_reader.get_pool_address(pair.token_0, pair.token_1)
        snapshot = self.reserve_reader.get_reserves(pair, pool_address)
        return calculate_rebalance(
            pair,
            snapshot,
            ratio_range_allowed=self.ratio_range_allowed,
            ratio_range_targets=self.ratio_range_targets,
            router=self.router,
            strategy=self.rebalance_strategy,
        )

    def process_pair(self, pair: TokenPair) -> ExecutionResult:
        action = self.determine_action(pair)
        logger.info(
            f"{pair.symbol}: {type(action).__name__} at dex_price={action.swap_details.dex_price}"
        )
        return self.executor.execute(action)

    def tick(self) -> list[ExecutionResult]:
        """
        Process every pair once. Returns the results for the pairs that reached the executor.
        """

        results: list[ExecutionResult] = []
        for pair in self.token_pairs:
            try:
                results.append(self.process_pair(pair))
            except PoolNotFound as exc:
                logger.error(f"{pair.symbol}: {exc.message} Skipping.")
            except (DivisionByZero, InvariantViolation):
                logger.exception(f"{pair.symbol}: arithmetic guard tripped, skipping.")
            except (ArithmeticOverflow, ContractRevert, RpcError) as exc:
                logger.error(f"{pair.symbol}: {exc.message} Skipping.")
            except PegKeeperError as exc:
                logger.error(f"{pair.symbol}: {exc}. Skipping.")
            except Exception:
                logger.exception(f"{pair.symbol}: unexpected error, skipping.")
        return results

    def run_once(self, last_block_processed: BlockNumber | None) -> BlockNumber | None:
        """
        Tick if the chain has advanced past `last_block_processed`. Returns the new watermark.
        """

        try:
            current_block = self.client.block_number()
        except RpcError as exc:
            logger.error(f"Could not read the current block: {exc.message}")
            return last_block_processed

        if last_block_processed is not None and current_block <= last_block_processed:
            logger.info(
                "Skipping this block, as it has already been handled, "
                f"block_number={current_block}"
            )
            return last_block_processed

        logger.info(f"Unseen block, ticking keeper process, block_number={current_block}")
        self.tick()
        return current_block

    def run(self, max_iterations: int | None = None) -> BlockNumber | None:
        """
        Run the keeper loop, forever unless `max_iterations` is given.
        """

        last_block_processed: BlockNumber | None = None
        iteration = 0
        while True:
            last_block_processed = self.run_once(last_block_processed)
            iteration += 1
            if max_iterations is not None and iteration >= max_iterations:
                return last_block_processed

            logger.info(f"Sleeping for {self.delay_between_checks_ms}ms")
            self._sleep(self.delay_between_checks_ms / 1000)
