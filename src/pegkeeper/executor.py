import dataclasses
import enum
import time
from collections.abc import Callable, Iterable

from eth_typing import ChecksumAddress
from hexbytes import HexBytes

from pegkeeper.connection import AbstractChainClient, TransactionReceipt
from pegkeeper.constants import DEFAULT_CONFIRMATION_TIMEOUT_SECONDS, DEFAULT_SWAP_DEADLINE_SECONDS
from pegkeeper.encoding import (
    adapter_id,
    encode_adapter_swap_call,
    encode_contract_and_sell,
    encode_expand_and_buy,
    swap_deadline,
)
from pegkeeper.exceptions import (
    ConfirmationTimeout,
    ContractRevert,
    PegKeeperTypeError,
    RpcError,
    TransportFailure,
)
from pegkeeper.fixed_point import from_base_units, to_base_units
from pegkeeper.functions import decode_revert_reason, get_checksum_address
from pegkeeper.logging import logger
from pegkeeper.types import ContractAndSell, ExpandAndBuy, KeeperAction, NoAction

NATIVE_TOKEN_DECIMALS = 18


class ExecutionState(enum.StrEnum):
    DECIDED = "decided"
    CALL_BUILT = "call_built"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TRANSPORT_FAILED = "transport_failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


@dataclasses.dataclass(slots=True, frozen=True, kw_only=True)
class ExecutionResult:
    """
    The final state reached for one action. `error` holds the decoded revert reason or the raw
    error text for failed states.
    """

    action: KeeperAction
    state: ExecutionState
    calldata: bytes | None = None
    transaction_hash: HexBytes | None = None
    receipt: TransactionReceipt | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is ExecutionState.CONFIRMED


def _log_transition(action: KeeperAction, state: ExecutionState) -> None:
    logger.debug(f"{type(action).__name__} -> {state}")


class ActionExecutor:
    """
    Turn a `KeeperAction` into a stability module transaction and follow it to completion.

    Each call to `execute` walks one transaction through
    DECIDED → CALL_BUILT → SUBMITTED → {CONFIRMED | REVERTED | TRANSPORT_FAILED | TIMED_OUT}.
    Failures are reported in the returned `ExecutionResult` and never retried.
    """

    def __init__(
        self,
        client: AbstractChainClient,
        *,
        stability_module_address: str,
        router_address: str,
        adapter_name: str,
        adapter_address: str | None = None,
        confirmations: int,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
        swap_deadline_seconds: int = DEFAULT_SWAP_DEADLINE_SECONDS,
        module_errors: Iterable[str] = (),
        dry_run: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.stability_module_address: ChecksumAddress = get_checksum_address(
            stability_module_address
        )
        self.router_address: ChecksumAddress = get_checksum_address(router_address)
        self.adapter_name = adapter_name
        self.adapter_address = (
            get_checksum_address(adapter_address) if adapter_address is not None else None
        )
        self.adapter_id = adapter_id(adapter_name)
        self.confirmations = confirmations
        self.confirmation_timeout = confirmation_timeout
        self.swap_deadline_seconds = swap_deadline_seconds
        self.module_errors = tuple(module_errors)
        self.dry_run = dry_run
        self._clock = clock

    def build_call(self, action: ExpandAndBuy | ContractAndSell) -> bytes:
        """
        Build the stability module calldata for the action, with the adapter swap payload nested
        inside. The swap deadline is taken from the clock at the time of the call.
        """

        swap_details = action.swap_details
        amount_in = to_base_units(swap_details.amount_to_sell, swap_details.token_to_sell.decimals)

        delegate_data = encode_adapter_swap_call(
            amount_in=amount_in,
            amount_out_min=to_base_units(
                swap_details.amount_to_buy_min, swap_details.token_to_buy.decimals
            ),
            path=swap_details.path,
            deadline=swap_deadline(self._clock(), self.swap_deadline_seconds),
            router_address=self.router_address,
        )

        match action:
            case ExpandAndBuy():
                logger.debug(
                    f"EXPAND_AND_BUY adapter={self.adapter_id.hex()} ({self.adapter_address}) "
                    f"mint_amount={amount_in} "
                    f"data=0x{delegate_data.hex()}"
                )
                return encode_expand_and_buy(
                    adapter=self.adapter_id,
                    delegate_data=delegate_data,
                    mint_amount=amount_in,
                )
            case ContractAndSell():
                logger.debug(
                    f"CONTRACT_AND_SELL adapter={self.adapter_id.hex()} ({self.adapter_address}) "
                    f"data=0x{delegate_data.hex()}"
                )
                return encode_contract_and_sell(
                    adapter=self.adapter_id,
                    delegate_data=delegate_data,
                )
            case _:
                raise PegKeeperTypeError(message=f"Cannot build a call for {action!r}")

    def decode_revert(self, exc: ContractRevert) -> str:
        """
        Get the revert reason, decoded against the module's error set when possible.
        """

        return decode_revert_reason(exc.data, self.module_errors) or exc.reason or str(exc)

    def _log_wallet_balance(self) -> None:
        try:
            balance = self.client.get_balance(self.client.address)
        except RpcError as exc:
            logger.warning(f"Could not read the keeper wallet balance: {exc}")
        else:
            logger.info(
                f"Current wallet balance: {from_base_units(balance, NATIVE_TOKEN_DECIMALS)}"
            )

    def _replay_revert_reason(self, calldata: bytes, block_number: int) -> str:
        """
        Replay a transaction that reverted on-chain as a call at its inclusion block to recover the
        revert data.
        """

        try:
            self.client.call(
                address=self.stability_module_address,
                calldata=calldata,
                block_identifier=block_number,
            )
        except ContractRevert as exc:
            return self.decode_revert(exc)
        except RpcError as exc:
            return f"reverted on-chain, replay failed: {exc.error}"
        return "reverted on-chain, replay did not revert"

    def execute(self, action: KeeperAction) -> ExecutionResult:
        match action:
            case NoAction():
                logger.info(
                    f"There was no favourable swap to make for dex_price of "
                    f"{action.swap_details.dex_price}"
                )
                return ExecutionResult(action=action, state=ExecutionState.SKIPPED)
            case ExpandAndBuy() | ContractAndSell():
                _log_transition(action, ExecutionState.DECIDED)
            case _:
                raise PegKeeperTypeError(message=f"Unknown keeper action {action!r}")

        calldata = self.build_call(action)
        _log_transition(action, ExecutionState.CALL_BUILT)

        if self.dry_run:
            logger.info(
                f"Dry run, not submitting {type(action).__name__} to "
                f"{self.stability_module_address}: 0x{calldata.hex()}"
            )
            return ExecutionResult(
                action=action,
                state=ExecutionState.CALL_BUILT,
                calldata=calldata,
            )

        self._log_wallet_balance()

        try:
            transaction_hash = self.client.send_transaction(
                to=self.stability_module_address,
                data=calldata,
            )
        except ContractRevert as exc:
            reason = self.decode_revert(exc)
            logger.error(f"Error during function call, contract revert reason: {reason}")
            return ExecutionResult(
                action=action,
                state=ExecutionState.REVERTED,
                calldata=calldata,
                error=reason,
            )
        except TransportFailure as exc:
            logger.error(f"Error during function call: {exc.error}")
            return ExecutionResult(
                action=action,
                state=ExecutionState.TRANSPORT_FAILED,
                calldata=calldata,
                error=exc.error,
            )

        _log_transition(action, ExecutionState.SUBMITTED)
        logger.info(f"Submitted {type(action).__name__}, tx_hash={transaction_hash.to_0x_hex()}")

        try:
            receipt = self.client.wait_for_confirmations(
                transaction_hash=transaction_hash,
                confirmations=self.confirmations,
                timeout=self.confirmation_timeout,
            )
        except ConfirmationTimeout as exc:
            logger.error(f"Error during transaction: {exc.error}")
            return ExecutionResult(
                action=action,
                state=ExecutionState.TIMED_OUT,
                calldata=calldata,
                transaction_hash=transaction_hash,
                error=exc.error,
            )
        except TransportFailure as exc:
            logger.error(f"Error during transaction: {exc.error}")
            return ExecutionResult(
                action=action,
                state=ExecutionState.TRANSPORT_FAILED,
                calldata=calldata,
                transaction_hash=transaction_hash,
                error=exc.error,
            )

        if receipt.status == 0:
            reason = self._replay_revert_reason(calldata, receipt.block_number)
            logger.error(
                f"Transaction {transaction_hash.to_0x_hex()} reverted, "
                f"contract revert reason: {reason}"
            )
            return ExecutionResult(
                action=action,
                state=ExecutionState.REVERTED,
                calldata=calldata,
                transaction_hash=transaction_hash,
                receipt=receipt,
                error=reason,
            )

        logger.info(f"Successful transaction! tx_hash={transaction_hash.to_0x_hex()}")
        return ExecutionResult(
            action=action,
            state=ExecutionState.CONFIRMED,
            calldata=calldata,
            transaction_hash=transaction_hash,
            receipt=receipt,
        )
