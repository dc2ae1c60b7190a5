import abc
import dataclasses
import time
from typing import Any

import tenacity
from eth_account.signers.local import LocalAccount
from eth_typing import BlockIdentifier, ChecksumAddress
from hexbytes import HexBytes
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.types import TxParams, Wei

from pegkeeper.exceptions import (
    ConfirmationTimeout,
    ContractRevert,
    RpcError,
    TransportFailure,
)
from pegkeeper.functions import decode_revert_reason, next_base_fee
from pegkeeper.logging import logger
from pegkeeper.types import BlockNumber

# Errors raised by web3 and its HTTP/WS/IPC transports when the node cannot be reached or answers
# with an error
_TRANSPORT_ERRORS = (Web3Exception, RequestException, OSError, TimeoutError)


@dataclasses.dataclass(slots=True, frozen=True)
class TransactionReceipt:
    transaction_hash: HexBytes
    block_number: BlockNumber
    status: int
    gas_used: int


def _revert_data(exc: ContractLogicError) -> bytes:
    """
    Extract the raw revert payload from a web3 contract error. web3 exposes it as a hex string for
    most node responses, but some providers return a mapping or nothing at all.
    """

    match exc.data:
        case str() as hex_data if hex_data.startswith("0x"):
            try:
                return bytes(HexBytes(hex_data))
            except ValueError:
                return b""
        case bytes() as raw_data:
            return raw_data
        case _:
            return b""


class AbstractChainClient(abc.ABC):
    """
    The capabilities the keeper needs from a blockchain: read contract state, submit a signed
    transaction, and follow it to a confirmation depth.
    """

    @property
    @abc.abstractmethod
    def address(self) -> ChecksumAddress:
        """
        The address of the signing account.
        """

    @abc.abstractmethod
    def call(
        self,
        address: ChecksumAddress,
        calldata: bytes,
        block_identifier: BlockIdentifier | None = None,
    ) -> bytes:
        """
        Execute a read-only call and return the raw response. Raises `ContractRevert` if the call
        reverts and `RpcError` on any other failure.
        """

    @abc.abstractmethod
    def block_number(self) -> BlockNumber: ...

    @abc.abstractmethod
    def get_balance(self, address: ChecksumAddress) -> int: ...

    @abc.abstractmethod
    def send_transaction(self, to: ChecksumAddress, data: bytes, value: int = 0) -> HexBytes:
        """
        Sign and broadcast a transaction, returning its hash. Raises `ContractRevert` if the
        transaction would revert and `TransportFailure` if it could not be broadcast.
        """

    @abc.abstractmethod
    def wait_for_confirmations(
        self,
        transaction_hash: HexBytes,
        confirmations: int,
        timeout: float,
    ) -> TransactionReceipt:
        """
        Block until the transaction is included and `confirmations` blocks deep (1 = included).
        Raises `ConfirmationTimeout` if this does not happen within `timeout` seconds, and
        `TransportFailure` on a transport error.
        """


class Web3ChainClient(AbstractChainClient):
    """
    A chain client backed by a web3.py connection and a local signing account.
    """

    def __init__(
        self,
        w3: Web3,
        account: LocalAccount,
        *,
        poll_latency: float = 1.0,
    ) -> None:
        self.w3 = w3
        self.account = account
        self.poll_latency = poll_latency
        try:
            self.chain_id = w3.eth.chain_id
        except _TRANSPORT_ERRORS as exc:
            raise RpcError(error=str(exc)) from exc

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}(chain_id={self.chain_id}, address={self.address})"

    @property
    def address(self) -> ChecksumAddress:
        return self.account.address

    def call(
        self,
        address: ChecksumAddress,
        calldata: bytes,
        block_identifier: BlockIdentifier | None = None,
    ) -> bytes:
        try:
            return bytes(
                self.w3.eth.call(
                    transaction=TxParams(
                        {
                            "from": self.address,
                            "to": address,
                            "data": HexBytes(calldata),
                        }
                    ),
                    block_identifier=block_identifier,
                )
            )
        except ContractLogicError as exc:
            data = _revert_data(exc)
            raise ContractRevert(
                reason=decode_revert_reason(data) or exc.message,
                data=data,
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise RpcError(error=str(exc)) from exc

    def block_number(self) -> BlockNumber:
        try:
            return self.w3.eth.get_block_number()
        except _TRANSPORT_ERRORS as exc:
            raise RpcError(error=str(exc)) from exc

    def get_balance(self, address: ChecksumAddress) -> int:
        try:
            return self.w3.eth.get_balance(address)
        except _TRANSPORT_ERRORS as exc:
            raise RpcError(error=str(exc)) from exc

    def _fee_parameters(self) -> dict[str, Any]:
        latest_block = self.w3.eth.get_block("latest")
        if "baseFeePerGas" not in latest_block:
            # Chain without EIP-1559, price a legacy transaction
            return {"gasPrice": self.w3.eth.gas_price}

        priority_fee = self.w3.eth.max_priority_fee
        base_fee = next_base_fee(
            parent_base_fee=latest_block["baseFeePerGas"],
            parent_gas_used=latest_block["gasUsed"],
            parent_gas_limit=latest_block["gasLimit"],
        )
        # Leave room for the base fee to rise over the next few blocks
        return {
            "maxPriorityFeePerGas": priority_fee,
            "maxFeePerGas": 2 * base_fee + priority_fee,
        }

    def send_transaction(self, to: ChecksumAddress, data: bytes, value: int = 0) -> HexBytes:
        try:
            transaction = TxParams(
                {
                    "from": self.address,
                    "to": to,
                    "data": HexBytes(data),
                    "value": Wei(value),
                    "chainId": self.chain_id,
                    "nonce": self.w3.eth.get_transaction_count(self.address, "pending"),
                }
            )
            transaction["gas"] = self.w3.eth.estimate_gas(transaction)
            transaction.update(self._fee_parameters())  # type: ignore[typeddict-item]

            signed_transaction = self.account.sign_transaction(
                transaction  # type: ignore[arg-type]
            )
            logger.debug(
                f"Broadcasting transaction to {to}, nonce={transaction['nonce']}, "
                f"gas={transaction['gas']}"
            )
            return HexBytes(self.w3.eth.send_raw_transaction(signed_transaction.raw_transaction))
        except ContractLogicError as exc:
            data = _revert_data(exc)
            raise ContractRevert(
                reason=decode_revert_reason(data) or exc.message,
                data=data,
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise TransportFailure(error=str(exc)) from exc

    def wait_for_confirmations(
        self,
        transaction_hash: HexBytes,
        confirmations: int,
        timeout: float,
    ) -> TransactionReceipt:
        deadline = time.monotonic() + timeout

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                transaction_hash,
                timeout=timeout,
                poll_latency=self.poll_latency,
            )
        except TimeExhausted:
            raise ConfirmationTimeout(
                transaction_hash=transaction_hash.to_0x_hex(),
                timeout_seconds=timeout,
            ) from None
        except _TRANSPORT_ERRORS as exc:
            raise TransportFailure(error=str(exc)) from exc

        inclusion_block = receipt["blockNumber"]

        confirmation_depth_with_retry = tenacity.Retrying(
            stop=tenacity.stop_after_delay(max(0.0, deadline - time.monotonic())),
            wait=tenacity.wait_fixed(self.poll_latency),
            retry=tenacity.retry_if_result(lambda depth: depth < confirmations),
        )
        try:
            confirmation_depth_with_retry(lambda: self.block_number() - inclusion_block + 1)
        except tenacity.RetryError:
            raise ConfirmationTimeout(
                transaction_hash=transaction_hash.to_0x_hex(),
                timeout_seconds=timeout,
            ) from None
        except RpcError as exc:
            raise TransportFailure(error=exc.error) from exc

        return TransactionReceipt(
            transaction_hash=HexBytes(receipt["transactionHash"]),
            block_number=inclusion_block,
            status=receipt["status"],
            gas_used=receipt["gasUsed"],
        )
