import pickle

from pegkeeper.exceptions import (
    ConfigError,
    ConfirmationTimeout,
    ContractRevert,
    InvariantViolation,
    PoolNotFound,
    RpcError,
    TransportFailure,
)

from ..conftest import REFERENCE_TOKEN_ADDRESS, STABLE_TOKEN_ADDRESS


def test_rpc_error_pickling() -> None:
    """
    Test that the `RpcError` exception's `__reduce__` method allows the exception to be pickled and
    unpickled correctly.
    """

    original_exception = RpcError(error="connection reset by peer")

    unpickled_exception = pickle.loads(pickle.dumps(original_exception))

    assert type(unpickled_exception) is RpcError
    assert unpickled_exception.error == "connection reset by peer"
    assert unpickled_exception.message == original_exception.message
    assert str(unpickled_exception) == str(original_exception)


def test_transport_failure_pickling() -> None:
    original_exception = TransportFailure(error="nonce too low")

    unpickled_exception = pickle.loads(pickle.dumps(original_exception))

    assert type(unpickled_exception) is TransportFailure
    assert unpickled_exception.error == "nonce too low"
    assert unpickled_exception.message == original_exception.message


def test_confirmation_timeout_pickling() -> None:
    """
    Test that `ConfirmationTimeout` keeps its own constructor arguments through pickling, instead
    of the arguments of its `TransportFailure` parent.
    """

    original_exception = ConfirmationTimeout(transaction_hash="0xabcdef", timeout_seconds=300.0)

    unpickled_exception = pickle.loads(pickle.dumps(original_exception))

    assert type(unpickled_exception) is ConfirmationTimeout
    assert isinstance(unpickled_exception, TransportFailure)
    assert unpickled_exception.transaction_hash == "0xabcdef"
    assert unpickled_exception.timeout_seconds == 300.0
    assert unpickled_exception.error == original_exception.error
    assert unpickled_exception.message == original_exception.message


def test_pool_not_found_pickling() -> None:
    original_exception = PoolNotFound(token_a=STABLE_TOKEN_ADDRESS, token_b=REFERENCE_TOKEN_ADDRESS)

    unpickled_exception = pickle.loads(pickle.dumps(original_exception))

    assert type(unpickled_exception) is PoolNotFound
    assert unpickled_exception.token_a == STABLE_TOKEN_ADDRESS
    assert unpickled_exception.token_b == REFERENCE_TOKEN_ADDRESS
    assert unpickled_exception.message == original_exception.message


def test_contract_revert_pickling() -> None:
    original_exception = ContractRevert(reason="EXPIRED", data=b"\x08\xc3\x79\xa0")

    unpickled_exception = pickle.loads(pickle.dumps(original_exception))

    assert type(unpickled_exception) is ContractRevert
    assert unpickled_exception.reason == "EXPIRED"
    assert unpickled_exception.data == b"\x08\xc3\x79\xa0"
    assert unpickled_exception.message == "Contract reverted: EXPIRED"


def test_contract_revert_without_reason_pickling() -> None:
    original_exception = ContractRevert(reason=None, data=b"\xde\xad\xbe\xef")

    unpickled_exception = pickle.loads(pickle.dumps(original_exception))

    assert unpickled_exception.reason is None
    assert unpickled_exception.message == "Contract reverted with undecoded data 0xdeadbeef"


def test_message_only_exceptions_pickling() -> None:
    for original_exception in (
        ConfigError(message="rpc_url is required"),
        InvariantViolation(message="Negative purchase quantity"),
    ):
        unpickled_exception = pickle.loads(pickle.dumps(original_exception))

        assert type(unpickled_exception) is type(original_exception)
        assert unpickled_exception.message == original_exception.message
        assert str(unpickled_exception) == str(original_exception)
