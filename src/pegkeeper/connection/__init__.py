from json import JSONDecodeError
from pathlib import Path
from typing import TYPE_CHECKING, cast

import tenacity
from pydantic import HttpUrl, WebsocketUrl
from ujson import loads as ujson_loads
from web3 import HTTPProvider, IPCProvider, JSONBaseProvider, LegacyWebSocketProvider, Web3
from web3.types import RPCResponse

from pegkeeper.exceptions import ConfigError, RpcError

from .chain_client import AbstractChainClient, TransactionReceipt, Web3ChainClient


def _fast_decode_rpc_response(raw_response: bytes) -> RPCResponse:
    """
    Decode the JSON-RPC response using ujson.
    """

    try:
        return cast("RPCResponse", ujson_loads(raw_response))
    except ValueError:
        # Re-raise as a dummy JSONDecodeError so web3py's exception handling works as intended.
        msg = "JSON failure"
        raise JSONDecodeError(msg, "[]", 0) from None


def get_web3(
    endpoint: HttpUrl | WebsocketUrl | Path,
    *,
    chain_id: int | None = None,
    optimize: bool = True,
) -> Web3:
    """
    Build a connected `Web3` instance for the endpoint, verifying the chain ID if one is given.
    """

    match endpoint:
        case HttpUrl():
            w3 = Web3(HTTPProvider(str(endpoint)))
        case WebsocketUrl():
            w3 = Web3(LegacyWebSocketProvider(str(endpoint)))
        case Path():
            w3 = Web3(IPCProvider(str(endpoint)))
        case _:
            raise ConfigError(message=f"Unsupported RPC endpoint {endpoint!r}")

    w3_connected_check_with_retry = tenacity.Retrying(
        stop=tenacity.stop_after_delay(10),
        wait=tenacity.wait_exponential_jitter(),
        retry=tenacity.retry_if_result(lambda result: result is False),
    )
    try:
        w3_connected_check_with_retry(fn=w3.is_connected)
    except tenacity.RetryError as exc:
        raise RpcError(error=f"Web3 instance at {endpoint} is not connected.") from exc

    if chain_id is not None and w3.eth.chain_id != chain_id:
        raise ConfigError(
            message=(
                f"The chain ID ({w3.eth.chain_id}) at endpoint {endpoint} does not match "
                f"the configured chain ID ({chain_id})."
            )
        )

    if optimize:
        # Remove all middleware and monkey-patch the JSON decoding for RPC responses
        w3.middleware_onion.clear()
        if TYPE_CHECKING:
            assert isinstance(w3.provider, JSONBaseProvider)
        w3.provider.decode_rpc_response = _fast_decode_rpc_response  # type:ignore[method-assign]

    return w3


__all__ = (
    "AbstractChainClient",
    "TransactionReceipt",
    "Web3ChainClient",
    "get_web3",
)
