from .config import KeeperSettings, load_settings
from .connection import AbstractChainClient, Web3ChainClient, get_web3
from .functions import get_checksum_address
from .logging import logger
from .version import __version__

# isort: split

from .calculator import RebalanceStrategy, calculate_rebalance
from .executor import ActionExecutor, ExecutionResult, ExecutionState
from .keeper import Keeper
from .types import (
    ContractAndSell,
    ExpandAndBuy,
    KeeperAction,
    NoAction,
    ReserveSnapshot,
    SwapDetails,
    Token,
    TokenPair,
)
from .uniswap import UniswapV2Factory, UniswapV2ReserveReader, UniswapV2Router

__all__ = (
    "AbstractChainClient",
    "ActionExecutor",
    "ContractAndSell",
    "ExecutionResult",
    "ExecutionState",
    "ExpandAndBuy",
    "Keeper",
    "KeeperAction",
    "KeeperSettings",
    "NoAction",
    "RebalanceStrategy",
    "ReserveSnapshot",
    "SwapDetails",
    "Token",
    "TokenPair",
    "UniswapV2Factory",
    "UniswapV2ReserveReader",
    "UniswapV2Router",
    "Web3ChainClient",
    "__version__",
    "calculate_rebalance",
    "constants",
    "encoding",
    "exceptions",
    "fixed_point",
    "functions",
    "get_checksum_address",
    "get_web3",
    "load_settings",
    "logger",
    "types",
    "uniswap",
)
