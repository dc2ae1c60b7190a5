from pegkeeper.exceptions.arithmetic import (
    ArithmeticOverflow,
    DivisionByZero,
    InvariantViolation,
    PegKeeperArithmeticError,
)
from pegkeeper.exceptions.base import PegKeeperError, PegKeeperTypeError, PegKeeperValueError
from pegkeeper.exceptions.config import ConfigError
from pegkeeper.exceptions.connection import (
    ConfirmationTimeout,
    PegKeeperConnectionError,
    RpcError,
    TransportFailure,
)
from pegkeeper.exceptions.liquidity_pool import LiquidityPoolError, PoolNotFound
from pegkeeper.exceptions.transaction import ContractRevert

from . import arithmetic, config, connection, liquidity_pool, transaction

__all__ = (
    "ArithmeticOverflow",
    "ConfigError",
    "ConfirmationTimeout",
    "ContractRevert",
    "DivisionByZero",
    "InvariantViolation",
    "LiquidityPoolError",
    "PegKeeperArithmeticError",
    "PegKeeperConnectionError",
    "PegKeeperError",
    "PegKeeperTypeError",
    "PegKeeperValueError",
    "PoolNotFound",
    "RpcError",
    "TransportFailure",
    "arithmetic",
    "config",
    "connection",
    "liquidity_pool",
    "transaction",
)
