import dataclasses
from decimal import Decimal

from eth_typing import ChecksumAddress

from pegkeeper.exceptions import InvariantViolation, PegKeeperValueError

type BlockNumber = int
type ChainId = int


@dataclasses.dataclass(slots=True, frozen=True)
class Token:
    symbol: str
    address: ChecksumAddress
    decimals: int

    def __str__(self) -> str:
        return self.symbol


@dataclasses.dataclass(slots=True, frozen=True)
class TokenPair:
    """
    Two tokens traded against each other in a single pool. The order of `token_0` and `token_1`
    sets the orientation of the price (`supply_0 / supply_1`) and need not match the order used by
    the pool contract.
    """

    symbol: str
    token_0: Token
    token_1: Token

    def __post_init__(self) -> None:
        if self.token_0.address == self.token_1.address:
            raise PegKeeperValueError(
                message=f"Pair {self.symbol} has the same token on both sides."
            )

    @property
    def tokens(self) -> tuple[Token, Token]:
        return self.token_0, self.token_1


@dataclasses.dataclass(slots=True, frozen=True, kw_only=True)
class ReserveSnapshot:
    """
    Pool reserves from a single `getReserves` read, oriented to the pair's token order.
    """

    pool: ChecksumAddress
    reserves_0: int
    reserves_1: int
    supply_0: Decimal
    supply_1: Decimal
    block_timestamp_last: int


@dataclasses.dataclass(slots=True, frozen=True, kw_only=True)
class SwapDetails:
    dex_price: Decimal
    token_to_sell: Token
    amount_to_sell: Decimal
    token_to_buy: Token
    amount_to_buy_min: Decimal
    path: tuple[ChecksumAddress, ...]

    def __post_init__(self) -> None:
        if self.amount_to_sell < 0 or self.amount_to_buy_min < 0:
            raise InvariantViolation(
                message=f"Negative swap amounts: sell {self.amount_to_sell}, "
                f"buy at least {self.amount_to_buy_min}"
            )


@dataclasses.dataclass(slots=True, frozen=True)
class KeeperAction:
    """
    The action chosen for one pair on one tick. Exactly one of the subclasses below is produced.
    """

    swap_details: SwapDetails


@dataclasses.dataclass(slots=True, frozen=True)
class ExpandAndBuy(KeeperAction):
    """
    The price is above the allowed band: the module mints supply and swaps it through the pool.
    """

    def __post_init__(self) -> None:
        if len(self.swap_details.path) != 2:
            raise InvariantViolation(
                message=f"{type(self).__name__} needs a two token path, "
                f"got {self.swap_details.path}"
            )


@dataclasses.dataclass(slots=True, frozen=True)
class ContractAndSell(KeeperAction):
    """
    The price is below the allowed band: the module swaps from its reserves and contracts
    supply.
    """

    def __post_init__(self) -> None:
        if len(self.swap_details.path) != 2:
            raise InvariantViolation(
                message=f"{type(self).__name__} needs a two token path, "
                f"got {self.swap_details.path}"
            )


@dataclasses.dataclass(slots=True, frozen=True)
class NoAction(KeeperAction):
    """
    The price is inside the allowed band. The observed price is kept for logging.
    """

    def __post_init__(self) -> None:
        if self.swap_details.path:
            raise InvariantViolation(message="NoAction cannot carry a swap path.")
