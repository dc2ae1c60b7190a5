import re
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Annotated, Any

import tomlkit
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from eth_utils.address import is_hex_address
from pydantic import (
    AfterValidator,
    BaseModel,
    Field,
    HttpUrl,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    WebsocketUrl,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from pegkeeper.calculator import RebalanceStrategy
from pegkeeper.constants import (
    DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
    DEFAULT_SWAP_DEADLINE_SECONDS,
    MAX_UINT8,
    MIN_UINT8,
)
from pegkeeper.encoding import adapter_id
from pegkeeper.exceptions import ConfigError, PegKeeperValueError
from pegkeeper.functions import get_checksum_address
from pegkeeper.types import ChainId, Token, TokenPair

ENV_PREFIX = "PEGKEEPER_"

ERROR_PROTOTYPE_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*\([A-Za-z0-9_,\[\]]*\)$")


def _validate_address(address: str) -> ChecksumAddress:
    if not is_hex_address(address):
        msg = f"{address!r} is not a valid address"
        raise ValueError(msg)
    return get_checksum_address(address)


type Address = Annotated[str, AfterValidator(_validate_address)]
type ValidatedUint8 = Annotated[int, Field(strict=True, ge=MIN_UINT8, le=MAX_UINT8)]
type RatioRange = tuple[Decimal, Decimal]


class TokenSettings(BaseModel):
    symbol: str
    address: Address
    decimals: ValidatedUint8

    def to_token(self) -> Token:
        return Token(
            symbol=self.symbol,
            address=get_checksum_address(self.address),
            decimals=self.decimals,
        )


class TokenPairSettings(BaseModel):
    symbol: str
    token_0: TokenSettings
    token_1: TokenSettings

    @model_validator(mode="after")
    def validate_distinct_tokens(self) -> "TokenPairSettings":
        if self.token_0.address == self.token_1.address:
            msg = f"Pair {self.symbol} uses the same token on both sides"
            raise ValueError(msg)
        return self

    def to_token_pair(self) -> TokenPair:
        return TokenPair(
            symbol=self.symbol,
            token_0=self.token_0.to_token(),
            token_1=self.token_1.to_token(),
        )


class KeeperSettings(BaseSettings):
    """
    Keeper configuration. Values are read from keyword arguments (e.g. a parsed TOML file), then
    from `PEGKEEPER_`-prefixed environment variables and a `.env` file. Complex values in the
    environment are given as JSON.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rpc_url: HttpUrl | WebsocketUrl | Path
    chain_id: ChainId | None = None
    keeper_private_key: SecretStr

    uniswap_router_address: Address
    uniswap_factory_address: Address
    stability_module_address: Address
    adapter_address: Address
    adapter_name: str

    token_pairs: list[TokenPairSettings] = Field(min_length=1)
    ratio_range_allowed: RatioRange
    ratio_range_targets: RatioRange

    tx_confirmations_required: PositiveInt
    delay_between_checks_ms: PositiveInt
    swap_deadline_seconds: PositiveInt = DEFAULT_SWAP_DEADLINE_SECONDS
    confirmation_timeout_seconds: PositiveFloat = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS

    rebalance_strategy: RebalanceStrategy = RebalanceStrategy.LINEAR
    module_errors: list[str] = Field(default_factory=list)
    dry_run: bool = False

    @field_validator("rpc_url", mode="after")
    def validate_rpc_path(
        cls,  # noqa: N805
        endpoint: HttpUrl | WebsocketUrl | Path,
    ) -> HttpUrl | WebsocketUrl | Path:
        """
        Convert an IPC socket path to an absolute reference, leaving HTTP and WS URLs as-is.
        """

        return endpoint.expanduser().absolute() if isinstance(endpoint, Path) else endpoint

    @field_validator("keeper_private_key", mode="after")
    def validate_private_key(cls, key: SecretStr) -> SecretStr:  # noqa: N805
        try:
            Account.from_key(key.get_secret_value())
        except Exception:  # noqa: BLE001
            # The original exception text may echo the key
            msg = "keeper_private_key is not a valid private key"
            raise ValueError(msg) from None
        return key

    @field_validator("adapter_name", mode="after")
    def validate_adapter_name(cls, name: str) -> str:  # noqa: N805
        try:
            adapter_id(name)
        except PegKeeperValueError as exc:
            raise ValueError(exc.message) from None
        return name

    @field_validator("ratio_range_allowed", "ratio_range_targets", mode="after")
    def validate_ratio_range(cls, ratio_range: RatioRange) -> RatioRange:  # noqa: N805
        low, high = ratio_range
        if low <= 0:
            msg = f"Ratio range {ratio_range} must be positive"
            raise ValueError(msg)
        if low > high:
            msg = f"Ratio range {ratio_range} has its lower bound above its upper bound"
            raise ValueError(msg)
        return ratio_range

    @field_validator("module_errors", mode="after")
    def validate_module_errors(cls, prototypes: list[str]) -> list[str]:  # noqa: N805
        for prototype in prototypes:
            if ERROR_PROTOTYPE_PATTERN.match(prototype) is None:
                msg = f"{prototype!r} is not an error prototype like 'Name(uint256,address)'"
                raise ValueError(msg)
        return prototypes

    @model_validator(mode="after")
    def validate_target_band_inside_allowed_band(self) -> "KeeperSettings":
        allowed_low, allowed_high = self.ratio_range_allowed
        target_low, target_high = self.ratio_range_targets
        if not (allowed_low <= target_low and target_high <= allowed_high):
            msg = (
                f"Target band {self.ratio_range_targets} must lie inside the allowed band "
                f"{self.ratio_range_allowed}"
            )
            raise ValueError(msg)
        return self

    def get_token_pairs(self) -> list[TokenPair]:
        return [pair.to_token_pair() for pair in self.token_pairs]

    def get_keeper_account(self) -> LocalAccount:
        account: LocalAccount = Account.from_key(self.keeper_private_key.get_secret_value())
        return account


def load_settings(config_path: Path | None = None) -> KeeperSettings:
    """
    Load and validate the keeper settings, from a TOML file if given and the environment.

    Raises `ConfigError` on any missing or invalid value.
    """

    file_values: dict[str, Any] = {}
    if config_path is not None:
        try:
            file_values = tomllib.loads(config_path.read_text())
        except OSError as exc:
            raise ConfigError(message=f"Could not read config file {config_path}: {exc}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(
                message=f"Config file {config_path} is not valid TOML: {exc}"
            ) from exc

    try:
        return KeeperSettings(**file_values)
    except ValidationError as exc:
        raise ConfigError(message=f"Invalid keeper configuration: {exc}") from exc


def dump_settings(settings: KeeperSettings, output_format: str = "toml") -> str:
    """
    Render the settings with secrets masked.
    """

    values = settings.model_dump(mode="json", exclude_none=True)
    match output_format:
        case "toml":
            return tomlkit.dumps(values)
        case "json":
            return settings.model_dump_json(indent=2, exclude_none=True)
        case _:
            raise PegKeeperValueError(message=f"Unknown output format {output_format!r}")
