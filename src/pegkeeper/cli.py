from pathlib import Path

import click

from pegkeeper.config import KeeperSettings, dump_settings, load_settings
from pegkeeper.connection import Web3ChainClient, get_web3
from pegkeeper.exceptions import ConfigError, RpcError
from pegkeeper.keeper import Keeper
from pegkeeper.logging import logger

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="TOML configuration file. Environment variables fill in missing values.",
)


def _load_settings_or_exit(config_path: Path | None) -> KeeperSettings:
    try:
        return load_settings(config_path)
    except ConfigError as exc:
        raise click.ClickException(exc.message) from None


def _build_keeper(settings: KeeperSettings) -> Keeper:
    try:
        w3 = get_web3(settings.rpc_url, chain_id=settings.chain_id)
    except (ConfigError, RpcError) as exc:
        raise click.ClickException(str(exc)) from None

    client = Web3ChainClient(w3, settings.get_keeper_account())
    logger.info(f"Connected to chain {client.chain_id} as {client.address}")
    return Keeper.from_settings(settings, client)


@click.group()
@click.version_option()
def cli() -> None: ...


@cli.command("run")
@config_option
@click.option("--once", is_flag=True, help="Run a single iteration of the keeper loop and exit")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging level",
)
def keeper_run(config_path: Path | None, *, once: bool, log_level: str) -> None:
    """
    Connect to the chain and run the keeper loop.
    """

    logger.setLevel(log_level.upper())
    settings = _load_settings_or_exit(config_path)
    keeper = _build_keeper(settings)

    try:
        keeper.run(max_iterations=1 if once else None)
    except KeyboardInterrupt:
        logger.info("Keeper stopped.")


@cli.command("check")
@config_option
def keeper_check(config_path: Path | None) -> None:
    """
    Decide the action for each pair once, without submitting any transaction.
    """

    settings = _load_settings_or_exit(config_path).model_copy(update={"dry_run": True})
    keeper = _build_keeper(settings)

    for result in keeper.tick():
        click.echo(f"{type(result.action).__name__}: {result.state}")


@cli.group()
def config() -> None:
    """
    Configuration commands
    """


@config.command("show")
@config_option
@click.option(
    "--json",
    "output_format",
    flag_value="json",
    type=str,
    help="Show configuration in JSON format",
)
@click.option(
    "--toml",
    "output_format",
    flag_value="toml",
    type=str,
    help="Show configuration in TOML format (default)",
    default=True,
)
def config_show(config_path: Path | None, output_format: str) -> None:
    """
    Display the current configuration in JSON or TOML (default) format, with secrets masked.
    """

    settings = _load_settings_or_exit(config_path)
    click.echo(dump_settings(settings, output_format=output_format))
