from pegkeeper.exceptions.base import PegKeeperError


class ConfigError(PegKeeperError):
    """
    Raised when a startup parameter is missing or invalid. This error is fatal: the keeper exits
    before entering its loop.
    """
