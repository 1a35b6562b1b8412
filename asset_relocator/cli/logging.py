"""
Logging setup for CLI commands.
"""
import logging
import logging.handlers
from pathlib import Path

from asset_relocator.core.config import Settings
from asset_relocator.core.logging_config import LOG_DATE_FORMAT, LOG_FORMAT, setup_logging


def setup_cli_logging(name: str, settings: Settings, verbose: bool = False) -> logging.Logger:
    """
    Configure logging for a CLI command.

    Records go to the shared application log and to ``<log_dir>/<name>.log``;
    ``--verbose`` additionally echoes them to stderr at DEBUG level.
    """
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    setup_logging(settings, console=verbose)

    command_log = Path(settings.log_dir) / f"{name}.log"
    handler = logging.handlers.RotatingFileHandler(
        command_log,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logging.getLogger().addHandler(handler)

    logger = logging.getLogger(f"relocator.cli.{name}")
    logger.debug("Command log: %s", command_log)
    return logger
