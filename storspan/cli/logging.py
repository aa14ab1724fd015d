"""CLI logging configuration with file output.

Provides ``configure_cli_logging``, which sets up both console and file
logging for a CLI run.  Log files live under
``~/.local/share/storspan/logs/<command>.log`` and rotate at 10 MB.

Usage::

    from storspan.cli.logging import configure_cli_logging

    configure_cli_logging("storspan", verbose=verbose)

Follow a run live with::

    tail -f ~/.local/share/storspan/logs/storspan.log
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Standard log directory follows XDG convention
LOG_DIR = Path.home() / ".local" / "share" / "storspan" / "logs"

LOGGER_NAME = "storspan"


def get_log_dir() -> Path:
    """Return the CLI log directory, creating it if needed."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    return LOG_DIR


def get_log_file(command: str) -> Path:
    """Return the log file path for a CLI command."""
    return get_log_dir() / f"{command}.log"


def configure_cli_logging(
    command: str,
    *,
    verbose: bool = False,
    console_level: int | None = None,
    file_level: int = logging.DEBUG,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 3,
) -> Path:
    """Configure logging for a CLI command with file output.

    Sets up:
    - File handler: DEBUG-level rotating log at
      ``~/.local/share/storspan/logs/<command>.log``
    - Console handler on stderr: ``console_level``, else DEBUG with
      ``verbose``, else the ``LOG_LEVEL`` environment setting

    Args:
        command: CLI command name, used as the log file stem
        verbose: If True, log DEBUG to the console
        console_level: Override console level (takes precedence over verbose)
        file_level: File log level (default: DEBUG)
        max_bytes: Max size per log file before rotation
        backup_count: Number of rotated backups to keep

    Returns:
        Path to the log file
    """
    from storspan.settings import get_log_level

    log_file = get_log_file(command)

    package_logger = logging.getLogger(LOGGER_NAME)

    # Remove handlers from earlier calls to avoid duplicates
    for handler in package_logger.handlers[:]:
        if isinstance(handler, logging.StreamHandler):
            package_logger.removeHandler(handler)
            handler.close()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    package_logger.addHandler(file_handler)

    if console_level is None:
        console_level = logging.DEBUG if verbose else get_log_level()
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S")
    )
    package_logger.addHandler(console_handler)

    # The logger itself must pass everything either handler wants
    package_logger.setLevel(min(file_level, console_level))

    return log_file
