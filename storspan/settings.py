"""Environment settings for manta-storspan.

The Manta client is configured the same way as the stock Manta command-line
tools:

  MANTA_URL            base URL of the Manta front door
  MANTA_USER           account login (also the default output root owner)
  MANTA_KEY_ID         fingerprint of the SSH key registered with the account
  MANTA_KEY_PATH       optional explicit path to the private key
  MANTA_TLS_INSECURE   skip TLS certificate verification when truthy

Diagnostics:

  LOG_LEVEL            console log level (default WARNING)

A ``.env`` file in the working directory is loaded by the CLI before any of
these are read.
"""

import logging
import os
from pathlib import Path

# ─── Discovery defaults ─────────────────────────────────────────────────────

DEFAULT_PORT = 1725
DEFAULT_CONCURRENCY = 10
# Maximum number of probes issued per expected node
BUDGET_FACTOR = 10
CALLBACK_NAMESPACE = "manta-storspan"
OUTPUT_DIRNAME = "manta-storspan"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class SettingsError(ValueError):
    """A required environment setting is missing or invalid."""


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise SettingsError(f"environment variable {name} must be set")
    return value


def get_manta_url() -> str:
    """Get the Manta base URL (``MANTA_URL``)."""
    return _require("MANTA_URL").rstrip("/")


def get_manta_user() -> str:
    """Get the Manta account login (``MANTA_USER``)."""
    return _require("MANTA_USER")


def get_manta_key_id() -> str:
    """Get the SSH key fingerprint used to sign requests (``MANTA_KEY_ID``)."""
    return _require("MANTA_KEY_ID")


def get_manta_key_path() -> Path | None:
    """Get an explicit private key path, if configured.

    When unset, the key is located in ``~/.ssh`` by fingerprint.
    """
    if env := os.getenv("MANTA_KEY_PATH"):
        return Path(env).expanduser()
    return None


def get_tls_insecure() -> bool:
    """True when TLS certificate verification should be skipped."""
    return os.getenv("MANTA_TLS_INSECURE", "").strip().lower() in _TRUTHY


def get_default_root() -> str:
    """Get the default output root, ``/$MANTA_USER/stor/manta-storspan``.

    Falls back to an empty user segment when ``MANTA_USER`` is unset so the
    CLI can still render its help text.
    """
    user = os.getenv("MANTA_USER", "")
    return "/".join(["", user, "stor", OUTPUT_DIRNAME])


def get_log_level() -> int:
    """Get the console log level from ``LOG_LEVEL`` (default WARNING)."""
    name = os.getenv("LOG_LEVEL", "WARNING").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING
