"""Minimal async client for the Manta storage and compute API."""

from storspan.manta.auth import MantaSignatureAuth
from storspan.manta.client import MantaClient
from storspan.manta.errors import MantaAuthError, MantaError, MantaNotFoundError

__all__ = [
    "MantaAuthError",
    "MantaClient",
    "MantaError",
    "MantaNotFoundError",
    "MantaSignatureAuth",
]
