"""manta-storspan: find every storage node of a Manta deployment."""

import importlib.metadata

try:
    __version__ = importlib.metadata.version("manta-storspan")
except importlib.metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    __version__ = "0.0.0"

__all__ = ["__version__"]
