"""Exceptions raised by the discovery engine."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Fatal error that aborts a discovery run."""


class RootExistsError(DiscoveryError):
    """The output root already exists, so a previous run could be clobbered."""

    def __init__(self, root: str) -> None:
        super().__init__(f"{root} already exists in Manta")
        self.root = root


class ProbeError(DiscoveryError):
    """A probe pipeline stage failed."""

    def __init__(self, object_path: str, stage: str, message: str) -> None:
        super().__init__(message)
        self.object_path = object_path
        self.stage = stage


class ProbeTimeoutError(ProbeError):
    """No job report arrived for a probe within the configured timeout."""


class ProbeStateError(RuntimeError):
    """The correlation table was used in a way that breaks its invariants."""
