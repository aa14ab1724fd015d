"""Run configuration, fixed before the first probe is issued."""

from __future__ import annotations

from ipaddress import IPv4Address, IPv6Address
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storspan.settings import (
    BUDGET_FACTOR,
    CALLBACK_NAMESPACE,
    DEFAULT_CONCURRENCY,
    DEFAULT_PORT,
)

# Largest callback body accepted; a report is a single object path
DEFAULT_MAX_REPORT_BYTES = 4096


class RunConfig(BaseModel):
    """Immutable settings for a single discovery run.

    ``budget`` defaults to ``BUDGET_FACTOR * expected_nodes`` when omitted.
    """

    model_config = ConfigDict(frozen=True)

    address: IPv4Address | IPv6Address = Field(
        ..., description="Address of this host as seen from inside a job"
    )
    expected_nodes: int = Field(..., gt=0, description="Storage nodes expected")
    root: str = Field(..., min_length=2, description="Output directory in Manta")
    concurrency: int = Field(DEFAULT_CONCURRENCY, gt=0)
    budget: int = Field(..., gt=0, description="Maximum probes issued")
    port: int = Field(DEFAULT_PORT, ge=1, le=65535)
    listen_host: str = "::"
    namespace: str = Field(CALLBACK_NAMESPACE, pattern=r"^[^/]+$")
    report_timeout: float | None = Field(None, gt=0)
    max_report_bytes: int = Field(DEFAULT_MAX_REPORT_BYTES, gt=0)

    @field_validator("root")
    @classmethod
    def _normalize_root(cls, value: str) -> str:
        value = value.rstrip("/")
        if not value.startswith("/") or value.count("/") < 3:
            raise ValueError("root must be an absolute path below /<user>/<area>")
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_budget(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("budget") is not None:
            return data
        try:
            expected = int(data["expected_nodes"])
        except (KeyError, TypeError, ValueError):
            # expected_nodes reports its own validation error
            return data
        return {**data, "budget": BUDGET_FACTOR * expected}

    @property
    def max_requests(self) -> int:
        """The request budget."""
        return self.budget

    @property
    def callback_url(self) -> str:
        """Base URL job tasks use to report back, without the node segment."""
        host = str(self.address)
        if self.address.version == 6:
            host = f"[{host}]"
        return f"http://{host}:{self.port}/{self.namespace}"

    def object_path(self, sequence: int) -> str:
        """Path of the marker object for probe ``sequence``."""
        return f"{self.root}/obj{sequence}"

    def node_path(self, node_id: str) -> str:
        """Path of the permanent per-node alias."""
        return f"{self.root}/{node_id}"
