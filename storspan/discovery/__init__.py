"""Storage-node discovery engine.

Probes a Manta deployment with marker objects, tracks which storage node
each marker's job task ran on, and stops once every expected node has been
seen or the request budget is spent.
"""

from storspan.discovery.config import RunConfig
from storspan.discovery.engine import DiscoveryResult, build_job_spec, run_discovery
from storspan.discovery.errors import (
    DiscoveryError,
    ProbeError,
    ProbeStateError,
    ProbeTimeoutError,
    RootExistsError,
)
from storspan.discovery.policy import QueueDecision, decide_next
from storspan.discovery.queue import ProbeQueue
from storspan.discovery.state import DiscoveryState, PendingProbe

__all__ = [
    "DiscoveryError",
    "DiscoveryResult",
    "DiscoveryState",
    "PendingProbe",
    "ProbeError",
    "ProbeQueue",
    "ProbeStateError",
    "ProbeTimeoutError",
    "QueueDecision",
    "RootExistsError",
    "RunConfig",
    "build_job_spec",
    "decide_next",
    "run_discovery",
]
