"""Shared state for a discovery run.

``DiscoveryState`` is the single owner of the run's mutable data:

- the correlation table: object path → :class:`PendingProbe`, for probes
  submitted to the job whose report has not been consumed yet
- the discovered nodes: node id → path of the first probe that reported it
- the run counters (``requests_issued``, ``nodes_found``)

Every method is synchronous, so on one event loop each call is atomic with
respect to the probe pipelines and the callback listener.

Deduplication is decided when a report arrives, not when the pipeline later
resumes: a node id whose first report is still being processed is held in
``_claimed`` so that a second report landing in between is already marked
duplicate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from storspan.discovery.errors import ProbeStateError

logger = logging.getLogger(__name__)


@dataclass
class PendingProbe:
    """Correlation table entry for a probe awaiting its job report."""

    object_path: str
    future: asyncio.Future[PendingProbe]
    node_id: str | None = None
    duplicate: bool | None = None

    @property
    def resolved(self) -> bool:
        return self.node_id is not None


@dataclass
class DiscoveryState:
    """Correlation table, discovered nodes and counters for one run."""

    expected_nodes: int
    budget: int

    requests_issued: int = 0
    stale_reports: int = 0

    _pending: dict[str, PendingProbe] = field(default_factory=dict, repr=False)
    _nodes: dict[str, str] = field(default_factory=dict, repr=False)
    _claimed: set[str] = field(default_factory=set, repr=False)

    # ─── Counters ───────────────────────────────────────────────────────────

    @property
    def nodes_found(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> dict[str, str]:
        """Copy of the discovered nodes (node id → first object path)."""
        return dict(self._nodes)

    @property
    def all_found(self) -> bool:
        return self.nodes_found >= self.expected_nodes

    @property
    def budget_exhausted(self) -> bool:
        return self.requests_issued >= self.budget

    def issue_probe(self) -> int:
        """Allocate the next probe sequence number and count the request."""
        sequence = self.requests_issued
        self.requests_issued += 1
        return sequence

    # ─── Correlation table ──────────────────────────────────────────────────

    def __contains__(self, object_path: str) -> bool:
        return object_path in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def register(self, object_path: str) -> PendingProbe:
        """Add a correlation entry for a probe about to be submitted.

        Raises:
            ProbeStateError: if the path is already registered
        """
        if object_path in self._pending:
            raise ProbeStateError(f"probe {object_path} is already registered")
        record = PendingProbe(
            object_path=object_path,
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[object_path] = record
        return record

    def discard(self, object_path: str) -> None:
        """Drop an entry without resolving it (failed submission or abort).

        A node id claimed by a resolved-but-unconsumed entry is released.
        """
        record = self._pending.pop(object_path, None)
        if record is None:
            return
        if record.resolved and not record.duplicate:
            self._claimed.discard(record.node_id)
        if not record.future.done():
            record.future.cancel()

    def resolve(self, object_path: str, node_id: str) -> bool:
        """Apply a job report to the matching entry and wake its pipeline.

        Unknown paths and already-resolved entries are stale deliveries: they
        are logged and ignored.

        Returns:
            True if the report resolved a pending probe
        """
        record = self._pending.get(object_path)
        if record is None or record.resolved:
            self.stale_reports += 1
            logger.warning(
                "Ignoring report from %s for unknown object %r", node_id, object_path
            )
            return False

        record.node_id = node_id
        record.duplicate = node_id in self._nodes or node_id in self._claimed
        if not record.duplicate:
            self._claimed.add(node_id)
        record.future.set_result(record)
        return True

    def consume(self, object_path: str) -> PendingProbe:
        """Remove a resolved entry so the pipeline can act on it.

        Raises:
            ProbeStateError: if the path is missing or not yet resolved
        """
        record = self._pending.get(object_path)
        if record is None or not record.resolved:
            raise ProbeStateError(f"probe {object_path} has no report to consume")
        del self._pending[object_path]
        return record

    # ─── Discovered nodes ───────────────────────────────────────────────────

    def record_node(self, node_id: str, object_path: str) -> bool:
        """Record a newly discovered node; the first writer wins.

        Returns:
            True if ``node_id`` was not known before
        """
        self._claimed.discard(node_id)
        if node_id in self._nodes:
            return False
        self._nodes[node_id] = object_path
        logger.debug(
            "Found new server %s via %s (%d/%d)",
            node_id,
            object_path,
            self.nodes_found,
            self.expected_nodes,
        )
        return True

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes
