"""Per-probe pipeline: create → register → resolve → cleanup.

Each probe walks the stages in order and none is skipped:

1. create    upload a one-byte, single-copy marker object at ``objN``
2. register  add a correlation entry, submit the path as job input (the
             job's input stays open) and wait for the job to report back
3. resolve   consume the entry; a new node is recorded and its marker is
             snaplinked to ``<root>/<node id>``
4. cleanup   delete the marker, leaving only the per-node alias

Any Manta failure is wrapped in :class:`ProbeError` and is fatal to the run.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from storspan.discovery.errors import ProbeError, ProbeStateError, ProbeTimeoutError
from storspan.manta.errors import MantaError

if TYPE_CHECKING:
    from storspan.discovery.config import RunConfig
    from storspan.discovery.state import DiscoveryState, PendingProbe
    from storspan.manta.client import MantaClient

logger = logging.getLogger(__name__)

MARKER_CONTENT = b"\n"
MARKER_COPIES = 1


class ProbePipeline:
    """Runs the probe stages against Manta for one job.

    Args:
        config: Run configuration (root path, report timeout)
        state: Shared discovery state
        manta: Manta client
        job_id: Job receiving probe inputs
    """

    def __init__(
        self,
        config: RunConfig,
        state: DiscoveryState,
        manta: MantaClient,
        job_id: str,
    ) -> None:
        self.config = config
        self.state = state
        self.manta = manta
        self.job_id = job_id

    async def run(self, sequence: int) -> PendingProbe:
        """Run every stage for probe ``sequence`` and return its resolved entry."""
        object_path = self.config.object_path(sequence)
        await self.create(object_path)
        record = await self.register(object_path)
        await self.resolve(record)
        await self.cleanup(object_path)
        return record

    async def create(self, object_path: str) -> None:
        try:
            await self.manta.put(object_path, MARKER_CONTENT, copies=MARKER_COPIES)
        except MantaError as e:
            raise ProbeError(object_path, "create", str(e)) from e

    async def register(self, object_path: str) -> PendingProbe:
        """Submit the probe to the job and wait for its report.

        The correlation entry is removed again if submission fails or the
        wait is cancelled or times out.
        """
        record = self.state.register(object_path)
        try:
            await self.manta.add_job_keys(self.job_id, [object_path], end=False)
        except MantaError as e:
            self.state.discard(object_path)
            raise ProbeError(object_path, "register", str(e)) from e
        except BaseException:
            self.state.discard(object_path)
            raise

        try:
            if self.config.report_timeout is None:
                await record.future
            else:
                await asyncio.wait_for(record.future, self.config.report_timeout)
        except asyncio.TimeoutError as e:
            self.state.discard(object_path)
            raise ProbeTimeoutError(
                object_path,
                "register",
                f'no report for "{object_path}" after '
                f"{self.config.report_timeout:g}s",
            ) from e
        except BaseException:
            self.state.discard(object_path)
            raise
        return record

    async def resolve(self, record: PendingProbe) -> None:
        object_path = record.object_path
        self.state.consume(object_path)
        node_id = record.node_id
        if node_id is None:
            raise ProbeStateError(f"probe {object_path} resolved without a node id")

        if record.duplicate:
            logger.debug(
                "Duplicate report from %s for %s (%d found)",
                node_id,
                object_path,
                self.state.nodes_found,
            )
            return

        self.state.record_node(node_id, object_path)
        node_path = self.config.node_path(node_id)
        try:
            await self.manta.ln(object_path, node_path)
        except MantaError as e:
            raise ProbeError(object_path, "resolve", str(e)) from e

    async def cleanup(self, object_path: str) -> None:
        try:
            await self.manta.unlink(object_path)
        except MantaError as e:
            raise ProbeError(object_path, "cleanup", str(e)) from e
