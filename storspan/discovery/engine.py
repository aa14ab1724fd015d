"""Run controller for storage-node discovery.

Sequence:

1. start the report listener
2. check that the output root does not exist yet (never clobber a prior run)
3. create the root directory
4. create the job whose map phase reports each input back to the listener
5. seed one probe per expected node and let the queue refill itself until
   every node is found or the request budget is spent
6. stop the listener, print the summary and cancel the job

Steps 2-4 abort the run before any probe is issued.  A probe failure aborts
the run as well; the job is then left running and its id is logged so the
operator can cancel it.
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from storspan.discovery.errors import DiscoveryError, RootExistsError
from storspan.discovery.listener import CallbackServer, create_app
from storspan.discovery.pipeline import ProbePipeline
from storspan.discovery.policy import QueueDecision, decide_next
from storspan.discovery.queue import ProbeQueue
from storspan.discovery.state import DiscoveryState
from storspan.manta.errors import MantaError, MantaNotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    from storspan.discovery.config import RunConfig
    from storspan.manta.client import MantaClient

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    """Outcome of a completed discovery run."""

    expected: int
    budget: int
    requests_issued: int
    job_id: str
    nodes: dict[str, str] = field(default_factory=dict)
    cancel_error: str | None = None

    @property
    def nodes_found(self) -> int:
        return len(self.nodes)

    @property
    def complete(self) -> bool:
        return self.nodes_found >= self.expected

    @property
    def gave_up(self) -> bool:
        """True if the budget ran out before every node was found."""
        return not self.complete and self.requests_issued >= self.budget

    def summary_lines(self) -> list[str]:
        plural = "" if self.nodes_found == 1 else "s"
        lines = [f"found {self.nodes_found} node{plural} (expected {self.expected})"]
        if self.gave_up:
            lines.append(f"(gave up after {self.requests_issued} requests)")
        return lines


def build_job_spec(config: RunConfig) -> dict[str, Any]:
    """Job definition whose map tasks report their node id back to us."""
    report_url = f'{config.callback_url}/"$(mdata-get sdc:server_uuid)"'
    return {
        "name": f"manta-storspan: {socket.gethostname()} pid {os.getpid()}",
        "phases": [
            {
                "type": "map",
                "exec": f'echo "$MANTA_INPUT_OBJECT" | curl -T- {report_url}',
            }
        ],
    }


async def prepare_root(manta: MantaClient, root: str) -> None:
    """Fail unless ``root`` is absent, then create it."""
    logger.debug("Checking root %s", root)
    try:
        await manta.info(root)
    except MantaNotFoundError:
        pass
    except MantaError as e:
        raise DiscoveryError(f'HEAD "{root}": {e}') from e
    else:
        raise RootExistsError(root)

    logger.debug("mkdirp %s", root)
    try:
        await manta.mkdirp(root)
    except MantaError as e:
        raise DiscoveryError(f'mkdirp "{root}": {e}') from e


async def create_job(manta: MantaClient, config: RunConfig) -> str:
    spec = build_job_spec(config)
    logger.debug("Creating job %s", spec)
    try:
        return await manta.create_job(spec)
    except MantaError as e:
        raise DiscoveryError(f"create job: {e}") from e


async def run_discovery(
    config: RunConfig,
    manta: MantaClient,
    *,
    echo: Callable[[str], None] | None = None,
) -> DiscoveryResult:
    """Discover the storage nodes of a Manta deployment.

    Args:
        config: Run configuration
        manta: Connected Manta client; the caller closes it
        echo: Receives user-facing progress and summary lines

    Returns:
        The run outcome, including a partial result when the budget ran out

    Raises:
        DiscoveryError: on any fatal setup or probe failure
    """
    say = echo or logger.info
    state = DiscoveryState(
        expected_nodes=config.expected_nodes, budget=config.max_requests
    )
    app = create_app(
        state, namespace=config.namespace, max_report_bytes=config.max_report_bytes
    )

    async with CallbackServer(app, config.listen_host, config.port):
        await prepare_root(manta, config.root)
        job_id = await create_job(manta, config)
        say(f"created job {job_id}")

        pipeline = ProbePipeline(config, state, manta, job_id)

        def on_complete(sequence: int) -> QueueDecision:
            return decide_next(
                state.nodes_found,
                state.requests_issued,
                config.expected_nodes,
                config.max_requests,
            )

        queue: ProbeQueue[int] = ProbeQueue(
            pipeline.run, config.concurrency, on_complete, state.issue_probe
        )
        for _ in range(config.expected_nodes):
            queue.push(state.issue_probe())

        try:
            await queue.join()
        except BaseException:
            await queue.abort()
            logger.error("Discovery aborted; job %s is still running", job_id)
            raise
        logger.debug("Shutting down")

    result = DiscoveryResult(
        expected=config.expected_nodes,
        budget=config.max_requests,
        requests_issued=state.requests_issued,
        job_id=job_id,
        nodes=state.nodes,
    )
    for line in result.summary_lines():
        say(line)

    say(f"cancelling job {job_id}")
    try:
        await manta.cancel_job(job_id)
    except MantaError as e:
        result.cancel_error = f'cancel job "{job_id}": {e}'
        logger.warning("%s", result.cancel_error)
    return result
