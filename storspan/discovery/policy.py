"""Termination policy: what the probe queue does after each completed probe."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class QueueDecision(str, Enum):
    """Action the queue takes after a probe completes."""

    enqueue = "enqueue"  # Issue exactly one more probe
    close = "close"  # Stop accepting probes; drain what is queued
    idle = "idle"  # Leave the queue as it is


def decide_next(
    nodes_found: int, requests_issued: int, expected: int, budget: int
) -> QueueDecision:
    """Decide whether to issue another probe.

    Probes already queued or in flight keep running after a close, and may
    still find nodes, so the final outcome is only known once the queue
    drains.
    """
    if nodes_found >= expected:
        logger.debug("Shutting down because done (%d/%d nodes)", nodes_found, expected)
        return QueueDecision.close
    if requests_issued >= budget:
        logger.debug(
            "Shutting down because giving up after %d requests", requests_issued
        )
        return QueueDecision.close
    logger.debug("Enqueueing another object")
    return QueueDecision.enqueue
