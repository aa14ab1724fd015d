"""Tests for the correlation table and discovered-node bookkeeping."""

from __future__ import annotations

import pytest

from storspan.discovery.errors import ProbeStateError
from storspan.discovery.state import DiscoveryState


@pytest.fixture
def state() -> DiscoveryState:
    return DiscoveryState(expected_nodes=3, budget=30)


class TestCounters:
    def test_issue_probe_is_monotonic(self, state):
        assert [state.issue_probe() for _ in range(4)] == [0, 1, 2, 3]
        assert state.requests_issued == 4

    def test_budget_exhausted(self):
        state = DiscoveryState(expected_nodes=1, budget=2)
        state.issue_probe()
        assert not state.budget_exhausted
        state.issue_probe()
        assert state.budget_exhausted

    def test_record_node_first_writer_wins(self, state):
        assert state.record_node("node-a", "/r/obj0") is True
        assert state.record_node("node-a", "/r/obj5") is False
        assert state.nodes == {"node-a": "/r/obj0"}
        assert state.nodes_found == 1

    def test_all_found(self, state):
        for i, node in enumerate(["a", "b", "c"]):
            assert not state.all_found
            state.record_node(node, f"/r/obj{i}")
        assert state.all_found


class TestCorrelationTable:
    @pytest.mark.asyncio
    async def test_register_and_resolve(self, state):
        record = state.register("/r/obj0")
        assert "/r/obj0" in state
        assert record.node_id is None
        assert record.duplicate is None

        assert state.resolve("/r/obj0", "node-a") is True
        assert record.future.done()
        assert record.future.result() is record
        assert record.node_id == "node-a"
        assert record.duplicate is False

    @pytest.mark.asyncio
    async def test_duplicate_registration_is_an_error(self, state):
        state.register("/r/obj0")
        with pytest.raises(ProbeStateError):
            state.register("/r/obj0")

    @pytest.mark.asyncio
    async def test_consume_removes_entry_once(self, state):
        state.register("/r/obj0")
        state.resolve("/r/obj0", "node-a")
        record = state.consume("/r/obj0")
        assert record.node_id == "node-a"
        assert "/r/obj0" not in state
        with pytest.raises(ProbeStateError):
            state.consume("/r/obj0")

    @pytest.mark.asyncio
    async def test_consume_unresolved_is_an_error(self, state):
        state.register("/r/obj0")
        with pytest.raises(ProbeStateError):
            state.consume("/r/obj0")

    @pytest.mark.asyncio
    async def test_discard_cancels_waiter(self, state):
        record = state.register("/r/obj0")
        state.discard("/r/obj0")
        assert "/r/obj0" not in state
        assert record.future.cancelled()
        # Discarding twice is harmless
        state.discard("/r/obj0")


class TestStaleReports:
    @pytest.mark.asyncio
    async def test_unknown_path_is_ignored(self, state):
        state.issue_probe()
        assert state.resolve("/r/obj99", "node-a") is False
        assert state.stale_reports == 1
        assert state.nodes_found == 0
        assert state.requests_issued == 1
        assert state.pending_count == 0

    @pytest.mark.asyncio
    async def test_second_report_for_same_path_is_ignored(self, state):
        record = state.register("/r/obj0")
        assert state.resolve("/r/obj0", "node-a") is True
        assert state.resolve("/r/obj0", "node-b") is False
        assert record.node_id == "node-a"
        assert state.stale_reports == 1

    @pytest.mark.asyncio
    async def test_report_after_consume_is_ignored(self, state):
        state.register("/r/obj0")
        state.resolve("/r/obj0", "node-a")
        state.consume("/r/obj0")
        assert state.resolve("/r/obj0", "node-a") is False


class TestDeduplication:
    @pytest.mark.asyncio
    async def test_first_report_is_never_duplicate(self, state):
        first = state.register("/r/obj0")
        second = state.register("/r/obj1")
        state.resolve("/r/obj1", "node-a")
        state.resolve("/r/obj0", "node-a")
        assert second.duplicate is False
        assert first.duplicate is True

    @pytest.mark.asyncio
    async def test_duplicate_before_first_is_consumed(self, state):
        """A second report for a node lands before the first pipeline resumes."""
        records = [state.register(f"/r/obj{i}") for i in range(3)]
        state.resolve("/r/obj0", "node-a")
        state.resolve("/r/obj1", "node-b")
        state.resolve("/r/obj2", "node-a")
        assert [r.duplicate for r in records] == [False, False, True]

    @pytest.mark.asyncio
    async def test_duplicate_after_node_recorded(self, state):
        state.record_node("node-a", "/r/obj0")
        record = state.register("/r/obj1")
        state.resolve("/r/obj1", "node-a")
        assert record.duplicate is True

    @pytest.mark.asyncio
    async def test_discarded_claim_is_released(self, state):
        state.register("/r/obj0")
        state.resolve("/r/obj0", "node-a")
        state.discard("/r/obj0")

        record = state.register("/r/obj1")
        state.resolve("/r/obj1", "node-a")
        assert record.duplicate is False
