"""Tests for the queue termination policy."""

import pytest

from storspan.discovery.policy import QueueDecision, decide_next


class TestDecideNext:
    def test_enqueue_while_searching(self):
        assert decide_next(1, 5, expected=3, budget=30) is QueueDecision.enqueue

    def test_close_when_all_found(self):
        assert decide_next(3, 5, expected=3, budget=30) is QueueDecision.close

    def test_close_when_more_than_expected(self):
        assert decide_next(4, 5, expected=3, budget=30) is QueueDecision.close

    def test_close_when_budget_spent(self):
        assert decide_next(1, 30, expected=3, budget=30) is QueueDecision.close

    def test_found_takes_precedence_over_budget(self):
        assert decide_next(3, 30, expected=3, budget=30) is QueueDecision.close

    @pytest.mark.parametrize("issued", [0, 1, 29])
    def test_below_budget_enqueues(self, issued):
        assert decide_next(0, issued, expected=3, budget=30) is QueueDecision.enqueue
