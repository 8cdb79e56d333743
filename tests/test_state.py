"""Tests for task status transitions."""

import pytest

from herald.scheduling.errors import ImmutableStateError
from herald.scheduling.state import (
    can_retry,
    can_transition,
    ensure_mutable,
    mark_failed,
    mark_sent,
    reopen,
)
from herald.scheduling.types import MAX_RETRIES, TaskStatus
from tests.conftest import START, make_task


class TestTransitions:
    """Tests for the transition table."""

    def test_pending_can_complete_either_way(self):
        assert can_transition(TaskStatus.PENDING, TaskStatus.SENT)
        assert can_transition(TaskStatus.PENDING, TaskStatus.FAILED)

    def test_sent_is_terminal(self):
        for target in TaskStatus:
            assert not can_transition(TaskStatus.SENT, target)

    def test_failed_only_reopens(self):
        assert can_transition(TaskStatus.FAILED, TaskStatus.PENDING)
        assert not can_transition(TaskStatus.FAILED, TaskStatus.SENT)


class TestMarkSent:
    def test_sets_sent_at(self):
        task = mark_sent(make_task(), START)
        assert task.status == TaskStatus.SENT
        assert task.sent_at == START
        assert task.updated_at == START

    def test_clears_previous_error(self):
        task = make_task(error_message="boom")
        mark_sent(task, START)
        assert task.error_message is None

    def test_rejects_sent_task(self):
        task = make_task(status=TaskStatus.SENT)
        with pytest.raises(ImmutableStateError):
            mark_sent(task, START)


class TestMarkFailed:
    def test_records_error_and_increments(self):
        task = mark_failed(make_task(), "smtp down", START)
        assert task.status == TaskStatus.FAILED
        assert task.error_message == "smtp down"
        assert task.retry_count == 1
        assert task.sent_at is None

    def test_retry_count_is_clamped(self):
        task = make_task(retry_count=MAX_RETRIES)
        mark_failed(task, "again", START)
        assert task.retry_count == MAX_RETRIES

    def test_failed_task_cannot_fail_again(self):
        task = make_task(status=TaskStatus.FAILED)
        with pytest.raises(ImmutableStateError):
            mark_failed(task, "x", START)


class TestReopen:
    """Tests for manual retry of failed tasks."""

    def test_reopens_failed_task(self):
        task = make_task(status=TaskStatus.FAILED, retry_count=1, error_message="x")
        reopen(task, START)
        assert task.status == TaskStatus.PENDING
        # Count and last error stay until the next outcome
        assert task.retry_count == 1
        assert task.error_message == "x"

    def test_rejects_pending_task(self):
        with pytest.raises(ImmutableStateError, match="Only failed"):
            reopen(make_task(), START)

    def test_rejects_at_retry_limit(self):
        task = make_task(status=TaskStatus.FAILED, retry_count=MAX_RETRIES)
        assert not can_retry(task)
        with pytest.raises(ImmutableStateError, match="Retry limit"):
            reopen(task, START)

    def test_can_retry_below_limit(self):
        assert can_retry(make_task(status=TaskStatus.FAILED, retry_count=2))
        assert not can_retry(make_task(status=TaskStatus.PENDING))


class TestEnsureMutable:
    def test_pending_and_failed_are_mutable(self):
        ensure_mutable(make_task())
        ensure_mutable(make_task(status=TaskStatus.FAILED))

    def test_sent_is_immutable(self):
        with pytest.raises(ImmutableStateError, match="already been sent"):
            ensure_mutable(make_task(status=TaskStatus.SENT))
