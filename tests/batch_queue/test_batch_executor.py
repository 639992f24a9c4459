"""
Unit tests for core.batch_queue.batch_executor module.

Tests the per-tick loop: budgets, retry gates, outcomes and completion.
"""

import pytest
from unittest.mock import Mock

from core.batch_queue.batch_executor import (
    BatchExecutor,
    STOP_BATCH_SIZE,
    STOP_BUDGET,
    STOP_CANCELLED,
    STOP_NO_ELIGIBLE,
    STOP_QUEUE_EMPTY,
    can_continue_processing,
    next_eligible_index,
)
from core.batch_queue.batch_item import (
    BatchOptions,
    BatchStatus,
    ItemPriority,
    Progress,
    QueueItem,
)
from core.batch_queue.errors import ConversionError, ConversionErrorKind
from core.batch_queue.queue_config import BatchConfig
from core.batch_queue.retry_policy import RetryPolicy


def seed(state, items, clock, options=None):
    """Persist a running batch over the given queue items."""
    queue = [
        item if isinstance(item, QueueItem) else QueueItem(item, created_time=clock())
        for item in items
    ]
    progress = Progress(
        status=BatchStatus.RUNNING,
        total=len(queue),
        start_time=clock(),
        options=options or BatchOptions(),
    )
    state.commit(progress, queue=queue)
    return progress


@pytest.fixture
def config():
    return BatchConfig(enabled_formats=["webp"])


@pytest.fixture
def executor(state, resolver, converter, config, trigger, clock):
    return BatchExecutor(
        state=state,
        resolver=resolver,
        converter=converter,
        retry_policy=RetryPolicy(),
        config=config,
        trigger=trigger,
        clock=clock,
        timer=clock,
        memory_usage=lambda: 0,
    )


class TestCanContinueProcessing:
    """Tests for the pure budget check."""

    def test_within_budget(self):
        assert can_continue_processing(24.9, 0, 0, 25, 0.8)

    def test_time_exhausted(self):
        assert not can_continue_processing(25, 0, 0, 25, 0.8)
        assert not can_continue_processing(30, 0, 0, 25, 0.8)

    def test_memory_threshold(self):
        assert can_continue_processing(0, 79, 100, 25, 0.8)
        assert not can_continue_processing(0, 80, 100, 25, 0.8)

    def test_unlimited_memory(self):
        """Test a limit of 0 disables the memory check."""
        assert can_continue_processing(0, 10 ** 12, 0, 25, 0.8)


class TestNextEligibleIndex:
    """Tests for retry-gate aware selection."""

    def test_first_item_when_ungated(self):
        queue = [QueueItem("a"), QueueItem("b")]
        assert next_eligible_index(queue, 100.0) == 0

    def test_skips_gated_items(self):
        queue = [QueueItem("a", retry_after=500.0), QueueItem("b")]
        assert next_eligible_index(queue, 100.0) == 1

    def test_none_when_all_gated(self):
        queue = [QueueItem("a", retry_after=500.0)]
        assert next_eligible_index(queue, 100.0) is None
        assert next_eligible_index([], 100.0) is None


class TestTick:
    """Tests for a single tick."""

    def test_no_running_batch(self, executor, converter):
        """Test a tick without a running batch does nothing."""
        assert executor.force_process_batch() is False
        assert converter.calls == []

    def test_tick_skipped_while_another_runs(self, executor, state, clock, converter):
        """Test the tick lock excludes concurrent ticks."""
        seed(state, ["a"], clock)
        executor._tick_lock.acquire()
        try:
            assert executor.force_process_batch() is False
        finally:
            executor._tick_lock.release()
        assert converter.calls == []

    def test_processes_in_queue_order(self, executor, state, resolver, converter, clock):
        resolver.items.update({"h": 10, "n": 10, "l": 10})
        seed(state, [
            QueueItem("h", priority=ItemPriority.HIGH, created_time=1.0),
            QueueItem("n", priority=ItemPriority.NORMAL, created_time=1.0),
            QueueItem("l", priority=ItemPriority.LOW, created_time=1.0),
        ], clock)

        assert executor.force_process_batch() is True
        assert converter.called_items() == ["h", "n", "l"]

    def test_batch_size_cap(self, executor, state, resolver, converter, clock):
        ids = [f"item{i}" for i in range(15)]
        resolver.items.update({i: 10 for i in ids})
        seed(state, ids, clock)

        executor.force_process_batch()

        assert len(converter.calls) == 10
        assert executor.last_tick.stop_reason == STOP_BATCH_SIZE
        assert state.queue.size() == 5
        assert state.progress.load().processed == 10

    def test_time_budget(self, executor, state, resolver, converter, clock):
        """Test the tick stops once the wall-clock budget is spent."""
        ids = ["a", "b", "c", "d", "e"]
        resolver.items.update({i: 10 for i in ids})
        seed(state, ids, clock)
        converter.side_effect = lambda item_id, fmt: clock.advance(10)

        executor.force_process_batch()

        # 0s, 10s and 20s are within 25s; 30s is not
        assert converter.called_items() == ["a", "b", "c"]
        assert executor.last_tick.stop_reason == STOP_BUDGET
        assert state.queue.size() == 2

    def test_memory_budget(self, state, resolver, converter, trigger, clock):
        """Test the tick stops at the memory threshold."""
        resolver.items.update({"a": 10, "b": 10})
        seed(state, ["a", "b"], clock)
        executor = BatchExecutor(
            state, resolver, converter,
            config=BatchConfig(enabled_formats=["webp"], memory_limit=1000, memory_threshold=0.8),
            trigger=trigger,
            clock=clock,
            timer=clock,
            memory_usage=lambda: 900,
        )

        executor.force_process_batch()

        assert converter.calls == []
        assert executor.last_tick.stop_reason == STOP_BUDGET
        assert state.progress.load().is_running

    def test_queue_and_progress_consistent(self, executor, state, resolver, converter, clock):
        """Test processed + queued == total after every commit."""
        resolver.items.update({"a": 10, "b": 10, "c": 10})
        seed(state, ["a", "b", "c"], clock)
        snapshots = []

        def check(progress):
            snapshots.append(progress.processed + state.queue.size() == progress.total)

        executor.on_progress = check
        executor.force_process_batch()

        assert snapshots == [True, True, True]


class TestItemOutcomes:
    """Tests for success, skip, retry and failure handling."""

    def test_success_records_bytes(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        converter.bytes_saved = 2048
        seed(state, ["a"], clock)

        executor.force_process_batch()

        progress = state.progress.load()
        assert progress.successful == 1
        assert progress.space_saved == 2048

    def test_skip_when_already_converted(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        resolver.converted.add(("a", "webp"))
        seed(state, ["a"], clock)

        executor.force_process_batch()

        assert converter.calls == []
        assert state.progress.load().skipped == 1

    def test_force_reconverts(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        resolver.converted.add(("a", "webp"))
        seed(state, [QueueItem("a", force=True)], clock)

        executor.force_process_batch()

        assert converter.called_items() == ["a"]
        assert state.progress.load().successful == 1

    def test_all_enabled_formats(self, state, resolver, converter, trigger, clock):
        """Test an item without a format converts to every enabled format."""
        resolver.items["a"] = 10
        converter.bytes_saved = 100
        seed(state, ["a"], clock)
        executor = BatchExecutor(
            state, resolver, converter,
            config=BatchConfig(enabled_formats=["webp", "avif"], qualities={"webp": 80, "avif": 60}),
            trigger=trigger, clock=clock, timer=clock, memory_usage=lambda: 0,
        )

        executor.force_process_batch()

        assert converter.calls == [("a", "webp", 80), ("a", "avif", 60)]
        assert state.progress.load().space_saved == 200

    def test_missing_file_fails_permanently(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        resolver.missing_files.add("a")
        seed(state, ["a"], clock)

        executor.force_process_batch()

        progress = state.progress.load()
        assert converter.calls == []
        assert progress.failed == 1
        assert progress.errors[0].item_id == "a"
        records = state.failures.load()
        assert list(records["a"].values())[0]["kind"] == "file_not_found"

    def test_disabled_format_fails_permanently(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        seed(state, [QueueItem("a", format="avif")], clock)

        executor.force_process_batch()

        assert converter.calls == []
        assert state.progress.load().failed == 1

    def test_transient_error_schedules_retry(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        converter.script["a"] = [ConversionError(ConversionErrorKind.TIMEOUT, "slow")]
        seed(state, ["a"], clock)
        start = clock()

        executor.force_process_batch()

        queue = state.queue.load()
        progress = state.progress.load()
        assert len(queue) == 1
        assert queue[0].retry_count == 1
        assert queue[0].retry_after == start + 60
        assert queue[0].last_error == "slow"
        assert progress.processed == 0
        assert progress.errors == []
        assert executor.last_tick.stop_reason == STOP_NO_ELIGIBLE

    def test_retry_keeps_priority(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        converter.script["a"] = [ConversionError(ConversionErrorKind.TIMEOUT, "slow")]
        seed(state, [QueueItem("a", priority=ItemPriority.HIGH)], clock)

        executor.force_process_batch()

        assert state.queue.load()[0].priority == ItemPriority.HIGH

    def test_gated_item_does_not_block_others(self, executor, state, resolver, converter, clock):
        """Test later eligible items are processed while a retry waits."""
        resolver.items.update({"a": 10, "b": 10})
        converter.script["a"] = [ConversionError(ConversionErrorKind.CONVERSION_FAILED, "bad")]
        seed(state, [
            QueueItem("a", priority=ItemPriority.HIGH),
            QueueItem("b", priority=ItemPriority.LOW),
        ], clock)

        executor.force_process_batch()

        assert converter.called_items() == ["a", "b"]
        assert [q.item_id for q in state.queue.load()] == ["a"]
        assert state.progress.load().successful == 1

    def test_unexpected_exception_is_transient(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        converter.script["a"] = [RuntimeError("segfault-ish")]
        seed(state, ["a"], clock)

        executor.force_process_batch()

        queue = state.queue.load()
        assert queue[0].retry_count == 1
        assert queue[0].last_error == "segfault-ish"


class TestCompletion:
    """Tests for completing a batch."""

    def test_completes_when_queue_drained(self, executor, state, resolver, trigger, clock):
        resolver.items.update({"a": 10, "b": 10})
        seed(state, ["a", "b"], clock)
        trigger.register_recurring(60, executor.process_batch)
        on_complete = Mock()
        executor.on_complete = on_complete

        clock.advance(5)
        executor.force_process_batch()

        progress = state.progress.load()
        assert progress.status == BatchStatus.COMPLETED
        assert progress.end_time == clock()
        assert progress.percentage == 100.0
        assert state.queue.size() == 0
        assert not trigger.is_registered(executor.process_batch)
        assert executor.last_tick.stop_reason == STOP_QUEUE_EMPTY
        on_complete.assert_called_once()

    def test_stale_tick_does_not_touch_newer_run(self, executor, state, resolver, converter, trigger, clock):
        """Test a run replaced mid-conversion is neither overwritten nor completed."""
        resolver.items["a"] = 10
        seed(state, ["a"], clock)
        trigger.register_recurring(60, executor.process_batch)
        newer = Progress(status=BatchStatus.RUNNING, total=5, start_time=clock())
        converter.side_effect = lambda item_id, fmt: state.commit(newer, queue=[QueueItem("n1")])

        executor.force_process_batch()

        progress = state.progress.load()
        assert progress.run_id == newer.run_id
        assert progress.status == BatchStatus.RUNNING
        assert progress.processed == 0
        assert [q.item_id for q in state.queue.load()] == ["n1"]
        assert trigger.is_registered(executor.process_batch)
        assert executor.last_tick.stop_reason == STOP_CANCELLED

    def test_not_completed_while_retries_pending(self, executor, state, resolver, converter, clock):
        resolver.items["a"] = 10
        converter.script["a"] = [ConversionError(ConversionErrorKind.TIMEOUT, "slow")]
        seed(state, ["a"], clock)

        executor.force_process_batch()

        assert state.progress.load().status == BatchStatus.RUNNING

    def test_progress_callback_per_item(self, executor, state, resolver, clock):
        resolver.items.update({"a": 10, "b": 10})
        seed(state, ["a", "b"], clock)
        on_progress = Mock()
        executor.on_progress = on_progress

        executor.force_process_batch()

        assert on_progress.call_count == 2
