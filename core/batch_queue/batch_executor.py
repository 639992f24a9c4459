"""
Batch Executor
Image Optimizer - Batch Queue System

The tick handler. Each tick drains as much of the queue as the per-tick
budget allows, persisting queue and progress together after every item.
"""

import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import psutil

from config.logging_config import get_logger

from .batch_item import ErrorEntry, Progress, QueueItem, BatchStatus
from .batch_store import BatchStateStore
from .errors import ConversionError, ConversionErrorKind
from .interfaces import Converter, ItemResolver, PeriodicTrigger
from .queue_builder import insert_item
from .queue_config import BatchConfig
from .retry_policy import RetryPolicy
from .statistics import format_bytes

logger = get_logger(__name__)


# Outcomes of a single item
OUTCOME_SUCCESS = "success"
OUTCOME_SKIPPED = "skipped"
OUTCOME_RETRY = "retry"
OUTCOME_FAILED = "failed"

# Why a tick stopped
STOP_QUEUE_EMPTY = "queue_empty"
STOP_NO_ELIGIBLE = "no_eligible_item"
STOP_BATCH_SIZE = "batch_size"
STOP_BUDGET = "resource_budget"
STOP_CANCELLED = "cancelled"


def current_memory_usage() -> int:
    """Resident memory of this process in bytes"""
    return psutil.Process(os.getpid()).memory_info().rss


def can_continue_processing(
    elapsed: float,
    memory_usage: int,
    memory_limit: int,
    max_execution_time: float,
    memory_threshold: float,
) -> bool:
    """
    Per-item budget check.

    Stops once elapsed reaches max_execution_time, or once memory usage
    reaches memory_threshold of memory_limit. A memory_limit of 0 disables
    the memory check.
    """
    if elapsed >= max_execution_time:
        return False
    if memory_limit > 0 and (memory_usage / memory_limit) >= memory_threshold:
        return False
    return True


def next_eligible_index(queue: List[QueueItem], now: float) -> Optional[int]:
    """First item in queue order whose retry gate is open"""
    for index, item in enumerate(queue):
        if item.is_eligible(now):
            return index
    return None


@dataclass
class TickReport:
    """What one tick did"""
    items_handled: int = 0
    stop_reason: str = ""
    duration_seconds: float = 0.0
    queue_remaining: int = 0


class BatchExecutor:
    """
    Processes queue items for the running batch.

    Usage:
        executor = BatchExecutor(state, resolver, converter, config=config)
        trigger.register_recurring(60, executor.process_batch)
    """

    def __init__(
        self,
        state: BatchStateStore,
        resolver: ItemResolver,
        converter: Converter,
        retry_policy: Optional[RetryPolicy] = None,
        config: Optional[BatchConfig] = None,
        trigger: Optional[PeriodicTrigger] = None,
        clock: Callable[[], float] = time.time,
        timer: Callable[[], float] = time.monotonic,
        memory_usage: Callable[[], int] = current_memory_usage,
    ):
        self.state = state
        self.resolver = resolver
        self.converter = converter
        self.retry_policy = retry_policy or RetryPolicy()
        self.config = config or BatchConfig()
        self.trigger = trigger
        self.clock = clock
        self.timer = timer
        self.memory_usage = memory_usage

        self.batch_start_time: Optional[float] = None
        self.last_tick: Optional[TickReport] = None
        self._tick_lock = threading.Lock()

        # Callbacks
        self.on_progress: Optional[Callable[[Progress], None]] = None
        self.on_complete: Optional[Callable[[Progress], None]] = None

    # =========================================
    # Entry points
    # =========================================

    def process_batch(self):
        """Trigger callback"""
        self.force_process_batch()

    def force_process_batch(self) -> bool:
        """
        Run one tick now.

        Returns:
            True if a tick ran, False if no batch is running or another tick
            is already in progress.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.info("Batch tick already in progress, skipping")
            return False

        try:
            progress = self.state.progress.load()
            if progress is None or not progress.is_running:
                return False
            self._run_tick(progress)
            return True
        finally:
            self._tick_lock.release()

    # =========================================
    # Tick
    # =========================================

    def can_continue_processing(self) -> bool:
        """Budget check against this tick's start time"""
        elapsed = self.timer() - self.batch_start_time
        usage = self.memory_usage() if self.config.memory_limit > 0 else 0

        if can_continue_processing(
            elapsed=elapsed,
            memory_usage=usage,
            memory_limit=self.config.memory_limit,
            max_execution_time=self.config.max_execution_time,
            memory_threshold=self.config.memory_threshold,
        ):
            return True

        if elapsed < self.config.max_execution_time:
            logger.warning(
                f"Batch processing stopped due to memory threshold "
                f"({usage} of {self.config.memory_limit} bytes, "
                f"threshold {self.config.memory_threshold})"
            )
        return False

    def _still_running(self, run_id: str) -> bool:
        """Whether the run this tick loaded is still the running one"""
        current = self.state.progress.load()
        return current is not None and current.is_running and current.run_id == run_id

    def _run_tick(self, progress: Progress):
        self.batch_start_time = self.timer()
        queue = self.state.queue.load()
        report = TickReport()
        failures: Optional[Dict] = None

        while True:
            if not queue:
                report.stop_reason = STOP_QUEUE_EMPTY
                break
            if self.config.batch_size and report.items_handled >= self.config.batch_size:
                report.stop_reason = STOP_BATCH_SIZE
                break
            if not self.can_continue_processing():
                report.stop_reason = STOP_BUDGET
                break
            # Cancellation is observed between items only
            if report.items_handled and not self._still_running(progress.run_id):
                report.stop_reason = STOP_CANCELLED
                break

            now = self.clock()
            index = next_eligible_index(queue, now)
            if index is None:
                report.stop_reason = STOP_NO_ELIGIBLE
                break

            item = queue.pop(index)
            outcome, error = self._process_item(item, progress, queue, now)
            report.items_handled += 1

            with self.state.lock:
                # A cancel or a newer run started during the conversion wins;
                # drop this item's update
                if not self._still_running(progress.run_id):
                    report.stop_reason = STOP_CANCELLED
                    break

                failures_changed = False
                if outcome == OUTCOME_FAILED:
                    if failures is None:
                        failures = self.state.failures.load()
                    failures.setdefault(item.item_id, {})[repr(now)] = {
                        "error": error.message,
                        "kind": error.kind.value,
                    }
                    failures_changed = True

                self.state.commit(
                    progress,
                    queue=queue,
                    failures=failures if failures_changed else None,
                )

            if self.on_progress:
                self.on_progress(progress)

        report.duration_seconds = self.timer() - self.batch_start_time
        report.queue_remaining = len(queue)
        self.last_tick = report

        logger.info(
            f"Processed batch of {report.items_handled} items. "
            f"Queue remaining: {report.queue_remaining} "
            f"(stopped: {report.stop_reason}, {report.duration_seconds:.2f}s)"
        )

        if not queue and report.stop_reason != STOP_CANCELLED:
            self._complete_batch(progress)

    # =========================================
    # Items
    # =========================================

    def requested_formats(self, item: QueueItem) -> List[str]:
        if item.format is not None:
            return [item.format.value]
        return list(self.config.enabled_formats)

    def _process_item(self, item: QueueItem, progress: Progress, queue: List[QueueItem], now: float):
        """Handle one item; returns (outcome, error)"""
        try:
            bytes_saved = self._convert_item(item)
        except ConversionError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error converting item {item.item_id}")
            error = ConversionError(ConversionErrorKind.UNKNOWN, str(e) or type(e).__name__)
        else:
            if bytes_saved is None:
                progress.record_skip()
                return OUTCOME_SKIPPED, None
            progress.record_success(bytes_saved)
            return OUTCOME_SUCCESS, None

        if self.retry_policy.should_retry(item, error):
            delay = self.retry_policy.next_retry_delay(item)
            item.retry_count += 1
            item.retry_after = now + delay
            item.last_error = error.message
            insert_item(queue, item)
            logger.info(
                f"Item {item.item_id} queued for retry "
                f"(attempt {item.retry_count}/{self.retry_policy.max_attempts}) "
                f"in {delay:.0f}s: {error.message}"
            )
            return OUTCOME_RETRY, error

        progress.record_failure(
            ErrorEntry(item_id=item.item_id, error=error.message, time=now),
            self.config.max_errors,
        )
        logger.error(
            f"Item {item.item_id} failed ({error.kind.value}): {error.message} "
            f"[{progress.processed}/{progress.total}]"
        )
        return OUTCOME_FAILED, error

    def _convert_item(self, item: QueueItem) -> Optional[int]:
        """
        Convert every format the item still needs.

        Returns:
            Total bytes saved, or None when there was nothing to convert.
        """
        path = self.resolver.resolve_path(item.item_id)
        if not path:
            raise ConversionError(
                ConversionErrorKind.FILE_NOT_FOUND,
                f"File not found for item {item.item_id}",
            )

        formats = self.requested_formats(item)
        if item.format is not None and item.format.value not in self.config.enabled_formats:
            raise ConversionError(
                ConversionErrorKind.FORMAT_DISABLED,
                f"Format {item.format.value} is disabled",
            )
        if not formats:
            raise ConversionError(
                ConversionErrorKind.INVALID_CONFIGURATION,
                "No conversion formats are enabled",
            )

        if not item.force:
            formats = [f for f in formats if not self.resolver.exists_converted(path, f)]
            if not formats:
                return None

        bytes_saved = 0
        for fmt in formats:
            saved = self.converter.convert(path, fmt, self.config.quality_for(fmt))
            bytes_saved += max(0, int(saved or 0))
        return bytes_saved

    # =========================================
    # Completion
    # =========================================

    def _complete_batch(self, progress: Progress):
        with self.state.lock:
            if not self._still_running(progress.run_id):
                return
            progress.status = BatchStatus.COMPLETED
            progress.end_time = self.clock()
            self.state.commit(progress, clear_queue=True)

        if self.trigger is not None:
            self.trigger.deregister(self.process_batch)

        logger.info(
            f"Batch conversion completed. Total: {progress.total}, "
            f"Successful: {progress.successful}, Failed: {progress.failed}, "
            f"Skipped: {progress.skipped}, Space saved: {format_bytes(progress.space_saved)}"
        )

        if self.on_complete:
            self.on_complete(progress)
