"""
Batch Scheduler
Image Optimizer - Batch Queue System

Starts and cancels batch runs, registers the periodic trigger, and reports
status.
"""

import time
from typing import Any, Callable, Dict, Optional, Union

from config.logging_config import get_logger

from .batch_executor import BatchExecutor
from .batch_item import BatchOptions, BatchStatus, Progress
from .batch_store import BatchStateStore
from .cleanup import TemporaryFileCleaner
from .errors import AlreadyRunningError, EmptyQueueError, NotRunningError
from .interfaces import PeriodicTrigger
from .queue_builder import QueueBuilder
from .queue_config import BatchConfig
from .statistics import (
    analyze_queue_composition,
    build_detailed_statistics,
    progress_to_report,
)

logger = get_logger(__name__)


class BatchScheduler:
    """
    Batch run control.

    Features:
    - Start with explicit ids or a filtered listing
    - Single running batch at a time
    - Idempotent cancel
    - Progress, queue status and detailed statistics
    """

    def __init__(
        self,
        state: BatchStateStore,
        builder: QueueBuilder,
        executor: BatchExecutor,
        trigger: PeriodicTrigger,
        config: Optional[BatchConfig] = None,
        cleaner: Optional[TemporaryFileCleaner] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.state = state
        self.builder = builder
        self.executor = executor
        self.trigger = trigger
        self.config = config or BatchConfig()
        self.cleaner = cleaner
        self.clock = clock

        # Callbacks
        self.on_cancel: Optional[Callable[[Progress], None]] = None

    # =========================================
    # Run Control
    # =========================================

    def start_batch(self, options: Union[BatchOptions, Dict[str, Any], None] = None) -> Progress:
        """
        Build the queue and start a run.

        Raises:
            AlreadyRunningError: a batch is running; state left untouched.
            EmptyQueueError: nothing to convert; no progress written.
        """
        if options is None:
            options = BatchOptions()
        elif isinstance(options, dict):
            options = BatchOptions.from_dict(options)

        with self.state.lock:
            if self.is_batch_running():
                logger.warning("Batch conversion is already running")
                raise AlreadyRunningError()

            queue = self.builder.build_queue(options)
            if not queue:
                logger.info(f"No images found to convert (options: {options.to_dict()})")
                raise EmptyQueueError(context={"options": options.to_dict()})

            progress = Progress(
                status=BatchStatus.RUNNING,
                total=len(queue),
                start_time=self.clock(),
                options=options,
            )
            self.state.commit(progress, queue=queue)

        self.trigger.register_recurring(self.config.tick_interval, self.executor.process_batch)

        logger.info(f"Batch conversion started with {len(queue)} images in queue")
        return progress

    def cancel_batch(self, strict: bool = False) -> bool:
        """
        Cancel the running batch.

        Returns True whether or not a batch was running; with strict=True a
        missing run raises NotRunningError instead.
        """
        with self.state.lock:
            progress = self.state.progress.load()
            running = progress is not None and progress.is_running

            if running:
                progress.status = BatchStatus.CANCELLED
                progress.end_time = self.clock()
                self.state.commit(progress, clear_queue=True)

        self.trigger.deregister(self.executor.process_batch)

        if not running:
            if strict:
                raise NotRunningError()
            logger.debug("Cancel requested with no batch running")
            return True

        logger.info(
            f"Batch conversion cancelled by user "
            f"({progress.processed}/{progress.total} processed)"
        )

        if self.on_cancel:
            self.on_cancel(progress)

        return True

    def is_batch_running(self) -> bool:
        progress = self.state.progress.load()
        return progress is not None and progress.status == BatchStatus.RUNNING

    def cleanup_on_deactivation(self) -> Optional[Dict[str, Any]]:
        """Cancel any run, drop the trigger, and clean temporary files"""
        self.cancel_batch()
        self.trigger.deregister(self.executor.process_batch)

        if self.cleaner is None:
            return None
        return self.cleaner.cleanup_temporary_files()

    # =========================================
    # Status
    # =========================================

    def get_progress(self) -> Optional[Progress]:
        return self.state.progress.load()

    def get_batch_progress(self) -> Optional[Dict[str, Any]]:
        """Progress with percentage (and ETA while running); None if never started"""
        progress = self.state.progress.load()
        if progress is None:
            return None
        return progress_to_report(progress, self.clock())

    def get_queue_status(self) -> Dict[str, Any]:
        queue = self.state.queue.load()
        return {
            "queue_size": len(queue),
            "is_running": self.is_batch_running(),
            "progress": self.get_batch_progress(),
            "next_scheduled": self.trigger.next_scheduled(self.executor.process_batch),
            "queue_analysis": analyze_queue_composition(queue),
        }

    def get_detailed_statistics(self) -> Dict[str, Any]:
        queue = self.state.queue.load()
        return build_detailed_statistics(
            self.state.progress.load(),
            analyze_queue_composition(queue),
            self.clock(),
        )
