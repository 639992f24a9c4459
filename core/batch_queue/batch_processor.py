"""
Batch Processor
Image Optimizer - Batch Queue System

Wires stores, builder, executor, scheduler and cleaner together. Hosts build
one BatchProcessor at startup and hand it to whatever needs it.
"""

import time
from typing import Any, Callable, Dict, Optional

from config.logging_config import setup_logger
from config.settings import Settings, get_settings

from .adapters import DirectoryItemResolver, PillowConverter
from .batch_executor import BatchExecutor, current_memory_usage
from .batch_item import Progress
from .batch_scheduler import BatchScheduler
from .batch_store import BatchStateStore, KeyValueStore, create_key_value_store
from .cleanup import TemporaryFileCleaner
from .interfaces import Converter, ItemResolver, PeriodicTrigger
from .queue_builder import QueueBuilder
from .queue_config import BatchConfig
from .retry_policy import RetryPolicy
from .triggers import ThreadingTrigger


class BatchProcessor:
    """
    Bulk conversion entry point.

    Usage:
        processor = create_batch_processor()
        processor.start_batch({"format": "webp"})
        status = processor.get_queue_status()
    """

    def __init__(
        self,
        state: BatchStateStore,
        scheduler: BatchScheduler,
        executor: BatchExecutor,
        cleaner: TemporaryFileCleaner,
    ):
        self.state = state
        self.scheduler = scheduler
        self.executor = executor
        self.cleaner = cleaner

    # Run control
    def start_batch(self, options=None) -> Progress:
        return self.scheduler.start_batch(options)

    def cancel_batch(self, strict: bool = False) -> bool:
        return self.scheduler.cancel_batch(strict=strict)

    def force_process_batch(self) -> bool:
        return self.executor.force_process_batch()

    def cleanup_on_deactivation(self) -> Optional[Dict[str, Any]]:
        return self.scheduler.cleanup_on_deactivation()

    def cleanup_temporary_files(self) -> Dict[str, Any]:
        return self.cleaner.cleanup_temporary_files()

    # Status
    def is_batch_running(self) -> bool:
        return self.scheduler.is_batch_running()

    def get_batch_progress(self) -> Optional[Dict[str, Any]]:
        return self.scheduler.get_batch_progress()

    def get_queue_status(self) -> Dict[str, Any]:
        return self.scheduler.get_queue_status()

    def get_detailed_statistics(self) -> Dict[str, Any]:
        return self.scheduler.get_detailed_statistics()

    # Callbacks
    def on_progress(self, callback: Callable[[Progress], None]):
        self.executor.on_progress = callback

    def on_complete(self, callback: Callable[[Progress], None]):
        self.executor.on_complete = callback

    def on_cancel(self, callback: Callable[[Progress], None]):
        self.scheduler.on_cancel = callback


# =========================================
# Convenience Functions
# =========================================

def create_batch_processor(
    settings: Optional[Settings] = None,
    trigger: Optional[PeriodicTrigger] = None,
    converter: Optional[Converter] = None,
    resolver: Optional[ItemResolver] = None,
    kv: Optional[KeyValueStore] = None,
    clock: Callable[[], float] = time.time,
    timer: Callable[[], float] = time.monotonic,
    memory_usage: Callable[[], int] = current_memory_usage,
) -> BatchProcessor:
    """Create a batch processor; unspecified collaborators come from settings"""
    settings = settings or get_settings()
    setup_logger(log_file=settings.log_file, level=settings.log_level)
    config = BatchConfig.from_settings(settings)

    if kv is None:
        kv = create_key_value_store(settings.store_backend, settings.store_path)
    state = BatchStateStore(kv)

    resolver = resolver or DirectoryItemResolver(settings.upload_dir)
    converter = converter or PillowConverter(max_file_size=settings.max_file_size)
    trigger = trigger or ThreadingTrigger(clock=clock)

    retry_policy = RetryPolicy(
        max_attempts=settings.max_retry_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )

    executor = BatchExecutor(
        state=state,
        resolver=resolver,
        converter=converter,
        retry_policy=retry_policy,
        config=config,
        trigger=trigger,
        clock=clock,
        timer=timer,
        memory_usage=memory_usage,
    )
    cleaner = TemporaryFileCleaner(
        upload_dir=settings.upload_dir,
        state=state,
        temp_file_max_age=settings.temp_file_max_age,
        failed_conversion_max_age=settings.failed_conversion_max_age,
        cleanup_orphaned_files=settings.cleanup_orphaned_files,
        clock=clock,
    )
    scheduler = BatchScheduler(
        state=state,
        builder=QueueBuilder(resolver, clock=clock),
        executor=executor,
        trigger=trigger,
        config=config,
        cleaner=cleaner,
        clock=clock,
    )

    return BatchProcessor(state, scheduler, executor, cleaner)
