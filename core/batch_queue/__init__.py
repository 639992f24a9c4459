"""
Batch Queue System
Image Optimizer

Bulk re-conversion of uploaded images with:
- Priority queue (small files first)
- Tick-driven processing within time and memory budgets
- Per-item retry with exponential backoff
- Cancel and progress tracking
- Persistent storage

Usage:
    from core.batch_queue import create_batch_processor

    processor = create_batch_processor()
    processor.start_batch({"format": "webp", "limit": 100})

    # Monitor progress
    progress = processor.get_batch_progress()
    print(f"Progress: {progress['percentage']}%")
"""

from .batch_item import (
    BatchOptions,
    BatchStatus,
    ConversionFormat,
    ErrorEntry,
    ItemPriority,
    Progress,
    QueueItem,
)

from .errors import (
    AlreadyRunningError,
    BatchError,
    BatchErrorKind,
    ConversionError,
    ConversionErrorKind,
    EmptyQueueError,
    NotRunningError,
    StoreError,
)

from .interfaces import (
    Converter,
    ItemRef,
    ItemResolver,
    PeriodicTrigger,
)

from .batch_store import (
    BatchStateStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    create_key_value_store,
)

from .priority import determine_item_priority
from .retry_policy import RetryPolicy
from .queue_builder import QueueBuilder
from .queue_config import BatchConfig
from .batch_executor import BatchExecutor, TickReport
from .batch_scheduler import BatchScheduler
from .cleanup import TemporaryFileCleaner
from .triggers import ManualTrigger, ThreadingTrigger
from .adapters import DirectoryItemResolver, PillowConverter

from .batch_processor import (
    BatchProcessor,
    create_batch_processor,
)

__all__ = [
    # Data model
    "BatchOptions",
    "BatchStatus",
    "ConversionFormat",
    "ErrorEntry",
    "ItemPriority",
    "Progress",
    "QueueItem",

    # Errors
    "AlreadyRunningError",
    "BatchError",
    "BatchErrorKind",
    "ConversionError",
    "ConversionErrorKind",
    "EmptyQueueError",
    "NotRunningError",
    "StoreError",

    # Interfaces
    "Converter",
    "ItemRef",
    "ItemResolver",
    "PeriodicTrigger",

    # Persistence
    "BatchStateStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "create_key_value_store",

    # Processing
    "determine_item_priority",
    "RetryPolicy",
    "QueueBuilder",
    "BatchConfig",
    "BatchExecutor",
    "TickReport",
    "BatchScheduler",
    "TemporaryFileCleaner",

    # Triggers and adapters
    "ManualTrigger",
    "ThreadingTrigger",
    "DirectoryItemResolver",
    "PillowConverter",

    # Facade
    "BatchProcessor",
    "create_batch_processor",
]

__version__ = "1.0.0"
