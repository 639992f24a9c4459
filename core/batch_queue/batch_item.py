"""
Batch Item Definitions
Image Optimizer - Batch Queue System

Defines queue items, batch options, and progress tracking.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any


class ConversionFormat(str, Enum):
    """Target formats a queue item can request"""
    WEBP = "webp"
    AVIF = "avif"


class ItemPriority(int, Enum):
    """Queue priority tiers (lower number = processed first)"""
    HIGH = 1
    NORMAL = 2
    LOW = 3


class BatchStatus(str, Enum):
    """Batch run states"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _format_or_none(value) -> Optional[ConversionFormat]:
    if value is None or value == "" or value == "all":
        return None
    return ConversionFormat(value)


@dataclass
class BatchOptions:
    """Options a batch run is started with"""
    format: Optional[ConversionFormat] = None   # None = all enabled formats
    force: bool = False                         # reconvert existing outputs
    limit: int = 0                              # 0 = no limit
    offset: int = 0
    attachment_ids: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.format = _format_or_none(self.format)
        self.attachment_ids = [str(i) for i in self.attachment_ids]
        if self.limit < 0 or self.offset < 0:
            raise ValueError("limit and offset must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format.value if self.format else None,
            "force": self.force,
            "limit": self.limit,
            "offset": self.offset,
            "attachment_ids": list(self.attachment_ids),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BatchOptions":
        data = data or {}
        return cls(
            format=data.get("format"),
            force=bool(data.get("force", False)),
            limit=int(data.get("limit", 0)),
            offset=int(data.get("offset", 0)),
            attachment_ids=list(data.get("attachment_ids", [])),
        )


@dataclass
class QueueItem:
    """
    A single convertible item waiting in the batch queue.
    """
    item_id: str
    format: Optional[ConversionFormat] = None
    force: bool = False
    priority: ItemPriority = ItemPriority.NORMAL
    retry_count: int = 0
    retry_after: Optional[float] = None
    created_time: float = 0.0
    last_error: Optional[str] = None

    def __post_init__(self):
        self.item_id = str(self.item_id)
        self.format = _format_or_none(self.format)
        self.priority = ItemPriority(self.priority)

    @property
    def sort_key(self):
        """Queue order: priority tier, then FIFO within the tier"""
        return (self.priority.value, self.created_time)

    def is_eligible(self, now: float) -> bool:
        """Whether the retry gate (if any) has opened"""
        return self.retry_after is None or self.retry_after <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "format": self.format.value if self.format else None,
            "force": self.force,
            "priority": self.priority.value,
            "retry_count": self.retry_count,
            "retry_after": self.retry_after,
            "created_time": self.created_time,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueItem":
        return cls(
            item_id=data["item_id"],
            format=data.get("format"),
            force=bool(data.get("force", False)),
            priority=ItemPriority(data.get("priority", ItemPriority.NORMAL.value)),
            retry_count=int(data.get("retry_count", 0)),
            retry_after=data.get("retry_after"),
            created_time=data.get("created_time", 0.0),
            last_error=data.get("last_error"),
        )


@dataclass
class ErrorEntry:
    """A recorded per-item failure"""
    item_id: str
    error: str
    time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "error": self.error, "time": self.time}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorEntry":
        return cls(
            item_id=str(data["item_id"]),
            error=data.get("error", ""),
            time=data.get("time", 0.0),
        )


@dataclass
class Progress:
    """Tracks a batch run"""
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: BatchStatus = BatchStatus.IDLE
    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    space_saved: int = 0

    # Timing
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    options: BatchOptions = field(default_factory=BatchOptions)
    errors: List[ErrorEntry] = field(default_factory=list)

    def __post_init__(self):
        self.status = BatchStatus(self.status)

    @property
    def is_running(self) -> bool:
        return self.status == BatchStatus.RUNNING

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0
        return round(self.processed / self.total * 100, 2)

    def estimated_time_remaining(self, now: float) -> Optional[int]:
        """Seconds left at the average rate so far, None until measurable"""
        if not self.is_running or self.processed == 0 or self.start_time is None:
            return None
        elapsed = now - self.start_time
        avg_time_per_item = elapsed / self.processed
        return round((self.total - self.processed) * avg_time_per_item)

    def record_success(self, bytes_saved: int = 0):
        self.processed += 1
        self.successful += 1
        self.space_saved += max(0, int(bytes_saved))

    def record_skip(self):
        self.processed += 1
        self.skipped += 1

    def record_failure(self, entry: ErrorEntry, max_errors: int):
        self.processed += 1
        self.failed += 1
        self.errors.append(entry)
        if max_errors > 0 and len(self.errors) > max_errors:
            # Oldest first out
            del self.errors[:len(self.errors) - max_errors]

    def to_dict(self) -> Dict[str, Any]:
        """Persisted form; derived fields are added by readers"""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "total": self.total,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "space_saved": self.space_saved,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "options": self.options.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Progress":
        return cls(
            run_id=data.get("run_id", ""),
            status=BatchStatus(data.get("status", BatchStatus.IDLE.value)),
            total=int(data.get("total", 0)),
            processed=int(data.get("processed", 0)),
            successful=int(data.get("successful", 0)),
            failed=int(data.get("failed", 0)),
            skipped=int(data.get("skipped", 0)),
            space_saved=int(data.get("space_saved", 0)),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            options=BatchOptions.from_dict(data.get("options")),
            errors=[ErrorEntry.from_dict(e) for e in data.get("errors", [])],
        )
