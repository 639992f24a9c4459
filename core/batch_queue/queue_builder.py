"""
Queue Builder
Image Optimizer - Batch Queue System

Turns batch options plus resolver output into an ordered queue.
"""

import bisect
import time
from typing import Callable, List

from config.logging_config import get_logger

from .batch_item import BatchOptions, ItemPriority, QueueItem
from .interfaces import ItemRef, ItemResolver
from .priority import determine_item_priority

logger = get_logger(__name__)


def sort_queue(queue: List[QueueItem]) -> List[QueueItem]:
    """Sort by priority and creation time (stable)"""
    queue.sort(key=lambda item: item.sort_key)
    return queue


def insert_item(queue: List[QueueItem], item: QueueItem) -> int:
    """
    Insert item at its (priority, created_time) position, after any equal
    keys. Retry gates are ignored for ordering. Returns the index used.
    """
    keys = [q.sort_key for q in queue]
    index = bisect.bisect_right(keys, item.sort_key)
    queue.insert(index, item)
    return index


class QueueBuilder:
    """
    Resolves candidates for a batch and assigns each a priority.

    Usage:
        builder = QueueBuilder(resolver)
        queue = builder.build_queue(BatchOptions(limit=50))
    """

    def __init__(
        self,
        resolver: ItemResolver,
        classifier: Callable[[ItemRef], ItemPriority] = determine_item_priority,
        clock: Callable[[], float] = time.time,
    ):
        self.resolver = resolver
        self.classifier = classifier
        self.clock = clock

    def resolve_candidates(self, options: BatchOptions) -> List[ItemRef]:
        """Explicit ids (filtered to convertible ones) or the filtered listing"""
        if options.attachment_ids:
            candidates = []
            seen = set()
            for item_id in options.attachment_ids:
                if item_id in seen:
                    continue
                seen.add(item_id)
                ref = self.resolver.get_item(item_id)
                if ref is None:
                    logger.debug(f"Skipping non-convertible item {item_id}")
                    continue
                candidates.append(ref)
            return candidates

        return list(self.resolver.list_candidates(limit=options.limit, offset=options.offset))

    def build_queue(self, options: BatchOptions) -> List[QueueItem]:
        """Build the sorted queue; empty list when nothing qualifies"""
        now = self.clock()
        queue = [
            QueueItem(
                item_id=ref.item_id,
                format=options.format,
                force=options.force,
                priority=self.classifier(ref),
                retry_count=0,
                created_time=now,
            )
            for ref in self.resolve_candidates(options)
        ]
        return sort_queue(queue)
