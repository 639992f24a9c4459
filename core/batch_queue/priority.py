"""
Priority classification for queue items.

Smaller files convert faster, so they go first: a time-bounded tick then
finishes more items and progress moves early in the run.
"""

from config.constants import PRIORITY_HIGH_MAX_BYTES, PRIORITY_NORMAL_MAX_BYTES

from .batch_item import ItemPriority
from .interfaces import ItemRef


def determine_item_priority(item: ItemRef) -> ItemPriority:
    """Classify by file size; unknown size counts as expensive."""
    size = item.file_size
    if size is None or size < 0:
        return ItemPriority.LOW

    if size < PRIORITY_HIGH_MAX_BYTES:
        return ItemPriority.HIGH
    if size < PRIORITY_NORMAL_MAX_BYTES:
        return ItemPriority.NORMAL
    return ItemPriority.LOW
