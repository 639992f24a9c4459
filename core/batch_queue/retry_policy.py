"""
Retry policy for failed conversions.
"""

from dataclasses import dataclass

from config.constants import MAX_RETRY_ATTEMPTS, RETRY_BASE_DELAY, RETRY_MAX_DELAY

from .batch_item import QueueItem
from .errors import ConversionError


@dataclass
class RetryPolicy:
    """
    Decides whether a failed item goes back into the queue, and when.

    retry_count counts retries already scheduled, so an item gets at most
    1 + max_attempts conversion attempts.
    """
    max_attempts: int = MAX_RETRY_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY

    def should_retry(self, item: QueueItem, error: ConversionError) -> bool:
        if item.retry_count >= self.max_attempts:
            return False
        if error.is_permanent:
            return False
        return True

    def next_retry_delay(self, item: QueueItem) -> float:
        """base * 2^retry_count, capped"""
        delay = self.base_delay * (2 ** item.retry_count)
        return min(delay, self.max_delay)
