"""
Collaborator Interfaces

Abstract interfaces the batch processor consumes: the converter, the item
resolver over the media catalog, and the periodic trigger.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional


@dataclass(frozen=True)
class ItemRef:
    """A convertible item as reported by the resolver"""
    item_id: str
    file_size: Optional[int] = None  # bytes, None if unknown


class Converter(ABC):
    """Performs one synchronous conversion"""

    @abstractmethod
    def convert(self, source_path: str, fmt: str, quality: int) -> int:
        """
        Convert source_path to fmt.

        Returns:
            Bytes saved (never negative).

        Raises:
            ConversionError: on failure, with a kind the retry policy can classify.
        """
        pass


class ItemResolver(ABC):
    """Selects convertible items and locates their files"""

    @abstractmethod
    def list_candidates(self, limit: int = 0, offset: int = 0) -> List[ItemRef]:
        """Ordered convertible items; limit 0 means no limit"""
        pass

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[ItemRef]:
        """The item if it exists and is convertible, else None"""
        pass

    @abstractmethod
    def resolve_path(self, item_id: str) -> Optional[str]:
        """Source file path, None if the file is missing"""
        pass

    @abstractmethod
    def exists_converted(self, path: str, fmt: str) -> bool:
        """Whether an output for fmt already exists next to path"""
        pass


TickCallback = Callable[[], object]


class PeriodicTrigger(ABC):
    """Recurring callback registration (cron-like)"""

    @abstractmethod
    def register_recurring(self, interval_seconds: float, callback: TickCallback) -> None:
        """Invoke callback every interval_seconds; re-registering is a no-op"""
        pass

    @abstractmethod
    def deregister(self, callback: TickCallback) -> None:
        """Stop invoking callback; unknown callbacks are ignored"""
        pass

    @abstractmethod
    def next_scheduled(self, callback: TickCallback) -> Optional[float]:
        """Epoch time of the next firing, None if not registered"""
        pass
