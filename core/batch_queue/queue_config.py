"""
Batch processor configuration, derived from Settings.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from config.constants import (
    BATCH_SIZE,
    BATCH_MAX_EXECUTION_TIME,
    BATCH_MEMORY_THRESHOLD,
    BATCH_TICK_INTERVAL,
    BATCH_MAX_ERRORS,
    SUPPORTED_FORMATS,
    WEBP_QUALITY,
    AVIF_QUALITY,
)
from config.settings import Settings


@dataclass
class BatchConfig:
    """Batch processor configuration"""

    # Per-tick budget
    batch_size: int = BATCH_SIZE                        # 0 = unlimited
    max_execution_time: float = BATCH_MAX_EXECUTION_TIME
    memory_limit: int = 0                               # bytes, 0 = unlimited
    memory_threshold: float = BATCH_MEMORY_THRESHOLD

    # Scheduling
    tick_interval: float = BATCH_TICK_INTERVAL

    # Progress
    max_errors: int = BATCH_MAX_ERRORS

    # Formats
    enabled_formats: List[str] = field(default_factory=lambda: list(SUPPORTED_FORMATS))
    qualities: Dict[str, int] = field(
        default_factory=lambda: {"webp": WEBP_QUALITY, "avif": AVIF_QUALITY}
    )

    def quality_for(self, fmt: str) -> int:
        return self.qualities.get(fmt, WEBP_QUALITY)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BatchConfig":
        return cls(
            batch_size=settings.batch_size,
            max_execution_time=settings.max_execution_time,
            memory_limit=settings.memory_limit_bytes,
            memory_threshold=settings.memory_threshold,
            tick_interval=settings.tick_interval,
            max_errors=settings.max_errors,
            enabled_formats=list(settings.enabled_formats),
            qualities={
                "webp": settings.webp_quality,
                "avif": settings.avif_quality,
            },
        )
