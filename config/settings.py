#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    BATCH_SIZE,
    BATCH_MAX_EXECUTION_TIME,
    BATCH_MEMORY_THRESHOLD,
    BATCH_MEMORY_LIMIT,
    BATCH_TICK_INTERVAL,
    BATCH_MAX_ERRORS,
    MAX_RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    SUPPORTED_FORMATS,
    WEBP_QUALITY,
    AVIF_QUALITY,
    MAX_FILE_SIZE,
    TEMP_FILE_MAX_AGE,
    FAILED_CONVERSION_MAX_AGE,
    STORE_BACKEND,
    STORE_PATH,
    LOG_LEVEL,
    LOG_FILE,
)


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


def parse_memory_limit(value: str) -> int:
    """
    Parse a PHP-style memory limit ("256M", "1G", "512k", "-1") into bytes.

    Returns 0 for unlimited.
    """
    value = str(value).strip().lower()
    if not value or value == "-1":
        return 0

    multipliers = {"k": 1024, "m": 1024 ** 2, "g": 1024 ** 3}
    unit = value[-1]
    if unit in multipliers:
        number = value[:-1]
        factor = multipliers[unit]
    else:
        number = value
        factor = 1

    try:
        amount = int(number)
    except ValueError:
        raise ValueError(f"Invalid memory limit: {value!r}")

    return max(0, amount * factor)


class Settings(BaseSettings):
    """Application settings"""

    # ========== Storage ==========
    store_backend: str = STORE_BACKEND  # memory | json | sqlite
    store_path: Path = BASE_DIR / STORE_PATH

    # ========== Directories ==========
    upload_dir: Path = BASE_DIR / "data" / "uploads"

    # ========== Scheduling ==========
    tick_interval: int = BATCH_TICK_INTERVAL
    batch_size: int = BATCH_SIZE
    max_execution_time: float = BATCH_MAX_EXECUTION_TIME
    memory_limit: str = BATCH_MEMORY_LIMIT
    memory_threshold: float = BATCH_MEMORY_THRESHOLD
    max_errors: int = BATCH_MAX_ERRORS

    # ========== Retry ==========
    max_retry_attempts: int = MAX_RETRY_ATTEMPTS
    retry_base_delay: float = RETRY_BASE_DELAY
    retry_max_delay: float = RETRY_MAX_DELAY

    # ========== Formats ==========
    enabled_formats: List[str] = list(SUPPORTED_FORMATS)
    webp_quality: int = WEBP_QUALITY
    avif_quality: int = AVIF_QUALITY
    max_file_size: int = MAX_FILE_SIZE

    # ========== Cleanup ==========
    temp_file_max_age: int = TEMP_FILE_MAX_AGE
    failed_conversion_max_age: int = FAILED_CONVERSION_MAX_AGE
    cleanup_orphaned_files: bool = False  # stem.webp without a source sibling

    # ========== Logging ==========
    log_level: str = LOG_LEVEL
    log_file: str = LOG_FILE  # empty disables the rotating file

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_OPTIMIZER_",
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra fields from .env that aren't defined in model
    )

    @property
    def memory_limit_bytes(self) -> int:
        """Memory ceiling in bytes, 0 when unlimited"""
        return parse_memory_limit(self.memory_limit)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()
