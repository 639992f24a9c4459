"""
Temporary file and failed-conversion cleanup.

Best effort: individual failures are collected in the result, never raised.
"""

import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from config.constants import (
    TEMP_FILE_PREFIX,
    TEMP_FILE_MAX_AGE,
    FAILED_CONVERSION_MAX_AGE,
    SUPPORTED_FORMATS,
    SOURCE_EXTENSIONS,
)
from config.logging_config import get_logger

from .batch_store import BatchStateStore

logger = get_logger(__name__)


class TemporaryFileCleaner:
    """Deletes stale temp files, old failure records and (optionally) orphans"""

    def __init__(
        self,
        upload_dir: Path,
        state: Optional[BatchStateStore] = None,
        temp_file_max_age: float = TEMP_FILE_MAX_AGE,
        failed_conversion_max_age: float = FAILED_CONVERSION_MAX_AGE,
        cleanup_orphaned_files: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.upload_dir = Path(upload_dir)
        self.state = state
        self.temp_file_max_age = temp_file_max_age
        self.failed_conversion_max_age = failed_conversion_max_age
        self.cleanup_orphaned_files = cleanup_orphaned_files
        self.clock = clock

    def cleanup_temporary_files(self) -> Dict[str, Any]:
        results = {
            "temp_files_deleted": 0,
            "failed_conversions_cleaned": 0,
            "orphaned_files_deleted": 0,
            "errors": [],
        }

        if self.upload_dir.is_dir():
            self._cleanup_temp_files(results)
            if self.cleanup_orphaned_files:
                self._cleanup_orphaned_converted_files(results)

        if self.state is not None:
            self._cleanup_failed_conversions(results)

        logger.info(
            f"Cleanup completed. Temp files: {results['temp_files_deleted']}, "
            f"Failed conversions: {results['failed_conversions_cleaned']}, "
            f"Orphaned files: {results['orphaned_files_deleted']}"
        )
        return results

    def _cleanup_temp_files(self, results: Dict[str, Any]):
        cutoff = self.clock() - self.temp_file_max_age
        candidates = set(self.upload_dir.rglob(f"{TEMP_FILE_PREFIX}*"))
        candidates.update(self.upload_dir.rglob("*.tmp"))

        for temp_file in sorted(candidates):
            try:
                if not temp_file.is_file() or temp_file.stat().st_mtime >= cutoff:
                    continue
                temp_file.unlink()
                results["temp_files_deleted"] += 1
            except OSError as e:
                results["errors"].append(f"Failed to delete temp file: {temp_file} ({e})")

    def _cleanup_orphaned_converted_files(self, results: Dict[str, Any]):
        for fmt in SUPPORTED_FORMATS:
            for converted in sorted(self.upload_dir.rglob(f"*.{fmt}")):
                if self.find_original_file(converted) is not None:
                    continue
                try:
                    converted.unlink()
                    results["orphaned_files_deleted"] += 1
                except OSError as e:
                    results["errors"].append(f"Failed to delete orphaned file: {converted} ({e})")

    @staticmethod
    def find_original_file(converted: Path) -> Optional[Path]:
        """Source image next to a converted file (same stem), if any"""
        for ext in SOURCE_EXTENSIONS:
            for candidate in (converted.with_suffix(ext), converted.with_suffix(ext.upper())):
                if candidate.exists():
                    return candidate
        return None

    def _cleanup_failed_conversions(self, results: Dict[str, Any]):
        cutoff = self.clock() - self.failed_conversion_max_age

        with self.state.lock:
            records = self.state.failures.load()
            changed = False

            for item_id in list(records.keys()):
                entries = records[item_id]
                kept = {}
                for timestamp, entry in entries.items():
                    try:
                        recorded_at = float(timestamp)
                    except ValueError:
                        continue  # unreadable timestamp, drop it
                    if recorded_at >= cutoff:
                        kept[timestamp] = entry

                if len(kept) == len(entries):
                    continue

                changed = True
                results["failed_conversions_cleaned"] += 1
                if kept:
                    records[item_id] = kept
                else:
                    del records[item_id]

            if changed:
                self.state.failures.save(records)
