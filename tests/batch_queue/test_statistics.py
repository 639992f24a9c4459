"""
Unit tests for core.batch_queue.statistics module.
"""

import pytest

from core.batch_queue.batch_item import (
    BatchStatus,
    ErrorEntry,
    ItemPriority,
    Progress,
    QueueItem,
)
from core.batch_queue.statistics import (
    analyze_queue_composition,
    build_detailed_statistics,
    categorize_error,
    format_bytes,
    progress_to_report,
)


class TestFormatBytes:
    """Tests for human readable sizes."""

    @pytest.mark.parametrize("value,expected", [
        (0, "0 B"),
        (512, "512 B"),
        (1536, "1.5 KB"),
        (1024 * 1024, "1 MB"),
        (5 * 1024 ** 3, "5 GB"),
    ])
    def test_format(self, value, expected):
        assert format_bytes(value) == expected


class TestCategorizeError:
    """Tests for error bucketing."""

    @pytest.mark.parametrize("message,category", [
        ("Out of memory converting a.jpg", "memory_issues"),
        ("File not found for item 3", "file_not_found"),
        ("[Errno 13] Permission denied", "permission_issues"),
        ("Conversion to webp failed", "conversion_failures"),
        ("Timeout after 30s", "timeout_issues"),
        ("something odd", "other"),
        ("", "other"),
    ])
    def test_categories(self, message, category):
        assert categorize_error(message) == category


class TestQueueComposition:
    """Tests for analyze_queue_composition."""

    def test_breakdown(self):
        queue = [
            QueueItem("a", priority=ItemPriority.HIGH, format="webp"),
            QueueItem("b", priority=ItemPriority.NORMAL, retry_count=1),
            QueueItem("c", priority=ItemPriority.LOW, format="avif"),
        ]

        analysis = analyze_queue_composition(queue)

        assert analysis["priority_breakdown"] == {"high": 1, "normal": 1, "low": 1}
        assert analysis["retry_breakdown"] == {"first_attempt": 2, "retries": 1}
        assert analysis["format_breakdown"] == {"webp": 1, "all": 1, "avif": 1}
        assert analysis["estimated_processing_time"] == 17

    def test_empty_queue(self):
        analysis = analyze_queue_composition([])
        assert analysis["estimated_processing_time"] == 0
        assert analysis["format_breakdown"] == {}


class TestReports:
    """Tests for progress reports and detailed statistics."""

    def test_progress_report(self):
        progress = Progress(status=BatchStatus.RUNNING, total=4, processed=1, start_time=100.0)
        report = progress_to_report(progress, now=110.0)
        assert report["percentage"] == 25.0
        assert report["estimated_time_remaining"] == 30

    def test_progress_report_without_eta(self):
        progress = Progress(status=BatchStatus.CANCELLED, total=4, processed=1, start_time=100.0)
        report = progress_to_report(progress, now=110.0)
        assert "estimated_time_remaining" not in report

    def test_no_batch(self):
        stats = build_detailed_statistics(None, analyze_queue_composition([]), 0.0)
        assert stats["status"] == "no_batch"

    def test_error_analysis(self):
        progress = Progress(
            status=BatchStatus.COMPLETED,
            total=4,
            processed=4,
            successful=2,
            failed=2,
            start_time=100.0,
            end_time=160.0,
            errors=[
                ErrorEntry("a", "Permission denied"),
                ErrorEntry("b", "Out of memory"),
            ],
        )

        stats = build_detailed_statistics(progress, analyze_queue_composition([]), now=500.0)

        assert stats["batch_info"]["success_rate"] == 50.0
        assert stats["performance_metrics"]["elapsed_time"] == 60.0
        assert stats["performance_metrics"]["average_time_per_item"] == 15.0
        assert stats["performance_metrics"]["estimated_completion"] is None
        assert stats["error_analysis"]["error_types"] == {"permission_issues": 1, "memory_issues": 1}
        assert stats["error_analysis"]["error_rate"] == 50.0
