"""
Batch statistics and reporting helpers.
"""

from typing import Any, Dict, List, Optional

from .batch_item import ItemPriority, Progress, QueueItem

# Rough per-item processing estimate by tier (seconds)
ESTIMATED_SECONDS_BY_PRIORITY = {
    ItemPriority.HIGH: 2,
    ItemPriority.NORMAL: 5,
    ItemPriority.LOW: 10,
}

_BYTE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(num_bytes: float) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'"""
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_BYTE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_BYTE_UNITS[unit]}"


def categorize_error(message: str) -> str:
    """Bucket an error message for reporting"""
    message = (message or "").lower()

    if "memory" in message:
        return "memory_issues"
    if "file not found" in message:
        return "file_not_found"
    if "permission" in message:
        return "permission_issues"
    if "conversion" in message:
        return "conversion_failures"
    if "timeout" in message:
        return "timeout_issues"
    return "other"


def analyze_queue_composition(queue: List[QueueItem]) -> Dict[str, Any]:
    """Priority, retry and format breakdown of the pending queue"""
    analysis = {
        "priority_breakdown": {"high": 0, "normal": 0, "low": 0},
        "retry_breakdown": {"first_attempt": 0, "retries": 0},
        "format_breakdown": {},
        "estimated_processing_time": 0,
    }

    for item in queue:
        analysis["priority_breakdown"][item.priority.name.lower()] += 1

        if item.retry_count > 0:
            analysis["retry_breakdown"]["retries"] += 1
        else:
            analysis["retry_breakdown"]["first_attempt"] += 1

        fmt = item.format.value if item.format else "all"
        analysis["format_breakdown"][fmt] = analysis["format_breakdown"].get(fmt, 0) + 1

        analysis["estimated_processing_time"] += ESTIMATED_SECONDS_BY_PRIORITY[item.priority]

    return analysis


def progress_to_report(progress: Progress, now: float) -> Dict[str, Any]:
    """Persisted progress plus derived percentage and time remaining"""
    report = progress.to_dict()
    report["percentage"] = progress.percentage
    remaining = progress.estimated_time_remaining(now)
    if remaining is not None:
        report["estimated_time_remaining"] = remaining
    return report


def build_detailed_statistics(
    progress: Optional[Progress],
    queue_analysis: Dict[str, Any],
    now: float,
) -> Dict[str, Any]:
    """Batch info, performance metrics and error analysis"""
    if progress is None:
        return {
            "status": "no_batch",
            "message": "No batch processing has been run recently.",
        }

    stats = {
        "batch_info": {
            "status": progress.status.value,
            "total_items": progress.total,
            "processed_items": progress.processed,
            "success_rate": round(progress.successful / progress.total * 100, 2) if progress.total else 0,
            "completion_percentage": progress.percentage,
        },
        "performance_metrics": {},
        "error_analysis": {},
        "queue_info": queue_analysis,
    }

    if progress.start_time:
        elapsed = (progress.end_time or now) - progress.start_time
        stats["performance_metrics"] = {
            "elapsed_time": elapsed,
            "items_per_minute": round(progress.processed / elapsed * 60, 2)
            if progress.processed and elapsed > 0 else 0,
            "average_time_per_item": round(elapsed / progress.processed, 2)
            if progress.processed else 0,
            "estimated_completion": progress.estimated_time_remaining(now),
        }

    if progress.errors:
        error_types: Dict[str, int] = {}
        for entry in progress.errors:
            key = categorize_error(entry.error)
            error_types[key] = error_types.get(key, 0) + 1

        stats["error_analysis"] = {
            "total_errors": len(progress.errors),
            "error_types": error_types,
            "error_rate": round(len(progress.errors) / progress.total * 100, 2) if progress.total else 0,
        }

    return stats
