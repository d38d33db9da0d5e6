"""Health check helpers shared by the /api/health endpoints."""

from __future__ import annotations

import os
import resource
import sys
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

HealthStatus = Literal["healthy", "degraded", "unhealthy"]

HEALTH_PRIORITIES: dict[str, int] = {
    "database": 1,
    "external": 2,
    "memory": 3,
    "environment": 4,
    "storage": 5,
    "network": 6,
}

HTTP_STATUS_FOR_HEALTH: dict[str, int] = {
    "healthy": 200,
    "degraded": 207,
    "unhealthy": 503,
}


@dataclass
class HealthCheckResult:
    status: HealthStatus
    response_time: float = 0.0
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["responseTime"] = data.pop("response_time")
        return {k: v for k, v in data.items() if v not in (None, {})}


def calculate_overall_health(checks: dict[str, HealthCheckResult]) -> HealthStatus:
    """Worst status wins: any unhealthy check makes the whole system unhealthy."""
    statuses = [check.status for check in checks.values()]
    if "unhealthy" in statuses:
        return "unhealthy"
    if "degraded" in statuses:
        return "degraded"
    return "healthy"


def worst(*statuses: HealthStatus) -> HealthStatus:
    if "unhealthy" in statuses:
        return "unhealthy"
    if "degraded" in statuses:
        return "degraded"
    return "healthy"


def format_response_time(ms: float) -> str:
    if ms < 1000:
        return f"{round(ms)}ms"
    return f"{ms / 1000:.1f}s"


def format_memory_usage(num_bytes: float) -> str:
    mb = num_bytes / 1024 / 1024
    if mb < 1024:
        return f"{round(mb)}MB"
    return f"{mb / 1024:.1f}GB"


def format_uptime(milliseconds: float) -> str:
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def get_health_from_response_time(
    response_time: float,
    degraded_threshold: float = 1000,
    unhealthy_threshold: float = 2000,
) -> HealthStatus:
    if response_time > unhealthy_threshold:
        return "unhealthy"
    if response_time > degraded_threshold:
        return "degraded"
    return "healthy"


def get_memory_health(
    used: float,
    total: float,
    degraded_threshold: float = 0.7,
    unhealthy_threshold: float = 0.9,
) -> HealthStatus:
    if total <= 0:
        return "healthy"
    usage = used / total
    if usage > unhealthy_threshold:
        return "unhealthy"
    if usage > degraded_threshold:
        return "degraded"
    return "healthy"


def sort_health_checks_by_priority(
    checks: dict[str, HealthCheckResult],
) -> list[tuple[str, HealthCheckResult]]:
    return sorted(checks.items(), key=lambda item: HEALTH_PRIORITIES.get(item[0], 999))


def current_memory_mb(statm_path: str = "/proc/self/statm") -> int:
    """Current resident set size of this process in MB.

    Reads the resident page count from ``/proc/self/statm``. Platforms
    without procfs fall back to the peak RSS from ``getrusage``.
    """
    try:
        with open(statm_path) as f:
            resident_pages = int(f.read().split()[1])
    except (OSError, IndexError, ValueError):
        return _peak_memory_mb()
    return round(resident_pages * os.sysconf("SC_PAGE_SIZE") / 1024 / 1024)


def _peak_memory_mb() -> int:
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS and kilobytes on Linux
    if sys.platform == "darwin":
        return round(rss / 1024 / 1024)
    return round(rss / 1024)
