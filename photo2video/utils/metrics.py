"""
Lightweight in-process metrics: counters and histograms for provider
call durations, provider errors and worker job outcomes.

Exposed as a JSON snapshot at /metrics.
"""

import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, Any

from photo2video.utils.logger import get_logger

logger = get_logger()

_counters: Dict[str, int] = defaultdict(int)
_histograms: Dict[str, list] = defaultdict(list)

MAX_HISTOGRAM_SAMPLES = 500  # Rolling window


def inc(name: str, value: int = 1) -> None:
    """Increment a counter."""
    _counters[name] += value


def observe(name: str, value: float) -> None:
    """Record a histogram observation (e.g., duration)."""
    bucket = _histograms[name]
    bucket.append(value)
    if len(bucket) > MAX_HISTOGRAM_SAMPLES:
        _histograms[name] = bucket[-MAX_HISTOGRAM_SAMPLES:]


@asynccontextmanager
async def track_duration(service: str, operation: str = "call"):
    """
    Track call duration and success/failure.

    Usage:
        async with track_duration("kling", "create_task"):
            response = await client.post(...)
    """
    start = time.monotonic()
    try:
        yield
    except Exception:
        duration_ms = (time.monotonic() - start) * 1000
        observe(f"{service}.{operation}.duration_ms", duration_ms)
        inc(f"{service}.{operation}.error")
        logger.debug(
            "metrics.call",
            extra={"service": service, "duration_ms": round(duration_ms, 1), "status": "error"},
        )
        raise
    duration_ms = (time.monotonic() - start) * 1000
    observe(f"{service}.{operation}.duration_ms", duration_ms)
    inc(f"{service}.{operation}.success")


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def get_snapshot() -> Dict[str, Any]:
    """Return a snapshot of all counters and histogram summaries."""
    snapshot: Dict[str, Any] = {"counters": dict(_counters)}

    summaries = {}
    for name, samples in _histograms.items():
        if samples:
            sorted_s = sorted(samples)
            p50_idx = int(len(sorted_s) * 0.5)
            p95_idx = int(len(sorted_s) * 0.95)
            summaries[name] = {
                "count": len(sorted_s),
                "p50": round(sorted_s[p50_idx], 1),
                "p95": round(sorted_s[min(p95_idx, len(sorted_s) - 1)], 1),
                "max": round(sorted_s[-1], 1),
            }
    snapshot["histograms"] = summaries
    return snapshot


def reset() -> None:
    """Reset all metrics (useful for testing)."""
    _counters.clear()
    _histograms.clear()
