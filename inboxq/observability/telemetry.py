"""
In-process telemetry for the triage engine.

Nothing is shipped to an external metrics backend. Events become structured
log lines; counters and latency samples live in memory so tests, the cron
routes and the `stats` command can read them back.

The daemon's triage timer, digest schedule and API worker threads all
report here, so every mutation happens under one lock.
"""

from __future__ import annotations

import contextlib
import threading
import time
from collections import defaultdict
from collections.abc import Iterator
from typing import Any

from inboxq.observability.logging import get_logger

logger = get_logger("inboxq.telemetry")

_lock = threading.Lock()
_counters: defaultdict[str, int] = defaultdict(int)
_latencies: defaultdict[str, list[float]] = defaultdict(list)


def _latency_key(metric_name: str) -> str:
    # "jmap.Email/get.latency" and "jmap.Email/get.latency_ms" share samples
    if metric_name.endswith(".latency"):
        return metric_name + "_ms"
    return metric_name


def log_event(event_name: str, **fields: Any) -> None:
    """
    Structured log event. Callers pass ids and counts, never message bodies.

    Side Effects:
        - Writes to logger (info level)
    """
    details = " ".join(f"{key}={value}" for key, value in fields.items())
    logger.info("event=%s %s", event_name, details)


def counter(name: str, increment: int = 1) -> int:
    """
    Increment a named counter, returning its new value.

    Side Effects:
        - Updates the in-memory counters
        - Writes to logger (debug level)
    """
    with _lock:
        _counters[name] += increment
        value = _counters[name]
    logger.debug("counter=%s value=%s", name, value)
    return value


def get_counters() -> dict[str, int]:
    with _lock:
        return dict(_counters)


def reset_counters() -> None:
    with _lock:
        _counters.clear()


@contextlib.contextmanager
def time_block(metric_name: str) -> Iterator[None]:
    """
    Record the wall time of the enclosed block, whether or not it raises.

    Side Effects:
        - Appends a latency sample
        - Writes to logger (debug level)
    """
    key = _latency_key(metric_name)
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        with _lock:
            _latencies[key].append(elapsed)
        logger.debug("timing=%s seconds=%.6f", key, elapsed)


def get_latency_stats(metric_name: str) -> dict[str, float]:
    """Count, min, max, avg, p50 and p95 (seconds) for one latency metric."""
    with _lock:
        samples = sorted(_latencies.get(_latency_key(metric_name), ()))

    if not samples:
        return {"count": 0, "min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p95": 0.0}

    count = len(samples)
    return {
        "count": count,
        "min": samples[0],
        "max": samples[-1],
        "avg": sum(samples) / count,
        "p50": samples[count // 2],
        "p95": samples[min(int(count * 0.95), count - 1)],
    }


def reset_latencies() -> None:
    with _lock:
        _latencies.clear()


def telemetry_snapshot() -> dict[str, Any]:
    """Counters plus per-metric latency stats, for the stats command."""
    with _lock:
        names = list(_latencies)
    return {
        "counters": get_counters(),
        "latencies": {name: get_latency_stats(name) for name in names},
    }
