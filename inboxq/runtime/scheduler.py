"""
Timers for the long-running daemon.

PeriodicTimer runs a function now and then every interval on a background
thread. DigestSchedule computes the next run for each configured HH:MM.
Cancelling either stops future ticks only; a tick already running finishes.
The daemon wraps both with serialized() so their ticks never overlap.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, time, timedelta
from functools import wraps

from inboxq.observability.logging import get_logger

logger = get_logger(__name__)


class PeriodicTimer:
    def __init__(self, interval_seconds: float, fn: Callable[[], object], name: str = "timer"):
        self.interval_seconds = interval_seconds
        self.fn = fn
        self.name = name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval_seconds)

    def tick(self) -> None:
        try:
            self.fn()
        except Exception as e:
            logger.exception("%s tick failed: %s", self.name, e)

    def cancel(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


def serialized(lock: threading.Lock, fn: Callable[[], object]) -> Callable[[], object]:
    """
    Wrap fn so it runs only while holding lock.

    The triage timer and the digest schedule share one Mailstore session
    and one LabelMap; wrapping both with the same lock keeps their ticks
    from overlapping.
    """

    @wraps(fn)
    def run() -> object:
        with lock:
            return fn()

    run.lock = lock  # type: ignore[attr-defined]
    return run


def parse_digest_times(values: list[str]) -> list[time]:
    """Valid HH:MM entries; invalid ones are logged and skipped."""
    parsed: list[time] = []
    for value in values:
        try:
            hours, minutes = (int(part) for part in value.strip().split(":"))
            parsed.append(time(hour=hours, minute=minutes))
        except ValueError:
            logger.error("Invalid digest time: %s", value)
    return parsed


def next_run_at(at: time, now: datetime) -> datetime:
    """Today at `at` if still ahead of now, otherwise tomorrow."""
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DigestSchedule:
    """Runs fn at each configured time of day, every day, until cancelled."""

    def __init__(self, digest_times: list[str], fn: Callable[[], object]):
        self.times = parse_digest_times(digest_times)
        self.fn = fn
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def next_run(self, now: datetime | None = None) -> datetime | None:
        now = now or datetime.now()
        runs = [next_run_at(at, now) for at in self.times]
        return min(runs) if runs else None

    def start(self) -> None:
        if self._thread is not None or not self.times:
            return
        self._thread = threading.Thread(target=self._run, name="digest-schedule", daemon=True)
        self._thread.start()
        logger.info(
            "Digest schedule started (times: %s)",
            ", ".join(at.strftime("%H:%M") for at in self.times),
        )

    def _run(self) -> None:
        while not self._stop.is_set():
            upcoming = self.next_run()
            logger.info("Next digest scheduled for %s", upcoming.isoformat(timespec="minutes"))
            wait = max((upcoming - datetime.now()).total_seconds(), 0)
            if self._stop.wait(wait):
                return
            try:
                self.fn()
            except Exception as e:
                logger.exception("Scheduled digest failed: %s", e)

    def cancel(self) -> None:
        self._stop.set()
