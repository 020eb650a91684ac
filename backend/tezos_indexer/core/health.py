"""Process readiness and shutdown flags.

The flags are written by the lifespan hooks and read concurrently by the
health endpoints, so every access goes through a lock.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict


class HealthState:
    """Ready/shutdown flags plus process start time."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ready = False
        self._shutting_down = False
        self._started_monotonic = time.monotonic()
        self.started_at = datetime.now(timezone.utc)

    def set_ready(self, ready: bool = True) -> None:
        with self._lock:
            self._ready = ready

    def start_shutdown(self) -> None:
        """Mark the process as shutting down; it is no longer ready."""
        with self._lock:
            self._shutting_down = True
            self._ready = False

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return self._ready

    @property
    def is_shutting_down(self) -> bool:
        with self._lock:
            return self._shutting_down

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started_monotonic

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            ready, shutting_down = self._ready, self._shutting_down
        return {
            "ready": ready,
            "shutdown": shutting_down,
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 3),
        }
