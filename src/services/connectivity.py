"""Cached connectivity probe for the config store."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from psycopg2 import Error as PsycopgError
from psycopg2.errors import QueryCanceled

from src.logger.logger import get_logger
from src.logger.types import Category, param


@dataclass
class ConnectivityState:
    """Last probe result; last_checked_at is None until the first probe."""

    last_checked_at: float | None = None
    available: bool = False


class ConnectivityProbe:
    """
    Liveness check cached for a fixed window.

    Within the window every caller gets the cached answer. When it expires,
    the first caller re-probes while holding the lock and the others wait for
    that result instead of probing again.
    """

    def __init__(
        self,
        ping: Callable[[int], None],
        ttl_seconds: float = 30.0,
        timeout_ms: int = 2000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize ConnectivityProbe.

        Args:
            ping: Liveness query taking a timeout in ms; raises on failure
            ttl_seconds: How long a probe result is reused
            timeout_ms: Statement timeout for the probe query
            clock: Monotonic clock, injectable for tests
        """
        self._ping = ping
        self.ttl_seconds = ttl_seconds
        self.timeout_ms = timeout_ms
        self._clock = clock
        self._lock = threading.Lock()
        self.state = ConnectivityState()
        self.logger = get_logger().with_category(Category.CONFIG)

    def is_available(self) -> bool:
        with self._lock:
            now = self._clock()
            checked_at = self.state.last_checked_at
            if checked_at is not None and now - checked_at < self.ttl_seconds:
                return self.state.available

            try:
                self._ping(self.timeout_ms)
            except QueryCanceled as e:
                # Slow, not necessarily down: leave the window closed so the
                # next caller probes again
                self.logger.warn(
                    "Config store probe timed out",
                    param("timeout_ms", self.timeout_ms),
                    param("error", str(e)),
                )
                return False
            except PsycopgError as e:
                self.state = ConnectivityState(last_checked_at=now, available=False)
                self.logger.warn(
                    "Config store unreachable, serving defaults",
                    param("retry_in_seconds", self.ttl_seconds),
                    param("error", str(e)),
                )
                return False

            if not self.state.available:
                self.logger.info("Config store reachable")
            self.state = ConnectivityState(last_checked_at=now, available=True)
            return True

    def mark_available(self) -> None:
        """Record that a real query just succeeded."""
        with self._lock:
            self.state = ConnectivityState(last_checked_at=self._clock(), available=True)

    def mark_unavailable(self) -> None:
        """Record that a real query just failed on connectivity."""
        with self._lock:
            self.state = ConnectivityState(last_checked_at=self._clock(), available=False)
