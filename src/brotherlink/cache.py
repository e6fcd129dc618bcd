from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Hashable, Optional, Set, TypeVar

from .errors import BackoffError, PreviouslyFailedError, TransportError

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COOLDOWN_S = 60.0


class ResponseCache:
    """
    Per-cycle memo of query results plus a cross-cycle backoff deadline.

    Within one acquisition cycle a key is loaded at most once: a success is kept
    until the next ``start_cycle`` and a failure short-circuits every later attempt.
    Connectivity failures additionally block the whole transport until the cool-down
    expires, whatever the cycle.
    """

    def __init__(
        self,
        name: str,
        *,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            name: Transport name used in log messages.
            cooldown_s: Quarantine duration after a connectivity failure.
            clock: Monotonic time source (seconds); injectable for tests.
        """
        self.name = name
        self.cooldown_s = cooldown_s
        self._clock = clock
        self._values: Dict[Hashable, object] = {}
        self._failed: Set[Hashable] = set()
        self._blocked_until = float("-inf")
        self.requested = False

    def start_cycle(self) -> None:
        """Forget cached values and failures; the backoff deadline is kept."""
        self._values.clear()
        self._failed.clear()
        self.requested = False

    @property
    def blocked_until(self) -> float:
        return self._blocked_until

    @property
    def succeeded(self) -> bool:
        """True when at least one key was loaded successfully this cycle."""
        return bool(self._values)

    def is_blocked(self) -> bool:
        return self._clock() < self._blocked_until

    def trigger_backoff(self, duration_s: Optional[float] = None) -> None:
        duration = self.cooldown_s if duration_s is None else duration_s
        self._blocked_until = self._clock() + duration
        log.warning("%s: no acquisition for %.1fs", self.name, duration)

    def check_backoff(self) -> None:
        """
        Raises:
            BackoffError: While the quarantine is active.
        """
        if self.is_blocked():
            remaining = self._blocked_until - self._clock()
            log.info("%s: backoff active, %.1fs left", self.name, remaining)
            raise BackoffError(f"{self.name}: backoff active for {remaining:.1f}s", self._blocked_until)

    def contains(self, key: Hashable) -> bool:
        return key in self._values

    def resolve(self, key: Hashable, loader: Callable[[], T]) -> T:
        """
        Return the cached value of ``key`` or load it.

        Args:
            key: Query identity (exact packet, file name, page path).
            loader: Performs the I/O and decoding on a cache miss.

        Returns:
            Cached or freshly loaded value.

        Raises:
            BackoffError: If the transport is quarantined; the loader is not called.
            PreviouslyFailedError: If ``key`` already failed this cycle.
            Exception: Whatever the loader raised; connectivity ``TransportError``s
                also start the backoff.
        """
        self.requested = True
        self.check_backoff()
        if key in self._values:
            log.debug("%s: %r already in cache", self.name, key)
            return self._values[key]  # type: ignore[return-value]
        if key in self._failed:
            log.error("%s: %r was already in error this cycle", self.name, key)
            raise PreviouslyFailedError(f"{self.name}: {key!r} previously in error")
        try:
            value = loader()
        except TransportError as exc:
            self._failed.add(key)
            if exc.connectivity:
                self.trigger_backoff()
            raise
        except Exception:
            self._failed.add(key)
            raise
        self._values[key] = value
        return value

    def call(self, loader: Callable[[], T]) -> T:
        """
        Run an uncached operation (writes) under the same backoff rules as ``resolve``.

        Raises:
            BackoffError: If the transport is quarantined; the loader is not called.
        """
        self.check_backoff()
        try:
            return loader()
        except TransportError as exc:
            if exc.connectivity:
                self.trigger_backoff()
            raise
