"""Per-source refresh gate: minimum interval plus single in-flight fetch."""

import threading
from dataclasses import dataclass


@dataclass(slots=True)
class RefreshState:
    """Mutable refresh bookkeeping owned by one gate."""

    min_interval: float
    last_success: float | None = None
    in_flight: bool = False


class RefreshGate:
    """
    Decides when a source may launch a new fetch.

    The gate opens when no fetch is in flight and more than `min_interval`
    seconds have passed since the last successful fetch. Failed fetches do not
    move the timestamp, so retries are paced from the last success.

    `try_start` is the check-and-set used by sources; it holds a lock so two
    threads reading the same source can never both start a fetch.
    """

    def __init__(self, min_interval: float) -> None:
        """
        Initialize the RefreshGate.

        Args:
            min_interval: Seconds required between successful fetches.
        """
        self._state = RefreshState(min_interval=max(0.0, min_interval))
        self._lock = threading.Lock()

    @property
    def state(self) -> RefreshState:
        """Copy of the current state."""
        with self._lock:
            return RefreshState(
                min_interval=self._state.min_interval,
                last_success=self._state.last_success,
                in_flight=self._state.in_flight,
            )

    @property
    def in_flight(self) -> bool:
        """Check if a fetch is outstanding."""
        return self._state.in_flight

    def should_start(self, now: float) -> bool:
        """Return True if a fetch may start at `now`."""
        state = self._state
        if state.in_flight:
            return False
        if state.last_success is None:
            return True
        return now - state.last_success > state.min_interval

    def mark_started(self) -> None:
        """Record that a fetch is now in flight."""
        self._state.in_flight = True

    def mark_finished(self, success: bool, now: float) -> None:
        """
        Record the end of the outstanding fetch.

        Args:
            success: Whether the fetch produced a usable value.
            now: Completion time; stored only on success.
        """
        with self._lock:
            self._state.in_flight = False
            if success:
                self._state.last_success = now

    def try_start(self, now: float) -> bool:
        """Atomically check the gate and mark a fetch in flight if it is open."""
        with self._lock:
            if not self.should_start(now):
                return False
            self.mark_started()
            return True
