"""Data models for termdash."""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class CounterSnapshot:
    """Immutable point-in-time reading of a set of raw counters."""

    timestamp: float  # Monotonic seconds
    values: tuple[Any, ...]  # CPU: tick seconds; network: (bytes_recv, bytes_sent)
    keys: tuple[str, ...] = ()  # Labels aligned with values


@dataclass(slots=True, frozen=True)
class CachedValue(Generic[T]):
    """Last known value of a source and when it was stored."""

    value: T
    last_updated: float | None = None


@dataclass(slots=True, frozen=True)
class Fetched(Generic[T]):
    """Successful fetch result."""

    value: T


@dataclass(slots=True, frozen=True)
class FetchFailed:
    """Failed fetch result with a human-readable reason."""

    reason: str


FetchResult = Fetched | FetchFailed


@dataclass(slots=True, frozen=True)
class ProcessSample:
    """CPU time of one process at sampling time."""

    pid: int
    name: str
    cpu_time: float  # user + system seconds
    threads: int = 0


@dataclass(slots=True, frozen=True)
class ProcessMetric:
    """Per-process CPU usage between two sampling passes."""

    pid: int
    name: str
    cpu_percent: float


@dataclass(slots=True, frozen=True)
class NetworkRate:
    """Aggregate network throughput in bytes per second."""

    download: float = 0.0
    upload: float = 0.0


@dataclass(slots=True, frozen=True)
class MemoryUsage:
    """Physical memory totals in bytes."""

    total: int
    used: int

    @property
    def ratio(self) -> float:
        """Used fraction of total memory."""
        return self.used / self.total if self.total else 0.0


@dataclass(slots=True, frozen=True)
class BatteryState:
    """Battery charge and power source."""

    percent: float
    power_plugged: bool


@dataclass(slots=True, frozen=True)
class ProcessStats:
    """Result of one process sampling pass."""

    metrics: tuple[ProcessMetric, ...] = ()  # Busiest first
    process_count: int = 0
    thread_count: int = 0
