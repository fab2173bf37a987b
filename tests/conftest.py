"""Shared fixtures for termdash tests."""

import httpx
import pytest

from termdash.deltas import CPU_TICK_FIELDS
from termdash.models import BatteryState, CounterSnapshot, MemoryUsage, ProcessSample


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ticks(timestamp: float, user=0.0, system=0.0, idle=0.0, iowait=0.0) -> CounterSnapshot:
    """Build a CPU tick snapshot with the given buckets set."""
    buckets = {"user": user, "system": system, "idle": idle, "iowait": iowait}
    return CounterSnapshot(
        timestamp=timestamp,
        values=tuple(buckets.get(name, 0.0) for name in CPU_TICK_FIELDS),
        keys=CPU_TICK_FIELDS,
    )


def interfaces(timestamp: float, **counters: tuple[int, int]) -> CounterSnapshot:
    """Build a network snapshot from name=(recv, sent) pairs."""
    names = tuple(sorted(counters))
    return CounterSnapshot(
        timestamp=timestamp,
        values=tuple(counters[name] for name in names),
        keys=names,
    )


class FakeCapabilities:
    """Scriptable stand-in for HostCapabilities."""

    def __init__(self) -> None:
        self.cpu_snapshots: list[CounterSnapshot] = [
            ticks(0.0, user=10.0, idle=90.0),
            ticks(1.0, user=60.0, idle=140.0),
        ]
        self.net_snapshots: list[CounterSnapshot] = [
            interfaces(0.0, eth0=(1000, 500)),
            interfaces(1.0, eth0=(3000, 1500)),
        ]
        self.process_passes: list[list[ProcessSample]] = [
            [ProcessSample(1, "init", 100.0, 1), ProcessSample(2, "worker", 5.0, 3)],
            [ProcessSample(1, "init", 150.0, 1), ProcessSample(2, "worker", 5.0, 3)],
        ]
        self.cores = 4
        self.memory_value = MemoryUsage(total=16 * 1024**3, used=4 * 1024**3)
        self.storage_value = 0.25
        self.battery_value: BatteryState | None = None
        self.uptime_value = 90061.0
        self.fan_value: int | None = None
        self.temperature_value: float | None = 48.0
        self.os_value = "Linux 6.1.0"
        self.fail: set[str] = set()
        self.calls: dict[str, int] = {}

    def _next(self, name: str, items: list):
        self.calls[name] = self.calls.get(name, 0) + 1
        if name in self.fail:
            raise OSError(f"{name} unavailable")
        return items.pop(0) if len(items) > 1 else items[0]

    def _value(self, name: str, value):
        self.calls[name] = self.calls.get(name, 0) + 1
        if name in self.fail:
            raise OSError(f"{name} unavailable")
        return value

    def cpu_ticks(self) -> CounterSnapshot:
        return self._next("cpu_ticks", self.cpu_snapshots)

    def network_counters(self) -> CounterSnapshot:
        return self._next("network_counters", self.net_snapshots)

    def processes(self) -> list[ProcessSample]:
        return self._next("processes", self.process_passes)

    def logical_cores(self) -> int:
        return self.cores

    def memory(self) -> MemoryUsage:
        return self._value("memory", self.memory_value)

    def storage_usage(self) -> float:
        return self._value("storage_usage", self.storage_value)

    def battery(self) -> BatteryState | None:
        return self._value("battery", self.battery_value)

    def uptime_seconds(self) -> float:
        return self._value("uptime_seconds", self.uptime_value)

    def fan_speed(self) -> int | None:
        return self._value("fan_speed", self.fan_value)

    def cpu_temperature(self) -> float | None:
        return self._value("cpu_temperature", self.temperature_value)

    def os_name(self) -> str:
        return self._value("os_name", self.os_value)


def inline_runner(target, name) -> None:
    """Run background fetches synchronously."""
    target()


def mock_client(handler) -> httpx.Client:
    """HTTP client answering every request with `handler`."""
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def caps() -> FakeCapabilities:
    return FakeCapabilities()
