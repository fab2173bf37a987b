"""Host capability layer backed by psutil.

Each method returns one raw reading. Sources and the facade decide how to
cache it and what to show when a reading is unavailable.
"""

import logging
import platform
import time
from typing import Protocol

import psutil

from termdash.deltas import CPU_TICK_FIELDS
from termdash.errors import CapabilityError
from termdash.models import BatteryState, CounterSnapshot, MemoryUsage, ProcessSample

logger = logging.getLogger(__name__)

# Sensor chip names checked for a CPU temperature, in order of preference
CPU_SENSOR_NAMES = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "cpu-thermal", "acpitz")


class Capabilities(Protocol):
    """Raw host readings consumed by sources and the facade."""

    def cpu_ticks(self) -> CounterSnapshot: ...

    def network_counters(self) -> CounterSnapshot: ...

    def logical_cores(self) -> int: ...

    def memory(self) -> MemoryUsage: ...

    def storage_usage(self) -> float: ...

    def battery(self) -> BatteryState | None: ...

    def uptime_seconds(self) -> float: ...

    def processes(self) -> list[ProcessSample]: ...

    def fan_speed(self) -> int | None: ...

    def cpu_temperature(self) -> float | None: ...

    def os_name(self) -> str: ...


class HostCapabilities:
    """
    psutil implementation of the capability layer.

    Construction probes the CPU counters once; if psutil cannot read them the
    host is unsupported and CapabilityError is raised.
    """

    def __init__(self) -> None:
        """Initialize HostCapabilities and verify psutil works on this host."""
        try:
            psutil.cpu_times()
            self._cores = psutil.cpu_count(logical=True) or 1
        except (OSError, RuntimeError, NotImplementedError) as exc:
            raise CapabilityError(f"Cannot read CPU counters: {exc}") from exc

    def cpu_ticks(self) -> CounterSnapshot:
        """Aggregate CPU time per bucket, in seconds."""
        times = psutil.cpu_times()
        return CounterSnapshot(
            timestamp=time.monotonic(),
            values=tuple(float(getattr(times, name, 0.0)) for name in CPU_TICK_FIELDS),
            keys=CPU_TICK_FIELDS,
        )

    def network_counters(self) -> CounterSnapshot:
        """Byte counters per interface, sorted by interface name."""
        counters = psutil.net_io_counters(pernic=True)
        names = tuple(sorted(counters))
        return CounterSnapshot(
            timestamp=time.monotonic(),
            values=tuple((counters[n].bytes_recv, counters[n].bytes_sent) for n in names),
            keys=names,
        )

    def logical_cores(self) -> int:
        """Number of logical CPUs."""
        return self._cores

    def memory(self) -> MemoryUsage:
        """Total and used physical memory."""
        mem = psutil.virtual_memory()
        return MemoryUsage(total=mem.total, used=mem.total - mem.available)

    def storage_usage(self) -> float:
        """Used fraction of all mounted physical filesystems combined."""
        total = 0
        used = 0
        seen: set[str] = set()
        for part in psutil.disk_partitions(all=False):
            if part.device in seen:
                continue
            seen.add(part.device)
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (PermissionError, OSError):
                # Unready drives and restricted mounts
                continue
            total += usage.total
            used += usage.total - usage.free
        return used / total if total else 0.0

    def battery(self) -> BatteryState | None:
        """Battery state, or None when the host has no battery."""
        sensors_battery = getattr(psutil, "sensors_battery", None)
        if sensors_battery is None:
            return None
        battery = sensors_battery()
        if battery is None:
            return None
        return BatteryState(percent=battery.percent, power_plugged=bool(battery.power_plugged))

    def uptime_seconds(self) -> float:
        """Seconds since boot."""
        return time.time() - psutil.boot_time()

    def processes(self) -> list[ProcessSample]:
        """
        Sample CPU time of every running process.

        Processes that exit mid-iteration or deny access are skipped.
        """
        samples: list[ProcessSample] = []
        for proc in psutil.process_iter(attrs=["pid", "name", "cpu_times", "num_threads"]):
            try:
                info = proc.info
                cpu_times = info.get("cpu_times")
                cpu_time = cpu_times.user + cpu_times.system if cpu_times else 0.0
                samples.append(
                    ProcessSample(
                        pid=info.get("pid", 0),
                        name=info.get("name") or "",
                        cpu_time=cpu_time,
                        threads=info.get("num_threads") or 0,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return samples

    def fan_speed(self) -> int | None:
        """Speed of the first reported fan in RPM, or None."""
        sensors_fans = getattr(psutil, "sensors_fans", None)
        if sensors_fans is None:
            return None
        for entries in sensors_fans().values():
            if entries:
                return int(entries[0].current)
        return None

    def cpu_temperature(self) -> float | None:
        """CPU package temperature in Celsius, or None."""
        sensors_temperatures = getattr(psutil, "sensors_temperatures", None)
        if sensors_temperatures is None:
            return None
        readings = sensors_temperatures()
        for name in CPU_SENSOR_NAMES:
            entries = readings.get(name)
            if entries:
                return float(entries[0].current)
        return None

    def os_name(self) -> str:
        """Operating system family and release."""
        return f"{platform.system()} {platform.release()}".strip()
