"""Snapshot facade: the read surface polled by the renderer."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from termdash.capabilities import Capabilities, HostCapabilities
from termdash.config import DashboardConfig
from termdash.models import MemoryUsage, NetworkRate, ProcessMetric, ProcessStats
from termdash.sources import (
    NO_BRANCH,
    Clock,
    CpuLoadSource,
    CryptoPriceSource,
    GitBranchSource,
    NetworkSpeedSource,
    PolledSource,
    ProcessSource,
    WeatherSource,
    make_http_client,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

AC_POWER = "AC POWER"
NOT_AVAILABLE = "N/A"


@dataclass(slots=True)
class DashboardSnapshot:
    """Every dashboard metric as read in one render tick."""

    cpu_load: float
    cpu_temperature: float
    memory_used: int
    memory_total: int
    storage_usage: float
    download_speed: float
    upload_speed: float
    battery: str
    uptime: str
    process_count: int
    thread_count: int
    os_name: str
    fan_speed: str
    top_processes: list[ProcessMetric]
    crypto_prices: dict[str, float]
    weather: str
    git_branch: str
    crypto_loaded: bool = False

    @property
    def memory_usage(self) -> float:
        """Used fraction of physical memory."""
        return self.memory_used / self.memory_total if self.memory_total else 0.0


def format_uptime(seconds: float) -> str:
    """Format uptime as '{days}d {hours:02}h {minutes:02}m'."""
    seconds = max(0, int(seconds))
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    return f"{days}d {hours:02d}h {minutes:02d}m"


class SnapshotFacade:
    """
    Aggregates all metric sources behind non-blocking read methods.

    Reads return the most recent cached value and may trigger a refresh of
    the underlying source. No read raises: unavailable hardware and failed
    capability calls come back as sentinels ("N/A", "AC POWER", 0). Only
    `git_branch()` may block briefly, on a git subprocess.
    """

    def __init__(
        self,
        capabilities: Capabilities,
        config: DashboardConfig | None = None,
        crypto: CryptoPriceSource | None = None,
        weather: WeatherSource | None = None,
        git: GitBranchSource | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        """
        Initialize the SnapshotFacade.

        Args:
            capabilities: Host capability layer.
            config: Intervals and endpoints; defaults when omitted.
            crypto: Price source; built from config when omitted.
            weather: Weather source; built from config when omitted.
            git: Branch source; built from config when omitted.
            clock: Monotonic time source for the local sources.
        """
        self._config = config or DashboardConfig()
        self._caps = capabilities
        cfg = self._config

        self._cpu = CpuLoadSource(capabilities.cpu_ticks, cfg.cpu_interval, clock)
        self._network = NetworkSpeedSource(capabilities.network_counters, cfg.network_interval, clock)
        self._processes = ProcessSource(
            capabilities.processes, capabilities.logical_cores, cfg.process_interval, clock
        )
        self._storage = PolledSource("storage", capabilities.storage_usage, 0.0, cfg.sensor_interval, clock)
        self._temperature = PolledSource(
            "temperature", capabilities.cpu_temperature, 0.0, cfg.sensor_interval, clock
        )
        self._fan = PolledSource("fan", capabilities.fan_speed, None, cfg.sensor_interval, clock)

        self._client: httpx.Client | None = None
        if crypto is None or weather is None:
            self._client = make_http_client(cfg.connect_timeout, cfg.read_timeout)
        self._crypto = crypto or CryptoPriceSource(
            assets=cfg.crypto_assets,
            currency=cfg.crypto_currency,
            endpoint=cfg.crypto_endpoint,
            min_interval=cfg.crypto_interval,
            client=self._client,
        )
        self._weather = weather or WeatherSource(
            location=cfg.weather_location,
            endpoint=cfg.weather_endpoint,
            min_interval=cfg.weather_interval,
            client=self._client,
        )
        self._git = git or GitBranchSource(cfg.git_cwd, cfg.git_timeout)

    @classmethod
    def create(cls, config: DashboardConfig | None = None) -> "SnapshotFacade":
        """
        Build a facade over the psutil capability layer.

        Raises:
            CapabilityError: The host counters cannot be read.
        """
        return cls(HostCapabilities(), config)

    @property
    def config(self) -> DashboardConfig:
        """The active configuration."""
        return self._config

    def close(self) -> None:
        """Tear down the network sources and the shared HTTP client."""
        self._crypto.close()
        self._weather.close()
        if self._client is not None:
            self._client.close()
            self._client = None

    def _safe(self, name: str, read: Callable[[], T], default: T) -> T:
        try:
            return read()
        except Exception:
            logger.debug("Reading %s failed", name, exc_info=True)
            return default

    def _memory(self) -> MemoryUsage:
        return self._safe("memory", self._caps.memory, MemoryUsage(total=0, used=0))

    def _network_rate(self) -> NetworkRate:
        return self._safe("network", self._network.read, NetworkRate())

    def cpu_load(self) -> float:
        """Aggregate CPU utilization in [0.0, 1.0]."""
        return self._safe("cpu", self._cpu.read, 0.0)

    def cpu_temperature(self) -> float:
        """CPU temperature in Celsius, 0.0 when unavailable."""
        return self._safe("temperature", self._temperature.read, 0.0)

    def memory_used(self) -> int:
        """Used physical memory in bytes."""
        return self._memory().used

    def memory_total(self) -> int:
        """Total physical memory in bytes."""
        return self._memory().total

    def memory_usage(self) -> float:
        """Used fraction of physical memory."""
        return self._memory().ratio

    def storage_usage(self) -> float:
        """Used fraction of all mounted filesystems."""
        return self._safe("storage", self._storage.read, 0.0)

    def network_download_speed(self) -> float:
        """Download rate in bytes per second."""
        return self._network_rate().download

    def network_upload_speed(self) -> float:
        """Upload rate in bytes per second."""
        return self._network_rate().upload

    def battery_info(self) -> str:
        """Battery as '87% (CHR)' / '42% (BAT)', or AC_POWER without a battery."""
        battery = self._safe("battery", self._caps.battery, None)
        if battery is None:
            return AC_POWER
        state = "(CHR)" if battery.power_plugged else "(BAT)"
        return f"{battery.percent:.0f}% {state}"

    def uptime(self) -> str:
        """System uptime formatted for display."""
        return format_uptime(self._safe("uptime", self._caps.uptime_seconds, 0.0))

    def process_count(self) -> int:
        """Number of running processes."""
        return self._safe("processes", self._processes.read, ProcessStats()).process_count

    def thread_count(self) -> int:
        """Number of threads across all processes."""
        return self._safe("processes", self._processes.read, ProcessStats()).thread_count

    def os_name(self) -> str:
        """Operating system name and release."""
        return self._safe("os", self._caps.os_name, NOT_AVAILABLE)

    def fan_speed(self) -> str:
        """First fan speed as '1200 RPM', or N/A without a fan sensor."""
        rpm = self._safe("fan", self._fan.read, None)
        return NOT_AVAILABLE if rpm is None else f"{rpm} RPM"

    def top_processes(self, limit: int | None = None) -> list[ProcessMetric]:
        """Busiest processes by CPU usage; ties keep enumeration order."""
        if limit is None:
            limit = self._config.top_processes
        return self._safe("processes", lambda: self._processes.top(limit), [])

    def crypto_prices(self) -> dict[str, float]:
        """Cached price per tracked asset."""
        return self._safe("crypto", self._crypto.read, {})

    def crypto_loaded(self) -> bool:
        """Check if prices have been fetched at least once."""
        return self._crypto.loaded

    def weather(self) -> str:
        """One-line weather report or error text."""
        return self._safe("weather", self._weather.read, "")

    def git_branch(self) -> str:
        """Current branch of the working directory."""
        return self._safe("git", self._git.read, NO_BRANCH)

    def snapshot(self) -> DashboardSnapshot:
        """Read every metric once."""
        memory = self._memory()
        rate = self._network_rate()
        return DashboardSnapshot(
            cpu_load=self.cpu_load(),
            cpu_temperature=self.cpu_temperature(),
            memory_used=memory.used,
            memory_total=memory.total,
            storage_usage=self.storage_usage(),
            download_speed=rate.download,
            upload_speed=rate.upload,
            battery=self.battery_info(),
            uptime=self.uptime(),
            process_count=self.process_count(),
            thread_count=self.thread_count(),
            os_name=self.os_name(),
            fan_speed=self.fan_speed(),
            top_processes=self.top_processes(),
            crypto_prices=self.crypto_prices(),
            weather=self.weather(),
            git_branch=self.git_branch(),
            crypto_loaded=self.crypto_loaded(),
        )
