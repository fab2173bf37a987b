"""Metric sources: cached, gated readings for the dashboard.

Every source owns a RefreshGate and a CachedValue. `read()` never blocks on
the network and never raises; it returns the cached value and, when the gate
opens, refreshes it either inline (local counters) or on a background thread
(HTTP sources).
"""

import logging
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import Generic, TypeVar
from urllib.parse import quote

import httpx

from termdash.config import CRYPTO_ENDPOINT, DEFAULT_ASSETS, USER_AGENT, WEATHER_ENDPOINT
from termdash.deltas import cpu_load, network_rate, process_usage, top_processes
from termdash.errors import FetchError
from termdash.gate import RefreshGate
from termdash.models import (
    CachedValue,
    CounterSnapshot,
    Fetched,
    FetchFailed,
    FetchResult,
    NetworkRate,
    ProcessMetric,
    ProcessSample,
    ProcessStats,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Runner = Callable[[Callable[[], None], str], None]

NO_BRANCH = "DETACHED / NO GIT"
GIT_BRANCH_COMMAND = ("git", "rev-parse", "--abbrev-ref", "HEAD")
WEATHER_PLACEHOLDER = "Scanning atmosphere..."
WEATHER_ERROR_PREFIX = "ERR: "
WEATHER_ERROR_MAX_REASON = 20


def run_in_thread(target: Callable[[], None], name: str) -> None:
    """Start `target` on a daemon thread."""
    thread = threading.Thread(target=target, daemon=True, name=name)
    thread.start()


def make_http_client(connect_timeout: float = 10.0, read_timeout: float = 5.0) -> httpx.Client:
    """Create the HTTP client used by network sources."""
    return httpx.Client(
        timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
    )


def describe_error(exc: BaseException) -> str:
    """Short human-readable reason for a failed fetch."""
    return str(exc) or type(exc).__name__


class MetricSource(ABC, Generic[T]):
    """
    Abstract base class for a gated, cached metric.

    Subclasses implement `_fetch()` returning Fetched or FetchFailed. The
    default refresh runs the fetch inline on the reading thread.
    """

    name = "metric"

    def __init__(self, initial: T, min_interval: float, clock: Clock = time.monotonic) -> None:
        """
        Initialize the MetricSource.

        Args:
            initial: Value returned until the first successful fetch.
            min_interval: Seconds between successful refreshes.
            clock: Monotonic time source.
        """
        self._gate = RefreshGate(min_interval)
        self._cache: CachedValue[T] = CachedValue(initial)
        self._clock = clock

    @property
    def gate(self) -> RefreshGate:
        """The refresh gate of this source."""
        return self._gate

    @property
    def cached(self) -> CachedValue[T]:
        """The current cache cell."""
        return self._cache

    def read(self) -> T:
        """Return the cached value, refreshing it first if the gate is open."""
        if self._gate.try_start(self._clock()):
            self._refresh()
        return self._cache.value

    def _refresh(self) -> None:
        self._complete(self._run_fetch())

    def _run_fetch(self) -> FetchResult:
        try:
            return self._fetch()
        except Exception as exc:
            # Capability errors surface here; psutil raises a variety of types
            logger.debug("%s fetch raised", self.name, exc_info=True)
            return FetchFailed(describe_error(exc))

    def _complete(self, result: FetchResult) -> None:
        now = self._clock()
        if isinstance(result, Fetched):
            self._cache = CachedValue(self._merge(result.value), now)
            self._gate.mark_finished(True, now)
        else:
            self._on_failure(result)
            self._gate.mark_finished(False, now)

    def _merge(self, value: T) -> T:
        """Combine a fetched value with the cache; replaces it by default."""
        return value

    def _on_failure(self, failure: FetchFailed) -> None:
        """Apply the failure policy; the cache is kept by default."""
        logger.debug("%s refresh failed: %s", self.name, failure.reason)

    @abstractmethod
    def _fetch(self) -> FetchResult:
        """Take one reading."""


class BackgroundSource(MetricSource[T]):
    """
    Source whose fetch runs off the reading thread.

    Results reach the reader only through the cache swap in `_complete`.
    In-flight fetches are never cancelled; results arriving after `close()`
    are discarded.
    """

    name = "background"

    def __init__(
        self,
        initial: T,
        min_interval: float,
        client: httpx.Client | None = None,
        clock: Clock = time.monotonic,
        runner: Runner = run_in_thread,
    ) -> None:
        """
        Initialize the BackgroundSource.

        Args:
            initial: Value returned until the first successful fetch.
            min_interval: Seconds between successful refreshes.
            client: HTTP client; one is created (and owned) when omitted.
            clock: Monotonic time source.
            runner: Starts a callable off the reading thread.
        """
        super().__init__(initial, min_interval, clock)
        self._owns_client = client is None
        self._client = client if client is not None else make_http_client()
        self._runner = runner
        self._closed = False

    @property
    def closed(self) -> bool:
        """Check if the source has been torn down."""
        return self._closed

    def close(self) -> None:
        """Tear down the source; in-flight results will be dropped."""
        self._closed = True
        if self._owns_client:
            self._client.close()

    def _refresh(self) -> None:
        try:
            self._runner(self._fetch_and_complete, f"{self.name}-fetch")
        except RuntimeError as exc:
            # Thread could not be started (interpreter shutting down)
            logger.warning("%s refresh not started: %s", self.name, exc)
            self._gate.mark_finished(False, self._clock())

    def _fetch_and_complete(self) -> None:
        result = self._run_fetch()
        if self._closed:
            logger.debug("%s closed, dropping fetch result", self.name)
            self._gate.mark_finished(False, self._clock())
            return
        self._complete(result)

    def _on_failure(self, failure: FetchFailed) -> None:
        logger.warning("%s refresh failed: %s", self.name, failure.reason)


class CpuLoadSource(MetricSource[float]):
    """
    Aggregate CPU utilization computed from successive tick snapshots.

    The baseline is taken at construction so the first read already reports
    a load. If that reading fails, the first fetch becomes the baseline.
    """

    name = "cpu"

    def __init__(
        self,
        ticks: Callable[[], CounterSnapshot],
        min_interval: float = 1.0,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(0.0, min_interval, clock)
        self._ticks = ticks
        self._previous: CounterSnapshot | None = self._baseline()

    def _baseline(self) -> CounterSnapshot | None:
        try:
            return self._ticks()
        except Exception:
            logger.debug("cpu baseline unavailable", exc_info=True)
            return None

    def _fetch(self) -> FetchResult:
        current = self._ticks()
        previous, self._previous = self._previous, current
        if previous is None:
            # First sample is only a baseline
            return Fetched(self._cache.value)
        return Fetched(cpu_load(previous, current, fallback=self._cache.value))


class NetworkSpeedSource(MetricSource[NetworkRate]):
    """Download and upload throughput across all interfaces."""

    name = "network"

    def __init__(
        self,
        counters: Callable[[], CounterSnapshot],
        min_interval: float = 1.0,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(NetworkRate(), min_interval, clock)
        self._counters = counters
        self._previous: CounterSnapshot | None = None

    def _fetch(self) -> FetchResult:
        current = self._counters()
        previous, self._previous = self._previous, current
        if previous is None:
            return Fetched(NetworkRate())
        rate = network_rate(previous, current)
        if rate is None:
            logger.debug("Interfaces changed, re-baselining network counters")
            return Fetched(NetworkRate())
        return Fetched(rate)


class ProcessSource(MetricSource[ProcessStats]):
    """
    Per-process CPU usage between sampling passes.

    The PID history is replaced wholesale on every pass, so processes that
    exited never linger.
    """

    name = "processes"

    def __init__(
        self,
        sample: Callable[[], list[ProcessSample]],
        cores: Callable[[], int],
        min_interval: float = 1.0,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(ProcessStats(), min_interval, clock)
        self._sample = sample
        self._cores = cores
        self._history: Mapping[int, ProcessSample] = {}
        self._sampled_at: float | None = None

    def top(self, limit: int) -> list[ProcessMetric]:
        """The `limit` busiest processes from the cached pass."""
        return list(self.read().metrics[: max(0, limit)])

    def _fetch(self) -> FetchResult:
        samples = self._sample()
        now = self._clock()
        elapsed = now - self._sampled_at if self._sampled_at is not None else 0.0
        metrics = process_usage(self._history, samples, elapsed, self._cores())
        self._history = {sample.pid: sample for sample in samples}
        self._sampled_at = now
        return Fetched(
            ProcessStats(
                metrics=tuple(top_processes(metrics, len(metrics))),
                process_count=len(samples),
                thread_count=sum(sample.threads for sample in samples),
            )
        )


class PolledSource(MetricSource[T]):
    """Gated wrapper around one capability reading; None maps to `default`."""

    def __init__(
        self,
        name: str,
        reading: Callable[[], T | None],
        default: T,
        min_interval: float = 5.0,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(default, min_interval, clock)
        self.name = name
        self._reading = reading
        self._default = default

    def _fetch(self) -> FetchResult:
        value = self._reading()
        return Fetched(self._default if value is None else value)


class CryptoPriceSource(BackgroundSource[dict[str, float]]):
    """
    Spot prices for a fixed set of assets from the CoinGecko simple-price API.

    Only assets present in a response are updated. Any failure leaves every
    cached price as it was.
    """

    name = "crypto"

    def __init__(
        self,
        assets: Iterable[str] = DEFAULT_ASSETS,
        currency: str = "usd",
        endpoint: str = CRYPTO_ENDPOINT,
        min_interval: float = 60.0,
        client: httpx.Client | None = None,
        clock: Clock = time.monotonic,
        runner: Runner = run_in_thread,
    ) -> None:
        self._assets = tuple(assets)
        self._currency = currency
        self._endpoint = endpoint
        super().__init__(
            {asset: 0.0 for asset in self._assets},
            min_interval,
            client=client,
            clock=clock,
            runner=runner,
        )

    @property
    def assets(self) -> tuple[str, ...]:
        """Tracked asset identifiers."""
        return self._assets

    @property
    def loaded(self) -> bool:
        """Check if any price fetch has succeeded yet."""
        return self._cache.last_updated is not None

    def read(self) -> dict[str, float]:
        """Return a copy of the cached prices."""
        return dict(super().read())

    def _fetch(self) -> FetchResult:
        params = {"ids": ",".join(self._assets), "vs_currencies": self._currency}
        try:
            response = self._client.get(self._endpoint, params=params)
            if response.status_code != 200:
                raise FetchError(f"HTTP {response.status_code}")
            prices = self._parse(response.json())
        except (httpx.HTTPError, FetchError, ValueError) as exc:
            return FetchFailed(describe_error(exc))
        return Fetched(prices)

    def _parse(self, payload: object) -> dict[str, float]:
        if not isinstance(payload, dict):
            raise FetchError("Unexpected payload")
        prices: dict[str, float] = {}
        for asset in self._assets:
            entry = payload.get(asset)
            if entry is None:
                continue
            price = entry.get(self._currency) if isinstance(entry, dict) else None
            if isinstance(price, bool) or not isinstance(price, (int, float)):
                raise FetchError(f"Bad price for {asset}")
            prices[asset] = float(price)
        return prices

    def _merge(self, value: dict[str, float]) -> dict[str, float]:
        merged = dict(self._cache.value)
        merged.update(value)
        return merged


def weather_error(reason: str) -> str:
    """Short error text shown in place of the weather."""
    if len(reason) > WEATHER_ERROR_MAX_REASON:
        reason = reason[:WEATHER_ERROR_MAX_REASON] + ".."
    return WEATHER_ERROR_PREFIX + reason


class WeatherSource(BackgroundSource[str]):
    """
    One-line weather report from wttr.in.

    Unlike the other sources, a failure replaces the cached text with a short
    error so the display shows it.
    """

    name = "weather"

    def __init__(
        self,
        location: str = "Jalandhar",
        endpoint: str = WEATHER_ENDPOINT,
        min_interval: float = 15 * 60.0,
        client: httpx.Client | None = None,
        clock: Clock = time.monotonic,
        runner: Runner = run_in_thread,
    ) -> None:
        self._url = f"{endpoint.rstrip('/')}/{quote(location)}"
        super().__init__(
            WEATHER_PLACEHOLDER,
            min_interval,
            client=client,
            clock=clock,
            runner=runner,
        )

    def _fetch(self) -> FetchResult:
        try:
            response = self._client.get(self._url, params={"format": "3"})
            if response.status_code != 200:
                raise FetchError(f"HTTP {response.status_code}")
            body = response.text.strip()
            if not body:
                raise FetchError("Empty response")
        except (httpx.HTTPError, FetchError) as exc:
            return FetchFailed(describe_error(exc))
        return Fetched(body)

    def _on_failure(self, failure: FetchFailed) -> None:
        super()._on_failure(failure)
        self._cache = CachedValue(weather_error(failure.reason), self._cache.last_updated)


class GitBranchSource:
    """
    Current git branch of a working directory.

    Not cached or gated: every read runs git, with a short timeout.
    """

    name = "git"

    def __init__(self, cwd: str | None = None, timeout: float = 2.0) -> None:
        self._cwd = cwd
        self._timeout = timeout

    def read(self) -> str:
        """Return the branch name, or NO_BRANCH on any failure."""
        try:
            completed = subprocess.run(
                GIT_BRANCH_COMMAND,
                cwd=self._cwd,
                capture_output=True,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as exc:
            logger.debug("git branch lookup failed: %s", exc)
            return NO_BRANCH

        if completed.returncode != 0:
            return NO_BRANCH
        lines = completed.stdout.splitlines()
        branch = lines[0].strip() if lines else ""
        if not branch or branch == "HEAD":
            return NO_BRANCH
        return branch
