"""Rate and usage math over pairs of counter snapshots.

Everything here is pure: callers own the previous snapshot and decide what to
do when two snapshots cannot be compared.
"""

from collections.abc import Iterable, Mapping, Sequence

from termdash.models import CounterSnapshot, NetworkRate, ProcessMetric, ProcessSample

CPU_TICK_FIELDS = ("user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal")
IDLE_TICK_FIELDS = frozenset({"idle", "iowait"})


def cpu_load(prev: CounterSnapshot, curr: CounterSnapshot, fallback: float = 0.0) -> float:
    """
    Compute aggregate CPU utilization between two tick snapshots.

    Args:
        prev: Earlier tick-bucket snapshot.
        curr: Later tick-bucket snapshot with the same bucket layout.
        fallback: Value returned when no ticks elapsed or layouts differ.

    Returns:
        Utilization in [0.0, 1.0].
    """
    if prev.keys != curr.keys or len(prev.values) != len(curr.values):
        return fallback

    total_delta = 0.0
    idle_delta = 0.0
    for key, before, after in zip(curr.keys, prev.values, curr.values):
        delta = after - before
        total_delta += delta
        if key in IDLE_TICK_FIELDS:
            idle_delta += delta

    if total_delta <= 0:
        return fallback

    load = 1.0 - idle_delta / total_delta
    return min(1.0, max(0.0, load))


def snapshots_aligned(prev: CounterSnapshot, curr: CounterSnapshot) -> bool:
    """Return True if two per-interface snapshots can be diffed element-wise."""
    return len(prev.values) == len(curr.values) and prev.keys == curr.keys


def network_rate(prev: CounterSnapshot, curr: CounterSnapshot) -> NetworkRate | None:
    """
    Compute download/upload throughput between two interface snapshots.

    Negative per-interface deltas (counter reset, interface replaced) count
    as zero. Returns None when the interface set changed, so the caller can
    re-baseline instead.
    """
    if not snapshots_aligned(prev, curr):
        return None

    elapsed_ms = (curr.timestamp - prev.timestamp) * 1000.0
    if elapsed_ms <= 0:
        return NetworkRate()

    total_recv = 0
    total_sent = 0
    for (prev_recv, prev_sent), (recv, sent) in zip(prev.values, curr.values):
        recv_delta = recv - prev_recv
        sent_delta = sent - prev_sent
        if recv_delta > 0:
            total_recv += recv_delta
        if sent_delta > 0:
            total_sent += sent_delta

    scale = 1000.0 / elapsed_ms
    return NetworkRate(download=total_recv * scale, upload=total_sent * scale)


def process_cpu_percent(
    prev_cpu_time: float | None,
    curr_cpu_time: float,
    elapsed: float,
    cores: int,
) -> float:
    """CPU usage of one process as a percentage of the whole machine."""
    if prev_cpu_time is None or elapsed <= 0 or cores <= 0:
        return 0.0
    delta = curr_cpu_time - prev_cpu_time
    if delta <= 0:
        # PID reused by a younger process
        return 0.0
    return 100.0 * delta / elapsed / cores


def process_usage(
    previous: Mapping[int, ProcessSample],
    current: Iterable[ProcessSample],
    elapsed: float,
    cores: int,
) -> list[ProcessMetric]:
    """Per-process CPU usage in enumeration order; new processes report 0."""
    metrics: list[ProcessMetric] = []
    for sample in current:
        prev = previous.get(sample.pid)
        usage = process_cpu_percent(
            prev.cpu_time if prev is not None else None,
            sample.cpu_time,
            elapsed,
            cores,
        )
        metrics.append(ProcessMetric(pid=sample.pid, name=sample.name, cpu_percent=usage))
    return metrics


def top_processes(metrics: Sequence[ProcessMetric], limit: int) -> list[ProcessMetric]:
    """Return the `limit` busiest processes; ties keep enumeration order."""
    if limit <= 0:
        return []
    # sorted() is stable, including with reverse=True
    ranked = sorted(metrics, key=lambda m: m.cpu_percent, reverse=True)
    return ranked[:limit]
