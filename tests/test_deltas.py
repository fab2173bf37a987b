"""Tests for the counter delta functions."""

import random

import pytest
from conftest import interfaces, ticks

from termdash.deltas import (
    cpu_load,
    network_rate,
    process_cpu_percent,
    process_usage,
    top_processes,
)
from termdash.models import CounterSnapshot, NetworkRate, ProcessMetric, ProcessSample


class TestCpuLoad:
    """Tests for cpu_load."""

    def test_half_busy(self):
        """Test equal busy and idle deltas give 50% load."""
        prev = ticks(0.0, user=100.0, idle=100.0)
        curr = ticks(1.0, user=150.0, idle=150.0)
        assert cpu_load(prev, curr) == pytest.approx(0.5)

    def test_iowait_counts_as_idle(self):
        """Test iowait ticks count toward idle time."""
        prev = ticks(0.0, user=0.0, idle=0.0, iowait=0.0)
        curr = ticks(1.0, user=25.0, idle=50.0, iowait=25.0)
        assert cpu_load(prev, curr) == pytest.approx(0.25)

    def test_fully_busy(self):
        """Test no idle ticks give full load."""
        prev = ticks(0.0, user=10.0, system=10.0, idle=50.0)
        curr = ticks(1.0, user=60.0, system=60.0, idle=50.0)
        assert cpu_load(prev, curr) == pytest.approx(1.0)

    def test_zero_total_delta_returns_fallback(self):
        """Test identical snapshots return the previous value, not NaN."""
        snap = ticks(0.0, user=10.0, idle=10.0)
        assert cpu_load(snap, snap, fallback=0.42) == 0.42
        assert cpu_load(snap, snap) == 0.0

    def test_mismatched_layout_returns_fallback(self):
        """Test snapshots with different buckets are not compared."""
        prev = ticks(0.0, user=1.0, idle=1.0)
        curr = CounterSnapshot(timestamp=1.0, values=(5.0, 5.0), keys=("user", "idle"))
        assert cpu_load(prev, curr, fallback=0.3) == 0.3

    def test_result_always_in_unit_range(self):
        """Test random tick pairs always stay within [0, 1]."""
        rng = random.Random(7)
        for _ in range(200):
            before = [rng.uniform(0, 1000) for _ in range(4)]
            after = [b + rng.uniform(-50, 500) for b in before]
            prev = ticks(0.0, *before)
            curr = ticks(1.0, *after)
            load = cpu_load(prev, curr, fallback=0.5)
            assert 0.0 <= load <= 1.0


class TestNetworkRate:
    """Tests for network_rate."""

    def test_sums_interfaces_per_second(self):
        """Test deltas are summed and normalized to bytes per second."""
        prev = interfaces(10.0, eth0=(1000, 100), wlan0=(500, 50))
        curr = interfaces(12.0, eth0=(3000, 300), wlan0=(1500, 150))
        assert network_rate(prev, curr) == NetworkRate(download=1500.0, upload=150.0)

    def test_negative_delta_is_discarded(self):
        """Test a counter reset contributes zero instead of a negative delta."""
        prev = interfaces(0.0, eth0=(5000, 5000), wlan0=(100, 100))
        curr = interfaces(1.0, eth0=(10, 10), wlan0=(300, 400))
        rate = network_rate(prev, curr)
        assert rate == NetworkRate(download=200.0, upload=300.0)

    def test_interface_count_change_returns_none(self):
        """Test a hotplugged interface signals a re-baseline."""
        prev = interfaces(0.0, eth0=(0, 0))
        curr = interfaces(1.0, eth0=(10, 10), usb0=(5, 5))
        assert network_rate(prev, curr) is None

    def test_renamed_interface_returns_none(self):
        """Test a replaced interface with the same count signals a re-baseline."""
        prev = interfaces(0.0, eth0=(0, 0))
        curr = interfaces(1.0, eth1=(10, 10))
        assert network_rate(prev, curr) is None

    def test_no_elapsed_time(self):
        """Test snapshots taken at the same instant give a zero rate."""
        prev = interfaces(5.0, eth0=(0, 0))
        curr = interfaces(5.0, eth0=(100, 100))
        assert network_rate(prev, curr) == NetworkRate()


class TestProcessCpu:
    """Tests for per-process CPU usage."""

    def test_formula(self):
        """Test usage is 100 * delta / elapsed / cores."""
        assert process_cpu_percent(100.0, 150.0, 1.0, 4) == pytest.approx(100 * 50 / 1 / 4)
        assert process_cpu_percent(1.0, 1.5, 1.0, 4) == pytest.approx(12.5)

    def test_new_process_is_zero(self):
        """Test a process without a prior sample reports 0."""
        assert process_cpu_percent(None, 20.0, 1.0, 4) == 0.0

    def test_reused_pid_is_zero(self):
        """Test a lower CPU time than before reports 0."""
        assert process_cpu_percent(50.0, 10.0, 1.0, 4) == 0.0

    def test_zero_elapsed_is_zero(self):
        """Test no elapsed time reports 0."""
        assert process_cpu_percent(1.0, 2.0, 0.0, 4) == 0.0

    def test_scenario_top_one(self):
        """Test the known pid 1 / new pid 2 scenario ranks pid 1 first."""
        previous = {1: ProcessSample(1, "one", 100.0)}
        current = [ProcessSample(1, "one", 150.0), ProcessSample(2, "two", 20.0)]

        metrics = process_usage(previous, current, elapsed=1.0, cores=4)

        assert metrics[0].cpu_percent == pytest.approx(1250.0)
        assert metrics[1].cpu_percent == 0.0
        assert [m.pid for m in top_processes(metrics, 1)] == [1]


class TestTopProcesses:
    """Tests for top_processes ordering."""

    def test_descending_and_stable(self):
        """Test ties keep their enumeration order."""
        metrics = [
            ProcessMetric(1, "a", 5.0),
            ProcessMetric(2, "b", 10.0),
            ProcessMetric(3, "c", 5.0),
            ProcessMetric(4, "d", 10.0),
            ProcessMetric(5, "e", 0.0),
        ]
        assert [m.pid for m in top_processes(metrics, 5)] == [2, 4, 1, 3, 5]

    def test_limit(self):
        """Test the result is truncated to the limit."""
        metrics = [ProcessMetric(i, str(i), float(i)) for i in range(10)]
        assert [m.pid for m in top_processes(metrics, 3)] == [9, 8, 7]
        assert top_processes(metrics, 0) == []
