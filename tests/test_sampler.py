"""Tests for the CPU utilization sampler."""

import random

import psutil
import pytest

from serverstats.errors import MetricUnavailable
from serverstats.models import CpuCounterSample
from serverstats.sampler import UtilizationSampler, busy_percent, read_cpu_counters


def scripted_reader(*samples: CpuCounterSample):
    """Return a counter reader that yields the given samples in order."""
    queue = list(samples)
    return lambda: queue.pop(0)


class TestBusyPercent:
    """Tests for busy_percent()."""

    def test_ten_percent(self):
        """Test idle delta 900 over total delta 1000 gives 10.0."""
        first = CpuCounterSample(user=1000, idle=5000)
        second = CpuCounterSample(user=1100, idle=5900)

        assert busy_percent(first, second) == 10.0

    def test_iowait_counts_as_idle(self):
        """Test iowait is part of the idle total."""
        first = CpuCounterSample()
        second = CpuCounterSample(system=50, idle=100, iowait=50)

        assert busy_percent(first, second) == 25.0

    def test_zero_total_delta(self):
        """Test identical samples give exactly 0.0."""
        sample = CpuCounterSample(user=10, idle=10)

        assert busy_percent(sample, sample) == 0.0

    def test_rounds_to_one_decimal(self):
        """Test the result is rounded to one decimal place."""
        first = CpuCounterSample()
        second = CpuCounterSample(user=1, idle=2)

        assert busy_percent(first, second) == 33.3

    def test_wraparound_never_negative(self):
        """Test a reset busy counter is read as zero usage."""
        first = CpuCounterSample(user=10_000, idle=100)
        second = CpuCounterSample(user=5, idle=200)

        assert busy_percent(first, second) == 0.0

    def test_always_within_bounds(self):
        """Test random non-decreasing counter pairs stay within [0, 100]."""
        rng = random.Random(42)
        names = ["user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal"]
        for _ in range(500):
            base = {name: rng.uniform(0, 1e6) for name in names}
            step = {name: base[name] + rng.choice([0, rng.uniform(0, 1e3)]) for name in names}
            result = busy_percent(CpuCounterSample(**base), CpuCounterSample(**step))
            assert 0.0 <= result <= 100.0


class TestUtilizationSampler:
    """Tests for the UtilizationSampler protocol object."""

    def test_measure_with_synthetic_samples(self):
        """Test measure() runs the protocol without a real wait."""
        waits = []
        sampler = UtilizationSampler(
            read_counters=scripted_reader(
                CpuCounterSample(user=100, idle=1000),
                CpuCounterSample(user=200, idle=1900),
            ),
            sleep=waits.append,
        )

        assert sampler.measure() == 10.0
        assert waits == [1.0]

    def test_step_by_step(self):
        """Test the individual protocol steps return the samples they read."""
        first = CpuCounterSample(user=1, idle=1)
        second = CpuCounterSample(user=3, idle=3)
        sampler = UtilizationSampler(read_counters=scripted_reader(first, second), sleep=lambda s: None)

        assert sampler.take_first_sample() is first
        sampler.wait()
        assert sampler.take_second_sample() is second
        assert sampler.derive() == 50.0

    def test_samples_discarded_after_derive(self):
        """Test derive() cannot be repeated without new samples."""
        sampler = UtilizationSampler(
            read_counters=scripted_reader(CpuCounterSample(), CpuCounterSample(idle=1)),
            sleep=lambda s: None,
        )
        sampler.measure()

        with pytest.raises(RuntimeError):
            sampler.derive()

    def test_out_of_order_calls(self):
        """Test steps called before the first sample raise RuntimeError."""
        sampler = UtilizationSampler(read_counters=CpuCounterSample, sleep=lambda s: None)

        with pytest.raises(RuntimeError):
            sampler.wait()
        with pytest.raises(RuntimeError):
            sampler.take_second_sample()
        with pytest.raises(RuntimeError):
            sampler.derive()

    def test_default_interval(self):
        """Test the default sampling window is one second."""
        assert UtilizationSampler().interval == 1.0

    def test_interval_minimum(self):
        """Test the interval has a minimum value."""
        assert UtilizationSampler(interval=0.001).interval == 0.1

    def test_unreadable_counters_propagate(self):
        """Test MetricUnavailable from the reader reaches the caller."""

        def broken():
            raise MetricUnavailable("cpu counters", "no /proc")

        sampler = UtilizationSampler(read_counters=broken, sleep=lambda s: None)

        with pytest.raises(MetricUnavailable):
            sampler.measure()


class TestReadCpuCounters:
    """Tests for read_cpu_counters()."""

    def test_reads_live_counters(self):
        """Test live counters are available and positive."""
        sample = read_cpu_counters()

        assert isinstance(sample, CpuCounterSample)
        assert sample.grand_total > 0

    def test_os_error_becomes_metric_unavailable(self, monkeypatch):
        """Test an unreadable counter source raises MetricUnavailable."""

        def fail():
            raise FileNotFoundError("/proc/stat")

        monkeypatch.setattr(psutil, "cpu_times", fail)

        with pytest.raises(MetricUnavailable):
            read_cpu_counters()

    def test_psutil_error_becomes_metric_unavailable(self, monkeypatch):
        """Test psutil errors that are not OSError also raise MetricUnavailable."""

        def fail():
            raise psutil.AccessDenied()

        monkeypatch.setattr(psutil, "cpu_times", fail)

        with pytest.raises(MetricUnavailable):
            read_cpu_counters()

    def test_real_sample_pair(self):
        """Test a short real sampling run stays within bounds."""
        sampler = UtilizationSampler(interval=0.1)

        assert 0.0 <= sampler.measure() <= 100.0
