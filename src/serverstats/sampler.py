"""CPU utilization sampling over two reads of the kernel's cumulative counters."""

import logging
import time
from typing import Callable

import psutil

from serverstats.errors import MetricUnavailable
from serverstats.models import CpuCounterSample

log = logging.getLogger(__name__)

DEFAULT_INTERVAL = 1.0
MIN_INTERVAL = 0.1


def read_cpu_counters() -> CpuCounterSample:
    """Read the system-wide cumulative CPU time counters."""
    try:
        times = psutil.cpu_times()
    except (OSError, RuntimeError, psutil.Error) as exc:
        raise MetricUnavailable("cpu counters", str(exc)) from exc
    return CpuCounterSample.from_cpu_times(times)


def busy_percent(first: CpuCounterSample, second: CpuCounterSample) -> float:
    """
    Percentage of non-idle CPU time between two samples, rounded to one decimal.

    Returns 0.0 when no time elapsed on the counters.
    """
    delta = second.since(first)
    total_delta = delta.grand_total
    if total_delta == 0:
        return 0.0
    idle_delta = delta.idle_total
    return round((total_delta - idle_delta) / total_delta * 100, 1)


class UtilizationSampler:
    """
    Two-sample CPU utilization probe.

    The protocol is: take_first_sample() -> wait() -> take_second_sample()
    -> derive(). measure() runs all four in order. Samples are dropped as
    soon as a percentage has been derived from them.
    """

    def __init__(
        self,
        interval: float = DEFAULT_INTERVAL,
        read_counters: Callable[[], CpuCounterSample] = read_cpu_counters,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """
        Initialize the UtilizationSampler.

        Args:
            interval: Seconds between the two reads. Default 1.0s.
            read_counters: Returns the current counters. Replaced in tests with synthetic samples.
            sleep: Blocks for the given number of seconds. Defaults to time.sleep.
        """
        self._interval = max(MIN_INTERVAL, interval)
        self._read_counters = read_counters
        self._sleep = sleep
        self._first: CpuCounterSample | None = None
        self._second: CpuCounterSample | None = None

    @property
    def interval(self) -> float:
        return self._interval

    def take_first_sample(self) -> CpuCounterSample:
        self._first = self._read_counters()
        self._second = None
        return self._first

    def wait(self) -> None:
        if self._first is None:
            raise RuntimeError("wait() called before take_first_sample()")
        sleep = self._sleep or time.sleep
        sleep(self._interval)

    def take_second_sample(self) -> CpuCounterSample:
        if self._first is None:
            raise RuntimeError("take_second_sample() called before take_first_sample()")
        self._second = self._read_counters()
        return self._second

    def derive(self) -> float:
        """Compute the busy percentage from the held samples and discard them."""
        if self._first is None or self._second is None:
            raise RuntimeError("derive() needs both samples")
        result = busy_percent(self._first, self._second)
        log.debug(
            "cpu busy %.1f%% over %.1fs (idle delta %.2f, total delta %.2f)",
            result,
            self._interval,
            self._second.idle_total - self._first.idle_total,
            self._second.grand_total - self._first.grand_total,
        )
        self._first = None
        self._second = None
        return result

    def measure(self) -> float:
        """Run the full sampling protocol and return the busy percentage."""
        self.take_first_sample()
        self.wait()
        self.take_second_sample()
        return self.derive()
