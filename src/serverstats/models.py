"""Data models for server-stats."""

from dataclasses import dataclass, fields

from serverstats.formatting import pct

KIB = 1024


@dataclass(slots=True, frozen=True)
class CpuCounterSample:
    """
    Cumulative CPU time counters since boot, as exposed by the kernel.

    Counters the platform does not report are left at 0.0. Extra fields
    (guest, guest_nice, ...) are never read.
    """

    user: float = 0.0
    nice: float = 0.0
    system: float = 0.0
    idle: float = 0.0
    iowait: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0
    steal: float = 0.0

    @classmethod
    def from_cpu_times(cls, times: object) -> "CpuCounterSample":
        """Build a sample from a psutil ``scputimes`` (or any object with the same attributes)."""
        return cls(**{f.name: float(getattr(times, f.name, 0.0) or 0.0) for f in fields(cls)})

    @property
    def idle_total(self) -> float:
        return self.idle + self.iowait

    @property
    def busy_total(self) -> float:
        return self.user + self.nice + self.system + self.irq + self.softirq + self.steal

    @property
    def grand_total(self) -> float:
        return self.idle_total + self.busy_total

    def since(self, earlier: "CpuCounterSample") -> "CpuCounterSample":
        """
        Per-counter delta between ``earlier`` and this sample.

        A counter that went backwards (wraparound or reset) yields 0.0 for
        that field so no negative value reaches the totals.
        """
        return CpuCounterSample(
            **{
                f.name: max(0.0, getattr(self, f.name) - getattr(earlier, f.name))
                for f in fields(self)
            }
        )


@dataclass(slots=True, frozen=True)
class MemoryUsage:
    """Physical memory at a single instant. Used memory is ``total - available``."""

    total_bytes: int
    available_bytes: int

    @classmethod
    def from_kib(cls, total_kb: int, available_kb: int) -> "MemoryUsage":
        return cls(total_bytes=total_kb * KIB, available_bytes=available_kb * KIB)

    @property
    def used_bytes(self) -> int:
        return self.total_bytes - self.available_bytes

    @property
    def free_bytes(self) -> int:
        return self.total_bytes - self.used_bytes

    @property
    def percent(self) -> str:
        return pct(self.used_bytes, self.total_bytes)


@dataclass(slots=True, frozen=True)
class FilesystemUsage:
    """Usage figures for one mounted filesystem."""

    device: str
    mountpoint: str
    fstype: str
    total_bytes: int
    used_bytes: int


@dataclass(slots=True, frozen=True)
class DiskUsage:
    """Aggregate usage across all real filesystems."""

    total_bytes: int
    used_bytes: int

    @property
    def free_bytes(self) -> int:
        return self.total_bytes - self.used_bytes

    @property
    def percent(self) -> str:
        return pct(self.used_bytes, self.total_bytes)


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of a process's resource usage."""

    pid: int
    name: str
    cpu_percent: float  # ps-style: lifetime CPU time over elapsed time
    memory_percent: float
