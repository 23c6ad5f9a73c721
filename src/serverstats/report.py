"""Report driver: runs each reader in order and prints its section."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from rich.console import Console
from rich.text import Text

from serverstats import monitor
from serverstats.errors import MetricUnavailable
from serverstats.formatting import build_console, format_bytes
from serverstats.models import DiskUsage, MemoryUsage, ProcessSnapshot
from serverstats.monitor import SortKey
from serverstats.sampler import DEFAULT_INTERVAL, UtilizationSampler
from serverstats.stretch import OptionalMetric, default_stretch_metrics

log = logging.getLogger(__name__)

RULE = "—" * 60
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %Z"
PROCESS_LIST_UNAVAILABLE = "process list unavailable"


@dataclass(slots=True, frozen=True)
class ReportConfig:
    """Settings for one report run."""

    color: bool = True
    sample_interval: float = DEFAULT_INTERVAL
    top_n: int = 5


def format_process_table(processes: list[ProcessSnapshot], key: SortKey) -> list[str]:
    """Fixed-width rows with the ranking column first after the command name."""
    columns = [("%CPU", "cpu_percent"), ("%MEM", "memory_percent")]
    if key is SortKey.MEM:
        columns.reverse()
    (first_title, first_attr), (second_title, second_attr) = columns

    lines = [f"{'PID':<7} {'COMMAND':<20} {first_title:>6} {second_title:>6}"]
    for proc in processes:
        first = getattr(proc, first_attr)
        second = getattr(proc, second_attr)
        lines.append(f"{proc.pid:<7} {proc.name[:20]:<20} {first:>6.1f} {second:>6.1f}")
    return lines


def _local_now() -> datetime:
    return datetime.now().astimezone()


class ServerReport:
    """
    Prints the server performance report.

    CPU, memory and disk readers are required: their MetricUnavailable
    propagates out of run(). The process rankings and the stretch metrics
    degrade to placeholder text.
    """

    def __init__(
        self,
        config: ReportConfig | None = None,
        console: Console | None = None,
        sampler: UtilizationSampler | None = None,
        read_memory: Callable[[], MemoryUsage] | None = None,
        read_disk: Callable[[], DiskUsage] | None = None,
        collect_processes: Callable[[], list[ProcessSnapshot]] | None = None,
        stretch_metrics: list[OptionalMetric] | None = None,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self.config = config or ReportConfig()
        self.console = console or build_console(self.config.color)
        self._sampler = sampler or UtilizationSampler(interval=self.config.sample_interval)
        self._read_memory = read_memory or monitor.read_memory
        self._read_disk = read_disk or monitor.read_disk_usage
        self._collect_processes = collect_processes or monitor.collect_processes
        self._stretch_metrics = default_stretch_metrics() if stretch_metrics is None else stretch_metrics
        self._clock = clock

    def run(self) -> None:
        self.print_header()
        self.print_cpu()
        self.print_memory()
        self.print_disk()
        self.console.print()
        self.print_top()
        self.print_stretch()

    def print_header(self) -> None:
        self.console.print(RULE)
        self.console.print(
            Text.assemble(("Server Performance Report:", "bold"), " ", self._clock().strftime(TIMESTAMP_FORMAT))
        )
        self.console.print(RULE)

    def print_cpu(self) -> None:
        usage = self._sampler.measure()
        self.console.print(Text.assemble(("CPU Usage:", "blue"), f" {usage:.1f}%"))

    def _print_usage(self, label: str, used: int, free: int, percent: str) -> None:
        self.console.print(
            Text.assemble(
                (label, "blue"),
                " ",
                (format_bytes(used), "green"),
                " used, ",
                (format_bytes(free), "green"),
                f" free ({percent}% used)",
            )
        )

    def print_memory(self) -> None:
        mem = self._read_memory()
        self._print_usage("Memory:", mem.used_bytes, mem.free_bytes, mem.percent)

    def print_disk(self) -> None:
        disk = self._read_disk()
        self._print_usage("Disk (all real FS):", disk.used_bytes, disk.free_bytes, disk.percent)

    def print_top(self) -> None:
        top_n = self.config.top_n
        try:
            processes = self._collect_processes()
        except MetricUnavailable as exc:
            log.debug("process rankings degraded: %s", exc)
            processes = None

        for key, title in ((SortKey.CPU, "CPU"), (SortKey.MEM, "Memory")):
            if key is SortKey.MEM:
                self.console.print()
            self.console.print(Text(f"Top {top_n} by {title}:", style="blue"))
            if processes is None:
                self.console.print(PROCESS_LIST_UNAVAILABLE)
                continue
            for line in format_process_table(monitor.top_processes(processes, key, top_n), key):
                self.console.print(line)

    def print_stretch(self) -> None:
        self.console.print()
        self.console.print(Text("Stretch Stats", style="yellow"))
        for metric in self._stretch_metrics:
            self.console.print(f"{metric.label} {metric.attempt()}")

    def print_error(self) -> None:
        self.console.print(Text("Error generating report", style="bold red"))
