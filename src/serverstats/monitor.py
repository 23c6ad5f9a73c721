"""Point-in-time readers for memory, disk and the process table."""

import logging
import shutil
import subprocess
import time
from enum import Enum
from typing import Iterable

import psutil

from serverstats.errors import MetricUnavailable
from serverstats.models import DiskUsage, FilesystemUsage, MemoryUsage, ProcessSnapshot

log = logging.getLogger(__name__)

# Memory- and image-backed filesystems that never count towards disk usage.
VIRTUAL_FSTYPES = frozenset({"tmpfs", "devtmpfs", "squashfs", "overlay", "ramfs"})


class SortKey(Enum):
    """Sort keys for the process rankings."""

    CPU = "cpu"
    MEM = "mem"


def read_memory() -> MemoryUsage:
    """
    Read total and available physical memory.

    Falls back to ``free -k`` when psutil cannot read the kernel's figures.
    """
    try:
        vm = psutil.virtual_memory()
    except (OSError, RuntimeError, psutil.Error) as exc:
        log.debug("psutil.virtual_memory() failed (%s), trying free -k", exc)
        return _memory_from_free()
    return MemoryUsage(total_bytes=vm.total, available_bytes=vm.available)


def _memory_from_free() -> MemoryUsage:
    if shutil.which("free") is None:
        raise MetricUnavailable("memory", "kernel figures unreadable and free is not installed")
    result = subprocess.run(["free", "-k"], encoding="utf-8", errors="replace", capture_output=True, check=False)
    if result.returncode != 0:
        raise MetricUnavailable("memory", f"free exited with status {result.returncode}")
    return parse_free_output(result.stdout)


def parse_free_output(output: str) -> MemoryUsage:
    """Parse the ``Mem:`` row of ``free -k`` (columns: total used free shared buff/cache available)."""
    for line in output.splitlines():
        columns = line.split()
        if columns and columns[0] == "Mem:":
            try:
                return MemoryUsage.from_kib(int(columns[1]), int(columns[6]))
            except (IndexError, ValueError) as exc:
                raise MetricUnavailable("memory", f"unexpected free output: {line!r}") from exc
    raise MetricUnavailable("memory", "no Mem: row in free output")


def aggregate_filesystems(filesystems: Iterable[FilesystemUsage]) -> DiskUsage:
    """
    Sum usage over real filesystems.

    Virtual filesystem types are skipped whatever figures they report, and a
    device mounted at several places is counted once.
    """
    total = 0
    used = 0
    seen_devices: set[str] = set()
    for fs in filesystems:
        if fs.fstype in VIRTUAL_FSTYPES:
            continue
        if fs.device in seen_devices:
            continue
        seen_devices.add(fs.device)
        total += fs.total_bytes
        used += fs.used_bytes
    return DiskUsage(total_bytes=total, used_bytes=used)


def list_filesystems() -> list[FilesystemUsage]:
    """List usage for every mounted physical filesystem the current user can stat."""
    try:
        partitions = psutil.disk_partitions(all=False)
    except (OSError, RuntimeError, psutil.Error) as exc:
        raise MetricUnavailable("disk listing", str(exc)) from exc

    filesystems: list[FilesystemUsage] = []
    for part in partitions:
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except OSError as exc:
            # Unmounted between listing and stat, or not permitted
            log.debug("skipping %s: %s", part.mountpoint, exc)
            continue
        filesystems.append(
            FilesystemUsage(
                device=part.device,
                mountpoint=part.mountpoint,
                fstype=part.fstype,
                total_bytes=usage.total,
                used_bytes=usage.used,
            )
        )
    return filesystems


def read_disk_usage() -> DiskUsage:
    return aggregate_filesystems(list_filesystems())


def lifetime_cpu_percent(cpu_times: object, create_time: float, now: float) -> float:
    """CPU time consumed over the process's lifetime as a percentage, like ``ps -o %cpu``."""
    elapsed = now - create_time
    if cpu_times is None or elapsed <= 0:
        return 0.0
    return (cpu_times.user + cpu_times.system) / elapsed * 100


def collect_processes() -> list[ProcessSnapshot]:
    """
    Collect snapshots of all running processes.

    Uses psutil.process_iter() with the oneshot() context manager.
    Processes that exit or deny access mid-scan are skipped.
    """
    processes: list[ProcessSnapshot] = []
    attrs = ["pid", "name", "cpu_times", "create_time", "memory_percent"]
    now = time.time()

    try:
        procs = list(psutil.process_iter(attrs=attrs))
    except (OSError, RuntimeError, psutil.Error) as exc:
        raise MetricUnavailable("process table", str(exc)) from exc

    for proc in procs:
        try:
            with proc.oneshot():
                info = proc.info
                create_time = info.get("create_time") or now
                processes.append(
                    ProcessSnapshot(
                        pid=info.get("pid", 0),
                        name=info.get("name") or "",
                        cpu_percent=lifetime_cpu_percent(info.get("cpu_times"), create_time, now),
                        memory_percent=info.get("memory_percent") or 0.0,
                    )
                )
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            log.debug("skipping process %s", proc.pid)
            continue

    return processes


def top_processes(processes: Iterable[ProcessSnapshot], key: SortKey, limit: int = 5) -> list[ProcessSnapshot]:
    """Return the ``limit`` heaviest processes by ``key``, highest first."""
    key_func = {
        SortKey.CPU: lambda p: p.cpu_percent,
        SortKey.MEM: lambda p: p.memory_percent,
    }
    return sorted(processes, key=key_func[key], reverse=True)[:limit]
