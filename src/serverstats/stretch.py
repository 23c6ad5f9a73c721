"""Best-effort host facts shown below the core report."""

import logging
import platform
import re
import shlex
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import psutil

from serverstats.errors import MetricUnavailable, ServerStatsError, ToolMissing

log = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")
FAILED_LOGIN_PATTERN = re.compile(r"Failed|authentication failure|Invalid user", re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class Unavailable:
    """Marker returned by OptionalMetric.attempt() when the metric could not be read."""

    placeholder: str
    reason: str = ""

    def __str__(self) -> str:
        return self.placeholder


class OptionalMetric(ABC):
    """
    A metric whose absence must never abort the report.

    Subclasses implement read() and raise MetricUnavailable or ToolMissing
    when their source is missing; attempt() turns that into an Unavailable
    carrying the metric's placeholder text.
    """

    label: str = ""
    placeholder: str = "unavailable"

    @abstractmethod
    def read(self) -> str:
        """Return the rendered value of the metric."""

    def attempt(self) -> str | Unavailable:
        try:
            return self.read()
        except ServerStatsError as exc:
            log.debug("%s degraded to placeholder: %s", self.label, exc)
            return Unavailable(self.placeholder, str(exc))


def read_os_name(path: Path = OS_RELEASE) -> str:
    """Distribution name from os-release: PRETTY_NAME, else NAME, else "Unknown"."""
    try:
        with path.open(encoding="utf-8", errors="replace") as fh:
            lines = fh.read().splitlines()
    except OSError:
        return "Unknown"

    values: dict[str, str] = {}
    for line in lines:
        key, sep, raw = line.partition("=")
        if not sep or key.startswith("#"):
            continue
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip("\"'")]
        values[key.strip()] = parts[0] if parts else ""
    return values.get("PRETTY_NAME") or values.get("NAME") or "Unknown"


class OsKernelMetric(OptionalMetric):
    label = "OS:"

    def __init__(self, os_release: Path = OS_RELEASE) -> None:
        self._os_release = os_release

    def read(self) -> str:
        kernel = platform.release()
        if not kernel:
            raise MetricUnavailable("kernel release")
        return f"{read_os_name(self._os_release)} | kernel {kernel}"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_uptime(seconds: float) -> str:
    """Render an uptime the way ``uptime -p`` does, e.g. "up 2 days, 3 hours, 1 minute"."""
    total_minutes = int(seconds // 60)
    days = total_minutes // 1440
    hours = (total_minutes % 1440) // 60
    minutes = total_minutes % 60

    parts = []
    if days:
        parts.append(_plural(days, "day"))
    if hours:
        parts.append(_plural(hours, "hour"))
    if minutes or not parts:
        parts.append(_plural(minutes, "minute"))
    return "up " + ", ".join(parts)


class UptimeLoadMetric(OptionalMetric):
    label = "Uptime/Load:"

    def read(self) -> str:
        try:
            load1, load5, load15 = psutil.getloadavg()
        except (OSError, RuntimeError, psutil.Error) as exc:
            raise MetricUnavailable("load average", str(exc)) from exc

        try:
            uptime = format_uptime(time.time() - psutil.boot_time())
        except (OSError, RuntimeError, psutil.Error) as exc:
            log.debug("boot time unreadable: %s", exc)
            uptime = "uptime unavailable"

        return f"{uptime} | load avg: {load1:.2f} {load5:.2f} {load15:.2f}"


class LoggedInUsersMetric(OptionalMetric):
    label = "Logged-in:"
    placeholder = "session list not available"

    def read(self) -> str:
        try:
            sessions = psutil.users()
        except (OSError, RuntimeError, psutil.Error) as exc:
            raise MetricUnavailable("session list", str(exc)) from exc
        names = " ".join(sorted({s.name for s in sessions}))
        return f"{len(sessions)} user(s): {names or 'none'}"


def count_lastb_entries(output: str) -> int:
    """Count login records in ``lastb`` output, ignoring blank lines and the trailing "btmp begins" line."""
    return sum(1 for line in output.splitlines() if line.strip() and not line.startswith("btmp begins"))


def count_failed_auth_lines(output: str) -> int:
    return sum(1 for line in output.splitlines() if FAILED_LOGIN_PATTERN.search(line))


def _run(cmd: list[str]) -> str:
    try:
        result = subprocess.run(cmd, encoding="utf-8", errors="replace", capture_output=True, check=False)
    except OSError as exc:
        raise MetricUnavailable(cmd[0], str(exc)) from exc
    if result.returncode != 0:
        log.debug("%s exited with status %d: %s", cmd[0], result.returncode, result.stderr.strip())
    return result.stdout


class FailedLoginsMetric(OptionalMetric):
    """
    Failed SSH logins.

    Prefers ``lastb`` (records since the last btmp rotation) and falls back
    to the sshd journal for the current boot.
    """

    label = "Security:"
    placeholder = "failed ssh logins: tools unavailable"

    def read(self) -> str:
        if shutil.which("lastb"):
            total = count_lastb_entries(_run(["lastb", "-w"]))
            return f"failed ssh logins (since last rotate): {total}"
        if shutil.which("journalctl"):
            total = count_failed_auth_lines(_run(["journalctl", "-b", "-u", "sshd"]))
            return f"failed ssh logins (this boot): {total}"
        raise ToolMissing("lastb", "journalctl")


def default_stretch_metrics() -> list[OptionalMetric]:
    return [OsKernelMetric(), UptimeLoadMetric(), LoggedInUsersMetric(), FailedLoginsMetric()]
