"""Process attribute retrieval for procpick."""

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import psutil

from procpick.models import ProcessAttributes

logger = logging.getLogger(__name__)

# psutil status strings to the single-letter codes shown by ps
_STATE_CODES = {
    "running": "R",
    "sleeping": "S",
    "disk-sleep": "D",
    "stopped": "T",
    "tracing-stop": "t",
    "zombie": "Z",
    "dead": "X",
    "wake-kill": "K",
    "waking": "W",
    "idle": "I",
    "locked": "L",
    "waiting": "W",
    "parked": "P",
}

_MEMORY_UNITS = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]

# KeyError: uid without a passwd entry
_FIELD_ERRORS = (psutil.AccessDenied, psutil.ZombieProcess, KeyError)


def format_memory(kilobytes: int) -> str:
    """Format a kilobyte count with binary prefixes, e.g. 1024 -> '1 MiB'."""
    size = float(kilobytes) * 1024
    unit = _MEMORY_UNITS[0]
    for unit in _MEMORY_UNITS:
        # Compare the displayed value so 1023.96 MiB becomes 1 GiB
        if round(size, 1) < 1024 or unit == _MEMORY_UNITS[-1]:
            break
        size = size / 1024

    if unit == "B":
        return f"{int(size)} B"
    text = f"{size:.1f}".rstrip("0").rstrip(".")
    return f"{text} {unit}"


def format_elapsed(seconds: float) -> str:
    """Format a duration the way ps shows etime: [[DD-]HH:]MM:SS."""
    seconds = max(0, int(seconds))
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    if days > 0:
        return f"{days}-{hours:02d}:{minutes:02d}:{seconds:02d}"
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def read_rss_kilobytes(pid: int, proc_root: Path = Path("/proc")) -> int | None:
    """Read the VmRSS counter (kernel kilobytes) from /proc/<pid>/status."""
    try:
        with open(proc_root / str(pid) / "status") as f:
            for line in f:
                if line.startswith("VmRSS:"):
                    return int(line.split()[1])
    except (OSError, IndexError, ValueError):
        return None
    return None


def _resident_kilobytes(proc: psutil.Process, proc_root: Path) -> int | None:
    """RSS in kilobytes, from procfs when available, otherwise from psutil."""
    kilobytes = read_rss_kilobytes(proc.pid, proc_root)
    if kilobytes is not None:
        return kilobytes

    rss = proc.memory_info().rss
    # Kernel threads report no resident memory
    return rss // 1024 if rss else None


def _render_memory(kilobytes: int | None) -> str:
    return "" if kilobytes is None else format_memory(kilobytes)


def _field(getter: Callable[[], Any], render: Callable[[Any], str] = str) -> str:
    """Read one attribute, rendering unreadable values as an empty string."""
    try:
        return render(getter())
    except _FIELD_ERRORS:
        return ""


def process_attributes(pid: int, proc_root: Path = Path("/proc")) -> ProcessAttributes | None:
    """
    Take a snapshot of a process for display.

    Returns None when the process no longer exists. Fields that cannot be read
    (permission denied, zombie) are left empty instead of failing the record.
    """
    try:
        proc = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug("Process %d is gone", pid)
        return None

    try:
        with proc.oneshot():
            return ProcessAttributes(
                command=_field(proc.name),
                args=_field(proc.cmdline, " ".join),
                elapsed=_field(proc.create_time, lambda t: format_elapsed(time.time() - t)),
                state=_field(proc.status, lambda s: _STATE_CODES.get(s, "?")),
                nice=_field(proc.nice),
                user=_field(proc.username),
                memory=_field(lambda: _resident_kilobytes(proc, proc_root), _render_memory),
            )
    except psutil.NoSuchProcess:
        logger.debug("Process %d exited while being read", pid)
        return None
