"""PID discovery by pattern.

PUBLIC API:
  - PidSearch: interface for PID search strategies
  - PgrepSearch: default strategy backed by ``pgrep -f``
  - PsutilSearch: in-process strategy matching command lines with ``re``
  - make_search: build the strategy named in the configuration
"""

import logging
import os
import re
import subprocess
from abc import ABC, abstractmethod

import psutil

from procpick.config import ProcPickConfig
from procpick.errors import ConfigError, LookupFailure

logger = logging.getLogger(__name__)

# pgrep exits with 1 when nothing matched
_PGREP_NO_MATCH = 1


class PidSearch(ABC):
    """Find the PIDs of processes whose command line matches a pattern."""

    @classmethod
    def from_config(cls, config: ProcPickConfig) -> "PidSearch":
        """Build the strategy from configuration."""
        return cls()

    @abstractmethod
    def search(self, pattern: str) -> set[int]:
        """Return the PIDs matching ``pattern``."""


def parse_pids(output: str) -> set[int]:
    """Parse newline-delimited decimal PIDs.

    Blank lines are ignored. Any other non-numeric line aborts the parse.
    """
    pids: set[int] = set()
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        if not (line.isascii() and line.isdigit()):
            raise LookupFailure(f"Unexpected line in search output: {line!r}")
        pids.add(int(line))
    return pids


class PgrepSearch(PidSearch):
    """Search with an external ``pgrep``-compatible utility."""

    def __init__(self, command: str = "pgrep", timeout: float | None = 5.0) -> None:
        self._command = command
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: ProcPickConfig) -> "PgrepSearch":
        return cls(config.search_command, timeout=config.search_timeout)

    @property
    def command(self) -> str:
        return self._command

    def search(self, pattern: str) -> set[int]:
        if not pattern:
            raise ValueError("Search pattern must not be empty")

        argv = [self._command, "-f", "--", pattern]
        logger.debug("Running %s", argv)
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise LookupFailure(f"Search utility not found: {self._command}") from e
        except OSError as e:
            raise LookupFailure(f"Cannot run {self._command}: {e.strerror or e}") from e
        except subprocess.TimeoutExpired as e:
            raise LookupFailure(f"{self._command} timed out after {self._timeout}s") from e

        if result.returncode == _PGREP_NO_MATCH:
            return set()
        if result.returncode != 0:
            message = result.stderr.strip() or f"exit status {result.returncode}"
            raise LookupFailure(f"{self._command} failed: {message}")

        return parse_pids(result.stdout)


class PsutilSearch(PidSearch):
    """Search the process table directly, without a subprocess."""

    def search(self, pattern: str) -> set[int]:
        if not pattern:
            raise ValueError("Search pattern must not be empty")

        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise LookupFailure(f"Invalid pattern {pattern!r}: {e}") from e

        own_pid = os.getpid()
        pids: set[int] = set()
        for proc in psutil.process_iter(attrs=["pid", "name", "cmdline"]):
            try:
                info = proc.info
                cmdline = info.get("cmdline") or []
                command_line = " ".join(cmdline) if cmdline else (info.get("name") or "")
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

            if info["pid"] != own_pid and regex.search(command_line):
                pids.add(info["pid"])
        return pids


SEARCH_STRATEGIES: dict[str, type[PidSearch]] = {
    "pgrep": PgrepSearch,
    "psutil": PsutilSearch,
}


def make_search(config: ProcPickConfig) -> PidSearch:
    """Instantiate the search strategy selected by ``config.search_strategy``."""
    try:
        strategy = SEARCH_STRATEGIES[config.search_strategy]
    except KeyError:
        names = ", ".join(sorted(SEARCH_STRATEGIES))
        raise ConfigError(f"Unknown search strategy '{config.search_strategy}' (choose from {names})") from None

    return strategy.from_config(config)
