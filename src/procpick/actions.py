"""Actions that can be run against a selected process.

PUBLIC API:
  - SignalActions: interrupt/terminate/kill/stop/continue and polite kill
  - ThreadingScheduler: default scheduler for deferred kills
  - process_directory: locate the procfs directory of a PID
  - copy_pid: put a PID on a clipboard
  - ActionRegistry: ordered label -> operation table
  - build_registry: the standard action table
"""

import logging
import signal
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path

import psutil

from procpick.config import ProcPickConfig
from procpick.errors import SignalDeliveryFailure
from procpick.models import ActionEntry, DeferredKill

logger = logging.getLogger(__name__)

Sender = Callable[[int, int], None]
Scheduler = Callable[[float, Callable[[], None]], object]


def send_signal(pid: int, sig: int) -> None:
    """Deliver ``sig`` to ``pid``, resolving the PID afresh."""
    try:
        psutil.Process(pid).send_signal(sig)
    except psutil.NoSuchProcess as e:
        raise SignalDeliveryFailure(pid, sig, "no such process") from e
    except psutil.AccessDenied as e:
        raise SignalDeliveryFailure(pid, sig, "permission denied") from e
    except OSError as e:
        raise SignalDeliveryFailure(pid, sig, e.strerror or str(e)) from e


class ThreadingScheduler:
    """Run callbacks after a delay on daemon timer threads."""

    def __call__(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class SignalActions:
    """Signal operations on a PID."""

    def __init__(
        self,
        config: ProcPickConfig,
        scheduler: Scheduler | None = None,
        sender: Sender | None = None,
    ) -> None:
        self._config = config
        self._scheduler = scheduler or ThreadingScheduler()
        self._send = sender or send_signal

    def _deliver(self, pid: int, sig: signal.Signals) -> None:
        logger.info("Sending %s to %d", sig.name, pid)
        self._send(pid, sig)

    def interrupt(self, pid: int) -> None:
        self._deliver(pid, signal.SIGINT)

    def terminate(self, pid: int) -> None:
        self._deliver(pid, signal.SIGTERM)

    def kill(self, pid: int) -> None:
        self._deliver(pid, signal.SIGKILL)

    def stop(self, pid: int) -> None:
        self._deliver(pid, signal.SIGSTOP)

    def cont(self, pid: int) -> None:
        self._deliver(pid, signal.SIGCONT)

    def polite_kill(self, pid: int) -> DeferredKill:
        """
        Interrupt ``pid`` now and kill it after the configured delay.

        The kill fires unconditionally, even if the process already exited.
        There is currently no way to cancel it.
        """
        self.interrupt(pid)

        delay = self._config.polite_kill_delay
        handle = self._scheduler(delay, lambda: self._deferred_kill(pid))
        logger.info("Kill of %d scheduled in %.1fs", pid, delay)
        return DeferredKill(pid=pid, delay=delay, due=time.monotonic() + delay, handle=handle)

    def _deferred_kill(self, pid: int) -> None:
        try:
            self.kill(pid)
        except SignalDeliveryFailure as e:
            logger.warning("Deferred kill failed: %s", e)


def process_directory(pid: int, proc_root: Path = Path("/proc")) -> Path:
    """Return the procfs directory of ``pid``; FileNotFoundError if it is gone."""
    path = proc_root / str(pid)
    if not path.is_dir():
        raise FileNotFoundError(f"No such process directory: {path}")
    return path


def copy_pid(pid: int, clipboard: Callable[[str], object]) -> str:
    """Put the decimal PID on ``clipboard`` and return the copied text."""
    text = str(pid)
    clipboard(text)
    logger.debug("Copied PID %s", text)
    return text


class ActionRegistry:
    """Ordered table of actions; the first entry is the default."""

    def __init__(self, entries: Iterable[ActionEntry]) -> None:
        self._entries = tuple(entries)
        if not self._entries:
            raise ValueError("An action registry needs at least one entry")

        self._by_label: dict[str, ActionEntry] = {}
        for entry in self._entries:
            if entry.label in self._by_label:
                raise ValueError(f"Duplicate action label: {entry.label}")
            self._by_label[entry.label] = entry

    @property
    def entries(self) -> tuple[ActionEntry, ...]:
        return self._entries

    @property
    def default(self) -> ActionEntry:
        return self._entries[0]

    def labels(self) -> list[str]:
        return [entry.label for entry in self._entries]

    def get(self, label: str) -> ActionEntry:
        """Look up an action by label; raises KeyError if unknown."""
        return self._by_label[label]

    def dispatch(self, pid: int, label: str | None = None) -> object:
        """Run the action named ``label`` (or the default) on ``pid``.

        Returns whatever the operation returns, which may be awaitable.
        """
        entry = self.default if label is None else self.get(label)
        logger.debug("Dispatching '%s' on %d", entry.label, pid)
        return entry.operation(pid)

    def __len__(self) -> int:
        return len(self._entries)


def build_registry(
    signals: SignalActions,
    open_directory: Callable[[int], object],
    copy: Callable[[int], object],
    trace: Callable[[int], object],
) -> ActionRegistry:
    """Build the standard action table, in menu order."""
    return ActionRegistry(
        [
            ActionEntry("Interrupt (SIGINT)", signals.interrupt),
            ActionEntry("Terminate (SIGTERM)", signals.terminate),
            ActionEntry("Kill (SIGKILL)", signals.kill),
            ActionEntry("Stop (SIGSTOP)", signals.stop),
            ActionEntry("Continue (SIGCONT)", signals.cont),
            ActionEntry("Polite kill (SIGINT, then SIGKILL)", signals.polite_kill),
            ActionEntry("Open /proc directory", open_directory),
            ActionEntry("Copy PID", copy),
            ActionEntry("Trace", trace),
        ]
    )
