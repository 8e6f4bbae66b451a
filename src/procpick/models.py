"""Data models for procpick."""

from collections.abc import Callable
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class ProcessAttributes:
    """Display-ready snapshot of one process; missing fields are empty strings."""

    command: str
    args: str
    elapsed: str
    state: str  # 'R', 'S', 'Z', 'D', etc.
    nice: str
    user: str
    memory: str  # e.g. '1.2 MiB'


@dataclass(slots=True, frozen=True)
class Candidate:
    """One selectable entry in the process list."""

    label: str
    pid: int


@dataclass(slots=True, frozen=True)
class ActionEntry:
    """A labelled operation on a PID."""

    label: str
    operation: Callable[[int], object]


@dataclass(slots=True)
class DeferredKill:
    """A kill scheduled by a polite kill.

    The handle is whatever the scheduler returned. It is kept so that
    cancellation can be added later; today the kill always fires.
    """

    pid: int
    delay: float
    due: float  # time.monotonic() value
    handle: object
