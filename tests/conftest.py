"""Shared fixtures for procpick tests."""

import asyncio

import pytest

from procpick.lookup import PidSearch
from procpick.models import ProcessAttributes


class FakeSearch(PidSearch):
    """Search strategy returning a fixed set of PIDs."""

    def __init__(self, pids: set[int]) -> None:
        self.pids = pids
        self.patterns: list[str] = []

    def search(self, pattern: str) -> set[int]:
        self.patterns.append(pattern)
        return set(self.pids)


class FakeStdin:
    def __init__(self) -> None:
        self.data = b""
        self.closed = False

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process driven by the test."""

    def __init__(self, ignore_term: bool = False) -> None:
        self.stdin = FakeStdin()
        self.stdout = asyncio.StreamReader()
        self.returncode: int | None = None
        self.signals: list[str] = []
        self._ignore_term = ignore_term
        self._exited = asyncio.Event()

    def emit(self, line: str) -> None:
        self.stdout.feed_data(line.encode() + b"\n")

    def exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
            self.stdout.feed_eof()
            self._exited.set()

    def terminate(self) -> None:
        self.signals.append("TERM")
        if not self._ignore_term:
            self.exit(-15)

    def kill(self) -> None:
        self.signals.append("KILL")
        self.exit(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


class FakeSpawn:
    """Records spawn calls and hands out prepared FakeProcess objects."""

    def __init__(self, *processes: FakeProcess) -> None:
        self.processes = list(processes)
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []

    async def __call__(self, *args: str, **kwargs) -> FakeProcess:
        self.calls.append(list(args))
        self.kwargs.append(kwargs)
        return self.processes.pop(0)


class RecordingSender:
    """Signal sender that records deliveries instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, int]] = []

    def __call__(self, pid: int, sig: int) -> None:
        self.sent.append((pid, sig))


class ManualScheduler:
    """Scheduler that holds callbacks until the test fires them."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[float, object]] = []

    def __call__(self, delay: float, callback) -> str:
        self.scheduled.append((delay, callback))
        return f"timer-{len(self.scheduled)}"

    def fire_all(self) -> None:
        for _, callback in self.scheduled:
            callback()


SLEEP_ATTRIBUTES = ProcessAttributes(
    command="sleep",
    args="sleep 300",
    elapsed="01:05",
    state="S",
    nice="0",
    user="alice",
    memory="1.2 MiB",
)


@pytest.fixture
def sleep_attributes() -> ProcessAttributes:
    return SLEEP_ATTRIBUTES


@pytest.fixture
def fake_search():
    return FakeSearch({4471})


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def make_process():
    return FakeProcess


@pytest.fixture
def make_spawn():
    return FakeSpawn
