"""Time-limited tracing of a process through a privilege-escalation helper."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from procpick.config import ProcPickConfig
from procpick.errors import CredentialCancelled, SessionCollision, TraceStartFailure

logger = logging.getLogger(__name__)


class TraceState(Enum):
    """Lifecycle of the single trace session."""

    IDLE = "idle"
    STARTING = "starting"
    ATTACHED = "attached"
    TERMINATING = "terminating"


@dataclass(slots=True)
class TraceSession:
    """One running tracer subprocess and the output it produced."""

    name: str
    buffer_name: str
    pid: int
    command: list[str]
    process: Any  # asyncio.subprocess.Process
    started: float  # time.monotonic()
    lines: list[str] = field(default_factory=list)


class Tracer:
    """
    Runs at most one tracer subprocess at a time.

    The session name is fixed, so starting a trace while another is active is
    rejected with SessionCollision. Each session is stopped after
    ``config.trace_duration`` seconds unless it ends or is stopped earlier.
    """

    def __init__(self, config: ProcPickConfig, spawn: Callable[..., Any] | None = None) -> None:
        self._config = config
        self._spawn = spawn or asyncio.create_subprocess_exec
        self._state = TraceState.IDLE
        self._session: TraceSession | None = None
        self._reader: asyncio.Task | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._stopper: asyncio.Task | None = None
        self._on_end: Callable[[TraceSession], None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> TraceState:
        return self._state

    @property
    def session(self) -> TraceSession | None:
        """The active session, if any."""
        return self._session

    @property
    def is_active(self) -> bool:
        return self._state is not TraceState.IDLE

    def command(self, pid: int) -> list[str]:
        """The argument vector used to trace ``pid``."""
        return [
            *self._config.escalation_command,
            self._config.tracer,
            *self._config.tracer_args,
            str(pid),
        ]

    async def start(
        self,
        pid: int,
        credential: str | None,
        on_line: Callable[[str], None] | None = None,
        on_end: Callable[[TraceSession], None] | None = None,
    ) -> TraceSession:
        """
        Start tracing ``pid``.

        Args:
            pid: Process to attach to.
            credential: Password written to the helper's stdin. None means the
                prompt was cancelled.
            on_line: Called with each line of tracer output.
            on_end: Called with the session once it has ended and the tracer
                is idle again.

        Raises:
            CredentialCancelled: ``credential`` is None.
            SessionCollision: A session is already active.
            TraceStartFailure: The subprocess could not be spawned.
        """
        if credential is None:
            raise CredentialCancelled(f"Trace of {pid} cancelled")
        if self._state is not TraceState.IDLE:
            raise SessionCollision(self._config.trace_process_name)

        self._state = TraceState.STARTING
        self._idle.clear()
        command = self.command(pid)
        logger.info("Starting trace: %s", command)

        try:
            process = await self._spawn(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            self._state = TraceState.IDLE
            self._idle.set()
            raise TraceStartFailure(f"Cannot start {command[0]}: {e}") from e

        session = TraceSession(
            name=self._config.trace_process_name,
            buffer_name=self._config.trace_buffer_name,
            pid=pid,
            command=command,
            process=process,
            started=time.monotonic(),
        )
        self._session = session
        self._on_end = on_end

        await self._send_credential(process, credential)

        self._reader = asyncio.create_task(self._read_output(session, on_line))
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._config.trace_duration, self._on_timeout)
        self._state = TraceState.ATTACHED
        return session

    async def stop(self) -> None:
        """End the active session. Does nothing when idle."""
        if self._state is TraceState.TERMINATING:
            await self._idle.wait()
            return
        if self._state is not TraceState.ATTACHED or self._session is None:
            return

        self._state = TraceState.TERMINATING
        await self._shutdown(self._session)

    async def wait(self) -> None:
        """Wait until no session is active."""
        await self._idle.wait()

    async def _send_credential(self, process: Any, credential: str) -> None:
        if process.stdin is None:
            return
        try:
            process.stdin.write(credential.encode() + b"\n")
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Tracer closed stdin before reading the credential")
        finally:
            process.stdin.close()

    async def _read_output(self, session: TraceSession, on_line: Callable[[str], None] | None) -> None:
        stdout = session.process.stdout
        while True:
            raw = await stdout.readline()
            if not raw:
                break
            line = raw.decode(errors="replace").rstrip("\n")
            session.lines.append(line)
            if on_line is not None:
                try:
                    on_line(line)
                except Exception:
                    # Output is still drained into session.lines
                    logger.exception("Trace output callback failed")
                    on_line = None

        # The tracer exited on its own
        if self._state is TraceState.ATTACHED and self._session is session:
            self._state = TraceState.TERMINATING
            await self._shutdown(session)

    def _on_timeout(self) -> None:
        self._timer = None
        logger.info("Trace timed out after %.1fs", self._config.trace_duration)
        self._stopper = asyncio.ensure_future(self.stop())
        self._stopper.add_done_callback(self._stopper_done)

    def _stopper_done(self, task: asyncio.Task) -> None:
        if self._stopper is task:
            self._stopper = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("Stopping the timed-out trace failed", exc_info=task.exception())

    async def _shutdown(self, session: TraceSession) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        grace = self._config.trace_kill_grace
        process = session.process
        try:
            if process.returncode is None:
                try:
                    process.terminate()
                    await asyncio.wait_for(process.wait(), grace)
                except ProcessLookupError:
                    pass
                except asyncio.TimeoutError:
                    logger.warning("Tracer ignored SIGTERM, killing it")
                    try:
                        process.kill()
                    except ProcessLookupError:
                        pass
                    await process.wait()

            reader = self._reader
            self._reader = None
            if reader is not None and reader is not asyncio.current_task():
                try:
                    await asyncio.wait_for(reader, grace)
                except asyncio.TimeoutError:
                    # The helper's children may hold the pipe open
                    logger.debug("Stopped waiting for tracer output")
                except Exception:
                    logger.exception("Trace output reader failed")
        finally:
            logger.info("Trace of %d ended (exit status %s)", session.pid, process.returncode)
            self._session = None
            self._state = TraceState.IDLE
            self._idle.set()
            on_end, self._on_end = self._on_end, None
            if on_end is not None:
                on_end(session)
