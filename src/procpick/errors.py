"""Exceptions raised by procpick."""


class ProcPickError(Exception):
    """Base class for all procpick errors."""


class ConfigError(ProcPickError):
    """The configuration file could not be used."""


class LookupFailure(ProcPickError):
    """The PID search failed or produced unparseable output."""


class SignalDeliveryFailure(ProcPickError):
    """A signal could not be delivered to a process."""

    def __init__(self, pid: int, signal: int, reason: str) -> None:
        self.pid = pid
        self.signal = signal
        self.reason = reason
        super().__init__(f"Cannot send signal {signal} to {pid}: {reason}")


class CredentialCancelled(ProcPickError):
    """The user aborted a credential prompt."""


class SessionCollision(ProcPickError):
    """A fixed-name session is already active."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Session '{name}' is already running")


class TraceStartFailure(ProcPickError):
    """The tracer subprocess could not be started."""
