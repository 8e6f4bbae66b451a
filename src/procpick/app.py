"""procpick - Main Textual application."""

import inspect
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.logging import TextualHandler
from textual.screen import ModalScreen, Screen
from textual.widgets import DirectoryTree, Footer, Header, Input, Label, Log, OptionList
from textual.widgets.option_list import Option

from procpick.actions import ActionRegistry, SignalActions, Sender, build_registry, copy_pid, process_directory
from procpick.config import ProcPickConfig, load_config
from procpick.errors import ConfigError, ProcPickError, SessionCollision
from procpick.formatter import build_candidates
from procpick.info import process_attributes
from procpick.lookup import PidSearch, make_search
from procpick.models import Candidate, DeferredKill, ProcessAttributes
from procpick.trace import Tracer, TraceSession

logger = logging.getLogger(__name__)


class ActionMenuScreen(ModalScreen[str | None]):
    """Pick an action for the selected process."""

    DEFAULT_CSS = """
    ActionMenuScreen {
        align: center middle;
    }

    #action-menu {
        width: 50;
        height: auto;
        max-height: 80%;
        border: thick $primary;
        background: $surface;
    }
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, pid: int, labels: list[str]) -> None:
        """Initialize ActionMenuScreen."""
        super().__init__()
        self._pid = pid
        self._labels = labels

    def compose(self) -> ComposeResult:
        """Compose the action list."""
        menu = OptionList(*[Option(label, id=label) for label in self._labels], id="action-menu")
        menu.border_title = f"Action for {self._pid}"
        yield menu

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        self.dismiss(event.option.id)

    def action_cancel(self) -> None:
        self.dismiss(None)


class CredentialScreen(ModalScreen[str | None]):
    """Password prompt for the privilege-escalation helper."""

    DEFAULT_CSS = """
    CredentialScreen {
        align: center middle;
    }

    #credential-box {
        width: 60;
        height: auto;
        padding: 1 2;
        border: thick $warning;
        background: $surface;
    }
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str) -> None:
        """Initialize CredentialScreen."""
        super().__init__()
        self._prompt = prompt

    def compose(self) -> ComposeResult:
        """Compose the prompt and password input."""
        with Vertical(id="credential-box"):
            yield Label(self._prompt)
            yield Input(password=True, id="credential")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ProcDirectoryScreen(Screen):
    """Browse the procfs directory of a process."""

    BINDINGS = [("escape", "app.pop_screen", "Close")]

    def __init__(self, path: Path) -> None:
        """Initialize ProcDirectoryScreen."""
        super().__init__()
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def compose(self) -> ComposeResult:
        """Compose the directory tree."""
        yield Header()
        yield DirectoryTree(self._path, id="proc-tree")
        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = str(self._path)


class CandidateList(OptionList):
    """Multi-line list of matching processes."""

    DEFAULT_CSS = """
    CandidateList {
        height: 1fr;
        border: solid $primary;
    }
    """

    BINDINGS = [("a", "app.actions", "Actions")]

    def show(self, candidates: list[Candidate]) -> None:
        """Replace the list contents with ``candidates``."""
        self.clear_options()
        self.add_options([Option(Text(c.label), id=str(c.pid)) for c in candidates])

    @property
    def selected_pid(self) -> int | None:
        """PID of the highlighted candidate."""
        if self.highlighted is None or self.option_count == 0:
            return None
        return int(self.get_option_at_index(self.highlighted).id)


class ProcPickApp(App):
    """Main procpick application."""

    TITLE = "procpick"
    SUB_TITLE = "Pick a process, send it a signal"

    CSS = """
    Screen {
        layout: vertical;
    }

    #pattern {
        dock: top;
    }

    .trace-log {
        height: 12;
        border: solid $warning;
        display: none;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        Binding("ctrl+r", "refresh", "Refresh", priority=True),
        Binding("ctrl+t", "stop_trace", "Stop trace", priority=True),
    ]

    def __init__(
        self,
        config: ProcPickConfig | None = None,
        search: PidSearch | None = None,
        sender: Sender | None = None,
        tracer: Tracer | None = None,
        attributes: Callable[[int], ProcessAttributes | None] | None = None,
    ) -> None:
        """Initialize the ProcPickApp."""
        super().__init__()
        self._config = config or ProcPickConfig()
        self._search = search or make_search(self._config)
        self._attributes = attributes or (lambda pid: process_attributes(pid, self._config.proc_root))
        self._tracer = tracer or Tracer(self._config)
        self._signals = SignalActions(self._config, scheduler=self.set_timer, sender=sender)
        self._action_registry = build_registry(
            self._signals,
            open_directory=self._open_directory,
            copy=lambda pid: copy_pid(pid, self.copy_to_clipboard),
            trace=self._trace,
        )
        self._pattern = ""
        self._candidates: list[Candidate] = []

    @property
    def registry(self) -> ActionRegistry:
        return self._action_registry

    @property
    def tracer(self) -> Tracer:
        return self._tracer

    @property
    def candidates(self) -> list[Candidate]:
        return list(self._candidates)

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Header()
        yield Input(placeholder="Pattern (regular expression matched against command lines)", id="pattern")
        yield CandidateList(id="candidates")
        trace_log = Log(id=self._config.trace_buffer_name, classes="trace-log")
        trace_log.border_title = self._config.trace_process_name
        yield trace_log
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#pattern", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Run the lookup for the entered pattern."""
        if event.input.id != "pattern":
            return
        self.search(event.value.strip())
        if self._candidates:
            self.query_one(CandidateList).focus()

    def search(self, pattern: str) -> None:
        """Look up ``pattern`` and redraw the candidate list."""
        self._pattern = pattern
        candidate_list = self.query_one(CandidateList)
        self._candidates = []
        candidate_list.show(self._candidates)

        if not pattern:
            return

        try:
            pids = self._search.search(pattern)
        except ProcPickError as e:
            self.notify(str(e), title="Lookup failed", severity="error")
            return

        self._candidates = build_candidates(pids, self._attributes)
        candidate_list.show(self._candidates)
        if not self._candidates:
            self.notify(f"No process matches '{pattern}'", severity="warning")

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        """Enter on a candidate runs the default action."""
        if event.option_list.id != "candidates":
            return
        self.run_action(int(event.option.id), None)

    def action_actions(self) -> None:
        """Open the action menu for the highlighted candidate."""
        pid = self.query_one(CandidateList).selected_pid
        if pid is None:
            self.notify("No process selected", severity="warning")
            return

        def chosen(label: str | None) -> None:
            if label is not None:
                self.run_action(pid, label)

        self.push_screen(ActionMenuScreen(pid, self._action_registry.labels()), chosen)

    def action_refresh(self) -> None:
        """Re-run the last lookup."""
        self.search(self._pattern)

    def action_stop_trace(self) -> None:
        if not self._tracer.is_active:
            self.notify("No trace running", severity="warning")
            return
        self.run_worker(self._tracer.stop(), group="trace")

    @work(group="actions")
    async def run_action(self, pid: int, label: str | None) -> None:
        """Dispatch ``label`` (or the default action) on ``pid``."""
        entry = self._action_registry.default if label is None else self._action_registry.get(label)
        try:
            result = self._action_registry.dispatch(pid, entry.label)
            if inspect.isawaitable(result):
                result = await result
        except (ProcPickError, FileNotFoundError) as e:
            logger.warning("%s on %d failed: %s", entry.label, pid, e)
            self.notify(str(e), title=entry.label, severity="error")
            return

        self.notify(self._describe(entry.label, pid, result))

    def _describe(self, label: str, pid: int, result: object) -> str:
        if isinstance(result, DeferredKill):
            return f"Interrupted {pid}, kill in {result.delay:g}s"
        if isinstance(result, TraceSession):
            return f"Tracing {pid} for {self._config.trace_duration:g}s"
        if isinstance(result, Path):
            return f"Opened {result}"
        if isinstance(result, str):
            return f"Copied PID {result}"
        return f"{label}: {pid}"

    def _open_directory(self, pid: int) -> Path:
        path = process_directory(pid, self._config.proc_root)
        self.push_screen(ProcDirectoryScreen(path))
        return path

    async def _trace(self, pid: int) -> TraceSession:
        """Prompt for the helper's password and start a timed trace of ``pid``."""
        if self._tracer.is_active:
            raise SessionCollision(self._config.trace_process_name)

        helper = self._config.escalation_command[0] if self._config.escalation_command else "tracer"
        credential = await self.push_screen_wait(CredentialScreen(f"Password for {helper} to trace {pid}"))

        trace_log = self.query_one(f"#{self._config.trace_buffer_name}", Log)
        session = await self._tracer.start(
            pid,
            credential,
            on_line=trace_log.write_line,
            on_end=self._trace_ended,
        )
        # No output has been read yet; the reader task has not run
        trace_log.clear()
        trace_log.display = True
        return session

    def _trace_ended(self, session: TraceSession) -> None:
        self.query_one(f"#{self._config.trace_buffer_name}", Log).display = False
        self.notify(f"Trace of {session.pid} ended ({len(session.lines)} lines)")

    async def action_quit(self) -> None:
        """Stop any running trace and exit."""
        await self._tracer.stop()
        self.exit()


def main() -> None:
    """Entry point for procpick."""
    try:
        config = load_config()
        search = make_search(config)
    except ConfigError as e:
        sys.exit(f"procpick: {e}")

    logging.basicConfig(level=config.log_level, handlers=[TextualHandler()])

    app = ProcPickApp(config, search=search)
    app.run()


if __name__ == "__main__":
    main()
