"""Tests for the procpick application."""

import signal

import pytest
from textual.widgets import Input, Log, OptionList

from procpick.app import ActionMenuScreen, CandidateList, CredentialScreen, ProcDirectoryScreen, ProcPickApp
from procpick.config import ProcPickConfig
from procpick.errors import LookupFailure, SignalDeliveryFailure
from procpick.lookup import PidSearch
from procpick.trace import Tracer, TraceState


class FailingSearch(PidSearch):
    def search(self, pattern: str) -> set[int]:
        raise LookupFailure("pgrep failed: boom")


@pytest.fixture
def make_app(fake_search, sender, sleep_attributes):
    """Build an app wired to fakes at every OS boundary."""

    def factory(config: ProcPickConfig | None = None, **kwargs) -> ProcPickApp:
        kwargs.setdefault("search", fake_search)
        kwargs.setdefault("sender", sender)
        kwargs.setdefault("attributes", {4471: sleep_attributes}.get)
        return ProcPickApp(config or ProcPickConfig(), **kwargs)

    return factory


async def select_first(pilot) -> None:
    candidate_list = pilot.app.query_one(CandidateList)
    candidate_list.focus()
    candidate_list.highlighted = 0
    await pilot.pause()


@pytest.mark.asyncio
async def test_app_creation(make_app):
    """Test ProcPickApp can be instantiated."""
    app = make_app()
    assert app.title == "procpick"
    assert app.registry.default.label == "Interrupt (SIGINT)"
    assert app.tracer.state is TraceState.IDLE


@pytest.mark.asyncio
async def test_app_compose(make_app):
    """Test ProcPickApp composes correctly."""
    app = make_app()
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#pattern", Input) is not None
        assert pilot.app.query_one("#candidates", CandidateList) is not None
        trace_log = pilot.app.query_one("#strace-output", Log)
        assert trace_log.display is False


@pytest.mark.asyncio
async def test_pattern_submit_lists_candidates(make_app, fake_search):
    """Typing a pattern and pressing enter fills the candidate list."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press(*"sleep123")
        await pilot.press("enter")
        await pilot.pause()

        assert fake_search.patterns == ["sleep123"]
        candidate_list = pilot.app.query_one(CandidateList)
        assert candidate_list.option_count == 1
        assert [c.pid for c in pilot.app.candidates] == [4471]
        label = pilot.app.candidates[0].label
        for text in ("sleep", "sleep 300", "alice", "1.2 MiB"):
            assert text in label
        assert pilot.app.focused is candidate_list


@pytest.mark.asyncio
async def test_vanished_process_not_listed(make_app, fake_search):
    fake_search.pids = {4471, 5000}
    app = make_app()
    async with app.run_test():
        app.search("sleep")

        assert [c.pid for c in app.candidates] == [4471]


@pytest.mark.asyncio
async def test_lookup_failure_does_not_crash(make_app):
    app = make_app(search=FailingSearch())
    async with app.run_test() as pilot:
        app.search("anything")
        await pilot.pause()

        assert app.candidates == []
        assert app.is_running


@pytest.mark.asyncio
async def test_refresh_requeries(make_app, fake_search):
    app = make_app()
    async with app.run_test() as pilot:
        app.search("sleep123")
        await pilot.press("ctrl+r")

        assert fake_search.patterns == ["sleep123", "sleep123"]


@pytest.mark.asyncio
async def test_enter_runs_default_action(make_app, sender):
    """Enter on a candidate sends the first action (interrupt)."""
    app = make_app()
    async with app.run_test() as pilot:
        app.search("sleep123")
        await select_first(pilot)

        await pilot.press("enter")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert sender.sent == [(4471, signal.SIGINT)]


@pytest.mark.asyncio
async def test_action_menu_dispatches_choice(make_app, sender):
    app = make_app()
    async with app.run_test() as pilot:
        app.search("sleep123")
        await select_first(pilot)

        await pilot.press("a")
        await pilot.pause()
        assert isinstance(app.screen, ActionMenuScreen)

        menu = app.screen.query_one(OptionList)
        menu.highlighted = app.registry.labels().index("Kill (SIGKILL)")
        await pilot.press("enter")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert not isinstance(app.screen, ActionMenuScreen)
        assert sender.sent == [(4471, signal.SIGKILL)]


@pytest.mark.asyncio
async def test_action_menu_escape_cancels(make_app, sender):
    app = make_app()
    async with app.run_test() as pilot:
        app.search("sleep123")
        await select_first(pilot)

        await pilot.press("a")
        await pilot.pause()
        await pilot.press("escape")
        await pilot.pause()

        assert not isinstance(app.screen, ActionMenuScreen)
        assert sender.sent == []


@pytest.mark.asyncio
async def test_action_menu_needs_selection(make_app):
    app = make_app()
    async with app.run_test() as pilot:
        app.action_actions()
        await pilot.pause()

        assert not isinstance(app.screen, ActionMenuScreen)


@pytest.mark.asyncio
async def test_signal_failure_is_reported(make_app):
    def sender(pid, sig):
        raise SignalDeliveryFailure(pid, sig, "no such process")

    app = make_app(sender=sender)
    async with app.run_test() as pilot:
        app.run_action(4471, "Kill (SIGKILL)")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert app.is_running


@pytest.mark.asyncio
async def test_polite_kill_uses_app_timer(make_app, sender):
    app = make_app(ProcPickConfig(polite_kill_delay=0.1))
    async with app.run_test() as pilot:
        app.run_action(4471, "Polite kill (SIGINT, then SIGKILL)")
        await pilot.pause()
        await app.workers.wait_for_complete()
        assert sender.sent == [(4471, signal.SIGINT)]

        await pilot.pause(0.5)

        assert sender.sent == [(4471, signal.SIGINT), (4471, signal.SIGKILL)]


@pytest.mark.asyncio
async def test_copy_pid(make_app):
    app = make_app()
    copied = []
    app.copy_to_clipboard = copied.append
    async with app.run_test() as pilot:
        app.run_action(4471, "Copy PID")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert copied == ["4471"]


@pytest.mark.asyncio
async def test_open_proc_directory(make_app, tmp_path):
    (tmp_path / "4471").mkdir()
    (tmp_path / "4471" / "status").write_text("Name:\tsleep\n")
    app = make_app(ProcPickConfig(proc_root=tmp_path))
    async with app.run_test() as pilot:
        app.run_action(4471, "Open /proc directory")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert isinstance(app.screen, ProcDirectoryScreen)
        assert app.screen.path == tmp_path / "4471"

        await pilot.press("escape")
        await pilot.pause()
        assert not isinstance(app.screen, ProcDirectoryScreen)


@pytest.mark.asyncio
async def test_open_missing_proc_directory(make_app, tmp_path):
    app = make_app(ProcPickConfig(proc_root=tmp_path))
    async with app.run_test() as pilot:
        app.run_action(4471, "Open /proc directory")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert not isinstance(app.screen, ProcDirectoryScreen)
        assert app.is_running


@pytest.mark.asyncio
async def test_trace_prompts_and_streams(make_app, make_process, make_spawn):
    process = make_process()
    spawn = make_spawn(process)
    config = ProcPickConfig()
    app = make_app(config, tracer=Tracer(config, spawn=spawn))
    async with app.run_test() as pilot:
        app.run_action(4471, "Trace")
        await pilot.pause()
        assert isinstance(app.screen, CredentialScreen)

        app.screen.query_one(Input).value = "secret"
        await pilot.press("enter")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert app.tracer.state is TraceState.ATTACHED
        assert process.stdin.data == b"secret\n"
        trace_log = app.query_one("#strace-output", Log)
        assert trace_log.display is True

        process.emit("write(1, ...) = 5")
        await pilot.pause(0.1)
        assert app.tracer.session.lines == ["write(1, ...) = 5"]

        await pilot.press("ctrl+t")
        await pilot.pause()
        await app.workers.wait_for_complete()
        assert app.tracer.state is TraceState.IDLE
        assert trace_log.display is False
        assert list(trace_log.lines) == ["write(1, ...) = 5"]


@pytest.mark.asyncio
async def test_trace_cancelled_prompt(make_app, make_spawn):
    spawn = make_spawn()
    config = ProcPickConfig()
    app = make_app(config, tracer=Tracer(config, spawn=spawn))
    async with app.run_test() as pilot:
        app.run_action(4471, "Trace")
        await pilot.pause()
        await pilot.press("escape")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert spawn.calls == []
        assert app.tracer.state is TraceState.IDLE
        assert app.is_running


@pytest.mark.asyncio
async def test_cancelled_prompt_keeps_previous_output(make_app, make_spawn):
    config = ProcPickConfig()
    app = make_app(config, tracer=Tracer(config, spawn=make_spawn()))
    async with app.run_test() as pilot:
        trace_log = app.query_one("#strace-output", Log)
        trace_log.write_line("previous trace")
        await pilot.pause()

        app.run_action(4471, "Trace")
        await pilot.pause()
        await pilot.press("escape")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert list(trace_log.lines) == ["previous trace"]


@pytest.mark.asyncio
async def test_configured_buffer_name_is_log_id(make_app):
    app = make_app(ProcPickConfig(trace_buffer_name="syscalls"))
    async with app.run_test():
        assert app.query_one("#syscalls", Log).border_title == "strace"


@pytest.mark.asyncio
async def test_second_trace_rejected_without_prompt(make_app, make_process, make_spawn):
    process = make_process()
    spawn = make_spawn(process)
    config = ProcPickConfig()
    tracer = Tracer(config, spawn=spawn)
    app = make_app(config, tracer=tracer)
    async with app.run_test() as pilot:
        await tracer.start(1, "pw")

        app.run_action(4471, "Trace")
        await pilot.pause()
        await app.workers.wait_for_complete()

        assert not isinstance(app.screen, CredentialScreen)
        assert tracer.session.pid == 1
        assert len(spawn.calls) == 1

        await tracer.stop()


@pytest.mark.asyncio
async def test_app_quit_binding(make_app):
    """Test that 'q' quits when the pattern input is not focused."""
    app = make_app()
    async with app.run_test() as pilot:
        app.query_one(CandidateList).focus()
        await pilot.press("q")
        await pilot.pause()
        assert pilot.app.return_code == 0
