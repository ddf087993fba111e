"""
Tests for the persistent shell actor. These drive a real local bash.
"""

import asyncio
import shutil

import pytest

from agerus.errors import ShellUnavailable
from agerus.events import Error, TerminalLine
from agerus.shell.session import ShellHandle, ShellSession

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available"),
]


@pytest.fixture
async def shell(events, tmp_path):
    """A running shell actor in a temporary directory."""
    handle = ShellHandle.start(events, ["bash"], cwd=str(tmp_path))
    yield handle
    await handle.close()


def terminal_lines(events):
    return [e.text for e in events.drain() if isinstance(e, TerminalLine)]


async def wait_stopped(handle: ShellHandle, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while handle.is_running and loop.time() < deadline:
        await asyncio.sleep(0.05)


class _FakeProcess:
    stdin = None
    stdout = None
    pid = 0
    returncode = 0


class TestWrapping:
    """Submission wrapping."""

    def test_markers_are_unique_per_submission(self):
        session = ShellSession(process=_FakeProcess(), nonce="abc")
        first, payload = session.wrap("echo hi")
        second, _ = session.wrap("echo hi")

        assert first == "__AGERUS_abc_1__"
        assert second == "__AGERUS_abc_2__"
        assert payload.startswith(b"{ echo hi\n} 2>&1\n")
        # The marker is never written out in one piece.
        assert first.encode() not in payload

    def test_empty_command_becomes_no_op(self):
        session = ShellSession(process=_FakeProcess(), nonce="abc")
        _, payload = session.wrap("   ")

        assert payload.startswith(b"{ :\n}")

    def test_tool_commands_read_from_dev_null(self):
        session = ShellSession(process=_FakeProcess(), nonce="abc")
        _, payload = session.wrap("cat", detach_stdin=True)

        assert payload.startswith(b"{ cat\n} </dev/null 2>&1\n")


class TestCommands:
    """Tool commands get exactly their own output."""

    async def test_echo(self, shell, events):
        assert await shell.collect("echo A") == ["A"]
        assert terminal_lines(events) == ["A"]

    async def test_stderr_is_merged(self, shell):
        assert await shell.collect("echo oops 1>&2") == ["oops"]

    async def test_no_trailing_newline(self, shell):
        assert await shell.collect("printf 'abc'") == ["abc"]

    async def test_no_output(self, shell):
        assert await shell.collect("true") == []

    async def test_state_persists_between_commands(self, shell, tmp_path):
        await shell.collect("mkdir sub && cd sub && export GREETING=hello")

        assert await shell.collect("pwd") == [str((tmp_path / "sub").resolve())]
        assert await shell.collect("echo $GREETING") == ["hello"]

    async def test_markers_never_reach_output(self, shell, events):
        lines = await shell.collect("echo one; echo two")
        seen = terminal_lines(events)

        assert lines == ["one", "two"]
        assert not any("__AGERUS_" in line for line in lines + seen)

    async def test_concurrent_commands_receive_own_output(self, shell):
        first, second = await asyncio.gather(
            shell.collect("echo one; sleep 0.2; echo two"),
            shell.collect("echo three"),
        )

        assert first == ["one", "two"]
        assert second == ["three"]

    async def test_command_reading_stdin_keeps_its_marker(self, shell):
        assert await shell.collect("read x; echo got:$x") == ["got:"]
        assert await shell.collect("echo B") == ["B"]

    async def test_cat_does_not_swallow_following_command(self, shell):
        first, second = await asyncio.gather(
            shell.collect("cat"),
            shell.collect("echo after"),
        )

        assert first == []
        assert second == ["after"]


class TestUserInput:
    """Interactive input is observational."""

    async def test_user_input_goes_to_terminal_only(self, shell, events):
        await shell.send_input("echo typed")
        lines = await shell.collect("echo mine")

        assert lines == ["mine"]
        assert terminal_lines(events) == ["typed", "mine"]

    async def test_user_input_does_not_steal_pending_command(self, shell):
        reply = await shell.run_command("sleep 0.2; echo first")
        await shell.send_input("echo typed")

        lines = [line async for line in shell.iter_output(reply)]

        assert lines == ["first"]


class TestLifecycle:
    """Startup failure, exit and shutdown."""

    async def test_exit_closes_reply_and_stops_actor(self, shell):
        assert await shell.collect("exit") == []

        await wait_stopped(shell)
        assert not shell.is_running
        with pytest.raises(ShellUnavailable):
            await shell.collect("echo late")

    async def test_close_stops_actor(self, events, tmp_path):
        handle = ShellHandle.start(events, ["bash"], cwd=str(tmp_path))
        assert await handle.collect("echo up") == ["up"]

        await handle.close()

        assert not handle.is_running

    async def test_spawn_failure_reports_error(self, events, tmp_path):
        handle = ShellHandle.start(events, [str(tmp_path / "no-such-shell")])

        await wait_stopped(handle)

        errors = [e for e in events.drain() if isinstance(e, Error)]
        assert len(errors) == 1
        assert errors[0].text.startswith("Failed to start shell:")
        assert not handle.is_running
