"""Persistent shell session shared by tool commands and interactive input.

One long-lived interpreter process is driven by a single actor task. Tool
commands need their output back; interactive input only needs to be seen in
the terminal view. Both travel over the same stdin/stdout pair, so every
submission is wrapped to merge stderr into stdout and to print a private
end-of-output marker afterwards.

Each submission gets its own marker (``__AGERUS_<nonce>_<n>__``). Outstanding
submissions are kept in submission order; the interpreter runs them one after
another, so output always belongs to the oldest outstanding one and its
marker closes it. Two tool commands in flight at once therefore each receive
exactly their own output.
"""

import asyncio
import logging
import re
import secrets
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Deque, List, Optional, Sequence, Tuple, Union

from ..errors import ShellUnavailable
from ..events import Error, EventBus, TerminalLine

logger = logging.getLogger(__name__)

READ_LIMIT = 1024 * 1024


@dataclass
class RunCommand:
    """A tool command whose output lines go to ``reply``; ``None`` marks the end."""
    command: str
    reply: "asyncio.Queue[Optional[str]]"


@dataclass
class UserInput:
    """Text typed by the user; its output is only shown in the terminal view."""
    text: str


@dataclass
class Shutdown:
    """Close the interpreter's input; the actor ends once output reaches EOF."""
    pass


ShellRequest = Union[RunCommand, UserInput, Shutdown]


@dataclass
class _Submission:
    marker: str
    reply: Optional["asyncio.Queue[Optional[str]]"]


def _close_reply(reply: Optional["asyncio.Queue[Optional[str]]"]) -> None:
    if reply is not None:
        reply.put_nowait(None)


class ShellSession:
    """Owns the interpreter process, its input writer and its output reader."""

    def __init__(self, process: asyncio.subprocess.Process, nonce: Optional[str] = None):
        self.process = process
        self.stdin = process.stdin
        self.reader = process.stdout
        self._nonce = nonce or secrets.token_hex(8)
        self._marker_re = re.compile(r"__AGERUS_%s_\d+__" % re.escape(self._nonce))
        self._counter = 0
        self._outstanding: Deque[_Submission] = deque()
        self._closing = False

    @classmethod
    async def spawn(cls, argv: Sequence[str], cwd: Optional[str] = None) -> "ShellSession":
        """Start the interpreter with piped stdin/stdout and stderr folded into stdout."""
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            limit=READ_LIMIT,
        )
        logger.info("Shell started (pid %s): %s", process.pid, " ".join(argv))
        return cls(process)

    @property
    def responder(self) -> Optional["asyncio.Queue[Optional[str]]"]:
        """Reply channel of the command currently producing output, if any."""
        if self._outstanding:
            return self._outstanding[0].reply
        return None

    @property
    def outstanding(self) -> int:
        return len(self._outstanding)

    def wrap(self, text: str, detach_stdin: bool = False) -> Tuple[str, bytes]:
        """Return the marker and the interpreter input for one submission.

        With ``detach_stdin`` the body reads from /dev/null, so a command that
        reads input cannot swallow the marker line written after it.
        """
        self._counter += 1
        head = f"__AGERUS_{self._nonce}_"
        tail = f"{self._counter}__"
        body = text if text.strip() else ":"
        # The marker goes on its own line so it still prints after a syntax
        # error in the body; printf joins the halves so tracing never shows it whole.
        redirect = " </dev/null" if detach_stdin else ""
        payload = f"{{ {body}\n}}{redirect} 2>&1\nprintf '%s%s\\n' '{head}' '{tail}'\n"
        return head + tail, payload.encode("utf-8")

    async def serve(self, requests: "asyncio.Queue[ShellRequest]", events: EventBus) -> None:
        """Run the actor loop until the interpreter's output ends or input fails."""
        request_task: Optional[asyncio.Future] = None
        read_task: Optional[asyncio.Future] = None

        try:
            while True:
                if request_task is None:
                    request_task = asyncio.ensure_future(requests.get())
                if read_task is None:
                    read_task = asyncio.ensure_future(self.reader.readline())

                done, _ = await asyncio.wait({request_task, read_task}, return_when=asyncio.FIRST_COMPLETED)

                if request_task in done:
                    request = request_task.result()
                    request_task = None
                    if not await self.handle_request(request, events):
                        break

                if read_task in done:
                    task, read_task = read_task, None
                    try:
                        raw = task.result()
                    except ValueError as e:
                        # Over-long line; the reader has already discarded it.
                        logger.warning("Shell output line dropped: %s", e)
                        continue
                    except (OSError, asyncio.IncompleteReadError) as e:
                        logger.warning("Shell output failed: %s", e)
                        break
                    if not raw:
                        logger.info("Shell output reached EOF")
                        break
                    await self.handle_output(raw, events)
        finally:
            for task in (request_task, read_task):
                if task is None:
                    continue
                if task is request_task and task.done() and not task.cancelled():
                    leftover = task.result()
                    if isinstance(leftover, RunCommand):
                        _close_reply(leftover.reply)
                task.cancel()
            self._abandon_outstanding(requests)

    async def handle_request(self, request: ShellRequest, events: EventBus) -> bool:
        """Write one request to the interpreter; False when the input is gone."""
        if isinstance(request, Shutdown):
            self._closing = True
            self._close_stdin()
            return True

        if isinstance(request, RunCommand):
            text, reply, detach = request.command, request.reply, True
        elif isinstance(request, UserInput):
            text, reply, detach = request.text, None, False
        else:
            raise TypeError(f"Unknown shell request: {request!r}")

        if self._closing:
            _close_reply(reply)
            return True

        marker, payload = self.wrap(text, detach_stdin=detach)
        self._outstanding.append(_Submission(marker=marker, reply=reply))

        try:
            self.stdin.write(payload)
            await self.stdin.drain()
        except (BrokenPipeError, ConnectionResetError, RuntimeError) as e:
            logger.error("Shell input failed: %s", e)
            await events.publish(Error(text=f"Shell input error: {e}"))
            return False
        return True

    async def handle_output(self, raw: bytes, events: EventBus) -> None:
        """Route one output line to the terminal view and the current responder."""
        line = raw.decode("utf-8", errors="replace").rstrip()

        match = self._marker_re.search(line)
        if match is None:
            await self._deliver(line, events)
            return

        # Output without a trailing newline shares its line with the marker.
        before = line[: match.start()].rstrip()
        if before:
            await self._deliver(before, events)
        self._complete(match.group(0))

    async def _deliver(self, line: str, events: EventBus) -> None:
        await events.publish(TerminalLine(text=line))
        reply = self.responder
        if reply is not None:
            await reply.put(line)

    def _complete(self, marker: str) -> None:
        if not any(s.marker == marker for s in self._outstanding):
            logger.debug("Ignoring stale shell marker %s", marker)
            return
        while self._outstanding:
            submission = self._outstanding.popleft()
            _close_reply(submission.reply)
            if submission.marker == marker:
                break

    def _abandon_outstanding(self, requests: "asyncio.Queue[ShellRequest]") -> None:
        while self._outstanding:
            _close_reply(self._outstanding.popleft().reply)
        while not requests.empty():
            request = requests.get_nowait()
            if isinstance(request, RunCommand):
                _close_reply(request.reply)

    def _close_stdin(self) -> None:
        if self.stdin is not None and not self.stdin.is_closing():
            self.stdin.close()

    async def terminate(self, timeout: float = 5.0) -> None:
        """Close input and reap the process, killing it if it lingers."""
        self._close_stdin()
        if self.process.returncode is None:
            try:
                await asyncio.wait_for(self.process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                try:
                    self.process.kill()
                except ProcessLookupError:
                    pass
                await self.process.wait()
        logger.info("Shell exited with code %s", self.process.returncode)


async def run_actor(
    requests: "asyncio.Queue[ShellRequest]",
    events: EventBus,
    argv: Sequence[str],
    cwd: Optional[str] = None,
) -> None:
    """Spawn the interpreter and serve requests until it goes away. No restart."""
    try:
        session = await ShellSession.spawn(argv, cwd)
    except (OSError, ValueError) as e:
        logger.error("Failed to start shell %s: %s", list(argv), e)
        await events.publish(Error(text=f"Failed to start shell: {e}"))
        # Nobody will answer queued commands now.
        while not requests.empty():
            request = requests.get_nowait()
            if isinstance(request, RunCommand):
                _close_reply(request.reply)
        return

    try:
        await session.serve(requests, events)
    finally:
        await session.terminate()


class ShellHandle:
    """Caller side of the shell actor."""

    def __init__(self, requests: "asyncio.Queue[ShellRequest]", task: "asyncio.Task[None]"):
        self._requests = requests
        self._task = task

    @classmethod
    def start(
        cls,
        events: EventBus,
        argv: Sequence[str],
        cwd: Optional[str] = None,
        maxsize: int = 100,
    ) -> "ShellHandle":
        """Spawn the actor task; must be called with a running event loop."""
        requests: "asyncio.Queue[ShellRequest]" = asyncio.Queue(maxsize=maxsize)
        task = asyncio.create_task(run_actor(requests, events, list(argv), cwd))
        return cls(requests, task)

    @property
    def is_running(self) -> bool:
        return not self._task.done()

    async def _submit(self, request: ShellRequest) -> None:
        if not self.is_running:
            raise ShellUnavailable("Shell session is not running")
        await self._requests.put(request)

    async def run_command(self, command: str) -> "asyncio.Queue[Optional[str]]":
        """Submit a tool command and return its reply channel."""
        reply: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        await self._submit(RunCommand(command=command, reply=reply))
        return reply

    async def iter_output(self, reply: "asyncio.Queue[Optional[str]]") -> AsyncIterator[str]:
        """Yield reply lines until the channel closes or the actor dies."""
        while True:
            getter = asyncio.ensure_future(reply.get())
            try:
                done, _ = await asyncio.wait({getter, self._task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not getter.done():
                    getter.cancel()
            if getter in done:
                line = getter.result()
            else:
                line = reply.get_nowait() if not reply.empty() else None
            if line is None:
                return
            yield line

    async def collect(self, command: str) -> List[str]:
        """Run a command and wait for its complete output."""
        reply = await self.run_command(command)
        return [line async for line in self.iter_output(reply)]

    async def send_input(self, text: str) -> None:
        await self._submit(UserInput(text=text))

    async def close(self, timeout: float = 5.0) -> None:
        """Ask the actor to shut the interpreter down and wait for it."""
        if self.is_running:
            try:
                self._requests.put_nowait(Shutdown())
            except asyncio.QueueFull:
                self._task.cancel()
        _, pending = await asyncio.wait({self._task}, timeout=timeout)
        if pending:
            logger.warning("Shell did not exit within %.1fs, cancelling", timeout)
            self._task.cancel()
