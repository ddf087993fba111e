"""Events delivered to the presentation layer and the bus that carries them."""

import asyncio
import logging
from typing import Any, AsyncIterator, List, Literal, Union

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class Token(BaseModel):
    """A fragment of assistant answer text."""
    kind: Literal["token"] = "token"
    text: str


class Thinking(BaseModel):
    """A fragment of model reasoning, or a notice shown alongside it."""
    kind: Literal["thinking"] = "thinking"
    text: str


class CommandStart(BaseModel):
    kind: Literal["command_start"] = "command_start"
    label: str


class CommandEnd(BaseModel):
    kind: Literal["command_end"] = "command_end"
    summary: str


class TerminalLine(BaseModel):
    """One line of shell output for the passive terminal view."""
    kind: Literal["terminal_line"] = "terminal_line"
    text: str


class Error(BaseModel):
    kind: Literal["error"] = "error"
    text: str


class TurnFinished(BaseModel):
    """Emitted exactly once at the end of every turn, whatever the outcome."""
    kind: Literal["turn_finished"] = "turn_finished"


class ModelsLoaded(BaseModel):
    kind: Literal["models_loaded"] = "models_loaded"
    models: List[str]


class WorkspaceRestarted(BaseModel):
    """Carries the replacement shell and tool handles after a workspace change."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["workspace_restarted"] = "workspace_restarted"
    shell: Any
    tools: Any


AppEvent = Union[
    Token,
    Thinking,
    CommandStart,
    CommandEnd,
    TerminalLine,
    Error,
    TurnFinished,
    ModelsLoaded,
    WorkspaceRestarted,
]


class EventBus:
    """Bounded channel from the orchestrator and shell actor to the UI.

    ``publish`` waits for free space. The wait is an ordinary await, so
    cancelling the publishing task (an aborted turn) also ends the wait.
    """

    def __init__(self, maxsize: int = 256):
        self._queue: "asyncio.Queue[AppEvent]" = asyncio.Queue(maxsize=maxsize)

    async def publish(self, event: AppEvent) -> None:
        await self._queue.put(event)

    def publish_nowait(self, event: AppEvent) -> bool:
        """Publish without waiting; returns False if the bus was full."""
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            logger.warning("Event bus full, dropped %s event", event.kind)
            return False

    async def next(self) -> AppEvent:
        return await self._queue.get()

    def drain(self) -> List[AppEvent]:
        """Return every event currently queued without waiting."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def __aiter__(self) -> AsyncIterator[AppEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[AppEvent]:
        while True:
            yield await self._queue.get()

    def __len__(self) -> int:
        return self._queue.qsize()
