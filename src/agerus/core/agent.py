"""Agent orchestrator: runs one conversational turn against the backend.

A turn fetches the tool catalog once, then repeats request → decode →
tool dispatch until the model answers without tool calls or the iteration
bound is reached. Tool calls run one at a time in the order the model
emitted them, and every call gets exactly one tool-result message before the
model is asked again.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import (
    AgerusError,
    BackendConnectionError,
    BackendError,
    ToolExecutionError,
    ToolRegistryUnavailable,
)
from ..events import CommandEnd, CommandStart, Error, EventBus, Thinking, Token, TurnFinished
from ..llm.base import ToolCall, Transcript, to_backend_messages
from ..llm.client import OllamaClient
from ..llm.decoder import (
    ErrorNotice,
    StreamDecoder,
    StreamEvent,
    TextToken,
    ThinkingFragment,
    ToolCallFragment,
)

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 10


class TurnState(str, Enum):
    IDLE = "idle"
    FETCHING_TOOLS = "fetching_tools"
    AWAITING_MODEL = "awaiting_model"
    STREAMING_RESPONSE = "streaming_response"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ModelReply:
    """What one streamed response produced."""
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    fell_back: bool = False


class AgentOrchestrator:
    """Drives turns for one backend client and one event bus."""

    def __init__(self, client: OllamaClient, events: EventBus, max_iterations: int = MAX_ITERATIONS):
        self.client = client
        self.events = events
        self.max_iterations = max_iterations
        self.state = TurnState.IDLE
        self.iterations = 0

    def _set_state(self, state: TurnState) -> None:
        logger.debug("Turn state %s -> %s", self.state.value, state.value)
        self.state = state

    async def run_turn(self, history: Transcript, tools) -> List[Dict[str, Any]]:
        """Run one turn over a snapshot of ``history``.

        ``tools`` is a ``ToolClient`` (anything with ``list_tools`` and
        ``call_tool``). The caller's transcript is left untouched; the backend
        messages accumulated during the turn are returned. A single
        ``TurnFinished`` event is published however the turn ends.
        """
        snapshot = [message.model_copy() for message in history]
        messages: List[Dict[str, Any]] = []
        self.iterations = 0
        cancelled = False
        try:
            messages = await self._run(snapshot, tools)
        except asyncio.CancelledError:
            cancelled = True
            self._set_state(TurnState.FAILED)
            # Awaiting now would be cancelled again; the bus may drop this if full.
            self.events.publish_nowait(TurnFinished())
            raise
        except Exception as e:
            logger.exception("Turn failed unexpectedly")
            self._set_state(TurnState.FAILED)
            await self.events.publish(Error(text=f"Agent error: {e}"))
        finally:
            if not cancelled:
                await self.events.publish(TurnFinished())
        return messages

    async def _fail(self, text: str) -> None:
        logger.warning(text)
        self._set_state(TurnState.FAILED)
        await self.events.publish(Error(text=text))

    async def _run(self, snapshot: Transcript, tools) -> List[Dict[str, Any]]:
        self._set_state(TurnState.FETCHING_TOOLS)
        messages = to_backend_messages(snapshot)
        try:
            definitions = await tools.list_tools()
        except ToolRegistryUnavailable as e:
            await self._fail(f"Failed to contact tool registry: {e}")
            return messages

        backend_tools: Optional[List[Dict[str, Any]]] = [d.to_backend() for d in definitions]

        while self.iterations < self.max_iterations:
            self.iterations += 1
            self._set_state(TurnState.AWAITING_MODEL)
            try:
                reply = await self._stream_reply(messages, backend_tools)
            except BackendError as e:
                await self._fail(str(e))
                return messages
            except BackendConnectionError as e:
                await self._fail(str(e))
                return messages

            if reply.fell_back:
                # The model refused tools once; don't offer them again this turn.
                backend_tools = None

            if not reply.tool_calls:
                self._set_state(TurnState.DONE)
                return messages

            messages.append({
                "role": "assistant",
                "content": reply.content,
                "tool_calls": [call.to_backend() for call in reply.tool_calls],
            })

            self._set_state(TurnState.DISPATCHING_TOOLS)
            for call in reply.tool_calls:
                messages.append(await self._dispatch(call, tools))

        logger.info("Turn stopped after %d iterations with tool calls answered", self.iterations)
        self._set_state(TurnState.DONE)
        return messages

    async def _stream_reply(self, messages: List[Dict[str, Any]], backend_tools) -> ModelReply:
        reply = ModelReply()
        content: List[str] = []
        decoder = StreamDecoder()

        async def on_fallback(notice: str) -> None:
            reply.fell_back = True
            await self.events.publish(Thinking(text=notice))

        stream = self.client.stream_chat(messages, backend_tools, on_fallback=on_fallback)
        try:
            async for chunk in stream:
                if self.state is not TurnState.STREAMING_RESPONSE:
                    self._set_state(TurnState.STREAMING_RESPONSE)
                for event in decoder.feed(chunk):
                    await self._route(event, content, reply)
        finally:
            await stream.aclose()
        for event in decoder.finish():
            await self._route(event, content, reply)

        reply.content = "".join(content)
        return reply

    async def _route(self, event: StreamEvent, content: List[str], reply: ModelReply) -> None:
        if isinstance(event, TextToken):
            content.append(event.text)
            await self.events.publish(Token(text=event.text))
        elif isinstance(event, ThinkingFragment):
            await self.events.publish(Thinking(text=event.text))
        elif isinstance(event, ToolCallFragment):
            reply.tool_calls.append(event.call)
        elif isinstance(event, ErrorNotice):
            await self.events.publish(Error(text=f"Backend error: {event.message}"))

    async def _dispatch(self, call: ToolCall, tools) -> Dict[str, Any]:
        """Run one tool call to completion and return its tool-result message."""
        await self.events.publish(CommandStart(label=f"{call.name}(...)"))
        try:
            result = await tools.call_tool(call.name, call.arguments)
        except ToolExecutionError as e:
            result = f"Tool Execution Error: {e}"
        except (ToolRegistryUnavailable, AgerusError) as e:
            result = f"Tool Execution Failed: {e}"
        await self.events.publish(CommandEnd(summary=result))
        return {"role": "tool", "content": result, "tool_name": call.name}
