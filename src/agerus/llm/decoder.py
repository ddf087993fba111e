"""Decoder for the backend's newline-delimited JSON chat stream."""

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel

from .base import ToolCall

logger = logging.getLogger(__name__)

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

# Checked in order; the first present field wins.
REASONING_FIELDS = ("thinking", "reasoning_content", "reasoning")


class TextToken(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class ThinkingFragment(BaseModel):
    kind: Literal["thinking"] = "thinking"
    text: str


class ToolCallFragment(BaseModel):
    kind: Literal["tool_call"] = "tool_call"
    call: ToolCall


class ErrorNotice(BaseModel):
    kind: Literal["error"] = "error"
    message: str


class StreamDone(BaseModel):
    kind: Literal["done"] = "done"


StreamEvent = Union[TextToken, ThinkingFragment, ToolCallFragment, ErrorNotice, StreamDone]


def _partial_tag_length(text: str, tag: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``tag``."""
    for size in range(min(len(text), len(tag) - 1), 0, -1):
        if text.endswith(tag[:size]):
            return size
    return 0


class ThinkTagSplitter:
    """Routes content text to answer or reasoning around inline think tags.

    State survives across calls, so a tag split over two chunks is still
    recognised: the possible tag prefix at the end of one chunk is held back
    until the next chunk (or ``flush``) settles it.
    """

    def __init__(self):
        self.inside_thinking = False
        self._held = ""

    def feed(self, text: str) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        text = self._held + text
        self._held = ""

        while text:
            tag = THINK_CLOSE if self.inside_thinking else THINK_OPEN
            index = text.find(tag)
            if index >= 0:
                self._emit(text[:index], events)
                self.inside_thinking = not self.inside_thinking
                text = text[index + len(tag):]
                continue

            held = _partial_tag_length(text, tag)
            self._emit(text[:len(text) - held], events)
            self._held = text[len(text) - held:]
            break

        return events

    def flush(self) -> List[StreamEvent]:
        """Release held-back text in the current state."""
        events: List[StreamEvent] = []
        held, self._held = self._held, ""
        self._emit(held, events)
        return events

    def _emit(self, text: str, events: List[StreamEvent]) -> None:
        if not text:
            return
        if self.inside_thinking:
            events.append(ThinkingFragment(text=text))
        else:
            events.append(TextToken(text=text))


class StreamDecoder:
    """Turns raw response bytes into an ordered list of stream events.

    Bytes are buffered and split on newlines before decoding, so a multi-byte
    character cut across two network chunks is reassembled intact. A line that
    is not a JSON object is skipped: protocol noise never aborts the stream.
    """

    def __init__(self):
        self._buffer = b""
        self._splitter = ThinkTagSplitter()
        self.done = False

    @property
    def inside_thinking(self) -> bool:
        return self._splitter.inside_thinking

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        """Decode every complete line now present in the buffer."""
        events: List[StreamEvent] = []
        self._buffer += chunk
        while b"\n" in self._buffer:
            line, self._buffer = self._buffer.split(b"\n", 1)
            events.extend(self._decode_line(line))
        return events

    def finish(self) -> List[StreamEvent]:
        """Decode any unterminated trailing line and close the stream."""
        events: List[StreamEvent] = []
        if self._buffer:
            line, self._buffer = self._buffer, b""
            events.extend(self._decode_line(line))
        if not self.done:
            events.extend(self._splitter.flush())
            events.append(StreamDone())
            self.done = True
        return events

    def _decode_line(self, line: bytes) -> List[StreamEvent]:
        if not line.strip():
            return []

        try:
            data = json.loads(line)
        except ValueError:
            logger.debug("Skipping malformed stream line: %r", line[:200])
            return []
        if not isinstance(data, dict):
            logger.debug("Skipping non-object stream line: %r", line[:200])
            return []

        events: List[StreamEvent] = []

        error = data.get("error")
        if error:
            events.append(ErrorNotice(message=str(error)))

        message = data.get("message")
        if isinstance(message, dict):
            events.extend(self._decode_message(message))

        if data.get("done") and not self.done:
            events.extend(self._splitter.flush())
            events.append(StreamDone())
            self.done = True

        return events

    def _decode_message(self, message: Dict[str, Any]) -> List[StreamEvent]:
        events: List[StreamEvent] = []

        reasoning = _first_present(message, REASONING_FIELDS)
        if reasoning:
            events.append(ThinkingFragment(text=reasoning))

        content = message.get("content")
        if isinstance(content, str) and content:
            events.extend(self._splitter.feed(content))

        for fragment in message.get("tool_calls") or []:
            if isinstance(fragment, dict):
                events.append(ToolCallFragment(call=ToolCall.from_backend(fragment)))

        return events


def _first_present(message: Dict[str, Any], fields) -> Optional[str]:
    for field in fields:
        value = message.get(field)
        if value is not None:
            return str(value)
    return None
