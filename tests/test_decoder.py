"""
Tests for the streaming response decoder.
"""

import json

from agerus.llm.decoder import (
    ErrorNotice,
    StreamDecoder,
    StreamDone,
    TextToken,
    ThinkingFragment,
    ThinkTagSplitter,
    ToolCallFragment,
)
from conftest import ndjson


def content_line(text: str, done: bool = False) -> bytes:
    return ndjson({"message": {"role": "assistant", "content": text}, "done": done})


def texts(events, kind):
    return [e.text for e in events if isinstance(e, kind)]


class TestThinkTags:
    """Inline <think> tags split content into answer and reasoning."""

    def test_tag_split_across_chunks(self):
        """A tag cut between two content fragments is still recognised."""
        decoder = StreamDecoder()
        events = decoder.feed(content_line("<thi"))
        events += decoder.feed(content_line("nk>hello</think>world"))

        assert events == [ThinkingFragment(text="hello"), TextToken(text="world")]

    def test_thinking_state_persists_across_lines(self):
        decoder = StreamDecoder()
        events = decoder.feed(content_line("intro <think>abc"))
        assert decoder.inside_thinking
        events += decoder.feed(content_line("def</think> answer"))

        assert texts(events, TextToken) == ["intro ", " answer"]
        assert texts(events, ThinkingFragment) == ["abc", "def"]
        assert not decoder.inside_thinking

    def test_tags_never_emitted(self):
        decoder = StreamDecoder()
        events = decoder.feed(content_line("<think>x</think>y<think>z</think>"))
        events += decoder.finish()

        assert events == [
            ThinkingFragment(text="x"),
            TextToken(text="y"),
            ThinkingFragment(text="z"),
            StreamDone(),
        ]

    def test_held_prefix_released_at_done(self):
        """A possible tag start at the very end is emitted once the stream ends."""
        decoder = StreamDecoder()
        events = decoder.feed(content_line("a<thi"))
        assert events == [TextToken(text="a")]

        events = decoder.feed(ndjson({"done": True}))
        assert events == [TextToken(text="<thi"), StreamDone()]

    def test_false_alarm_prefix_is_not_lost(self):
        splitter = ThinkTagSplitter()
        events = splitter.feed("x <") + splitter.feed("b>bold")

        assert "".join(texts(events, TextToken)) == "x <b>bold"

    def test_close_tag_split_inside_thinking(self):
        splitter = ThinkTagSplitter()
        splitter.inside_thinking = True
        events = splitter.feed("deep</th") + splitter.feed("ink>out")

        assert events == [ThinkingFragment(text="deep"), TextToken(text="out")]


class TestReasoningFields:
    """Dedicated reasoning fields are read in a fixed order of preference."""

    def test_thinking_field_wins(self):
        decoder = StreamDecoder()
        line = ndjson({"message": {"thinking": "a", "reasoning_content": "b", "reasoning": "c", "content": ""}})

        assert decoder.feed(line) == [ThinkingFragment(text="a")]

    def test_reasoning_content_before_reasoning(self):
        decoder = StreamDecoder()
        line = ndjson({"message": {"reasoning_content": "b", "reasoning": "c"}})

        assert decoder.feed(line) == [ThinkingFragment(text="b")]

    def test_reasoning_fallback(self):
        decoder = StreamDecoder()

        assert decoder.feed(ndjson({"message": {"reasoning": "c"}})) == [ThinkingFragment(text="c")]

    def test_reasoning_emitted_before_content(self):
        decoder = StreamDecoder()
        events = decoder.feed(ndjson({"message": {"thinking": "plan", "content": "answer"}}))

        assert events == [ThinkingFragment(text="plan"), TextToken(text="answer")]


class TestFraming:
    """Line framing, malformed input and stream termination."""

    def test_malformed_lines_are_skipped(self):
        decoder = StreamDecoder()
        events = decoder.feed(b"not json at all\n[1, 2, 3]\n\n   \n")
        events += decoder.feed(content_line("fine"))

        assert events == [TextToken(text="fine")]

    def test_line_split_across_chunks(self):
        decoder = StreamDecoder()
        raw = content_line("split line")
        events = decoder.feed(raw[:10])
        assert events == []
        events += decoder.feed(raw[10:])

        assert events == [TextToken(text="split line")]

    def test_multibyte_character_split_across_chunks(self):
        decoder = StreamDecoder()
        raw = content_line("héllo wörld")
        cut = raw.index("é".encode("utf-8")) + 1

        events = decoder.feed(raw[:cut]) + decoder.feed(raw[cut:])

        assert events == [TextToken(text="héllo wörld")]

    def test_unterminated_trailing_line_decoded_by_finish(self):
        decoder = StreamDecoder()
        raw = json.dumps({"message": {"content": "tail"}}).encode("utf-8")

        assert decoder.feed(raw) == []
        assert decoder.finish() == [TextToken(text="tail"), StreamDone()]

    def test_exactly_one_done(self):
        decoder = StreamDecoder()
        events = decoder.feed(ndjson({"done": True}, {"done": True}))
        events += decoder.finish()

        assert sum(isinstance(e, StreamDone) for e in events) == 1
        assert decoder.done

    def test_finish_without_done_line_closes_stream(self):
        decoder = StreamDecoder()
        decoder.feed(content_line("partial"))

        assert decoder.finish() == [StreamDone()]


class TestErrorsAndToolCalls:
    """Error fields and tool call fragments."""

    def test_error_field_does_not_stop_stream(self):
        decoder = StreamDecoder()
        events = decoder.feed(ndjson({"error": "model overloaded"}))
        events += decoder.feed(content_line("still here"))

        assert events == [ErrorNotice(message="model overloaded"), TextToken(text="still here")]

    def test_tool_calls_in_order(self):
        decoder = StreamDecoder()
        line = ndjson({
            "message": {
                "content": "",
                "tool_calls": [
                    {"function": {"name": "run_command", "arguments": {"command": "ls"}}},
                    {"function": {"name": "filesystem", "arguments": '{"operation": "read", "path": "a.txt"}'}},
                ],
            }
        })

        events = decoder.feed(line)

        assert all(isinstance(e, ToolCallFragment) for e in events)
        assert [e.call.name for e in events] == ["run_command", "filesystem"]
        assert events[0].call.arguments == {"command": "ls"}
        assert events[1].call.arguments == {"operation": "read", "path": "a.txt"}

    def test_unparseable_string_arguments_kept_raw(self):
        decoder = StreamDecoder()
        line = ndjson({"message": {"tool_calls": [{"function": {"name": "x", "arguments": "{oops"}}]}})

        (event,) = decoder.feed(line)

        assert event.call.arguments == {"raw": "{oops"}
