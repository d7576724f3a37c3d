#!/usr/bin/env python3
"""
Tests for the stream assembler: how one turn's chunks become transcript
entries and when the turn stops reading the stream.
"""

import sys

import pytest

from resumechat.chat import (
    FinalChunk,
    ReasoningChunk,
    StreamAssembler,
    TextChunk,
    ToolCallChunk,
    TurnOutcome,
)
from resumechat.chat.models import AssemblerState
from resumechat.errors import UnsupportedChunk
from resumechat.history import AssistantText, AssistantToolCall, InMemoryPendingCallStore, PendingCall


class RecordingStream:
    """Async chunk source that remembers how far it was consumed."""

    def __init__(self, chunks):
        self._chunks = list(chunks)
        self.consumed = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.consumed >= len(self._chunks):
            raise StopAsyncIteration
        chunk = self._chunks[self.consumed]
        self.consumed += 1
        return chunk


async def _collect(assembler, chunks):
    return [message async for message in assembler.assemble(chunks)]


async def test_text_chunks_become_separate_messages():
    """Two text chunks and a final marker produce exactly two assistant texts."""
    assembler = StreamAssembler(InMemoryPendingCallStore())
    stream = RecordingStream([TextChunk(text="Hel"), TextChunk(text="lo"), FinalChunk(finish_reason="stop")])

    messages = await _collect(assembler, stream)

    assert messages == [AssistantText(text="Hel"), AssistantText(text="lo")]
    assert assembler.state is AssemblerState.SETTLED
    assert assembler.outcome is TurnOutcome.COMPLETED
    assert assembler.finish_reason == "stop"


async def test_final_only_turn_emits_nothing():
    assembler = StreamAssembler(InMemoryPendingCallStore())

    messages = await _collect(assembler, RecordingStream([FinalChunk()]))

    assert messages == []
    assert assembler.outcome is TurnOutcome.COMPLETED


async def test_tool_call_records_sidecar_and_stops_reading():
    """Chunks after a tool call are never pulled from the stream."""
    sidecar = InMemoryPendingCallStore()
    assembler = StreamAssembler(sidecar)
    tool_chunk = ToolCallChunk(
        id="call_1", call_id="call_1", function_name="get_weather", arguments={"location": "Oslo"}
    )
    stream = RecordingStream(
        [
            TextChunk(text="Checking"),
            tool_chunk,
            TextChunk(text="never read"),
            FinalChunk(finish_reason="tool_calls"),
        ]
    )

    messages = await _collect(assembler, stream)

    expected_call = AssistantToolCall(
        id="call_1", call_id="call_1", function_name="get_weather", arguments={"location": "Oslo"}
    )
    assert messages == [AssistantText(text="Checking"), expected_call]
    assert stream.consumed == 2
    assert assembler.interrupted
    assert assembler.outcome is TurnOutcome.TOOL_CALL
    assert await sidecar.load() == PendingCall.from_message(expected_call)


async def test_sidecar_is_written_before_tool_call_is_yielded():
    sidecar = InMemoryPendingCallStore()
    assembler = StreamAssembler(sidecar)
    stream = RecordingStream([ToolCallChunk(id="c", call_id="c", function_name="f", arguments={})])

    async for message in assembler.assemble(stream):
        assert isinstance(message, AssistantToolCall)
        assert (await sidecar.load()).call_id == "c"


async def test_stream_without_final_marker_settles():
    assembler = StreamAssembler(InMemoryPendingCallStore())

    messages = await _collect(assembler, RecordingStream([TextChunk(text="partial")]))

    assert messages == [AssistantText(text="partial")]
    assert assembler.outcome is TurnOutcome.COMPLETED
    assert assembler.finish_reason is None


async def test_reasoning_chunk_is_rejected():
    """Chunk kinds without a transcript mapping fail loudly."""
    assembler = StreamAssembler(InMemoryPendingCallStore())
    stream = RecordingStream([TextChunk(text="a"), ReasoningChunk(text="thinking"), FinalChunk()])

    with pytest.raises(UnsupportedChunk):
        await _collect(assembler, stream)


async def test_outcome_before_settling_is_an_error():
    assembler = StreamAssembler(InMemoryPendingCallStore())

    with pytest.raises(RuntimeError):
        _ = assembler.outcome


async def test_assembler_handles_one_turn_only():
    assembler = StreamAssembler(InMemoryPendingCallStore())
    await _collect(assembler, RecordingStream([FinalChunk()]))

    with pytest.raises(RuntimeError):
        await _collect(assembler, RecordingStream([FinalChunk()]))


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
