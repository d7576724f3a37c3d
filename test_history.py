#!/usr/bin/env python3
"""
Tests for transcript persistence and the pending tool call sidecar.

Covers the JSONL append/load contract (order, fail-fast on malformed lines,
first run without a file) and the single-slot sidecar lifecycle.
"""

import json
import os
import sys

import pytest

from resumechat.errors import CorruptHistory, StorageUnavailable
from resumechat.history import (
    AssistantText,
    AssistantToolCall,
    InMemoryPendingCallStore,
    InMemoryTranscriptRepo,
    JsonlTranscriptRepo,
    PendingCall,
    PendingCallSidecar,
    TextContent,
    UserText,
    UserToolResult,
    create_repository,
)


def _sample_conversation():
    return [
        UserText(text="What's the weather in Paris?"),
        AssistantText(text="Let me check."),
        AssistantToolCall(
            id="call_abc",
            call_id="call_abc",
            function_name="get_weather",
            arguments={"location": "Paris"},
        ),
        UserToolResult(call_id="call_abc", result_id="call_abc", content=(TextContent(text="18C, cloudy"),)),
        AssistantText(text="It is 18C and cloudy in Paris."),
    ]


# ---------- JSONL transcript ----------


async def test_load_missing_file_starts_empty(tmp_path):
    """A first run has no transcript file and must load as empty."""
    repo = JsonlTranscriptRepo(str(tmp_path / "conversation_log.jsonl"))

    assert await repo.load() == []
    assert not (tmp_path / "conversation_log.jsonl").exists()


async def test_append_then_load_preserves_order(tmp_path):
    """Loading returns every appended message, in append order."""
    path = tmp_path / "conversation_log.jsonl"
    repo = JsonlTranscriptRepo(str(path))
    messages = _sample_conversation()

    for message in messages:
        await repo.append(message)

    assert await repo.load() == messages
    # A fresh instance sees the same transcript
    assert await JsonlTranscriptRepo(str(path)).load() == messages


async def test_one_message_per_line(tmp_path):
    """Each append adds exactly one newline-terminated JSON line."""
    path = tmp_path / "conversation_log.jsonl"
    repo = JsonlTranscriptRepo(str(path))

    await repo.append(UserText(text="first\nline with a newline"))
    await repo.append(AssistantText(text="second"))

    raw = path.read_text(encoding="utf-8")
    assert raw.endswith("\n")
    lines = raw.splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0]) == {"kind": "user_text", "text": "first\nline with a newline"}
    assert json.loads(lines[1])["kind"] == "assistant_text"


async def test_blank_lines_are_skipped(tmp_path):
    path = tmp_path / "conversation_log.jsonl"
    path.write_text('{"kind": "user_text", "text": "hi"}\n\n   \n{"kind": "assistant_text", "text": "hello"}\n')

    messages = await JsonlTranscriptRepo(str(path)).load()

    assert messages == [UserText(text="hi"), AssistantText(text="hello")]


async def test_malformed_line_fails_whole_load(tmp_path):
    """A bad line aborts loading; no partial transcript is returned."""
    path = tmp_path / "conversation_log.jsonl"
    path.write_text(
        '{"kind": "user_text", "text": "hi"}\n'
        '{"kind": "assistant_text", "text": \n'
        '{"kind": "assistant_text", "text": "hello"}\n'
    )
    repo = JsonlTranscriptRepo(str(path))

    with pytest.raises(CorruptHistory) as exc_info:
        await repo.load()

    assert exc_info.value.line_number == 2
    assert exc_info.value.path == str(path)
    assert f"{path}:2:" in str(exc_info.value)


async def test_unknown_kind_is_corrupt(tmp_path):
    path = tmp_path / "conversation_log.jsonl"
    path.write_text('{"kind": "system_note", "text": "hi"}\n')

    with pytest.raises(CorruptHistory):
        await JsonlTranscriptRepo(str(path)).load()


async def test_append_fsyncs_before_returning(tmp_path, monkeypatch):
    """The appended line is forced to disk before append returns."""
    synced = []
    real_fsync = os.fsync

    def recording_fsync(fd):
        synced.append(fd)
        real_fsync(fd)

    monkeypatch.setattr("resumechat.history.jsonl_repo.os.fsync", recording_fsync)
    repo = JsonlTranscriptRepo(str(tmp_path / "conversation_log.jsonl"))

    await repo.append(UserText(text="durable"))

    assert len(synced) == 1


async def test_append_to_unwritable_location_is_storage_error(tmp_path):
    repo = JsonlTranscriptRepo(str(tmp_path / "missing_dir" / "conversation_log.jsonl"))

    with pytest.raises(StorageUnavailable):
        await repo.append(UserText(text="hi"))


# ---------- Pending call sidecar ----------


async def test_sidecar_record_load_clear(tmp_path):
    path = tmp_path / "tool_call.json"
    sidecar = PendingCallSidecar(str(path))
    call = PendingCall(id="call_1", call_id="call_1", function_name="get_weather", arguments={"location": "Oslo"})

    assert await sidecar.load() is None

    await sidecar.record(call)
    assert path.exists()
    assert await sidecar.load() == call

    await sidecar.clear()
    assert not path.exists()
    assert await sidecar.load() is None


async def test_sidecar_record_replaces_previous_call(tmp_path):
    """The sidecar holds a single slot."""
    sidecar = PendingCallSidecar(str(tmp_path / "tool_call.json"))
    first = PendingCall(id="a", call_id="a", function_name="get_weather", arguments={"location": "Rome"})
    second = PendingCall(id="b", call_id="b", function_name="get_weather", arguments={"location": "Lima"})

    await sidecar.record(first)
    await sidecar.record(second)

    assert await sidecar.load() == second
    # No temp files are left behind by the atomic write
    assert sorted(p.name for p in tmp_path.iterdir()) == ["tool_call.json"]


async def test_sidecar_clear_without_file_is_noop(tmp_path):
    sidecar = PendingCallSidecar(str(tmp_path / "tool_call.json"))

    await sidecar.clear()

    assert await sidecar.load() is None


async def test_unreadable_sidecar_loads_as_missing(tmp_path):
    path = tmp_path / "tool_call.json"
    path.write_text("{not json")

    assert await PendingCallSidecar(str(path)).load() is None


def test_pending_call_matches_transcript_entry():
    message = AssistantToolCall(id="x", call_id="x", function_name="get_weather", arguments={"location": "Oslo"})
    call = PendingCall.from_message(message)

    assert call.matches(message)
    assert (call.id, call.function_name, call.arguments) == ("x", "get_weather", {"location": "Oslo"})
    assert not call.matches(message.model_copy(update={"arguments": {"location": "Bergen"}}))


# ---------- In-memory stores and factory ----------


async def test_memory_repo_load_returns_copy():
    repo = InMemoryTranscriptRepo()
    await repo.append(UserText(text="hi"))

    loaded = await repo.load()
    loaded.append(AssistantText(text="not persisted"))

    assert await repo.load() == [UserText(text="hi")]


async def test_memory_pending_store_lifecycle():
    store = InMemoryPendingCallStore()
    call = PendingCall(id="a", call_id="a", function_name="f", arguments={})

    await store.record(call)
    assert await store.load() == call
    await store.clear()
    assert await store.load() is None


def test_factory_builds_file_backed_stores(tmp_path):
    storage = {
        "transcript_path": str(tmp_path / "log.jsonl"),
        "pending_call_path": str(tmp_path / "call.json"),
    }

    repo, sidecar = create_repository(storage)

    assert isinstance(repo, JsonlTranscriptRepo)
    assert repo.path == storage["transcript_path"]
    assert isinstance(sidecar, PendingCallSidecar)
    assert sidecar.path == storage["pending_call_path"]


def test_factory_ephemeral_uses_memory():
    repo, sidecar = create_repository({}, ephemeral=True)

    assert isinstance(repo, InMemoryTranscriptRepo)
    assert isinstance(sidecar, InMemoryPendingCallStore)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
