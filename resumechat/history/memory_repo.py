#!/usr/bin/env python3
"""
In-Memory Transcript Repository Implementation

Session-only storage for the transcript.

CONFIG: --ephemeral
PURPOSE: Development/testing - all data lost on exit
FEATURES: No persistence, same contract as the JSONL store
"""

from __future__ import annotations

import logging

from .models import Message, PendingCall
from .repository import PendingCallStore, TranscriptRepository

logger = logging.getLogger(__name__)


class InMemoryTranscriptRepo(TranscriptRepository):
    """In-memory transcript - data lost on exit."""

    def __init__(self, messages: list[Message] | None = None):
        self._messages: list[Message] = list(messages or [])

    def describe(self) -> str:
        return "memory"

    async def load(self) -> list[Message]:
        return list(self._messages)

    async def append(self, message: Message) -> None:
        self._messages.append(message)


class InMemoryPendingCallStore(PendingCallStore):
    """In-memory pending call slot paired with InMemoryTranscriptRepo."""

    def __init__(self, call: PendingCall | None = None):
        self._call = call

    async def record(self, call: PendingCall) -> None:
        self._call = call

    async def load(self) -> PendingCall | None:
        return self._call

    async def clear(self) -> None:
        self._call = None
