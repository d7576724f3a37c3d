#!/usr/bin/env python3
"""
Transcript History Module

Durable transcript storage and the pending tool call sidecar.
"""

from __future__ import annotations

from .factory import create_repository
from .jsonl_repo import JsonlTranscriptRepo
from .memory_repo import InMemoryPendingCallStore, InMemoryTranscriptRepo
from .models import (
    AssistantText,
    AssistantToolCall,
    ImageContent,
    Message,
    PendingCall,
    ResultContent,
    TextContent,
    UserText,
    UserToolResult,
    deserialize_message,
    serialize_message,
    unanswered_tool_call,
)
from .pending_call import PendingCallSidecar
from .repository import PendingCallStore, TranscriptRepository

__all__ = [
    "AssistantText",
    "AssistantToolCall",
    "ImageContent",
    "InMemoryPendingCallStore",
    "InMemoryTranscriptRepo",
    "JsonlTranscriptRepo",
    "Message",
    "PendingCall",
    "PendingCallSidecar",
    "PendingCallStore",
    "ResultContent",
    "TextContent",
    "TranscriptRepository",
    "UserText",
    "UserToolResult",
    "create_repository",
    "deserialize_message",
    "serialize_message",
    "unanswered_tool_call",
]
