"""
Chat Module

Conversation state machine, stream assembly and console front end.
"""

from .console import Console
from .conversation import CompletionProvider, ConversationStateMachine
from .models import (
    ConversationState,
    ExitReason,
    FinalChunk,
    ReasoningChunk,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    ToolDefinition,
    TurnOutcome,
)
from .streaming_handler import StreamAssembler
from .tool_results import FileToolResultSource, ToolResultSource, parse_tool_result

__all__ = [
    "CompletionProvider",
    "Console",
    "ConversationState",
    "ConversationStateMachine",
    "ExitReason",
    "FileToolResultSource",
    "FinalChunk",
    "ReasoningChunk",
    "StreamAssembler",
    "StreamChunk",
    "TextChunk",
    "ToolCallChunk",
    "ToolDefinition",
    "ToolResultSource",
    "TurnOutcome",
    "parse_tool_result",
]
