"""
Chat Data Models

Data structures for one conversation turn: the provider-neutral stream chunks
the assembler consumes, tool definitions sent with every request, the raw
streaming delta shapes of the OpenAI-compatible API, and turn/state enums.
All strongly typed with Pydantic for validation and type safety.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

# ==============================================================================
# STREAM CHUNKS (provider-neutral)
# ==============================================================================


class TextChunk(BaseModel):
    """Incremental assistant text."""

    type: Literal["text"] = "text"
    text: str


class ToolCallChunk(BaseModel):
    """A fully assembled tool call."""

    type: Literal["tool_call"] = "tool_call"
    id: str
    call_id: str
    function_name: str
    arguments: Any = Field(default_factory=dict)


class FinalChunk(BaseModel):
    """End-of-turn marker."""

    type: Literal["final"] = "final"
    finish_reason: str | None = None
    usage: dict[str, Any] | None = None


class ReasoningChunk(BaseModel):
    """Reasoning tokens streamed by some providers. Not part of the transcript."""

    type: Literal["reasoning"] = "reasoning"
    text: str


StreamChunk = TextChunk | ToolCallChunk | FinalChunk | ReasoningChunk


# ==============================================================================
# TOOL DEFINITIONS AND SCHEMAS
# ==============================================================================


class ToolFunctionParameters(BaseModel):
    """Function parameters schema for tools."""

    type: Literal["object"] = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


class ToolFunctionDefinition(BaseModel):
    """Tool function definition."""

    name: str
    description: str
    parameters: ToolFunctionParameters = Field(default_factory=ToolFunctionParameters)


class ToolDefinition(BaseModel):
    """Complete tool definition for the OpenAI-compatible API."""

    type: Literal["function"] = "function"
    function: ToolFunctionDefinition


# ==============================================================================
# STREAMING DELTAS (OpenAI-compatible wire format)
# ==============================================================================


class FunctionCallDelta(BaseModel):
    """Partial function call data in streaming response."""

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """Partial tool call data in streaming response."""

    index: int | None = None
    id: str | None = None
    type: Literal["function"] | None = None
    function: FunctionCallDelta | None = None


# ==============================================================================
# TURN STATE
# ==============================================================================


class AssemblerState(str, Enum):
    ACCUMULATING = "accumulating"
    SETTLED = "settled"


class TurnOutcome(str, Enum):
    """How a streamed turn ended."""

    COMPLETED = "completed"
    TOOL_CALL = "tool_call"


class ConversationState(str, Enum):
    RESUMING = "resuming"
    AWAITING_INPUT = "awaiting_input"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    ENDED = "ended"


class ExitReason(str, Enum):
    """Why the conversation loop stopped."""

    USER_EXIT = "user_exit"
    TOOL_CALL = "tool_call"
