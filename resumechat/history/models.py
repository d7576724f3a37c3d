#!/usr/bin/env python3
"""
Transcript Data Models

This module contains the Pydantic models for the conversation transcript:
the closed set of message variants, tool-result content items and the
pending tool call record, plus their one-line JSON serialization.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from resumechat.errors import CorruptHistory

# ---------- Tool result content ----------


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    data: str  # base64
    media_type: str | None = None


ResultContent = Annotated[TextContent | ImageContent, Field(discriminator="type")]


# ---------- Message variants ----------


class UserText(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["user_text"] = "user_text"
    text: str


class UserToolResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["user_tool_result"] = "user_tool_result"
    call_id: str
    result_id: str
    content: tuple[ResultContent, ...]

    def text(self) -> str:
        """Flatten the result content into plain text for the provider."""
        parts: list[str] = []
        for item in self.content:
            match item:
                case TextContent():
                    parts.append(item.text)
                case ImageContent():
                    parts.append(f"[image: {item.media_type or 'unknown type'}]")
                case _:
                    raise TypeError(f"Unknown result content: {type(item).__name__}")
        return "\n".join(parts)


class AssistantText(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["assistant_text"] = "assistant_text"
    text: str


class AssistantToolCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["assistant_tool_call"] = "assistant_tool_call"
    id: str
    call_id: str
    function_name: str
    arguments: Any = Field(default_factory=dict)


Message = Annotated[
    UserText | UserToolResult | AssistantText | AssistantToolCall,
    Field(discriminator="kind"),
]

_message_adapter: TypeAdapter[Message] = TypeAdapter(Message)


# ---------- Pending tool call ----------


class PendingCall(BaseModel):
    """The single tool call awaiting an externally produced result."""

    id: str
    call_id: str
    function_name: str
    arguments: Any = Field(default_factory=dict)

    @classmethod
    def from_message(cls, message: AssistantToolCall) -> PendingCall:
        return cls(
            id=message.id,
            call_id=message.call_id,
            function_name=message.function_name,
            arguments=message.arguments,
        )

    def matches(self, message: AssistantToolCall) -> bool:
        """True when this record describes exactly the given transcript entry."""
        return (
            self.call_id == message.call_id
            and self.id == message.id
            and self.function_name == message.function_name
            and self.arguments == message.arguments
        )


# ---------- Serialization ----------


def serialize_message(message: Message) -> str:
    """Serialize a message to a single JSON line (without the trailing newline)."""
    return _message_adapter.dump_json(message).decode("utf-8")


def deserialize_message(line: str) -> Message:
    """
    Parse one transcript line.

    Raises:
        CorruptHistory: If the line is not a well-formed message.
    """
    try:
        return _message_adapter.validate_json(line)
    except ValidationError as e:
        raise CorruptHistory(f"Malformed transcript line: {e.errors(include_url=False)}") from e


def unanswered_tool_call(transcript: list[Message]) -> AssistantToolCall | None:
    """Return the trailing tool call if the transcript ends with one."""
    if transcript and isinstance(transcript[-1], AssistantToolCall):
        return transcript[-1]
    return None
