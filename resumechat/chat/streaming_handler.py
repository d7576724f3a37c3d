"""
Streaming Response Assembler

Folds the chunk stream of one turn into discrete transcript entries:
- Text chunks become assistant text messages as soon as they arrive
- A tool call chunk is recorded in the pending call sidecar, emitted, and
  ends the turn without reading any further chunks
- The final marker settles the turn without emitting anything

This is the most fragile part of the conversation loop. An unhandled chunk
kind fails loudly instead of being dropped, since dropping it would leave the
transcript silently out of step with what the model produced.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator

from resumechat.chat.logging_utils import log_turn_summary
from resumechat.chat.models import (
    AssemblerState,
    FinalChunk,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    TurnOutcome,
)
from resumechat.errors import UnsupportedChunk
from resumechat.history import AssistantText, AssistantToolCall, Message, PendingCall
from resumechat.history.repository import PendingCallStore

logger = logging.getLogger(__name__)


class StreamAssembler:
    """Turns one turn's chunk stream into transcript messages."""

    def __init__(self, sidecar: PendingCallStore):
        self.sidecar = sidecar
        self.state = AssemblerState.ACCUMULATING
        self.interrupted = False
        self.finish_reason: str | None = None
        self._text_chunks = 0

    @property
    def outcome(self) -> TurnOutcome:
        """How the turn ended. Only meaningful once settled."""
        if self.state is not AssemblerState.SETTLED:
            raise RuntimeError("Turn has not settled yet")
        return TurnOutcome.TOOL_CALL if self.interrupted else TurnOutcome.COMPLETED

    async def assemble(self, chunks: AsyncIterator[StreamChunk]) -> AsyncGenerator[Message]:
        """
        Yield one message per content-bearing chunk, in stream order.

        The consumer is expected to durably append each yielded message before
        asking for the next one. When a tool call is yielded, the generator
        returns as soon as it is resumed, so the tool call is always the last
        message of the turn.

        Raises:
            UnsupportedChunk: For any chunk kind other than text, tool call
                or final.
        """
        if self.state is not AssemblerState.ACCUMULATING:
            raise RuntimeError("StreamAssembler instances handle exactly one turn")

        async for chunk in chunks:
            match chunk:
                case TextChunk():
                    self._text_chunks += 1
                    logger.debug("← LLM: text chunk, length=%d", len(chunk.text))
                    yield AssistantText(text=chunk.text)

                case ToolCallChunk():
                    message = AssistantToolCall(
                        id=chunk.id,
                        call_id=chunk.call_id,
                        function_name=chunk.function_name,
                        arguments=chunk.arguments,
                    )
                    # The sidecar is written before the transcript entry.
                    await self.sidecar.record(PendingCall.from_message(message))
                    self.interrupted = True
                    self.state = AssemblerState.SETTLED
                    logger.info("← LLM: tool call %s(%s), ending turn", chunk.function_name, chunk.call_id)
                    yield message
                    self._log_summary()
                    return

                case FinalChunk():
                    self.finish_reason = chunk.finish_reason
                    self.state = AssemblerState.SETTLED
                    self._log_summary()
                    return

                case _:
                    raise UnsupportedChunk(f"Unsupported stream chunk: {type(chunk).__name__}")

        logger.warning("Stream ended without a final marker; treating the turn as complete")
        self.state = AssemblerState.SETTLED
        self._log_summary()

    def _log_summary(self) -> None:
        log_turn_summary(
            text_chunks=self._text_chunks,
            outcome=self.outcome.value,
            finish_reason=self.finish_reason,
        )
