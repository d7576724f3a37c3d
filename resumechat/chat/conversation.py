"""
Conversation State Machine

Main coordination layer for the resumable conversation. Each transition is
one explicit step:

    RESUMING -> AWAITING_INPUT | REQUESTING
    AWAITING_INPUT -> REQUESTING | ENDED
    REQUESTING -> STREAMING
    STREAMING -> AWAITING_INPUT | ENDED

A turn that ends in a tool call ends the process. The next invocation
re-enters RESUMING, folds the externally produced tool result into the
transcript and continues the turn without asking for user input.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Protocol

from resumechat.chat.console import Console
from resumechat.chat.logging_utils import log_directional_flow, log_performance
from resumechat.chat.models import (
    ConversationState,
    ExitReason,
    StreamChunk,
    ToolDefinition,
    TurnOutcome,
)
from resumechat.chat.streaming_handler import StreamAssembler
from resumechat.chat.tool_results import ToolResultSource
from resumechat.history import (
    AssistantText,
    AssistantToolCall,
    Message,
    PendingCall,
    UserText,
    UserToolResult,
    unanswered_tool_call,
)
from resumechat.history.repository import PendingCallStore, TranscriptRepository

logger = logging.getLogger(__name__)


class CompletionProvider(Protocol):
    def stream_completion(
        self,
        transcript: Sequence[Message],
        tools: Sequence[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]: ...


class ConversationStateMachine:
    """Drives turns between the user, the transcript and the completion provider."""

    def __init__(
        self,
        repo: TranscriptRepository,
        sidecar: PendingCallStore,
        llm: CompletionProvider,
        console: Console,
        tool_results: ToolResultSource,
        tools: Sequence[ToolDefinition] = (),
        system_prompt: str | None = None,
    ):
        self.repo = repo
        self.sidecar = sidecar
        self.llm = llm
        self.console = console
        self.tool_results = tool_results
        self.tools = list(tools)
        self.system_prompt = system_prompt

        self.state = ConversationState.RESUMING
        self.transcript: list[Message] = []
        self.exit_reason: ExitReason | None = None
        self._chunks: AsyncIterator[StreamChunk] | None = None

    async def start(self) -> ConversationState:
        """Load the transcript and settle any pending tool call."""
        if self.state is not ConversationState.RESUMING:
            raise RuntimeError(f"Conversation already started (state: {self.state.value})")
        await self._resume()
        return self.state

    async def run(self) -> ExitReason:
        """Step until the conversation ends and report why it ended."""
        if self.state is ConversationState.RESUMING:
            await self.start()
        while self.state is not ConversationState.ENDED:
            await self.step()
        if self.exit_reason is None:
            raise RuntimeError("Conversation ended without an exit reason")
        return self.exit_reason

    async def step(self) -> ConversationState:
        """Perform exactly one state transition and return the new state."""
        match self.state:
            case ConversationState.RESUMING:
                await self._resume()
            case ConversationState.AWAITING_INPUT:
                await self._await_input()
            case ConversationState.REQUESTING:
                await self._request()
            case ConversationState.STREAMING:
                await self._stream()
            case ConversationState.ENDED:
                pass
            case _:
                raise RuntimeError(f"Unknown conversation state: {self.state}")
        return self.state

    # ---------- transitions ----------

    async def _resume(self) -> None:
        self.transcript = await self.repo.load()
        logger.info("← Repository: loaded %d messages from %s", len(self.transcript), self.repo.describe())

        tool_call = unanswered_tool_call(self.transcript)
        if tool_call is None:
            stale = await self.sidecar.load()
            if stale is not None:
                logger.warning(
                    "Discarding stale pending call %s: transcript does not end with a tool call", stale.call_id
                )
                await self.sidecar.clear()
            await self.tool_results.discard()
            self.state = ConversationState.AWAITING_INPUT
            return

        call = await self._reconcile_pending_call(tool_call)
        self.console.notice(
            f"Resuming from last tool call: {call.function_name} "
            f"with arguments {json.dumps(call.arguments, ensure_ascii=False)}"
        )

        content = await self.tool_results.fetch(call)
        await self._append(UserToolResult(call_id=tool_call.call_id, result_id=tool_call.id, content=content))
        await self.sidecar.clear()
        await self.tool_results.consume()

        log_directional_flow("←", "Tool", "result for %s folded into transcript", tool_call.call_id)
        self.state = ConversationState.REQUESTING

    async def _reconcile_pending_call(self, tool_call: AssistantToolCall) -> PendingCall:
        """
        Make the sidecar agree with the transcript tail.

        The transcript is authoritative. A missing sidecar (crash between the
        two writes) or one describing a different call (left over from an
        aborted run) is rewritten from the transcript entry.
        """
        recorded = await self.sidecar.load()
        if recorded is not None and recorded.matches(tool_call):
            return recorded

        if recorded is None:
            logger.warning("Pending call sidecar missing, rebuilding it from the transcript (%s)", tool_call.call_id)
        else:
            logger.warning(
                "Pending call sidecar describes %s but the transcript ends with %s, rebuilding it",
                recorded.call_id,
                tool_call.call_id,
            )
        call = PendingCall.from_message(tool_call)
        await self.sidecar.record(call)
        return call

    async def _await_input(self) -> None:
        line = await self.console.read_line()
        if line is None or not line.strip():
            logger.info("Blank input, ending conversation")
            self.exit_reason = ExitReason.USER_EXIT
            self.state = ConversationState.ENDED
            return

        await self._append(UserText(text=line))
        self.state = ConversationState.REQUESTING

    async def _request(self) -> None:
        # A result supplied before the next tool call exists cannot answer it
        await self.tool_results.discard()
        log_directional_flow("→", "LLM", "requesting completion with %d messages", len(self.transcript))
        self._chunks = self.llm.stream_completion(list(self.transcript), self.tools, self.system_prompt)
        self.state = ConversationState.STREAMING

    async def _stream(self) -> None:
        if self._chunks is None:
            raise RuntimeError("No completion stream to consume")

        assembler = StreamAssembler(self.sidecar)
        async with log_performance("Streaming turn"):
            async with aclosing(self._chunks) as chunks, aclosing(assembler.assemble(chunks)) as messages:
                async for message in messages:
                    await self._append(message)
                    self._echo(message)
        self._chunks = None

        if assembler.outcome is TurnOutcome.TOOL_CALL:
            self.console.notice("\n--- Conversation ended due to tool call ---")
            self.exit_reason = ExitReason.TOOL_CALL
            self.state = ConversationState.ENDED
        else:
            self.state = ConversationState.AWAITING_INPUT

    # ---------- helpers ----------

    async def _append(self, message: Message) -> None:
        await self.repo.append(message)
        self.transcript.append(message)

    def _echo(self, message: Message) -> None:
        match message:
            case AssistantText():
                self.console.write_text(message.text)
            case AssistantToolCall():
                self.console.tool_call_notice(message.function_name, message.arguments)
            case _:
                raise TypeError(f"Unexpected streamed message: {type(message).__name__}")
