"""
Streaming LLM HTTP client for OpenAI-compatible chat completion endpoints.

Turns the transcript into a chat completion request and the server-sent event
stream of the response into provider-neutral stream chunks: text immediately,
tool calls once their arguments are complete, and a final marker.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import AsyncGenerator, Sequence
from typing import Any, cast

import httpx
from pydantic import ValidationError

from resumechat.chat.models import (
    FinalChunk,
    ReasoningChunk,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    ToolCallDelta,
    ToolDefinition,
)
from resumechat.config import Configuration
from resumechat.errors import ProviderFailure
from resumechat.history import (
    AssistantText,
    AssistantToolCall,
    Message,
    UserText,
    UserToolResult,
)

logger = logging.getLogger(__name__)

# Provider config keys that configure the client rather than the request body
_NON_PAYLOAD_KEYS = {"base_url", "model", "emit_reasoning", "api_key_env"}

_REASONING_FIELDS = ("reasoning", "reasoning_content")


def to_api_messages(transcript: Sequence[Message], system_prompt: str | None = None) -> list[dict[str, Any]]:
    """
    Convert the transcript into OpenAI chat messages, in order.

    The transcript stores each streamed text chunk as its own entry. Adjacent
    assistant entries are folded back into one assistant message: consecutive
    texts are concatenated and a tool call that follows them is attached to
    the same message, as the provider originally sent it.
    """
    api_messages: list[dict[str, Any]] = []
    if system_prompt:
        api_messages.append({"role": "system", "content": system_prompt})

    for message in transcript:
        previous = api_messages[-1] if api_messages else None
        open_assistant = previous is not None and previous["role"] == "assistant" and "tool_calls" not in previous

        match message:
            case UserText():
                api_messages.append({"role": "user", "content": message.text})
            case UserToolResult():
                api_messages.append({"role": "tool", "tool_call_id": message.call_id, "content": message.text()})
            case AssistantText():
                if open_assistant:
                    previous["content"] += message.text
                else:
                    api_messages.append({"role": "assistant", "content": message.text})
            case AssistantToolCall():
                tool_call = {
                    "id": message.call_id,
                    "type": "function",
                    "function": {
                        "name": message.function_name,
                        "arguments": json.dumps(message.arguments, ensure_ascii=False),
                    },
                }
                if open_assistant:
                    previous["tool_calls"] = [tool_call]
                else:
                    api_messages.append({"role": "assistant", "content": None, "tool_calls": [tool_call]})
            case _:
                raise TypeError(f"Unknown transcript message: {type(message).__name__}")

    return api_messages


class LLMClient:
    """Streaming chat completion client built on httpx."""

    def __init__(
        self,
        configuration: Configuration,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.configuration: Configuration = configuration
        self._current_config: dict[str, Any] = configuration.get_llm_config()
        self._current_provider: str = self._detect_provider(self._current_config.get("base_url", ""))

        # Cache connection pool configuration for performance
        self._connection_pool_config = configuration.get_connection_pool_config()
        self._connection_logging_config = configuration.get_connection_logging_config()

        api_key = configuration.llm_api_key

        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=self._current_config["base_url"],
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=self._connection_pool_config["request_timeout_seconds"],
            http2=True,
            limits=httpx.Limits(
                max_connections=self._connection_pool_config["max_connections"],
                max_keepalive_connections=self._connection_pool_config["max_keepalive_connections"],
                keepalive_expiry=self._connection_pool_config["keepalive_expiry_seconds"],
            ),
            transport=transport,
            trust_env=False,
        )

        self._log_connection_event(
            "client_initialized",
            {
                "provider": self._current_provider,
                "model": self._current_config.get("model", "unknown"),
                "timeout": self._connection_pool_config["request_timeout_seconds"],
            },
        )
        logger.info("LLM client initialized with provider: %s", self._current_provider)
        logger.info("Model: %s", self._current_config.get("model", "unknown"))

    @property
    def config(self) -> dict[str, Any]:
        """Get current LLM configuration (cached, no I/O)."""
        return self._current_config

    @property
    def provider(self) -> str:
        return self._current_provider

    def _detect_provider(self, base_url: str) -> str:
        """Detect provider from base URL for logging and provider-specific handling."""
        if "openai.com" in base_url:
            return "openai"
        if "groq.com" in base_url:
            return "groq"
        if "openrouter.ai" in base_url:
            return "openrouter"
        if "generativelanguage.googleapis.com" in base_url:
            return "gemini"
        return "unknown"

    def _log_connection_event(self, event_type: str, details: dict[str, Any]) -> None:
        """Log a connection event if logging is enabled."""
        if not (self._connection_logging_config["enabled"] and self._connection_logging_config["connection_events"]):
            return

        logger.info("Connection %s: %s", event_type, details)

    def _log_http_request(
        self,
        method: str,
        url: str,
        status_code: int | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log HTTP request details if logging is enabled."""
        if not (self._connection_logging_config["enabled"] and self._connection_logging_config["http_requests"]):
            return

        message_parts = [f"HTTP {method} {url}"]
        if status_code is not None:
            message_parts.append(f"Status: {status_code}")
        if duration_ms is not None:
            message_parts.append(f"Duration: {duration_ms:.2f}ms")

        logger.info(" | ".join(message_parts))

    def _build_payload(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """
        Build API payload by passing through all config parameters.
        This makes the client ready for any new parameters without code changes.
        """
        payload: dict[str, Any] = {
            "model": self.config["model"],
            "messages": messages,
            "stream": True,
        }

        for key, value in self.config.items():
            if key not in _NON_PAYLOAD_KEYS and value is not None:
                payload[key] = value

        if tools:
            payload["tools"] = tools
        else:
            payload.pop("parallel_tool_calls", None)
            payload.pop("tool_choice", None)

        return {k: v for k, v in payload.items() if v is not None}

    async def stream_completion(
        self,
        transcript: Sequence[Message],
        tools: Sequence[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncGenerator[StreamChunk]:
        """
        Issue one streaming completion request and yield stream chunks.

        Text deltas are yielded as they arrive. Tool call deltas are
        accumulated by index and yielded once the provider reports a finish
        reason (or the stream ends). A FinalChunk always closes a stream that
        was read to the end.

        Raises:
            ProviderFailure: On HTTP errors, a non-200 status, malformed
                chunks, malformed tool arguments, or an empty stream.
        """
        dict_tools = [tool.model_dump(exclude_none=True) for tool in tools] if tools else None
        payload = self._build_payload(to_api_messages(transcript, system_prompt), dict_tools)
        emit_reasoning = bool(self.config.get("emit_reasoning", False))

        self._log_connection_event("stream_started", {"provider": self._current_provider})
        start_time = time.monotonic()

        try:
            async with self.client.stream(
                "POST",
                "/chat/completions",
                json=payload,
                headers={"Accept": "text/event-stream", "Accept-Encoding": "identity"},
            ) as response:
                # FAIL FAST: Ensure streaming response is valid
                HTTP_OK = 200
                if response.status_code != HTTP_OK:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    self._log_http_request("POST", "/chat/completions", response.status_code)
                    raise ProviderFailure(
                        f"Streaming API error {response.status_code}: {error_text[:1000]}",
                        status_code=response.status_code,
                    )

                self._log_http_request(
                    "POST", "/chat/completions", response.status_code, (time.monotonic() - start_time) * 1000
                )

                content_type = response.headers.get("content-type", "")
                if "text/event-stream" not in content_type:
                    logger.warning("Unexpected content-type: %s, proceeding anyway", content_type)

                chunk_count = 0
                current_tool_calls: list[dict[str, Any]] = []
                finish_reason: str | None = None
                usage: dict[str, Any] | None = None
                tool_calls_flushed = False

                async for line in response.aiter_lines():
                    if not line.strip() or not line.startswith("data:"):
                        continue

                    data = line[5:].strip()
                    if data == "[DONE]":
                        break

                    try:
                        chunk = cast(dict[str, Any], json.loads(data))
                    except json.JSONDecodeError as e:
                        raise ProviderFailure(f"Invalid JSON in stream chunk: {e}") from e
                    chunk_count += 1

                    if chunk.get("error"):
                        raise ProviderFailure(f"Provider reported an error mid-stream: {chunk['error']}")

                    if chunk.get("usage"):
                        usage = chunk["usage"]

                    choices: list[dict[str, Any]] = chunk.get("choices") or []
                    if not choices:
                        continue

                    choice = choices[0]
                    delta: dict[str, Any] = choice.get("delta") or {}

                    if emit_reasoning:
                        for field in _REASONING_FIELDS:
                            if delta.get(field):
                                yield ReasoningChunk(text=delta[field])

                    content = delta.get("content")
                    if content:
                        yield TextChunk(text=content)

                    for tool_call_delta in delta.get("tool_calls") or []:
                        self._accumulate_tool_call_delta(
                            current_tool_calls, ToolCallDelta.model_validate(tool_call_delta)
                        )

                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]
                        if not tool_calls_flushed:
                            tool_calls_flushed = True
                            for tool_chunk in self._complete_tool_calls(current_tool_calls):
                                yield tool_chunk

                # FAIL FAST: Ensure we got at least some data
                if chunk_count == 0:
                    raise ProviderFailure("No streaming chunks received from API")

                if not tool_calls_flushed:
                    for tool_chunk in self._complete_tool_calls(current_tool_calls):
                        yield tool_chunk

                logger.info("← LLM: stream completed, chunks=%d, finish_reason=%s", chunk_count, finish_reason)
                yield FinalChunk(finish_reason=finish_reason, usage=usage)

        except httpx.HTTPError as e:
            logger.error("HTTP error during streaming: %s (%s)", e, type(e).__name__)
            raise ProviderFailure(f"HTTP error: {e!s}") from e
        except ValidationError as e:
            raise ProviderFailure(f"Malformed tool call delta in stream: {e}") from e
        finally:
            self._log_connection_event("stream_ended", {"provider": self._current_provider})

    def _accumulate_tool_call_delta(self, current_tool_calls: list[dict[str, Any]], delta: ToolCallDelta) -> None:
        """
        Accumulate tool call delta into the current tool calls list.

        This handles the incremental nature of streaming tool calls where
        each delta may contain partial information (id, function name, arguments)
        that needs to be accumulated into complete tool call objects.
        """
        index = delta.index if delta.index is not None else len(current_tool_calls)

        # Ensure we have enough slots in the list
        while len(current_tool_calls) <= index:
            current_tool_calls.append({"id": None, "function": {"name": None, "arguments": ""}})

        current_call = current_tool_calls[index]

        if delta.id:
            current_call["id"] = delta.id

        if delta.function is not None:
            if delta.function.name:
                current_call["function"]["name"] = delta.function.name
            if delta.function.arguments:
                # Accumulate arguments as they come in chunks
                current_call["function"]["arguments"] += delta.function.arguments

    def _complete_tool_calls(self, current_tool_calls: list[dict[str, Any]]) -> list[ToolCallChunk]:
        """Convert accumulated tool calls into chunks, skipping calls without a name."""
        chunks: list[ToolCallChunk] = []
        for call in current_tool_calls:
            name = call["function"]["name"]
            if not name:
                logger.warning("Dropping incomplete tool call without a function name: %s", call)
                continue

            raw_arguments = call["function"]["arguments"] or "{}"
            try:
                arguments = json.loads(raw_arguments)
            except json.JSONDecodeError as e:
                raise ProviderFailure(f"Malformed JSON arguments for tool {name}: {e}") from e

            call_id = call["id"] or f"call_{uuid.uuid4().hex[:24]}"
            chunks.append(ToolCallChunk(id=call_id, call_id=call_id, function_name=name, arguments=arguments))
        return chunks

    async def close(self) -> None:
        """Close the HTTP client."""
        self._log_connection_event("client_closing", {"provider": self._current_provider})
        await self.client.aclose()
        self._log_connection_event("client_closed", {"provider": self._current_provider})

    async def __aenter__(self) -> LLMClient:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close()
