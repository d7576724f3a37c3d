"""
Tool Result Source

Tools are never executed by this program. When the model requests a tool the
process stops; a human or another agent runs the tool and leaves the result
in a companion file (or passes it with --tool-result) before the next start.
This module reads that result back for the pending call.

A result file only ever answers the call that is pending when it is read:
leftover files are discarded whenever no call is pending, and a result
record that names a different call_id is rejected.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Protocol

from pydantic import BaseModel, TypeAdapter, ValidationError

from resumechat.chat.logging_utils import log_tool_arguments
from resumechat.errors import StorageUnavailable, ToolResultUnavailable
from resumechat.history import PendingCall, ResultContent, TextContent

logger = logging.getLogger(__name__)

_content_adapter: TypeAdapter[list[ResultContent]] = TypeAdapter(list[ResultContent])


class ToolResultRecord(BaseModel):
    """A result addressed to one call: ``{"call_id": ..., "content": ...}``."""

    call_id: str
    content: list[ResultContent] | str


def parse_tool_result(raw: str, call: PendingCall | None = None) -> tuple[ResultContent, ...]:
    """
    Turn operator-supplied result text into result content items.

    - A JSON object ``{"call_id": ..., "content": ...}`` is a result record;
      its call_id must match ``call`` and its content may be a string or a
      list of content items.
    - A JSON array of content items (``[{"type": "text", "text": "..."}]``)
      is used as-is.
    - Anything else is taken verbatim as a single text item.

    Raises:
        ToolResultUnavailable: If a result record names a different call.
    """
    stripped = raw.strip()
    if stripped.startswith("{"):
        try:
            record = ToolResultRecord.model_validate_json(stripped)
        except ValidationError:
            logger.debug("Tool result is not a result record, using it as plain text")
        else:
            if call is not None and record.call_id != call.call_id:
                raise ToolResultUnavailable(
                    f"Tool result is for call {record.call_id}, but the pending call is "
                    f"{call.function_name} ({call.call_id})"
                )
            if isinstance(record.content, str):
                return (TextContent(text=record.content),)
            if record.content:
                return tuple(record.content)
            return (TextContent(text=""),)

    if stripped.startswith("["):
        try:
            items = _content_adapter.validate_json(stripped)
        except ValidationError:
            logger.debug("Tool result is not a content array, using it as plain text")
        else:
            if items:
                return tuple(items)
    return (TextContent(text=raw.rstrip("\n")),)


class ToolResultSource(Protocol):
    async def fetch(self, call: PendingCall) -> tuple[ResultContent, ...]:
        """
        Return the externally produced result for ``call``.

        Raises:
            ToolResultUnavailable: If no result for this call has been supplied.
        """
        ...

    async def consume(self) -> None:
        """Retire the supplied result once it is in the transcript."""
        ...

    async def discard(self) -> None:
        """Drop any supplied result while no call is pending."""
        ...


class FileToolResultSource(ToolResultSource):
    """Reads the result from a companion file, or from an inline override."""

    def __init__(self, path: str = "tool_result.txt", inline_result: str | None = None):
        self.path = path
        self.inline_result = inline_result

    def _read_sync(self) -> str | None:
        try:
            with open(self.path, encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageUnavailable(f"Cannot read tool result {self.path}: {e}") from e

    def _remove_sync(self) -> bool:
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageUnavailable(f"Cannot remove tool result {self.path}: {e}") from e
        return True

    async def fetch(self, call: PendingCall) -> tuple[ResultContent, ...]:
        log_tool_arguments(call.function_name, call.arguments, "resuming")

        if self.inline_result is not None:
            logger.info("Using tool result supplied on the command line for %s", call.call_id)
            return parse_tool_result(self.inline_result, call)

        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, self._read_sync)
        if raw is None:
            raise ToolResultUnavailable(
                f"No result for tool call {call.function_name} ({call.call_id}). "
                f"Write it to {self.path} or pass --tool-result, then run again."
            )

        logger.info("Loaded tool result for %s from %s (%d chars)", call.call_id, self.path, len(raw))
        return parse_tool_result(raw, call)

    async def consume(self) -> None:
        self.inline_result = None
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._remove_sync)

    async def discard(self) -> None:
        if self.inline_result is not None:
            logger.warning("Ignoring --tool-result: no tool call is pending")
            self.inline_result = None
        loop = asyncio.get_running_loop()
        if await loop.run_in_executor(None, self._remove_sync):
            logger.warning("Discarded leftover tool result %s: no tool call is pending", self.path)
