#!/usr/bin/env python3
"""
JSONL Transcript Repository Implementation

Append-only persistence: one transcript, one JSONL file, one message per line.

CONFIG: storage.transcript_path (default "conversation_log.jsonl")
PURPOSE: The durable source of truth for the active conversation
FEATURES: fsync on every append, cross-process file locking, fail-fast loading
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import threading
from functools import partial

from resumechat.errors import CorruptHistory, StorageUnavailable

from .models import Message, deserialize_message, serialize_message
from .repository import TranscriptRepository

logger = logging.getLogger(__name__)


class JsonlTranscriptRepo(TranscriptRepository):
    """Durable transcript store backed by a single append-only JSONL file."""

    def __init__(self, path: str = "conversation_log.jsonl"):
        self.path = path
        self._lock = threading.Lock()

    def describe(self) -> str:
        return f"jsonl:{self.path}"

    def _load_sync(self) -> list[Message]:
        """
        Read and parse every line of the transcript file.

        A missing file is a first run and yields an empty transcript. Blank
        lines are skipped. Any other line that fails to parse aborts the
        whole load: a partially loaded transcript would silently drop context
        from every later completion request.
        """
        if not os.path.exists(self.path):
            logger.info("No transcript at %s, starting a new conversation", self.path)
            return []

        messages: list[Message] = []
        try:
            with open(self.path, encoding="utf-8") as f:
                for line_number, file_line in enumerate(f, start=1):
                    stripped_line = file_line.strip()
                    if not stripped_line:
                        continue
                    try:
                        messages.append(deserialize_message(stripped_line))
                    except CorruptHistory as e:
                        raise CorruptHistory(
                            "Malformed transcript line", path=self.path, line_number=line_number
                        ) from e
        except UnicodeDecodeError as e:
            raise CorruptHistory(f"Transcript is not valid UTF-8: {e}", path=self.path) from e
        except OSError as e:
            raise StorageUnavailable(f"Cannot read transcript {self.path}: {e}") from e

        return messages

    def _append_sync(self, message: Message) -> None:
        """
        Synchronously append a single message with crash safety.

        The line is written under an exclusive fcntl lock, flushed and
        fsynced before the lock is released, so a successful return means
        the message survives a crash or power loss.
        """
        data = serialize_message(message)
        with self._lock:
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        f.write(data + "\n")
                        f.flush()
                        os.fsync(f.fileno())
                    finally:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            except OSError as e:
                raise StorageUnavailable(f"Cannot append to transcript {self.path}: {e}") from e

    async def load(self) -> list[Message]:
        loop = asyncio.get_running_loop()
        messages = await loop.run_in_executor(None, self._load_sync)
        logger.debug("← Repository: loaded %d messages from %s", len(messages), self.path)
        return messages

    async def append(self, message: Message) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, partial(self._append_sync, message))
        logger.debug("← Repository: appended %s", message.kind)
