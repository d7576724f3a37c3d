#!/usr/bin/env python3
"""
Pending Tool Call Sidecar

A single-slot JSON file holding the tool call that is waiting for an
externally produced result. The slot is rewritten wholesale on every tool
call and retired once the result has been folded into the transcript.

CONFIG: storage.pending_call_path (default "tool_call.json")
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from functools import partial

from pydantic import ValidationError

from resumechat.errors import StorageUnavailable

from .models import PendingCall
from .repository import PendingCallStore

logger = logging.getLogger(__name__)


class PendingCallSidecar(PendingCallStore):
    """Durable pending call slot stored next to the transcript."""

    def __init__(self, path: str = "tool_call.json"):
        self.path = path

    def _record_sync(self, call: PendingCall) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".tool_call.", suffix=".tmp", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(call.model_dump_json(indent=2))
                    f.write("\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageUnavailable(f"Cannot write pending call {self.path}: {e}") from e

    def _load_sync(self) -> PendingCall | None:
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageUnavailable(f"Cannot read pending call {self.path}: {e}") from e

        try:
            return PendingCall.model_validate_json(raw)
        except ValidationError as e:
            # The transcript tail is authoritative; an unreadable sidecar is rebuilt from it.
            logger.warning("Ignoring unreadable pending call sidecar %s: %s", self.path, e)
            return None

    def _clear_sync(self) -> None:
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageUnavailable(f"Cannot remove pending call {self.path}: {e}") from e

    async def record(self, call: PendingCall) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, partial(self._record_sync, call))
        logger.info("→ Sidecar: recorded pending call %s (%s)", call.call_id, call.function_name)

    async def load(self) -> PendingCall | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._load_sync)

    async def clear(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._clear_sync)
        logger.debug("← Sidecar: cleared %s", self.path)
