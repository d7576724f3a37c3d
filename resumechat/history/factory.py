#!/usr/bin/env python3
"""
Repository Factory

Factory function to create the transcript store and pending call slot
based on configuration.
"""

from __future__ import annotations

import logging
from typing import Any

from .jsonl_repo import JsonlTranscriptRepo
from .memory_repo import InMemoryPendingCallStore, InMemoryTranscriptRepo
from .pending_call import PendingCallSidecar
from .repository import PendingCallStore, TranscriptRepository

logger = logging.getLogger(__name__)


def create_repository(
    storage_config: dict[str, Any], ephemeral: bool = False
) -> tuple[TranscriptRepository, PendingCallStore]:
    """Create the transcript repository and its pending call sidecar.

    Ephemeral mode keeps both in memory, so nothing survives the process and
    a tool call cannot be resumed.
    """
    if ephemeral:
        logger.info("Using in-memory transcript storage (nothing will be persisted)")
        return InMemoryTranscriptRepo(), InMemoryPendingCallStore()

    transcript_path = storage_config.get("transcript_path", "conversation_log.jsonl")
    pending_call_path = storage_config.get("pending_call_path", "tool_call.json")
    logger.info("Using JSONL transcript storage: %s (sidecar: %s)", transcript_path, pending_call_path)
    return JsonlTranscriptRepo(transcript_path), PendingCallSidecar(pending_call_path)
