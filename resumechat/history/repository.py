#!/usr/bin/env python3
"""
Transcript Repository Interface

This module defines the storage protocols for the single active transcript
and the pending tool call slot.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import Message, PendingCall

# ---------- Repository interfaces ----------


@runtime_checkable
class TranscriptRepository(Protocol):
    """Protocol defining the interface for transcript storage backends."""

    async def load(self) -> list[Message]:
        """
        Load the whole transcript in append order.

        Raises:
            CorruptHistory: If any stored entry fails to parse.
            StorageUnavailable: If the store cannot be read.
        """
        ...

    async def append(self, message: Message) -> None:
        """
        Durably append one message.

        Raises:
            StorageUnavailable: If the write could not be made durable.
        """
        ...

    def describe(self) -> str: ...


@runtime_checkable
class PendingCallStore(Protocol):
    """Protocol for the single-slot pending tool call record."""

    async def record(self, call: PendingCall) -> None: ...

    async def load(self) -> PendingCall | None: ...

    async def clear(self) -> None: ...
