"""
Error Taxonomy

Every error raised by the conversation core is fatal for the current process.
The operator inspects the persisted transcript and sidecar, then re-runs.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for all unrecoverable conversation errors."""


class CorruptHistory(ChatError):
    """A stored transcript line failed to deserialize."""

    def __init__(self, message: str, *, path: str | None = None, line_number: int | None = None):
        self.path = path
        self.line_number = line_number
        location = ""
        if path is not None:
            location = f"{path}:{line_number}: " if line_number is not None else f"{path}: "
        super().__init__(f"{location}{message}")


class StorageUnavailable(ChatError):
    """Durable storage could not be read or written."""


class ProviderFailure(ChatError):
    """The completion call or its response stream failed."""

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class UnsupportedChunk(ChatError):
    """The stream produced a chunk kind the assembler does not handle."""


class ToolResultUnavailable(ChatError):
    """A pending tool call has no externally supplied result yet."""


class ConfigurationError(ValueError):
    """Configuration is missing or invalid."""
