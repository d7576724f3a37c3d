"""
Chat Logging Utilities

Shared logging functionality with feature control.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

logger = logging.getLogger(__name__)

_module_features: dict[str, dict[str, bool]] = {}


def set_module_features(module: str, features: dict[str, bool]) -> None:
    """Store feature flags for a logging module (called from logging setup)."""
    _module_features[module] = dict(features)


def should_log_feature(module: str, feature: str) -> bool:
    """
    Check if a specific logging feature should be enabled.

    Uses cached feature flags for better performance during runtime.
    """
    return _module_features.get(module, {}).get(feature, False)


def log_turn_summary(text_chunks: int, outcome: str, finish_reason: str | None) -> None:
    """Log a one-line summary of a streamed turn if 'turn_summaries' is enabled."""
    if not should_log_feature("chat", "turn_summaries"):
        return

    logger.info(
        "Turn settled | outcome: %s | text chunks: %d | finish_reason: %s",
        outcome,
        text_chunks,
        finish_reason,
    )


def log_tool_arguments(tool_name: str, arguments: Any, context: str, truncate_length: int = 500) -> None:
    """
    Log the arguments of a tool call the model requested.

    Args:
        tool_name: Name of the requested tool
        arguments: Structured arguments of the call
        context: Descriptive context for the log entry
        truncate_length: Maximum length for argument logging
    """
    if not should_log_feature("chat", "tool_arguments"):
        logger.debug("Tool arguments logging disabled for %s", tool_name)
        return

    args_str = str(arguments)
    if len(args_str) > truncate_length:
        args_str = args_str[:truncate_length] + "..."

    logger.info("Tool[%s]: arguments (%s): %s", tool_name, context, args_str)


def log_directional_flow(direction: str, component: str, message: str, *args: Any) -> None:
    """
    Log directional flow messages with consistent arrow formatting.

    Args:
        direction: Either "→" (outgoing) or "←" (incoming/completed)
        component: Component name (e.g., "LLM", "Repository", "Sidecar")
        message: Message template with optional format placeholders
        *args: Arguments for message formatting
    """
    formatted_msg = message % args if args else message
    logger.info("%s %s: %s", direction, component, formatted_msg)


@asynccontextmanager
async def log_performance(operation_name: str) -> AsyncIterator[None]:
    """Context manager to log performance metrics for operations."""
    start_time = time.monotonic()
    try:
        yield
    finally:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        if should_log_feature("chat", "timings"):
            logger.info("%s completed in %.2fms", operation_name, elapsed_ms)
