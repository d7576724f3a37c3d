"""Clients package containing the streaming LLM client."""

from __future__ import annotations

from .llm_client import LLMClient, to_api_messages

__all__ = ["LLMClient", "to_api_messages"]
