"""Resumable terminal chat client with a durable JSONL transcript."""

__version__ = "0.1.0"
