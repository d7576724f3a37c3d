"""
Console I/O

Line-oriented prompt/read for user input and plain echo for assistant output.
Input is read on a worker thread so the event loop stays responsive, but the
conversation awaits each line before doing anything else.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Callable
from typing import Any, TextIO


class Console:
    """Terminal front end for the conversation loop."""

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output: TextIO | None = None,
    ):
        self._input = input_func
        self._output = output

    @property
    def output(self) -> TextIO:
        return self._output if self._output is not None else sys.stdout

    async def read_line(self, prompt: str = "\n> ") -> str | None:
        """Read one line of user input. Returns None at end of input."""
        try:
            return await asyncio.to_thread(self._input, prompt)
        except EOFError:
            return None

    def write_text(self, text: str) -> None:
        """Echo streamed assistant text without adding a newline."""
        self.output.write(text)
        self.output.flush()

    def notice(self, message: str) -> None:
        self.output.write(message + "\n")
        self.output.flush()

    def tool_call_notice(self, function_name: str, arguments: Any) -> None:
        self.notice(f"\n[Tool Call: {function_name} with arguments {json.dumps(arguments, ensure_ascii=False)}]")
