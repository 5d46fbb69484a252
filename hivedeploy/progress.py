"""Progress messages and the plain, line-by-line progress output."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Hashable, TextIO, Union

from rich.console import Console
from rich.text import Text

DEFAULT_LABEL_WIDTH = 5


class LineStyle(Enum):
    """Style of a line of output."""

    NORMAL = "normal"
    SUCCESS = "success"
    SUCCESS_NOOP = "success-noop"
    FAILURE = "failure"


@dataclass(frozen=True)
class Line:
    """A line of output belonging to a job."""

    job_id: Hashable
    text: str
    style: LineStyle = LineStyle.NORMAL
    label: str = ""
    one_off: bool = False
    noisy: bool = False


@dataclass(frozen=True)
class Print:
    """Prints a line of text."""

    line: Line


@dataclass(frozen=True)
class PrintMeta:
    """Prints a line about the overall progress."""

    line: Line


@dataclass(frozen=True)
class HintLabelWidth:
    """Hints about the maximum label width."""

    width: int


@dataclass(frozen=True)
class Complete:
    """Completes the progress output."""


Message = Union[Print, PrintMeta, HintLabelWidth, Complete]

# (label style, text style) for each line style.
_STYLES = {
    LineStyle.NORMAL: ("bold", ""),
    LineStyle.SUCCESS: ("bold green", "green"),
    LineStyle.SUCCESS_NOOP: ("bold green dim", "dim"),
    LineStyle.FAILURE: ("bold red", "red"),
}


class PlainOutput:
    """Progress output that prints each line as ``label | text``.

    Messages are put on the queue returned by ``get_sender``; a ``Complete``
    message or ``None`` ends ``run_until_completion``.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        if stream is None:
            self._console = Console(stderr=True, highlight=False)
        else:
            self._console = Console(file=stream, highlight=False)
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._sender: asyncio.Queue[Any] | None = self._queue
        self.label_width = DEFAULT_LABEL_WIDTH

    def get_sender(self) -> asyncio.Queue[Any] | None:
        """Return the message queue; only the first call returns it."""
        sender, self._sender = self._sender, None
        return sender

    async def run_until_completion(self) -> "PlainOutput":
        """Print messages until a Complete message arrives."""
        while True:
            message = await self._queue.get()
            if message is None or isinstance(message, Complete):
                return self
            if isinstance(message, (Print, PrintMeta)):
                self._print(message.line)
            elif isinstance(message, HintLabelWidth):
                self.label_width = max(self.label_width, message.width)

    def _print(self, line: Line) -> None:
        if line.noisy:
            return

        self.label_width = max(self.label_width, len(line.label))
        label_style, text_style = _STYLES[line.style]

        rendered = Text(" " * (self.label_width - len(line.label)))
        rendered.append(line.label, style=label_style)
        rendered.append(" | ")
        rendered.append(line.text, style=text_style)
        self._console.print(rendered, soft_wrap=True, highlight=False)