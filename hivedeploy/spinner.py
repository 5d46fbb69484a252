"""Progress output drawn as one live spinner per job."""

from __future__ import annotations

import asyncio
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Hashable

from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from hivedeploy.progress import (
    DEFAULT_LABEL_WIDTH,
    Complete,
    HintLabelWidth,
    Line,
    LineStyle,
    PlainOutput,
    Print,
    PrintMeta,
)

_CLOCK_FRAMES = "🕛🕐🕑🕒🕓🕔🕕🕖🕗🕘🕙🕚✅"
_FAILURE_FRAMES = "❌❌"
_TICKS_PER_SECOND = 10


def spinner_frames(style: LineStyle) -> str:
    """Return the spinner characters for ``style``; the last one marks completion."""
    if style is LineStyle.FAILURE:
        return _FAILURE_FRAMES
    return _CLOCK_FRAMES


def spinner_template(label_width: int) -> str:
    """Return the format template of a spinner line."""
    return f"{{prefix:>{label_width}}} {{spinner}} {{elapsed}} {{message}}"


def _format_elapsed(seconds: float) -> str:
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass
class _Bar:
    style: LineStyle = LineStyle.NORMAL
    started: float = field(default_factory=time.monotonic)
    prefix: str = ""
    message: str = ""
    finished_at: float | None = None
    hidden: bool = False

    def finish(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        if self.finished_at is None:
            self.finished_at = time.monotonic()

    def render(self, label_width: int, now: float) -> Text | None:
        if self.hidden:
            return None
        chars = spinner_frames(self.style)
        end = self.finished_at if self.finished_at is not None else now
        elapsed = max(0.0, end - self.started)
        if self.finished_at is not None:
            spinner = chars[-1]
        else:
            frames = chars[:-1]
            spinner = frames[int(elapsed * _TICKS_PER_SECOND) % len(frames)]
        line = spinner_template(label_width).format(
            prefix=self.prefix,
            spinner=spinner,
            elapsed=_format_elapsed(elapsed),
            message=self.message,
        )
        text = Text(line, no_wrap=True, overflow="ellipsis")
        text.stylize("bold dim", 0, max(label_width, len(self.prefix)))
        return text


@dataclass
class _JobState:
    bar: _Bar
    since: float = field(default_factory=time.monotonic)


class SpinnerOutput:
    """Progress output with a live spinner for every job and one for the run.

    Messages are put on the queue returned by ``get_sender``; a ``Complete``
    message or ``None`` ends ``run_until_completion``.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console if console is not None else Console(stderr=True)
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._sender: asyncio.Queue[Any] | None = self._queue
        self._jobs: dict[Hashable, _JobState] = {}
        self._bars: list[_Bar] = []
        self._meta_bar = _Bar()
        self.label_width = DEFAULT_LABEL_WIDTH

    def get_sender(self) -> asyncio.Queue[Any] | None:
        """Return the message queue; only the first call returns it."""
        sender, self._sender = self._sender, None
        return sender

    async def run_until_completion(self) -> "SpinnerOutput":
        """Draw spinners until a Complete message arrives."""
        self._bars.append(self._meta_bar)
        completed = False

        with Live(
            console=self._console,
            get_renderable=self._render,
            refresh_per_second=_TICKS_PER_SECOND,
            transient=True,
        ):
            while True:
                message = await self._queue.get()
                if message is None:
                    break
                if isinstance(message, Complete):
                    completed = True
                    break
                if isinstance(message, Print):
                    self._print(message.line, meta=False)
                elif isinstance(message, PrintMeta):
                    self._print(message.line, meta=True)
                elif isinstance(message, HintLabelWidth):
                    self.label_width = max(self.label_width, message.width)

        self._console.print(self._render())
        if completed:
            self._console.print()
        return self

    def _render(self) -> Group:
        now = time.monotonic()
        rendered = (bar.render(self.label_width, now) for bar in self._bars)
        return Group(*(text for text in rendered if text is not None))

    def _create_bar(self, style: LineStyle, started: float | None = None) -> _Bar:
        bar = _Bar(style=style)
        if started is not None:
            bar.started = started
        self._bars.append(bar)
        return bar

    def _job_state(self, job_id: Hashable) -> _JobState:
        state = self._jobs.get(job_id)
        if state is None:
            state = _JobState(self._create_bar(LineStyle.NORMAL))
            self._jobs[job_id] = state
        return state

    def _print(self, line: Line, meta: bool) -> None:
        self.label_width = max(self.label_width, len(line.label))

        if meta:
            bar = self._meta_bar
            bar.style = line.style
        else:
            state = self._job_state(line.job_id)
            if line.one_off:
                bar = self._create_bar(line.style, started=state.since)
            else:
                bar = state.bar
                bar.style = line.style

        bar.prefix = line.label

        if line.style in (LineStyle.SUCCESS, LineStyle.FAILURE):
            bar.finish(line.text)
        elif line.style is LineStyle.SUCCESS_NOOP:
            bar.finish()
            bar.hidden = True
        else:
            bar.message = line.text


def create_progress_output(verbose: bool) -> PlainOutput | SpinnerOutput:
    """Return plain output when verbose or not on a terminal, spinners otherwise."""
    if verbose or not sys.stdout.isatty():
        return PlainOutput()
    return SpinnerOutput()