"""Running external commands and capturing their output."""

from __future__ import annotations

import asyncio
import json
import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from hivedeploy.errors import BadOutputError, CommandFailedError

if TYPE_CHECKING:
    from hivedeploy.store import StorePath

_STREAM_LIMIT = 1 << 20


class JobOutput(Protocol):
    """Something that receives the output lines of a running command."""

    def stdout(self, line: str) -> None: ...

    def stderr(self, line: str) -> None: ...


@dataclass
class Command:
    """A program with its arguments and extra environment variables."""

    argv: list[str]
    env: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.argv = [os.fspath(arg) for arg in self.argv]
        if not self.argv:
            raise ValueError("A command needs a program to run")

    def __str__(self) -> str:
        return shlex.join(self.argv)

    async def spawn(
        self, *, stdin: Any = None, stdout: Any = None, stderr: Any = None
    ) -> asyncio.subprocess.Process:
        """Start the program; ``None`` streams are inherited."""
        environment = {**os.environ, **self.env} if self.env else None
        return await asyncio.create_subprocess_exec(
            *self.argv,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
            env=environment,
            limit=_STREAM_LIMIT,
        )


def _parse_json(output: str) -> Any:
    try:
        return json.loads(output)
    except ValueError:
        raise BadOutputError(output) from None


def _parse_store_path(output: str) -> "StorePath":
    from hivedeploy.store import StorePath

    return StorePath(output.rstrip())


async def capture_stream(
    stream: asyncio.StreamReader, job: JobOutput | None, stderr: bool
) -> str:
    """Read ``stream`` to the end, forwarding each line to ``job``."""
    log = []
    async for raw in stream:
        line = raw.decode("utf-8").rstrip()
        if job is not None:
            if stderr:
                job.stderr(line)
            else:
                job.stdout(line)
        log.append(line + "\n")
    return "".join(log)


class CommandExecution:
    """Non-interactive execution of a command, with its output kept."""

    def __init__(
        self,
        command: Command,
        job: JobOutput | None = None,
        hide_stdout: bool = False,
    ) -> None:
        self.command = command
        self.job = job
        self.hide_stdout = hide_stdout
        self.stdout: str | None = None
        self.stderr: str | None = None

    async def run(self) -> None:
        """Run the command, capturing both streams; raise if it fails."""
        self.stdout = ""
        self.stderr = ""

        process = await self.command.spawn(
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        assert process.stdout is not None and process.stderr is not None

        stdout_job = None if self.hide_stdout else self.job
        stdout, stderr, returncode = await asyncio.gather(
            capture_stream(process.stdout, stdout_job, False),
            capture_stream(process.stderr, self.job, True),
            process.wait(),
        )
        self.stdout = stdout
        self.stderr = stderr

        if returncode != 0:
            raise CommandFailedError(returncode)

    async def passthrough(self) -> None:
        """Run the command."""
        await self.run()

    async def capture_output(self) -> str:
        """Run the command and return its standard output."""
        await self.run()
        assert self.stdout is not None
        return self.stdout

    async def capture_json(self) -> Any:
        """Run the command and return its output decoded from JSON."""
        return _parse_json(await self.capture_output())

    async def capture_store_path(self) -> "StorePath":
        """Run the command and return the single store path it printed."""
        return _parse_store_path(await self.capture_output())


async def passthrough(command: Command) -> None:
    """Run ``command`` with its output shown to the user."""
    process = await command.spawn()
    returncode = await process.wait()
    if returncode != 0:
        raise CommandFailedError(returncode)


async def capture_output(command: Command) -> str:
    """Run ``command`` and return its stdout; stderr is shown to the user."""
    process = await command.spawn(stdout=asyncio.subprocess.PIPE)
    stdout, _ = await process.communicate()
    if process.returncode != 0:
        raise CommandFailedError(process.returncode)
    return stdout.decode("utf-8")


async def capture_json(command: Command) -> Any:
    """Run ``command`` and return its output decoded from JSON."""
    return _parse_json(await capture_output(command))


async def capture_store_path(command: Command) -> "StorePath":
    """Run ``command`` and return the single store path it printed."""
    return _parse_store_path(await capture_output(command))


def get_label_width(targets: Mapping[str, Any]) -> int | None:
    """Return the length of the longest target name, if there is any."""
    return max((len(name) for name in targets), default=None)