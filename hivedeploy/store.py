"""Nix store paths, store derivations and system profiles."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, Sequence

from hivedeploy.errors import (
    BadOutputError,
    CommandFailedError,
    InvalidProfileError,
    InvalidStorePathError,
    NotADerivationError,
)
from hivedeploy.process import Command, capture_output

STORE_PREFIX = "/nix/store/"


class BuildTarget(Protocol):
    """A type that can be made from the store paths a build produced."""

    @classmethod
    def from_build_result(cls, paths: Sequence["StorePath"]) -> Any: ...


class StorePath:
    """A path inside the Nix store."""

    __slots__ = ("path",)

    def __init__(self, path: str | os.PathLike[str]) -> None:
        text = os.fspath(path)
        if not text.startswith(STORE_PREFIX):
            raise InvalidStorePathError()
        self.path = PurePosixPath(text)

    def __str__(self) -> str:
        return str(self.path)

    def __fspath__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return f"StorePath({str(self.path)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StorePath):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)

    def is_derivation(self) -> bool:
        """Return whether the path points to a derivation."""
        return self.path.suffix == ".drv"

    async def references(self) -> list["StorePath"]:
        """Return the immediate dependencies of the store path."""
        output = await capture_output(
            Command(["nix-store", "--query", "--references", str(self.path)])
        )
        return [StorePath(line) for line in output.rstrip().split("\n") if line]

    def into_derivation(self, target: type[BuildTarget]) -> "StoreDerivation":
        """Return a derivation that builds into ``target``."""
        if not self.is_derivation():
            raise NotADerivationError(self)
        return StoreDerivation(self, target)


@dataclass(frozen=True)
class StoreDerivation:
    """A store derivation (.drv) that results in a ``target`` when built."""

    path: StorePath
    target: type[BuildTarget]

    def __str__(self) -> str:
        return repr(self.path)

    async def realize(self, host: Any) -> Any:
        """Build the derivation on ``host`` and copy the results back."""
        return self.target.from_build_result(await host.realize(self.path))

    async def realize_remote(self, host: Any) -> Any:
        """Build the derivation on ``host`` without copying the results back."""
        return self.target.from_build_result(await host.realize_remote(self.path))


@dataclass(frozen=True)
class Profile:
    """A NixOS system profile."""

    store_path: StorePath

    @property
    def path(self) -> PurePosixPath:
        return self.store_path.path

    @classmethod
    def from_store_path(cls, path: StorePath) -> "Profile":
        """Return the profile at ``path`` if it looks like a system profile."""
        local = Path(path.path)
        if not local.is_dir() or not (local / "bin/switch-to-configuration").exists():
            raise InvalidProfileError()
        return cls(path)

    @classmethod
    def from_build_result(cls, paths: Sequence[StorePath]) -> "Profile":
        """Return the profile a build produced; exactly one path is expected."""
        if not paths:
            raise BadOutputError("There is no store path")
        if len(paths) > 1:
            raise BadOutputError("Build resulted in more than 1 store path")
        return cls(paths[0])

    def activation_command(self, goal: str | None) -> list[str] | None:
        """Return the command that activates this profile for ``goal``."""
        if goal is None:
            return None
        return [str(self.path / "bin/switch-to-configuration"), goal]

    async def create_gc_root(self, path: str | os.PathLike[str]) -> None:
        """Create a garbage-collector root at ``path`` for this profile."""
        command = Command(
            [
                "nix-store",
                "--no-build-output",
                "--indirect",
                "--add-root",
                os.fspath(path),
                "--realise",
                str(self.path),
            ]
        )
        process = await command.spawn(stdout=asyncio.subprocess.DEVNULL)
        returncode = await process.wait()
        if returncode != 0:
            raise CommandFailedError(returncode)