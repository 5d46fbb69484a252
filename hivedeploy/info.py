"""Detection of the installed Nix version and its Flakes support."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

from hivedeploy.errors import NoFlakesSupportError
from hivedeploy.process import Command

log = logging.getLogger(__name__)

_VERSION = re.compile(r" (?P<major>\d+)\.(?P<minor>\d+)")


@dataclass(frozen=True)
class NixVersion:
    """A Nix version as reported by ``nix-instantiate --version``."""

    major: int
    minor: int
    string: str

    @classmethod
    def parse(cls, string: str) -> "NixVersion":
        """Parse version output; unparsable output gives version 0.0."""
        match = _VERSION.search(string)
        if match is None:
            return cls(0, 0, "unknown")
        return cls(int(match["major"]), int(match["minor"]), string)

    def has_flakes(self) -> bool:
        """Return whether this version supports Flakes."""
        return self.major > 2 or (self.major == 2 and self.minor >= 4)

    def __str__(self) -> str:
        if self.major != 0:
            return f"{self.major}.{self.minor}"
        return f"{self.string}???"


@dataclass(frozen=True)
class NixCheck:
    """What is known about the installed Nix."""

    version: NixVersion | None = None
    flakes_supported: bool = False
    flakes_enabled: bool = False

    @classmethod
    async def detect(cls) -> "NixCheck":
        """Probe the installed Nix; a missing Nix gives an empty check."""
        try:
            process = await Command(["nix-instantiate", "--version"]).spawn(
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await process.communicate()
        except OSError:
            return cls()

        version = NixVersion.parse(stdout.decode("utf-8", errors="replace"))

        try:
            process = await Command(
                ["nix-instantiate", "--eval", "-E", "builtins.getFlake"]
            ).spawn(
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            returncode = await process.wait()
        except OSError:
            return cls()

        return cls(version, version.has_flakes(), returncode == 0)

    @classmethod
    async def require_flake_support(cls) -> None:
        """Raise NoFlakesSupportError unless the installed Nix has Flakes."""
        check = await cls.detect()
        if not check.flakes_supported:
            check.print_flakes_info(True)
            raise NoFlakesSupportError()

    def print_version_info(self) -> None:
        """Log the Nix version."""
        if self.version is not None:
            log.info("Nix Version: %s", self.version)
        else:
            log.info("Nix Version: Not found")

    def print_flakes_info(self, required: bool) -> None:
        """Log whether Flakes are supported and enabled."""
        if self.version is None:
            log.error("Nix doesn't appear to be installed.")
            return

        if self.flakes_enabled:
            log.info("The Nix version you are using supports Flakes and it's enabled.")
        elif self.flakes_supported:
            log.warning("The Nix version you are using supports Flakes but it's disabled.")
            log.warning(
                "hivedeploy will automatically enable Flakes for its operations, "
                "but you should enable it in your Nix configuration:"
            )
            log.warning("    experimental-features = nix-command flakes")
        else:
            level = logging.ERROR if required else logging.WARNING
            log.log(level, "The Nix version you are using does not support Flakes.")
            log.log(
                level,
                "If you are using a Nixpkgs version before 21.11, please install "
                "nixUnstable for a version that includes Flakes support.",
            )
            if required:
                log.log(
                    level,
                    "Cannot continue since Flakes support is required for this operation.",
                )