"""Hosts that store paths are copied to, built on and activated on."""

from __future__ import annotations

import getpass
import os
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from hivedeploy.errors import FailedToGetCurrentProfileError, UnsupportedError
from hivedeploy.nodes import Key, NixOptions, NodeConfig
from hivedeploy.process import (
    Command,
    CommandExecution,
    JobOutput,
    capture_output,
    passthrough,
)
from hivedeploy.store import Profile, StorePath

SYSTEM_PROFILE = "/nix/var/nix/profiles/system"
"""Path to the main system profile."""

CURRENT_PROFILE = "/run/current-system"
"""Path to the system profile that is currently active."""

_PROFILE_SWITCHING_GOALS = frozenset({"switch", "boot"})


class CopyDirection(Enum):
    """Which way a closure is copied."""

    TO_REMOTE = "to"
    FROM_REMOTE = "from"


@dataclass(frozen=True)
class CopyOptions:
    """Options for copying a closure between hosts."""

    include_outputs: bool = True
    use_substitutes: bool = True
    gzip: bool = True


def _switches_profile(goal: str | None, switch_profile: bool | None) -> bool:
    if switch_profile is not None:
        return switch_profile
    return goal in _PROFILE_SWITCHING_GOALS


def _store_paths(output: str) -> list[StorePath]:
    return [StorePath(line) for line in output.splitlines()]


def _first_store_path(output: str) -> StorePath:
    lines = output.splitlines()
    if not lines:
        raise FailedToGetCurrentProfileError()
    return StorePath(lines[0])


class Host(ABC):
    """A Nix(OS) host.

    ``job``, when set, receives the output lines of commands run on the host.
    A ``goal`` is the activation goal given to ``switch-to-configuration``
    (such as ``"switch"`` or ``"boot"``), or ``None`` for no activation.
    """

    job: JobOutput | None = None

    @abstractmethod
    async def copy_closure(
        self, closure: StorePath, direction: CopyDirection, options: CopyOptions
    ) -> None:
        """Send the closure to, or fetch it from, the host."""

    @abstractmethod
    async def realize_remote(self, derivation: StorePath) -> list[StorePath]:
        """Build a derivation that already exists on the host."""

    @abstractmethod
    async def get_main_system_profile(self) -> StorePath:
        """Return the main system profile, falling back to the current one."""

    async def realize(self, derivation: StorePath) -> list[StorePath]:
        """Build a local derivation on the host and fetch the outputs."""
        options = CopyOptions(include_outputs=True)
        await self.copy_closure(derivation, CopyDirection.TO_REMOTE, options)
        paths = await self.realize_remote(derivation)
        await self.copy_closure(derivation, CopyDirection.FROM_REMOTE, options)
        return paths

    async def deploy(
        self,
        profile: Profile,
        goal: str | None,
        copy_options: CopyOptions = CopyOptions(),
        switch_profile: bool | None = None,
    ) -> None:
        """Push a profile to the host and activate it if the goal requires it."""
        await self.copy_closure(
            profile.store_path, CopyDirection.TO_REMOTE, copy_options
        )
        if goal is not None:
            await self.activate(profile, goal, switch_profile)

    async def upload_keys(
        self, keys: Mapping[str, Key], require_ownership: bool
    ) -> None:
        """Upload secret keys to the host."""
        raise UnsupportedError()

    async def activate(
        self, profile: Profile, goal: str | None, switch_profile: bool | None = None
    ) -> None:
        """Activate a profile that already exists on the host."""
        raise UnsupportedError()

    async def run_command(self, command: Sequence[str]) -> None:
        """Run an arbitrary command on the host."""
        raise UnsupportedError()


class Local(Host):
    """The local machine; it may not be able to build every derivation."""

    def __init__(self, nix_options: NixOptions | None = None) -> None:
        self.nix_options = nix_options if nix_options is not None else NixOptions()
        self.job: JobOutput | None = None

    def __repr__(self) -> str:
        return f"Local(nix_options={self.nix_options!r})"

    async def copy_closure(
        self, closure: StorePath, direction: CopyDirection, options: CopyOptions
    ) -> None:
        """Nothing to copy: the closure is already local."""

    async def realize_remote(self, derivation: StorePath) -> list[StorePath]:
        command = Command(
            [
                "nix-store",
                *self.nix_options.to_args(),
                "--no-gc-warning",
                "--realise",
                str(derivation),
            ]
        )
        execution = CommandExecution(command, job=self.job)
        await execution.run()
        return _store_paths(execution.stdout or "")

    async def activate(
        self, profile: Profile, goal: str | None, switch_profile: bool | None = None
    ) -> None:
        if goal is None:
            raise UnsupportedError()

        if _switches_profile(goal, switch_profile):
            await passthrough(
                Command(
                    ["nix-env", "--profile", SYSTEM_PROFILE, "--set", str(profile.path)]
                )
            )

        activation = profile.activation_command(goal)
        assert activation is not None
        await CommandExecution(Command(activation), job=self.job).run()

    async def get_main_system_profile(self) -> StorePath:
        output = await capture_output(
            Command(
                [
                    "sh",
                    "-c",
                    f"readlink -e {SYSTEM_PROFILE} || readlink -e {CURRENT_PROFILE}",
                ]
            )
        )
        return _first_store_path(output)


class Ssh(Host):
    """A remote machine reached over SSH."""

    def __init__(
        self,
        user: str,
        host: str,
        port: int | None = None,
        ssh_config: str | os.PathLike[str] | None = None,
        privilege_escalation_command: Sequence[str] = (),
    ) -> None:
        self.user = user
        self.host = host
        self.port = port
        self.ssh_config = ssh_config
        self.privilege_escalation_command = list(privilege_escalation_command)
        self.job: JobOutput | None = None

    def __repr__(self) -> str:
        return (
            f"Ssh(user={self.user!r}, host={self.host!r}, port={self.port!r}, "
            f"ssh_config={self.ssh_config!r})"
        )

    def ssh_target(self) -> str:
        """Return ``user@host``."""
        return f"{self.user}@{self.host}"

    def ssh_options(self) -> list[str]:
        """Return the options passed to ssh."""
        options = ["-o", "StrictHostKeyChecking=accept-new", "-T"]
        if self.port is not None:
            options += ["-p", str(self.port)]
        if self.ssh_config is not None:
            options += ["-F", os.fspath(self.ssh_config)]
        return options

    def ssh(self, command: Sequence[str]) -> Command:
        """Return a command that runs ``command`` on the host."""
        options = self.ssh_options()
        escalation = self.privilege_escalation_command if self.user != "root" else []
        return Command(
            ["ssh", self.ssh_target(), *options, "--", *escalation, *command],
            env={"NIX_SSHOPTS": " ".join(options)},
        )

    def nix_copy_closure(
        self, path: StorePath, direction: CopyDirection, options: CopyOptions
    ) -> Command:
        """Return the nix-copy-closure command copying ``path``."""
        ssh_options = self.ssh_options()
        argv = [
            "nix-copy-closure",
            "--to" if direction is CopyDirection.TO_REMOTE else "--from",
        ]
        if options.include_outputs:
            argv.append("--include-outputs")
        if options.use_substitutes:
            argv.append("--use-substitutes")
        if options.gzip:
            argv.append("--gzip")
        argv += [self.ssh_target(), str(path)]
        return Command(argv, env={"NIX_SSHOPTS": " ".join(ssh_options)})

    async def _run(self, command: Command) -> None:
        await CommandExecution(command, job=self.job).run()

    async def copy_closure(
        self, closure: StorePath, direction: CopyDirection, options: CopyOptions
    ) -> None:
        await self._run(self.nix_copy_closure(closure, direction, options))

    async def realize_remote(self, derivation: StorePath) -> list[StorePath]:
        command = self.ssh(
            ["nix-store", "--no-gc-warning", "--realise", str(derivation)]
        )
        output = await CommandExecution(command, job=self.job).capture_output()
        return _store_paths(output)

    async def activate(
        self, profile: Profile, goal: str | None, switch_profile: bool | None = None
    ) -> None:
        if goal is None:
            raise UnsupportedError()

        if _switches_profile(goal, switch_profile):
            await self._run(
                self.ssh(
                    ["nix-env", "--profile", SYSTEM_PROFILE, "--set", str(profile.path)]
                )
            )

        activation = profile.activation_command(goal)
        assert activation is not None
        await self._run(self.ssh(activation))

    async def run_command(self, command: Sequence[str]) -> None:
        await self._run(self.ssh(command))

    async def get_main_system_profile(self) -> StorePath:
        script = f'"readlink -e {SYSTEM_PROFILE} || readlink -e {CURRENT_PROFILE}"'
        output = await capture_output(self.ssh(["sh", "-c", script]))
        return _first_store_path(output)


def ssh_host_from_config(
    config: NodeConfig, ssh_config: str | os.PathLike[str] | None = None
) -> Ssh | None:
    """Return the SSH host a node is deployed to, or None without a target host."""
    if config.target_host is None:
        return None
    user = config.target_user if config.target_user is not None else getpass.getuser()
    return Ssh(
        user,
        config.target_host,
        port=config.target_port,
        ssh_config=ssh_config,
        privilege_escalation_command=config.privilege_escalation_command,
    )


def _describe(value: Any) -> str:
    return repr(value)