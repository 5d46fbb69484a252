"""Error types and the top-level error handler with troubleshooting hints."""

from __future__ import annotations

import inspect
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

log = logging.getLogger(__name__)


class HiveError(Exception):
    """Base class of all errors raised by this package."""

    default_message = "An unknown error occurred"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NoFlakesSupportError(HiveError):
    default_message = "Current Nix version does not support Flakes"


class EmptyNodeNameError(HiveError):
    default_message = "Node name cannot be empty"


class EmptyFilterRuleError(HiveError):
    default_message = "Filter rule cannot be empty"


class InvalidStorePathError(HiveError):
    default_message = "Invalid Nix store path"


class NotADerivationError(HiveError):
    def __init__(self, store_path: Any) -> None:
        self.store_path = store_path
        super().__init__(f"Store path {store_path} is not a derivation")


class InvalidProfileError(HiveError):
    default_message = "Invalid NixOS system profile"


class BadOutputError(HiveError):
    def __init__(self, output: str) -> None:
        self.output = output
        super().__init__(f"Unexpected output: {output}")


class CommandFailedError(HiveError):
    def __init__(self, returncode: int | None) -> None:
        self.returncode = returncode
        super().__init__(f"Child process exited with status {returncode}")


class UnsupportedError(HiveError):
    default_message = "Operation unsupported"


class FailedToGetCurrentProfileError(HiveError):
    default_message = "Failed to get the current system profile"


class ValidationError(HiveError):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Validation error: {message}")


class UnknownError(HiveError):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class KeyCommandError(HiveError):
    def __init__(self, returncode: int | None, stderr: str) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Key command failed: exit status {returncode}, stderr: {stderr}"
        )


def troubleshoot(
    error: BaseException, config_given: bool, cwd: Path | str | None = None
) -> list[str]:
    """Return hint lines that may explain ``error``, or an empty list."""
    if not isinstance(error, NoFlakesSupportError) or config_given:
        return []

    # A hive.nix next to a flake.nix is ignored, since flake.nix is preferred.
    directory = Path.cwd() if cwd is None else Path(cwd)
    if (directory / "flake.nix").is_file() and (directory / "hive.nix").is_file():
        return [
            "Hint: You have both flake.nix and hive.nix in the current directory, and",
            "      hivedeploy will always prefer flake.nix if it exists.",
            "",
            "      Try passing `-f hive.nix` explicitly if this is what you want.",
        ]
    return []


async def run_wrapped(
    func: Callable[[], Any | Awaitable[Any]], config_given: bool
) -> Any:
    """Run ``func``; on a HiveError log it, print hints and exit with code 1."""
    try:
        result = func()
        if inspect.isawaitable(result):
            result = await result
        return result
    except HiveError as error:
        log.error("-----")
        log.error("Operation failed with error: %s", error)

        try:
            hints = troubleshoot(error, config_given)
        except OSError as own_error:
            log.error(
                "Error occurred while trying to troubleshoot another error: %s",
                own_error,
            )
        else:
            for hint in hints:
                print(hint, file=sys.stderr)

        raise SystemExit(1) from error