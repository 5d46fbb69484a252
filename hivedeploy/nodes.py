"""Node names, deployment configuration, secret keys and Nix options."""

from __future__ import annotations

import re
import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

from hivedeploy.errors import EmptyNodeNameError, KeyCommandError, ValidationError

_UNIX_NAME = re.compile(r"[a-z][-a-z0-9]*")


def validate_node_name(name: str) -> str:
    """Return ``name`` if it is a valid node name."""
    if not isinstance(name, str):
        raise ValidationError(f"Node name must be a string, got {name!r}")
    if not name:
        raise EmptyNodeNameError()
    return name


class NodeName(str):
    """A node's attribute name."""

    def __new__(cls, value: str) -> "NodeName":
        return super().__new__(cls, validate_node_name(value))


def validate_unix_name(name: str) -> str:
    """Return ``name`` if it is a valid user or group name."""
    if not isinstance(name, str) or not _UNIX_NAME.fullmatch(name):
        raise ValidationError("Invalid user/group name")
    return name


def validate_dest_dir(path: PurePosixPath | str) -> PurePosixPath:
    """Return ``path`` if it is absolute."""
    dest = PurePosixPath(path)
    if not str(dest).startswith("/"):
        raise ValidationError("Secret key destination directory must be absolute")
    return dest


def _component_count(name: str) -> int:
    parts = name.split("/")
    count = 0
    if parts[0] == ".":
        count += 1
        parts = parts[1:]
    return count + sum(1 for part in parts if part not in ("", "."))


def validate_key_names(names: Iterable[str]) -> list[str]:
    """Return the names if none of them could escape the key directory."""
    checked = []
    for name in names:
        if name.startswith("/"):
            raise ValidationError("Secret key name cannot be absolute")
        if _component_count(name) != 1:
            raise ValidationError("Secret key name cannot contain path separators")
        checked.append(name)
    return checked


class UploadAt(Enum):
    """When to upload a given key."""

    PRE_ACTIVATION = "pre-activation"
    POST_ACTIVATION = "post-activation"


def _field(data: Mapping[str, Any], name: str, kind: type | tuple[type, ...]) -> Any:
    if name not in data:
        raise ValidationError(f"missing field `{name}`")
    value = data[name]
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        raise ValidationError(f"invalid type for field `{name}`: {value!r}")
    return value


def _optional(data: Mapping[str, Any], name: str, kind: type) -> Any:
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, kind) or isinstance(value, bool):
        raise ValidationError(f"invalid type for field `{name}`: {value!r}")
    return value


def _string_list(data: Mapping[str, Any], name: str, required: bool) -> list[str] | None:
    value = _field(data, name, list) if required else _optional(data, name, list)
    if value is not None and not all(isinstance(item, str) for item in value):
        raise ValidationError(f"field `{name}` must be a list of strings")
    return value


@dataclass
class Key:
    """A secret key to be deployed to a node."""

    name: str
    path: PurePosixPath
    dest_dir: PurePosixPath
    user: str
    group: str
    permissions: str
    upload_at: UploadAt
    text: str | None = None
    command: list[str] | None = None
    file: Path | None = None

    def __post_init__(self) -> None:
        sources = (self.text, self.command, self.file)
        if sum(source is not None for source in sources) != 1:
            raise ValidationError(
                f"Somehow 0 or more than 1 key source was specified: {sources!r}"
            )
        self.path = PurePosixPath(self.path)
        self.dest_dir = PurePosixPath(self.dest_dir)
        if self.file is not None:
            self.file = Path(self.file)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Key":
        """Build a key from its evaluated JSON form."""
        upload_at = _field(data, "uploadAt", str)
        try:
            upload = UploadAt(upload_at)
        except ValueError:
            raise ValidationError(f"unknown uploadAt value {upload_at!r}") from None
        key_file = _optional(data, "keyFile", str)
        return cls(
            name=_field(data, "name", str),
            path=PurePosixPath(_field(data, "path", str)),
            dest_dir=PurePosixPath(_field(data, "destDir", str)),
            user=_field(data, "user", str),
            group=_field(data, "group", str),
            permissions=_field(data, "permissions", str),
            upload_at=upload,
            text=_optional(data, "text", str),
            command=_string_list(data, "keyCommand", required=False),
            file=Path(key_file) if key_file is not None else None,
        )

    def validate(self) -> None:
        """Raise ValidationError if the destination or ownership is invalid."""
        validate_dest_dir(self.dest_dir)
        validate_unix_name(self.user)
        validate_unix_name(self.group)

    def read(self) -> bytes:
        """Return the contents of the key from its source."""
        if self.text is not None:
            return self.text.encode()
        if self.command is not None:
            if not self.command:
                raise ValidationError("Key command is empty")
            result = subprocess.run(
                self.command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                check=False,
            )
            if result.returncode != 0:
                try:
                    stderr = result.stderr.decode("utf-8")
                except UnicodeDecodeError:
                    stderr = ""
                raise KeyCommandError(result.returncode, stderr.rstrip())
            return result.stdout
        assert self.file is not None
        return self.file.read_bytes()


@dataclass
class NodeConfig:
    """Deployment configuration of a node."""

    target_host: str | None = None
    target_user: str | None = None
    target_port: int | None = None
    allow_local_deployment: bool = False
    build_on_target: bool = False
    tags: list[str] = field(default_factory=list)
    replace_unknown_profiles: bool = False
    privilege_escalation_command: list[str] = field(default_factory=list)
    keys: dict[str, Key] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NodeConfig":
        """Build a node configuration from its evaluated JSON form."""
        port = _optional(data, "targetPort", int)
        if port is not None and not 0 <= port <= 0xFFFF:
            raise ValidationError(f"targetPort out of range: {port}")
        keys = _field(data, "keys", dict)
        return cls(
            target_host=_optional(data, "targetHost", str),
            target_user=_optional(data, "targetUser", str),
            target_port=port,
            allow_local_deployment=_field(data, "allowLocalDeployment", bool),
            build_on_target=_field(data, "buildOnTarget", bool),
            tags=_string_list(data, "tags", required=True),
            replace_unknown_profiles=_field(data, "replaceUnknownProfiles", bool),
            privilege_escalation_command=_string_list(
                data, "privilegeEscalationCommand", required=True
            ),
            keys={name: Key.from_dict(key) for name, key in keys.items()},
        )

    def validate(self) -> None:
        """Raise ValidationError if a key name or any key is invalid."""
        validate_key_names(self.keys)
        for key in self.keys.values():
            key.validate()


@dataclass
class NixOptions:
    """Options passed to Nix commands."""

    show_trace: bool = False
    builders: str | None = None

    def to_args(self) -> list[str]:
        """Return the command-line arguments for these options."""
        args = []
        if self.builders is not None:
            args += ["--option", "builders", self.builders]
        if self.show_trace:
            args.append("--show-trace")
        return args