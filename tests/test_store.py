import pytest

from hivedeploy.errors import (
    BadOutputError,
    CommandFailedError,
    InvalidProfileError,
    InvalidStorePathError,
    NotADerivationError,
)
from hivedeploy.store import Profile, StoreDerivation, StorePath

DRV = "/nix/store/aaaa-nixos-system.drv"
OUT = "/nix/store/bbbb-nixos-system"


def install_script(directory, name, body):
    script = directory / name
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(0o755)
    return script


class FakeHost:
    def __init__(self, paths):
        self.paths = paths
        self.calls = []

    async def realize(self, derivation):
        self.calls.append(("realize", derivation))
        return self.paths

    async def realize_remote(self, derivation):
        self.calls.append(("realize_remote", derivation))
        return self.paths


def test_store_path_requires_store_prefix():
    with pytest.raises(InvalidStorePathError):
        StorePath("/tmp/not-in-store")
    with pytest.raises(InvalidStorePathError):
        StorePath("nix/store/relative")


def test_store_path_string_forms():
    path = StorePath(OUT)
    assert str(path) == OUT
    assert repr(path) == f"StorePath({OUT!r})"
    assert StorePath(OUT) == path
    assert len({StorePath(OUT), path}) == 1


def test_is_derivation():
    assert StorePath(DRV).is_derivation()
    assert not StorePath(OUT).is_derivation()


def test_into_derivation():
    derivation = StorePath(DRV).into_derivation(Profile)
    assert derivation == StoreDerivation(StorePath(DRV), Profile)
    assert str(derivation) == repr(StorePath(DRV))


def test_into_derivation_rejects_outputs():
    with pytest.raises(NotADerivationError) as info:
        StorePath(OUT).into_derivation(Profile)
    assert info.value.store_path == StorePath(OUT)


@pytest.mark.asyncio
async def test_realize_builds_profile():
    host = FakeHost([StorePath(OUT)])
    derivation = StorePath(DRV).into_derivation(Profile)

    profile = await derivation.realize(host)

    assert profile == Profile(StorePath(OUT))
    assert host.calls == [("realize", StorePath(DRV))]


@pytest.mark.asyncio
async def test_realize_remote_builds_profile():
    host = FakeHost([StorePath(OUT)])
    profile = await StorePath(DRV).into_derivation(Profile).realize_remote(host)
    assert profile.store_path == StorePath(OUT)
    assert host.calls == [("realize_remote", StorePath(DRV))]


@pytest.mark.asyncio
async def test_realize_with_too_many_outputs():
    host = FakeHost([StorePath(OUT), StorePath("/nix/store/cccc-other")])
    with pytest.raises(BadOutputError) as info:
        await StorePath(DRV).into_derivation(Profile).realize(host)
    assert info.value.output == "Build resulted in more than 1 store path"


def test_from_build_result_empty():
    with pytest.raises(BadOutputError) as info:
        Profile.from_build_result([])
    assert info.value.output == "There is no store path"


def test_from_store_path_rejects_missing_profile():
    with pytest.raises(InvalidProfileError):
        Profile.from_store_path(StorePath("/nix/store/zzzz-does-not-exist"))


def test_activation_command():
    profile = Profile(StorePath(OUT))
    assert profile.activation_command("switch") == [
        OUT + "/bin/switch-to-configuration",
        "switch",
    ]
    assert profile.activation_command(None) is None


@pytest.mark.asyncio
async def test_references(tmp_path, monkeypatch):
    install_script(
        tmp_path,
        "nix-store",
        'echo /nix/store/dep1-glibc\necho /nix/store/dep2-bash\n',
    )
    monkeypatch.setenv("PATH", str(tmp_path))

    references = await StorePath(OUT).references()

    assert references == [
        StorePath("/nix/store/dep1-glibc"),
        StorePath("/nix/store/dep2-bash"),
    ]


@pytest.mark.asyncio
async def test_create_gc_root_arguments(tmp_path, monkeypatch):
    record = tmp_path / "record.txt"
    install_script(tmp_path, "nix-store", "printf '%s\\n' \"$@\" > \"$RECORD_FILE\"\n")
    monkeypatch.setenv("PATH", str(tmp_path))
    monkeypatch.setenv("RECORD_FILE", str(record))
    root = tmp_path / "gcroot"

    await Profile(StorePath(OUT)).create_gc_root(root)

    assert record.read_text().splitlines() == [
        "--no-build-output",
        "--indirect",
        "--add-root",
        str(root),
        "--realise",
        OUT,
    ]


@pytest.mark.asyncio
async def test_create_gc_root_failure(tmp_path, monkeypatch):
    install_script(tmp_path, "nix-store", "exit 2\n")
    monkeypatch.setenv("PATH", str(tmp_path))

    with pytest.raises(CommandFailedError) as info:
        await Profile(StorePath(OUT)).create_gc_root(tmp_path / "gcroot")
    assert info.value.returncode == 2