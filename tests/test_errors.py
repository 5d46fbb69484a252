import pytest

from hivedeploy.errors import (
    BadOutputError,
    HiveError,
    KeyCommandError,
    NoFlakesSupportError,
    NotADerivationError,
    UnsupportedError,
    run_wrapped,
    troubleshoot,
)


def _make_both(path):
    (path / "flake.nix").write_text("{}")
    (path / "hive.nix").write_text("{}")


def test_troubleshoot_hints_when_both_files_exist(tmp_path):
    _make_both(tmp_path)
    hints = troubleshoot(NoFlakesSupportError(), False, tmp_path)
    assert hints[0].startswith("Hint: You have both flake.nix and hive.nix")
    assert any("-f hive.nix" in line for line in hints)


def test_troubleshoot_no_hint_when_config_given(tmp_path):
    _make_both(tmp_path)
    assert troubleshoot(NoFlakesSupportError(), True, tmp_path) == []


def test_troubleshoot_no_hint_with_only_flake(tmp_path):
    (tmp_path / "flake.nix").write_text("{}")
    assert troubleshoot(NoFlakesSupportError(), False, tmp_path) == []


def test_troubleshoot_ignores_other_errors(tmp_path):
    _make_both(tmp_path)
    assert troubleshoot(UnsupportedError(), False, tmp_path) == []


def test_error_attributes():
    assert BadOutputError("garbage").output == "garbage"
    assert NotADerivationError("/nix/store/abc-foo").store_path == "/nix/store/abc-foo"
    err = KeyCommandError(3, "boom")
    assert (err.returncode, err.stderr) == (3, "boom")
    assert "boom" in str(err)
    assert isinstance(err, HiveError)


@pytest.mark.asyncio
async def test_run_wrapped_returns_sync_result():
    assert await run_wrapped(lambda: 42, False) == 42


@pytest.mark.asyncio
async def test_run_wrapped_returns_async_result():
    async def work():
        return "done"

    assert await run_wrapped(work, False) == "done"


@pytest.mark.asyncio
async def test_run_wrapped_exits_with_code_one(tmp_path, monkeypatch, capsys):
    _make_both(tmp_path)
    monkeypatch.chdir(tmp_path)

    async def fail():
        raise NoFlakesSupportError()

    with pytest.raises(SystemExit) as excinfo:
        await run_wrapped(fail, False)
    assert excinfo.value.code == 1
    assert "-f hive.nix" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_run_wrapped_lets_other_exceptions_through():
    def fail():
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await run_wrapped(fail, False)