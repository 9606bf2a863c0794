import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from llmirc import __version__
from llmirc.cli.commands import _build_overrides, app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LLMIRC_HOME", str(tmp_path))
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_build_overrides_only_includes_given_flags() -> None:
    overrides = _build_overrides(
        model="x/model",
        server=None,
        port=6697,
        channels=["#a", "#b"],
        nickname=None,
        tls=True,
        leader=True,
        respond_all=None,
        bots=["bot*"],
        api_key_env=None,
    )
    assert overrides == {
        "irc": {"port": 6697, "channels": ["#a", "#b"], "tls": True},
        "model": {"model": "x/model"},
        "trigger": {"lead": True, "bot_nicks": ["bot*"]},
    }


def test_run_without_api_key_exits_with_config_error() -> None:
    result = runner.invoke(app, ["run", "-c", "#test", "-n", "tester"])
    assert result.exit_code == 1
    assert "OPENROUTER_API_KEY" in result.stdout


def test_run_with_invalid_config_file_exits_with_config_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{")
    result = runner.invoke(app, ["run", "--config", str(path)])
    assert result.exit_code == 1


def test_onboard_then_config_shows_effective_settings(tmp_path: Path) -> None:
    result = runner.invoke(app, ["onboard"])
    assert result.exit_code == 0
    written = json.loads((tmp_path / "config.json").read_text())
    assert written["irc"]["server"] == "irc.libera.chat"

    shown = runner.invoke(app, ["config"])
    assert shown.exit_code == 0
    assert "irc.libera.chat" in shown.stdout
