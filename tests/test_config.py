import json
from pathlib import Path

import pytest

from llmirc.config.loader import (
    camel_to_snake,
    convert_keys,
    convert_to_camel,
    get_config_path,
    load_config,
    save_config,
)
from llmirc.config.schema import Config
from llmirc.core.errors import ConfigError


def test_defaults_match_classic_setup() -> None:
    config = Config()
    assert config.irc.server == "irc.libera.chat"
    assert config.irc.port == 6667
    assert config.irc.channels == ["#chat_0098"]
    assert config.irc.nickname == "bot"
    assert config.model.api_key_env == "OPENROUTER_API_KEY"
    assert config.model.api_base == "https://openrouter.ai/api/v1"
    assert config.trigger.lead is False
    assert config.loop_guard.suppress_after == 5


def test_load_camel_case_file_with_overrides(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "irc": {"server": "irc.example", "channels": ["one", "#two", "#ONE"]},
                "model": {"extraHeaders": {"HTTP-Referer": "https://x"}},
                "trigger": {"botNicks": ["helper*"], "idleThresholdSeconds": 30},
                "rateLimit": {"maxMessages": 3},
            }
        )
    )
    config = load_config(path, overrides={"irc": {"nickname": "talker"}, "trigger": {"lead": True}})
    assert config.irc.server == "irc.example"
    assert config.irc.nickname == "talker"
    assert config.irc.channels == ["#one", "#two"]
    assert config.model.extra_headers == {"HTTP-Referer": "https://x"}
    assert config.trigger.bot_nicks == ["helper*"]
    assert config.trigger.idle_threshold_seconds == 30
    assert config.trigger.lead is True
    assert config.rate_limit.max_messages == 3


def test_env_vars_fill_in_nested_settings(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("LLMIRC_HOME", str(tmp_path))
    monkeypatch.setenv("LLMIRC_IRC__NICKNAME", "envbot")
    monkeypatch.setenv("LLMIRC_TRIGGER__LEAD", "true")
    config = load_config()
    assert config.irc.nickname == "envbot"
    assert config.trigger.lead is True


def test_invalid_config_raises_config_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("LLMIRC_HOME", str(tmp_path))
    bad_json = tmp_path / "bad.json"
    bad_json.write_text("{not json")
    with pytest.raises(ConfigError):
        load_config(bad_json)

    bad_value = tmp_path / "value.json"
    bad_value.write_text(json.dumps({"irc": {"port": 70000}}))
    with pytest.raises(ConfigError):
        load_config(bad_value)

    window = tmp_path / "window.json"
    window.write_text(json.dumps({"conversation": {"capacity": 5, "windowTurns": 10}}))
    with pytest.raises(ConfigError):
        load_config(window)

    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.json")

    with pytest.raises(ConfigError):
        load_config(overrides={"irc": {"channels": [" "]}})


def test_save_config_roundtrip_keeps_header_keys(tmp_path: Path) -> None:
    path = tmp_path / "out" / "config.json"
    config = Config(model={"extra_headers": {"X-Custom_Header": "1"}})
    save_config(config, path)

    raw = json.loads(path.read_text())
    assert "apiKeyEnv" in raw["model"]
    assert raw["model"]["extraHeaders"] == {"X-Custom_Header": "1"}
    assert oct(path.stat().st_mode & 0o777) == oct(0o600)

    loaded = load_config(path)
    assert loaded.model.extra_headers == {"X-Custom_Header": "1"}


def test_data_path_follows_llmirc_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LLMIRC_HOME", str(tmp_path))
    assert get_config_path() == tmp_path / "config.json"
    assert Config().data_path == tmp_path


def test_system_prompt_is_rendered_per_channel() -> None:
    config = Config(model={"system_prompt": "I am {nick} in {channel}"})
    assert config.system_prompt_for("#a") == "I am bot in #a"
    assert config.system_prompt_for("#b", "bot_") == "I am bot_ in #b"


def test_key_conversion_helpers() -> None:
    assert camel_to_snake("idleThresholdSeconds") == "idle_threshold_seconds"
    assert convert_keys({"loopGuard": {"suspectAfter": 2}}) == {"loop_guard": {"suspect_after": 2}}
    assert convert_to_camel({"rate_limit": {"max_messages": 1}}) == {"rateLimit": {"maxMessages": 1}}
