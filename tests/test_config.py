from __future__ import annotations

from pathlib import Path

import pytest

from continuity.config import RunConfig, dump_config, load_run_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        "CONTINUITY_COMMAND",
        "CONTINUITY_ITEMS",
        "CONTINUITY_ITEMS_FILE",
        "CONTINUITY_OUTPUT",
        "CONTINUITY_TIMEOUT",
        "CONTINUITY_PROGRESS",
        "CONTINUITY_JSON_LOGS",
        "CONTINUITY_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_from_run_only() -> None:
    command, cfg = load_run_config(argv=["run"])
    assert command == "run"
    assert isinstance(cfg, RunConfig)
    assert cfg.command is None
    assert cfg.items == []
    assert cfg.timeout is None
    assert cfg.progress is True
    assert cfg.log_level == "INFO"


def test_cli_items_and_command() -> None:
    _, cfg = load_run_config(argv=["run", "-c", "echo {item}", "a", "b"])
    assert cfg.command == "echo {item}"
    assert cfg.items == ["a", "b"]


def test_env_overrides_config_file(monkeypatch, tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("command: from-config\nitems: [1, 2]\n", encoding="utf-8")
    monkeypatch.setenv("CONTINUITY_COMMAND", "from-env")

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert cfg.command == "from-env"
    assert cfg.items == ["1", "2"]


def test_cli_overrides_env_and_config(monkeypatch, tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("command: from-config\ntimeout: 3\nprogress: false\n", encoding="utf-8")
    monkeypatch.setenv("CONTINUITY_COMMAND", "from-env")
    monkeypatch.setenv("CONTINUITY_TIMEOUT", "9")

    _, cfg = load_run_config(
        argv=["run", "--config", str(cfg_path), "--command", "from-cli", "--timeout", "1.5"]
    )
    assert cfg.command == "from-cli"
    assert cfg.timeout == 1.5
    assert cfg.progress is False


def test_json_config_file(tmp_path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text('{"items": "a, b", "output": "out/results.json"}', encoding="utf-8")

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert cfg.items == ["a", "b"]
    assert cfg.output == Path("out/results.json")


def test_items_from_env(monkeypatch) -> None:
    monkeypatch.setenv("CONTINUITY_ITEMS", "x,y")
    _, cfg = load_run_config(argv=["run"])
    assert cfg.items == ["x", "y"]


def test_env_boolean_overrides_config_boolean(monkeypatch, tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("progress: true\n", encoding="utf-8")
    monkeypatch.setenv("CONTINUITY_PROGRESS", "0")

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert cfg.progress is False


def test_cli_can_disable_progress() -> None:
    _, cfg = load_run_config(argv=["run", "--no-progress"])
    assert cfg.progress is False


def test_unknown_config_keys_warn(tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("command: from-config\nunknown_key: value\n", encoding="utf-8")

    with pytest.warns(UserWarning):
        _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert cfg.command == "from-config"


def test_invalid_config_type_raises(tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("timeout: soon\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_run_config(argv=["run", "--config", str(cfg_path)])


def test_non_positive_timeout_raises() -> None:
    with pytest.raises(ValueError):
        load_run_config(argv=["run", "--timeout", "0"])


def test_missing_config_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_run_config(argv=["run", "--config", str(tmp_path / "missing.yaml")])


def test_dump_config_is_plain_data() -> None:
    _, cfg = load_run_config(argv=["run", "--items-file", "items.txt", "a"])
    dumped = dump_config(cfg)
    assert dumped["items_file"] == "items.txt"
    assert dumped["items"] == ["a"]
    assert dumped["output"] is None
