"""Tests for runtime configuration layering."""

import json

from bulwark.config_runtime import DEFAULTS, load_runtime_config


def test_defaults_when_nothing_is_configured(tmp_path, monkeypatch):
    monkeypatch.delenv("BULWARK_LIMITS_MAX_FILE_SIZE", raising=False)
    cfg = load_runtime_config(str(tmp_path))
    assert cfg == DEFAULTS
    assert cfg is not DEFAULTS


def test_config_file_overrides_defaults(tmp_path):
    (tmp_path / ".bulwark").mkdir()
    (tmp_path / ".bulwark" / "config.json").write_text(json.dumps({
        "limits": {"max_file_size": 1024, "concurrency": "many"},
        "timeouts": {"matcher_timeout": 1},
        "report": {"unknown_key": 1},
    }))
    cfg = load_runtime_config(str(tmp_path))
    assert cfg["limits"]["max_file_size"] == 1024
    assert cfg["limits"]["concurrency"] == DEFAULTS["limits"]["concurrency"]
    assert cfg["timeouts"]["matcher_timeout"] == 1


def test_env_overrides_config_file(tmp_path, monkeypatch):
    (tmp_path / ".bulwark").mkdir()
    (tmp_path / ".bulwark" / "config.json").write_text(json.dumps({"limits": {"max_file_size": 1024}}))
    monkeypatch.setenv("BULWARK_LIMITS_MAX_FILE_SIZE", "2048")
    monkeypatch.setenv("BULWARK_SCAN_IGNORE", "vendor/**, *.gen.ts")
    monkeypatch.setenv("BULWARK_TIMEOUTS_MATCHER_TIMEOUT", "0.5")

    cfg = load_runtime_config(str(tmp_path))

    assert cfg["limits"]["max_file_size"] == 2048
    assert cfg["scan"]["ignore"] == ["vendor/**", "*.gen.ts"]
    assert cfg["timeouts"]["matcher_timeout"] == 0.5


def test_invalid_env_value_keeps_previous(tmp_path, monkeypatch):
    monkeypatch.setenv("BULWARK_LIMITS_CONCURRENCY", "lots")
    cfg = load_runtime_config(str(tmp_path))
    assert cfg["limits"]["concurrency"] == DEFAULTS["limits"]["concurrency"]


def test_broken_config_file_falls_back(tmp_path):
    (tmp_path / ".bulwark").mkdir()
    (tmp_path / ".bulwark" / "config.json").write_text("{not json")
    cfg = load_runtime_config(str(tmp_path))
    assert cfg["limits"] == DEFAULTS["limits"]
