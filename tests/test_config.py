"""Configuration and credential loading."""

import os

import pytest

from mudozzal.config import load_config, load_env, require_env, resolve_path
from mudozzal.errors import MissingCredentialsError

SHIPPED_CONFIG = os.path.join(os.path.dirname(__file__), "..", "configs", "pipeline.yaml")


def test_defaults_when_file_missing(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config["collection"]["min_bytes"] == 5000
    assert config["classification"]["model"] == "gemini-2.5-flash"


def test_yaml_overrides_are_merged(tmp_path):
    path = tmp_path / "pipeline.yaml"
    path.write_text(
        "collection:\n  keywords: ['무야호 짤']\nclassification:\n  request_interval: 0\n",
        encoding="utf-8",
    )
    config = load_config(str(path))
    assert config["collection"]["keywords"] == ["무야호 짤"]
    assert config["collection"]["results_per_keyword"] == 20
    assert config["classification"]["request_interval"] == 0
    assert config["classification"]["temperature"] == 0.3


def test_shipped_config_loads():
    config = load_config(SHIPPED_CONFIG)
    assert config["collection"]["keywords"]
    assert config["paths"]["manifest"] == "raw/manifest.json"


def test_resolve_path_uses_root_dir(tmp_path):
    config = load_config(None)
    config["paths"]["root_dir"] = str(tmp_path)
    assert resolve_path(config, "manifest") == str(tmp_path / "raw" / "manifest.json")


def test_env_file_does_not_override_existing(tmp_path, monkeypatch):
    env = tmp_path / ".env.local"
    env.write_text("GEMINI_API_KEY=from-file\nSERPAPI_KEY=serp-from-file\n", encoding="utf-8")
    monkeypatch.setenv("GEMINI_API_KEY", "from-shell")
    monkeypatch.setenv("SERPAPI_KEY", "")
    monkeypatch.delenv("SERPAPI_KEY")

    assert load_env(str(env)) is True
    assert require_env("GEMINI_API_KEY") == "from-shell"
    assert require_env("SERPAPI_KEY") == "serp-from-file"


def test_missing_env_file_is_ignored(tmp_path):
    assert load_env(str(tmp_path / ".env.local")) is False


def test_require_env_rejects_placeholder(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "your_api_key_here")
    with pytest.raises(MissingCredentialsError):
        require_env("GEMINI_API_KEY")
    monkeypatch.delenv("GEMINI_API_KEY")
    with pytest.raises(MissingCredentialsError):
        require_env("GEMINI_API_KEY")
