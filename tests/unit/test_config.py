"""Unit tests for service config loading and validation.

Covers:
  - Missing config file → Config.defaults(), no exception
  - Valid file → sections populated, unknown keys ignored
  - Invalid YAML / missing or unsupported version / bad values → SystemExit(1)
  - DUPGATE_* environment overrides
"""

from __future__ import annotations

import textwrap

import pytest

from dupgate.config import (
    SUPPORTED_VERSIONS,
    Config,
    SearchConfig,
    StoreConfig,
    load_config,
)
from dupgate.constants import DEFAULT_FEDERATION_CONFIG_KEY


def _write(tmp_path, body: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return str(path)


# ─── Defaults ─────────────────────────────────────────────────────────────────


class TestDefaults:
    def test_nonexistent_path_returns_defaults(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr("dupgate.config.DEFAULT_CONFIG_PATHS", [])
        config = load_config(str(tmp_path / "missing.yaml"))
        assert config == Config.defaults()
        assert config.path is None

    def test_default_values(self) -> None:
        config = Config.defaults()
        assert config.version == 1
        assert config.store == StoreConfig()
        assert config.store.backend == "platform"
        assert config.store.key == DEFAULT_FEDERATION_CONFIG_KEY
        assert config.search == SearchConfig()
        assert config.search.result_limit == 1
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 4343
        assert config.server.limit_concurrency == 100
        assert config.platform_token is None

    def test_supported_versions(self) -> None:
        assert SUPPORTED_VERSIONS == frozenset({1})


# ─── Loading ──────────────────────────────────────────────────────────────────


class TestLoadFile:
    def test_full_file(self, tmp_path) -> None:
        path = _write(tmp_path, """
            version: 1
            store:
              backend: file
              directory: /etc/dupgate
              key: fed.json
            search:
              scheme: http
              result_limit: 5
              max_concurrency: 2
              timeout_s: 3
            server:
              host: 0.0.0.0
              port: 9000
              limit_concurrency: 20
              backlog: 10
              timeout_keep_alive: 2
            unknown_section:
              ignored: true
        """)
        config = load_config(path)

        assert config.path == path
        assert config.store.backend == "file"
        assert config.store.directory == "/etc/dupgate"
        assert config.store.key == "fed.json"
        assert config.search.scheme == "http"
        assert config.search.result_limit == 5
        assert config.search.max_concurrency == 2
        assert config.search.timeout_s == 3.0
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 9000
        assert config.server.uvicorn_options() == {
            "host": "0.0.0.0",
            "port": 9000,
            "limit_concurrency": 20,
            "backlog": 10,
            "timeout_keep_alive": 2,
        }

    def test_version_only_populates_defaults(self, tmp_path) -> None:
        config = load_config(_write(tmp_path, "version: 1\n"))
        assert config.store == StoreConfig()
        assert config.search == SearchConfig()

    def test_dupgate_config_env_var(self, tmp_path, monkeypatch) -> None:
        path = _write(tmp_path, "version: 1\nserver:\n  port: 5555\n")
        monkeypatch.setenv("DUPGATE_CONFIG", path)
        assert load_config().server.port == 5555


# ─── Startup refusal ──────────────────────────────────────────────────────────


class TestInvalidConfig:
    @pytest.mark.parametrize(
        "body",
        [
            "version: [unclosed\n",
            "",
            "- a\n- b\n",
            "store:\n  backend: file\n",
            "version: 2\n",
            "version: 1\nstore:\n  backend: s3\n",
            "version: 1\nsearch:\n  scheme: ftp\n",
            "version: 1\nsearch:\n  result_limit: 0\n",
            "version: 1\nsearch:\n  max_concurrency: many\n",
            "version: 1\nsearch:\n  max_concurrency: true\n",
            "version: 1\nsearch:\n  timeout_s: soon\n",
            "version: 1\nsearch:\n  timeout_s: [1, 2]\n",
            "version: 1\nsearch:\n  timeout_s: 0\n",
            "version: 1\nserver:\n  port: http\n",
            "version: 1\nserver:\n  limit_concurrency: -1\n",
        ],
    )
    def test_refuses_to_start(self, tmp_path, body: str) -> None:
        with pytest.raises(SystemExit) as exc_info:
            load_config(_write(tmp_path, body))
        assert exc_info.value.code == 1

    def test_error_message_on_stderr(self, tmp_path, capsys) -> None:
        with pytest.raises(SystemExit):
            load_config(_write(tmp_path, "version: 7\n"))
        assert "Unsupported config version" in capsys.readouterr().err


# ─── Environment overrides ────────────────────────────────────────────────────


class TestEnvOverrides:
    def test_port_override(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("DUPGATE_PORT", "8181")
        assert load_config(_write(tmp_path, "version: 1\n")).server.port == 8181

    def test_port_override_without_file(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr("dupgate.config.DEFAULT_CONFIG_PATHS", [])
        monkeypatch.setenv("DUPGATE_PORT", "8282")
        assert load_config(str(tmp_path / "missing.yaml")).server.port == 8282

    def test_invalid_port_exits(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("DUPGATE_PORT", "not-a-port")
        with pytest.raises(SystemExit):
            load_config(_write(tmp_path, "version: 1\n"))

    def test_platform_url_and_token(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("DUPGATE_PLATFORM_URL", "https://platform.example.io")
        monkeypatch.setenv("DUPGATE_PLATFORM_TOKEN", "s3cret")
        config = load_config(_write(tmp_path, "version: 1\n"))
        assert config.store.base_url == "https://platform.example.io"
        assert config.platform_token == "s3cret"

    def test_token_never_read_from_file(self, tmp_path) -> None:
        config = load_config(_write(tmp_path, "version: 1\nplatform_token: leaked\n"))
        assert config.platform_token is None


# ─── Numeric settings ─────────────────────────────────────────────────────────


class TestNumericSettings:
    def test_timeout_error_names_the_key(self, tmp_path, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            load_config(_write(tmp_path, "version: 1\nsearch:\n  timeout_s: soon\n"))
        assert exc_info.value.code == 1
        assert "search.timeout_s" in capsys.readouterr().err

    def test_integer_timeout_accepted_as_float(self, tmp_path) -> None:
        config = load_config(_write(tmp_path, "version: 1\nsearch:\n  timeout_s: 12\n"))
        assert config.search.timeout_s == 12.0
        assert isinstance(config.search.timeout_s, float)
