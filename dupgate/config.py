"""Config loading for DupGate.

Reads `.dupgate/config.yaml` (or `~/.dupgate/config.yaml`).
Raises SystemExit on parse errors or missing `version` field.
If no config file is found, returns default values (safe to run without config).

This is the SERVICE configuration (where the federation document lives, how to
search, where to listen). The federation document itself is fetched from the
configuration store for every upload — see dupgate/federation/store.py.

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. DUPGATE_CONFIG environment variable (if set)
  3. `.dupgate/config.yaml` (working directory — for development)
  4. `~/.dupgate/config.yaml` (home directory — for production deployments)

Environment variable overrides:
  DUPGATE_PORT           — overrides server.port
  DUPGATE_PLATFORM_URL   — overrides store.base_url
  DUPGATE_PLATFORM_TOKEN — bearer token for the store and all targets
                           (never read from the config file)
  DUPGATE_CONFIG         — sets an explicit config file path to try first
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from dupgate.constants import (
    DEFAULT_FEDERATION_CONFIG_KEY,
    DEFAULT_HTTP_TIMEOUT_S,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_RESULT_LIMIT,
    DEFAULT_TARGET_SCHEME,
)
from dupgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_STORE_BACKENDS: frozenset[str] = frozenset({"platform", "file"})

VALID_SCHEMES: frozenset[str] = frozenset({"http", "https"})

DEFAULT_CONFIG_PATHS = [
    ".dupgate/config.yaml",
    os.path.expanduser("~/.dupgate/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class StoreConfig:
    """Where the federation document is read from.

    backend:   "platform" (HTTP GET from the platform) or "file" (local disk)
    base_url:  Platform base URL for the "platform" backend
    directory: Root directory for the "file" backend
    key:       Document key inside the store
    """

    backend: str = "platform"
    base_url: str = "http://localhost:8082"
    directory: str = ".dupgate"
    key: str = DEFAULT_FEDERATION_CONFIG_KEY


@dataclass
class SearchConfig:
    """Federated search settings."""

    scheme: str = DEFAULT_TARGET_SCHEME        # for targets configured as bare host names
    result_limit: int = DEFAULT_RESULT_LIMIT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    timeout_s: float = DEFAULT_HTTP_TIMEOUT_S


@dataclass
class ServerConfig:
    """HTTP binding and uvicorn connection limits.

    The limits bound how many before-upload hooks are served at once; a caller
    over ``limit_concurrency`` gets HTTP 503 from uvicorn.
    """

    host: str = "127.0.0.1"
    port: int = 4343
    limit_concurrency: int = 100
    backlog: int = 50
    timeout_keep_alive: int = 5

    def uvicorn_options(self) -> dict[str, Any]:
        """Keyword arguments for ``uvicorn.run()``."""
        return {
            "host": self.host,
            "port": self.port,
            "limit_concurrency": self.limit_concurrency,
            "backlog": self.backlog,
            "timeout_keep_alive": self.timeout_keep_alive,
        }


@dataclass
class Config:
    """Root configuration object populated from .dupgate/config.yaml.

    All fields have safe defaults — DupGate can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    store: StoreConfig = field(default_factory=StoreConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    platform_token: Optional[str] = None
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On invalid store.backend or search.scheme, a
                           non-positive search.timeout_s, or any integer limit in
                           search / server that is not a positive integer.
        """
        # ── Store ─────────────────────────────────────────────────────────────
        store_raw = raw.get("store") or {}
        backend = store_raw.get("backend", "platform")
        if backend not in VALID_STORE_BACKENDS:
            _config_error(
                f"CONFIG ERROR: Invalid store.backend: '{backend}'. "
                f"Supported values: {sorted(VALID_STORE_BACKENDS)}."
            )
        store = StoreConfig(
            backend=backend,
            base_url=store_raw.get("base_url", StoreConfig.base_url),
            directory=store_raw.get("directory", StoreConfig.directory),
            key=store_raw.get("key", DEFAULT_FEDERATION_CONFIG_KEY),
        )

        # ── Search ────────────────────────────────────────────────────────────
        search_raw = raw.get("search") or {}
        scheme = search_raw.get("scheme", DEFAULT_TARGET_SCHEME)
        if scheme not in VALID_SCHEMES:
            _config_error(
                f"CONFIG ERROR: Invalid search.scheme: '{scheme}'. "
                f"Supported values: {sorted(VALID_SCHEMES)}."
            )
        search = SearchConfig(
            scheme=scheme,
            result_limit=_positive_int(search_raw, "search", "result_limit", DEFAULT_RESULT_LIMIT),
            max_concurrency=_positive_int(
                search_raw, "search", "max_concurrency", DEFAULT_MAX_CONCURRENCY
            ),
            timeout_s=_positive_float(search_raw, "search", "timeout_s", DEFAULT_HTTP_TIMEOUT_S),
        )

        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", ServerConfig.host),
            port=_positive_int(server_raw, "server", "port", ServerConfig.port),
            limit_concurrency=_positive_int(
                server_raw, "server", "limit_concurrency", ServerConfig.limit_concurrency
            ),
            backlog=_positive_int(server_raw, "server", "backlog", ServerConfig.backlog),
            timeout_keep_alive=_positive_int(
                server_raw, "server", "timeout_keep_alive", ServerConfig.timeout_keep_alive
            ),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            store=store,
            search=search,
            server=server,
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate DupGate service configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, non-mapping root, missing or
                       unsupported ``version``, invalid section values, or an
                       invalid ``DUPGATE_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("DUPGATE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "DupGate refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _config_error(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "DupGate is configured to bind on 0.0.0.0 (all interfaces). "
            "Restrict access to the platform that calls the before-upload hook."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        store_backend=config.store.backend,
        max_concurrency=config.search.max_concurrency,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If DUPGATE_PORT is set but not a valid integer.
    """
    env_port = os.environ.get("DUPGATE_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _config_error(
                f"CONFIG ERROR: DUPGATE_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )

    env_url = os.environ.get("DUPGATE_PLATFORM_URL")
    if env_url:
        config.store.base_url = env_url

    env_token = os.environ.get("DUPGATE_PLATFORM_TOKEN")
    if env_token:
        config.platform_token = env_token


def _positive_int(section: dict, section_name: str, key: str, default: int) -> int:
    value = section.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        _config_error(
            f"CONFIG ERROR: {section_name}.{key} must be a positive integer, got: {value!r}"
        )
    return value


def _positive_float(section: dict, section_name: str, key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        _config_error(
            f"CONFIG ERROR: {section_name}.{key} must be a positive number, got: {value!r}"
        )
    return float(value)


def _config_error(msg: str) -> NoReturn:
    print(msg, file=sys.stderr)
    raise SystemExit(1)
