"""Federation document model and tolerant parser.

Parses the JSON federation document fetched from the configuration store:

    {
      "jpds": [
        {"url": "a.example.io", "repos": ["libs", {"name": "rel", "paths": ["immutable"]}]}
      ],
      "action": "block"
    }

into an immutable FederationConfig.

INVARIANTS:
  - parse_federation_config() NEVER raises.
  - Empty or unparsable input → no targets, action "warn" (fail-open).
  - A FederationConfig never holds a target without a url or a repo scope
    without a name. Malformed sub-entries are dropped, each with a diagnostic
    appended to ParseResult.diagnostics and a WARNING log.
  - ``action`` is kept verbatim; validity is judged by the policy engine only
    (dupgate/gate/policy.py).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from dupgate.constants import DEFAULT_ACTION
from dupgate.utils.logger import get_logger

logger = get_logger(__name__)


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RepoScope:
    """One repository inside a federation target.

    Fields:
        name:       Repository name on the target (required, non-empty).
        path_roots: Directories that are in scope. Empty → whole repository.
    """

    name: str
    path_roots: tuple[str, ...] = ()

    @property
    def is_whole_repo(self) -> bool:
        return not self.path_roots

    def covers(self, directory: str) -> bool:
        """Boundary-safe prefix test of an upload directory against path_roots.

        ``directory`` is covered iff it equals a root or starts with
        ``root + "/"``. A whole-repo scope covers everything.
        """
        if self.is_whole_repo:
            return True
        return any(
            directory == root or directory.startswith(root + "/")
            for root in self.path_roots
        )


@dataclass(frozen=True)
class FederationTarget:
    """One remote storage instance participating in the federation."""

    url: str
    repos: tuple[RepoScope, ...] = ()

    @property
    def matches_any_repo(self) -> bool:
        """True when no repositories are listed (search without restriction)."""
        return not self.repos

    def repo_scope(self, repo_name: str) -> Optional[RepoScope]:
        """Return the first RepoScope with this name, or None."""
        for scope in self.repos:
            if scope.name == repo_name:
                return scope
        return None


@dataclass(frozen=True)
class FederationConfig:
    """Normalized federation description. Rebuilt for every upload event."""

    targets: tuple[FederationTarget, ...] = ()
    action: Optional[str] = DEFAULT_ACTION

    @classmethod
    def empty(cls) -> "FederationConfig":
        """Fail-open default: no targets, action "warn"."""
        return cls(targets=(), action=DEFAULT_ACTION)

    def targets_for_repo(self, repo_name: str) -> list[FederationTarget]:
        """Return every target that lists ``repo_name`` among its repositories."""
        return [t for t in self.targets if t.repo_scope(repo_name) is not None]


class ParseStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    INVALID = "invalid"


@dataclass
class ParseResult:
    """Tagged outcome of parse_federation_config()."""

    status: ParseStatus
    config: FederationConfig
    diagnostics: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == ParseStatus.OK


# ─── Parsing ─────────────────────────────────────────────────────────────────


def parse_federation_config(raw_text: Optional[str]) -> ParseResult:
    """Parse raw federation document text.

    Args:
        raw_text: Text fetched from the configuration store ("" when unavailable).

    Returns:
        ParseResult. ``status`` is EMPTY for blank input, INVALID for text that is
        not a JSON object, OK otherwise (even when sub-entries were dropped).
    """
    if raw_text is None or not raw_text.strip():
        logger.warning("Federation config is empty — using default empty config")
        return ParseResult(status=ParseStatus.EMPTY, config=FederationConfig.empty())

    try:
        raw = json.loads(raw_text)
    except (json.JSONDecodeError, TypeError, ValueError) as exc:
        logger.error(
            "Failed to parse federation config JSON — using default empty config",
            error=str(exc),
        )
        return ParseResult(
            status=ParseStatus.INVALID,
            config=FederationConfig.empty(),
            diagnostics=[f"document is not valid JSON: {exc}"],
        )

    if not isinstance(raw, dict):
        logger.error(
            "Federation config root is not an object — using default empty config",
            actual_type=type(raw).__name__,
        )
        return ParseResult(
            status=ParseStatus.INVALID,
            config=FederationConfig.empty(),
            diagnostics=[f"document root is {type(raw).__name__}, expected object"],
        )

    diagnostics: list[str] = []
    targets = _parse_targets(raw.get("jpds"), diagnostics)

    action = raw.get("action")
    if action is not None and not isinstance(action, str):
        diagnostics.append(f"action is {type(action).__name__}, expected string")
        logger.warning("Federation action is not a string — treated as unset", action=action)
        action = None

    return ParseResult(
        status=ParseStatus.OK,
        config=FederationConfig(targets=tuple(targets), action=action),
        diagnostics=diagnostics,
    )


def _parse_targets(raw_targets: Any, diagnostics: list[str]) -> list[FederationTarget]:
    if raw_targets is None:
        return []
    if not isinstance(raw_targets, list):
        diagnostics.append(f"jpds is {type(raw_targets).__name__}, expected list")
        logger.warning("jpds key is not a list — no targets", actual_type=type(raw_targets).__name__)
        return []

    targets: list[FederationTarget] = []
    for i, item in enumerate(raw_targets):
        if not isinstance(item, dict):
            diagnostics.append(f"jpds[{i}] dropped: not an object")
            logger.warning("Target entry is not an object — skipping", index=i)
            continue

        url = item.get("url")
        if not url or not isinstance(url, str):
            diagnostics.append(f"jpds[{i}] dropped: missing url")
            logger.warning("Target entry missing url — skipping", index=i, entry=item)
            continue

        repos = _parse_repos(item.get("repos"), f"jpds[{i}]", diagnostics)
        targets.append(FederationTarget(url=url, repos=tuple(repos)))

    return targets


def _parse_repos(raw_repos: Any, where: str, diagnostics: list[str]) -> list[RepoScope]:
    if raw_repos is None:
        return []
    if not isinstance(raw_repos, list):
        diagnostics.append(f"{where}.repos ignored: not a list")
        logger.warning("Target repos is not a list — searching any repository", target=where)
        return []

    scopes: list[RepoScope] = []
    for j, repo in enumerate(raw_repos):
        if isinstance(repo, str):
            if repo:
                scopes.append(RepoScope(name=repo))
            else:
                diagnostics.append(f"{where}.repos[{j}] dropped: empty name")
            continue

        if isinstance(repo, dict):
            name = repo.get("name")
            if name and isinstance(name, str):
                roots = _parse_paths(repo.get("paths"), f"{where}.repos[{j}]", diagnostics)
                scopes.append(RepoScope(name=name, path_roots=tuple(roots)))
                continue

        diagnostics.append(f"{where}.repos[{j}] dropped: missing name")
        logger.warning("Repo entry missing name — skipping", target=where, index=j)

    return scopes


def _parse_paths(raw_paths: Any, where: str, diagnostics: list[str]) -> list[str]:
    if raw_paths is None:
        return []
    if not isinstance(raw_paths, list):
        diagnostics.append(f"{where}.paths ignored: not a list")
        return []

    roots: list[str] = []
    for k, raw_root in enumerate(raw_paths):
        if not isinstance(raw_root, str):
            diagnostics.append(f"{where}.paths[{k}] dropped: not a string")
            continue
        root = raw_root.strip("/")
        if not root:
            diagnostics.append(f"{where}.paths[{k}] dropped: empty path")
            continue
        roots.append(root)
    return roots
