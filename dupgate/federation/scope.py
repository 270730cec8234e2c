"""Scope resolution — which targets, repositories and paths to search.

resolve_scope() is a pure function of (FederationConfig, UploadEvent): calling
it twice with the same inputs yields the same ordered list. An empty result
means the upload lies outside every configured scope and the gate allows it
without contacting any target.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from dupgate.federation.model import FederationConfig, FederationTarget, RepoScope
from dupgate.models.upload import UploadEvent


@dataclass(frozen=True)
class ScopeMatch:
    """A (target, optional repo scope) pair selected for searching.

    ``scope`` is None when the target lists no repositories; the searcher then
    restricts the query to the upload's own repository key.
    """

    target: FederationTarget
    scope: Optional[RepoScope] = None

    def describe(self) -> str:
        if self.scope is None:
            return f"{self.target.url} (all repos)"
        return f"{self.target.url}, repo: {self.scope.name}"


def split_upload_path(path: str) -> tuple[str, str]:
    """Split an upload path into (directory, file_name).

    >>> split_upload_path("a/b/file.txt")
    ('a/b', 'file.txt')
    >>> split_upload_path("file.txt")
    ('', 'file.txt')
    """
    event = UploadEvent(repo_key="", path=path)
    return event.directory, event.file_name


def resolve_scope(config: FederationConfig, event: UploadEvent) -> list[ScopeMatch]:
    """Return the ordered ScopeMatch list for an upload.

    For every target in config order:
      - no repo scopes → one ``(target, None)``
      - otherwise each repo scope in order: emitted when it has no path roots,
        or when any root covers the upload directory (boundary-safe prefix).

    No deduplication is performed; a target listed twice is searched twice.
    """
    directory = event.directory
    matches: list[ScopeMatch] = []

    for target in config.targets:
        if target.matches_any_repo:
            matches.append(ScopeMatch(target=target))
            continue
        for scope in target.repos:
            if scope.covers(directory):
                matches.append(ScopeMatch(target=target, scope=scope))

    return matches
