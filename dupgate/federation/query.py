"""Existence filters and their rendering for the remote search endpoint.

An ExistenceFilter is the structured question "does a file with this name exist
in these repositories under these paths?". build_existence_filter() derives it
from a ScopeMatch and the upload; render_aql() turns it into the
``items.find(...)`` text the target's search endpoint accepts.

Path restriction rules:
  - scope with path roots → OR of boundary-safe prefix clauses, one per root
    (``path == root`` or ``path`` matches ``root/*``)
  - otherwise → the upload's own directory, "." for repository-root files

The file name is compared exactly. Only a filter without a name (upload path
ending in "/") uses the ``$match: "*"`` wildcard.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from dupgate.constants import DEFAULT_RESULT_LIMIT, REPO_ROOT_PATH
from dupgate.federation.scope import ScopeMatch
from dupgate.models.upload import UploadEvent
from dupgate.utils.logger import get_logger

logger = get_logger(__name__)

ANY_NAME = "*"


@dataclass(frozen=True)
class ExistenceFilter:
    """Structured existence query for one target.

    Exactly one of ``path`` (exact directory) and ``path_prefixes`` is used:
    prefixes win when present. ``name`` None matches any file name.
    """

    repos: tuple[str, ...]
    name: Optional[str]
    path: Optional[str] = None
    path_prefixes: tuple[str, ...] = ()
    limit: int = DEFAULT_RESULT_LIMIT


def build_existence_filter(
    match: ScopeMatch,
    event: UploadEvent,
    limit: int = DEFAULT_RESULT_LIMIT,
) -> ExistenceFilter:
    """Build the filter for one ScopeMatch."""
    repo = match.scope.name if match.scope is not None else event.repo_key

    name = event.file_name or None
    if name is None:
        logger.warning(
            "Upload file name is empty — matching any file name within the path",
            target=match.target.url,
        )

    if match.scope is not None and not match.scope.is_whole_repo:
        return ExistenceFilter(
            repos=(repo,),
            name=name,
            path_prefixes=match.scope.path_roots,
            limit=limit,
        )

    return ExistenceFilter(
        repos=(repo,),
        name=name,
        path=event.directory or REPO_ROOT_PATH,
        limit=limit,
    )


def _or(clauses: list[dict[str, Any]]) -> dict[str, Any]:
    if len(clauses) == 1:
        return clauses[0]
    return {"$or": clauses}


def find_criteria(existence_filter: ExistenceFilter) -> dict[str, Any]:
    """Return the ``$and`` criteria object for ``items.find()``."""
    criteria: list[dict[str, Any]] = []

    if existence_filter.repos:
        criteria.append(_or([{"repo": r} for r in existence_filter.repos]))

    if existence_filter.path_prefixes:
        prefix_clauses: list[dict[str, Any]] = []
        for root in existence_filter.path_prefixes:
            prefix_clauses.append({"path": root})
            prefix_clauses.append({"path": {"$match": f"{root}/*"}})
        criteria.append({"$or": prefix_clauses})
    else:
        criteria.append({"path": existence_filter.path or REPO_ROOT_PATH})

    if existence_filter.name is None:
        criteria.append({"name": {"$match": ANY_NAME}})
    else:
        # Exact equality: ? and * in real file names stay literal.
        criteria.append({"name": existence_filter.name})
    return {"$and": criteria}


def render_aql(existence_filter: ExistenceFilter) -> str:
    """Render an ExistenceFilter as an AQL ``items.find`` query string."""
    find_clause = json.dumps(find_criteria(existence_filter), separators=(",", ":"))
    query = f'items.find({find_clause}).include("repo","path","name")'
    if existence_filter.limit > 0:
        query = f"{query}.limit({existence_filter.limit})"
    return query
