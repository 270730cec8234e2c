"""Federated existence search with first-match short-circuiting.

FederatedSearcher.search() schedules one asyncio task per ScopeMatch on the
running event loop and joins them all (wait-for-all, never wait-for-first).

CONCURRENCY MODEL:
  - Single-threaded cooperative scheduling. Tasks suspend only at the remote
    call, so the check of the first-match cell is never preempted mid-step.
  - The first-match cell is written through FirstMatchCell.offer(): the first
    offer wins, later offers are ignored. The recorded match is whichever
    remote call COMPLETES first, not whichever was submitted first.
  - "Skip if already found" is the only early exit. It is applied before a
    remote call is issued (before and after waiting for a concurrency slot).
    In-flight calls are never cancelled.
  - Two tasks may both pass the check before either completes; that costs one
    extra remote call and never changes the outcome.

FAILURE POLICY (fail-open per scope):
  - Any exception from a backend is logged and recorded on that scope's
    SearchOutcome.error. It counts as "no match" for that scope only and never
    aborts sibling tasks or the overall search.
  - asyncio.CancelledError is NOT swallowed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from dupgate.constants import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_RESULT_LIMIT,
    SLOW_SEARCH_THRESHOLD_MS,
)
from dupgate.federation.client import BackendFactory
from dupgate.federation.query import build_existence_filter
from dupgate.federation.scope import ScopeMatch
from dupgate.models.upload import FoundItem, UploadEvent
from dupgate.utils.logger import OperationTimer, get_logger

_module_logger = get_logger(__name__)


@dataclass(frozen=True)
class SearchOutcome:
    """Result of searching one ScopeMatch."""

    match: ScopeMatch
    items: tuple[FoundItem, ...] = ()
    error: Optional[str] = None
    skipped: bool = False

    @property
    def found(self) -> bool:
        return bool(self.items)


@dataclass(frozen=True)
class SearchResult:
    """Aggregate of one federated search."""

    found: bool
    first_match: Optional[FoundItem]
    outcomes: tuple[SearchOutcome, ...] = ()

    @property
    def remote_calls(self) -> int:
        return sum(1 for o in self.outcomes if not o.skipped)


class FirstMatchCell:
    """Single-writer cell: the first offered match is kept, later ones ignored."""

    def __init__(self) -> None:
        self._match: Optional[FoundItem] = None

    @property
    def is_set(self) -> bool:
        return self._match is not None

    @property
    def value(self) -> Optional[FoundItem]:
        return self._match

    def offer(self, item: FoundItem) -> bool:
        """Record ``item`` if the cell is empty. Returns True if it was recorded."""
        if self._match is not None:
            return False
        self._match = item
        return True


class FederatedSearcher:
    """Fans existence queries out to the targets selected by scope resolution.

    Args:
        backend_factory: Maps a target URL to its SearchBackend.
        result_limit:    Maximum results requested per query.
        max_concurrency: Maximum remote calls in flight for one search.
        logger:          Bound logger of the calling evaluation.
    """

    def __init__(
        self,
        backend_factory: BackendFactory,
        *,
        result_limit: int = DEFAULT_RESULT_LIMIT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self._backend_factory = backend_factory
        self._result_limit = result_limit
        self._max_concurrency = max(1, max_concurrency)
        self._logger = logger or _module_logger

    def with_logger(self, logger: structlog.stdlib.BoundLogger) -> "FederatedSearcher":
        """Return a copy of this searcher that logs through ``logger``."""
        return FederatedSearcher(
            self._backend_factory,
            result_limit=self._result_limit,
            max_concurrency=self._max_concurrency,
            logger=logger,
        )

    async def search(
        self,
        matches: Sequence[ScopeMatch],
        event: UploadEvent,
    ) -> SearchResult:
        """Search every ScopeMatch and report whether any target holds the file."""
        cell = FirstMatchCell()
        semaphore = asyncio.Semaphore(self._max_concurrency)

        with OperationTimer("federated search", self._logger, slow_ms=SLOW_SEARCH_THRESHOLD_MS):
            outcomes = await asyncio.gather(
                *(self._search_one(match, event, cell, semaphore) for match in matches)
            )

        self._logger.debug(
            "All target searches completed",
            scopes=len(outcomes),
            found=cell.is_set,
        )
        return SearchResult(
            found=cell.is_set,
            first_match=cell.value,
            outcomes=tuple(outcomes),
        )

    async def _search_one(
        self,
        match: ScopeMatch,
        event: UploadEvent,
        cell: FirstMatchCell,
        semaphore: asyncio.Semaphore,
    ) -> SearchOutcome:
        scope = match.describe()

        if cell.is_set:
            self._logger.debug("Skipping search — duplicate already found", scope=scope)
            return SearchOutcome(match=match, skipped=True)

        async with semaphore:
            if cell.is_set:
                self._logger.debug("Skipping search — duplicate already found", scope=scope)
                return SearchOutcome(match=match, skipped=True)

            self._logger.debug("Starting search", scope=scope)
            try:
                backend = self._backend_factory(match.target.url)
                existence_filter = build_existence_filter(match, event, self._result_limit)
                items = await backend.find(existence_filter)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "Search failed — counted as no match",
                    scope=scope,
                    error=str(exc) or "No message",
                    error_type=type(exc).__name__,
                )
                return SearchOutcome(match=match, error=str(exc) or type(exc).__name__)

        self._logger.debug("Finished search", scope=scope, found=len(items))
        if items and cell.offer(items[0]):
            self._logger.info(
                "Duplicate found — short-circuiting remaining searches",
                scope=scope,
                location=items[0].location,
            )
        return SearchOutcome(match=match, items=tuple(items))
