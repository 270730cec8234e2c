"""Tests for FederatedSearcher — fan-out, short-circuit and fail-open semantics.

Covers:
  - One remote call per ScopeMatch; all tasks joined
  - First COMPLETED match is recorded (not first submitted)
  - Skip-before-start once a match is recorded
  - Backend errors count as "no match" for that scope only
  - Filters passed to backends follow the scope
"""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from dupgate.federation.model import FederationTarget, RepoScope
from dupgate.federation.query import ExistenceFilter
from dupgate.federation.scope import ScopeMatch
from dupgate.federation.searcher import FederatedSearcher, FirstMatchCell
from dupgate.models.upload import FoundItem, UploadEvent

_EVENT = UploadEvent(repo_key="libs", path="immutable/x/file.txt")


class _FakeBackend:
    """SearchBackend double with configurable delay, hits and failure."""

    def __init__(
        self,
        url: str,
        *,
        hits: int = 0,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ) -> None:
        self.url = url
        self.hits = hits
        self.delay = delay
        self.error = error
        self.filters: list[ExistenceFilter] = []

    async def find(self, existence_filter: ExistenceFilter) -> list[FoundItem]:
        self.filters.append(existence_filter)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        repo = existence_filter.repos[0] if existence_filter.repos else "?"
        return [
            FoundItem(target_url=self.url, repo=repo, path="immutable/x", name="file.txt")
            for _ in range(self.hits)
        ]


def _searcher(backends: dict[str, _FakeBackend], **kwargs) -> FederatedSearcher:
    return FederatedSearcher(lambda url: backends[url], **kwargs)


def _match(url: str, scope: Optional[RepoScope] = None) -> ScopeMatch:
    return ScopeMatch(target=FederationTarget(url=url), scope=scope)


class TestFirstMatchCell:
    def test_first_offer_wins(self):
        cell = FirstMatchCell()
        first = FoundItem("a", "r", ".", "f")
        second = FoundItem("b", "r", ".", "f")
        assert not cell.is_set
        assert cell.offer(first) is True
        assert cell.offer(second) is False
        assert cell.value == first


class TestFederatedSearcher:
    @pytest.mark.asyncio
    async def test_no_matches_found(self):
        backends = {"a": _FakeBackend("a"), "b": _FakeBackend("b")}
        result = await _searcher(backends).search([_match("a"), _match("b")], _EVENT)

        assert result.found is False
        assert result.first_match is None
        assert result.remote_calls == 2
        assert all(len(b.filters) == 1 for b in backends.values())

    @pytest.mark.asyncio
    async def test_empty_scope_list(self):
        result = await _searcher({}).search([], _EVENT)
        assert result.found is False
        assert result.outcomes == ()

    @pytest.mark.asyncio
    async def test_single_match_recorded(self):
        backends = {"a": _FakeBackend("a", hits=1)}
        result = await _searcher(backends).search([_match("a", RepoScope("r"))], _EVENT)

        assert result.found is True
        assert result.first_match == FoundItem("a", "r", "immutable/x", "file.txt")

    @pytest.mark.asyncio
    async def test_first_completed_match_wins(self):
        backends = {
            "slow": _FakeBackend("slow", hits=1, delay=0.05),
            "fast": _FakeBackend("fast", hits=1, delay=0.0),
        }
        result = await _searcher(backends).search([_match("slow"), _match("fast")], _EVENT)

        assert result.first_match is not None
        assert result.first_match.target_url == "fast"
        # Wait-for-all: the slow call still ran to completion.
        assert len(backends["slow"].filters) == 1
        assert result.outcomes[0].found

    @pytest.mark.asyncio
    async def test_only_first_target_matches(self):
        backends = {
            "first": _FakeBackend("first", hits=1),
            "second": _FakeBackend("second", hits=0, delay=0.01),
        }
        result = await _searcher(backends).search([_match("first"), _match("second")], _EVENT)
        assert result.first_match.target_url == "first"

    @pytest.mark.asyncio
    async def test_skip_before_start_once_found(self):
        backends = {"a": _FakeBackend("a", hits=1), "b": _FakeBackend("b", hits=1)}
        result = await _searcher(backends, max_concurrency=1).search(
            [_match("a"), _match("b")], _EVENT
        )

        assert result.first_match.target_url == "a"
        assert backends["b"].filters == []
        assert result.outcomes[1].skipped is True
        assert result.remote_calls == 1

    @pytest.mark.asyncio
    async def test_backend_error_counts_as_no_match(self):
        backends = {
            "down": _FakeBackend("down", error=RuntimeError("connection refused")),
            "up": _FakeBackend("up"),
        }
        result = await _searcher(backends).search([_match("down"), _match("up")], _EVENT)

        assert result.found is False
        assert result.outcomes[0].error == "connection refused"
        assert result.outcomes[1].error is None
        assert len(backends["up"].filters) == 1

    @pytest.mark.asyncio
    async def test_error_does_not_hide_match_elsewhere(self):
        backends = {
            "down": _FakeBackend("down", error=ValueError("bad")),
            "up": _FakeBackend("up", hits=1, delay=0.01),
        }
        result = await _searcher(backends).search([_match("down"), _match("up")], _EVENT)
        assert result.found is True
        assert result.first_match.target_url == "up"

    @pytest.mark.asyncio
    async def test_backend_factory_error_is_contained(self):
        def factory(url: str):
            raise KeyError(url)

        searcher = FederatedSearcher(factory)
        result = await searcher.search([_match("a")], _EVENT)
        assert result.found is False
        assert result.outcomes[0].error

    @pytest.mark.asyncio
    async def test_filters_follow_scope(self):
        backends = {"a": _FakeBackend("a")}
        matches = [
            _match("a"),
            _match("a", RepoScope("rel")),
            _match("a", RepoScope("imm", ("immutable",))),
        ]
        await _searcher(backends, result_limit=2).search(matches, _EVENT)

        unscoped, whole, prefixed = backends["a"].filters
        assert unscoped.repos == ("libs",)
        assert unscoped.path == "immutable/x"
        assert whole.repos == ("rel",)
        assert prefixed.path_prefixes == ("immutable",)
        assert all(f.name == "file.txt" and f.limit == 2 for f in backends["a"].filters)

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self):
        in_flight = 0
        peak = 0

        class _Counting:
            async def find(self, existence_filter):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return []

        searcher = FederatedSearcher(lambda url: _Counting(), max_concurrency=2)
        await searcher.search([_match(str(i)) for i in range(6)], _EVENT)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_outcomes_in_scope_order(self):
        backends = {u: _FakeBackend(u, delay=d) for u, d in (("a", 0.02), ("b", 0.0), ("c", 0.01))}
        result = await _searcher(backends).search([_match("a"), _match("b"), _match("c")], _EVENT)
        assert [o.match.target.url for o in result.outcomes] == ["a", "b", "c"]
