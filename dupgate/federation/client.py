"""Remote existence-query client for federation targets.

Each federation target exposes an AQL search endpoint:

    POST {scheme}://{target}/artifactory/api/search/aql
    Content-Type: text/plain
    Authorization: Bearer <platform token>

    items.find({...}).include("repo","path","name").limit(1)

and answers ``{"results": [{"repo": ..., "path": ..., "name": ...}, ...]}``.

Failure policy:
  - Transport errors (httpx.HTTPError) and non-2xx statuses raise
    RemoteSearchError. The client never decides what a failure MEANS for the
    gate; FederatedSearcher counts it as "no match" for that scope.
  - Result rows missing repo/name are skipped.

The shared httpx.AsyncClient is owned by the application lifespan and is
NEVER instantiated per request.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

import httpx

from dupgate.constants import (
    DEFAULT_HTTP_TIMEOUT_S,
    DEFAULT_TARGET_SCHEME,
    POOL_KEEPALIVE_EXPIRY,
    POOL_MAX_CONNECTIONS,
    POOL_MAX_KEEPALIVE,
)
from dupgate.federation.query import ExistenceFilter, render_aql
from dupgate.models.upload import FoundItem
from dupgate.utils.logger import get_logger

logger = get_logger(__name__)

AQL_ENDPOINT = "/artifactory/api/search/aql"


class RemoteSearchError(Exception):
    """A federation target could not answer an existence query."""

    def __init__(self, target_url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"Search on {target_url} failed: {message}")
        self.target_url = target_url
        self.status_code = status_code


class SearchBackend(Protocol):
    """Existence-query capability of one federation target."""

    async def find(self, existence_filter: ExistenceFilter) -> list[FoundItem]:
        ...


#: Maps a target URL to the backend that searches it.
BackendFactory = Callable[[str], SearchBackend]


# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(timeout_s: float = DEFAULT_HTTP_TIMEOUT_S) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient with connection pooling configured.

    Created once at lifespan startup and stored in app.state.http_client.
    Used by both the configuration store and every AqlSearchClient.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(timeout_s),
        follow_redirects=False,
    )


def target_base_url(target_url: str, scheme: str = DEFAULT_TARGET_SCHEME) -> str:
    """Return an absolute base URL for a target configured as host or URL."""
    if "://" in target_url:
        return target_url.rstrip("/")
    return f"{scheme}://{target_url.rstrip('/')}"


# ─── AQL client ──────────────────────────────────────────────────────────────


class AqlSearchClient:
    """SearchBackend that queries one target's AQL endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        target_url: str,
        token: Optional[str] = None,
        scheme: str = DEFAULT_TARGET_SCHEME,
    ) -> None:
        self._http = http_client
        self.target_url = target_url
        self._endpoint = target_base_url(target_url, scheme) + AQL_ENDPOINT
        self._token = token

    async def find(self, existence_filter: ExistenceFilter) -> list[FoundItem]:
        query = render_aql(existence_filter)
        headers = {"Content-Type": "text/plain"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        logger.debug("Running AQL", target=self.target_url, query=query)
        try:
            response = await self._http.post(self._endpoint, content=query, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(
                "AQL request failed",
                target=self.target_url,
                error=str(exc),
                error_type=type(exc).__name__,
                query=query,
            )
            raise RemoteSearchError(self.target_url, f"{type(exc).__name__}: {exc}") from exc

        if response.status_code // 100 != 2:
            logger.error(
                "AQL error response",
                target=self.target_url,
                status_code=response.status_code,
                body=response.text[:500],
                query=query,
            )
            raise RemoteSearchError(
                self.target_url,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteSearchError(self.target_url, "response is not JSON") from exc

        items = self._parse_results(payload)
        logger.debug(
            "AQL completed",
            target=self.target_url,
            found=len(items),
        )
        return items

    def _parse_results(self, payload: Any) -> list[FoundItem]:
        rows = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            return []
        items: list[FoundItem] = []
        for row in rows:
            if not isinstance(row, dict) or not row.get("repo") or not row.get("name"):
                continue
            items.append(
                FoundItem(
                    target_url=self.target_url,
                    repo=str(row["repo"]),
                    path=str(row.get("path") or "."),
                    name=str(row["name"]),
                )
            )
        return items


def make_backend_factory(
    http_client: httpx.AsyncClient,
    token: Optional[str] = None,
    scheme: str = DEFAULT_TARGET_SCHEME,
) -> BackendFactory:
    """Return a BackendFactory producing AqlSearchClients over a shared client."""

    def factory(target_url: str) -> SearchBackend:
        return AqlSearchClient(http_client, target_url, token=token, scheme=scheme)

    return factory
