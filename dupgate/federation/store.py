"""Configuration stores for the federation document.

The federation document is fetched fresh for EVERY upload event — there is no
cache, so the next evaluation always sees the latest document.

INVARIANT: ``get_text()`` NEVER raises. Any failure (unreachable store,
non-200 status, unreadable file) is logged and returned as "" which the
federation parser turns into an empty, fail-open configuration.

Backends:
  - PlatformConfigStore — ``GET {base_url}/artifactory/{key}`` over HTTP
  - FileConfigStore     — ``{directory}/{key}`` on local disk
"""

from __future__ import annotations

import asyncio
import os
from typing import Optional, Protocol

import httpx

from dupgate.utils.logger import get_logger

logger = get_logger(__name__)


class ConfigStore(Protocol):
    """Key/value text store holding the federation document."""

    async def get_text(self, key: str) -> str:
        ...


class PlatformConfigStore:
    """Reads the federation document from a platform repository over HTTP."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        token: Optional[str] = None,
    ) -> None:
        self._http = http_client
        self.base_url = base_url.rstrip("/")
        self._token = token

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/artifactory/{key.lstrip('/')}"

    async def get_text(self, key: str) -> str:
        url = self.url_for(key)
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        logger.info("Getting federation config", url=url)

        try:
            response = await self._http.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(
                "Error loading federation config",
                url=url,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return ""

        if response.status_code != 200:
            logger.error(
                "Unable to load federation config",
                url=url,
                status_code=response.status_code,
                body=response.text[:500],
            )
            return ""

        logger.debug("Federation config loaded", url=url, size=len(response.content))
        return response.text


class FileConfigStore:
    """Reads the federation document from a local directory."""

    def __init__(self, directory: str) -> None:
        self.directory = os.path.expanduser(directory)

    def path_for(self, key: str) -> str:
        return os.path.join(self.directory, key.lstrip("/"))

    async def get_text(self, key: str) -> str:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(_read_text, path)
        except FileNotFoundError:
            logger.warning("Federation config file not found", path=path)
            return ""
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Could not read federation config file", path=path, error=str(exc))
            return ""


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8") as fh:
        return fh.read()
