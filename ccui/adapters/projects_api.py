"""REST client for the backend's project list endpoint.

Pull-based counterpart of the ``projects_updated`` push: used on startup
and on manual refresh.
"""
from __future__ import annotations

import asyncio
import logging

import aiohttp

from ccui.engine.errors import ProjectsFetchError
from ccui.shared.models.project import ProjectList, projects_from_wire

logger = logging.getLogger(__name__)

PROJECTS_PATH = "/api/projects"


class ProjectsClient:
    """Fetches ``GET /api/projects`` with bearer-token auth."""

    def __init__(
        self,
        api_base: str,
        token: str | None = None,
        timeout: float = 30.0,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = api_base.rstrip("/") + PROJECTS_PATH
        self._token = token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._http = http_session
        self._owns_http = http_session is None

    @property
    def url(self) -> str:
        return self._url

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def fetch_projects(self) -> ProjectList:
        """Return the full project list. Raises ProjectsFetchError."""
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        try:
            async with self._http.get(
                self._url, headers=self._headers(), timeout=self._timeout,
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise ProjectsFetchError(self._url, body[:200] or resp.reason or "", resp.status)
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise ProjectsFetchError(self._url, str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise ProjectsFetchError(self._url, "request timed out") from exc
        except ValueError as exc:
            raise ProjectsFetchError(self._url, f"invalid JSON: {exc}") from exc

        try:
            projects = projects_from_wire(data)
        except ValueError as exc:
            raise ProjectsFetchError(self._url, str(exc)) from exc
        logger.debug("Fetched %d project(s) from %s", len(projects), self._url)
        return projects

    async def close(self) -> None:
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
