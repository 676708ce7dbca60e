"""
Remote ranking source.

A read-only listing endpoint that serves the global standing list as a JSON
array. This engine never writes to it.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

import httpx

from quizrank.core.logging.logger import get_logger
from quizrank.modules.ranking.models import StandingEntry
from quizrank.modules.shared.exceptions import RemoteUnavailableError

logger = get_logger(__name__)


@runtime_checkable
class RemoteRankingSource(Protocol):
    async def fetch_global(self) -> List[StandingEntry]: ...

    async def close(self) -> None: ...


class HttpRankingSource:
    """
    GET `<base_url><path>` and parse the body as a list of standing entries.

    The underlying `httpx.AsyncClient` is created lazily and reused; pass
    `client` to inject a preconfigured one (for example with a mock
    transport).
    """

    def __init__(
        self,
        base_url: str,
        path: str = "/rankings/global/",
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._path = path if path.startswith("/") else f"/{path}"
        self._timeout = timeout
        self._client = client

    @property
    def url(self) -> str:
        return f"{self._base_url}{self._path}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def fetch_global(self) -> List[StandingEntry]:
        """
        Raises
        ------
        RemoteUnavailableError:
            On transport errors, non-2xx responses, non-JSON or non-list
            bodies, and entries that cannot be parsed.
        """
        client = self._get_client()

        try:
            response = await client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteUnavailableError(
                f"HTTP {exc.response.status_code}", source=self.url, original_error=exc
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(
                f"request failed: {exc}", source=self.url, original_error=exc
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteUnavailableError(
                "response body is not JSON", source=self.url, original_error=exc
            ) from exc

        if not isinstance(payload, list):
            raise RemoteUnavailableError(
                f"expected a JSON array, got {type(payload).__name__}", source=self.url
            )

        try:
            entries = [StandingEntry.from_dict(item) for item in payload]
        except (KeyError, ValueError, TypeError) as exc:
            raise RemoteUnavailableError(
                f"malformed standing entry: {exc}", source=self.url, original_error=exc
            ) from exc

        logger.debug(
            "Remote ranking listing fetched",
            extra={"source": self.url, "entries": len(entries)},
        )
        return entries

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
