"""Shared async HTTP client for upstream feeds."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from solsync.core.config import settings
from solsync.core.logging import get_logger
from .errors import PayloadError

log = get_logger("ingestion.client")


class FeedClient:
    """Thin wrapper around one ``httpx.AsyncClient`` used for a whole run."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            headers={"User-Agent": user_agent or settings.HTTP_USER_AGENT},
            transport=transport,
        )

    async def __aenter__(self) -> "FeedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        allow_not_found: bool = False,
    ) -> Any:
        """GET a JSON document.

        Returns None for a 404 when ``allow_not_found`` is set; other error
        statuses raise ``httpx.HTTPStatusError``. A body that is not JSON
        raises ``PayloadError``.
        """
        resp = await self._client.get(url, params=params)
        if allow_not_found and resp.status_code == httpx.codes.NOT_FOUND:
            log.debug(f"404 from {resp.request.url}")
            return None
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as exc:
            raise PayloadError(f"Invalid JSON from {resp.request.url}: {exc}") from exc
