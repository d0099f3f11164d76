from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from linkintel.config import settings


class PageFetchError(RuntimeError):
    """Raised when a page cannot be fetched or answers with a non-2xx status."""

    def __init__(self, url: str, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PageFetcher:
    """
    Thin wrapper over a shared httpx.AsyncClient.

    Every request sends the crawler User-Agent, follows redirects and carries an
    explicit timeout. Pass `client` to reuse a pool (or a MockTransport in tests);
    otherwise one is created and closed by `aclose`.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        user_agent: Optional[str] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._headers = {
            "User-Agent": user_agent or settings.LINK_DISCOVERY_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get(self, url: str, *, timeout: float) -> httpx.Response:
        # httpx limits each connect/read step; the outer deadline bounds the whole
        # request including a body that trickles in slowly.
        try:
            async with asyncio.timeout(timeout):
                response = await self._client.get(
                    url,
                    headers=self._headers,
                    timeout=timeout,
                    follow_redirects=True,
                )
        except TimeoutError as exc:
            raise PageFetchError(url, f"Request to {url} timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise PageFetchError(url, f"Request to {url} failed: {exc}") from exc
        if response.status_code < 200 or response.status_code >= 300:
            raise PageFetchError(
                url,
                f"Request to {url} returned status {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def get_text(self, url: str, *, timeout: float) -> str:
        response = await self.get(url, timeout=timeout)
        return response.text

    async def get_bytes(self, url: str, *, timeout: float) -> bytes:
        response = await self.get(url, timeout=timeout)
        return response.content
