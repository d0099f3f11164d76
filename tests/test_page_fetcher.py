import asyncio
import time

import httpx
import pytest

from linkintel.discovery.fetch import PageFetcher, PageFetchError


class DripStream(httpx.AsyncByteStream):
    """Body that sends one byte at a time with a pause between bytes."""

    def __init__(self, chunks: int, pause: float) -> None:
        self.chunks = chunks
        self.pause = pause

    async def __aiter__(self):
        for _ in range(self.chunks):
            await asyncio.sleep(self.pause)
            yield b"a"


def _fetcher(handler) -> PageFetcher:
    return PageFetcher(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_slow_body_is_cut_off_at_the_overall_timeout():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=DripStream(chunks=20, pause=0.2))

    async def _run():
        async with _fetcher(handler) as fetcher:
            return await fetcher.get_text("https://acme.test/slow", timeout=0.5)

    started = time.monotonic()
    with pytest.raises(PageFetchError, match="timed out"):
        asyncio.run(_run())
    assert time.monotonic() - started < 2.0


def test_non_2xx_and_transport_errors_become_page_fetch_errors(fake_site):
    fake_site.pages["https://acme.test/gone"] = (410, "gone")
    fake_site.pages["https://acme.test/down"] = httpx.ConnectError("connection refused")

    async def _fetch(url: str):
        async with fake_site.fetcher() as fetcher:
            return await fetcher.get_text(url, timeout=1.0)

    with pytest.raises(PageFetchError) as gone:
        asyncio.run(_fetch("https://acme.test/gone"))
    assert gone.value.status_code == 410

    with pytest.raises(PageFetchError) as down:
        asyncio.run(_fetch("https://acme.test/down"))
    assert down.value.status_code is None


def test_fast_page_is_returned(fake_site):
    fake_site.pages["https://acme.test/"] = "<title>Acme</title>"

    async def _fetch():
        async with fake_site.fetcher() as fetcher:
            return await fetcher.get_text("https://acme.test/", timeout=1.0)

    assert asyncio.run(_fetch()) == "<title>Acme</title>"
    assert fake_site.user_agents[0]
