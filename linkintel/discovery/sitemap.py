from __future__ import annotations

import gzip
import logging
import xml.etree.ElementTree as ET
from typing import Callable, Optional

from linkintel.config import settings
from linkintel.discovery.fetch import PageFetcher, PageFetchError

logger = logging.getLogger(__name__)

# Only the first N children of a sitemap index are followed, at every level.
MAX_CHILD_SITEMAPS = 10

_GZIP_MAGIC = b"\x1f\x8b"


class SitemapFetchError(RuntimeError):
    """Raised when the root sitemap cannot be fetched or parsed."""


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _children_by_name(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in list(element) if _local_name(child.tag) == name]


def _loc_text(element: ET.Element) -> Optional[str]:
    for loc in _children_by_name(element, "loc"):
        value = (loc.text or "").strip()
        if value:
            return value
    return None


def decode_sitemap_body(body: bytes) -> bytes:
    if body[:2] == _GZIP_MAGIC:
        return gzip.decompress(body)
    return body


def parse_sitemap_document(body: bytes) -> tuple[str, list[str]]:
    """
    Parse one sitemap document.

    Returns ("sitemapindex", child sitemap URLs) or ("urlset", page URLs). Raises
    ET.ParseError (or OSError for a corrupt gzip body) when the document is unreadable.
    """
    root = ET.fromstring(decode_sitemap_body(body))
    kind = _local_name(root.tag)
    if kind == "sitemapindex":
        return kind, [loc for loc in (_loc_text(node) for node in _children_by_name(root, "sitemap")) if loc]
    return kind, [loc for loc in (_loc_text(node) for node in _children_by_name(root, "url")) if loc]


class SitemapParser:
    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        root_timeout: Optional[float] = None,
        child_timeout: Optional[float] = None,
        max_children: int = MAX_CHILD_SITEMAPS,
        on_child: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.fetcher = fetcher
        self.root_timeout = root_timeout or settings.SITEMAP_ROOT_TIMEOUT_SECONDS
        self.child_timeout = child_timeout or settings.SITEMAP_CHILD_TIMEOUT_SECONDS
        self.max_children = max_children
        # Called with each child sitemap URL once it has been read.
        self.on_child = on_child

    async def parse(self, sitemap_url: str) -> list[str]:
        """Return every page URL reachable from `sitemap_url`; root failures raise SitemapFetchError."""
        visited: set[str] = {sitemap_url}
        try:
            body = await self.fetcher.get_bytes(sitemap_url, timeout=self.root_timeout)
        except PageFetchError as exc:
            raise SitemapFetchError(f"Failed to fetch sitemap {sitemap_url}: {exc}") from exc
        try:
            kind, locs = parse_sitemap_document(body)
        except (ET.ParseError, OSError, EOFError) as exc:
            raise SitemapFetchError(f"Failed to parse sitemap {sitemap_url}: {exc}") from exc

        if kind != "sitemapindex":
            return locs
        return await self._parse_children(sitemap_url, locs, visited)

    async def _parse_children(self, parent_url: str, child_urls: list[str], visited: set[str]) -> list[str]:
        if len(child_urls) > self.max_children:
            logger.info(
                "sitemap.children_truncated",
                extra={"sitemap_url": parent_url, "children": len(child_urls), "followed": self.max_children},
            )
        urls: list[str] = []
        for child_url in child_urls[: self.max_children]:
            if child_url in visited:
                continue
            visited.add(child_url)
            urls.extend(await self._parse_child(child_url, visited))
            if self.on_child is not None:
                self.on_child(child_url)
        return urls

    async def _parse_child(self, child_url: str, visited: set[str]) -> list[str]:
        try:
            body = await self.fetcher.get_bytes(child_url, timeout=self.child_timeout)
            kind, locs = parse_sitemap_document(body)
        except (PageFetchError, ET.ParseError, OSError, EOFError) as exc:
            logger.warning(
                "sitemap.child_failed",
                extra={"sitemap_url": child_url, "error": str(exc)},
            )
            return []
        if kind == "sitemapindex":
            return await self._parse_children(child_url, locs, visited)
        return locs
