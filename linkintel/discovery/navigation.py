from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urldefrag, urljoin, urlsplit

from linkintel.config import settings
from linkintel.db.enums import LinkTypeEnum
from linkintel.discovery.fetch import PageFetcher, PageFetchError
from linkintel.discovery.html import extract_anchors
from linkintel.discovery.rules import UrlRules

logger = logging.getLogger(__name__)

_IGNORED_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")
MIN_ANCHOR_TEXT_LENGTH = 2


@dataclass(frozen=True)
class NavigationLink:
    url: str
    title: str
    link_type: LinkTypeEnum


def normalize_domain(domain: str) -> str:
    """Strip scheme, path and trailing dots from a stored brand domain."""
    value = (domain or "").strip()
    if "://" in value:
        value = urlsplit(value).netloc
    value = value.split("/", 1)[0]
    return value.strip().rstrip(".").lower()


def _bare_host(host: str) -> str:
    host = (host or "").lower().split(":", 1)[0]
    if host.startswith("www."):
        return host[4:]
    return host


def same_site(url: str, domain: str) -> bool:
    return _bare_host(urlsplit(url).netloc) == _bare_host(normalize_domain(domain))


def resolve_link(href: str, domain: str) -> Optional[str]:
    """Resolve an href against the brand homepage; None for non-http results."""
    base = f"https://{normalize_domain(domain)}/"
    absolute, _fragment = urldefrag(urljoin(base, href.strip()))
    if urlsplit(absolute).scheme not in ("http", "https"):
        return None
    return absolute


class NavigationCrawler:
    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        rules: Optional[UrlRules] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.fetcher = fetcher
        self.rules = rules or UrlRules()
        self.timeout = timeout or settings.HOMEPAGE_TIMEOUT_SECONDS

    async def crawl(self, domain: str) -> list[NavigationLink]:
        """Collect classified same-site links from the brand homepage; fetch failures yield []."""
        homepage = f"https://{normalize_domain(domain)}/"
        try:
            html = await self.fetcher.get_text(homepage, timeout=self.timeout)
        except PageFetchError as exc:
            logger.warning(
                "navigation.homepage_failed",
                extra={"domain": domain, "error": str(exc)},
            )
            return []
        links = self.links_from_html(html, domain)
        logger.info("navigation.links_found", extra={"domain": domain, "count": len(links)})
        return links

    def links_from_html(self, html: str, domain: str) -> list[NavigationLink]:
        seen: set[str] = set()
        links: list[NavigationLink] = []
        for anchor in extract_anchors(html):
            if len(anchor.text) < MIN_ANCHOR_TEXT_LENGTH:
                continue
            if anchor.href.lower().startswith(_IGNORED_HREF_PREFIXES):
                continue
            url = resolve_link(anchor.href, domain)
            if not url or not same_site(url, domain):
                continue
            if url in seen or self.rules.should_skip(url):
                continue
            link_type = self.rules.classify(url)
            if link_type is None:
                continue
            seen.add(url)
            links.append(NavigationLink(url=url, title=anchor.text, link_type=link_type))
        return links
