from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional

from linkintel.db.enums import LinkSourceEnum, LinkTypeEnum
from linkintel.discovery.navigation import NavigationLink
from linkintel.discovery.rules import UrlRules


@dataclass(frozen=True)
class LinkCandidate:
    url: str
    link_type: LinkTypeEnum
    source: LinkSourceEnum
    title: Optional[str] = None
    embedding: Optional[list[float]] = None

    def as_row(self) -> dict:
        return {
            "url": self.url,
            "link_type": self.link_type,
            "source": self.source,
            "title": self.title,
            "embedding": self.embedding,
        }


def merge_candidates(
    sitemap_urls: Iterable[str],
    navigation_links: Iterable[NavigationLink],
    rules: Optional[UrlRules] = None,
) -> list[LinkCandidate]:
    """
    Merge sitemap URLs and navigation links into one list keyed by URL.

    Sitemap entries go in first. A navigation link adds a new entry with its anchor
    text as title, or backfills the title of an untitled sitemap entry while the
    entry keeps source=sitemap.
    """
    rules = rules or UrlRules()
    merged: dict[str, LinkCandidate] = {}

    for raw_url in sitemap_urls:
        url = (raw_url or "").strip()
        if not url or url in merged or rules.should_skip(url):
            continue
        link_type = rules.classify(url)
        if link_type is None:
            continue
        merged[url] = LinkCandidate(url=url, link_type=link_type, source=LinkSourceEnum.sitemap)

    for link in navigation_links:
        existing = merged.get(link.url)
        if existing is None:
            merged[link.url] = LinkCandidate(
                url=link.url,
                link_type=link.link_type,
                source=LinkSourceEnum.navigation,
                title=link.title,
            )
        elif not existing.title and link.title:
            merged[link.url] = replace(existing, title=link.title)

    return list(merged.values())


def subtract_known(candidates: Iterable[LinkCandidate], known_urls: set[str]) -> list[LinkCandidate]:
    return [candidate for candidate in candidates if candidate.url not in known_urls]
