"""
Markup extraction used by the crawler and the title fetcher.

Everything that inspects HTML goes through `extract_title` and `extract_anchors`
so the parser can be swapped without touching the pipeline.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

# " | Brand", " - Brand", " – Brand", " — Brand"; the separator needs whitespace on both sides.
_TITLE_SUFFIX_RE = re.compile(r"\s+[|\-–—]\s+[^|\-–—]*$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class Anchor:
    href: str
    text: str


def _clean_text(value: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(" ", value or "").strip()


def strip_title_suffix(title: str) -> str:
    stripped = _TITLE_SUFFIX_RE.sub("", title).strip()
    return stripped or title


def extract_title(html: str) -> Optional[str]:
    """Return og:title if present, else <title> without its trailing brand suffix."""
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")

    og = soup.find("meta", attrs={"property": "og:title"})
    if og is not None:
        og_title = _clean_text(og.get("content"))
        if og_title:
            return og_title

    if soup.title is None:
        return None
    title = _clean_text(soup.title.get_text())
    if not title:
        return None
    return strip_title_suffix(title)


def extract_anchors(html: str) -> list[Anchor]:
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    anchors: list[Anchor] = []
    for tag in soup.find_all("a", href=True):
        href = (tag.get("href") or "").strip()
        if not href:
            continue
        anchors.append(Anchor(href=href, text=_clean_text(tag.get_text(" "))))
    return anchors
