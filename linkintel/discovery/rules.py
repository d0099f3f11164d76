from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from linkintel.db.enums import LinkTypeEnum

DEFAULT_SKIP_PATTERNS: tuple[str, ...] = (
    "/cart",
    "/checkout",
    "/account",
    "/login",
    "/register",
    "/password",
    "/policies",
    "/apps/",
    "/admin",
    "/api/",
    "/sitemap",
    "/search",
    "/wishlist",
    "/compare",
    "/blogs/",
)

# Checked in order; the first matching path segment wins.
DEFAULT_PATH_CLASSIFICATION: tuple[tuple[str, LinkTypeEnum], ...] = (
    ("/products/", LinkTypeEnum.product),
    ("/collections/", LinkTypeEnum.collection),
    ("/pages/", LinkTypeEnum.page),
)


@dataclass(frozen=True)
class UrlRules:
    """Skip list and path classification shared by the sitemap merge and the navigation crawler."""

    skip_patterns: tuple[str, ...] = DEFAULT_SKIP_PATTERNS
    path_classification: tuple[tuple[str, LinkTypeEnum], ...] = field(
        default=DEFAULT_PATH_CLASSIFICATION
    )

    @classmethod
    def from_preferences(cls, link_preferences: Optional[Mapping[str, Any]]) -> "UrlRules":
        """
        Build rules from a brand's link_preferences.

        `skip_patterns` is a list of substrings; `path_classification` maps a path
        substring to product | collection | page. Missing or invalid keys fall back
        to the defaults.
        """
        prefs = link_preferences or {}
        skip_patterns = DEFAULT_SKIP_PATTERNS
        raw_skip = prefs.get("skip_patterns")
        if isinstance(raw_skip, list) and all(isinstance(item, str) and item for item in raw_skip):
            skip_patterns = tuple(raw_skip)

        path_classification = DEFAULT_PATH_CLASSIFICATION
        raw_paths = prefs.get("path_classification")
        if isinstance(raw_paths, dict) and raw_paths:
            parsed: list[tuple[str, LinkTypeEnum]] = []
            for pattern, link_type in raw_paths.items():
                try:
                    parsed.append((str(pattern), LinkTypeEnum(link_type)))
                except ValueError:
                    continue
            if parsed:
                path_classification = tuple(parsed)

        return cls(skip_patterns=skip_patterns, path_classification=path_classification)

    def should_skip(self, url: str) -> bool:
        lowered = url.lower()
        return any(pattern in lowered for pattern in self.skip_patterns)

    def classify(self, url: str) -> Optional[LinkTypeEnum]:
        path = (urlsplit(url).path or url).lower()
        for pattern, link_type in self.path_classification:
            if pattern.lower() in path:
                return link_type
        return None
