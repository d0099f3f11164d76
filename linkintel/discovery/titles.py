from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Optional, Sequence

from linkintel.config import settings
from linkintel.discovery.fetch import PageFetcher, PageFetchError
from linkintel.discovery.html import extract_title
from linkintel.discovery.merge import LinkCandidate

logger = logging.getLogger(__name__)

# Called after every batch with (attempted_so_far, failed_so_far).
BatchCallback = Callable[[int, int], Awaitable[None]]


@dataclass
class TitleFetchResult:
    titled: list[LinkCandidate] = field(default_factory=list)
    attempted: int = 0
    failed: int = 0


class TitleFetcher:
    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.fetcher = fetcher
        self.batch_size = batch_size or settings.TITLE_FETCH_BATCH_SIZE
        self.timeout = timeout or settings.PAGE_TITLE_TIMEOUT_SECONDS

    async def fetch_title(self, url: str) -> Optional[str]:
        try:
            html = await self.fetcher.get_text(url, timeout=self.timeout)
        except PageFetchError as exc:
            logger.debug("titles.fetch_failed", extra={"url": url, "error": str(exc)})
            return None
        return extract_title(html)

    async def fetch_titles(
        self,
        candidates: Sequence[LinkCandidate],
        *,
        on_batch: Optional[BatchCallback] = None,
    ) -> TitleFetchResult:
        """
        Fetch titles for `candidates` in fixed-size concurrent batches.

        Candidates whose page fails or has no title are counted in `failed` and left
        out of `titled`. Exceptions raised by `on_batch` stop the run.
        """
        result = TitleFetchResult()
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start : start + self.batch_size]
            titles = await asyncio.gather(
                *(self.fetch_title(candidate.url) for candidate in batch),
                return_exceptions=True,
            )
            for candidate, title in zip(batch, titles):
                if isinstance(title, Exception):
                    logger.warning("titles.fetch_errored", extra={"url": candidate.url, "error": str(title)})
                    title = None
                if title:
                    result.titled.append(replace(candidate, title=title))
                else:
                    result.failed += 1
            result.attempted += len(batch)
            if on_batch is not None:
                await on_batch(result.attempted, result.failed)
        return result
