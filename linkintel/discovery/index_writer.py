from __future__ import annotations

import logging
from collections import Counter
from typing import Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from linkintel.config import settings
from linkintel.db.enums import LinkTypeEnum
from linkintel.db.repositories.brand_links import BrandLinksRepository
from linkintel.discovery.merge import LinkCandidate

logger = logging.getLogger(__name__)


class LinkIndexWriter:
    def __init__(self, repo: BrandLinksRepository, *, batch_size: Optional[int] = None) -> None:
        self.repo = repo
        self.batch_size = batch_size or settings.LINK_INDEX_WRITE_BATCH_SIZE

    def write(self, brand_id: Union[str, UUID], candidates: Sequence[LinkCandidate]) -> Counter[LinkTypeEnum]:
        """
        Upsert candidates in batches on (brand_id, url).

        A failing batch is rolled back and skipped. Returns per-type counts of the rows
        actually written.
        """
        written: Counter[LinkTypeEnum] = Counter()
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start : start + self.batch_size]
            try:
                link_types = self.repo.upsert_links(brand_id, [candidate.as_row() for candidate in batch])
            except SQLAlchemyError as exc:
                self.repo.session.rollback()
                logger.error(
                    "link_index.batch_failed",
                    extra={"brand_id": str(brand_id), "batch_start": start, "batch_size": len(batch), "error": str(exc)},
                )
                continue
            written.update(link_types)
        logger.info(
            "link_index.written",
            extra={"brand_id": str(brand_id), "rows": sum(written.values()), "candidates": len(candidates)},
        )
        return written
