from __future__ import annotations

from typing import Any, Iterable, Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from linkintel.db.enums import (
    RUNNING_IMPORT_STATUSES,
    SITEMAP_IMPORT_PIPELINE,
    SitemapImportStatusEnum,
)
from linkintel.db.models import SitemapImportJob, utcnow
from linkintel.db.repositories.base import Repository, as_uuid

ERROR_MESSAGE_MAX_CHARS = 5000


def allowed_predecessors(status: SitemapImportStatusEnum) -> frozenset[SitemapImportStatusEnum]:
    """
    States a job may be in for a write moving it to `status`.

    Forward moves along the pipeline may skip stages; failed and cancelled are
    reachable from any running state; terminal states have no successors.
    """
    if status in (SitemapImportStatusEnum.failed, SitemapImportStatusEnum.cancelled):
        return RUNNING_IMPORT_STATUSES
    if status not in SITEMAP_IMPORT_PIPELINE:
        return frozenset()
    position = SITEMAP_IMPORT_PIPELINE.index(status)
    return frozenset(SITEMAP_IMPORT_PIPELINE[:position])


class SitemapImportJobsRepository(Repository):
    def __init__(self, session: Session) -> None:
        super().__init__(session)

    def get(self, job_id: Union[str, UUID]) -> Optional[SitemapImportJob]:
        stmt = select(SitemapImportJob).where(SitemapImportJob.id == as_uuid(job_id))
        return self.session.scalars(stmt).first()

    def create(
        self,
        *,
        brand_id: Union[str, UUID],
        sitemap_url: str,
        temporal_workflow_id: Optional[str] = None,
    ) -> SitemapImportJob:
        job = SitemapImportJob(
            brand_id=as_uuid(brand_id),
            sitemap_url=sitemap_url,
            status=SitemapImportStatusEnum.pending,
            temporal_workflow_id=temporal_workflow_id,
        )
        return self.save(job)

    def latest_for_brand(self, brand_id: Union[str, UUID]) -> Optional[SitemapImportJob]:
        stmt = (
            select(SitemapImportJob)
            .where(SitemapImportJob.brand_id == as_uuid(brand_id))
            .order_by(SitemapImportJob.created_at.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def running_for_brand(self, brand_id: Union[str, UUID]) -> list[SitemapImportJob]:
        stmt = (
            select(SitemapImportJob)
            .where(
                SitemapImportJob.brand_id == as_uuid(brand_id),
                SitemapImportJob.status.in_(RUNNING_IMPORT_STATUSES),
            )
            .order_by(SitemapImportJob.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def current_status(self, job_id: Union[str, UUID]) -> Optional[SitemapImportStatusEnum]:
        # Column read bypasses the identity map so a concurrent cancel is observed.
        stmt = select(SitemapImportJob.status).where(SitemapImportJob.id == as_uuid(job_id))
        return self.session.execute(stmt).scalar_one_or_none()

    def _conditional_update(
        self,
        job_id: Union[str, UUID],
        *,
        from_statuses: Iterable[SitemapImportStatusEnum],
        extra_where: Iterable[Any] = (),
        **values: Any,
    ) -> Optional[SitemapImportJob]:
        allowed = list(from_statuses)
        if not allowed:
            return None
        values["updated_at"] = utcnow()
        stmt = (
            update(SitemapImportJob)
            .where(SitemapImportJob.id == as_uuid(job_id))
            .where(SitemapImportJob.status.in_(allowed), *extra_where)
            .values(**values)
            .returning(SitemapImportJob)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        job = self.session.execute(stmt).scalar_one_or_none()
        self.session.commit()
        return job

    def set_workflow_id(self, job_id: Union[str, UUID], workflow_id: str) -> Optional[SitemapImportJob]:
        return self._conditional_update(
            job_id,
            from_statuses=RUNNING_IMPORT_STATUSES,
            temporal_workflow_id=workflow_id,
        )

    def advance(
        self,
        job_id: Union[str, UUID],
        status: SitemapImportStatusEnum,
        **values: Any,
    ) -> Optional[SitemapImportJob]:
        """
        Move a job forward along the pipeline.

        Returns None when the job is no longer in a predecessor state (cancelled,
        failed, or already past `status`); callers treat that as "stop".
        """
        if status is SitemapImportStatusEnum.parsing:
            values.setdefault("started_at", utcnow())
        if status is SitemapImportStatusEnum.complete:
            values.setdefault("completed_at", utcnow())
        return self._conditional_update(
            job_id,
            from_statuses=allowed_predecessors(status),
            status=status,
            **values,
        )

    def record_progress(
        self,
        job_id: Union[str, UUID],
        *,
        processed: int,
        failed: int,
    ) -> Optional[SitemapImportJob]:
        return self._conditional_update(
            job_id,
            from_statuses=RUNNING_IMPORT_STATUSES,
            extra_where=(
                SitemapImportJob.urls_processed <= processed,
                SitemapImportJob.urls_found >= processed,
            ),
            urls_processed=processed,
            urls_failed=failed,
        )

    def mark_complete(
        self,
        job_id: Union[str, UUID],
        *,
        product_urls_count: int,
        collection_urls_count: int,
        page_urls_count: int,
        **values: Any,
    ) -> Optional[SitemapImportJob]:
        return self.advance(
            job_id,
            SitemapImportStatusEnum.complete,
            product_urls_count=product_urls_count,
            collection_urls_count=collection_urls_count,
            page_urls_count=page_urls_count,
            **values,
        )

    def mark_failed(self, job_id: Union[str, UUID], error: str) -> Optional[SitemapImportJob]:
        return self._conditional_update(
            job_id,
            from_statuses=allowed_predecessors(SitemapImportStatusEnum.failed),
            status=SitemapImportStatusEnum.failed,
            error_message=(error or "Unknown error")[:ERROR_MESSAGE_MAX_CHARS],
            completed_at=utcnow(),
        )

    def mark_cancelled(self, job_id: Union[str, UUID], reason: Optional[str] = None) -> Optional[SitemapImportJob]:
        values: dict[str, Any] = {"status": SitemapImportStatusEnum.cancelled}
        if reason:
            values["error_message"] = reason[:ERROR_MESSAGE_MAX_CHARS]
        return self._conditional_update(
            job_id,
            from_statuses=allowed_predecessors(SitemapImportStatusEnum.cancelled),
            **values,
        )
