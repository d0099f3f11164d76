from __future__ import annotations

import logging
import math
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from linkintel.config import settings
from linkintel.db.deps import get_session
from linkintel.db.repositories.brand_links import LINK_FILTERS, BrandLinksRepository
from linkintel.db.repositories.brands import BrandsRepository
from linkintel.db.repositories.sitemap_import_jobs import SitemapImportJobsRepository
from linkintel.discovery.embeddings import EmbeddingClient, OpenAIEmbeddingClient
from linkintel.schemas.brand_links import (
    BrandLinkCreateRequest,
    SitemapImportTriggerRequest,
    serialize_import_job,
    serialize_link,
)
from linkintel.services.job_status import present_job_status
from linkintel.services.sitemap_import import (
    BrandNotFoundError,
    DuplicateLinkError,
    ImportAlreadyRunningError,
    ImportJobNotFoundError,
    ImportNotCancellableError,
    InvalidLinkError,
    add_brand_link,
    cancel_sitemap_import,
    prepare_sitemap_import,
    sitemap_import_workflow_id,
)
from linkintel.temporal.client import get_temporal_client
from linkintel.temporal.workflows.sitemap_import import SitemapImportInput, SitemapImportWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/brands", tags=["brand-links"])


def get_embedding_client() -> EmbeddingClient:
    return OpenAIEmbeddingClient()


def _job_payload(job) -> dict:
    return {"job": serialize_import_job(job), "status": present_job_status(job).as_dict()}


@router.post("/{brand_id}/sitemap-imports", status_code=status.HTTP_202_ACCEPTED)
async def trigger_sitemap_import(
    brand_id: UUID,
    body: Optional[SitemapImportTriggerRequest] = None,
    session: Session = Depends(get_session),
):
    try:
        job = prepare_sitemap_import(
            session,
            brand_id=brand_id,
            sitemap_url=body.sitemapUrl if body else None,
        )
    except BrandNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ImportAlreadyRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "jobId": str(exc.job.id)},
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    jobs = SitemapImportJobsRepository(session)
    try:
        temporal = await get_temporal_client()
        handle = await temporal.start_workflow(
            SitemapImportWorkflow.run,
            SitemapImportInput(
                brand_id=str(brand_id),
                sitemap_url=job.sitemap_url,
                job_id=str(job.id),
            ),
            id=sitemap_import_workflow_id(job.id),
            task_queue=settings.TEMPORAL_TASK_QUEUE,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("sitemap_import.workflow_start_failed", extra={"job_id": str(job.id)})
        jobs.mark_failed(job.id, f"Failed to start import workflow: {exc}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to start sitemap import workflow",
        ) from exc

    job = jobs.set_workflow_id(job.id, handle.id) or jobs.get(job.id)
    return _job_payload(job)


@router.get("/{brand_id}/sitemap-imports/latest")
def get_latest_sitemap_import(brand_id: UUID, session: Session = Depends(get_session)):
    job = SitemapImportJobsRepository(session).latest_for_brand(brand_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No sitemap import found for this brand")
    return _job_payload(job)


@router.post("/{brand_id}/sitemap-imports/{job_id}/cancel")
def cancel_import(brand_id: UUID, job_id: UUID, session: Session = Depends(get_session)):
    try:
        job = cancel_sitemap_import(session, brand_id=brand_id, job_id=job_id)
    except ImportJobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ImportNotCancellableError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _job_payload(job)


@router.get("/{brand_id}/links")
def list_brand_links(
    brand_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    link_filter: str = Query("all", alias="filter"),
    search: Optional[str] = Query(None),
    session: Session = Depends(get_session),
):
    if link_filter not in LINK_FILTERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"filter must be one of: {', '.join(LINK_FILTERS)}",
        )
    if not BrandsRepository(session).get(brand_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found")

    links, total = BrandLinksRepository(session).list_links(
        brand_id,
        link_filter=link_filter,
        search=search,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return {
        "links": [serialize_link(link) for link in links],
        "total": total,
        "page": page,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


@router.post("/{brand_id}/links", status_code=status.HTTP_201_CREATED)
async def create_brand_link(
    brand_id: UUID,
    body: BrandLinkCreateRequest,
    session: Session = Depends(get_session),
    embedding_client: EmbeddingClient = Depends(get_embedding_client),
):
    try:
        entry = await add_brand_link(
            session,
            brand_id=brand_id,
            url=body.url,
            title=body.title,
            link_type=body.linkType,
            embedding_client=embedding_client,
        )
    except BrandNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidLinkError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DuplicateLinkError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return {"link": serialize_link(entry)}
