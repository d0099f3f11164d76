from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from linkintel.db.enums import LinkTypeEnum
from linkintel.db.models import BrandLinkIndexEntry, SitemapImportJob


class SitemapImportTriggerRequest(BaseModel):
    sitemapUrl: Optional[str] = None


class BrandLinkCreateRequest(BaseModel):
    url: str = Field(..., min_length=1)
    title: Optional[str] = None
    linkType: Optional[LinkTypeEnum] = None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_import_job(job: SitemapImportJob) -> dict[str, Any]:
    return {
        "id": str(job.id),
        "brandId": str(job.brand_id),
        "sitemapUrl": job.sitemap_url,
        "status": job.status.value,
        "urlsFound": job.urls_found,
        "urlsProcessed": job.urls_processed,
        "urlsFailed": job.urls_failed,
        "productUrlsCount": job.product_urls_count,
        "collectionUrlsCount": job.collection_urls_count,
        "pageUrlsCount": job.page_urls_count,
        "errorMessage": job.error_message,
        "temporalWorkflowId": job.temporal_workflow_id,
        "startedAt": _iso(job.started_at),
        "completedAt": _iso(job.completed_at),
        "createdAt": _iso(job.created_at),
        "updatedAt": _iso(job.updated_at),
    }


def serialize_link(entry: BrandLinkIndexEntry) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "brandId": str(entry.brand_id),
        "url": entry.url,
        "linkType": entry.link_type.value,
        "title": entry.title,
        "hasEmbedding": entry.embedding is not None,
        "source": entry.source.value,
        "isHealthy": entry.is_healthy,
        "userConfirmed": entry.user_confirmed,
        "lastVerifiedAt": _iso(entry.last_verified_at),
        "createdAt": _iso(entry.created_at),
        "updatedAt": _iso(entry.updated_at),
    }
