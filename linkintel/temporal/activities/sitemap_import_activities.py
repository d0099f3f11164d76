from __future__ import annotations

import asyncio
from typing import Any, Dict

from temporalio import activity

from linkintel.db.base import session_scope
from linkintel.db.repositories.sitemap_import_jobs import SitemapImportJobsRepository
from linkintel.discovery.embeddings import OpenAIEmbeddingClient
from linkintel.discovery.fetch import PageFetcher
from linkintel.services.sitemap_import import (
    ImportAlreadyRunningError,
    SitemapImportPipeline,
    brands_due_for_recrawl,
    prepare_sitemap_import,
    sitemap_import_workflow_id,
)


async def _run_pipeline(job_id: str) -> Dict[str, Any]:
    async with PageFetcher() as fetcher:
        with session_scope() as session:
            pipeline = SitemapImportPipeline(
                session,
                fetcher=fetcher,
                embedding_client=OpenAIEmbeddingClient(),
                heartbeat=activity.heartbeat,
            )
            return await pipeline.run(job_id)


@activity.defn
def run_sitemap_import_activity(params: Dict[str, Any]) -> Dict[str, Any]:
    """Run the full discovery pipeline for one job; failures are recorded on the job."""
    job_id = str(params["job_id"])
    activity.logger.info(
        "sitemap_import.activity_started",
        extra={"job_id": job_id, "brand_id": params.get("brand_id"), "sitemap_url": params.get("sitemap_url")},
    )
    result = asyncio.run(_run_pipeline(job_id))
    activity.logger.info("sitemap_import.activity_finished", extra={"job_id": job_id, **result})
    return result


@activity.defn
def mark_sitemap_import_failed_activity(params: Dict[str, Any]) -> Dict[str, Any]:
    job_id = str(params["job_id"])
    error = str(params.get("error") or "Sitemap import did not finish")
    with session_scope() as session:
        job = SitemapImportJobsRepository(session).mark_failed(job_id, error)
    # None means the job already reached a terminal state.
    return {"job_id": job_id, "marked_failed": job is not None}


@activity.defn
def create_sitemap_import_job_activity(params: Dict[str, Any]) -> Dict[str, Any]:
    brand_id = str(params["brand_id"])
    with session_scope() as session:
        try:
            job = prepare_sitemap_import(session, brand_id=brand_id, sitemap_url=params.get("sitemap_url"))
        except ImportAlreadyRunningError as exc:
            activity.logger.info(
                "link_recrawl.import_already_running",
                extra={"brand_id": brand_id, "job_id": str(exc.job.id)},
            )
            return {"brand_id": brand_id, "skipped": "import_running"}
        workflow_id = sitemap_import_workflow_id(job.id)
        SitemapImportJobsRepository(session).set_workflow_id(job.id, workflow_id)
        return {
            "brand_id": brand_id,
            "job_id": str(job.id),
            "sitemap_url": job.sitemap_url,
            "workflow_id": workflow_id,
        }


@activity.defn
def select_brands_for_recrawl_activity(params: Dict[str, Any]) -> Dict[str, Any]:
    with session_scope() as session:
        selection = brands_due_for_recrawl(session)
    activity.logger.info(
        "link_recrawl.brands_selected",
        extra={"due": len(selection["due"]), "skipped": len(selection["skipped"])},
    )
    return selection
