from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from linkintel.config import settings
    from linkintel.temporal.activities.sitemap_import_activities import (
        create_sitemap_import_job_activity,
        select_brands_for_recrawl_activity,
    )
    from linkintel.temporal.workflows.sitemap_import import (
        SitemapImportInput,
        SitemapImportWorkflow,
    )


@dataclass
class LinkRecrawlInput:
    stagger_seconds: Optional[float] = None


@workflow.defn
class LinkRecrawlWorkflow:
    """Scheduled re-import of every brand whose link index is older than the recrawl interval."""

    @workflow.run
    async def run(self, input: LinkRecrawlInput) -> Dict[str, Any]:
        stagger = input.stagger_seconds
        if stagger is None:
            stagger = settings.LINK_RECRAWL_STAGGER_SECONDS

        selection = await workflow.execute_activity(
            select_brands_for_recrawl_activity,
            {},
            start_to_close_timeout=timedelta(minutes=2),
            retry_policy=RetryPolicy(maximum_attempts=2),
        )
        due: List[Dict[str, Any]] = list(selection.get("due") or [])
        skipped: List[Dict[str, Any]] = list(selection.get("skipped") or [])

        started: List[Dict[str, Any]] = []
        failed: List[Dict[str, Any]] = []
        for idx, brand in enumerate(due):
            brand_id = str(brand.get("brand_id") or "")
            if idx > 0 and stagger > 0:
                await workflow.sleep(stagger)
            try:
                created = await workflow.execute_activity(
                    create_sitemap_import_job_activity,
                    {"brand_id": brand_id, "sitemap_url": brand.get("sitemap_url")},
                    start_to_close_timeout=timedelta(minutes=1),
                    retry_policy=RetryPolicy(maximum_attempts=1),
                )
                if created.get("skipped"):
                    skipped.append({"brand_id": brand_id, "reason": created["skipped"]})
                    continue
                handle = await workflow.start_child_workflow(
                    SitemapImportWorkflow.run,
                    SitemapImportInput(
                        brand_id=brand_id,
                        sitemap_url=created["sitemap_url"],
                        job_id=created["job_id"],
                    ),
                    id=created["workflow_id"],
                    parent_close_policy=workflow.ParentClosePolicy.ABANDON,
                )
                started.append({"brand_id": brand_id, "job_id": created["job_id"], "workflow_id": handle.id})
            except Exception as exc:  # noqa: BLE001
                workflow.logger.error(
                    "link_recrawl.brand_failed",
                    extra={
                        "workflow_id": workflow.info().workflow_id,
                        "run_id": workflow.info().run_id,
                        "brand_id": brand_id,
                        "error": str(exc),
                    },
                )
                failed.append({"brand_id": brand_id, "error": str(exc)})

        workflow.logger.info(
            "link_recrawl.finished",
            extra={"started": len(started), "skipped": len(skipped), "failed": len(failed)},
        )
        return {"started": started, "skipped": skipped, "failed": failed}
