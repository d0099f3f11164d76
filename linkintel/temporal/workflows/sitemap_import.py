from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from linkintel.config import settings
    from linkintel.temporal.activities.sitemap_import_activities import (
        mark_sitemap_import_failed_activity,
        run_sitemap_import_activity,
    )


@dataclass
class SitemapImportInput:
    brand_id: str
    sitemap_url: str
    job_id: str


@workflow.defn
class SitemapImportWorkflow:
    @workflow.run
    async def run(self, input: SitemapImportInput) -> Dict[str, Any]:
        params = {
            "brand_id": input.brand_id,
            "sitemap_url": input.sitemap_url,
            "job_id": input.job_id,
        }
        try:
            return await workflow.execute_activity(
                run_sitemap_import_activity,
                params,
                start_to_close_timeout=timedelta(minutes=settings.SITEMAP_IMPORT_ACTIVITY_TIMEOUT_MINUTES),
                heartbeat_timeout=timedelta(minutes=5),
                retry_policy=RetryPolicy(maximum_attempts=1),
            )
        except Exception as exc:  # noqa: BLE001
            # The activity died before it could record an outcome (timeout, worker loss).
            error = str(exc) or exc.__class__.__name__
            workflow.logger.error(
                "sitemap_import.activity_failed",
                extra={
                    "workflow_id": workflow.info().workflow_id,
                    "run_id": workflow.info().run_id,
                    "job_id": input.job_id,
                    "error": error,
                },
            )
            await workflow.execute_activity(
                mark_sitemap_import_failed_activity,
                {"job_id": input.job_id, "error": f"Import worker failed: {error}"},
                start_to_close_timeout=timedelta(minutes=1),
                retry_policy=RetryPolicy(maximum_attempts=3),
            )
            return {"status": "failed", "job_id": input.job_id, "error": error}
