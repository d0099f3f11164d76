from __future__ import annotations

import asyncio
import concurrent.futures
import logging

from temporalio.worker import Worker

from linkintel.config import settings
from linkintel.temporal.client import get_temporal_client
from linkintel.temporal.workflows.link_recrawl import LinkRecrawlWorkflow
from linkintel.temporal.workflows.sitemap_import import SitemapImportWorkflow
from linkintel.temporal.activities.sitemap_import_activities import (
    create_sitemap_import_job_activity,
    mark_sitemap_import_failed_activity,
    run_sitemap_import_activity,
    select_brands_for_recrawl_activity,
)


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    client = await get_temporal_client()
    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as activity_executor:
        worker = Worker(
            client,
            task_queue=settings.TEMPORAL_TASK_QUEUE,
            workflows=[
                SitemapImportWorkflow,
                LinkRecrawlWorkflow,
            ],
            activities=[
                run_sitemap_import_activity,
                mark_sitemap_import_failed_activity,
                create_sitemap_import_job_activity,
                select_brands_for_recrawl_activity,
            ],
            activity_executor=activity_executor,
        )
        await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
