from datetime import datetime, timedelta, timezone

import pytest

from linkintel.db.enums import SitemapImportStatusEnum
from linkintel.db.models import SitemapImportJob
from linkintel.services.job_status import STALE_WARNING, compute_progress, present_job_status

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _job(status: SitemapImportStatusEnum, *, found: int = 0, processed: int = 0, updated_minutes_ago: float = 0, error=None):
    return SitemapImportJob(
        brand_id="00000000-0000-0000-0000-000000000001",
        sitemap_url="https://acme.test/sitemap.xml",
        status=status,
        urls_found=found,
        urls_processed=processed,
        error_message=error,
        updated_at=NOW - timedelta(minutes=updated_minutes_ago),
    )


def test_stale_crawling_job_is_running_and_stale():
    view = present_job_status(_job(SitemapImportStatusEnum.crawling_nav, updated_minutes_ago=11), NOW)
    assert view.is_running is True
    assert view.is_stale is True
    assert view.stale_warning == STALE_WARNING
    assert view.message == "Discovering navigation links..."
    assert view.poll_interval_seconds == 3


def test_recent_running_job_is_not_stale():
    view = present_job_status(_job(SitemapImportStatusEnum.fetching_titles, updated_minutes_ago=9), NOW)
    assert view.is_running is True
    assert view.is_stale is False
    assert view.stale_warning is None


def test_embedding_progress():
    view = present_job_status(_job(SitemapImportStatusEnum.generating_embeddings, found=100, processed=40), NOW)
    assert view.progress == 88
    assert view.message == "Generating embeddings..."


@pytest.mark.parametrize(
    "status,found,processed,expected",
    [
        (SitemapImportStatusEnum.pending, 10, 5, 0),
        (SitemapImportStatusEnum.parsing, 10, 5, 0),
        (SitemapImportStatusEnum.crawling_nav, 0, 0, 0),
        (SitemapImportStatusEnum.crawling_nav, 10, 5, 30),
        (SitemapImportStatusEnum.fetching_titles, 0, 0, 0),
        (SitemapImportStatusEnum.fetching_titles, 80, 40, 40),
        (SitemapImportStatusEnum.generating_embeddings, 0, 0, 80),
        (SitemapImportStatusEnum.complete, 0, 0, 100),
        (SitemapImportStatusEnum.failed, 10, 10, 0),
        (SitemapImportStatusEnum.cancelled, 10, 10, 0),
    ],
)
def test_compute_progress(status, found, processed, expected):
    assert compute_progress(status, found, processed) == expected


def test_terminal_states_are_not_running_or_stale():
    failed = present_job_status(
        _job(SitemapImportStatusEnum.failed, updated_minutes_ago=120, error="Failed to fetch sitemap"),
        NOW,
    )
    assert failed.is_failed is True
    assert failed.is_running is False
    assert failed.is_stale is False
    assert failed.message == "Import failed: Failed to fetch sitemap"
    assert failed.poll_interval_seconds is None

    complete = present_job_status(_job(SitemapImportStatusEnum.complete), NOW)
    assert complete.is_complete is True
    assert complete.message == "Import complete"

    cancelled = present_job_status(_job(SitemapImportStatusEnum.cancelled), NOW)
    assert cancelled.is_cancelled is True
    assert cancelled.message == "Import cancelled"


def test_naive_updated_at_is_treated_as_utc():
    job = _job(SitemapImportStatusEnum.parsing)
    job.updated_at = (NOW - timedelta(minutes=15)).replace(tzinfo=None)
    assert present_job_status(job, NOW).is_stale is True


def test_as_dict_uses_camel_case_keys():
    payload = present_job_status(_job(SitemapImportStatusEnum.pending), NOW).as_dict()
    assert payload["status"] == "pending"
    assert payload["message"] == "Waiting to start..."
    assert payload["isRunning"] is True
    assert payload["pollIntervalSeconds"] == 3
