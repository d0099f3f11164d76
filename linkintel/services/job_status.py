from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from linkintel.config import settings
from linkintel.db.enums import RUNNING_IMPORT_STATUSES, SitemapImportStatusEnum
from linkintel.db.models import SitemapImportJob

POLL_INTERVAL_SECONDS = 3
STALE_WARNING = "No activity in 10+ minutes. The import may have stalled; cancel it and try again."

_STATUS_MESSAGES = {
    SitemapImportStatusEnum.pending: "Waiting to start...",
    SitemapImportStatusEnum.parsing: "Parsing sitemap...",
    SitemapImportStatusEnum.crawling_nav: "Discovering navigation links...",
    SitemapImportStatusEnum.fetching_titles: "Fetching page titles...",
    SitemapImportStatusEnum.generating_embeddings: "Generating embeddings...",
    SitemapImportStatusEnum.complete: "Import complete",
    SitemapImportStatusEnum.cancelled: "Import cancelled",
}


@dataclass(frozen=True)
class JobStatusView:
    status: SitemapImportStatusEnum
    is_running: bool
    is_stale: bool
    is_complete: bool
    is_failed: bool
    is_cancelled: bool
    progress: int
    message: str
    stale_warning: Optional[str]
    poll_interval_seconds: Optional[int]

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "isRunning": self.is_running,
            "isStale": self.is_stale,
            "isComplete": self.is_complete,
            "isFailed": self.is_failed,
            "isCancelled": self.is_cancelled,
            "progress": self.progress,
            "message": self.message,
            "staleWarning": self.stale_warning,
            "pollIntervalSeconds": self.poll_interval_seconds,
        }


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def stale_after() -> timedelta:
    return timedelta(minutes=settings.SITEMAP_IMPORT_STALE_MINUTES)


def is_stale(status: SitemapImportStatusEnum, updated_at: Optional[datetime], now: datetime) -> bool:
    if status not in RUNNING_IMPORT_STATUSES or updated_at is None:
        return False
    return _as_aware(now) - _as_aware(updated_at) > stale_after()


def compute_progress(status: SitemapImportStatusEnum, urls_found: int, urls_processed: int) -> int:
    found = max(int(urls_found or 0), 0)
    processed = max(int(urls_processed or 0), 0)
    if status is SitemapImportStatusEnum.crawling_nav:
        value = processed / max(found, 1) * 60
    elif status is SitemapImportStatusEnum.fetching_titles:
        value = processed / found * 80 if found else 0
    elif status is SitemapImportStatusEnum.generating_embeddings:
        value = 80 + processed / found * 20 if found else 80
    elif status is SitemapImportStatusEnum.complete:
        value = 100
    else:
        value = 0
    return int(round(min(max(value, 0), 100)))


def present_job_status(job: SitemapImportJob, now: Optional[datetime] = None) -> JobStatusView:
    """Derive the client-facing view of a job from its record at time `now`."""
    now = now or datetime.now(timezone.utc)
    status = SitemapImportStatusEnum(job.status)
    running = status in RUNNING_IMPORT_STATUSES
    stale = is_stale(status, job.updated_at, now)

    if status is SitemapImportStatusEnum.failed:
        message = f"Import failed: {job.error_message or 'Unknown error'}"
    else:
        message = _STATUS_MESSAGES[status]

    return JobStatusView(
        status=status,
        is_running=running,
        is_stale=stale,
        is_complete=status is SitemapImportStatusEnum.complete,
        is_failed=status is SitemapImportStatusEnum.failed,
        is_cancelled=status is SitemapImportStatusEnum.cancelled,
        progress=compute_progress(status, job.urls_found, job.urls_processed),
        message=message,
        stale_warning=STALE_WARNING if stale else None,
        poll_interval_seconds=POLL_INTERVAL_SECONDS if running else None,
    )
