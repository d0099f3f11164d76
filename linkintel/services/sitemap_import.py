from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union
from urllib.parse import urlsplit
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkintel.config import settings
from linkintel.db.enums import (
    LinkTypeEnum,
    SitemapImportStatusEnum,
    TERMINAL_IMPORT_STATUSES,
)
from linkintel.db.models import Brand, BrandLinkIndexEntry, SitemapImportJob
from linkintel.db.repositories.brand_links import BrandLinksRepository
from linkintel.db.repositories.brands import BrandsRepository
from linkintel.db.repositories.sitemap_import_jobs import SitemapImportJobsRepository
from linkintel.discovery.embeddings import EmbeddingClient, EmbeddingGenerator
from linkintel.discovery.fetch import PageFetcher
from linkintel.discovery.index_writer import LinkIndexWriter
from linkintel.discovery.merge import merge_candidates, subtract_known
from linkintel.discovery.navigation import NavigationCrawler, normalize_domain
from linkintel.discovery.rules import UrlRules
from linkintel.discovery.sitemap import SitemapParser
from linkintel.discovery.titles import TitleFetcher
from linkintel.services.job_status import is_stale

logger = logging.getLogger(__name__)

STALE_REPLACEMENT_REASON = "Superseded by a new import after 10+ minutes without activity"


class BrandNotFoundError(LookupError):
    """Raised when the brand does not exist."""


class ImportJobNotFoundError(LookupError):
    """Raised when the import job does not exist for the brand."""


class ImportAlreadyRunningError(RuntimeError):
    """Raised when a brand already has an active import."""

    def __init__(self, job: SitemapImportJob) -> None:
        super().__init__(f"Sitemap import {job.id} is already {job.status.value}")
        self.job = job


class ImportNotCancellableError(RuntimeError):
    """Raised when cancelling a job that already reached a terminal state."""


class DuplicateLinkError(RuntimeError):
    """Raised when a manually added URL is already in the brand's link index."""


class InvalidLinkError(ValueError):
    """Raised when a manually added URL cannot be normalized for the brand."""


class SitemapImportCancelled(Exception):
    """Internal signal: the job left its running state while the pipeline was working."""


def default_sitemap_url(brand: Brand) -> Optional[str]:
    prefs = brand.link_preferences or {}
    configured = str(prefs.get("sitemap_url") or "").strip()
    if configured:
        return configured
    if brand.domain:
        return f"https://{normalize_domain(brand.domain)}/sitemap.xml"
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def prepare_sitemap_import(
    session: Session,
    *,
    brand_id: Union[str, UUID],
    sitemap_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SitemapImportJob:
    """
    Create a pending job for the brand and remember its sitemap URL.

    An active job blocks the trigger unless it went stale, in which case it is
    cancelled and replaced.
    """
    now = now or datetime.now(timezone.utc)
    brands = BrandsRepository(session)
    jobs = SitemapImportJobsRepository(session)

    # The brand row lock serializes concurrent triggers; the partial unique index on
    # running jobs catches whatever slips past it.
    brand = brands.get(brand_id, for_update=True)
    if not brand:
        raise BrandNotFoundError(f"Brand {brand_id} not found")

    resolved_url = (sitemap_url or "").strip() or default_sitemap_url(brand)
    if not resolved_url:
        raise ValueError("Brand has no domain or sitemap URL configured")

    for running in jobs.running_for_brand(brand.id):
        if not is_stale(running.status, running.updated_at, now):
            raise ImportAlreadyRunningError(running)
        logger.warning(
            "sitemap_import.stale_job_replaced",
            extra={"brand_id": str(brand.id), "job_id": str(running.id), "status": running.status.value},
        )
        jobs.mark_cancelled(running.id, STALE_REPLACEMENT_REASON)

    try:
        job = jobs.create(brand_id=brand.id, sitemap_url=resolved_url)
    except IntegrityError:
        session.rollback()
        running = jobs.running_for_brand(brand.id)
        if not running:
            raise
        raise ImportAlreadyRunningError(running[0])
    brands.merge_link_preferences(brand.id, sitemap_url=resolved_url)
    logger.info(
        "sitemap_import.job_created",
        extra={"brand_id": str(brand.id), "job_id": str(job.id), "sitemap_url": resolved_url},
    )
    return job


def sitemap_import_workflow_id(job_id: Union[str, UUID]) -> str:
    return f"sitemap-import-{job_id}"


def cancel_sitemap_import(
    session: Session,
    *,
    brand_id: Union[str, UUID],
    job_id: Union[str, UUID],
) -> SitemapImportJob:
    jobs = SitemapImportJobsRepository(session)
    job = jobs.get(job_id)
    if not job or str(job.brand_id) != str(brand_id):
        raise ImportJobNotFoundError(f"Sitemap import {job_id} not found")
    if job.status in TERMINAL_IMPORT_STATUSES:
        raise ImportNotCancellableError(f"Sitemap import {job_id} is already {job.status.value}")

    cancelled = jobs.mark_cancelled(job.id, "Cancelled by user")
    if cancelled is None:
        # Lost a race with the pipeline reaching a terminal state.
        session.refresh(job)
        raise ImportNotCancellableError(f"Sitemap import {job_id} is already {job.status.value}")
    logger.info("sitemap_import.cancelled", extra={"brand_id": str(brand_id), "job_id": str(job_id)})
    return cancelled


def normalize_link_url(url: str, domain: Optional[str]) -> str:
    value = (url or "").strip()
    if not value:
        raise InvalidLinkError("URL is required")
    if value.startswith("//"):
        value = f"https:{value}"
    elif value.startswith("/"):
        if not domain:
            raise InvalidLinkError("Relative URLs need a brand domain")
        value = f"https://{normalize_domain(domain)}{value}"
    elif "://" not in value:
        value = f"https://{value}"
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidLinkError(f"Invalid URL: {url}")
    return value


async def add_brand_link(
    session: Session,
    *,
    brand_id: Union[str, UUID],
    url: str,
    title: Optional[str] = None,
    link_type: Optional[LinkTypeEnum] = None,
    embedding_client: Optional[EmbeddingClient] = None,
) -> BrandLinkIndexEntry:
    """Insert a user-confirmed link, embedding its title when one is given."""
    brand = BrandsRepository(session).get(brand_id)
    if not brand:
        raise BrandNotFoundError(f"Brand {brand_id} not found")

    normalized = normalize_link_url(url, brand.domain)
    rules = UrlRules.from_preferences(brand.link_preferences)
    resolved_type = link_type or rules.classify(normalized) or LinkTypeEnum.page
    clean_title = (title or "").strip() or None

    embedding = None
    if clean_title and embedding_client is not None:
        embedding = await EmbeddingGenerator(embedding_client).embed_one(clean_title)

    entry = BrandLinksRepository(session).insert_user_link(
        brand_id=brand.id,
        url=normalized,
        link_type=resolved_type,
        title=clean_title,
        embedding=embedding,
    )
    if entry is None:
        raise DuplicateLinkError(f"{normalized} is already in the link index")
    logger.info(
        "brand_links.user_link_added",
        extra={"brand_id": str(brand.id), "url": normalized, "has_embedding": embedding is not None},
    )
    return entry


def brands_due_for_recrawl(session: Session, *, now: Optional[datetime] = None) -> dict[str, list[dict[str, Any]]]:
    """
    Split brands into those due for a scheduled re-import and those skipped.

    A brand is due when its last import is missing or older than the recrawl interval
    and it has no active import.
    """
    now = now or datetime.now(timezone.utc)
    interval = timedelta(days=settings.LINK_RECRAWL_INTERVAL_DAYS)
    jobs = SitemapImportJobsRepository(session)

    due: list[dict[str, Any]] = []
    skipped: list[dict[str, Any]] = []
    for brand in BrandsRepository(session).list_all():
        if not brand.domain:
            skipped.append({"brand_id": str(brand.id), "name": brand.name, "reason": "no_domain"})
            continue
        last_import = parse_timestamp((brand.link_preferences or {}).get("last_sitemap_import_at"))
        if last_import and now - last_import < interval:
            continue
        active = [job for job in jobs.running_for_brand(brand.id) if not is_stale(job.status, job.updated_at, now)]
        if active:
            skipped.append({"brand_id": str(brand.id), "name": brand.name, "reason": "import_running"})
            continue
        due.append({"brand_id": str(brand.id), "name": brand.name, "sitemap_url": default_sitemap_url(brand)})
    return {"due": due, "skipped": skipped}


class SitemapImportPipeline:
    """
    One sitemap import run for one job.

    Stages run strictly in order and every job write is conditional on the job still
    running, so a cancellation between stages or batches stops the run without
    further link writes.
    """

    def __init__(
        self,
        session: Session,
        *,
        fetcher: PageFetcher,
        embedding_client: EmbeddingClient,
        heartbeat: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.session = session
        self.fetcher = fetcher
        self.embedding_client = embedding_client
        self.heartbeat = heartbeat
        self.jobs = SitemapImportJobsRepository(session)
        self.brands = BrandsRepository(session)
        self.links = BrandLinksRepository(session)

    def _beat(self, **details: Any) -> None:
        if self.heartbeat is not None:
            self.heartbeat(details)

    def _ensure_running(self, job_id: Union[str, UUID]) -> None:
        status = self.jobs.current_status(job_id)
        if status is None or status in TERMINAL_IMPORT_STATUSES:
            raise SitemapImportCancelled(f"Job {job_id} is {status.value if status else 'missing'}")

    def _advance(self, job_id: Union[str, UUID], status: SitemapImportStatusEnum, **values: Any) -> SitemapImportJob:
        job = self.jobs.advance(job_id, status, **values)
        if job is None:
            self._ensure_running(job_id)
            raise SitemapImportCancelled(f"Job {job_id} could not move to {status.value}")
        logger.info("sitemap_import.stage_started", extra={"job_id": str(job_id), "status": status.value})
        self._beat(stage=status.value)
        return job

    def _finish(self, job_id: Union[str, UUID], brand: Brand, sitemap_url: str, counts: dict[str, int], **values: Any) -> dict[str, Any]:
        job = self.jobs.mark_complete(job_id, **counts, **values)
        if job is None:
            self._ensure_running(job_id)
            raise SitemapImportCancelled(f"Job {job_id} could not complete")
        self.brands.merge_link_preferences(
            brand.id,
            sitemap_url=sitemap_url,
            last_sitemap_import_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(
            "sitemap_import.completed",
            extra={"job_id": str(job_id), "brand_id": str(brand.id), **counts},
        )
        return {"status": job.status.value, "job_id": str(job_id), **counts}

    async def run(self, job_id: Union[str, UUID]) -> dict[str, Any]:
        """Run the whole pipeline; failures are recorded on the job instead of raised."""
        job = self.jobs.get(job_id)
        if not job:
            raise LookupError(f"Sitemap import job {job_id} not found")
        if job.status in TERMINAL_IMPORT_STATUSES:
            logger.info("sitemap_import.skipped_terminal", extra={"job_id": str(job_id), "status": job.status.value})
            return {"status": job.status.value, "job_id": str(job_id)}

        try:
            return await self._run(job)
        except SitemapImportCancelled as exc:
            status = self.jobs.current_status(job.id)
            logger.info(
                "sitemap_import.stopped",
                extra={"job_id": str(job.id), "status": status.value if status else None, "reason": str(exc)},
            )
            return {"status": status.value if status else "missing", "job_id": str(job.id)}
        except Exception as exc:  # noqa: BLE001
            self.session.rollback()
            logger.exception("sitemap_import.failed", extra={"job_id": str(job.id), "error": str(exc)})
            failed = self.jobs.mark_failed(job.id, str(exc) or exc.__class__.__name__)
            status = failed.status.value if failed else SitemapImportStatusEnum.failed.value
            return {"status": status, "job_id": str(job.id), "error": str(exc)}

    async def _run(self, job: SitemapImportJob) -> dict[str, Any]:
        job_id = job.id
        sitemap_url = job.sitemap_url
        brand = self.brands.get(job.brand_id)
        if not brand:
            raise BrandNotFoundError(f"Brand {job.brand_id} not found")
        rules = UrlRules.from_preferences(brand.link_preferences)
        zero_counts = {"product_urls_count": 0, "collection_urls_count": 0, "page_urls_count": 0}

        self._advance(job_id, SitemapImportStatusEnum.parsing)
        parser = SitemapParser(
            self.fetcher,
            on_child=lambda child_url: self._beat(stage=SitemapImportStatusEnum.parsing.value, sitemap=child_url),
        )
        sitemap_urls = await parser.parse(sitemap_url)
        logger.info("sitemap_import.sitemap_parsed", extra={"job_id": str(job_id), "urls": len(sitemap_urls)})

        self._advance(job_id, SitemapImportStatusEnum.crawling_nav)
        navigation_links = []
        crawl_domain = brand.domain or urlsplit(sitemap_url).hostname
        if crawl_domain:
            navigation_links = await NavigationCrawler(self.fetcher, rules=rules).crawl(crawl_domain)

        candidates = merge_candidates(sitemap_urls, navigation_links, rules)
        new_candidates = subtract_known(candidates, self.links.known_urls(brand.id))
        logger.info(
            "sitemap_import.candidates_merged",
            extra={
                "job_id": str(job_id),
                "sitemap_urls": len(sitemap_urls),
                "navigation_links": len(navigation_links),
                "merged": len(candidates),
                "new": len(new_candidates),
            },
        )
        self._ensure_running(job_id)
        if not new_candidates:
            return self._finish(job_id, brand, sitemap_url, zero_counts, urls_found=0, urls_processed=0)

        pre_titled = [candidate for candidate in new_candidates if candidate.title]
        untitled = [candidate for candidate in new_candidates if not candidate.title]
        self._advance(
            job_id,
            SitemapImportStatusEnum.fetching_titles,
            urls_found=len(new_candidates),
            urls_processed=len(pre_titled),
            urls_failed=0,
        )

        async def on_title_batch(attempted: int, failed: int) -> None:
            self.jobs.record_progress(job_id, processed=len(pre_titled) + attempted, failed=failed)
            self._beat(stage=SitemapImportStatusEnum.fetching_titles.value, attempted=attempted, failed=failed)
            self._ensure_running(job_id)

        title_result = await TitleFetcher(self.fetcher).fetch_titles(untitled, on_batch=on_title_batch)
        titled = pre_titled + title_result.titled
        if not titled:
            return self._finish(job_id, brand, sitemap_url, zero_counts)

        self._advance(job_id, SitemapImportStatusEnum.generating_embeddings)

        async def on_embedding_batch(embedded: int, failed_batches: int) -> None:
            self._beat(
                stage=SitemapImportStatusEnum.generating_embeddings.value,
                embedded=embedded,
                failed_batches=failed_batches,
            )
            self._ensure_running(job_id)

        enriched = await EmbeddingGenerator(self.embedding_client).embed_candidates(titled, on_batch=on_embedding_batch)

        self._ensure_running(job_id)
        written = LinkIndexWriter(self.links).write(brand.id, enriched)
        counts = {
            "product_urls_count": written.get(LinkTypeEnum.product, 0),
            "collection_urls_count": written.get(LinkTypeEnum.collection, 0),
            "page_urls_count": written.get(LinkTypeEnum.page, 0),
        }
        return self._finish(job_id, brand, sitemap_url, counts)
