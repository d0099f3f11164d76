from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from pgvector.sqlalchemy import Vector
import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from linkintel.db.base import Base
from linkintel.db.enums import (
    RUNNING_IMPORT_STATUSES,
    SITEMAP_IMPORT_PIPELINE,
    LinkSourceEnum,
    LinkTypeEnum,
    SitemapImportStatusEnum,
)

# JSONB on Postgres, plain JSON elsewhere; Python None is stored as SQL NULL, not JSON 'null'.
JSONType = sa.JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

# text-embedding-3-small vectors; pgvector on Postgres, a JSON array elsewhere.
EMBEDDING_DIMENSIONS = 1536
EmbeddingType = sa.JSON(none_as_null=True).with_variant(Vector(EMBEDDING_DIMENSIONS), "postgresql")

# At most one running import per brand.
_RUNNING_IMPORT_WHERE = sa.text(
    "status IN ("
    + ", ".join(f"'{status.value}'" for status in SITEMAP_IMPORT_PIPELINE if status in RUNNING_IMPORT_STATUSES)
    + ")"
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Brand(Base):
    __tablename__ = "brands"

    id: Mapped[str] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link_preferences: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


class SitemapImportJob(Base):
    __tablename__ = "sitemap_import_jobs"
    __table_args__ = (
        sa.Index("idx_sitemap_import_jobs_brand_created", "brand_id", "created_at"),
        sa.Index("idx_sitemap_import_jobs_status", "status"),
        sa.Index(
            "uq_sitemap_import_jobs_running_brand",
            "brand_id",
            unique=True,
            postgresql_where=_RUNNING_IMPORT_WHERE,
            sqlite_where=_RUNNING_IMPORT_WHERE,
        ),
    )

    id: Mapped[str] = mapped_column(Uuid, primary_key=True, default=uuid4)
    brand_id: Mapped[str] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    sitemap_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[SitemapImportStatusEnum] = mapped_column(
        Enum(SitemapImportStatusEnum, name="sitemap_import_status"),
        nullable=False,
        default=SitemapImportStatusEnum.pending,
        server_default=SitemapImportStatusEnum.pending.value,
    )

    urls_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    urls_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    urls_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    product_urls_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    collection_urls_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    page_urls_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    temporal_workflow_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


class BrandLinkIndexEntry(Base):
    __tablename__ = "brand_link_index"
    __table_args__ = (
        UniqueConstraint("brand_id", "url", name="uq_brand_link_index_brand_url"),
        sa.Index("idx_brand_link_index_brand_type", "brand_id", "link_type"),
    )

    id: Mapped[str] = mapped_column(Uuid, primary_key=True, default=uuid4)
    brand_id: Mapped[str] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    link_type: Mapped[LinkTypeEnum] = mapped_column(Enum(LinkTypeEnum, name="brand_link_type"), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    embedding: Mapped[Optional[list[float]]] = mapped_column(EmbeddingType, nullable=True)
    source: Mapped[LinkSourceEnum] = mapped_column(Enum(LinkSourceEnum, name="brand_link_source"), nullable=False)
    is_healthy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sa.true())
    user_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=sa.false())
    last_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
