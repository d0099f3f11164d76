from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Tuple, Union
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkintel.db.enums import LinkSourceEnum, LinkTypeEnum
from linkintel.db.models import BrandLinkIndexEntry, utcnow
from linkintel.db.repositories.base import Repository, as_uuid

LINK_FILTERS = ("all", "products", "collections", "pages", "unhealthy")

_FILTER_TYPES = {
    "products": LinkTypeEnum.product,
    "collections": LinkTypeEnum.collection,
    "pages": LinkTypeEnum.page,
}


class BrandLinksRepository(Repository):
    def __init__(self, session: Session) -> None:
        super().__init__(session)

    def _insert(self):
        if self.dialect_name == "sqlite":
            return sqlite.insert(BrandLinkIndexEntry)
        return postgresql.insert(BrandLinkIndexEntry)

    def get(self, link_id: Union[str, UUID]) -> Optional[BrandLinkIndexEntry]:
        stmt = select(BrandLinkIndexEntry).where(BrandLinkIndexEntry.id == as_uuid(link_id))
        return self.session.scalars(stmt).first()

    def get_by_url(self, brand_id: Union[str, UUID], url: str) -> Optional[BrandLinkIndexEntry]:
        stmt = select(BrandLinkIndexEntry).where(
            BrandLinkIndexEntry.brand_id == as_uuid(brand_id),
            BrandLinkIndexEntry.url == url,
        )
        return self.session.scalars(stmt).first()

    def known_urls(self, brand_id: Union[str, UUID]) -> set[str]:
        stmt = select(BrandLinkIndexEntry.url).where(BrandLinkIndexEntry.brand_id == as_uuid(brand_id))
        return set(self.session.scalars(stmt).all())

    def upsert_links(self, brand_id: Union[str, UUID], rows: Iterable[Mapping[str, Any]]) -> list[LinkTypeEnum]:
        """
        Insert-or-update rows on (brand_id, url) and commit.

        Each row carries url, link_type, title, embedding and source. On conflict the
        stored source is kept, and a missing title or embedding keeps the stored value.
        Returns the link types of the rows written.
        """
        now = utcnow()
        brand_uuid = as_uuid(brand_id)
        values = [
            {
                "id": uuid4(),
                "brand_id": brand_uuid,
                "url": row["url"],
                "link_type": row["link_type"],
                "title": row.get("title"),
                "embedding": row.get("embedding"),
                "source": row.get("source") or LinkSourceEnum.sitemap,
                "is_healthy": True,
                "user_confirmed": False,
                "last_verified_at": now,
                "created_at": now,
                "updated_at": now,
            }
            for row in rows
        ]
        if not values:
            return []

        stmt = self._insert().values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[BrandLinkIndexEntry.brand_id, BrandLinkIndexEntry.url],
            set_={
                "link_type": stmt.excluded.link_type,
                "title": func.coalesce(stmt.excluded.title, BrandLinkIndexEntry.title),
                "embedding": func.coalesce(stmt.excluded.embedding, BrandLinkIndexEntry.embedding),
                "is_healthy": True,
                "last_verified_at": now,
                "updated_at": now,
            },
        ).returning(BrandLinkIndexEntry.link_type)
        written = list(self.session.execute(stmt).scalars().all())
        self.session.commit()
        return written

    def insert_user_link(
        self,
        *,
        brand_id: Union[str, UUID],
        url: str,
        link_type: LinkTypeEnum,
        title: Optional[str],
        embedding: Optional[list[float]],
    ) -> Optional[BrandLinkIndexEntry]:
        """Insert a manually added link; returns None if the URL is already indexed."""
        entry = BrandLinkIndexEntry(
            brand_id=as_uuid(brand_id),
            url=url,
            link_type=link_type,
            title=title,
            embedding=embedding,
            source=LinkSourceEnum.user_added,
            is_healthy=True,
            user_confirmed=True,
            last_verified_at=utcnow(),
        )
        self.session.add(entry)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return None
        self.session.refresh(entry)
        return entry

    def list_links(
        self,
        brand_id: Union[str, UUID],
        *,
        link_filter: str = "all",
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[list[BrandLinkIndexEntry], int]:
        filters = [BrandLinkIndexEntry.brand_id == as_uuid(brand_id)]
        if link_filter in _FILTER_TYPES:
            filters.append(BrandLinkIndexEntry.link_type == _FILTER_TYPES[link_filter])
        elif link_filter == "unhealthy":
            filters.append(BrandLinkIndexEntry.is_healthy.is_(False))

        if search:
            pattern = f"%{search.strip()}%"
            filters.append(
                or_(
                    BrandLinkIndexEntry.title.ilike(pattern),
                    BrandLinkIndexEntry.url.ilike(pattern),
                )
            )

        total = self.session.scalar(select(func.count()).select_from(BrandLinkIndexEntry).where(*filters)) or 0
        stmt = (
            select(BrandLinkIndexEntry)
            .where(*filters)
            .order_by(BrandLinkIndexEntry.created_at.desc(), BrandLinkIndexEntry.url.asc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(stmt).all()), int(total)
