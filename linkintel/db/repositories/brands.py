from __future__ import annotations

from typing import Any, List, Optional, Union
from uuid import UUID

from sqlalchemy import select

from linkintel.db.models import Brand, utcnow
from linkintel.db.repositories.base import Repository, as_uuid


class BrandsRepository(Repository):
    def get(self, brand_id: Union[str, UUID], *, for_update: bool = False) -> Optional[Brand]:
        stmt = select(Brand).where(Brand.id == as_uuid(brand_id))
        if for_update:
            # Row lock held until the caller commits; a no-op on SQLite.
            stmt = stmt.with_for_update()
        return self.session.scalars(stmt).first()

    def create(
        self,
        *,
        name: str,
        domain: Optional[str] = None,
        link_preferences: Optional[dict[str, Any]] = None,
    ) -> Brand:
        brand = Brand(name=name, domain=domain, link_preferences=link_preferences or {})
        return self.save(brand)

    def list_all(self) -> List[Brand]:
        return list(self.session.scalars(select(Brand).order_by(Brand.created_at.asc())).all())

    def merge_link_preferences(self, brand_id: Union[str, UUID], **values: Any) -> Optional[Brand]:
        """
        Shallow-merge keys into brands.link_preferences.

        The JSON column is reassigned (not mutated in place) so SQLAlchemy sees the change.
        """
        brand = self.get(brand_id)
        if not brand:
            return None
        merged = dict(brand.link_preferences or {})
        merged.update(values)
        brand.link_preferences = merged
        brand.updated_at = utcnow()
        self.session.commit()
        self.session.refresh(brand)
        return brand
