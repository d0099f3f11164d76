from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from linkintel.db.enums import LinkSourceEnum, LinkTypeEnum
from linkintel.db.models import BrandLinkIndexEntry
from linkintel.db.repositories.brand_links import BrandLinksRepository
from linkintel.discovery.index_writer import LinkIndexWriter
from linkintel.discovery.merge import LinkCandidate


def _candidates(count: int, *, source=LinkSourceEnum.sitemap, embedding=None) -> list[LinkCandidate]:
    return [
        LinkCandidate(
            url=f"https://acme.test/products/p{idx}",
            link_type=LinkTypeEnum.product,
            source=source,
            title=f"Product {idx}",
            embedding=embedding,
        )
        for idx in range(count)
    ]


def _row_count(db_session, brand) -> int:
    return db_session.scalar(
        select(func.count()).select_from(BrandLinkIndexEntry).where(BrandLinkIndexEntry.brand_id == brand.id)
    )


def test_write_is_idempotent(db_session, brand):
    writer = LinkIndexWriter(BrandLinksRepository(db_session))

    first = writer.write(brand.id, _candidates(120, embedding=[0.1, 0.2]))
    second = writer.write(brand.id, _candidates(120, embedding=[0.1, 0.2]))

    assert first[LinkTypeEnum.product] == 120
    assert second[LinkTypeEnum.product] == 120
    assert _row_count(db_session, brand) == 120


def test_upsert_keeps_source_and_existing_embedding(db_session, brand):
    repo = BrandLinksRepository(db_session)
    writer = LinkIndexWriter(repo)
    writer.write(brand.id, _candidates(1, source=LinkSourceEnum.navigation, embedding=[0.1, 0.2]))

    writer.write(
        brand.id,
        [
            LinkCandidate(
                url="https://acme.test/products/p0",
                link_type=LinkTypeEnum.product,
                source=LinkSourceEnum.sitemap,
                title="Renamed",
                embedding=None,
            )
        ],
    )

    db_session.expire_all()
    entry = repo.get_by_url(brand.id, "https://acme.test/products/p0")
    assert entry.source == LinkSourceEnum.navigation
    assert entry.title == "Renamed"
    assert entry.embedding == [0.1, 0.2]
    assert entry.is_healthy is True
    assert entry.last_verified_at is not None


def test_failed_batch_does_not_abort_later_batches(db_session, brand, monkeypatch):
    repo = BrandLinksRepository(db_session)
    original = repo.upsert_links
    calls = {"count": 0}

    def flaky_upsert(brand_id, rows):
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        return original(brand_id, rows)

    monkeypatch.setattr(repo, "upsert_links", flaky_upsert)

    written = LinkIndexWriter(repo, batch_size=50).write(brand.id, _candidates(120))

    assert calls["count"] == 3
    assert written[LinkTypeEnum.product] == 70
    assert _row_count(db_session, brand) == 70


def test_list_links_filters_and_paginates(db_session, brand):
    repo = BrandLinksRepository(db_session)
    repo.upsert_links(
        brand.id,
        [
            {"url": "https://acme.test/products/sun-hat", "link_type": LinkTypeEnum.product, "title": "Sun Hat"},
            {"url": "https://acme.test/products/rain-coat", "link_type": LinkTypeEnum.product, "title": "Rain Coat"},
            {"url": "https://acme.test/collections/summer", "link_type": LinkTypeEnum.collection, "title": "Summer"},
            {"url": "https://acme.test/pages/about", "link_type": LinkTypeEnum.page, "title": "About"},
        ],
    )

    links, total = repo.list_links(brand.id, link_filter="products")
    assert total == 2
    assert {link.url for link in links} == {
        "https://acme.test/products/sun-hat",
        "https://acme.test/products/rain-coat",
    }

    links, total = repo.list_links(brand.id, search="SUMMER")
    assert total == 1
    assert links[0].link_type == LinkTypeEnum.collection

    links, total = repo.list_links(brand.id, limit=3, offset=3)
    assert total == 4
    assert len(links) == 1

    links, total = repo.list_links(brand.id, link_filter="unhealthy")
    assert total == 0
    assert repo.known_urls(brand.id) == {
        "https://acme.test/products/sun-hat",
        "https://acme.test/products/rain-coat",
        "https://acme.test/collections/summer",
        "https://acme.test/pages/about",
    }
