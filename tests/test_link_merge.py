from linkintel.db.enums import LinkSourceEnum, LinkTypeEnum
from linkintel.discovery.merge import merge_candidates, subtract_known
from linkintel.discovery.navigation import NavigationLink


def _scenario_sitemap_urls() -> list[str]:
    """100 URLs: 40 products, 25 collections, 15 pages, 20 skipped or unclassified."""
    urls = [f"https://acme.test/products/p{idx}" for idx in range(40)]
    urls += [f"https://acme.test/collections/c{idx}" for idx in range(25)]
    urls += [f"https://acme.test/pages/g{idx}" for idx in range(15)]
    urls += [f"https://acme.test/blogs/news/post-{idx}" for idx in range(10)]
    urls += [f"https://acme.test/misc-{idx}" for idx in range(10)]
    return urls


def test_sitemap_urls_are_filtered_and_classified():
    candidates = merge_candidates(_scenario_sitemap_urls(), [])

    assert len(candidates) == 80
    assert {candidate.source for candidate in candidates} == {LinkSourceEnum.sitemap}
    assert all(candidate.title is None for candidate in candidates)
    by_type = {link_type: 0 for link_type in LinkTypeEnum}
    for candidate in candidates:
        by_type[candidate.link_type] += 1
    assert by_type == {LinkTypeEnum.product: 40, LinkTypeEnum.collection: 25, LinkTypeEnum.page: 15}


def test_navigation_adds_new_urls_with_titles():
    navigation = [
        NavigationLink(url=f"https://acme.test/pages/nav-{idx}", title=f"Nav {idx}", link_type=LinkTypeEnum.page)
        for idx in range(5)
    ]
    candidates = subtract_known(merge_candidates(_scenario_sitemap_urls(), navigation), set())

    assert len(candidates) == 85
    nav_candidates = [candidate for candidate in candidates if candidate.source == LinkSourceEnum.navigation]
    assert [candidate.title for candidate in nav_candidates] == [f"Nav {idx}" for idx in range(5)]


def test_navigation_backfills_title_without_changing_source():
    navigation = [
        NavigationLink(url="https://acme.test/products/p1", title="Sun Hat", link_type=LinkTypeEnum.product),
    ]
    candidates = merge_candidates(["https://acme.test/products/p1", "https://acme.test/products/p1"], navigation)

    assert len(candidates) == 1
    assert candidates[0].source == LinkSourceEnum.sitemap
    assert candidates[0].title == "Sun Hat"


def test_subtract_known_removes_indexed_urls():
    candidates = merge_candidates(
        ["https://acme.test/products/a", "https://acme.test/products/b", "https://acme.test/pages/c"],
        [],
    )
    remaining = subtract_known(candidates, {"https://acme.test/products/b"})
    assert [candidate.url for candidate in remaining] == [
        "https://acme.test/products/a",
        "https://acme.test/pages/c",
    ]
