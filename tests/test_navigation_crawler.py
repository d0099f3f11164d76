import asyncio

import httpx

from linkintel.db.enums import LinkTypeEnum
from linkintel.discovery.navigation import NavigationCrawler, normalize_domain, same_site
from linkintel.discovery.rules import UrlRules

HOMEPAGE = """
<html><body>
<nav>
  <a href="/products/sun-hat">Sun Hat</a>
  <a href="/products/sun-hat#reviews">Sun Hat again</a>
  <a href="https://www.acme.test/collections/summer">Summer</a>
  <a href="https://other.test/products/foreign">Foreign</a>
  <a href="/pages/about">About</a>
  <a href="/pages/x">X</a>
  <a href="/cart">Cart</a>
  <a href="/blogs/news/post">Journal</a>
  <a href="/about-us">Unclassified</a>
  <a href="#top">Back to top</a>
  <a href="javascript:void(0)">Menu</a>
  <a href="mailto:hi@acme.test">Email us</a>
  <a href="tel:+15555555">Call us</a>
  <a href="pages/faq?ref=nav#q1">FAQ</a>
</nav>
</body></html>
"""


def _crawl(fake_site, domain: str, rules=None):
    async def _run():
        async with fake_site.fetcher() as fetcher:
            return await NavigationCrawler(fetcher, rules=rules).crawl(domain)

    return asyncio.run(_run())


def test_crawl_collects_classified_same_site_links(fake_site):
    fake_site.pages["https://acme.test/"] = HOMEPAGE

    links = _crawl(fake_site, "acme.test")

    assert [(link.url, link.title, link.link_type) for link in links] == [
        ("https://acme.test/products/sun-hat", "Sun Hat", LinkTypeEnum.product),
        ("https://www.acme.test/collections/summer", "Summer", LinkTypeEnum.collection),
        ("https://acme.test/pages/about", "About", LinkTypeEnum.page),
        ("https://acme.test/pages/faq?ref=nav", "FAQ", LinkTypeEnum.page),
    ]


def test_crawl_respects_brand_rules(fake_site):
    fake_site.pages["https://acme.test/"] = HOMEPAGE
    rules = UrlRules.from_preferences({"skip_patterns": ["/pages/"]})

    links = _crawl(fake_site, "https://acme.test/", rules=rules)

    assert [link.url for link in links] == [
        "https://acme.test/products/sun-hat",
        "https://www.acme.test/collections/summer",
    ]


def test_homepage_failure_yields_empty_list(fake_site):
    fake_site.pages["https://acme.test/"] = (503, "maintenance")
    assert _crawl(fake_site, "acme.test") == []

    fake_site.pages["https://acme.test/"] = httpx.ConnectError("refused")
    assert _crawl(fake_site, "acme.test") == []


def test_domain_helpers():
    assert normalize_domain("https://www.Acme.test/shop/") == "www.acme.test"
    assert normalize_domain("acme.test.") == "acme.test"
    assert same_site("https://www.acme.test/products/a", "acme.test")
    assert same_site("https://acme.test/products/a", "www.acme.test")
    assert not same_site("https://shop.acme.test/products/a", "acme.test")
