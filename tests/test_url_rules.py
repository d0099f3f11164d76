from linkintel.db.enums import LinkTypeEnum
from linkintel.discovery.rules import DEFAULT_SKIP_PATTERNS, UrlRules


def test_classify_by_path_segment():
    rules = UrlRules()
    assert rules.classify("https://acme.test/products/blue-shirt") == LinkTypeEnum.product
    assert rules.classify("https://acme.test/collections/summer") == LinkTypeEnum.collection
    assert rules.classify("https://acme.test/pages/about-us") == LinkTypeEnum.page
    assert rules.classify("https://acme.test/about") is None
    assert rules.classify("https://acme.test/") is None


def test_classify_prefers_product_for_nested_collection_urls():
    rules = UrlRules()
    assert rules.classify("https://acme.test/collections/summer/products/hat") == LinkTypeEnum.product


def test_should_skip_default_patterns():
    rules = UrlRules()
    for url in (
        "https://acme.test/cart",
        "https://acme.test/checkout/123",
        "https://acme.test/account/login",
        "https://acme.test/policies/refund-policy",
        "https://acme.test/blogs/news/post",
        "https://acme.test/apps/reviews",
        "https://acme.test/SEARCH?q=x",
    ):
        assert rules.should_skip(url), url
    assert not rules.should_skip("https://acme.test/products/blue-shirt")


def test_from_preferences_overrides_rules():
    rules = UrlRules.from_preferences(
        {
            "skip_patterns": ["/wholesale"],
            "path_classification": {"/shop/": "product", "/info/": "page", "/bogus/": "nope"},
        }
    )
    assert rules.should_skip("https://acme.test/wholesale/x")
    assert not rules.should_skip("https://acme.test/cart")
    assert rules.classify("https://acme.test/shop/blue-shirt") == LinkTypeEnum.product
    assert rules.classify("https://acme.test/info/faq") == LinkTypeEnum.page
    assert rules.classify("https://acme.test/products/blue-shirt") is None


def test_from_preferences_falls_back_to_defaults():
    rules = UrlRules.from_preferences({"skip_patterns": "not-a-list", "path_classification": {}})
    assert rules.skip_patterns == DEFAULT_SKIP_PATTERNS
    assert rules.classify("https://acme.test/pages/about") == LinkTypeEnum.page
    assert UrlRules.from_preferences(None) == UrlRules()


def test_classify_ignores_path_case():
    rules = UrlRules()
    assert rules.classify("https://acme.test/Products/Blue-Shirt") == LinkTypeEnum.product
    assert rules.classify("https://acme.test/COLLECTIONS/summer") == LinkTypeEnum.collection
    custom = UrlRules.from_preferences({"path_classification": {"/Shop/": "product"}})
    assert custom.classify("https://acme.test/shop/hat") == LinkTypeEnum.product
