from enum import Enum


class SitemapImportStatusEnum(str, Enum):
    pending = "pending"
    parsing = "parsing"
    crawling_nav = "crawling_nav"
    fetching_titles = "fetching_titles"
    generating_embeddings = "generating_embeddings"
    complete = "complete"
    failed = "failed"
    cancelled = "cancelled"


class LinkTypeEnum(str, Enum):
    product = "product"
    collection = "collection"
    page = "page"


class LinkSourceEnum(str, Enum):
    sitemap = "sitemap"
    navigation = "navigation"
    user_added = "user_added"


# Forward path of a sitemap import; position in this tuple defines ordering.
SITEMAP_IMPORT_PIPELINE: tuple[SitemapImportStatusEnum, ...] = (
    SitemapImportStatusEnum.pending,
    SitemapImportStatusEnum.parsing,
    SitemapImportStatusEnum.crawling_nav,
    SitemapImportStatusEnum.fetching_titles,
    SitemapImportStatusEnum.generating_embeddings,
    SitemapImportStatusEnum.complete,
)

RUNNING_IMPORT_STATUSES: frozenset[SitemapImportStatusEnum] = frozenset(
    {
        SitemapImportStatusEnum.pending,
        SitemapImportStatusEnum.parsing,
        SitemapImportStatusEnum.crawling_nav,
        SitemapImportStatusEnum.fetching_titles,
        SitemapImportStatusEnum.generating_embeddings,
    }
)

TERMINAL_IMPORT_STATUSES: frozenset[SitemapImportStatusEnum] = frozenset(
    {
        SitemapImportStatusEnum.complete,
        SitemapImportStatusEnum.failed,
        SitemapImportStatusEnum.cancelled,
    }
)
