from linkintel.schemas.brand_links import BrandLinkCreateRequest, SitemapImportTriggerRequest

__all__ = [
    "BrandLinkCreateRequest",
    "SitemapImportTriggerRequest",
]
