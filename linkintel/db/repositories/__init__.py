from linkintel.db.repositories.brands import BrandsRepository
from linkintel.db.repositories.brand_links import BrandLinksRepository
from linkintel.db.repositories.sitemap_import_jobs import SitemapImportJobsRepository

__all__ = [
    "BrandsRepository",
    "BrandLinksRepository",
    "SitemapImportJobsRepository",
]
