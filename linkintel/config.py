from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load env values for components that read os.environ directly (e.g., the OpenAI SDK).
_project_root = Path(__file__).resolve().parents[1]
load_dotenv(_project_root / ".env", override=False)


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_POOL_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30

    TEMPORAL_NAMESPACE: str = "default"
    TEMPORAL_TASK_QUEUE: str = "link-intelligence"
    TEMPORAL_ADDRESS: str = "localhost:7233"

    # Comma-separated list of allowed origins.
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    OPENAI_API_KEY: str | None = None
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_TIMEOUT_SECONDS: float = 30.0
    EMBEDDING_BATCH_SIZE: int = 100

    LINK_DISCOVERY_USER_AGENT: str = "Mozilla/5.0 (compatible; LinkIntelBot/1.0)"
    SITEMAP_ROOT_TIMEOUT_SECONDS: float = 30.0
    SITEMAP_CHILD_TIMEOUT_SECONDS: float = 10.0
    HOMEPAGE_TIMEOUT_SECONDS: float = 15.0
    PAGE_TITLE_TIMEOUT_SECONDS: float = 8.0
    TITLE_FETCH_BATCH_SIZE: int = 20
    LINK_INDEX_WRITE_BATCH_SIZE: int = 50

    SITEMAP_IMPORT_STALE_MINUTES: int = 10
    SITEMAP_IMPORT_ACTIVITY_TIMEOUT_MINUTES: int = 45
    LINK_RECRAWL_INTERVAL_DAYS: int = 7
    LINK_RECRAWL_STAGGER_SECONDS: int = 2

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
