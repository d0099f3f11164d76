import os
import sys
from pathlib import Path

import httpx
import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'test_linkintel.db'}")
os.environ.setdefault("OPENAI_API_KEY", "")

from fastapi.testclient import TestClient
from sqlalchemy import delete

from linkintel.db.base import SessionLocal, init_db
from linkintel.db.deps import get_session
from linkintel.db.models import Brand, BrandLinkIndexEntry, SitemapImportJob
from linkintel.db.repositories.brands import BrandsRepository
from linkintel.discovery.fetch import PageFetcher
from linkintel.main import app
from linkintel.routers import brand_links as brand_links_router


def _clear_tables(session) -> None:
    session.execute(delete(BrandLinkIndexEntry))
    session.execute(delete(SitemapImportJob))
    session.execute(delete(Brand))
    session.commit()


@pytest.fixture()
def db_session():
    init_db()
    session = SessionLocal()
    _clear_tables(session)
    try:
        yield session
    finally:
        session.rollback()
        _clear_tables(session)
        session.close()


@pytest.fixture()
def brand(db_session):
    return BrandsRepository(db_session).create(name="Acme Goods", domain="acme.test")


class FakeTemporalHandle:
    def __init__(self, workflow_id: str):
        self.id = workflow_id
        self.first_execution_run_id = f"{workflow_id}-run"


class FakeTemporalClient:
    def __init__(self) -> None:
        self.started: list[tuple[str, object]] = []

    async def start_workflow(self, workflow_run, workflow_input, **kwargs) -> FakeTemporalHandle:
        workflow_id = kwargs.get("id") or "test-workflow"
        self.started.append((workflow_id, workflow_input))
        return FakeTemporalHandle(workflow_id)


class FakeEmbeddingClient:
    """Deterministic vectors; set `fail_on_call` to make specific calls raise."""

    def __init__(self, fail_on_call: set[int] | None = None, response=None) -> None:
        self.calls: list[list[str]] = []
        self.fail_on_call = fail_on_call or set()
        self.response = response

    async def embed(self, texts: list[str]):
        self.calls.append(list(texts))
        if len(self.calls) in self.fail_on_call:
            raise RuntimeError("embedding service unavailable")
        if self.response is not None:
            return self.response
        return [[float(len(text)), 0.5] for text in texts]


class FakeSite:
    """Routes for an httpx.MockTransport: url -> (status, body) or an exception to raise."""

    def __init__(self, pages: dict[str, object] | None = None) -> None:
        self.pages: dict[str, object] = dict(pages or {})
        self.requested: list[str] = []
        self.user_agents: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        self.user_agents.append(request.headers.get("user-agent", ""))
        page = self.pages.get(url)
        if page is None:
            return httpx.Response(404, text="not found")
        if isinstance(page, Exception):
            raise page
        if isinstance(page, tuple):
            status_code, body = page
        else:
            status_code, body = 200, page
        if isinstance(body, bytes):
            return httpx.Response(status_code, content=body)
        return httpx.Response(status_code, text=body)

    def fetcher(self) -> PageFetcher:
        return PageFetcher(httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))


@pytest.fixture()
def fake_site() -> FakeSite:
    return FakeSite()


@pytest.fixture()
def fake_embeddings() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture()
def embedding_client_factory():
    return FakeEmbeddingClient


@pytest.fixture()
def fake_temporal(monkeypatch):
    client = FakeTemporalClient()

    async def _get_temporal_client():
        return client

    monkeypatch.setattr(brand_links_router, "get_temporal_client", _get_temporal_client)
    return client


@pytest.fixture()
def override_dependencies(db_session, fake_embeddings):
    def get_session_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[brand_links_router.get_embedding_client] = lambda: fake_embeddings
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api_client(override_dependencies, fake_temporal):
    with TestClient(app) as client:
        yield client
