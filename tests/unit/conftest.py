"""Shared fixtures for unit tests.

Patches async_session so no unit test touches reelhub.db, and provides the
in-process stores, a mock-transport fetcher factory and canned sources.
"""

from unittest.mock import MagicMock

import fakeredis
import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from reelhub.api.routes import get_services
from reelhub.config import Settings
from reelhub.main import app as reelhub_app
from reelhub.models.media import CandidateSource, ContentKind
from reelhub.services.app_services import build_services
from reelhub.services.event_broadcaster import EventBroadcaster
from reelhub.services.fetcher import Fetcher
from reelhub.storage.http_store import HttpStore
from reelhub.storage.memory import MemoryStore
from reelhub.storage.redis_store import RedisStore
from reelhub.storage.sql import SqlStore

_unit_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

_unit_session_factory = sessionmaker(_unit_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def isolate_database(monkeypatch):
    """Patch async_session so no unit test touches reelhub.db."""
    async with _unit_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    import reelhub.database as _db_mod

    monkeypatch.setattr(_db_mod, "async_session", _unit_session_factory)

    yield

    async with _unit_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)


@pytest.fixture
def session_factory():
    """Session factory bound to the in-memory test database."""
    return _unit_session_factory


@pytest.fixture
async def memory_store():
    """MemoryStore with user alice registered."""
    store = MemoryStore()
    await store.register_user("alice", "secret")
    return store


@pytest.fixture
async def sql_store():
    """SqlStore on the in-memory database with user alice registered."""
    store = SqlStore(session_factory=_unit_session_factory)
    await store.register_user("alice", "secret")
    return store


@pytest.fixture
async def redis_store():
    """RedisStore on an isolated fakeredis server with user alice registered."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    store = RedisStore(client=client)
    await store.init()
    await store.register_user("alice", "secret")
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sql", "redis", "http"])
def store(request):
    """Every backend, for contract tests."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
async def make_fetcher():
    """Build Fetchers whose requests are answered by a handler function."""
    fetchers: list[Fetcher] = []

    def _make(handler) -> Fetcher:
        fetcher = Fetcher(transport=httpx.MockTransport(handler))
        fetchers.append(fetcher)
        return fetcher

    yield _make

    for fetcher in fetchers:
        await fetcher.aclose()


@pytest.fixture
def make_source():
    """Build a CandidateSource with ``episodes`` generated episode URLs."""

    def _make(
        provider_key: str = "alpha",
        item_id: str = "100",
        title: str = "Night Train",
        year: str = "2023",
        episodes: int = 3,
        **kwargs,
    ) -> CandidateSource:
        urls = tuple(
            f"https://{provider_key}.example/{item_id}/ep{n}/index.m3u8"
            for n in range(1, episodes + 1)
        )
        kwargs.setdefault("provider_display_name", provider_key.title())
        kwargs.setdefault("kind", ContentKind.VIDEO)
        return CandidateSource(
            provider_key=provider_key,
            item_id=item_id,
            title=title,
            year=year,
            episode_urls=urls,
            **kwargs,
        )

    return _make


@pytest.fixture
def source_config():
    """A source config file with two regular sites and one adult site."""
    return {
        "cache_time": 3600,
        "api_site": {
            "alpha": {"api": "https://alpha.example/api.php/provide/vod", "name": "Alpha"},
            "beta": {
                "api": "https://beta.example/api.php/provide/vod",
                "name": "Beta",
                "detail": "https://beta.example/detail",
            },
            "gamma": {
                "api": "https://gamma.example/api.php/provide/vod",
                "name": "Gamma",
                "is_adult": True,
            },
        },
        "custom_category": [{"name": "Hot", "type": "movie", "query": "hot"}],
    }


@pytest.fixture
def site_responses():
    """Upstream answers keyed by host prefix.

    A list is served as a CMS ``list`` payload, an int as a bare status code and
    a callable is called with the request.
    """
    return {}


@pytest.fixture
async def services(memory_store, source_config, make_fetcher, site_responses):
    """Application services on the memory store, with a mocked broadcaster."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = site_responses.get(request.url.host.split(".")[0], [])
        if callable(body):
            return body(request)
        if isinstance(body, int):
            return httpx.Response(body)
        items = body
        if "ids" in request.url.params:
            items = [i for i in body if str(i.get("vod_id")) == request.url.params["ids"]]
        return httpx.Response(200, json={"pagecount": 1, "list": items})

    settings = Settings(
        owner_username="",
        owner_password="",
        search_max_page=1,
        audiobook_api_key="",
        auto_advance_delay=0,
    )
    return await build_services(
        settings,
        memory_store,
        fetcher=make_fetcher(handler),
        file_config=source_config,
        broadcaster=MagicMock(spec=EventBroadcaster),
    )


@pytest.fixture
def app(services):
    """The FastAPI app wired to the test services."""
    reelhub_app.dependency_overrides[get_services] = lambda: services
    reelhub_app.state.services = services
    yield reelhub_app
    reelhub_app.dependency_overrides.clear()


@pytest.fixture
async def api_client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def http_store(api_client):
    """HttpStore talking to the app's REST API, backed by the memory store."""
    return HttpStore(client=api_client)
