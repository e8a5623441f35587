"""Shared pytest fixtures for test suite"""
import json
from datetime import datetime, timedelta, timezone
from typing import Callable, List

import httpx
import pytest
from cryptography.fernet import Fernet
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from videohop.db.account_store import DatabaseAccountStore, MemoryAccountStore
from videohop.models import Base
from videohop.schemas.account import Account
from videohop.schemas.upload import UploadMetadata, VideoFile
from videohop.services.session_context import SessionContext
from videohop.services.token_service import TokenLifecycleManager

# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"


class FakeSleep:
    """Async sleep replacement that records requested delays and returns immediately"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedTransport:
    """httpx.MockTransport handler that records requests and replays queued responses

    Each entry is an ``httpx.Response``, an exception instance to raise, or a
    callable taking the request and returning one of those.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        response = self.responses.pop(0)
        if callable(response) and not isinstance(response, httpx.Response):
            response = response(request)
        if isinstance(response, Exception):
            raise response
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def json_response(status_code: int, body, headers=None) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(body).encode(),
                          headers={"Content-Type": "application/json", **(headers or {})})


def tiktok_ok(data: dict) -> httpx.Response:
    return json_response(200, {"data": data, "error": {"code": "ok", "message": ""}})


def tiktok_fail(status_code: int, code: str, message: str = "error") -> httpx.Response:
    return json_response(status_code, {"data": {}, "error": {"code": code, "message": message}})


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_account() -> Callable[..., Account]:
    def _make(platform: str = "youtube", expires_in: float = 3600, **overrides) -> Account:
        fields = {
            "platform": platform,
            "id": f"{platform}-account",
            "access_token": "access-old",
            "refresh_token": "refresh-old",
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        fields.update(overrides)
        return Account(**fields)

    return _make


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(MemoryAccountStore())


@pytest.fixture
def token_manager(fake_sleep):
    """Token manager whose refreshes always succeed without touching the network"""
    transport = ScriptedTransport()

    def refreshed(request):
        return json_response(200, {"access_token": "access-new", "expires_in": 3600})

    transport.responses = [refreshed] * 50
    manager = TokenLifecycleManager(transport.client(), sleep=fake_sleep, rng=lambda: 0.0)
    manager.transport = transport
    return manager


@pytest.fixture
def make_video(tmp_path) -> Callable[..., VideoFile]:
    def _make(size: int = 10, name: str = "clip.mp4") -> VideoFile:
        path = tmp_path / name
        path.write_bytes(bytes(i % 256 for i in range(size)))
        return VideoFile.from_path(path)

    return _make


@pytest.fixture
def metadata() -> UploadMetadata:
    return UploadMetadata(title="My video", description="desc", tags=["a", "b"], privacy="public")


@pytest.fixture
def db_session_factory():
    """Session factory bound to a fresh in-memory SQLite database"""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def fernet() -> Fernet:
    return Fernet(Fernet.generate_key())


@pytest.fixture
def db_store(db_session_factory, fernet) -> DatabaseAccountStore:
    return DatabaseAccountStore(db_session_factory, cipher=fernet)
