"""
Shared test fixtures and configuration for all tests.

This file is automatically loaded by pytest and provides common fixtures.
Upstream platforms are simulated with httpx.MockTransport; nothing leaves
the process.
"""
import os
import json
from typing import Callable, Dict, List, Tuple, Union

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set environment variables for testing BEFORE modules load
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENCRYPTION_KEY", "YWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWE=")
os.environ.setdefault("STATE_SIGNING_SECRET", "test-state-signing-secret")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("APP_URL", "http://dashboard.test")
os.environ.setdefault("API_BASE_URL", "http://api.test")
os.environ.setdefault("OAUTH_STATE_BACKEND", "database")

os.environ.setdefault("TIKTOK_CLIENT_KEY", "test_tiktok_client_key")
os.environ.setdefault("TIKTOK_CLIENT_SECRET", "test_tiktok_client_secret")
os.environ.setdefault("FACEBOOK_CLIENT_ID", "test_facebook_app_id")
os.environ.setdefault("FACEBOOK_CLIENT_SECRET", "test_facebook_app_secret")
os.environ.setdefault("INSTAGRAM_CLIENT_ID", "test_instagram_app_id")
os.environ.setdefault("INSTAGRAM_CLIENT_SECRET", "test_instagram_app_secret")
os.environ.setdefault("YOUTUBE_CLIENT_ID", "test_youtube_client_id")
os.environ.setdefault("YOUTUBE_CLIENT_SECRET", "test_youtube_client_secret")
os.environ.setdefault("THREADS_CLIENT_ID", "test_threads_client_id")
os.environ.setdefault("THREADS_CLIENT_SECRET", "test_threads_client_secret")
os.environ.setdefault("X_CLIENT_ID", "test_x_client_id")
os.environ.setdefault("X_CLIENT_SECRET", "test_x_client_secret")

# Import database BEFORE main app to allow overriding
from database import Base, get_db, init_db  # noqa: E402
from utils.provider_registry import ProviderRegistry  # noqa: E402


Reply = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Dict]


class FakeUpstream:
    """
    Scripted provider endpoints for httpx.MockTransport.

    Routes are keyed by method and URL without the query string. A route
    can hold a dict (200 JSON), an httpx.Response, or a callable taking the
    request. Unrouted requests get a 404 so a missing stub fails loudly.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Reply] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, reply: Reply = None, status_code: int = 200, json_body=None):
        if reply is None:
            reply = httpx.Response(status_code, json=json_body if json_body is not None else {})
        self.routes[(method.upper(), url)] = reply
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        reply = self.routes.get(key)
        if reply is None:
            return httpx.Response(404, json={"error": "no route", "url": str(request.url)})
        if callable(reply):
            return reply(request)
        if isinstance(reply, dict):
            return httpx.Response(200, json=reply)
        return reply

    def calls(self, url: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if f"{r.url.scheme}://{r.url.host}{r.url.path}" == url
        ]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def form_body(request: httpx.Request) -> Dict[str, str]:
    """Decode an application/x-www-form-urlencoded request body."""
    return dict(httpx.QueryParams(request.content.decode()))


def json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload), headers={"Content-Type": "application/json"})


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def providers(upstream):
    return ProviderRegistry(transport=upstream.transport, timeout=1.0)


@pytest.fixture
def test_engine():
    """In-memory SQLite shared by every session in one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db_session(session_factory):
    """Create database session for test setup"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def app(session_factory, providers):
    """Application with the test database and scripted upstream"""
    from main import create_app

    application = create_app()
    application.state.providers = providers

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Test client that does not follow redirects"""
    from fastapi.testclient import TestClient

    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {os.environ['ADMIN_API_TOKEN']}"}
