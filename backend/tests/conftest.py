from __future__ import annotations

from typing import Callable, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from printdash.config import DashboardConfig
from printdash.deps import get_cache, get_config, get_moonraker_client
from printdash.main import create_app
from printdash.models.db import DashboardSettings, get_session
from printdash.services.cache import TTLCache
from printdash.services.moonraker_client import MoonrakerClient

# 2023-11-14T22:13:20Z
START_MS = 1_700_000_000_000.0


class ManualClock:
    def __init__(self, start_ms: float = START_MS):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


Handler = Callable[[httpx.Request], httpx.Response]


class FakeMoonraker:
    """
    Scripted upstream for httpx.MockTransport. Routes are keyed by URL path;
    unknown paths answer 404 like Moonraker does.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, Handler] = {}
        self.calls: List[httpx.Request] = []

    def json(self, path: str, payload: object, status: int = 200) -> None:
        self.routes[path] = lambda req: httpx.Response(status, json=payload)

    def raw(self, path: str, content: bytes, content_type: str = "image/jpeg", status: int = 200) -> None:
        self.routes[path] = lambda req: httpx.Response(status, content=content, headers={"content-type": content_type})

    def stream(self, path: str, chunks: List[bytes], content_type: str = "multipart/x-mixed-replace; boundary=frame") -> None:
        """Body delivered chunk by chunk, like a camera's MJPEG endpoint."""

        def _respond(req: httpx.Request) -> httpx.Response:
            async def _body():
                for chunk in chunks:
                    yield chunk

            return httpx.Response(200, content=_body(), headers={"content-type": content_type})

        self.routes[path] = _respond

    def fail(self, path: str, exc_type: type) -> None:
        def _raise(req: httpx.Request) -> httpx.Response:
            raise exc_type("scripted failure", request=req)

        self.routes[path] = _raise

    def count(self, path: str) -> int:
        return sum(1 for r in self.calls if r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Not Found"}})
        return route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cache(clock: ManualClock) -> TTLCache:
    return TTLCache(clock=clock)


@pytest.fixture
def moonraker() -> FakeMoonraker:
    return FakeMoonraker()


@pytest.fixture
def config() -> DashboardConfig:
    return DashboardConfig(printer_host="printer.local", moonraker_port=7127)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def save_settings(db_engine) -> Callable[..., DashboardSettings]:
    def _save(**fields) -> DashboardSettings:
        with Session(db_engine) as session:
            row = DashboardSettings(**fields)
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    return _save


@pytest.fixture
def app(config, cache, moonraker, db_engine):
    app = create_app()

    def _session():
        with Session(db_engine) as session:
            yield session

    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_moonraker_client] = lambda: MoonrakerClient(config, transport=moonraker.transport)
    app.dependency_overrides[get_session] = _session
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def unconfigured_client(app) -> TestClient:
    app.dependency_overrides[get_config] = lambda: DashboardConfig()
    return TestClient(app)
