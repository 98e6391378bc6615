from __future__ import annotations

import os
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
from unittest.mock import patch

from sqlmodel import SQLModel
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from httpx import AsyncClient, ASGITransport

# Override settings before importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["EDGE_WORKER_URL"] = ""
os.environ["EDGE_WORKER_SECRET"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["APP_URL"] = "https://app.monithq.test"

from monithq.main import app
from monithq.storage.database import get_session


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    # Webhook delivery opens its own sessions
    with patch("monithq.webhooks.delivery.get_session_factory", return_value=factory):
        yield factory


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


SLOW_RESPONSE_SECONDS = 5.5


class _SlowHandler(BaseHTTPRequestHandler):
    def _reply(self, with_body: bool):
        time.sleep(SLOW_RESPONSE_SECONDS)
        body = b'{"status": "ok"}'
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("X-Frame-Options", "DENY")
        self.end_headers()
        if with_body:
            self.wfile.write(body)

    def do_GET(self):
        self._reply(with_body=True)

    def do_HEAD(self):
        self._reply(with_body=False)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def slow_server():
    """Local server that answers every request after a delay just past httpx's 5s default."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _SlowHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}/"
    server.shutdown()
    server.server_close()
