from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool

from monithq.storage import repository
from monithq.storage.database import _engine_kwargs


class TestEngineKwargs:
    def test_memory_sqlite_shares_one_connection(self):
        assert _engine_kwargs("sqlite+aiosqlite://")["poolclass"] is StaticPool

    def test_file_sqlite_creates_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "monithq.db"
        assert _engine_kwargs(f"sqlite+aiosqlite:///{db_path}") == {}
        assert db_path.parent.is_dir()

    def test_other_drivers_untouched(self):
        assert _engine_kwargs("postgresql+asyncpg://user:pw@db/monithq") == {}


class TestWebhookRepository:
    @pytest.mark.asyncio
    async def test_create_normalizes_events(self, session):
        webhook = await repository.create_webhook(
            session, "org_1", "https://a.example.com", ["site_down", "incident_created", "site_down"],
        )
        assert webhook.id is not None
        assert webhook.event_types() == {"site_down", "incident_created"}
        assert webhook.events == '["incident_created", "site_down"]'

    @pytest.mark.asyncio
    async def test_active_webhooks_filtered_by_org_event_and_state(self, session):
        match = await repository.create_webhook(session, "org_1", "https://a.example.com", ["site_down"])
        await repository.create_webhook(session, "org_1", "https://b.example.com", ["site_up"])
        await repository.create_webhook(session, "org_1", "https://c.example.com", ["site_down"], is_active=False)
        await repository.create_webhook(session, "org_2", "https://d.example.com", ["site_down"])

        found = await repository.get_active_webhooks(session, "org_1", "site_down")

        assert [w.id for w in found] == [match.id]
        assert await repository.get_active_webhooks_count(session) == 3

    @pytest.mark.asyncio
    async def test_touch(self, session):
        webhook = await repository.create_webhook(session, "org_1", "https://a.example.com", ["site_down"])
        when = datetime(2026, 1, 2, 3, 4, 5)

        await repository.touch_webhook(session, webhook.id, when)

        stored = await repository.get_webhook(session, webhook.id)
        assert stored.last_triggered_at == when

    @pytest.mark.asyncio
    async def test_touch_missing_webhook_is_noop(self, session):
        await repository.touch_webhook(session, 12345)
        assert await repository.get_webhook(session, 12345) is None
