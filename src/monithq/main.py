from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from monithq.config import get_settings
from monithq.storage.database import close_db, init_db
from monithq.utils.logging import setup_logging
from monithq.api.checks import router as checks_router
from monithq.api.notifications import router as notifications_router
from monithq.api.webhooks import router as webhooks_router
from monithq.api.health import router as health_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.json_logs)
    await init_db()
    yield
    await close_db()


app = FastAPI(title="MonitHQ Check Engine", version="0.1.0", lifespan=lifespan)

app.include_router(checks_router)
app.include_router(notifications_router)
app.include_router(webhooks_router)
app.include_router(health_router)
