from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from monithq.models.schemas import HealthResponse
from monithq.storage.database import get_session
from monithq.storage import repository

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(session: AsyncSession = Depends(get_session)):
    active = await repository.get_active_webhooks_count(session)
    return HealthResponse(webhooks_active=active)
