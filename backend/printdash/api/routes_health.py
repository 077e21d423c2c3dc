from __future__ import annotations

from datetime import datetime
from fastapi import APIRouter, Depends

from printdash.config import DashboardConfig
from printdash.deps import get_config
from printdash.models.domain import HealthResponse

router = APIRouter()

@router.get("/health", response_model=HealthResponse)
async def health(config: DashboardConfig = Depends(get_config)) -> HealthResponse:
    return HealthResponse(status="ok", ts=datetime.now().isoformat(), printer_configured=config.is_configured)
