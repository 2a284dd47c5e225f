"""API health endpoint."""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.config import get_settings
from app.dependencies import _check_local_mode, get_email_queue_dep
from app.services.email.email_service import EmailQueue

router = APIRouter()


class HealthResponse(BaseModel):
    success: bool
    status: str
    service: str
    version: str
    timestamp: datetime
    storage: str
    ai_configured: bool
    email_queue: dict


@router.get("", response_model=HealthResponse)
async def health(queue: EmailQueue = Depends(get_email_queue_dep)) -> HealthResponse:
    """Liveness plus a summary of the backing services."""
    settings = get_settings()
    return HealthResponse(
        success=True,
        status="healthy",
        service=settings.app_name,
        version=settings.api_version,
        timestamp=datetime.utcnow(),
        storage="local" if _check_local_mode() else "firestore",
        ai_configured=bool(settings.anthropic_api_key or settings.groq_api_key),
        email_queue=queue.status(),
    )
