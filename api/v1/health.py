"""Health check endpoint."""

from fastapi import APIRouter, Depends, Request

from api.deps import get_settings
from config import Settings

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, settings: Settings = Depends(get_settings)):
    """
    Health check endpoint.

    Returns:
        dict: Status, environment and consumer counters
    """
    consumer = getattr(request.app.state, "consumer", None)
    return {
        "status": "ok",
        "env": settings.ENV,
        "consumer": consumer.stats if consumer is not None else None,
    }
