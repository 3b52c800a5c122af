"""
Service status endpoint
"""

from fastapi import APIRouter

from app.core.config import settings
from app.services.search_service import SearchService

router = APIRouter()


@router.get("")
async def health():
    """Liveness plus which backing services are configured"""
    dependencies = {
        "database": bool(settings.DATABASE_URL),
        "inference": bool(settings.OPENAI_API_KEY),
        "search": SearchService().is_configured(),
    }
    # Search is optional; chat answers without it
    ready = dependencies["database"] and dependencies["inference"]
    return {
        "status": "healthy" if ready else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "dependencies": dependencies,
    }
