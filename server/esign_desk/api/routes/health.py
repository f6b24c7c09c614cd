from fastapi import APIRouter

from esign_desk.core.config import get_settings


router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str | bool]:
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.environment,
        "esign_configured": settings.esign_configured,
    }
