import hmac

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from esign_desk.api.dependencies.database import get_db
from esign_desk.api.dependencies.esign import get_esign_provider
from esign_desk.core.config import get_settings
from esign_desk.core.logging import get_logger
from esign_desk.integrations.esign.provider import TencentEsignProvider
from esign_desk.schemas.sync import SyncResult
from esign_desk.services.status_sync_service import sync_pending_contracts


router = APIRouter(prefix="/cron", tags=["cron"])
logger = get_logger(__name__)


def _secret_matches(candidate: str | None, expected: str) -> bool:
    return candidate is not None and hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def verify_cron_secret(request: Request) -> None:
    """Accept ``Authorization: Bearer <secret>`` or ``?secret=<secret>``; open when no secret is configured."""
    cron_secret = get_settings().cron_secret
    if not cron_secret:
        logger.warning("cron.secret.not_configured")
        return

    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme == "Bearer" and _secret_matches(token, cron_secret):
        return
    if _secret_matches(request.query_params.get("secret"), cron_secret):
        return
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.api_route("/sync-status", methods=["GET", "POST"], response_model=SyncResult, dependencies=[Depends(verify_cron_secret)])
async def sync_status_endpoint(
    session: AsyncSession = Depends(get_db),
    provider: TencentEsignProvider = Depends(get_esign_provider),
) -> SyncResult:
    return await sync_pending_contracts(session, provider, trigger="cron")
