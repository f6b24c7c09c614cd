from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from esign_desk.api.dependencies.database import get_db
from esign_desk.services.status_sync_service import handle_callback


router = APIRouter(prefix="/callback", tags=["callbacks"])


@router.get("/esign")
async def callback_probe() -> dict[str, str | bool]:
    return {"success": True, "message": "e-sign callback endpoint is up"}


@router.post("/esign")
async def esign_callback_endpoint(request: Request, session: AsyncSession = Depends(get_db)) -> JSONResponse:
    raw_body = (await request.body()).decode("utf-8")
    result = await handle_callback(session, raw_body)
    return JSONResponse(
        status_code=result.status_code,
        content=result.model_dump(mode="json", exclude={"status_code"}),
    )
