from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from esign_desk.api.dependencies.database import get_db
from esign_desk.api.dependencies.esign import get_esign_provider
from esign_desk.api.routes.errors import contract_flow_http_error
from esign_desk.integrations.esign.provider import TencentEsignProvider
from esign_desk.models.contract import Contract
from esign_desk.models.status_log import ContractStatusLog
from esign_desk.schemas.contract import (
    ContractFileUrlResponse,
    ContractRead,
    InitiateContractResponse,
    RegenerateSignUrlResponse,
    StatusLogList,
    StatusLogRead,
)
from esign_desk.services.contract_flow_service import (
    ContractFlowError,
    get_contract_file_url,
    initiate_contract,
    regenerate_sign_url,
)


router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.post("/{contract_id}/initiate", response_model=InitiateContractResponse)
async def initiate_contract_endpoint(
    contract_id: str,
    operator_id: str | None = Header(default=None, alias="X-Operator-Id"),
    session: AsyncSession = Depends(get_db),
    provider: TencentEsignProvider = Depends(get_esign_provider),
) -> InitiateContractResponse:
    try:
        result = await initiate_contract(session, provider, contract_id, operator_id=operator_id)
    except ContractFlowError as exc:
        raise contract_flow_http_error(exc) from exc
    return InitiateContractResponse(
        contract=ContractRead.model_validate(result.contract),
        flow_id=result.flow_id,
        sign_url=result.sign_url,
        sign_url_expire_at=result.sign_url_expire_at,
    )


@router.post("/{contract_id}/regenerate-link", response_model=RegenerateSignUrlResponse)
async def regenerate_link_endpoint(
    contract_id: str,
    session: AsyncSession = Depends(get_db),
    provider: TencentEsignProvider = Depends(get_esign_provider),
) -> RegenerateSignUrlResponse:
    try:
        result = await regenerate_sign_url(session, provider, contract_id)
    except ContractFlowError as exc:
        raise contract_flow_http_error(exc) from exc
    return RegenerateSignUrlResponse(sign_url=result.sign_url, sign_url_expire_at=result.sign_url_expire_at)


@router.get("/{contract_id}/status-logs", response_model=StatusLogList)
async def status_logs_endpoint(contract_id: str, session: AsyncSession = Depends(get_db)) -> StatusLogList:
    contract = await session.get(Contract, contract_id)
    if contract is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found")
    result = await session.execute(
        select(ContractStatusLog)
        .where(ContractStatusLog.contract_id == contract_id)
        .order_by(ContractStatusLog.created_at)
    )
    return StatusLogList(
        contract_id=contract.id,
        status=contract.status,
        items=[StatusLogRead.model_validate(item) for item in result.scalars().all()],
    )


@router.get("/{contract_id}/download", response_model=ContractFileUrlResponse)
async def download_endpoint(
    contract_id: str,
    session: AsyncSession = Depends(get_db),
    provider: TencentEsignProvider = Depends(get_esign_provider),
) -> ContractFileUrlResponse:
    try:
        file_url = await get_contract_file_url(session, provider, contract_id)
    except ContractFlowError as exc:
        raise contract_flow_http_error(exc) from exc
    return ContractFileUrlResponse(url=file_url.url, expire_time=file_url.expire_time)
