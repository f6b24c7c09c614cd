"""
Contract signing flow orchestration.

Initiation runs CreateFlow → CreateDocument → StartFlow → CreateFlowSignUrl
against the provider. The contract is claimed (DRAFT → INITIATING) in its own
committed statement before the first remote call, so a concurrent initiation
of the same contract fails its claim instead of creating a second flow. Any
failure, cancellation included, releases the claim and leaves the contract
exactly as it was; success persists the flow id, the counterpart's sign URL
and the DRAFT → PENDING_PARTY_B status log in a single commit.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from esign_desk.core.config import Settings, get_settings
from esign_desk.core.logging import get_logger
from esign_desk.integrations.esign.errors import EsignError, PreconditionFailed
from esign_desk.integrations.esign.provider import (
    CREATE_DOCUMENT,
    CREATE_FLOW,
    CREATE_FLOW_SIGN_URL,
    DESCRIBE_FILE_URLS,
    START_FLOW,
    TencentEsignProvider,
)
from esign_desk.integrations.esign.types import Approver, ApproverType, FileUrlResult, SignUrlResult
from esign_desk.models.contract import Contract, ContractStatus, PartyType
from esign_desk.services.form_field_service import build_contract_form_fields
from esign_desk.services.state_machine import transition_contract

logger = get_logger(__name__)

INIT = "INIT"
REGENERATE = "REGENERATE"
DOWNLOAD = "DOWNLOAD"
UNKNOWN = "UNKNOWN"

URL_TYPE_SIGN = 0
OPERATOR_SIGN_ORDER = 0
COUNTERPART_SIGN_ORDER = 1
INITIATED_REMARK = "signing flow initiated"


class ContractFlowError(Exception):
    """A contract flow operation failed at ``step``; ``cause`` is the underlying error."""

    def __init__(self, message: str, *, code: str, step: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.step = step
        self.cause = cause

    @property
    def request_id(self) -> str:
        return getattr(self.cause, "request_id", "") or ""

    @property
    def is_precondition(self) -> bool:
        return isinstance(self.cause, PreconditionFailed)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message, "step": self.step, "request_id": self.request_id}


@dataclass(slots=True)
class InitiateContractResult:
    contract: Contract
    flow_id: str
    sign_url: str
    sign_url_expire_at: datetime


@dataclass(slots=True)
class RegenerateSignUrlResult:
    sign_url: str
    sign_url_expire_at: datetime


def _precondition(step: str, code: str, reason: str) -> ContractFlowError:
    return ContractFlowError(reason, code=code, step=step, cause=PreconditionFailed(reason, code=code))


def build_counterpart_approver(contract: Contract, sign_order: int = COUNTERPART_SIGN_ORDER) -> Approver:
    if contract.party_b_type is PartyType.ENTERPRISE:
        return Approver(
            approver_type=ApproverType.ENTERPRISE,
            name=contract.party_b_name,
            mobile=contract.party_b_phone,
            organization_name=contract.party_b_org_name or None,
            id_card_number=contract.party_b_id_card or None,
            sign_order=sign_order,
        )
    return Approver(
        approver_type=ApproverType.PERSONAL,
        name=contract.party_b_name,
        mobile=contract.party_b_phone,
        id_card_number=contract.party_b_id_card or None,
        sign_order=sign_order,
    )


def build_operator_approver(settings: Settings, sign_order: int = OPERATOR_SIGN_ORDER) -> Approver:
    return Approver(
        approver_type=ApproverType.ENTERPRISE_AUTO if settings.party_a_auto_sign else ApproverType.ENTERPRISE,
        name=settings.party_a_signer_name,
        mobile=settings.party_a_signer_mobile,
        organization_name=settings.party_a_org_name,
        sign_order=sign_order,
    )


def build_approvers(contract: Contract, settings: Settings) -> list[Approver]:
    """Our organisation signs first (order 0), the counterpart second (order 1)."""
    return [build_operator_approver(settings), build_counterpart_approver(contract)]


def _flow_deadline(settings: Settings) -> int | None:
    if not settings.flow_deadline_days:
        return None
    return int(time.time()) + settings.flow_deadline_days * 24 * 60 * 60


async def get_contract(session: AsyncSession, contract_id: str) -> Contract | None:
    result = await session.execute(
        select(Contract)
        .options(selectinload(Contract.product))
        .where(Contract.id == contract_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def claim_contract(session: AsyncSession, contract_id: str) -> bool:
    """Atomically move DRAFT → INITIATING; False when another caller got there first."""
    result = await session.execute(
        update(Contract)
        .where(Contract.id == contract_id, Contract.status == ContractStatus.DRAFT)
        .values(status=ContractStatus.INITIATING, updated_at=Contract.updated_at)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount == 1


async def release_contract(session: AsyncSession, contract_id: str) -> None:
    await session.execute(
        update(Contract)
        .where(Contract.id == contract_id, Contract.status == ContractStatus.INITIATING)
        .values(status=ContractStatus.DRAFT, updated_at=Contract.updated_at)
        .execution_options(synchronize_session=False)
    )
    await session.commit()


async def _abandon_claim(session: AsyncSession, contract_id: str) -> None:
    await session.rollback()
    await release_contract(session, contract_id)


async def initiate_contract(
    session: AsyncSession,
    provider: TencentEsignProvider,
    contract_id: str,
    operator_id: str | None = None,
    settings: Settings | None = None,
) -> InitiateContractResult:
    settings = settings or get_settings()

    contract = await get_contract(session, contract_id)
    if contract is None:
        raise _precondition(INIT, "CONTRACT_NOT_FOUND", "Contract does not exist")
    if contract.status is not ContractStatus.DRAFT:
        raise _precondition(
            INIT,
            "INVALID_CONTRACT_STATUS",
            f"Contract status is not DRAFT, current status: {contract.status.value}",
        )
    product = contract.product
    if not product.template_id:
        raise _precondition(INIT, "MISSING_TEMPLATE_ID", "Product has no template id configured")

    if not await claim_contract(session, contract_id):
        raise _precondition(INIT, "CONTRACT_ALREADY_INITIATING", "Contract is already being initiated")

    log = logger.bind(contract_id=contract.id, contract_no=contract.contract_no)
    log.info("contract.initiate.started", operator_id=operator_id)

    step = CREATE_FLOW
    flow_id: str | None = None
    try:
        created = await provider.create_flow(
            f"{product.name} - {contract.party_b_name}",
            build_approvers(contract, settings),
            unordered=False,
            description=f"Contract No: {contract.contract_no}",
            deadline=_flow_deadline(settings),
        )
        flow_id = created.flow_id

        step = CREATE_DOCUMENT
        form_fields = build_contract_form_fields(contract.form_data, product.form_fields)
        await provider.create_document(
            flow_id,
            product.template_id,
            file_names=[f"{contract.contract_no}.pdf"],
            form_fields=form_fields or None,
        )

        step = START_FLOW
        await provider.start_flow(flow_id)

        step = CREATE_FLOW_SIGN_URL
        sign_url: SignUrlResult = await provider.create_flow_sign_url(
            flow_id,
            [build_counterpart_approver(contract)],
            jump_url=settings.sign_complete_jump_url,
            url_type=URL_TYPE_SIGN,
        )

        step = UNKNOWN
        contract.flow_id = flow_id
        contract.sign_url = sign_url.sign_url
        contract.sign_url_expire_at = sign_url.expire_at
        transition_contract(
            session,
            contract,
            ContractStatus.PENDING_PARTY_B,
            operator_id=operator_id,
            remark=INITIATED_REMARK,
        )
        await session.commit()
    except EsignError as exc:
        log.warning("contract.initiate.failed", step=step, flow_id=flow_id, code=exc.code, request_id=exc.request_id)
        await release_contract(session, contract_id)
        raise ContractFlowError(exc.message, code=exc.code, step=step, cause=exc) from exc
    except Exception as exc:
        log.error("contract.initiate.failed", step=UNKNOWN, flow_id=flow_id, error=str(exc))
        await _abandon_claim(session, contract_id)
        raise ContractFlowError(str(exc) or "unexpected error", code="UNKNOWN_ERROR", step=UNKNOWN, cause=exc) from exc
    except BaseException:
        log.warning("contract.initiate.cancelled", step=step, flow_id=flow_id)
        await asyncio.shield(_abandon_claim(session, contract_id))
        raise

    log.info("contract.initiate.succeeded", flow_id=flow_id, sign_url_expire_at=sign_url.expire_at.isoformat())
    return InitiateContractResult(
        contract=contract,
        flow_id=flow_id,
        sign_url=sign_url.sign_url,
        sign_url_expire_at=sign_url.expire_at,
    )


async def regenerate_sign_url(
    session: AsyncSession,
    provider: TencentEsignProvider,
    contract_id: str,
    settings: Settings | None = None,
) -> RegenerateSignUrlResult:
    """Issue a fresh counterpart sign URL for a contract that is still awaiting party B."""
    settings = settings or get_settings()

    contract = await get_contract(session, contract_id)
    if contract is None:
        raise _precondition(REGENERATE, "CONTRACT_NOT_FOUND", "Contract does not exist")
    if contract.status is not ContractStatus.PENDING_PARTY_B:
        raise _precondition(
            REGENERATE,
            "INVALID_CONTRACT_STATUS",
            f"Sign URL can only be regenerated while awaiting the counterpart, current status: {contract.status.value}",
        )
    if not contract.flow_id:
        raise _precondition(REGENERATE, "MISSING_FLOW_ID", "Contract has no signing flow")

    try:
        sign_url = await provider.create_flow_sign_url(
            contract.flow_id,
            [build_counterpart_approver(contract)],
            jump_url=settings.sign_complete_jump_url,
            url_type=URL_TYPE_SIGN,
        )
    except EsignError as exc:
        logger.warning(
            "contract.sign_url.regenerate_failed",
            contract_id=contract.id,
            flow_id=contract.flow_id,
            code=exc.code,
            request_id=exc.request_id,
        )
        raise ContractFlowError(exc.message, code=exc.code, step=CREATE_FLOW_SIGN_URL, cause=exc) from exc

    contract.sign_url = sign_url.sign_url
    contract.sign_url_expire_at = sign_url.expire_at
    await session.commit()

    logger.info("contract.sign_url.regenerated", contract_id=contract.id, flow_id=contract.flow_id)
    return RegenerateSignUrlResult(sign_url=sign_url.sign_url, sign_url_expire_at=sign_url.expire_at)


async def get_contract_file_url(
    session: AsyncSession,
    provider: TencentEsignProvider,
    contract_id: str,
) -> FileUrlResult:
    """Download URL of the signed PDF of a completed contract."""
    contract = await get_contract(session, contract_id)
    if contract is None:
        raise _precondition(DOWNLOAD, "CONTRACT_NOT_FOUND", "Contract does not exist")
    if contract.status is not ContractStatus.COMPLETED:
        raise _precondition(DOWNLOAD, "CONTRACT_NOT_COMPLETED", "Only completed contracts can be downloaded")
    if not contract.flow_id:
        raise _precondition(DOWNLOAD, "MISSING_FLOW_ID", "Contract has no signing flow")

    try:
        return await provider.describe_file_urls(contract.flow_id)
    except EsignError as exc:
        logger.warning("contract.download.failed", contract_id=contract.id, code=exc.code, request_id=exc.request_id)
        raise ContractFlowError(exc.message, code=exc.code, step=DESCRIBE_FILE_URLS, cause=exc) from exc
