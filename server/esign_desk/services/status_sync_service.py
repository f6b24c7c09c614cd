"""
Keeps local contract status in step with the provider.

Two entry points feed the same state machine: the provider's push callback,
and a periodic poll over every contract still awaiting a signature, which
catches callbacks that never arrived.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from esign_desk.core.config import Settings, get_settings
from esign_desk.core.logging import get_logger
from esign_desk.integrations.esign.errors import EsignError
from esign_desk.integrations.esign.provider import TencentEsignProvider
from esign_desk.integrations.esign.signer import serialize_payload, verify_callback_signature
from esign_desk.integrations.esign.types import (
    ApproverType,
    ApproveStatus,
    FlowStatus,
    translate_approve_status,
    translate_approver_type,
    translate_flow_status,
)
from esign_desk.models.audit import AuditAction, AuditLog
from esign_desk.models.contract import Contract, ContractStatus
from esign_desk.schemas.sync import CallbackResult, SyncDetail, SyncResult
from esign_desk.services.state_machine import is_valid_transition, transition_contract

logger = get_logger(__name__)

PENDING_STATUSES: tuple[ContractStatus, ...] = (ContractStatus.PENDING_PARTY_B, ContractStatus.PENDING_PARTY_A)

FLOW_STATUS_TO_CONTRACT: dict[FlowStatus, ContractStatus] = {
    FlowStatus.COMPLETED: ContractStatus.COMPLETED,
    FlowStatus.REJECTED: ContractStatus.REJECTED,
    FlowStatus.EXPIRED: ContractStatus.EXPIRED,
    FlowStatus.CANCELLED: ContractStatus.CANCELLED,
}

CALLBACK_REMARK_PREFIX = "[callback]"
SYNC_REMARK_PREFIX = "[sync]"


def map_flow_status(
    flow_status: FlowStatus,
    approvers: Iterable[tuple[ApproverType | None, ApproveStatus]] | None = None,
) -> ContractStatus | None:
    """
    Contract status implied by a provider flow status, or None when nothing changes.

    A flow that is still signing only moves the contract forward once the
    personal (counterpart) approver has signed.
    """
    mapped = FLOW_STATUS_TO_CONTRACT.get(flow_status)
    if mapped is not None:
        return mapped
    if flow_status is FlowStatus.SIGNING and approvers:
        for approver_type, approve_status in approvers:
            if approver_type is ApproverType.PERSONAL:
                return ContractStatus.PENDING_PARTY_A if approve_status is ApproveStatus.SIGNED else None
    return None


def transition_remark(target: ContractStatus, flow_message: str | None = None) -> str:
    if target is ContractStatus.PENDING_PARTY_A:
        return "counterpart signed, awaiting our approval"
    if target is ContractStatus.COMPLETED:
        return "signing flow completed"
    if target is ContractStatus.REJECTED:
        return flow_message or "signing rejected"
    if target is ContractStatus.EXPIRED:
        return "sign link expired"
    if target is ContractStatus.CANCELLED:
        return "signing flow cancelled"
    return ""


async def get_contract_by_flow_id(session: AsyncSession, flow_id: str) -> Contract | None:
    result = await session.execute(select(Contract).where(Contract.flow_id == flow_id))
    return result.scalar_one_or_none()


def _record_audit(session: AsyncSession, action: AuditAction, resource_id: str | None, details: dict[str, Any]) -> None:
    session.add(
        AuditLog(
            action=action.value,
            resource="Contract",
            resource_id=resource_id,
            details=details,
        )
    )


def _callback_approvers(payload: dict[str, Any]) -> list[tuple[ApproverType | None, ApproveStatus]]:
    approvers = payload.get("ApproverInfos") or []
    if not isinstance(approvers, list):
        return []
    return [
        (translate_approver_type(item.get("ApproverType")), translate_approve_status(item.get("ApproverStatus")))
        for item in approvers
        if isinstance(item, dict)
    ]


async def handle_callback(
    session: AsyncSession,
    raw_body: str,
    settings: Settings | None = None,
    *,
    now: float | None = None,
) -> CallbackResult:
    """
    Apply one provider status notification.

    Every outcome, accepted or not, leaves an ``ESIGN_CALLBACK`` audit row;
    the returned ``status_code`` is the HTTP status to answer the provider with.
    """
    settings = settings or get_settings()

    try:
        payload = json.loads(raw_body)
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        logger.warning("esign.callback.invalid_body")
        return CallbackResult(success=False, status_code=400, message="invalid callback body")

    flow_id = payload.get("FlowId")
    audit_details: dict[str, Any] = {
        "flow_id": flow_id,
        "flow_status": payload.get("FlowStatus"),
        "flow_message": payload.get("FlowMessage"),
        "approver_infos": payload.get("ApproverInfos"),
        "timestamp": payload.get("Timestamp"),
    }

    async def reply(result: CallbackResult) -> CallbackResult:
        audit_details.update(success=result.success, error=None if result.success else result.message)
        if result.success and result.to_status is None:
            audit_details["message"] = result.message
        _record_audit(session, AuditAction.ESIGN_CALLBACK, flow_id or "unknown", audit_details)
        await session.commit()
        return result

    if not flow_id or payload.get("FlowStatus") is None or not payload.get("Sign") or not payload.get("Timestamp"):
        logger.warning("esign.callback.missing_fields", flow_id=flow_id)
        return await reply(CallbackResult(success=False, status_code=400, message="missing required fields"))

    # The signature covers the payload without its own Sign field, serialised compactly in received key order.
    signed_content = serialize_payload({key: value for key, value in payload.items() if key != "Sign"})
    signature_valid = verify_callback_signature(
        signed_content,
        str(payload["Sign"]),
        payload["Timestamp"],
        settings.tencent_secret_key,
        now=now,
        tolerance_seconds=settings.callback_tolerance_seconds,
    )
    if not signature_valid:
        logger.warning("esign.callback.bad_signature", flow_id=flow_id)
        return await reply(CallbackResult(success=False, status_code=401, message="signature verification failed"))

    contract = await get_contract_by_flow_id(session, flow_id)
    if contract is None:
        logger.warning("esign.callback.contract_not_found", flow_id=flow_id)
        return await reply(CallbackResult(success=False, status_code=404, message="contract not found"))

    flow_status = translate_flow_status(payload["FlowStatus"])
    target = map_flow_status(flow_status, _callback_approvers(payload))
    current = contract.status
    if target is None:
        return await reply(CallbackResult(success=True, message="no status change", contract_id=contract.id))
    if target is current:
        return await reply(CallbackResult(success=True, message="status already up to date", contract_id=contract.id))
    if not is_valid_transition(current, target):
        logger.warning(
            "esign.callback.invalid_transition",
            contract_id=contract.id,
            from_status=current.value,
            to_status=target.value,
        )
        return await reply(
            CallbackResult(
                success=False,
                status_code=409,
                message=f"invalid status transition: {current.value} -> {target.value}",
                contract_id=contract.id,
                from_status=current,
                to_status=target,
            )
        )

    transition_contract(
        session,
        contract,
        target,
        remark=f"{CALLBACK_REMARK_PREFIX} {transition_remark(target, payload.get('FlowMessage'))}",
    )
    logger.info("esign.callback.applied", contract_id=contract.id, from_status=current.value, to_status=target.value)
    return await reply(
        CallbackResult(
            success=True,
            message="status updated",
            contract_id=contract.id,
            from_status=current,
            to_status=target,
        )
    )


async def _pending_contracts(session: AsyncSession, contract_ids: Sequence[str] | None) -> Sequence[Contract]:
    query = select(Contract).where(Contract.status.in_(PENDING_STATUSES), Contract.flow_id.is_not(None))
    if contract_ids:
        query = query.where(Contract.id.in_(list(contract_ids)))
    result = await session.execute(query.order_by(Contract.created_at))
    return result.scalars().all()


async def sync_pending_contracts(
    session: AsyncSession,
    provider: TencentEsignProvider,
    contract_ids: Sequence[str] | None = None,
    trigger: str = "cron",
) -> SyncResult:
    """
    Poll the provider for every contract awaiting a signature and apply changes.

    A failure on one contract is recorded in its detail entry and the run
    carries on with the next one.
    """
    contracts = await _pending_contracts(session, contract_ids)
    result = SyncResult(total=len(contracts))

    for contract in contracts:
        current = contract.status
        detail = SyncDetail(
            contract_id=contract.id,
            contract_no=contract.contract_no,
            flow_id=contract.flow_id or "",
            from_status=current,
        )
        result.details.append(detail)

        try:
            flow_info = await provider.describe_flow_info(contract.flow_id)
        except EsignError as exc:
            detail.error = f"API error: {exc.code} - {exc.message}"
            result.failed += 1
            logger.warning("contract.sync.failed", contract_id=contract.id, code=exc.code, request_id=exc.request_id)
            continue

        target = map_flow_status(flow_info.flow_status)
        detail.to_status = target
        if target is None or target is current:
            detail.success = True
            result.skipped += 1
            continue
        if not is_valid_transition(current, target):
            detail.error = f"invalid status transition: {current.value} -> {target.value}"
            result.failed += 1
            continue

        transition_contract(
            session,
            contract,
            target,
            remark=f"{SYNC_REMARK_PREFIX} {transition_remark(target, flow_info.flow_message)}",
        )
        await session.commit()
        detail.success = True
        result.updated += 1

    _record_audit(
        session,
        AuditAction.CRON_SYNC_STATUS,
        None,
        {
            "trigger": trigger,
            "total": result.total,
            "updated": result.updated,
            "failed": result.failed,
            "skipped": result.skipped,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
    await session.commit()
    logger.info(
        "contract.sync.finished",
        trigger=trigger,
        total=result.total,
        updated=result.updated,
        skipped=result.skipped,
        failed=result.failed,
    )
    return result
