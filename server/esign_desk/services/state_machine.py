from __future__ import annotations

from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from esign_desk.core.logging import get_logger
from esign_desk.models.contract import Contract, ContractStatus
from esign_desk.models.mixins import utcnow
from esign_desk.models.status_log import ContractStatusLog

logger = get_logger(__name__)


VALID_TRANSITIONS: dict[ContractStatus, tuple[ContractStatus, ...]] = {
    ContractStatus.DRAFT: (ContractStatus.PENDING_PARTY_B, ContractStatus.CANCELLED),
    ContractStatus.PENDING_PARTY_B: (
        ContractStatus.PENDING_PARTY_A,
        ContractStatus.COMPLETED,
        ContractStatus.REJECTED,
        ContractStatus.EXPIRED,
        ContractStatus.CANCELLED,
    ),
    ContractStatus.PENDING_PARTY_A: (
        ContractStatus.COMPLETED,
        ContractStatus.REJECTED,
        ContractStatus.CANCELLED,
    ),
    ContractStatus.COMPLETED: (),
    ContractStatus.REJECTED: (),
    ContractStatus.EXPIRED: (),
    ContractStatus.CANCELLED: (),
}

TERMINAL_STATUSES: frozenset[ContractStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

STATUS_LABELS: dict[ContractStatus, str] = {
    ContractStatus.DRAFT: "Draft",
    ContractStatus.PENDING_PARTY_B: "Awaiting counterpart signature",
    ContractStatus.PENDING_PARTY_A: "Awaiting our signature",
    ContractStatus.COMPLETED: "Completed",
    ContractStatus.REJECTED: "Rejected",
    ContractStatus.EXPIRED: "Expired",
    ContractStatus.CANCELLED: "Cancelled",
}


class InvalidTransitionError(ValueError):
    def __init__(self, from_status: ContractStatus, to_status: ContractStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"invalid status transition: {from_status.value} -> {to_status.value}")


def is_valid_transition(from_status: ContractStatus, to_status: ContractStatus) -> bool:
    allowed: Iterable[ContractStatus] | None = VALID_TRANSITIONS.get(from_status)
    return allowed is not None and to_status in allowed


def get_next_valid_statuses(status: ContractStatus) -> list[ContractStatus]:
    return list(VALID_TRANSITIONS.get(status, ()))


def is_terminal_status(status: ContractStatus) -> bool:
    return status in TERMINAL_STATUSES


def get_status_label(status: ContractStatus) -> str:
    return STATUS_LABELS.get(status, status.value)


def get_status_options() -> list[dict[str, str]]:
    return [{"value": status.value, "label": label} for status, label in STATUS_LABELS.items()]


def ensure_transition(from_status: ContractStatus, to_status: ContractStatus) -> None:
    if not is_valid_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)


def record_status_log(
    session: AsyncSession,
    contract: Contract,
    *,
    from_status: ContractStatus | None,
    to_status: ContractStatus,
    operator_id: str | None = None,
    remark: str | None = None,
) -> ContractStatusLog:
    entry = ContractStatusLog(
        contract_id=contract.id,
        from_status=from_status,
        to_status=to_status,
        operator_id=operator_id,
        remark=remark,
    )
    session.add(entry)
    return entry


def transition_contract(
    session: AsyncSession,
    contract: Contract,
    target: ContractStatus,
    *,
    operator_id: str | None = None,
    remark: str | None = None,
) -> ContractStatusLog:
    """
    Move ``contract`` to ``target`` and append the matching status log.

    Both changes are staged on ``session``; the caller owns the commit so the
    status and its log row land in the same transaction.
    """
    current = contract.status
    ensure_transition(current, target)

    contract.status = target
    if target is ContractStatus.COMPLETED and contract.completed_at is None:
        contract.completed_at = utcnow()

    logger.info(
        "contract.status.transition",
        contract_id=contract.id,
        from_status=current.value,
        to_status=target.value,
        operator_id=operator_id,
    )
    return record_status_log(
        session,
        contract,
        from_status=current,
        to_status=target,
        operator_id=operator_id,
        remark=remark,
    )
