from esign_desk.models.audit import AuditAction, AuditLog
from esign_desk.models.contract import Contract, ContractStatus, PartyType
from esign_desk.models.product import Product
from esign_desk.models.status_log import ContractStatusLog

__all__ = [
    "AuditAction",
    "AuditLog",
    "Contract",
    "ContractStatus",
    "ContractStatusLog",
    "PartyType",
    "Product",
]
