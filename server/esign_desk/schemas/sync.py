from typing import List, Optional

from pydantic import BaseModel, Field

from esign_desk.models.contract import ContractStatus


class SyncDetail(BaseModel):
    contract_id: str
    contract_no: str
    flow_id: str
    from_status: ContractStatus
    to_status: Optional[ContractStatus] = None
    success: bool = False
    error: Optional[str] = None


class SyncResult(BaseModel):
    total: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    details: List[SyncDetail] = Field(default_factory=list)


class CallbackResult(BaseModel):
    success: bool
    status_code: int = 200
    message: str
    contract_id: Optional[str] = None
    from_status: Optional[ContractStatus] = None
    to_status: Optional[ContractStatus] = None
