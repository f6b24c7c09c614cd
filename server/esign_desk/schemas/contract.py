from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from esign_desk.models.contract import ContractStatus, PartyType
from esign_desk.schemas.common import ORMModel, Timestamped


class ContractRead(Timestamped):
    id: str
    contract_no: str
    status: ContractStatus
    product_id: str
    flow_id: Optional[str] = None
    sign_url: Optional[str] = None
    sign_url_expire_at: Optional[datetime] = None
    party_b_name: str
    party_b_phone: str
    party_b_type: PartyType
    party_b_org_name: Optional[str] = None
    completed_at: Optional[datetime] = None


class InitiateContractResponse(BaseModel):
    contract: ContractRead
    flow_id: str
    sign_url: str
    sign_url_expire_at: datetime


class RegenerateSignUrlResponse(BaseModel):
    sign_url: str
    sign_url_expire_at: datetime


class ContractFileUrlResponse(BaseModel):
    url: str
    expire_time: Optional[int] = None


class StatusLogRead(ORMModel):
    id: str
    contract_id: str
    from_status: Optional[ContractStatus] = None
    to_status: ContractStatus
    operator_id: Optional[str] = None
    remark: Optional[str] = None
    created_at: datetime


class StatusLogList(BaseModel):
    contract_id: str
    status: ContractStatus
    items: List[StatusLogRead]
