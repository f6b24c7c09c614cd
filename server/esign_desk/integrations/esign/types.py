"""
Typed values exchanged with the Tencent E-Sign provider.

Provider enums arrive as small integers; they are translated to the canonical
enums below at the provider boundary so nothing past the façade deals with
provider magic numbers.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


class ApproverType(IntEnum):
    """Wire values of ``ApproverType``."""
    ENTERPRISE = 0
    PERSONAL = 1
    ENTERPRISE_AUTO = 3


class FlowStatus(str, Enum):
    SIGNING = "signing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ApproveStatus(str, Enum):
    PENDING = "pending"
    FILLING = "filling"
    SIGNED = "signed"
    REJECTED = "rejected"
    EXPIRED = "expired"
    PENDING_REVIEW = "pending_review"
    REVIEW_REJECTED = "review_rejected"
    UNKNOWN = "unknown"


PROVIDER_FLOW_STATUS: Dict[int, FlowStatus] = {
    1: FlowStatus.SIGNING,
    2: FlowStatus.COMPLETED,
    3: FlowStatus.REJECTED,
    4: FlowStatus.EXPIRED,
    5: FlowStatus.CANCELLED,
}

PROVIDER_APPROVE_STATUS: Dict[int, ApproveStatus] = {
    0: ApproveStatus.PENDING,
    1: ApproveStatus.FILLING,
    2: ApproveStatus.SIGNED,
    3: ApproveStatus.REJECTED,
    4: ApproveStatus.EXPIRED,
    5: ApproveStatus.PENDING_REVIEW,
    6: ApproveStatus.REVIEW_REJECTED,
}


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def translate_flow_status(value: Any) -> FlowStatus:
    return PROVIDER_FLOW_STATUS.get(_as_int(value), FlowStatus.UNKNOWN)


def translate_approve_status(value: Any) -> ApproveStatus:
    return PROVIDER_APPROVE_STATUS.get(_as_int(value), ApproveStatus.UNKNOWN)


def translate_approver_type(value: Any) -> Optional[ApproverType]:
    number = _as_int(value)
    if number is None:
        return None
    try:
        return ApproverType(number)
    except ValueError:
        return None


@dataclass
class Approver:
    """A signing participant for one flow; lower ``sign_order`` signs first."""
    approver_type: ApproverType
    name: str
    mobile: str
    sign_order: int = 0
    organization_name: Optional[str] = None
    id_card_number: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ApproverType": int(self.approver_type),
            "ApproverName": self.name,
            "ApproverMobile": self.mobile,
        }
        if self.organization_name:
            data["OrganizationName"] = self.organization_name
        if self.id_card_number:
            data["ApproverIdCardNumber"] = self.id_card_number
        data["SignOrder"] = self.sign_order
        return data

    def to_sign_url_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ApproverName": self.name,
            "ApproverMobile": self.mobile,
            "ApproverType": int(self.approver_type),
        }
        if self.organization_name:
            data["OrganizationName"] = self.organization_name
        return data


@dataclass
class FormField:
    component_value: str
    component_name: Optional[str] = None
    component_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ComponentValue": self.component_value}
        if self.component_id:
            data["ComponentId"] = self.component_id
        if self.component_name:
            data["ComponentName"] = self.component_name
        return data


@dataclass
class CreateFlowResult:
    flow_id: str
    request_id: str = ""


@dataclass
class CreateDocumentResult:
    document_id: str
    request_id: str = ""


@dataclass
class StartFlowResult:
    status: str
    request_id: str = ""


@dataclass
class FlowApproverUrlInfo:
    sign_url: str
    approver_type: Optional[ApproverType]
    approver_name: str
    approver_mobile: str
    sign_url_expire_time: Optional[int]


@dataclass
class SignUrlResult:
    sign_url: str
    expire_time: int  # unix seconds
    request_id: str = ""

    @property
    def expire_at(self) -> datetime:
        return datetime.fromtimestamp(self.expire_time, tz=timezone.utc)


@dataclass
class FlowApproverStatus:
    approve_status: ApproveStatus
    approve_type: Optional[str] = None
    approve_name: Optional[str] = None
    approver_type: Optional[ApproverType] = None


@dataclass
class FlowInfo:
    flow_id: str
    flow_status: FlowStatus
    flow_message: Optional[str] = None
    approvers: List[FlowApproverStatus] = field(default_factory=list)
    request_id: str = ""


@dataclass
class TemplateComponent:
    component_id: str
    component_name: str
    component_type: str
    component_required: bool = False
    component_value: Optional[str] = None
    component_extra: Optional[str] = None


@dataclass
class TemplateInfo:
    template_id: str
    template_name: str
    components: List[TemplateComponent] = field(default_factory=list)
    request_id: str = ""


@dataclass
class FileUrlResult:
    url: str
    expire_time: Optional[int] = None
    request_id: str = ""
