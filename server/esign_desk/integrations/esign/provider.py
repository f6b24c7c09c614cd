"""
Tencent E-Sign provider façade.

One coroutine per provider action. Each method assembles the action payload
(always carrying the fixed ``Operator`` identity), calls the client and
reshapes the raw ``Response`` into the typed results in ``types``.
"""

import time
from typing import Any, Dict, List, Optional, Sequence

from esign_desk.core.config import Settings
from esign_desk.core.logging import get_logger

from .client import EsignClient
from .errors import DataShapeError
from .types import (
    Approver,
    CreateDocumentResult,
    CreateFlowResult,
    FileUrlResult,
    FlowApproverStatus,
    FlowApproverUrlInfo,
    FlowInfo,
    FormField,
    SignUrlResult,
    StartFlowResult,
    TemplateComponent,
    TemplateInfo,
    translate_approve_status,
    translate_approver_type,
    translate_flow_status,
)

logger = get_logger(__name__)

CREATE_FLOW = "CreateFlow"
CREATE_DOCUMENT = "CreateDocument"
START_FLOW = "StartFlow"
CREATE_FLOW_SIGN_URL = "CreateFlowSignUrl"
DESCRIBE_FLOW_INFO = "DescribeFlowInfo"
DESCRIBE_FLOW_TEMPLATES = "DescribeFlowTemplates"
DESCRIBE_FILE_URLS = "DescribeFileUrls"

DEFAULT_SIGN_URL_TTL_SECONDS = 30 * 60
MAX_EXPIRE_TIME = 253_402_300_799  # 9999-12-31T23:59:59Z


def _coerce_expire_time(value: Any, now: Optional[int] = None) -> int:
    """Valid unix seconds, or now + 30 minutes when missing, malformed or out of range."""
    try:
        expire_time = int(float(value))
    except (TypeError, ValueError, OverflowError):
        expire_time = 0
    if not 0 < expire_time <= MAX_EXPIRE_TIME:
        now = now if now is not None else int(time.time())
        return now + DEFAULT_SIGN_URL_TTL_SECONDS
    return expire_time


def _require(response: Dict[str, Any], key: str, action: str) -> str:
    value = response.get(key)
    if not value:
        raise DataShapeError("INVALID_RESPONSE", f"{action} response is missing {key}", response.get("RequestId", ""))
    return str(value)


class TencentEsignProvider:
    """Typed façade over the Tencent E-Sign (ESS) API."""

    def __init__(self, client: EsignClient, operator_id: str):
        self.client = client
        self.operator_id = operator_id

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[EsignClient] = None) -> "TencentEsignProvider":
        return cls(client or EsignClient.from_settings(settings), settings.tencent_esign_operator_id)

    async def close(self) -> None:
        await self.client.close()

    def _payload(self, **fields: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"Operator": {"UserId": self.operator_id}}
        payload.update({key: value for key, value in fields.items() if value is not None})
        return payload

    async def create_flow(
        self,
        flow_name: str,
        approvers: Sequence[Approver],
        *,
        unordered: bool = False,
        description: Optional[str] = None,
        flow_type: Optional[str] = None,
        auto_sign_scene: Optional[str] = None,
        deadline: Optional[int] = None,
    ) -> CreateFlowResult:
        payload = self._payload(
            FlowName=flow_name,
            Approvers=[approver.to_payload() for approver in approvers],
            Unordered=unordered,
            FlowDescription=description or None,
            FlowType=flow_type or None,
            AutoSignScene=auto_sign_scene or None,
            Deadline=deadline or None,
        )
        logger.debug("esign.create_flow.request", flow_name=flow_name, approvers=len(approvers))
        response = await self.client.call(CREATE_FLOW, payload)
        return CreateFlowResult(flow_id=_require(response, "FlowId", CREATE_FLOW), request_id=response.get("RequestId", ""))

    async def create_document(
        self,
        flow_id: str,
        template_id: str,
        *,
        file_names: Optional[List[str]] = None,
        form_fields: Optional[List[FormField]] = None,
    ) -> CreateDocumentResult:
        payload = self._payload(
            FlowId=flow_id,
            TemplateId=template_id,
            FileNames=file_names or None,
            FormFields=[form_field.to_payload() for form_field in form_fields] if form_fields else None,
        )
        response = await self.client.call(CREATE_DOCUMENT, payload)
        return CreateDocumentResult(document_id=_require(response, "DocumentId", CREATE_DOCUMENT), request_id=response.get("RequestId", ""))

    async def start_flow(self, flow_id: str) -> StartFlowResult:
        response = await self.client.call(START_FLOW, self._payload(FlowId=flow_id))
        return StartFlowResult(status=str(response.get("Status", "")), request_id=response.get("RequestId", ""))

    async def _request_sign_urls(
        self,
        flow_id: str,
        approvers: Optional[Sequence[Approver]],
        jump_url: Optional[str],
        url_type: Optional[int],
    ) -> Dict[str, Any]:
        payload = self._payload(
            FlowId=flow_id,
            FlowApproverInfos=[approver.to_sign_url_payload() for approver in approvers] if approvers else None,
            JumpUrl=jump_url or None,
            UrlType=url_type,
        )
        return await self.client.call(CREATE_FLOW_SIGN_URL, payload)

    async def create_flow_sign_urls(
        self,
        flow_id: str,
        approvers: Optional[Sequence[Approver]] = None,
        *,
        jump_url: Optional[str] = None,
        url_type: Optional[int] = None,
    ) -> List[FlowApproverUrlInfo]:
        response = await self._request_sign_urls(flow_id, approvers, jump_url, url_type)
        return [
            FlowApproverUrlInfo(
                sign_url=item.get("SignUrl", ""),
                approver_type=translate_approver_type(item.get("ApproverType")),
                approver_name=item.get("ApproverName", ""),
                approver_mobile=item.get("ApproverMobile", ""),
                sign_url_expire_time=item.get("SignUrlExpireTime"),
            )
            for item in response.get("FlowApproverUrlInfos") or []
        ]

    async def create_flow_sign_url(
        self,
        flow_id: str,
        approvers: Optional[Sequence[Approver]] = None,
        *,
        jump_url: Optional[str] = None,
        url_type: Optional[int] = None,
    ) -> SignUrlResult:
        """Sign URL of the first returned approver, with a guaranteed usable expiry."""
        response = await self._request_sign_urls(flow_id, approvers, jump_url, url_type)
        request_id = response.get("RequestId", "")

        url_infos = response.get("FlowApproverUrlInfos") or []
        if not url_infos:
            raise DataShapeError(
                "SIGN_URL_NOT_FOUND",
                "No sign URL was returned, please check the signer information",
                request_id,
            )

        url_info = url_infos[0]
        raw_expire = url_info.get("SignUrlExpireTime")
        expire_time = _coerce_expire_time(raw_expire)
        if expire_time != raw_expire:
            logger.info("esign.sign_url.expire_defaulted", flow_id=flow_id, raw_expire=raw_expire, expire_time=expire_time)

        return SignUrlResult(sign_url=url_info.get("SignUrl", ""), expire_time=expire_time, request_id=request_id)

    async def describe_flow_info(self, flow_id: str) -> FlowInfo:
        response = await self.client.call(DESCRIBE_FLOW_INFO, self._payload(FlowIds=[flow_id]))
        request_id = response.get("RequestId", "")

        details = response.get("FlowDetailInfos") or []
        if not details:
            raise DataShapeError("FLOW_NOT_FOUND", f"Flow information not found: {flow_id}", request_id)

        detail = details[0]
        return FlowInfo(
            flow_id=detail.get("FlowId", flow_id),
            flow_status=translate_flow_status(detail.get("FlowStatus")),
            flow_message=detail.get("FlowMessage"),
            approvers=[
                FlowApproverStatus(
                    approve_status=translate_approve_status(approver.get("ApproveStatus")),
                    approve_type=approver.get("ApproveType"),
                    approve_name=approver.get("ApproveName"),
                    approver_type=translate_approver_type(approver.get("ApproverType")),
                )
                for approver in detail.get("FlowApproverInfos") or []
            ],
            request_id=request_id,
        )

    async def describe_flow_templates(self, template_id: str) -> TemplateInfo:
        payload = self._payload(Filters=[{"Key": "template-id", "Values": [template_id]}])
        response = await self.client.call(DESCRIBE_FLOW_TEMPLATES, payload)
        request_id = response.get("RequestId", "")

        templates = response.get("Templates") or []
        if not templates:
            raise DataShapeError(
                "ResourceNotFound.Template",
                "Template does not exist, please check the template id",
                request_id,
            )

        template = templates[0]
        return TemplateInfo(
            template_id=template.get("TemplateId", template_id),
            template_name=template.get("TemplateName", ""),
            components=[
                TemplateComponent(
                    component_id=component.get("ComponentId", ""),
                    component_name=component.get("ComponentName", ""),
                    component_type=component.get("ComponentType", ""),
                    component_required=bool(component.get("ComponentRequired", False)),
                    component_value=component.get("ComponentValue"),
                    component_extra=component.get("ComponentExtra"),
                )
                for component in template.get("Components") or []
            ],
            request_id=request_id,
        )

    async def describe_file_urls(self, flow_id: str) -> FileUrlResult:
        payload = self._payload(BusinessType="FLOW", BusinessIds=[flow_id], FileType="PDF")
        response = await self.client.call(DESCRIBE_FILE_URLS, payload)
        request_id = response.get("RequestId", "")

        file_urls = response.get("FileUrls") or []
        if not file_urls:
            raise DataShapeError(
                "FILE_NOT_FOUND",
                "Contract file not found, please make sure signing has completed",
                request_id,
            )

        file_url = file_urls[0]
        return FileUrlResult(url=file_url.get("Url", ""), expire_time=file_url.get("ExpiredTime"), request_id=request_id)
