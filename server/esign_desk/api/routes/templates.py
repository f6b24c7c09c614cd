from fastapi import APIRouter, Depends, HTTPException, status

from esign_desk.api.dependencies.esign import get_esign_provider
from esign_desk.integrations.esign.errors import DataShapeError, EsignError
from esign_desk.integrations.esign.provider import TencentEsignProvider
from esign_desk.schemas.form_field import TemplateFieldsRead
from esign_desk.services.form_field_service import extract_template_fields


router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("/{template_id}/fields", response_model=TemplateFieldsRead)
async def template_fields_endpoint(
    template_id: str,
    provider: TencentEsignProvider = Depends(get_esign_provider),
) -> TemplateFieldsRead:
    try:
        template = await provider.describe_flow_templates(template_id)
    except DataShapeError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": exc.code, "message": exc.message, "request_id": exc.request_id},
        ) from exc
    except EsignError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"code": exc.code, "message": exc.message, "request_id": exc.request_id},
        ) from exc
    return TemplateFieldsRead(
        template_id=template.template_id,
        template_name=template.template_name,
        fields=extract_template_fields(template),
    )
