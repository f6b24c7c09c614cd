"""
Contract form field configuration.

Products describe which template components are filled by the initiator (sent
with ``CreateDocument``) and which are left to the signer on the provider's
signing page. Older products store a flat list of field configs instead of the
structured ``{"initiatorFields", "signerFields"}`` object.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Mapping

from pydantic import ValidationError

from esign_desk.core.logging import get_logger
from esign_desk.integrations.esign.types import FormField, TemplateComponent, TemplateInfo
from esign_desk.schemas.form_field import FieldFiller, FieldType, FormFieldConfig, ProductFormFields, SelectOption

logger = get_logger(__name__)

FILLABLE_COMPONENT_TYPES: tuple[str, ...] = ("TEXT", "MULTI_LINE_TEXT", "NUMBER", "DATE", "SELECT")

COMPONENT_TYPE_MAP: dict[str, FieldType] = {
    "TEXT": FieldType.TEXT,
    "MULTI_LINE_TEXT": FieldType.TEXT,
    "NUMBER": FieldType.NUMBER,
    "DATE": FieldType.DATE,
    "SELECT": FieldType.SELECT,
}


def parse_product_form_fields(raw: Any) -> ProductFormFields | None:
    """
    Normalise a product's stored ``form_fields`` value.

    Returns ``None`` when nothing is configured or the stored value does not
    validate.
    """
    if not raw:
        return None

    try:
        if isinstance(raw, list):
            configs = [FormFieldConfig.model_validate(item) for item in raw]
            return ProductFormFields(
                initiator_fields=[config for config in configs if config.filler is FieldFiller.INITIATOR],
                signer_fields=[config for config in configs if config.filler is FieldFiller.SIGNER],
            )
        if isinstance(raw, Mapping):
            return ProductFormFields.model_validate(raw)
    except ValidationError as exc:
        logger.warning("form_fields.parse.failed", errors=exc.error_count())
        return None

    logger.warning("form_fields.parse.unsupported", value_type=type(raw).__name__)
    return None


def format_date_value(value: Any) -> str:
    """``YYYY-MM-DD`` for dates and ISO date/datetime strings; anything else is passed through."""
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    text = str(value).strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).strftime("%Y-%m-%d")
    except ValueError:
        return str(value)


def stringify_value(value: Any, field_type: FieldType) -> str:
    if field_type is FieldType.DATE:
        return format_date_value(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def build_form_fields(
    form_data: Mapping[str, Any] | None,
    initiator_fields: list[FormFieldConfig] | None,
) -> list[FormField]:
    """
    Form field values for ``CreateDocument``; empty values are skipped.

    ``initiator_fields=None`` means nothing is configured and every value is
    sent; an empty list sends nothing.
    """
    if not form_data:
        return []

    if initiator_fields is None:
        return [
            FormField(component_name=key, component_value=str(value))
            for key, value in form_data.items()
            if not _is_empty(value)
        ]

    fields: list[FormField] = []
    for config in initiator_fields:
        value = form_data.get(config.name)
        if _is_empty(value):
            continue
        fields.append(FormField(component_name=config.name, component_value=stringify_value(value, config.type)))
    return fields


def _signer_field_names(raw: Any) -> set[str]:
    """Names marked signer-filled in a config that did not validate."""
    if isinstance(raw, Mapping):
        items = raw.get("signerFields") or raw.get("signer_fields") or []
    elif isinstance(raw, list):
        items = [item for item in raw if isinstance(item, Mapping) and item.get("filler") == FieldFiller.SIGNER.value]
    else:
        items = []
    if not isinstance(items, list):
        return set()
    return {str(item["name"]) for item in items if isinstance(item, Mapping) and item.get("name")}


def build_contract_form_fields(form_data: Mapping[str, Any] | None, product_form_fields: Any) -> list[FormField]:
    if not product_form_fields:
        return build_form_fields(form_data, None)

    parsed = parse_product_form_fields(product_form_fields)
    if parsed is not None:
        return build_form_fields(form_data, parsed.initiator_fields)

    # Unusable config: send what was entered, minus anything the signer is meant to fill.
    withheld = _signer_field_names(product_form_fields)
    logger.warning("form_fields.config.unusable", withheld=sorted(withheld))
    return [field for field in build_form_fields(form_data, None) if field.component_name not in withheld]


def _parse_select_options(component_extra: str | None) -> list[SelectOption] | None:
    if not component_extra:
        return None
    try:
        extra = json.loads(component_extra)
    except ValueError:
        return None

    raw_options = (extra.get("Options") or extra.get("options")) if isinstance(extra, dict) else None
    if not isinstance(raw_options, list):
        return None

    options = []
    for option in raw_options:
        if isinstance(option, dict):
            label = option.get("Content") or option.get("label") or option.get("value")
            value = option.get("value") or label
            if label:
                options.append(SelectOption(label=str(label), value=str(value)))
        elif option not in (None, ""):
            options.append(SelectOption(label=str(option), value=str(option)))
    return options or None


def component_to_field_config(component: TemplateComponent) -> FormFieldConfig:
    field_type = COMPONENT_TYPE_MAP.get(component.component_type, FieldType.TEXT)
    return FormFieldConfig(
        name=component.component_name,
        label=component.component_name,
        type=field_type,
        filler=FieldFiller.INITIATOR,
        required=component.component_required,
        default_value=component.component_value or None,
        options=_parse_select_options(component.component_extra) if field_type is FieldType.SELECT else None,
        component_id=component.component_id or None,
        component_type=component.component_type,
    )


def extract_template_fields(template: TemplateInfo) -> list[FormFieldConfig]:
    """Fillable template components as field configs, signature components excluded."""
    return [
        component_to_field_config(component)
        for component in template.components
        if component.component_type in FILLABLE_COMPONENT_TYPES and component.component_name
    ]
