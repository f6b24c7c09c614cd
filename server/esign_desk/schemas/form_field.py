from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"


class FieldFiller(str, Enum):
    INITIATOR = "INITIATOR"
    SIGNER = "SIGNER"


class SelectOption(BaseModel):
    label: str
    value: str


class FormFieldConfig(BaseModel):
    """One configurable contract field, keyed by its template component name."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    label: str
    type: FieldType = FieldType.TEXT
    filler: FieldFiller = FieldFiller.INITIATOR
    required: bool = False
    default_value: Optional[str] = Field(default=None, alias="defaultValue")
    placeholder: Optional[str] = None
    options: Optional[List[SelectOption]] = None
    component_id: Optional[str] = Field(default=None, alias="componentId")
    component_type: Optional[str] = Field(default=None, alias="componentType")


class ProductFormFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    initiator_fields: List[FormFieldConfig] = Field(default_factory=list, alias="initiatorFields")
    signer_fields: List[FormFieldConfig] = Field(default_factory=list, alias="signerFields")


class TemplateFieldsRead(BaseModel):
    template_id: str
    template_name: str
    fields: List[FormFieldConfig]
