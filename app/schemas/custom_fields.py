from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FieldDefinitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str = ""
    section: str = ""
    label: str = ""
    description: Optional[str] = None
    placeholder: Optional[str] = None
    field_type: str = Field(default="text", alias="fieldType")
    is_required: bool = Field(default=False, alias="isRequired")
    is_active: bool = Field(default=True, alias="isActive")
    display_order: int = Field(default=0, alias="displayOrder")
    default_value: Any = Field(default=None, alias="defaultValue")
    validation: Optional[str] = None
    options: Optional[list[Any]] = None

    @field_validator("validation", mode="before")
    @classmethod
    def _validation_as_text(cls, value: Any) -> Any:
        # Some writers store the constraint object already decoded.
        if value is None or isinstance(value, str):
            return value
        try:
            return json.dumps(value)
        except (TypeError, ValueError):
            return str(value)

    @field_validator("display_order", mode="before")
    @classmethod
    def _display_order_or_zero(cls, value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0


class FieldValueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    field_definition_id: int = Field(alias="fieldDefinitionId")
    entity_type: str = Field(alias="entityType")
    entity_id: int = Field(alias="entityId")
    value: Any = None


class FieldValueIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field_definition_id: int = Field(alias="fieldDefinitionId")
    value: Any = None


class FieldValuesUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_type: str = Field(alias="entityType")
    entity_id: int = Field(alias="entityId")
    values: list[FieldValueIn] = Field(default_factory=list)


class FieldValuesUpsertResponse(BaseModel):
    status: str = "ok"
    created: int = 0
    updated: int = 0


class FieldUploadResponse(BaseModel):
    url: str
    key: str
