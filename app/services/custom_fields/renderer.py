from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from app.schemas.custom_fields import FieldDefinitionOut
from app.services.custom_fields.definition_loader import active_in_order
from app.services.custom_fields.field_types import (
    Constraints,
    FieldType,
    NoConstraints,
    OptionsConstraints,
    build_constraints,
    field_type_or_none,
)
from app.services.custom_fields.uploads import UploadState


class ControlKind(str, Enum):
    INPUT = "input"
    TEXTAREA = "textarea"
    SELECT = "select"
    CHECKBOX_GROUP = "checkbox_group"
    RADIO_GROUP = "radio_group"
    CHECKBOX = "checkbox"
    FILE = "file"


# field type -> (control, html input type)
CONTROLS: dict[FieldType, tuple[ControlKind, str | None]] = {
    FieldType.TEXT: (ControlKind.INPUT, "text"),
    FieldType.TEXTAREA: (ControlKind.TEXTAREA, None),
    FieldType.NUMBER: (ControlKind.INPUT, "number"),
    FieldType.EMAIL: (ControlKind.INPUT, "email"),
    FieldType.PHONE: (ControlKind.INPUT, "tel"),
    FieldType.DATE: (ControlKind.INPUT, "date"),
    FieldType.URL: (ControlKind.INPUT, "url"),
    FieldType.SELECT: (ControlKind.SELECT, None),
    FieldType.MULTISELECT: (ControlKind.CHECKBOX_GROUP, None),
    FieldType.RADIO: (ControlKind.RADIO_GROUP, None),
    FieldType.CHECKBOX: (ControlKind.CHECKBOX, None),
    FieldType.FILE: (ControlKind.FILE, "file"),
}

_missing_controls = set(FieldType) - set(CONTROLS)
if _missing_controls:
    raise RuntimeError(f"controls missing for field types: {sorted(t.value for t in _missing_controls)}")

FALLBACK_CONTROL = (ControlKind.INPUT, "text")


@dataclass(frozen=True)
class Choice:
    key: str
    value: str
    label: str
    selected: bool = False


@dataclass
class FieldControl:
    field_id: int
    dom_id: str
    label: str
    field_type: str
    control: ControlKind
    input_type: str | None
    value: Any
    required: bool = False
    description: str | None = None
    placeholder: str = ""
    constraints: Constraints = field(default_factory=NoConstraints)
    choices: list[Choice] = field(default_factory=list)
    upload: UploadState | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "field_id": self.field_id,
            "dom_id": self.dom_id,
            "label": self.label,
            "field_type": self.field_type,
            "control": self.control.value,
            "input_type": self.input_type,
            "value": self.value,
            "required": self.required,
            "description": self.description,
            "placeholder": self.placeholder,
            "constraints": asdict(self.constraints),
            "choices": [asdict(choice) for choice in self.choices],
            "upload": self.upload.as_dict() if self.upload is not None else None,
        }


def coerce_number(raw: Any) -> int | float:
    """Numeric value for a number input; anything unusable becomes 0."""
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, (int, float)):
        number = float(raw)
    else:
        try:
            number = float(str(raw or "").strip())
        except ValueError:
            return 0
    if math.isnan(number) or math.isinf(number) or number == 0:
        return 0
    if number.is_integer():
        return int(number)
    return number


def coerce_checkbox(raw: Any) -> bool:
    return bool(raw)


def toggle_option(current: Any, option: str) -> list[str]:
    selected = list(current) if isinstance(current, (list, tuple)) else []
    if option in selected:
        return [item for item in selected if item != option]
    return selected + [option]


def select_key(option: str, index: int) -> str:
    return option or f"option-{index}"


def bound_value(definition: FieldDefinitionOut, values: Mapping[int, Any]) -> Any:
    value = values.get(definition.id)
    if value is not None and value != "":
        return value
    if definition.default_value not in (None, ""):
        return definition.default_value
    return ""


def _choices(field_id: int, field_type: FieldType | None, options: tuple[str, ...], value: Any) -> list[Choice]:
    out: list[Choice] = []
    for index, option in enumerate(options):
        if field_type == FieldType.SELECT:
            key = select_key(option, index)
            out.append(Choice(key=key, value=key, label=option, selected=value == key))
        elif field_type == FieldType.MULTISELECT:
            selected = isinstance(value, (list, tuple)) and option in value
            out.append(Choice(key=f"{field_id}-{index}", value=option, label=option, selected=selected))
        else:
            out.append(Choice(key=f"{field_id}-{index}", value=option, label=option, selected=value != "" and value == option))
    return out


class FieldRenderer:
    def render_field(
        self,
        definition: FieldDefinitionOut,
        value: Any,
        upload_state: UploadState | None = None,
    ) -> FieldControl:
        field_type = field_type_or_none(definition.field_type)
        control, input_type = CONTROLS.get(field_type, FALLBACK_CONTROL) if field_type else FALLBACK_CONTROL
        constraints = build_constraints(field_type, definition.validation, definition.options)

        if field_type == FieldType.CHECKBOX:
            value = coerce_checkbox(value)
        elif field_type == FieldType.MULTISELECT:
            value = list(value) if isinstance(value, (list, tuple)) else []

        choices: list[Choice] = []
        if isinstance(constraints, OptionsConstraints):
            choices = _choices(int(definition.id), field_type, constraints.options, value)

        return FieldControl(
            field_id=int(definition.id),
            dom_id=f"field-{definition.id}",
            label=definition.label,
            field_type=field_type.value if field_type else FieldType.TEXT.value,
            control=control,
            input_type=input_type,
            value=value,
            required=bool(definition.is_required),
            description=definition.description or None,
            placeholder=definition.placeholder or "",
            constraints=constraints,
            choices=choices,
            upload=upload_state if field_type == FieldType.FILE else None,
        )

    def render_fields(
        self,
        definitions: Iterable[FieldDefinitionOut],
        values: Mapping[int, Any],
        upload_states: Mapping[int, UploadState] | None = None,
    ) -> list[FieldControl]:
        upload_states = upload_states or {}
        return [
            self.render_field(definition, bound_value(definition, values), upload_states.get(definition.id))
            for definition in active_in_order(definitions)
        ]
