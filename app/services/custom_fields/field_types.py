from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    EMAIL = "email"
    PHONE = "phone"
    DATE = "date"
    URL = "url"
    SELECT = "select"
    MULTISELECT = "multiselect"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    FILE = "file"


OPTION_FIELD_TYPES = {FieldType.SELECT, FieldType.MULTISELECT, FieldType.RADIO}
DEFAULT_PHONE_PATTERN = "[0-9]{10}"
DEFAULT_TEXTAREA_ROWS = 4
DEFAULT_NUMBER_STEP = 1


def field_type_or_none(raw: Any) -> FieldType | None:
    text = str(raw or "").strip().lower()
    try:
        return FieldType(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class NoConstraints:
    pass


@dataclass(frozen=True)
class TextConstraints:
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None


@dataclass(frozen=True)
class TextareaConstraints:
    min_length: int | None = None
    max_length: int | None = None
    rows: int = DEFAULT_TEXTAREA_ROWS


@dataclass(frozen=True)
class NumberConstraints:
    min: float | None = None
    max: float | None = None
    step: float = DEFAULT_NUMBER_STEP


@dataclass(frozen=True)
class PatternConstraints:
    pattern: str | None = None


@dataclass(frozen=True)
class DateConstraints:
    min_date: str | None = None
    max_date: str | None = None


@dataclass(frozen=True)
class OptionsConstraints:
    options: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FileConstraints:
    accept: str | None = None


Constraints = Union[
    NoConstraints,
    TextConstraints,
    TextareaConstraints,
    NumberConstraints,
    PatternConstraints,
    DateConstraints,
    OptionsConstraints,
    FileConstraints,
]


def parse_validation(raw: Any) -> dict[str, Any]:
    """Decode a stored validation payload.

    Anything that is not a JSON object (missing, empty, truncated, a list,
    a bare scalar) yields an empty dict, which every builder reads as
    "no constraint".
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    text = str(raw).strip()
    if not text:
        return {}
    try:
        payload = json.loads(text)
    except ValueError:
        logger.debug("custom_field_validation_unparseable payload=%r", text[:200])
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload


def _int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _number_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def _text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_options(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        # Admin screen stores options one per line.
        value = value.splitlines()
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple("" if item is None else str(item) for item in value)


def _text(payload: dict[str, Any]) -> TextConstraints:
    return TextConstraints(
        min_length=_int_or_none(payload.get("minLength")),
        max_length=_int_or_none(payload.get("maxLength")),
        pattern=_text_or_none(payload.get("pattern")),
    )


def _textarea(payload: dict[str, Any]) -> TextareaConstraints:
    return TextareaConstraints(
        min_length=_int_or_none(payload.get("minLength")),
        max_length=_int_or_none(payload.get("maxLength")),
        rows=_int_or_none(payload.get("rows")) or DEFAULT_TEXTAREA_ROWS,
    )


def _number(payload: dict[str, Any]) -> NumberConstraints:
    return NumberConstraints(
        min=_number_or_none(payload.get("min")),
        max=_number_or_none(payload.get("max")),
        step=_number_or_none(payload.get("step")) or DEFAULT_NUMBER_STEP,
    )


def _pattern(payload: dict[str, Any]) -> PatternConstraints:
    return PatternConstraints(pattern=_text_or_none(payload.get("pattern")))


def _phone(payload: dict[str, Any]) -> PatternConstraints:
    return PatternConstraints(pattern=_text_or_none(payload.get("pattern")) or DEFAULT_PHONE_PATTERN)


def _date(payload: dict[str, Any]) -> DateConstraints:
    return DateConstraints(
        min_date=_text_or_none(payload.get("minDate")),
        max_date=_text_or_none(payload.get("maxDate")),
    )


def _options(payload: dict[str, Any]) -> OptionsConstraints:
    return OptionsConstraints(options=normalize_options(payload.get("options")))


def _file(payload: dict[str, Any]) -> FileConstraints:
    return FileConstraints(accept=_text_or_none(payload.get("accept")))


def _none(payload: dict[str, Any]) -> NoConstraints:
    return NoConstraints()


CONSTRAINT_BUILDERS = {
    FieldType.TEXT: _text,
    FieldType.TEXTAREA: _textarea,
    FieldType.NUMBER: _number,
    FieldType.EMAIL: _pattern,
    FieldType.URL: _pattern,
    FieldType.PHONE: _phone,
    FieldType.DATE: _date,
    FieldType.SELECT: _options,
    FieldType.MULTISELECT: _options,
    FieldType.RADIO: _options,
    FieldType.CHECKBOX: _none,
    FieldType.FILE: _file,
}

_missing_builders = set(FieldType) - set(CONSTRAINT_BUILDERS)
if _missing_builders:
    raise RuntimeError(f"constraint builders missing for field types: {sorted(t.value for t in _missing_builders)}")


def build_constraints(field_type: FieldType | None, validation: Any, options: Any = None) -> Constraints:
    """Per-type constraint object for a definition.

    Never raises: a broken payload produces the unconstrained variant of the
    field's type. ``options`` is the definition-level option list, used when
    the validation payload does not carry one.
    """
    if field_type is None:
        return NoConstraints()
    payload = parse_validation(validation)
    if field_type in OPTION_FIELD_TYPES and not normalize_options(payload.get("options")):
        payload["options"] = options
    try:
        return CONSTRAINT_BUILDERS[field_type](payload)
    except Exception:
        logger.warning("custom_field_constraints_degraded type=%s", field_type.value, exc_info=True)
        return CONSTRAINT_BUILDERS[field_type]({})
