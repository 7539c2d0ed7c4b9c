from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from app.schemas.custom_fields import FieldValueOut
from app.services.custom_fields.diagnostics import EVENT_VALUES_FAILED, Diagnostics
from app.services.custom_fields.notifier import ChangeNotifier
from app.services.custom_fields.sources import ValueFetcher, maybe_await

logger = logging.getLogger(__name__)


def has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def entity_is_identified(entity_type: Any, entity_id: Any) -> bool:
    return bool(str(entity_type or "").strip()) and bool(entity_id)


class ValueHydrator:
    def __init__(self, fetch_values: ValueFetcher, diagnostics: Diagnostics | None = None):
        self._fetch = fetch_values
        self._diagnostics = diagnostics or Diagnostics()
        self.seeded = False

    async def fetch(self, entity_type: str | None, entity_id: int | None) -> list[FieldValueOut]:
        if not entity_is_identified(entity_type, entity_id):
            return []
        try:
            rows = await maybe_await(self._fetch(str(entity_type).strip(), entity_id))
        except Exception as exc:
            logger.warning(
                "custom_field_values_failed entity_type=%s entity_id=%s error=%s", entity_type, entity_id, exc
            )
            self._diagnostics.emit(EVENT_VALUES_FAILED, entity_type=entity_type, entity_id=entity_id, error=str(exc))
            return []

        out: list[FieldValueOut] = []
        for row in rows or []:
            try:
                out.append(row if isinstance(row, FieldValueOut) else FieldValueOut.model_validate(row))
            except ValidationError:
                logger.warning("custom_field_value_skipped entity_type=%s entity_id=%s", entity_type, entity_id)
        return out

    def seed(self, records: Iterable[FieldValueOut], values: Mapping[int, Any], notifier: ChangeNotifier) -> list[int]:
        """Report stored values for fields the host has not filled yet.

        Runs once per hydrator; values already present locally win.
        """
        if self.seeded:
            return []
        self.seeded = True
        seeded: list[int] = []
        for record in records:
            field_id = int(record.field_definition_id)
            if has_value(values.get(field_id)) or field_id in seeded:
                continue
            notifier.notify(field_id, record.value)
            seeded.append(field_id)
        return seeded
