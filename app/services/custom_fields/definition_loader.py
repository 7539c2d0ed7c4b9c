from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable

from pydantic import ValidationError

from app.schemas.custom_fields import FieldDefinitionOut
from app.services.custom_fields.diagnostics import EVENT_DEFINITION_SKIPPED, EVENT_DEFINITIONS_FAILED, Diagnostics
from app.services.custom_fields.sources import DefinitionFetcher, maybe_await

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    LOADED = "LOADED"
    FAILED = "FAILED"


def definition_sort_key(definition: FieldDefinitionOut) -> tuple[int, int]:
    return (int(definition.display_order or 0), int(definition.id))


def coerce_definitions(rows: Iterable[Any], diagnostics: Diagnostics, section: str | None = None) -> list[FieldDefinitionOut]:
    out: list[FieldDefinitionOut] = []
    for row in rows or []:
        if isinstance(row, FieldDefinitionOut):
            out.append(row)
            continue
        try:
            out.append(FieldDefinitionOut.model_validate(row))
        except ValidationError as exc:
            logger.warning("custom_field_definition_skipped section=%s errors=%s", section, exc.error_count())
            diagnostics.emit(EVENT_DEFINITION_SKIPPED, section=section, errors=exc.errors(include_url=False))
    return out


def active_in_order(definitions: Iterable[FieldDefinitionOut]) -> list[FieldDefinitionOut]:
    return sorted((d for d in definitions if d.is_active), key=definition_sort_key)


class DefinitionLoader:
    def __init__(self, fetch_definitions: DefinitionFetcher, diagnostics: Diagnostics | None = None):
        self._fetch = fetch_definitions
        self._diagnostics = diagnostics or Diagnostics()
        self._section: str | None = None
        self._cached: list[FieldDefinitionOut] | None = None
        self._generation = 0
        self.state = LoadState.IDLE

    @property
    def section(self) -> str | None:
        return self._section

    @property
    def definitions(self) -> list[FieldDefinitionOut]:
        return list(self._cached or [])

    def invalidate(self) -> None:
        self._generation += 1
        self._cached = None
        self.state = LoadState.IDLE

    async def load(self, section: str) -> list[FieldDefinitionOut]:
        section = str(section or "").strip()
        if section != self._section:
            self.invalidate()
            self._section = section
        if self._cached is not None:
            return list(self._cached)

        generation = self._generation
        self.state = LoadState.LOADING
        try:
            rows = await maybe_await(self._fetch(section))
        except Exception as exc:
            logger.warning("custom_field_definitions_failed section=%s error=%s", section, exc)
            self._diagnostics.emit(EVENT_DEFINITIONS_FAILED, section=section, error=str(exc))
            if generation == self._generation:
                self.state = LoadState.FAILED
            return []

        if generation != self._generation:
            # Section changed or cache was invalidated while fetching.
            logger.info("custom_field_definitions_discarded section=%s current=%s", section, self._section)
            return self.definitions

        definitions = coerce_definitions(rows, self._diagnostics, section)
        self._cached = active_in_order(d for d in definitions if d.section == section)
        self.state = LoadState.LOADED
        return list(self._cached)
