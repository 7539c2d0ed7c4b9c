from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from app.core.config import settings
from app.schemas.custom_fields import FieldDefinitionOut
from app.services.custom_fields.definition_loader import DefinitionLoader, LoadState
from app.services.custom_fields.diagnostics import DiagnosticSink, Diagnostics
from app.services.custom_fields.field_types import FieldType, field_type_or_none
from app.services.custom_fields.notifier import ChangeNotifier, FieldChangeCallback
from app.services.custom_fields.renderer import FieldControl, FieldRenderer, coerce_checkbox, coerce_number, toggle_option
from app.services.custom_fields.sources import DefinitionFetcher, FieldFile, FileUploader, ValueFetcher
from app.services.custom_fields.uploads import StaleUploadPolicy, UploadCoordinator, UploadState
from app.services.custom_fields.value_hydrator import ValueHydrator

logger = logging.getLogger(__name__)


@dataclass
class FieldSetView:
    section: str
    loading: bool = False
    failed: bool = False
    fields: list[FieldControl] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fields

    def as_dict(self) -> dict[str, Any]:
        return {
            "section": self.section,
            "loading": self.loading,
            "failed": self.failed,
            "fields": [control.as_dict() for control in self.fields],
        }


def stale_upload_policy_from_settings() -> StaleUploadPolicy:
    raw = str(getattr(settings, "CUSTOM_FIELDS_STALE_UPLOAD_POLICY", "") or "").strip().lower()
    try:
        return StaleUploadPolicy(raw)
    except ValueError:
        return StaleUploadPolicy.NOTIFY


class DynamicFieldEngine:
    """Custom fields of one section, optionally bound to one entity.

    The host owns committed values: it passes them to ``render`` and
    receives every change through ``on_field_change``.
    """

    def __init__(
        self,
        section: str,
        *,
        fetch_definitions: DefinitionFetcher,
        fetch_values: ValueFetcher,
        upload_file: FileUploader,
        on_field_change: FieldChangeCallback,
        entity_type: str | None = None,
        entity_id: int | None = None,
        diagnostics: DiagnosticSink | None = None,
        stale_upload_policy: StaleUploadPolicy | str | None = None,
    ):
        self.section = str(section or "").strip()
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.diagnostics = Diagnostics(diagnostics)
        self.notifier = ChangeNotifier(on_field_change)
        self.loader = DefinitionLoader(fetch_definitions, self.diagnostics)
        self.hydrator = ValueHydrator(fetch_values, self.diagnostics)
        self.uploads = UploadCoordinator(
            upload_file,
            self.notifier,
            self.diagnostics,
            stale_policy=StaleUploadPolicy(stale_upload_policy) if stale_upload_policy else stale_upload_policy_from_settings(),
        )
        self.renderer = FieldRenderer()

    @property
    def definitions(self) -> list[FieldDefinitionOut]:
        return self.loader.definitions

    def definition(self, field_id: int) -> FieldDefinitionOut | None:
        for definition in self.loader.definitions:
            if definition.id == int(field_id):
                return definition
        return None

    async def load(self, values: Mapping[int, Any] | None = None) -> list[FieldDefinitionOut]:
        """Fetch definitions and stored values concurrently, then seed.

        ``values`` are the host's current values; stored values only fill
        fields that are still empty there.
        """
        definitions, stored = await asyncio.gather(
            self.loader.load(self.section),
            self.hydrator.fetch(self.entity_type, self.entity_id),
        )
        if stored:
            self.hydrator.seed(stored, values or {}, self.notifier)
        return definitions

    async def set_section(self, section: str) -> list[FieldDefinitionOut]:
        self.section = str(section or "").strip()
        return await self.loader.load(self.section)

    def render(self, values: Mapping[int, Any] | None = None) -> FieldSetView:
        state = self.loader.state
        view = FieldSetView(
            section=self.section,
            loading=state in (LoadState.IDLE, LoadState.LOADING),
            failed=state == LoadState.FAILED,
        )
        if view.loading or view.failed:
            return view
        view.fields = self.renderer.render_fields(self.loader.definitions, values or {}, self.uploads.states())
        return view

    def change(self, field_id: int, raw: Any) -> Any:
        definition = self.definition(field_id)
        field_type = field_type_or_none(definition.field_type) if definition is not None else None
        if field_type == FieldType.NUMBER:
            value = coerce_number(raw)
        elif field_type == FieldType.CHECKBOX:
            value = coerce_checkbox(raw)
        else:
            value = raw
        self.notifier.notify(field_id, value)
        return value

    def toggle(self, field_id: int, option: str, values: Mapping[int, Any]) -> list[str]:
        selected = toggle_option(values.get(int(field_id)), option)
        self.notifier.notify(field_id, selected)
        return selected

    def set_checked(self, field_id: int, checked: Any) -> bool:
        value = coerce_checkbox(checked)
        self.notifier.notify(field_id, value)
        return value

    async def select_file(self, field_id: int, file: FieldFile) -> UploadState:
        return await self.uploads.select_file(field_id, file)

    def clear_file(self, field_id: int) -> UploadState:
        return self.uploads.clear(field_id)

    def upload_state(self, field_id: int) -> UploadState:
        return self.uploads.state(field_id)
