from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

EVENT_DEFINITIONS_FAILED = "definitions_failed"
EVENT_DEFINITION_SKIPPED = "definition_skipped"
EVENT_VALUES_FAILED = "values_failed"
EVENT_UPLOAD_FAILED = "upload_failed"
EVENT_STALE_UPLOAD = "stale_upload"


@dataclass(frozen=True)
class DiagnosticEvent:
    kind: str
    section: str | None = None
    field_id: int | None = None
    detail: dict[str, Any] = field(default_factory=dict)


DiagnosticSink = Callable[[DiagnosticEvent], None]


class Diagnostics:
    """Optional channel through which absorbed failures become visible.

    Without a sink the engine behaves exactly as before: events are only
    logged.
    """

    def __init__(self, sink: DiagnosticSink | None = None):
        self.sink = sink

    def emit(self, kind: str, *, section: str | None = None, field_id: int | None = None, **detail: Any) -> None:
        event = DiagnosticEvent(kind=kind, section=section, field_id=field_id, detail=detail)
        logger.debug("custom_field_event kind=%s section=%s field_id=%s detail=%s", kind, section, field_id, detail)
        if self.sink is None:
            return
        try:
            self.sink(event)
        except Exception:
            logger.warning("custom_field_diagnostic_sink_failed kind=%s", kind, exc_info=True)


class CollectingSink:
    def __init__(self):
        self.events: list[DiagnosticEvent] = []

    def __call__(self, event: DiagnosticEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]
