from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

FieldChangeCallback = Callable[[int, Any], None]


class ChangeNotifier:
    """Single funnel between field mutations and the host.

    The engine keeps no committed value of its own; whatever the host
    retains comes back on the next render as ``values[field_id]``.
    """

    def __init__(self, on_field_change: FieldChangeCallback):
        self._on_field_change = on_field_change

    def notify(self, field_id: int, value: Any) -> None:
        logger.debug("custom_field_changed field_id=%s", field_id)
        self._on_field_change(int(field_id), value)


class RecordingChangeHandler:
    """Host-side callback that keeps the latest value per field."""

    def __init__(self, values: dict[int, Any] | None = None):
        self.values: dict[int, Any] = dict(values or {})
        self.calls: list[tuple[int, Any]] = []

    def __call__(self, field_id: int, value: Any) -> None:
        self.calls.append((field_id, value))
        self.values[field_id] = value
