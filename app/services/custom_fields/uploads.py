from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from app.services.custom_fields.diagnostics import EVENT_STALE_UPLOAD, EVENT_UPLOAD_FAILED, Diagnostics
from app.services.custom_fields.notifier import ChangeNotifier
from app.services.custom_fields.sources import FieldFile, FileUploader, maybe_await, upload_url_from_result

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 16


class UploadPhase(str, Enum):
    IDLE = "IDLE"
    UPLOADING = "UPLOADING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class StaleUploadPolicy(str, Enum):
    # A superseded upload that completes still reports its url to the host.
    NOTIFY = "notify"
    DISCARD = "discard"


@dataclass(frozen=True)
class UploadState:
    phase: UploadPhase = UploadPhase.IDLE
    file: FieldFile | None = None
    url: str | None = None
    token: int = 0

    @property
    def uploading(self) -> bool:
        return self.phase == UploadPhase.UPLOADING

    def as_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "uploading": self.uploading,
            "file_name": self.file.name if self.file is not None else None,
            "url": self.url,
        }


IDLE = UploadState()


def begin(state: UploadState, file: FieldFile, token: int) -> UploadState:
    return UploadState(phase=UploadPhase.UPLOADING, file=file, url=None, token=token)


def succeed(state: UploadState, url: str, token: int) -> UploadState:
    if state.token != token or state.phase != UploadPhase.UPLOADING:
        return state
    return replace(state, phase=UploadPhase.SUCCEEDED, url=url)


def fail(state: UploadState, token: int) -> UploadState:
    if state.token != token or state.phase != UploadPhase.UPLOADING:
        return state
    return replace(state, phase=UploadPhase.FAILED, file=None, url=None)


def settle(state: UploadState) -> UploadState:
    if state.phase != UploadPhase.FAILED:
        return state
    return UploadState(token=state.token)


def reset(state: UploadState, token: int) -> UploadState:
    return UploadState(token=token)


class UploadCoordinator:
    """Per-field upload state machine.

    IDLE -> UPLOADING on file selection, then SUCCEEDED with a url or
    FAILED -> IDLE on error. Only the latest upload of a field is tracked.
    """

    def __init__(
        self,
        upload_file: FileUploader,
        notifier: ChangeNotifier,
        diagnostics: Diagnostics | None = None,
        stale_policy: StaleUploadPolicy = StaleUploadPolicy.NOTIFY,
    ):
        self._upload_file = upload_file
        self._notifier = notifier
        self._diagnostics = diagnostics or Diagnostics()
        self.stale_policy = StaleUploadPolicy(stale_policy)
        self._states: dict[int, UploadState] = {}
        self._next_token = 0
        # Recent phases per field, newest last.
        self.history: dict[int, deque[UploadPhase]] = {}

    def state(self, field_id: int) -> UploadState:
        return self._states.get(int(field_id), IDLE)

    def states(self) -> dict[int, UploadState]:
        return dict(self._states)

    def _set(self, field_id: int, state: UploadState) -> None:
        previous = self._states.get(field_id, IDLE)
        self._states[field_id] = state
        if previous.phase != state.phase or previous.token != state.token:
            self.history.setdefault(field_id, deque(maxlen=HISTORY_LIMIT)).append(state.phase)

    async def select_file(self, field_id: int, file: FieldFile) -> UploadState:
        field_id = int(field_id)
        previous = self.state(field_id)
        if previous.uploading:
            logger.info("custom_field_upload_restarted field_id=%s", field_id)
        self._next_token += 1
        token = self._next_token
        self._set(field_id, begin(previous, file, token))

        try:
            result = await maybe_await(self._upload_file(field_id, file))
            url = upload_url_from_result(result)
        except Exception as exc:
            return self._on_failure(field_id, token, exc)
        return self._on_success(field_id, token, url)

    def _is_current(self, field_id: int, token: int) -> bool:
        return self.state(field_id).token == token

    def _on_success(self, field_id: int, token: int, url: str) -> UploadState:
        if not self._is_current(field_id, token):
            self._diagnostics.emit(EVENT_STALE_UPLOAD, field_id=field_id, url=url, policy=self.stale_policy.value)
            if self.stale_policy == StaleUploadPolicy.NOTIFY:
                self._notifier.notify(field_id, url)
            return self.state(field_id)
        self._set(field_id, succeed(self.state(field_id), url, token))
        self._notifier.notify(field_id, url)
        return self.state(field_id)

    def _on_failure(self, field_id: int, token: int, exc: Exception) -> UploadState:
        logger.warning("custom_field_upload_failed field_id=%s error=%s", field_id, exc)
        self._diagnostics.emit(EVENT_UPLOAD_FAILED, field_id=field_id, error=str(exc))
        if not self._is_current(field_id, token):
            return self.state(field_id)
        self._set(field_id, fail(self.state(field_id), token))
        self._set(field_id, settle(self.state(field_id)))
        return self.state(field_id)

    def clear(self, field_id: int) -> UploadState:
        field_id = int(field_id)
        self._next_token += 1
        self._set(field_id, reset(self.state(field_id), self._next_token))
        self._notifier.notify(field_id, "")
        return self.state(field_id)
