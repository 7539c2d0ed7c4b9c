from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable, Protocol, Union

import httpx
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.custom_field_definition import CustomFieldDefinition
from app.models.custom_field_value import CustomFieldValue
from app.services.custom_fields.errors import FieldSourceError, FieldUploadError
from app.services.s3_storage import S3Storage, build_object_key, get_s3_storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldFile:
    name: str
    content: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size_bytes(self) -> int:
        return len(self.content or b"")


class DefinitionFetcher(Protocol):
    def __call__(self, section: str) -> Union[Iterable[Any], Awaitable[Iterable[Any]]]: ...


class ValueFetcher(Protocol):
    def __call__(self, entity_type: str, entity_id: int) -> Union[Iterable[Any], Awaitable[Iterable[Any]]]: ...


class FileUploader(Protocol):
    def __call__(self, field_id: int, file: FieldFile) -> Union[Any, Awaitable[Any]]: ...


async def maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def upload_url_from_result(result: Any) -> str:
    if isinstance(result, dict):
        url = result.get("url")
    elif isinstance(result, str):
        url = result
    else:
        url = getattr(result, "url", None)
    url = str(url or "").strip()
    if not url:
        raise FieldUploadError("Upload response does not contain a file url")
    return url


class SqlFieldSource:
    def __init__(self, db: Session):
        self.db = db

    def fetch_definitions(self, section: str) -> list[CustomFieldDefinition]:
        return (
            self.db.query(CustomFieldDefinition)
            .filter(CustomFieldDefinition.section == str(section or "").strip())
            .order_by(CustomFieldDefinition.display_order.asc(), CustomFieldDefinition.id.asc())
            .all()
        )

    def fetch_values(self, entity_type: str, entity_id: int) -> list[CustomFieldValue]:
        return (
            self.db.query(CustomFieldValue)
            .filter(
                CustomFieldValue.entity_type == str(entity_type or "").strip(),
                CustomFieldValue.entity_id == int(entity_id),
            )
            .order_by(CustomFieldValue.field_definition_id.asc())
            .all()
        )


class HttpFieldSource:
    """Collaborators backed by the custom-fields HTTP API."""

    def __init__(self, base_url: str | None = None, *, timeout: float | None = None, client: httpx.AsyncClient | None = None):
        self.base_url = str(base_url or settings.CUSTOM_FIELDS_API_URL or "").strip().rstrip("/")
        self.timeout = float(timeout or settings.CUSTOM_FIELDS_HTTP_TIMEOUT_SECONDS)
        self._client = client

    def _new_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._new_client()
        try:
            return await client.request(method, path, **kwargs)
        finally:
            if client is not self._client:
                await client.aclose()

    async def fetch_definitions(self, section: str) -> list[dict[str, Any]]:
        try:
            response = await self._request("GET", "/api/custom-fields", params={"section": section})
        except httpx.HTTPError as exc:
            raise FieldSourceError(f"Custom field definitions request failed: {exc}") from exc
        if response.status_code >= 400:
            raise FieldSourceError(f"Custom field definitions request failed: status={response.status_code}")
        data = response.json() if response.content else []
        if not isinstance(data, list):
            raise FieldSourceError("Custom field definitions response is not a list")
        return data

    async def fetch_values(self, entity_type: str, entity_id: int) -> list[dict[str, Any]]:
        try:
            response = await self._request(
                "GET",
                "/api/custom-field-values",
                params={"entityType": entity_type, "entityId": entity_id},
            )
        except httpx.HTTPError as exc:
            raise FieldSourceError(f"Custom field values request failed: {exc}") from exc
        if response.status_code >= 400:
            raise FieldSourceError(f"Custom field values request failed: status={response.status_code}")
        data = response.json() if response.content else []
        if not isinstance(data, list):
            raise FieldSourceError("Custom field values response is not a list")
        return data

    async def upload_file(self, field_id: int, file: FieldFile) -> dict[str, Any]:
        try:
            response = await self._request(
                "POST",
                "/api/upload-field-file",
                data={"fieldId": str(field_id)},
                files={"file": (file.name, file.content, file.mime_type)},
            )
        except httpx.HTTPError as exc:
            raise FieldUploadError(f"Upload failed: {exc}") from exc
        if response.status_code >= 400:
            raise FieldUploadError(f"Upload failed: status={response.status_code}")
        data = response.json() if response.content else {}
        return {"url": upload_url_from_result(data)}


class S3FieldUploader:
    def __init__(self, storage: S3Storage | None = None, prefix: str | None = None):
        self._storage = storage
        self.prefix = str(prefix or settings.CUSTOM_FIELDS_UPLOAD_PREFIX or "custom-fields").strip("/")

    @property
    def storage(self) -> S3Storage:
        if self._storage is None:
            self._storage = get_s3_storage()
        return self._storage

    def upload_file(self, field_id: int, file: FieldFile) -> dict[str, Any]:
        key = build_object_key(f"{self.prefix}/{int(field_id)}", file.name)
        try:
            self.storage.put_object(key, file.content, file.mime_type)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("custom_field_s3_upload_failed field_id=%s key=%s error=%s", field_id, key, exc)
            raise FieldUploadError(f"Upload failed: {exc}") from exc
        return {"url": self.storage.object_url(key), "key": key}
