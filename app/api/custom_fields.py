from __future__ import annotations

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.db.session import get_db
from app.models.custom_field_definition import CustomFieldDefinition
from app.models.custom_field_value import CustomFieldValue
from app.schemas.custom_fields import (
    FieldDefinitionOut,
    FieldUploadResponse,
    FieldValueOut,
    FieldValuesUpsert,
    FieldValuesUpsertResponse,
)
from app.services.custom_fields.engine import DynamicFieldEngine
from app.services.custom_fields.errors import FieldUploadError
from app.services.custom_fields.field_types import FieldType, field_type_or_none
from app.services.custom_fields.notifier import RecordingChangeHandler
from app.services.custom_fields.sources import FieldFile, S3FieldUploader, SqlFieldSource

router = APIRouter()


def _max_file_bytes() -> int:
    return int(settings.MAX_FILE_MB) * 1024 * 1024


def _section_or_400(section: str | None) -> str:
    value = str(section or "").strip()
    if not value:
        raise HTTPException(status_code=400, detail='Parameter "section" is required')
    return value


def _entity_type_or_400(entity_type: str | None) -> str:
    value = str(entity_type or "").strip()
    if not value:
        raise HTTPException(status_code=400, detail='Parameter "entityType" is required')
    return value


def get_field_uploader() -> S3FieldUploader:
    return S3FieldUploader()


@router.get("/custom-fields", response_model=list[FieldDefinitionOut])
def list_custom_fields(
    section: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    query = db.query(CustomFieldDefinition)
    if section is not None:
        query = query.filter(CustomFieldDefinition.section == _section_or_400(section))
    rows = query.order_by(CustomFieldDefinition.display_order.asc(), CustomFieldDefinition.id.asc()).all()
    return [FieldDefinitionOut.model_validate(row) for row in rows]


@router.get("/custom-field-values", response_model=list[FieldValueOut])
def list_custom_field_values(
    entity_type: Optional[str] = Query(default=None, alias="entityType"),
    entity_id: Optional[int] = Query(default=None, alias="entityId"),
    db: Session = Depends(get_db),
):
    if entity_id is None:
        raise HTTPException(status_code=400, detail='Parameter "entityId" is required')
    rows = SqlFieldSource(db).fetch_values(_entity_type_or_400(entity_type), entity_id)
    return [FieldValueOut.model_validate(row) for row in rows]


@router.put("/custom-field-values", response_model=FieldValuesUpsertResponse)
def upsert_custom_field_values(payload: FieldValuesUpsert, db: Session = Depends(get_db)):
    entity_type = _entity_type_or_400(payload.entity_type)
    field_ids = {int(item.field_definition_id) for item in payload.values}
    if not field_ids:
        return FieldValuesUpsertResponse()

    known_ids = {
        int(field_id)
        for (field_id,) in db.query(CustomFieldDefinition.id).filter(CustomFieldDefinition.id.in_(field_ids)).all()
    }
    unknown = sorted(field_ids - known_ids)
    if unknown:
        raise HTTPException(status_code=400, detail="Unknown custom fields: " + ", ".join(str(i) for i in unknown))

    existing = {
        int(row.field_definition_id): row
        for row in db.query(CustomFieldValue)
        .filter(
            CustomFieldValue.entity_type == entity_type,
            CustomFieldValue.entity_id == payload.entity_id,
            CustomFieldValue.field_definition_id.in_(field_ids),
        )
        .all()
    }
    created = 0
    updated = 0
    for item in payload.values:
        field_id = int(item.field_definition_id)
        row = existing.get(field_id)
        if row is None:
            row = CustomFieldValue(
                field_definition_id=field_id,
                entity_type=entity_type,
                entity_id=payload.entity_id,
                value=item.value,
            )
            db.add(row)
            existing[field_id] = row
            created += 1
            continue
        row.value = item.value
        updated += 1
    db.commit()
    return FieldValuesUpsertResponse(created=created, updated=updated)


@router.post("/upload-field-file", response_model=FieldUploadResponse)
def upload_field_file(
    file: UploadFile = File(...),
    field_id: int = Form(..., alias="fieldId"),
    db: Session = Depends(get_db),
    uploader: S3FieldUploader = Depends(get_field_uploader),
):
    definition = db.get(CustomFieldDefinition, field_id)
    if definition is None:
        raise HTTPException(status_code=404, detail="Custom field not found")
    if field_type_or_none(definition.field_type) != FieldType.FILE:
        raise HTTPException(status_code=400, detail="Custom field does not accept files")

    content = file.file.read(_max_file_bytes() + 1)
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(content) > _max_file_bytes():
        raise HTTPException(status_code=400, detail=f"File size limit exceeded ({settings.MAX_FILE_MB} MB)")

    field_file = FieldFile(
        name=str(file.filename or "file.bin"),
        content=content,
        mime_type=str(file.content_type or "application/octet-stream"),
    )
    try:
        result = uploader.upload_file(field_id, field_file)
    except FieldUploadError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return FieldUploadResponse(url=result["url"], key=result["key"])


def _off_loop(read, lock: asyncio.Lock):
    # One request session; reads run in the threadpool one at a time.
    async def call(*args):
        async with lock:
            return await run_in_threadpool(read, *args)

    return call


@router.get("/custom-fields/render")
async def render_custom_fields(
    section: Optional[str] = Query(default=None),
    entity_type: Optional[str] = Query(default=None, alias="entityType"),
    entity_id: Optional[int] = Query(default=None, alias="entityId"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    source = SqlFieldSource(db)
    session_lock = asyncio.Lock()
    handler = RecordingChangeHandler()
    engine = DynamicFieldEngine(
        _section_or_400(section),
        fetch_definitions=_off_loop(source.fetch_definitions, session_lock),
        fetch_values=_off_loop(source.fetch_values, session_lock),
        upload_file=get_field_uploader().upload_file,
        on_field_change=handler,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    await engine.load(handler.values)
    return engine.render(handler.values).as_dict()
