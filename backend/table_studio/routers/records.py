"""Record form, record write, grid column and reference preview routes."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from table_studio.config import Settings, get_settings
from table_studio.db.dependencies import get_record_gateway, get_reference_resolver, get_schema_service
from table_studio.errors import (
    InvalidEditError,
    PersistenceError,
    RecordNotFoundError,
    RecordValidationError,
    TableStudioError,
)
from table_studio.routers.common import to_http_exception
from table_studio.schemas.common import ApiResponse
from table_studio.schemas.records import (
    CellEditRead,
    CellEditRequest,
    GridColumnRead,
    RecordCreatedRead,
    RecordDeletedRead,
    RecordFormRead,
    RecordValidationRead,
    RecordValuesRequest,
    ReferenceCandidateRead,
    ReferencePreviewRead,
)
from table_studio.schemas.table import TableDefinition
from table_studio.services.cell_editors import EditorResult, EditorStatus
from table_studio.services.cells import build_grid_column, build_grid_columns, commit_cell_edit
from table_studio.services.gateways import RecordGateway, SchemaReader
from table_studio.services.record_form import build_record_form
from table_studio.services.references import ForeignKeyResolver, list_reference_candidates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tables/{table_name}")


def _load_table(schemas: SchemaReader, table_name: str) -> TableDefinition:
    try:
        return schemas.get_table_schema(table_name)
    except TableStudioError as exc:
        raise to_http_exception(exc) from exc


def _primary_key_name(table: TableDefinition) -> str:
    for column in table.columns:
        if column.is_primary_key:
            return column.name
    return "id"


def _load_record(records: RecordGateway, table_name: str, key_name: str, record_id: str) -> dict[str, Any]:
    row = records.get_record_by_foreign_key_value(table_name, key_name, record_id)
    if row is None:
        raise RecordNotFoundError(f"Record '{record_id}' not found in '{table_name}'.")
    return row


@router.get("/record-form", response_model=ApiResponse[RecordFormRead])
def get_record_form(
    table_name: str = Path(..., min_length=1),
    schemas: SchemaReader = Depends(get_schema_service),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[RecordFormRead]:
    """Describe the record-creation form for a table."""

    table = _load_table(schemas, table_name)
    form = build_record_form(table.columns, table_name=table.name, system_columns=tuple(settings.system_columns))
    return ApiResponse(data=RecordFormRead.from_form(table.name, form))


@router.post("/records/validate", response_model=ApiResponse[RecordValidationRead])
def validate_record(
    payload: RecordValuesRequest,
    table_name: str = Path(..., min_length=1),
    schemas: SchemaReader = Depends(get_schema_service),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[RecordValidationRead]:
    """Validate form values without persisting them."""

    table = _load_table(schemas, table_name)
    form = build_record_form(table.columns, table_name=table.name, system_columns=tuple(settings.system_columns))
    try:
        cleaned = form.validate(payload.values)
    except RecordValidationError as exc:
        return ApiResponse(data=RecordValidationRead(valid=False, field_errors=exc.field_errors))
    return ApiResponse(data=RecordValidationRead(valid=True, values=cleaned))


@router.post("/records", response_model=ApiResponse[RecordCreatedRead], status_code=201)
def create_record(
    payload: RecordValuesRequest,
    table_name: str = Path(..., min_length=1),
    schemas: SchemaReader = Depends(get_schema_service),
    records: RecordGateway = Depends(get_record_gateway),
    settings: Settings = Depends(get_settings),
) -> ApiResponse[RecordCreatedRead]:
    """Validate and insert one record."""

    table = _load_table(schemas, table_name)
    form = build_record_form(table.columns, table_name=table.name, system_columns=tuple(settings.system_columns))
    try:
        cleaned = form.validate(payload.values)
        record_id = records.create_record(table.name, cleaned)
    except TableStudioError as exc:
        if isinstance(exc, PersistenceError):
            logger.exception("records.create_failed table=%s", table.name)
        raise to_http_exception(exc) from exc
    logger.info("records.created table=%s", table.name)
    return ApiResponse(data=RecordCreatedRead(id=record_id, values=cleaned))


@router.patch("/records/{record_id}", response_model=ApiResponse[CellEditRead])
def update_record_cell(
    payload: CellEditRequest,
    table_name: str = Path(..., min_length=1),
    record_id: str = Path(..., min_length=1),
    schemas: SchemaReader = Depends(get_schema_service),
    records: RecordGateway = Depends(get_record_gateway),
) -> ApiResponse[CellEditRead]:
    """Commit one grid cell edit and persist it when the value changed."""

    table = _load_table(schemas, table_name)
    column = table.get_column(payload.column)
    if column is None:
        raise HTTPException(status_code=404, detail="Column not found")
    key_name = _primary_key_name(table)
    changes: list[Any] = []

    def persist(row: dict[str, Any], column_name: str, value: Any) -> None:
        records.update_record(table.name, row[key_name], {column_name: value})
        changes.append(value)

    try:
        grid_column = build_grid_column(column, table.foreign_key_for(column.name))
        if not grid_column.editable:
            raise InvalidEditError(f"Column '{column.name}' is not editable.")
        row = _load_record(records, table.name, key_name, record_id)
        updated = commit_cell_edit(row, column, EditorResult(EditorStatus.COMMITTED, payload.value), persist)
    except TableStudioError as exc:
        if isinstance(exc, PersistenceError):
            logger.exception("records.cell_update_failed table=%s column=%s", table.name, column.name)
        raise to_http_exception(exc) from exc
    logger.info("records.cell_updated table=%s column=%s changed=%s", table.name, column.name, bool(changes))
    return ApiResponse(
        data=CellEditRead(
            id=updated.get(key_name),
            column=column.name,
            value=updated.get(column.name),
            changed=bool(changes),
            record=updated,
        )
    )


@router.delete("/records/{record_id}", response_model=ApiResponse[RecordDeletedRead])
def delete_record(
    table_name: str = Path(..., min_length=1),
    record_id: str = Path(..., min_length=1),
    schemas: SchemaReader = Depends(get_schema_service),
    records: RecordGateway = Depends(get_record_gateway),
) -> ApiResponse[RecordDeletedRead]:
    """Delete one record by primary key."""

    table = _load_table(schemas, table_name)
    key_name = _primary_key_name(table)
    try:
        row = _load_record(records, table.name, key_name, record_id)
        records.delete_record(table.name, row[key_name])
    except TableStudioError as exc:
        if isinstance(exc, PersistenceError):
            logger.exception("records.delete_failed table=%s", table.name)
        raise to_http_exception(exc) from exc
    logger.info("records.deleted table=%s", table.name)
    return ApiResponse(data=RecordDeletedRead(id=row[key_name], deleted=True))


@router.get("/grid-columns", response_model=ApiResponse[list[GridColumnRead]])
def get_grid_columns(
    table_name: str = Path(..., min_length=1),
    editable: bool = Query(default=True),
    schemas: SchemaReader = Depends(get_schema_service),
) -> ApiResponse[list[GridColumnRead]]:
    """Resolve the cell variant of every column."""

    table = _load_table(schemas, table_name)
    return ApiResponse(
        data=[GridColumnRead.from_column(column) for column in build_grid_columns(table, allow_editing=editable)]
    )


@router.get("/references/{column_name}", response_model=ApiResponse[ReferencePreviewRead])
def get_reference_preview(
    table_name: str = Path(..., min_length=1),
    column_name: str = Path(..., min_length=1),
    value: str | None = Query(default=None),
    schemas: SchemaReader = Depends(get_schema_service),
    resolver: ForeignKeyResolver = Depends(get_reference_resolver),
) -> ApiResponse[ReferencePreviewRead]:
    """Preview the referenced row behind a foreign key cell."""

    table = _load_table(schemas, table_name)
    foreign_key = table.foreign_key_for(column_name)
    if foreign_key is None:
        raise HTTPException(status_code=404, detail="Column has no foreign key")
    preview = resolver.show(foreign_key, value)
    return ApiResponse(data=ReferencePreviewRead.from_preview(preview))


@router.get("/reference-candidates", response_model=ApiResponse[list[ReferenceCandidateRead]])
def get_reference_candidates(
    table_name: str = Path(..., min_length=1),
    schemas: SchemaReader = Depends(get_schema_service),
) -> ApiResponse[list[ReferenceCandidateRead]]:
    """List columns a foreign key on this table could point at."""

    try:
        candidates = list_reference_candidates(schemas)
    except TableStudioError as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(data=[ReferenceCandidateRead.from_candidate(candidate) for candidate in candidates])
