"""Schema diff and edit session routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path

from table_studio.config import Settings, get_settings
from table_studio.db.dependencies import get_edit_sessions
from table_studio.errors import PersistenceError, TableStudioError
from table_studio.routers.common import to_http_exception
from table_studio.schemas.common import ApiResponse, DiscardResult
from table_studio.schemas.edit_sessions import (
    AddColumnOperation,
    AddForeignKeyOperation,
    EditOperation,
    EditSessionCreateRequest,
    EditSessionPatchRequest,
    EditSessionRead,
    RemoveColumnOperation,
    RemoveForeignKeyOperation,
    RenameColumnOperation,
    SchemaDiffRead,
    SchemaDiffRequest,
    UpdateColumnOperation,
    UpdateForeignKeyOperation,
)
from table_studio.services.edit_sessions import EditSessionRegistry
from table_studio.services.schema_diff import compute_schema_diff, find_diff_conflicts
from table_studio.services.table_editor import TableEditOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_read(session_id: str, orchestrator: TableEditOrchestrator) -> EditSessionRead:
    session = orchestrator.session
    pending = None
    if session.current is not None:
        pending = SchemaDiffRead.from_diff(orchestrator.preview_diff(), orchestrator.conflicts())
    return EditSessionRead(
        session_id=session_id,
        table=session.table_name,
        state=session.state.value,
        creating=session.creating,
        base_is_stale=session.base_is_stale,
        is_dirty=session.is_dirty,
        last_error=session.last_error,
        current=session.current,
        pending=pending,
    )


def _require_session(registry: EditSessionRegistry, session_id: str) -> TableEditOrchestrator:
    orchestrator = registry.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail="Edit session not found")
    return orchestrator


def _apply_operation(orchestrator: TableEditOrchestrator, operation: EditOperation) -> None:
    if isinstance(operation, AddColumnOperation):
        orchestrator.add_column(operation.column)
    elif isinstance(operation, RemoveColumnOperation):
        orchestrator.remove_column(operation.name)
    elif isinstance(operation, RenameColumnOperation):
        orchestrator.rename_column(operation.name, operation.new_name)
    elif isinstance(operation, UpdateColumnOperation):
        orchestrator.update_column(operation.name, **operation.changes())
    elif isinstance(operation, AddForeignKeyOperation):
        orchestrator.add_foreign_key(operation.foreign_key)
    elif isinstance(operation, UpdateForeignKeyOperation):
        orchestrator.update_foreign_key(operation.foreign_key)
    elif isinstance(operation, RemoveForeignKeyOperation):
        orchestrator.remove_foreign_key(operation.column_name)


@router.post("/schema-diff", response_model=ApiResponse[SchemaDiffRead])
def post_schema_diff(
    payload: SchemaDiffRequest,
    settings: Settings = Depends(get_settings),
) -> ApiResponse[SchemaDiffRead]:
    """Compute the operation list between two table snapshots."""

    system_columns = tuple(settings.system_columns)
    diff = compute_schema_diff(payload.original, payload.edited, system_columns=system_columns)
    conflicts = find_diff_conflicts(payload.original, payload.edited, system_columns=system_columns)
    return ApiResponse(data=SchemaDiffRead.from_diff(diff, conflicts))


@router.post("/tables/{table_name}/edit-sessions", response_model=ApiResponse[EditSessionRead], status_code=201)
def open_edit_session(
    payload: EditSessionCreateRequest,
    table_name: str = Path(..., min_length=1),
    registry: EditSessionRegistry = Depends(get_edit_sessions),
) -> ApiResponse[EditSessionRead]:
    """Load a table (or start a new one) into a server-side edit session."""

    try:
        session_id, orchestrator = registry.open(table_name, create=payload.create)
    except TableStudioError as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(data=_session_read(session_id, orchestrator))


@router.get("/edit-sessions/{session_id}", response_model=ApiResponse[EditSessionRead])
def get_edit_session(
    session_id: str = Path(..., min_length=1),
    registry: EditSessionRegistry = Depends(get_edit_sessions),
) -> ApiResponse[EditSessionRead]:
    """Return the edited snapshot and pending operations."""

    return ApiResponse(data=_session_read(session_id, _require_session(registry, session_id)))


@router.patch("/edit-sessions/{session_id}", response_model=ApiResponse[EditSessionRead])
def patch_edit_session(
    payload: EditSessionPatchRequest,
    session_id: str = Path(..., min_length=1),
    registry: EditSessionRegistry = Depends(get_edit_sessions),
) -> ApiResponse[EditSessionRead]:
    """Apply a batch of schema edits to the session; the batch applies fully or not at all."""

    orchestrator = _require_session(registry, session_id)
    try:
        with orchestrator.batch():
            for operation in payload.operations:
                _apply_operation(orchestrator, operation)
    except TableStudioError as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(data=_session_read(session_id, orchestrator))


@router.post("/edit-sessions/{session_id}/submit", response_model=ApiResponse[EditSessionRead])
def submit_edit_session(
    session_id: str = Path(..., min_length=1),
    registry: EditSessionRegistry = Depends(get_edit_sessions),
) -> ApiResponse[EditSessionRead]:
    """Dispatch pending edits to the schema service."""

    orchestrator = _require_session(registry, session_id)
    try:
        orchestrator.submit()
    except TableStudioError as exc:
        if isinstance(exc, PersistenceError):
            logger.warning("edit_sessions.submit_failed session=%s error=%s", session_id, exc)
        raise to_http_exception(exc) from exc
    return ApiResponse(data=_session_read(session_id, orchestrator))


@router.post("/edit-sessions/{session_id}/refresh", response_model=ApiResponse[EditSessionRead])
def refresh_edit_session(
    session_id: str = Path(..., min_length=1),
    registry: EditSessionRegistry = Depends(get_edit_sessions),
) -> ApiResponse[EditSessionRead]:
    """Re-fetch the authoritative schema, keeping in-progress edits."""

    orchestrator = _require_session(registry, session_id)
    try:
        orchestrator.refresh_base()
    except TableStudioError as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(data=_session_read(session_id, orchestrator))


@router.delete("/edit-sessions/{session_id}", response_model=ApiResponse[DiscardResult])
def discard_edit_session(
    session_id: str = Path(..., min_length=1),
    registry: EditSessionRegistry = Depends(get_edit_sessions),
) -> ApiResponse[DiscardResult]:
    """Cancel and forget an edit session."""

    if not registry.discard(session_id):
        raise HTTPException(status_code=404, detail="Edit session not found")
    return ApiResponse(data=DiscardResult(id=session_id, discarded=True))
