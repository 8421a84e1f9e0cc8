"""Edit-session orchestration: in-memory schema edits, diffing and submission."""

from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import Any

from pydantic import ValidationError

from table_studio.errors import (
    DiffConflictError,
    InvalidEditError,
    StaleSchemaError,
    SubmitInProgressError,
)
from table_studio.schema.column_types import ColumnType, get_type_info
from table_studio.schemas.schema_diff import SchemaDiff
from table_studio.schemas.table import (
    SYSTEM_COLUMNS,
    ColumnDefinition,
    ForeignKeyDefinition,
    TableDefinition,
)
from table_studio.services.gateways import SchemaReader, SchemaWriter
from table_studio.services.references import validate_reference_target
from table_studio.services.schema_diff import compute_schema_diff, find_diff_conflicts

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _holding_state_lock(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._state_lock:
            return method(self, *args, **kwargs)

    return wrapper


SYSTEM_COLUMN_SEEDS: dict[str, dict[str, Any]] = {
    "id": {
        "type": ColumnType.UUID,
        "is_nullable": False,
        "is_unique": True,
        "is_primary_key": True,
        "default_value": "gen_random_uuid()",
    },
    "created_at": {"type": ColumnType.DATETIME, "is_nullable": False, "default_value": "now()"},
    "updated_at": {"type": ColumnType.DATETIME, "is_nullable": False, "default_value": "now()"},
}


class EditState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    EDITING = "editing"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True)
class EditSession:
    """Original snapshot, edited snapshot and bookkeeping for one table."""

    table_name: str
    state: EditState = EditState.IDLE
    original: TableDefinition | None = None
    current: TableDefinition | None = None
    creating: bool = False
    base_is_stale: bool = False
    dirty_columns: set[str] = field(default_factory=set)
    dirty_foreign_keys: set[str] = field(default_factory=set)
    last_error: str | None = None
    last_diff: SchemaDiff | None = None

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_columns or self.dirty_foreign_keys)


class TableEditOrchestrator:
    """Holds one edit session and drives it from load to submit.

    Edits never touch ``original``; each produces a new ``current`` snapshot.
    A failed submit keeps the edits but marks the base stale, so the
    authoritative schema is re-fetched before anything else is attempted.
    """

    def __init__(
        self,
        reader: SchemaReader,
        writer: SchemaWriter,
        *,
        reference_reader: SchemaReader | None = None,
        system_columns: tuple[str, ...] = SYSTEM_COLUMNS,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._reference_reader = reference_reader
        self._system_columns = system_columns
        self._submit_lock = threading.Lock()
        self._state_lock = threading.RLock()
        self.session = EditSession(table_name="")

    @property
    def state(self) -> EditState:
        return self.session.state

    @property
    def current(self) -> TableDefinition | None:
        return self.session.current

    @property
    def original(self) -> TableDefinition | None:
        return self.session.original

    @_holding_state_lock
    def load(self, table_name: str) -> TableDefinition:
        started = perf_counter()
        table = self._reader.get_table_schema(table_name)
        self.session = EditSession(
            table_name=table.name,
            state=EditState.LOADED,
            original=table.model_copy(deep=True),
            current=self._tag_columns(table),
        )
        logger.info(
            "table_edit.loaded table=%s columns=%s duration_ms=%.2f",
            table.name,
            len(table.columns),
            (perf_counter() - started) * 1000,
        )
        return self.session.current

    @_holding_state_lock
    def start_new_table(self, table_name: str) -> TableDefinition:
        """Begin create-table mode with the platform columns pre-seeded."""

        columns = [
            ColumnDefinition(name=name, is_system_column=True, **SYSTEM_COLUMN_SEEDS.get(name, {}))
            for name in self._system_columns
        ]
        try:
            table = TableDefinition(name=table_name, columns=columns)
        except ValidationError as exc:
            raise InvalidEditError(_validation_message(exc)) from exc
        self.session = EditSession(
            table_name=table_name,
            state=EditState.LOADED,
            current=table,
            creating=True,
        )
        logger.info("table_edit.create_started table=%s", table_name)
        return table

    @_holding_state_lock
    def add_column(self, column: ColumnDefinition) -> TableDefinition:
        current = self._require_editable()
        if column.name in self._system_columns or column.is_system_column:
            raise InvalidEditError(f"'{column.name}' is reserved for a system column.")
        if current.get_column(column.name) is not None:
            raise InvalidEditError(f"Column '{column.name}' already exists.")
        info = get_type_info(column.type)
        new_column = column.model_copy(update={"original_name": None})
        if info is not None and "is_nullable" not in column.model_fields_set:
            new_column = new_column.model_copy(
                update={"is_nullable": info.default_nullable, "is_unique": column.is_unique or info.default_unique}
            )
        self._replace(current, columns=[*current.columns, new_column])
        self.session.dirty_columns.add(column.name)
        return self.session.current

    @_holding_state_lock
    def remove_column(self, name: str) -> TableDefinition:
        current = self._require_editable()
        column = self._require_user_column(current, name)
        self._replace(
            current,
            columns=[existing for existing in current.columns if existing.name != name],
            foreign_keys=[fk for fk in current.foreign_keys if fk.column_name != name],
        )
        self.session.dirty_columns.add(column.original_name or name)
        return self.session.current

    @_holding_state_lock
    def rename_column(self, name: str, new_name: str) -> TableDefinition:
        current = self._require_editable()
        column = self._require_user_column(current, name)
        if new_name == name:
            return current
        if new_name in self._system_columns:
            raise InvalidEditError(f"'{new_name}' is reserved for a system column.")
        if current.get_column(new_name) is not None:
            raise InvalidEditError(f"Column '{new_name}' already exists.")
        renamed = _revalidate(column, name=new_name)
        self._replace(
            current,
            columns=[renamed if existing.name == name else existing for existing in current.columns],
            foreign_keys=[
                fk.model_copy(update={"column_name": new_name}) if fk.column_name == name else fk
                for fk in current.foreign_keys
            ],
        )
        self.session.dirty_columns.add(column.original_name or new_name)
        return self.session.current

    def retype_column(self, name: str, column_type: ColumnType | str) -> TableDefinition:
        return self.update_column(name, type=column_type)

    @_holding_state_lock
    def update_column(
        self,
        name: str,
        *,
        type: ColumnType | str = _UNSET,
        is_nullable: bool = _UNSET,
        is_unique: bool = _UNSET,
        default_value: str | None = _UNSET,
    ) -> TableDefinition:
        """Change type, nullability, uniqueness or default of a newly added column."""

        current = self._require_editable()
        column = self._require_user_column(current, name)
        changes = {
            key: value
            for key, value in {
                "type": type,
                "is_nullable": is_nullable,
                "is_unique": is_unique,
                "default_value": default_value,
            }.items()
            if value is not _UNSET
        }
        if not changes:
            return current
        if not column.is_new and not self.session.creating:
            raise InvalidEditError(
                f"Only the name of existing column '{name}' can be changed; "
                "drop it and add a new column to change its definition."
            )
        updated = _revalidate(column, **changes)
        self._replace(current, columns=[updated if existing.name == name else existing for existing in current.columns])
        self.session.dirty_columns.add(name)
        return self.session.current

    @_holding_state_lock
    def add_foreign_key(self, foreign_key: ForeignKeyDefinition) -> TableDefinition:
        current = self._require_editable()
        if current.get_column(foreign_key.column_name) is None:
            raise InvalidEditError(f"Column '{foreign_key.column_name}' does not exist.")
        if current.foreign_key_for(foreign_key.column_name) is not None:
            raise InvalidEditError(f"Column '{foreign_key.column_name}' already has a foreign key.")
        self._check_reference_target(foreign_key)
        self._replace(current, foreign_keys=[*current.foreign_keys, foreign_key])
        self.session.dirty_foreign_keys.add(foreign_key.column_name)
        return self.session.current

    @_holding_state_lock
    def update_foreign_key(self, foreign_key: ForeignKeyDefinition) -> TableDefinition:
        current = self._require_editable()
        if current.foreign_key_for(foreign_key.column_name) is None:
            raise InvalidEditError(f"Column '{foreign_key.column_name}' has no foreign key to update.")
        self._check_reference_target(foreign_key)
        self._replace(
            current,
            foreign_keys=[
                foreign_key if existing.column_name == foreign_key.column_name else existing
                for existing in current.foreign_keys
            ],
        )
        self.session.dirty_foreign_keys.add(foreign_key.column_name)
        return self.session.current

    @_holding_state_lock
    def remove_foreign_key(self, column_name: str) -> TableDefinition:
        current = self._require_editable()
        if current.foreign_key_for(column_name) is None:
            raise InvalidEditError(f"Column '{column_name}' has no foreign key.")
        self._replace(current, foreign_keys=[fk for fk in current.foreign_keys if fk.column_name != column_name])
        self.session.dirty_foreign_keys.add(column_name)
        return self.session.current

    @contextmanager
    def batch(self) -> Iterator[TableEditOrchestrator]:
        """Apply several edits as one; a failing edit restores the pre-batch snapshot."""

        with self._state_lock:
            session = self.session
            current, state = session.current, session.state
            dirty_columns, dirty_foreign_keys = set(session.dirty_columns), set(session.dirty_foreign_keys)
            try:
                yield self
            except Exception:
                session.current, session.state = current, state
                session.dirty_columns, session.dirty_foreign_keys = dirty_columns, dirty_foreign_keys
                logger.info("table_edit.batch_rolled_back table=%s", session.table_name)
                raise

    @_holding_state_lock
    def preview_diff(self) -> SchemaDiff:
        current = self._require_current()
        return compute_schema_diff(self._base(), current, system_columns=self._system_columns)

    @_holding_state_lock
    def conflicts(self) -> list[str]:
        current = self._require_current()
        return find_diff_conflicts(self._base(), current, system_columns=self._system_columns)

    def submit(self) -> TableDefinition:
        """Dispatch the pending edits and adopt the confirmed schema.

        Diffing and the move to ``submitting`` happen under the state lock;
        edits arriving after that are rejected until the submit settles.
        """

        if not self._submit_lock.acquire(blocking=False):
            raise SubmitInProgressError(f"A submit for '{self.session.table_name}' is already in flight.")
        try:
            with self._state_lock:
                if self.session.base_is_stale:
                    self.refresh_base()
                current = self._require_current()
                conflicts = self.conflicts()
                if conflicts:
                    self.session.last_error = "; ".join(conflicts)
                    raise DiffConflictError(conflicts)
                if self.session.creating:
                    if not current.user_columns(self._system_columns):
                        raise InvalidEditError("Add at least one column before creating the table.")
                    diff = None
                else:
                    original = self._base()
                    diff = compute_schema_diff(original, current, system_columns=self._system_columns)
                    self.session.last_diff = diff
                    if diff.is_empty:
                        logger.info("table_edit.submit_skipped table=%s reason=empty_diff", original.name)
                        return original
                self.session.state = EditState.SUBMITTING
                session = self.session
            if diff is None:
                return self._submit_create(session, current)
            return self._submit_update(session, original, diff)
        finally:
            self._submit_lock.release()

    @_holding_state_lock
    def refresh_base(self) -> TableDefinition | None:
        """Re-fetch the authoritative schema while keeping in-progress edits."""

        if self.session.state == EditState.IDLE:
            raise InvalidEditError("No table is loaded.")
        if self.session.creating:
            self.session.base_is_stale = False
            return None
        table = self._reader.get_table_schema(self.session.table_name)
        self.session.original = table.model_copy(deep=True)
        self.session.base_is_stale = False
        self.session.state = EditState.EDITING if self.session.is_dirty else EditState.LOADED
        logger.info("table_edit.base_refreshed table=%s", table.name)
        return self.session.original

    @_holding_state_lock
    def cancel(self) -> None:
        logger.info("table_edit.cancelled table=%s dirty=%s", self.session.table_name, self.session.is_dirty)
        self.session = EditSession(table_name="")

    def _submit_update(self, session: EditSession, original: TableDefinition, diff: SchemaDiff) -> TableDefinition:
        started = perf_counter()
        try:
            confirmed = self._writer.update_table_schema(original.name, diff)
            if confirmed is None:
                confirmed = self._reader.get_table_schema(original.name)
        except Exception as exc:
            self._mark_failed(session, exc)
            logger.exception("table_edit.submit_failed table=%s", original.name)
            raise
        self._adopt(session, confirmed)
        logger.info(
            "table_edit.submit_succeeded table=%s operations=%s duration_ms=%.2f",
            confirmed.name,
            len(diff.operation_summary()),
            (perf_counter() - started) * 1000,
        )
        return confirmed

    def _submit_create(self, session: EditSession, current: TableDefinition) -> TableDefinition:
        started = perf_counter()
        try:
            confirmed = self._writer.create_table(current.name, list(current.columns), list(current.foreign_keys))
            if confirmed is None:
                confirmed = self._reader.get_table_schema(current.name)
        except Exception as exc:
            self._mark_failed(session, exc)
            logger.exception("table_edit.create_failed table=%s", current.name)
            raise
        session.creating = False
        self._adopt(session, confirmed)
        logger.info(
            "table_edit.create_succeeded table=%s columns=%s duration_ms=%.2f",
            confirmed.name,
            len(confirmed.columns),
            (perf_counter() - started) * 1000,
        )
        return confirmed

    def _adopt(self, session: EditSession, confirmed: TableDefinition) -> None:
        with self._state_lock:
            session.table_name = confirmed.name
            session.original = confirmed.model_copy(deep=True)
            session.current = self._tag_columns(confirmed)
            session.dirty_columns.clear()
            session.dirty_foreign_keys.clear()
            session.last_error = None
            session.base_is_stale = False
            session.state = EditState.SUCCESS

    def _mark_failed(self, session: EditSession, exc: Exception) -> None:
        # Any writer failure leaves the edits intact; the base is re-fetched before the next attempt.
        with self._state_lock:
            session.state = EditState.FAILED
            session.last_error = str(exc) or type(exc).__name__
            session.base_is_stale = True

    def _base(self) -> TableDefinition:
        if self.session.original is not None:
            return self.session.original
        current = self._require_current()
        # Seeded platform columns are provisioned by the service, not added by the user.
        return TableDefinition(
            name=current.name,
            columns=[column for column in current.columns if column.is_system_column],
        )

    def _require_current(self) -> TableDefinition:
        if self.session.current is None:
            raise InvalidEditError("No table is loaded.")
        return self.session.current

    def _require_editable(self) -> TableDefinition:
        current = self._require_current()
        if self.session.state == EditState.SUBMITTING:
            raise InvalidEditError("Edits are not allowed while a submit is in flight.")
        if self.session.base_is_stale:
            raise StaleSchemaError("The last submit failed; refresh the table schema before editing.")
        return current

    def _require_user_column(self, table: TableDefinition, name: str) -> ColumnDefinition:
        column = table.get_column(name)
        if column is None:
            raise InvalidEditError(f"Column '{name}' does not exist.")
        if column.is_system_column or name in self._system_columns:
            raise InvalidEditError(f"System column '{name}' cannot be modified.")
        return column

    def _check_reference_target(self, foreign_key: ForeignKeyDefinition) -> None:
        if self._reference_reader is not None:
            validate_reference_target(self._reference_reader, foreign_key)

    def _replace(self, current: TableDefinition, **changes: Any) -> None:
        try:
            updated = TableDefinition(
                name=current.name,
                columns=changes.get("columns", current.columns),
                foreign_keys=changes.get("foreign_keys", current.foreign_keys),
                record_count=current.record_count,
            )
        except ValidationError as exc:
            raise InvalidEditError(_validation_message(exc)) from exc
        self.session.current = updated
        self.session.state = EditState.EDITING

    @staticmethod
    def _tag_columns(table: TableDefinition) -> TableDefinition:
        return table.model_copy(
            update={"columns": tuple(column.model_copy(update={"original_name": column.name}) for column in table.columns)},
            deep=True,
        )


def _revalidate(column: ColumnDefinition, **changes: Any) -> ColumnDefinition:
    try:
        return ColumnDefinition.model_validate({**column.model_dump(), **changes})
    except ValidationError as exc:
        raise InvalidEditError(_validation_message(exc)) from exc


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(str(error.get("msg", "Invalid value")).removeprefix("Value error, ") for error in exc.errors())
