"""Foreign key reference resolution and inline preview state."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from time import perf_counter
from typing import Any

from table_studio.errors import InvalidEditError, PersistenceError, TableNotFoundError
from table_studio.schemas.table import ForeignKeyDefinition, TableDefinition
from table_studio.services.cells import GridColumn, build_grid_columns
from table_studio.services.gateways import RecordGateway, SchemaReader
from table_studio.services.values import is_empty_value

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Failed to load record"


class PreviewState(str, Enum):
    CLOSED = "closed"
    NULL = "null"
    LOADING = "loading"
    LOADED = "loaded"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(slots=True)
class ReferencePreview:
    """Snapshot of one reference preview popover."""

    state: PreviewState
    generation: int
    reference_table: str | None = None
    reference_column: str | None = None
    value: Any = None
    record: dict[str, Any] | None = None
    schema: TableDefinition | None = None
    columns: list[GridColumn] = field(default_factory=list)
    message: str | None = None

    def rendered_row(self) -> dict[str, str]:
        if self.record is None:
            return {}
        return {column.key: column.render(self.record.get(column.key)) for column in self.columns}


@dataclass(slots=True)
class ReferenceCandidate:
    """A column that could be chosen as a foreign key target."""

    table: str
    column: str
    type: str
    disabled: bool
    reason: str | None = None


class ForeignKeyResolver:
    """Resolves referenced rows on demand and tracks a single preview.

    Each ``open_preview`` starts a new generation; a ``load`` that finishes
    after the preview was closed or reopened is discarded.
    """

    def __init__(self, records: RecordGateway, schemas: SchemaReader) -> None:
        self._records = records
        self._schemas = schemas
        self._lock = threading.Lock()
        self._generation = 0
        self._preview = ReferencePreview(state=PreviewState.CLOSED, generation=0)

    @property
    def preview(self) -> ReferencePreview:
        with self._lock:
            return replace(self._preview)

    def resolve(self, reference_table: str, reference_column: str, value: Any) -> dict[str, Any] | None:
        """Return the referenced row, or ``None`` for empty values and misses."""

        if is_empty_value(value):
            return None
        return self._records.get_record_by_foreign_key_value(reference_table, reference_column, value)

    def open_preview(self, foreign_key: ForeignKeyDefinition, value: Any) -> ReferencePreview:
        with self._lock:
            self._generation += 1
            state = PreviewState.NULL if is_empty_value(value) else PreviewState.LOADING
            self._preview = ReferencePreview(
                state=state,
                generation=self._generation,
                reference_table=foreign_key.reference_table,
                reference_column=foreign_key.reference_column,
                value=value,
            )
            return replace(self._preview)

    def load(self) -> ReferencePreview:
        """Fetch the row and schema for the open preview."""

        with self._lock:
            pending = replace(self._preview)
        if pending.state != PreviewState.LOADING:
            return pending

        started = perf_counter()
        outcome = replace(pending)
        try:
            record = self.resolve(pending.reference_table, pending.reference_column, pending.value)
            if record is None:
                outcome.state = PreviewState.NOT_FOUND
                outcome.message = NOT_FOUND_MESSAGE
            else:
                schema = self._schemas.get_table_schema(pending.reference_table)
                outcome.state = PreviewState.LOADED
                outcome.record = record
                outcome.schema = schema
                outcome.columns = build_grid_columns(schema, allow_references=False, allow_editing=False)
        except PersistenceError as exc:
            logger.warning(
                "references.preview_failed table=%s column=%s error=%s",
                pending.reference_table,
                pending.reference_column,
                exc,
            )
            outcome.state = PreviewState.ERROR
            outcome.message = str(exc)

        with self._lock:
            if self._generation != pending.generation:
                logger.debug("references.preview_discarded generation=%s", pending.generation)
                return replace(self._preview)
            self._preview = outcome
            logger.info(
                "references.preview_loaded table=%s state=%s duration_ms=%.2f",
                pending.reference_table,
                outcome.state.value,
                (perf_counter() - started) * 1000,
            )
            return replace(outcome)

    def show(self, foreign_key: ForeignKeyDefinition, value: Any) -> ReferencePreview:
        self.open_preview(foreign_key, value)
        return self.load()

    def close(self) -> None:
        with self._lock:
            self._generation += 1
            self._preview = ReferencePreview(state=PreviewState.CLOSED, generation=self._generation)


def list_reference_candidates(schemas: SchemaReader, *, exclude_table: str | None = None) -> list[ReferenceCandidate]:
    """List every column of every table; non-unique columns are disabled."""

    candidates: list[ReferenceCandidate] = []
    for table_name in schemas.list_tables():
        if table_name == exclude_table:
            continue
        table = schemas.get_table_schema(table_name)
        for column in table.columns:
            eligible = column.is_unique or column.is_primary_key
            candidates.append(
                ReferenceCandidate(
                    table=table.name,
                    column=column.name,
                    type=column.type.value if hasattr(column.type, "value") else str(column.type),
                    disabled=not eligible,
                    reason=None if eligible else "Referenced column must be unique",
                )
            )
    return candidates


def validate_reference_target(schemas: SchemaReader, foreign_key: ForeignKeyDefinition) -> None:
    """Raise ``InvalidEditError`` unless the referenced column exists and is unique."""

    try:
        table = schemas.get_table_schema(foreign_key.reference_table)
    except TableNotFoundError as exc:
        raise InvalidEditError(f"Referenced table '{foreign_key.reference_table}' does not exist.") from exc
    target = table.get_column(foreign_key.reference_column)
    if target is None:
        raise InvalidEditError(
            f"Referenced column '{foreign_key.reference_table}.{foreign_key.reference_column}' does not exist."
        )
    if not (target.is_unique or target.is_primary_key):
        raise InvalidEditError(
            f"Referenced column '{foreign_key.reference_table}.{foreign_key.reference_column}' must be unique."
        )
