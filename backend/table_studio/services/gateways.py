"""Collaborator protocols for schema and record persistence, plus an in-memory gateway."""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any, Protocol

from table_studio.errors import PersistenceError, TableNotFoundError
from table_studio.schemas.schema_diff import SchemaDiff
from table_studio.schemas.table import ColumnDefinition, ForeignKeyDefinition, TableDefinition
from table_studio.services.schema_diff import apply_schema_diff

logger = logging.getLogger(__name__)


class SchemaReader(Protocol):
    """Reads authoritative table schemas."""

    def get_table_schema(self, table_name: str) -> TableDefinition:
        """Return the table's schema or raise ``TableNotFoundError``."""

    def list_tables(self) -> list[str]:
        """Return every table name known to the service."""


class SchemaWriter(Protocol):
    """Applies structural changes computed by the diff engine."""

    def update_table_schema(self, table_name: str, diff: SchemaDiff) -> TableDefinition | None:
        """Apply ``diff``; may return the confirmed schema."""

    def create_table(
        self,
        table_name: str,
        columns: list[ColumnDefinition],
        foreign_keys: list[ForeignKeyDefinition],
    ) -> TableDefinition | None:
        """Create a new table; may return the confirmed schema."""


class RecordGateway(Protocol):
    """Row-level reads and writes."""

    def get_record_by_foreign_key_value(self, table_name: str, column_name: str, value: Any) -> dict[str, Any] | None:
        """Return the single row whose ``column_name`` equals ``value``."""

    def create_record(self, table_name: str, values: dict[str, Any]) -> Any:
        """Insert a row and return its id."""

    def update_record(self, table_name: str, record_id: Any, values: dict[str, Any]) -> None:
        """Update one row by id."""

    def delete_record(self, table_name: str, record_id: Any) -> None:
        """Delete one row by id."""


class InMemorySchemaGateway:
    """Thread-safe in-process implementation of every collaborator protocol."""

    def __init__(
        self,
        tables: list[TableDefinition] | None = None,
        rows: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._tables: dict[str, TableDefinition] = {table.name: table for table in tables or []}
        self._rows: dict[str, list[dict[str, Any]]] = {
            name: copy.deepcopy(table_rows) for name, table_rows in (rows or {}).items()
        }
        self.applied_diffs: list[tuple[str, SchemaDiff]] = []

    def list_tables(self) -> list[str]:
        with self._lock:
            return sorted(self._tables)

    def get_table_schema(self, table_name: str) -> TableDefinition:
        with self._lock:
            table = self._require_table(table_name)
            return table.model_copy(update={"record_count": len(self._rows.get(table_name, []))})

    def update_table_schema(self, table_name: str, diff: SchemaDiff) -> TableDefinition:
        with self._lock:
            table = self._require_table(table_name)
            try:
                updated = apply_schema_diff(table, diff)
            except ValueError as exc:
                raise PersistenceError(f"Schema update rejected for '{table_name}': {exc}") from exc
            self._tables[table_name] = updated
            self._migrate_rows(table_name, diff)
            self.applied_diffs.append((table_name, diff))
            logger.info(
                "in_memory_gateway.schema_updated table=%s operations=%s",
                table_name,
                len(diff.operation_summary()),
            )
            return updated

    def create_table(
        self,
        table_name: str,
        columns: list[ColumnDefinition],
        foreign_keys: list[ForeignKeyDefinition],
    ) -> TableDefinition:
        with self._lock:
            if table_name in self._tables:
                raise PersistenceError(f"Table '{table_name}' already exists.")
            try:
                table = TableDefinition(
                    name=table_name,
                    columns=[column.model_copy(update={"original_name": None}) for column in columns],
                    foreign_keys=foreign_keys,
                )
            except ValueError as exc:
                raise PersistenceError(f"Table '{table_name}' was rejected: {exc}") from exc
            self._tables[table_name] = table
            self._rows[table_name] = []
            logger.info("in_memory_gateway.table_created table=%s columns=%s", table_name, len(columns))
            return table

    def get_record_by_foreign_key_value(self, table_name: str, column_name: str, value: Any) -> dict[str, Any] | None:
        with self._lock:
            self._require_table(table_name)
            for row in self._rows.get(table_name, []):
                candidate = row.get(column_name)
                if candidate == value or (candidate is not None and str(candidate) == str(value)):
                    return copy.deepcopy(row)
            return None

    def create_record(self, table_name: str, values: dict[str, Any]) -> Any:
        with self._lock:
            self._require_table(table_name)
            row = copy.deepcopy(values)
            row.setdefault("id", str(uuid.uuid4()))
            self._rows.setdefault(table_name, []).append(row)
            return row["id"]

    def update_record(self, table_name: str, record_id: Any, values: dict[str, Any]) -> None:
        with self._lock:
            row = self._require_row(table_name, record_id)
            row.update(copy.deepcopy(values))

    def delete_record(self, table_name: str, record_id: Any) -> None:
        with self._lock:
            row = self._require_row(table_name, record_id)
            self._rows[table_name].remove(row)

    def list_records(self, table_name: str) -> list[dict[str, Any]]:
        with self._lock:
            self._require_table(table_name)
            return copy.deepcopy(self._rows.get(table_name, []))

    def _require_table(self, table_name: str) -> TableDefinition:
        table = self._tables.get(table_name)
        if table is None:
            raise TableNotFoundError(f"Table '{table_name}' does not exist.")
        return table

    def _require_row(self, table_name: str, record_id: Any) -> dict[str, Any]:
        self._require_table(table_name)
        for row in self._rows.get(table_name, []):
            if row.get("id") == record_id:
                return row
        raise PersistenceError(f"Record '{record_id}' not found in '{table_name}'.")

    def _migrate_rows(self, table_name: str, diff: SchemaDiff) -> None:
        for row in self._rows.get(table_name, []):
            for name in diff.drop_columns:
                row.pop(name, None)
            renamed = {old: row.pop(old) for old in diff.rename_columns if old in row}
            for old, value in renamed.items():
                row[diff.rename_columns[old]] = value
            for column in diff.add_columns:
                row.setdefault(column.name, column.default_value)
