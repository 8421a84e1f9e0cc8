"""SQLAlchemy-backed schema reader and record gateway for directly reachable databases."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, MetaData, Table, delete, func, insert, inspect, select, update
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from table_studio.errors import PersistenceError, TableNotFoundError
from table_studio.schemas.schema_diff import SchemaDiff
from table_studio.schemas.table import (
    ON_UPDATE_ACTIONS,
    SYSTEM_COLUMNS,
    ColumnDefinition,
    ForeignKeyDefinition,
    ReferentialAction,
    TableDefinition,
)

logger = logging.getLogger(__name__)

_KNOWN_ACTIONS = {action.value for action in ReferentialAction}


class SqlAlchemyRecordGateway:
    """Reflects table schemas and performs row CRUD through SQLAlchemy Core.

    Structural changes are owned by the schema service; schema writes through
    this gateway are refused.
    """

    def __init__(self, engine: Engine, *, system_columns: tuple[str, ...] = SYSTEM_COLUMNS) -> None:
        self._engine = engine
        self._system_columns = system_columns

    def list_tables(self) -> list[str]:
        try:
            return sorted(inspect(self._engine).get_table_names())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list tables: {exc}") from exc

    def get_table_schema(self, table_name: str) -> TableDefinition:
        try:
            inspector = inspect(self._engine)
            if not inspector.has_table(table_name):
                raise TableNotFoundError(f"Table '{table_name}' does not exist.")
            raw_columns = inspector.get_columns(table_name)
            primary_keys = set(inspector.get_pk_constraint(table_name).get("constrained_columns") or [])
            unique_columns = self._single_column_unique(inspector, table_name)
            raw_foreign_keys = inspector.get_foreign_keys(table_name)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to reflect table '{table_name}': {exc}") from exc

        columns = [
            ColumnDefinition(
                name=raw["name"],
                type=str(raw["type"]),
                is_nullable=bool(raw.get("nullable", True)) and raw["name"] not in primary_keys,
                is_unique=raw["name"] in unique_columns or raw["name"] in primary_keys,
                default_value=_clean_server_default(raw.get("default")),
                is_primary_key=raw["name"] in primary_keys,
                is_system_column=raw["name"] in self._system_columns,
            )
            for raw in raw_columns
        ]
        foreign_keys = []
        for raw in raw_foreign_keys:
            constrained = raw.get("constrained_columns") or []
            referred = raw.get("referred_columns") or []
            if len(constrained) != 1 or len(referred) != 1:
                # Composite keys cannot be expressed as single-column references.
                continue
            options = raw.get("options") or {}
            foreign_keys.append(
                ForeignKeyDefinition(
                    column_name=constrained[0],
                    reference_table=raw["referred_table"],
                    reference_column=referred[0],
                    on_delete=_action(options.get("ondelete")),
                    on_update=_action(options.get("onupdate"), allowed=ON_UPDATE_ACTIONS),
                )
            )
        return TableDefinition(
            name=table_name,
            columns=columns,
            foreign_keys=foreign_keys,
            record_count=self._count_rows(table_name),
        )

    def update_table_schema(self, table_name: str, diff: SchemaDiff) -> TableDefinition | None:
        raise PersistenceError("Schema changes are not supported through a direct database connection.")

    def create_table(
        self,
        table_name: str,
        columns: list[ColumnDefinition],
        foreign_keys: list[ForeignKeyDefinition],
    ) -> TableDefinition | None:
        raise PersistenceError("Schema changes are not supported through a direct database connection.")

    def get_record_by_foreign_key_value(self, table_name: str, column_name: str, value: Any) -> dict[str, Any] | None:
        table = self._table(table_name)
        column = self._column(table, column_name)
        try:
            with self._engine.connect() as conn:
                row = conn.execute(select(table).where(column == value).limit(1)).first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read '{table_name}': {exc}") from exc
        return dict(row._mapping) if row is not None else None

    def create_record(self, table_name: str, values: dict[str, Any]) -> Any:
        table = self._table(table_name)
        unknown = sorted(set(values) - set(table.c.keys()))
        if unknown:
            raise PersistenceError(f"Unknown columns for '{table_name}': {', '.join(unknown)}")
        try:
            with self._engine.begin() as conn:
                result = conn.execute(insert(table).values(values))
                inserted = result.inserted_primary_key
        except SQLAlchemyError as exc:
            logger.warning("sql_gateway.insert_failed table=%s error=%s", table_name, exc)
            raise PersistenceError(f"Failed to create record in '{table_name}': {exc}") from exc
        if inserted and inserted[0] is not None:
            return inserted[0]
        return values.get("id")

    def update_record(self, table_name: str, record_id: Any, values: dict[str, Any]) -> None:
        table = self._table(table_name)
        key = self._primary_key(table)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(update(table).where(key == record_id).values(values))
        except SQLAlchemyError as exc:
            logger.warning("sql_gateway.update_failed table=%s error=%s", table_name, exc)
            raise PersistenceError(f"Failed to update record in '{table_name}': {exc}") from exc
        if result.rowcount == 0:
            raise PersistenceError(f"Record '{record_id}' not found in '{table_name}'.")

    def delete_record(self, table_name: str, record_id: Any) -> None:
        table = self._table(table_name)
        key = self._primary_key(table)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(table).where(key == record_id))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete record in '{table_name}': {exc}") from exc
        if result.rowcount == 0:
            raise PersistenceError(f"Record '{record_id}' not found in '{table_name}'.")

    def _table(self, table_name: str) -> Table:
        # Reflected per call; the schema service changes tables underneath us.
        try:
            return Table(table_name, MetaData(), autoload_with=self._engine)
        except NoSuchTableError as exc:
            raise TableNotFoundError(f"Table '{table_name}' does not exist.") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to reflect table '{table_name}': {exc}") from exc

    def _count_rows(self, table_name: str) -> int:
        table = self._table(table_name)
        try:
            with self._engine.connect() as conn:
                return int(conn.execute(select(func.count()).select_from(table)).scalar_one())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to count rows in '{table_name}': {exc}") from exc

    @staticmethod
    def _column(table: Table, column_name: str):
        if column_name not in table.c:
            raise PersistenceError(f"Column '{column_name}' does not exist in '{table.name}'.")
        return table.c[column_name]

    @staticmethod
    def _primary_key(table: Table):
        keys = list(table.primary_key.columns)
        if len(keys) == 1:
            return keys[0]
        if "id" in table.c:
            return table.c["id"]
        raise PersistenceError(f"Table '{table.name}' has no single-column primary key.")

    @staticmethod
    def _single_column_unique(inspector, table_name: str) -> set[str]:
        unique: set[str] = set()
        for constraint in inspector.get_unique_constraints(table_name):
            names = constraint.get("column_names") or []
            if len(names) == 1:
                unique.add(names[0])
        for index in inspector.get_indexes(table_name):
            names = index.get("column_names") or []
            if index.get("unique") and len(names) == 1:
                unique.add(names[0])
        return unique


def _clean_server_default(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) >= 2 and text[0] == text[-1] == "'":
        text = text[1:-1]
    return text or None


def _action(value: str | None, *, allowed: frozenset[ReferentialAction] | None = None) -> ReferentialAction:
    if not value:
        return ReferentialAction.NO_ACTION
    cleaned = " ".join(value.upper().split())
    if cleaned not in _KNOWN_ACTIONS:
        return ReferentialAction.NO_ACTION
    action = ReferentialAction(cleaned)
    if allowed is not None and action not in allowed:
        return ReferentialAction.NO_ACTION
    return action
