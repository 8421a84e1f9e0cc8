"""Translation between domain definitions and the schema service's camelCase payloads."""

from __future__ import annotations

from typing import Any

from table_studio.schemas.table import (
    SYSTEM_COLUMNS,
    ColumnDefinition,
    ForeignKeyDefinition,
    ReferentialAction,
    TableDefinition,
)


def column_to_wire(column: ColumnDefinition, foreign_key: ForeignKeyDefinition | None = None) -> dict[str, Any]:
    """Serialize a column; ``foreign_key`` is embedded for create-table requests."""

    payload: dict[str, Any] = {
        "columnName": column.name,
        "type": column.type.value if hasattr(column.type, "value") else column.type,
        "isNullable": column.is_nullable,
        "isUnique": column.is_unique,
        "defaultValue": column.default_value or None,
    }
    if column.is_primary_key:
        payload["isPrimaryKey"] = True
    if foreign_key is not None:
        payload["foreignKey"] = foreign_key_target_to_wire(foreign_key)
    return payload


def foreign_key_target_to_wire(foreign_key: ForeignKeyDefinition) -> dict[str, str]:
    return {
        "referenceTable": foreign_key.reference_table,
        "referenceColumn": foreign_key.reference_column,
        "onDelete": foreign_key.on_delete.value,
        "onUpdate": foreign_key.on_update.value,
    }


def table_from_wire(payload: dict[str, Any], *, system_columns: tuple[str, ...] = SYSTEM_COLUMNS) -> TableDefinition:
    """Build a TableDefinition from a ``getTableSchema`` response body."""

    columns: list[ColumnDefinition] = []
    foreign_keys: list[ForeignKeyDefinition] = []
    for raw in payload.get("columns") or []:
        name = raw.get("columnName") or raw.get("name")
        columns.append(
            ColumnDefinition(
                name=name,
                type=raw.get("type") or "string",
                is_nullable=bool(raw.get("isNullable", raw.get("nullable", True))),
                is_unique=bool(raw.get("isUnique", raw.get("unique", False))),
                default_value=_clean_default(raw.get("defaultValue", raw.get("default_value"))),
                is_primary_key=bool(raw.get("isPrimaryKey", raw.get("primary_key", False))),
                is_system_column=name in system_columns,
            )
        )
        raw_fk = raw.get("foreignKey") or raw.get("foreign_key")
        if raw_fk:
            foreign_keys.append(
                ForeignKeyDefinition(
                    column_name=name,
                    reference_table=raw_fk.get("referenceTable") or raw_fk.get("table"),
                    reference_column=raw_fk.get("referenceColumn") or raw_fk.get("column"),
                    on_delete=raw_fk.get("onDelete") or raw_fk.get("on_delete") or ReferentialAction.NO_ACTION,
                    on_update=raw_fk.get("onUpdate") or raw_fk.get("on_update") or ReferentialAction.NO_ACTION,
                )
            )
    return TableDefinition(
        name=payload.get("tableName") or payload.get("table_name") or payload["name"],
        columns=columns,
        foreign_keys=foreign_keys,
        record_count=int(payload.get("recordCount") or payload.get("record_count") or 0),
    )


def _clean_default(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text != "" else None
