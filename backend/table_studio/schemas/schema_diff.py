"""Schema diff operation list."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from table_studio.schemas.table import ColumnDefinition, ForeignKeyDefinition
from table_studio.schemas.wire import column_to_wire, foreign_key_target_to_wire


class SchemaDiff(BaseModel):
    """Operations that transform an original table schema into an edited one.

    ``drop_foreign_keys`` holds original column names. ``add_foreign_keys`` and
    ``update_foreign_keys`` are keyed by the edited column names.
    """

    add_columns: list[ColumnDefinition] = Field(default_factory=list)
    drop_columns: list[str] = Field(default_factory=list)
    rename_columns: dict[str, str] = Field(default_factory=dict)
    add_foreign_keys: list[ForeignKeyDefinition] = Field(default_factory=list)
    drop_foreign_keys: list[str] = Field(default_factory=list)
    update_foreign_keys: list[ForeignKeyDefinition] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.add_columns
            or self.drop_columns
            or self.rename_columns
            or self.add_foreign_keys
            or self.drop_foreign_keys
            or self.update_foreign_keys
        )

    def operation_summary(self) -> list[str]:
        """Human-readable operation list, one entry per structural change."""

        operations = [f"add column {column.name}" for column in self.add_columns]
        operations += [f"drop column {name}" for name in self.drop_columns]
        operations += [f"rename column {old} to {new}" for old, new in self.rename_columns.items()]
        operations += [
            f"add foreign key {fk.column_name} -> {fk.reference_table}.{fk.reference_column}"
            for fk in self.add_foreign_keys
        ]
        operations += [f"drop foreign key {name}" for name in self.drop_foreign_keys]
        operations += [
            f"update foreign key {fk.column_name} -> {fk.reference_table}.{fk.reference_column}"
            for fk in self.update_foreign_keys
        ]
        return operations

    def to_request_payload(self) -> dict[str, Any]:
        """Serialize to the schema service ``updateTableSchema`` request body.

        The service has no in-place foreign key update, so updated keys are sent
        as a drop of the original constraint plus an add of the new one.
        """

        reverse_renames = {new: old for old, new in self.rename_columns.items()}
        drop_foreign_keys = list(self.drop_foreign_keys)
        add_foreign_keys = list(self.add_foreign_keys)
        for foreign_key in self.update_foreign_keys:
            drop_foreign_keys.append(reverse_renames.get(foreign_key.column_name, foreign_key.column_name))
            add_foreign_keys.append(foreign_key)

        payload: dict[str, Any] = {}
        if self.add_columns:
            payload["addColumns"] = [column_to_wire(column) for column in self.add_columns]
        if self.drop_columns:
            payload["dropColumns"] = list(self.drop_columns)
        if self.rename_columns:
            payload["updateColumns"] = [
                {"columnName": old, "newColumnName": new} for old, new in self.rename_columns.items()
            ]
        if add_foreign_keys:
            payload["addForeignKeys"] = [
                {"columnName": fk.column_name, "foreignKey": foreign_key_target_to_wire(fk)}
                for fk in add_foreign_keys
            ]
        if drop_foreign_keys:
            payload["dropForeignKeys"] = drop_foreign_keys
        return payload
