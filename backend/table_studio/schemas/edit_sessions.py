"""Schemas for schema diff and edit session endpoints."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from table_studio.schema.column_types import ColumnType
from table_studio.schemas.schema_diff import SchemaDiff
from table_studio.schemas.table import ColumnDefinition, ForeignKeyDefinition, TableDefinition


class SchemaDiffRequest(BaseModel):
    """Original and edited snapshots to compare."""

    original: TableDefinition
    edited: TableDefinition


class SchemaDiffRead(BaseModel):
    diff: SchemaDiff
    operations: list[str]
    conflicts: list[str] = Field(default_factory=list)
    request_payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_diff(cls, diff: SchemaDiff, conflicts: list[str] | None = None) -> "SchemaDiffRead":
        return cls(
            diff=diff,
            operations=diff.operation_summary(),
            conflicts=conflicts or [],
            request_payload=diff.to_request_payload(),
        )


class EditSessionCreateRequest(BaseModel):
    """``create`` starts a new-table session instead of loading an existing table."""

    create: bool = False


class AddColumnOperation(BaseModel):
    op: Literal["add_column"]
    column: ColumnDefinition


class RemoveColumnOperation(BaseModel):
    op: Literal["remove_column"]
    name: str


class RenameColumnOperation(BaseModel):
    op: Literal["rename_column"]
    name: str
    new_name: str


class UpdateColumnOperation(BaseModel):
    op: Literal["update_column"]
    name: str
    type: ColumnType | str | None = Field(default=None, union_mode="left_to_right")
    is_nullable: bool | None = None
    is_unique: bool | None = None
    default_value: str | None = None
    clear_default: bool = False

    @model_validator(mode="after")
    def validate_non_empty_update(self) -> "UpdateColumnOperation":
        if (
            self.type is None
            and self.is_nullable is None
            and self.is_unique is None
            and self.default_value is None
            and not self.clear_default
        ):
            raise ValueError("At least one field must be provided.")
        return self

    def changes(self) -> dict[str, Any]:
        updates: dict[str, Any] = {}
        if self.type is not None:
            updates["type"] = self.type
        if self.is_nullable is not None:
            updates["is_nullable"] = self.is_nullable
        if self.is_unique is not None:
            updates["is_unique"] = self.is_unique
        if self.clear_default:
            updates["default_value"] = None
        elif self.default_value is not None:
            updates["default_value"] = self.default_value
        return updates


class AddForeignKeyOperation(BaseModel):
    op: Literal["add_foreign_key"]
    foreign_key: ForeignKeyDefinition


class UpdateForeignKeyOperation(BaseModel):
    op: Literal["update_foreign_key"]
    foreign_key: ForeignKeyDefinition


class RemoveForeignKeyOperation(BaseModel):
    op: Literal["remove_foreign_key"]
    column_name: str


EditOperation = Annotated[
    Union[
        AddColumnOperation,
        RemoveColumnOperation,
        RenameColumnOperation,
        UpdateColumnOperation,
        AddForeignKeyOperation,
        UpdateForeignKeyOperation,
        RemoveForeignKeyOperation,
    ],
    Field(discriminator="op"),
]


class EditSessionPatchRequest(BaseModel):
    """Edits applied in order; the first invalid one stops the batch."""

    operations: list[EditOperation] = Field(min_length=1)


class EditSessionRead(BaseModel):
    session_id: str
    table: str
    state: str
    creating: bool
    base_is_stale: bool
    is_dirty: bool
    last_error: str | None = None
    current: TableDefinition | None = None
    pending: SchemaDiffRead | None = None
