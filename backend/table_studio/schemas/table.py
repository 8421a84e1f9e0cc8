"""Table, column and foreign key definitions shared by all editing services."""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from table_studio.schema.column_types import ColumnType, normalize_column_type

SYSTEM_COLUMNS: tuple[str, ...] = ("id", "created_at", "updated_at")

_IDENTIFIER_PATTERN = re.compile(r'^[^"\x00-\x1F\x7F]+$')


class ReferentialAction(str, Enum):
    """Foreign key ON DELETE / ON UPDATE behaviours."""

    NO_ACTION = "NO ACTION"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    SET_DEFAULT = "SET DEFAULT"
    RESTRICT = "RESTRICT"


ON_UPDATE_ACTIONS: frozenset[ReferentialAction] = frozenset(
    {ReferentialAction.NO_ACTION, ReferentialAction.CASCADE, ReferentialAction.RESTRICT}
)


def validate_identifier(value: str, *, kind: str = "Column") -> str:
    """Reject empty, whitespace-only, quoted or control-character identifiers."""

    if not value or not value.strip():
        raise ValueError(f"{kind} name cannot be empty or only whitespace")
    if not _IDENTIFIER_PATTERN.match(value):
        raise ValueError(f"{kind} name cannot contain quotes or control characters")
    return value


class ColumnDefinition(BaseModel):
    """Typed, constrained description of one table attribute.

    ``original_name`` is only set while an existing column is being edited; a
    column without it is treated as newly added by the diff engine.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=64)
    type: ColumnType | str = Field(default=ColumnType.STRING, union_mode="left_to_right")
    is_nullable: bool = True
    is_unique: bool = False
    default_value: str | None = None
    is_primary_key: bool = False
    is_system_column: bool = False
    original_name: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return validate_identifier(value)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: object) -> object:
        if isinstance(value, str) and not isinstance(value, ColumnType):
            normalized = normalize_column_type(value)
            if normalized is not None:
                return normalized
            return " ".join(value.strip().lower().split())
        return value

    @property
    def column_type(self) -> ColumnType | None:
        """Catalog type, or ``None`` for types outside the controlled vocabulary."""

        return self.type if isinstance(self.type, ColumnType) else None

    @property
    def is_new(self) -> bool:
        return self.original_name is None


class ForeignKeyDefinition(BaseModel):
    """Reference from one column to a unique column of another table."""

    model_config = ConfigDict(frozen=True)

    column_name: str = Field(min_length=1)
    reference_table: str = Field(min_length=1)
    reference_column: str = Field(min_length=1)
    on_delete: ReferentialAction = ReferentialAction.NO_ACTION
    on_update: ReferentialAction = ReferentialAction.NO_ACTION

    @field_validator("on_update")
    @classmethod
    def validate_on_update(cls, value: ReferentialAction) -> ReferentialAction:
        if value not in ON_UPDATE_ACTIONS:
            raise ValueError(f"ON UPDATE does not support {value.value}")
        return value

    def same_target(self, other: "ForeignKeyDefinition") -> bool:
        """Return True when both keys point at the same target with the same actions."""

        return (
            self.reference_table == other.reference_table
            and self.reference_column == other.reference_column
            and self.on_delete == other.on_delete
            and self.on_update == other.on_update
        )


class TableDefinition(BaseModel):
    """Table name plus ordered columns and foreign keys."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=64)
    columns: tuple[ColumnDefinition, ...] = ()
    foreign_keys: tuple[ForeignKeyDefinition, ...] = ()
    record_count: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return validate_identifier(value, kind="Table")

    @model_validator(mode="after")
    def validate_unique_foreign_key_columns(self) -> "TableDefinition":
        seen: set[str] = set()
        for foreign_key in self.foreign_keys:
            if foreign_key.column_name in seen:
                raise ValueError(f"Column '{foreign_key.column_name}' has more than one foreign key.")
            seen.add(foreign_key.column_name)
        return self

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def get_column(self, name: str) -> ColumnDefinition | None:
        return next((column for column in self.columns if column.name == name), None)

    def foreign_key_for(self, column_name: str) -> ForeignKeyDefinition | None:
        return next((fk for fk in self.foreign_keys if fk.column_name == column_name), None)

    def user_columns(self, system_columns: tuple[str, ...] = SYSTEM_COLUMNS) -> list[ColumnDefinition]:
        """Columns the user may edit, excluding platform-managed ones."""

        return [
            column
            for column in self.columns
            if not column.is_system_column and column.name not in system_columns
        ]
