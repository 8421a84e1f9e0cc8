"""Type-driven cell rendering and editing dispatch for the data grid."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from table_studio.errors import InvalidEditError, RecordValidationError
from table_studio.schema.column_types import ColumnType, is_editable_type, is_sortable_type
from table_studio.schemas.table import ColumnDefinition, ForeignKeyDefinition, TableDefinition
from table_studio.services.cell_editors import (
    BooleanCellEditor,
    CellEditor,
    DateCellEditor,
    EditorResult,
    JsonCellEditor,
    TextCellEditor,
)
from table_studio.services.values import (
    CellConversionError,
    convert_cell_value,
    format_value_for_display,
    is_empty_value,
)

logger = logging.getLogger(__name__)

NULL_DISPLAY = "null"

Renderer = Callable[[Any, ColumnDefinition], str]
EditorFactory = Callable[..., CellEditor]
CellMatcher = Callable[[ColumnDefinition, ForeignKeyDefinition | None], bool]
CellEditCallback = Callable[[dict[str, Any], str, Any], None]


class CellKind(str, Enum):
    REFERENCE = "reference"
    IDENTITY = "identity"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    JSON = "json"
    TEXT = "text"


@dataclass(frozen=True, slots=True)
class CellVariant:
    """One registered rendering/editing strategy.

    ``sortable`` overrides the catalog default when set.
    """

    kind: CellKind
    matches: CellMatcher
    renderer: Renderer
    editor_factory: EditorFactory | None = None
    sortable: bool | None = None


class CellRegistry:
    """Ordered variant list; the first variant whose matcher accepts a column wins."""

    def __init__(self, variants: list[CellVariant] | None = None) -> None:
        self._variants: list[CellVariant] = list(variants or [])

    @property
    def variants(self) -> tuple[CellVariant, ...]:
        return tuple(self._variants)

    def register(self, variant: CellVariant, *, before: CellKind | None = None) -> None:
        """Add a variant, by default just ahead of the catch-all text variant."""

        if any(existing.kind == variant.kind for existing in self._variants):
            raise ValueError(f"Cell variant '{variant.kind.value}' is already registered.")
        anchor = before if before is not None else CellKind.TEXT
        for index, existing in enumerate(self._variants):
            if existing.kind == anchor:
                self._variants.insert(index, variant)
                return
        self._variants.append(variant)

    def resolve(self, column: ColumnDefinition, foreign_key: ForeignKeyDefinition | None = None) -> CellVariant:
        for variant in self._variants:
            if variant.matches(column, foreign_key):
                return variant
        raise LookupError(f"No cell variant matches column '{column.name}'.")


@dataclass(slots=True)
class GridColumn:
    """Grid column descriptor bound to its resolved cell variant."""

    key: str
    name: str
    type: str
    kind: CellKind
    editable: bool
    sortable: bool
    nullable: bool
    column: ColumnDefinition
    variant: CellVariant = field(repr=False)
    foreign_key: ForeignKeyDefinition | None = None

    def render(self, value: Any) -> str:
        return self.variant.renderer(value, self.column)

    def open_editor(self, value: Any, **options: Any) -> CellEditor:
        if not self.editable or self.variant.editor_factory is None:
            raise InvalidEditError(f"Column '{self.name}' is not editable.")
        return self.variant.editor_factory(self.column, value, **options)

    def to_descriptor(self) -> dict[str, Any]:
        descriptor: dict[str, Any] = {
            "key": self.key,
            "name": self.name,
            "type": self.type,
            "kind": self.kind.value,
            "editable": self.editable,
            "sortable": self.sortable,
            "nullable": self.nullable,
        }
        if self.foreign_key is not None:
            descriptor["reference"] = {
                "table": self.foreign_key.reference_table,
                "column": self.foreign_key.reference_column,
            }
        return descriptor


def render_text(value: Any, column: ColumnDefinition) -> str:
    return format_value_for_display(value, column.column_type)


def render_boolean(value: Any, column: ColumnDefinition) -> str:
    if value is None:
        return NULL_DISPLAY
    return format_value_for_display(value, ColumnType.BOOLEAN)


def render_identity(value: Any, column: ColumnDefinition) -> str:
    return "" if value is None else str(value)


def render_reference(value: Any, column: ColumnDefinition) -> str:
    if is_empty_value(value):
        return NULL_DISPLAY
    return str(value)


def build_default_registry() -> CellRegistry:
    """Registry with the built-in variants in dispatch precedence order."""

    return CellRegistry(
        [
            CellVariant(
                kind=CellKind.REFERENCE,
                matches=lambda column, foreign_key: foreign_key is not None,
                renderer=render_reference,
            ),
            CellVariant(
                kind=CellKind.IDENTITY,
                matches=lambda column, foreign_key: column.is_primary_key or column.name == "id",
                renderer=render_identity,
            ),
            CellVariant(
                kind=CellKind.BOOLEAN,
                matches=lambda column, foreign_key: column.column_type == ColumnType.BOOLEAN,
                renderer=render_boolean,
                editor_factory=BooleanCellEditor,
            ),
            CellVariant(
                kind=CellKind.DATE,
                matches=lambda column, foreign_key: column.column_type == ColumnType.DATE,
                renderer=render_text,
                editor_factory=DateCellEditor,
            ),
            CellVariant(
                kind=CellKind.DATETIME,
                matches=lambda column, foreign_key: column.column_type == ColumnType.DATETIME,
                renderer=render_text,
                editor_factory=DateCellEditor,
            ),
            CellVariant(
                kind=CellKind.JSON,
                matches=lambda column, foreign_key: column.column_type == ColumnType.JSON,
                renderer=render_text,
                editor_factory=JsonCellEditor,
                sortable=False,
            ),
            CellVariant(
                kind=CellKind.TEXT,
                matches=lambda column, foreign_key: True,
                renderer=render_text,
                editor_factory=TextCellEditor,
            ),
        ]
    )


DEFAULT_CELL_REGISTRY = build_default_registry()


def build_grid_column(
    column: ColumnDefinition,
    foreign_key: ForeignKeyDefinition | None = None,
    *,
    allow_editing: bool = True,
    registry: CellRegistry | None = None,
) -> GridColumn:
    variant = (registry or DEFAULT_CELL_REGISTRY).resolve(column, foreign_key)
    editable = (
        allow_editing
        and not column.is_primary_key
        and is_editable_type(column.type)
        and variant.editor_factory is not None
    )
    sortable = variant.sortable if variant.sortable is not None else is_sortable_type(column.type)
    return GridColumn(
        key=column.name,
        name=column.name,
        type=column.type.value if isinstance(column.type, ColumnType) else str(column.type),
        kind=variant.kind,
        editable=editable,
        sortable=sortable,
        nullable=column.is_nullable,
        column=column,
        variant=variant,
        foreign_key=foreign_key,
    )


def build_grid_columns(
    table: TableDefinition,
    *,
    allow_references: bool = True,
    allow_editing: bool = True,
    registry: CellRegistry | None = None,
) -> list[GridColumn]:
    """Resolve a variant for every column of ``table`` in column order.

    With ``allow_references`` off, foreign key columns fall through to their
    type-based variant (used by read-only reference previews).
    """

    return [
        build_grid_column(
            column,
            table.foreign_key_for(column.name) if allow_references else None,
            allow_editing=allow_editing,
            registry=registry,
        )
        for column in table.columns
    ]


def commit_cell_edit(
    row: dict[str, Any],
    column: ColumnDefinition,
    result: EditorResult,
    on_cell_edit: CellEditCallback | None = None,
) -> dict[str, Any]:
    """Apply a closed editor's result to a copy of ``row``.

    The callback runs only for committed values that differ from the stored
    one. Conversion failures raise ``RecordValidationError`` keyed by column.
    """

    updated = copy.deepcopy(row)
    if not result.committed:
        return updated
    try:
        value = convert_cell_value(column, result.value)
    except CellConversionError as exc:
        raise RecordValidationError({column.name: str(exc)}) from exc

    previous = row.get(column.name)
    updated[column.name] = value
    if _same_value(previous, value):
        logger.debug("cells.commit_unchanged column=%s", column.name)
        return updated
    if on_cell_edit is not None:
        on_cell_edit(updated, column.name, value)
    logger.debug("cells.commit_changed column=%s", column.name)
    return updated


def _same_value(left: Any, right: Any) -> bool:
    # bool is an int subclass; True must not equal 1 here.
    return type(left) is type(right) and left == right
