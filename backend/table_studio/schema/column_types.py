"""Controlled column type system and per-type UI metadata."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ColumnType(str, Enum):
    """Column types understood by the form and grid builders."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    UUID = "uuid"
    JSON = "json"


class WidgetKind(str, Enum):
    """Input widget used by the record form for a column type."""

    TEXT = "text"
    NUMBER = "number"
    TOGGLE = "toggle"
    DATE_PICKER = "date_picker"
    DATETIME_PICKER = "datetime_picker"
    IDENTIFIER = "identifier"
    STRUCTURED = "structured"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True, slots=True)
class ColumnTypeInfo:
    """Static catalog entry for one column type."""

    type: ColumnType
    widget: WidgetKind
    icon: str
    description: str
    default_nullable: bool = True
    default_unique: bool = False
    editable: bool = True
    sortable: bool = True


COLUMN_TYPE_CATALOG: dict[ColumnType, ColumnTypeInfo] = {
    ColumnType.STRING: ColumnTypeInfo(
        type=ColumnType.STRING,
        widget=WidgetKind.TEXT,
        icon="type",
        description="Text values of any length",
    ),
    ColumnType.INTEGER: ColumnTypeInfo(
        type=ColumnType.INTEGER,
        widget=WidgetKind.NUMBER,
        icon="hash",
        description="Whole numbers without decimals",
    ),
    ColumnType.FLOAT: ColumnTypeInfo(
        type=ColumnType.FLOAT,
        widget=WidgetKind.NUMBER,
        icon="percent",
        description="Numbers with decimal places",
    ),
    ColumnType.BOOLEAN: ColumnTypeInfo(
        type=ColumnType.BOOLEAN,
        widget=WidgetKind.TOGGLE,
        icon="toggle-left",
        description="True or false values",
        default_nullable=False,
    ),
    ColumnType.DATE: ColumnTypeInfo(
        type=ColumnType.DATE,
        widget=WidgetKind.DATE_PICKER,
        icon="calendar",
        description="Calendar dates",
    ),
    ColumnType.DATETIME: ColumnTypeInfo(
        type=ColumnType.DATETIME,
        widget=WidgetKind.DATETIME_PICKER,
        icon="calendar",
        description="Date and time values",
    ),
    ColumnType.UUID: ColumnTypeInfo(
        type=ColumnType.UUID,
        widget=WidgetKind.IDENTIFIER,
        icon="fingerprint",
        description="Unique identifiers (auto-generated)",
        default_nullable=False,
        default_unique=True,
    ),
    ColumnType.JSON: ColumnTypeInfo(
        type=ColumnType.JSON,
        widget=WidgetKind.STRUCTURED,
        icon="code",
        description="Complex structured data",
        sortable=False,
    ),
}

COLUMN_TYPE_VALUES: tuple[str, ...] = tuple(column_type.value for column_type in ColumnType)

# Raw database type names reported by introspection or the remote schema service.
_DATABASE_TYPE_SYNONYMS: dict[str, ColumnType] = {
    "string": ColumnType.STRING,
    "text": ColumnType.STRING,
    "varchar": ColumnType.STRING,
    "character varying": ColumnType.STRING,
    "char": ColumnType.STRING,
    "character": ColumnType.STRING,
    "citext": ColumnType.STRING,
    "integer": ColumnType.INTEGER,
    "int": ColumnType.INTEGER,
    "int2": ColumnType.INTEGER,
    "int4": ColumnType.INTEGER,
    "int8": ColumnType.INTEGER,
    "smallint": ColumnType.INTEGER,
    "bigint": ColumnType.INTEGER,
    "serial": ColumnType.INTEGER,
    "bigserial": ColumnType.INTEGER,
    "float": ColumnType.FLOAT,
    "float4": ColumnType.FLOAT,
    "float8": ColumnType.FLOAT,
    "real": ColumnType.FLOAT,
    "double": ColumnType.FLOAT,
    "double precision": ColumnType.FLOAT,
    "numeric": ColumnType.FLOAT,
    "decimal": ColumnType.FLOAT,
    "boolean": ColumnType.BOOLEAN,
    "bool": ColumnType.BOOLEAN,
    "date": ColumnType.DATE,
    "datetime": ColumnType.DATETIME,
    "timestamp": ColumnType.DATETIME,
    "timestamptz": ColumnType.DATETIME,
    "timestamp with time zone": ColumnType.DATETIME,
    "timestamp without time zone": ColumnType.DATETIME,
    "uuid": ColumnType.UUID,
    "json": ColumnType.JSON,
    "jsonb": ColumnType.JSON,
}


def normalize_column_type(raw_type: str | None) -> ColumnType | None:
    """Map a raw database type name to the controlled vocabulary.

    Returns ``None`` for types the catalog does not know, so callers can fall
    back to pass-through handling instead of failing.
    """

    cleaned = _clean_type_name(raw_type)
    if not cleaned:
        return None
    exact = _DATABASE_TYPE_SYNONYMS.get(cleaned)
    if exact is not None:
        return exact
    # varchar(255), numeric(10, 2), timestamp(3) with time zone
    base = cleaned.split("(", 1)[0].strip()
    if base in _DATABASE_TYPE_SYNONYMS:
        return _DATABASE_TYPE_SYNONYMS[base]
    if base.startswith("timestamp"):
        return ColumnType.DATETIME
    return None


def get_type_info(column_type: ColumnType | str | None) -> ColumnTypeInfo | None:
    """Return the catalog entry for a column type, if one exists."""

    if column_type is None:
        return None
    if not isinstance(column_type, ColumnType):
        column_type = normalize_column_type(column_type)
        if column_type is None:
            return None
    return COLUMN_TYPE_CATALOG.get(column_type)


def is_editable_type(column_type: ColumnType | str | None) -> bool:
    info = get_type_info(column_type)
    return info is not None and info.editable


def is_sortable_type(column_type: ColumnType | str | None) -> bool:
    info = get_type_info(column_type)
    # Unknown types are rendered as text, which sorts fine.
    return info.sortable if info is not None else True


def _clean_type_name(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.strip().lower().split())
