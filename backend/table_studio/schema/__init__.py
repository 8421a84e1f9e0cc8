"""Static column type vocabulary."""

from table_studio.schema.column_types import (
    COLUMN_TYPE_CATALOG,
    ColumnType,
    ColumnTypeInfo,
    WidgetKind,
    get_type_info,
    normalize_column_type,
)

__all__ = [
    "COLUMN_TYPE_CATALOG",
    "ColumnType",
    "ColumnTypeInfo",
    "WidgetKind",
    "get_type_info",
    "normalize_column_type",
]
