"""Per-type cell value conversion and display formatting."""

from __future__ import annotations

import json
import math
import uuid
from datetime import date, datetime
from typing import Any, Union

from table_studio.schema.column_types import ColumnType
from table_studio.schemas.table import ColumnDefinition

CellValue = Union[None, str, int, float, bool, dict[str, Any], list[Any]]

INT32_MIN = -2_147_483_648
INT32_MAX = 2_147_483_647

_TRUTHY_STRINGS = frozenset({"true", "t", "1", "yes", "y", "on"})
_FALSY_STRINGS = frozenset({"false", "f", "0", "no", "n", "off"})
_SERVER_DEFAULT_KEYWORDS = frozenset({"CURRENT_TIMESTAMP", "CURRENT_DATE", "CURRENT_TIME", "LOCALTIMESTAMP"})


class CellConversionError(ValueError):
    """Raised when a raw cell input cannot be converted for its column type."""


def is_empty_value(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def is_server_generated_default(default_value: str | None) -> bool:
    """Return True for defaults evaluated by the database (``gen_random_uuid()``, ``now()``)."""

    if not default_value:
        return False
    cleaned = default_value.strip()
    return cleaned.endswith("()") or cleaned.upper() in _SERVER_DEFAULT_KEYWORDS


def parse_truthy(value: str) -> bool:
    return value.strip().lower() in _TRUTHY_STRINGS


def parse_date(value: str) -> date:
    return date.fromisoformat(value.strip())


def parse_datetime(value: str) -> datetime:
    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    return datetime.fromisoformat(cleaned)


def parse_structured(value: Any) -> Any:
    """Parse JSON text; already-decoded JSON values are returned unchanged."""

    if isinstance(value, (dict, list, bool, int, float)):
        return value
    if not isinstance(value, str):
        raise CellConversionError("Expected JSON text or a structured value")
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise CellConversionError(f"Invalid JSON: {exc.msg}") from exc


def convert_cell_value(column: ColumnDefinition, raw: Any) -> CellValue:
    """Convert an editor/form input to the value stored for ``column``.

    Empty input becomes ``None`` for every non-string type; non-nullable
    columns reject it.
    """

    column_type = column.column_type
    if column_type in (None, ColumnType.STRING):
        if raw is None and not column.is_nullable:
            raise CellConversionError("This field is required")
        return raw if raw is None or isinstance(raw, str) else str(raw)

    if is_empty_value(raw):
        if not column.is_nullable:
            raise CellConversionError("This field is required")
        return None

    if column_type == ColumnType.INTEGER:
        return convert_integer(raw)
    if column_type == ColumnType.FLOAT:
        return _convert_float(raw)
    if column_type == ColumnType.BOOLEAN:
        return _convert_boolean(raw, nullable=column.is_nullable)
    if column_type == ColumnType.DATE:
        return _convert_date(raw)
    if column_type == ColumnType.DATETIME:
        return _convert_datetime(raw)
    if column_type == ColumnType.UUID:
        try:
            return str(uuid.UUID(str(raw).strip()))
        except ValueError as exc:
            raise CellConversionError("Please enter a valid UUID") from exc
    if column_type == ColumnType.JSON:
        if isinstance(raw, str) and raw.strip() == "null":
            if not column.is_nullable:
                raise CellConversionError("This field is required")
            return None
        return parse_structured(raw)
    return raw


def format_value_for_display(value: Any, column_type: ColumnType | str | None = None) -> str:
    """Render a stored value as grid text."""

    if value is None or (isinstance(value, str) and value == ""):
        return ""
    if column_type == ColumnType.BOOLEAN:
        if isinstance(value, str):
            return "true" if parse_truthy(value) else "false"
        return "true" if value else "false"
    if column_type == ColumnType.DATE:
        try:
            parsed = value if isinstance(value, date) else parse_date(str(value)[:10])
        except ValueError:
            return "Invalid date"
        return parsed.strftime("%b %d, %Y")
    if column_type == ColumnType.DATETIME:
        try:
            parsed = value if isinstance(value, datetime) else parse_datetime(str(value))
        except ValueError:
            return "Invalid date time"
        return parsed.strftime("%b %d, %Y %I:%M %p")
    if column_type == ColumnType.JSON:
        try:
            structured = parse_structured(value) if isinstance(value, str) else value
            return json.dumps(structured, separators=(",", ":"), ensure_ascii=False, default=str)
        except (CellConversionError, TypeError):
            return "Invalid JSON"
    return str(value)


def convert_integer(raw: Any) -> int:
    if isinstance(raw, bool):
        raise CellConversionError("Please enter a valid integer")
    try:
        value = int(str(raw).strip(), 10)
    except ValueError as exc:
        raise CellConversionError("Please enter a valid integer") from exc
    if value < INT32_MIN or value > INT32_MAX:
        raise CellConversionError(
            "Integer value out of range. Please enter a value between -2,147,483,648 and 2,147,483,647"
        )
    return value


def _convert_float(raw: Any) -> float:
    if isinstance(raw, bool):
        raise CellConversionError("Please enter a valid number")
    try:
        value = float(str(raw).strip())
    except ValueError as exc:
        raise CellConversionError("Please enter a valid number") from exc
    if not math.isfinite(value):
        raise CellConversionError("Number value out of range. Please enter a finite number")
    return value


def _convert_boolean(raw: Any, *, nullable: bool) -> bool | None:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text == "null":
        if not nullable:
            raise CellConversionError("This field cannot be null")
        return None
    if text in _TRUTHY_STRINGS:
        return True
    if text in _FALSY_STRINGS:
        return False
    raise CellConversionError("Please enter true or false")


def _convert_date(raw: Any) -> str:
    try:
        return parse_date(str(raw)).isoformat()
    except ValueError as exc:
        raise CellConversionError("Please enter a valid date (YYYY-MM-DD)") from exc


def _convert_datetime(raw: Any) -> str:
    try:
        parse_datetime(str(raw))
    except ValueError as exc:
        raise CellConversionError("Please enter a valid date and time") from exc
    return str(raw).strip()
