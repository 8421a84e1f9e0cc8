"""Write-mode cell editors.

Editors are small state machines. Every terminal action (save, select, clear,
cancel) returns an ``EditorResult``; intermediate actions return ``None`` and
leave the editor open.
"""

from __future__ import annotations

import calendar
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from table_studio.errors import InvalidEditError, StructuredParseError
from table_studio.schema.column_types import ColumnType
from table_studio.schemas.table import ColumnDefinition
from table_studio.services.values import CellConversionError, parse_date, parse_datetime, parse_structured

MONTH_LABELS: tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
YEARS_PER_PAGE = 12


class EditorStatus(str, Enum):
    COMMITTED = "committed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class EditorResult:
    """Outcome of closing an editor."""

    status: EditorStatus
    value: Any = None

    @property
    def committed(self) -> bool:
        return self.status == EditorStatus.COMMITTED


class CellEditor:
    """Shared open/close bookkeeping for every editor kind."""

    def __init__(self, column: ColumnDefinition, initial_value: Any) -> None:
        self.column = column
        self.initial_value = initial_value
        self.result: EditorResult | None = None

    @property
    def closed(self) -> bool:
        return self.result is not None

    def cancel(self) -> EditorResult:
        """Close without committing; the cell keeps its pre-edit value."""

        return self._close(EditorResult(EditorStatus.CANCELLED, self.initial_value))

    def _commit(self, value: Any) -> EditorResult:
        return self._close(EditorResult(EditorStatus.COMMITTED, value))

    def _close(self, result: EditorResult) -> EditorResult:
        self._ensure_open()
        self.result = result
        return result

    def _ensure_open(self) -> None:
        if self.result is not None:
            raise InvalidEditError(f"Editor for column '{self.column.name}' is already closed.")


class TextCellEditor(CellEditor):
    """Free text input; the raw text is converted by the commit path."""

    def __init__(self, column: ColumnDefinition, initial_value: Any) -> None:
        super().__init__(column, initial_value)
        self.text = "" if initial_value is None else str(initial_value)

    def set_text(self, text: str) -> None:
        self._ensure_open()
        self.text = text

    def save(self) -> EditorResult:
        return self._commit(self.text)


class BooleanCellEditor(CellEditor):
    """Tri-state selector: true, false and, for nullable columns, null."""

    @property
    def options(self) -> list[bool | None]:
        values: list[bool | None] = [True, False]
        if self.column.is_nullable:
            values.append(None)
        return values

    def select(self, value: bool | None) -> EditorResult:
        if value is None and not self.column.is_nullable:
            raise InvalidEditError(f"Column '{self.column.name}' cannot be null.")
        if value is not None and not isinstance(value, bool):
            raise InvalidEditError("Boolean editor accepts only true, false or null.")
        return self._commit(value)


class PickerMode(str, Enum):
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


class DateCellEditor(CellEditor):
    """Calendar picker for date and date-time columns.

    A date column commits as soon as a day is picked. A date-time column keeps
    the picked day plus hour/minute selections until ``save`` combines them into
    a local timestamp ``YYYY-MM-DDTHH:MM:00`` without timezone shifting.
    """

    def __init__(
        self,
        column: ColumnDefinition,
        initial_value: Any,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        super().__init__(column, initial_value)
        self._clock = clock
        self._reset_picker()

    @property
    def include_time(self) -> bool:
        return self.column.column_type == ColumnType.DATETIME

    @property
    def label(self) -> str:
        if self.mode == PickerMode.DAY:
            return f"{MONTH_LABELS[self.view_month - 1]} {self.view_year}"
        if self.mode == PickerMode.MONTH:
            return str(self.view_year)
        years = self.year_range()
        return f"{years[0]} - {years[-1]}"

    def click_label(self) -> PickerMode:
        self._ensure_open()
        if self.mode == PickerMode.DAY:
            self.mode = PickerMode.MONTH
        elif self.mode == PickerMode.MONTH:
            self.mode = PickerMode.YEAR
        return self.mode

    def select_month(self, month: int) -> None:
        self._ensure_open()
        if self.mode != PickerMode.MONTH:
            raise InvalidEditError("Months can only be picked in month mode.")
        if not 1 <= month <= 12:
            raise InvalidEditError(f"Month must be between 1 and 12, got {month}.")
        self.view_month = month
        self.mode = PickerMode.DAY

    def select_year(self, year: int) -> None:
        self._ensure_open()
        if self.mode != PickerMode.YEAR:
            raise InvalidEditError("Years can only be picked in year mode.")
        if not 1 <= year <= 9999:
            raise InvalidEditError(f"Year out of range: {year}.")
        self.view_year = year
        self.mode = PickerMode.MONTH

    def previous_month(self) -> None:
        self._ensure_open()
        if self.view_month == 1:
            self.view_month = 12
            self.view_year -= 1
        else:
            self.view_month -= 1

    def next_month(self) -> None:
        self._ensure_open()
        if self.view_month == 12:
            self.view_month = 1
            self.view_year += 1
        else:
            self.view_month += 1

    def previous_year(self) -> None:
        self._ensure_open()
        self.view_year -= 1

    def next_year(self) -> None:
        self._ensure_open()
        self.view_year += 1

    def previous_decade(self) -> None:
        self._ensure_open()
        self.view_year -= 10

    def next_decade(self) -> None:
        self._ensure_open()
        self.view_year += 10

    def days_in_month(self) -> int:
        return calendar.monthrange(self.view_year, self.view_month)[1]

    def first_weekday(self) -> int:
        """Column of the first day in a Sunday-first calendar grid (0-6)."""

        return (calendar.weekday(self.view_year, self.view_month, 1) + 1) % 7

    def year_range(self) -> list[int]:
        start = (self.view_year // 10) * 10
        return list(range(start, start + YEARS_PER_PAGE))

    def select_day(self, day: int) -> EditorResult | None:
        self._ensure_open()
        try:
            picked = date(self.view_year, self.view_month, day)
        except ValueError as exc:
            raise InvalidEditError(str(exc)) from exc
        self.selected_date = picked
        if not self.include_time:
            return self._commit(picked.isoformat())
        return None

    def select_hour(self, hour: int) -> None:
        self._ensure_open()
        if not 0 <= hour <= 23:
            raise InvalidEditError(f"Hour must be between 0 and 23, got {hour}.")
        self.hour = hour

    def select_minute(self, minute: int) -> None:
        self._ensure_open()
        if not 0 <= minute <= 59:
            raise InvalidEditError(f"Minute must be between 0 and 59, got {minute}.")
        self.minute = minute

    def save(self) -> EditorResult:
        self._ensure_open()
        if self.selected_date is None:
            raise InvalidEditError("Pick a day before saving.")
        if not self.include_time:
            return self._commit(self.selected_date.isoformat())
        return self._commit(f"{self.selected_date.isoformat()}T{self.hour:02d}:{self.minute:02d}:00")

    def clear(self) -> EditorResult:
        if not self.column.is_nullable:
            raise InvalidEditError(f"Column '{self.column.name}' cannot be null.")
        return self._commit(None)

    def cancel(self) -> EditorResult:
        result = super().cancel()
        self._reset_picker()
        return result

    def _reset_picker(self) -> None:
        initial = self._parse_initial(self.initial_value)
        anchor = initial or self._clock()
        self.mode = PickerMode.DAY
        self.selected_date: date | None = initial.date() if initial is not None else None
        self.hour = initial.hour if initial is not None else 0
        self.minute = initial.minute if initial is not None else 0
        self.view_year = anchor.year
        self.view_month = anchor.month

    def _parse_initial(self, value: Any) -> datetime | None:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            if self.include_time:
                return parse_datetime(value)
            parsed = parse_date(value.strip()[:10])
        except ValueError:
            return None
        return datetime(parsed.year, parsed.month, parsed.day)


class JsonCellEditor(CellEditor):
    """Structured value editor with inline parse errors and clear confirmation."""

    def __init__(self, column: ColumnDefinition, initial_value: Any) -> None:
        super().__init__(column, initial_value)
        self.text = _initial_text(initial_value)
        self.error: str | None = None
        self.confirming_clear = False

    def set_text(self, text: str) -> None:
        self._ensure_open()
        self.text = text
        self.error = None
        if text.strip():
            try:
                _parse_json_text(text)
            except StructuredParseError as exc:
                self.error = str(exc)

    def format(self) -> None:
        self._rewrite(indent=2)

    def minify(self) -> None:
        self._rewrite(indent=None)

    def save(self) -> EditorResult | None:
        """Commit the compact serialization, or keep the editor open with ``error`` set.

        The committed value is JSON text so scalars and JSON-looking strings
        survive the commit path unchanged.
        """

        self._ensure_open()
        if not self.text.strip():
            return self._commit(None if self.column.is_nullable else "{}")
        try:
            value = _parse_json_text(self.text)
        except StructuredParseError as exc:
            self.error = str(exc)
            return None
        if value is None and not self.column.is_nullable:
            self.error = "This field is required"
            return None
        self.error = None
        return self._commit(_dump(value, indent=None))

    def request_clear(self) -> None:
        self._ensure_open()
        if not self.column.is_nullable:
            raise InvalidEditError(f"Column '{self.column.name}' cannot be null.")
        self.confirming_clear = True

    def dismiss_clear(self) -> None:
        self.confirming_clear = False

    def confirm_clear(self) -> EditorResult:
        if not self.confirming_clear:
            raise InvalidEditError("Clearing must be requested before it is confirmed.")
        self.confirming_clear = False
        return self._commit(None)

    def _rewrite(self, *, indent: int | None) -> None:
        self._ensure_open()
        if not self.text.strip():
            return
        try:
            value = _parse_json_text(self.text)
        except StructuredParseError as exc:
            self.error = str(exc)
            return
        self.error = None
        self.text = _dump(value, indent=indent)


def _parse_json_text(text: str) -> Any:
    try:
        return parse_structured(text)
    except CellConversionError as exc:
        raise StructuredParseError(str(exc)) from exc


def _initial_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        try:
            return _dump(json.loads(value), indent=2)
        except json.JSONDecodeError:
            return value
    return _dump(value, indent=2)


def _dump(value: Any, *, indent: int | None) -> str:
    if indent is None:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return json.dumps(value, indent=indent, ensure_ascii=False, default=str)
