"""Dynamic record-creation form: validation model and initial values per table schema."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    FiniteFloat,
    StrictBool,
    ValidationError,
    create_model,
)

from table_studio.errors import RecordValidationError
from table_studio.schema.column_types import ColumnType, WidgetKind, get_type_info
from table_studio.schemas.table import SYSTEM_COLUMNS, ColumnDefinition
from table_studio.services.values import (
    CellConversionError,
    convert_integer,
    is_server_generated_default,
    parse_date,
    parse_datetime,
    parse_structured,
    parse_truthy,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FormField:
    """One rendered input of the record-creation form."""

    name: str
    type: str
    widget: WidgetKind
    required: bool
    nullable: bool
    default_value: str | None
    description: str


@dataclass(slots=True)
class RecordForm:
    """Validation model, field descriptors and initial values for one table."""

    model: type[BaseModel]
    fields: list[FormField] = field(default_factory=list)
    initial_values: dict[str, Any] = field(default_factory=dict)

    def json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema(by_alias=True)

    def validate(self, values: dict[str, Any]) -> dict[str, Any]:
        return _validate_with_model(self.model, self.fields, values)


def form_columns(
    columns: list[ColumnDefinition] | tuple[ColumnDefinition, ...],
    system_columns: tuple[str, ...] = SYSTEM_COLUMNS,
) -> list[ColumnDefinition]:
    """Columns shown on the record form: everything except platform-managed ones."""

    return [column for column in columns if not column.is_system_column and column.name not in system_columns]


def build_record_form(
    columns: list[ColumnDefinition] | tuple[ColumnDefinition, ...],
    *,
    table_name: str = "Record",
    system_columns: tuple[str, ...] = SYSTEM_COLUMNS,
) -> RecordForm:
    """Build the validation model, field descriptors and initial values together."""

    visible = form_columns(columns, system_columns)
    return RecordForm(
        model=build_validation_model(visible, table_name=table_name, system_columns=system_columns),
        fields=[_form_field(column) for column in visible],
        initial_values=get_initial_values(visible, system_columns=system_columns),
    )


def build_validation_model(
    columns: list[ColumnDefinition] | tuple[ColumnDefinition, ...],
    *,
    table_name: str = "Record",
    system_columns: tuple[str, ...] = SYSTEM_COLUMNS,
) -> type[BaseModel]:
    """Create a pydantic model whose fields follow each column's type and nullability.

    Fields are aliased to the column names so any column name (spaces,
    keywords) can be validated and dumped back unchanged.
    """

    definitions: dict[str, Any] = {}
    for index, column in enumerate(form_columns(columns, system_columns)):
        annotation, default = _field_spec(column)
        definitions[f"field_{index}"] = (
            annotation,
            Field(default=default, alias=column.name, title=column.name),
        )
    return create_model(
        _model_name(table_name),
        __config__=ConfigDict(extra="ignore"),
        **definitions,
    )


def get_initial_values(
    columns: list[ColumnDefinition] | tuple[ColumnDefinition, ...],
    *,
    system_columns: tuple[str, ...] = SYSTEM_COLUMNS,
) -> dict[str, Any]:
    """Return the form's starting values derived from column defaults."""

    values: dict[str, Any] = {}
    for column in form_columns(columns, system_columns):
        values[column.name] = _initial_value(column)
    return values


def validate_record_values(
    columns: list[ColumnDefinition] | tuple[ColumnDefinition, ...],
    values: dict[str, Any],
    *,
    system_columns: tuple[str, ...] = SYSTEM_COLUMNS,
) -> dict[str, Any]:
    """Validate submitted form values and return the cleaned field map.

    Raises ``RecordValidationError`` with per-field messages.
    """

    form = build_record_form(columns, system_columns=system_columns)
    return form.validate(values)


def _validate_with_model(model: type[BaseModel], fields: list[FormField], values: dict[str, Any]) -> dict[str, Any]:
    try:
        instance = model.model_validate(values)
    except ValidationError as exc:
        field_errors: dict[str, str] = {}
        for error in exc.errors():
            location = error.get("loc") or ("__root__",)
            field_errors.setdefault(str(location[0]), _error_message(error))
        logger.debug("record_form.validation_failed fields=%s", sorted(field_errors))
        raise RecordValidationError(field_errors) from exc

    cleaned = instance.model_dump(by_alias=True)
    for form_field in fields:
        value = cleaned.get(form_field.name)
        # Empty input on a defaulted column lets the database apply its default.
        if value == "" and form_field.default_value is not None:
            cleaned.pop(form_field.name, None)
        elif value == "" and form_field.type == ColumnType.UUID.value and not form_field.required:
            cleaned.pop(form_field.name, None)
    return cleaned


def _field_spec(column: ColumnDefinition) -> tuple[Any, Any]:
    column_type = column.column_type
    nullable = column.is_nullable
    has_default = column.default_value is not None and column.default_value != ""

    if column_type is None:
        # Unknown types stay usable: accept anything.
        return Any, None

    if column_type == ColumnType.BOOLEAN:
        if nullable:
            return StrictBool | None, None
        return StrictBool, ...

    if column_type == ColumnType.INTEGER:
        if nullable:
            return Annotated[int | None, BeforeValidator(_integer_check(allow_none=True))], None
        return Annotated[int, BeforeValidator(_integer_check(allow_none=False))], ...

    if column_type == ColumnType.FLOAT:
        if nullable:
            return Annotated[FiniteFloat | None, BeforeValidator(_empty_to_none)], None
        return FiniteFloat, ...

    if column_type == ColumnType.UUID:
        allow_empty = nullable or has_default
        checked = Annotated[str, AfterValidator(_uuid_check(allow_empty=allow_empty))]
        if nullable:
            return checked | None, None
        return checked, ("" if has_default else ...)

    if column_type == ColumnType.JSON:
        parsed = Annotated[
            Any, AfterValidator(_structured_check(allow_empty=nullable or has_default, allow_none=nullable))
        ]
        if nullable:
            return Annotated[parsed, BeforeValidator(_empty_to_none)], None
        return parsed, ...

    parser = {ColumnType.DATE: parse_date, ColumnType.DATETIME: parse_datetime}.get(column_type)
    allow_empty = nullable or has_default
    text = Annotated[str, AfterValidator(_text_check(parser, allow_empty=allow_empty, label=column.name))]
    if nullable:
        if parser is not None:
            return Annotated[text | None, BeforeValidator(_empty_to_none)], None
        return text | None, None
    return text, ...


def _initial_value(column: ColumnDefinition) -> Any:
    column_type = column.column_type
    default = column.default_value if column.default_value not in (None, "") else None

    if column_type == ColumnType.BOOLEAN:
        if default is not None:
            return parse_truthy(default)
        return None if column.is_nullable else False
    if column_type == ColumnType.INTEGER:
        if default is None:
            return None
        try:
            return int(default.strip(), 10)
        except ValueError:
            logger.debug("record_form.unparsed_default column=%s default=%s", column.name, default)
            return None
    if column_type == ColumnType.FLOAT:
        if default is None:
            return None
        try:
            return float(default.strip())
        except ValueError:
            logger.debug("record_form.unparsed_default column=%s default=%s", column.name, default)
            return None
    if column_type == ColumnType.UUID:
        if default is not None and not default.strip().endswith("()"):
            return default
        return ""
    if column_type in (ColumnType.DATE, ColumnType.DATETIME):
        if default is None or is_server_generated_default(default):
            return ""
        return default
    if column_type in (ColumnType.STRING, ColumnType.JSON):
        return default if default is not None else ""
    return ""


def _form_field(column: ColumnDefinition) -> FormField:
    info = get_type_info(column.column_type)
    has_default = column.default_value not in (None, "")
    return FormField(
        name=column.name,
        type=column.type.value if isinstance(column.type, ColumnType) else str(column.type),
        widget=info.widget if info is not None else WidgetKind.PASSTHROUGH,
        required=not column.is_nullable and not has_default,
        nullable=column.is_nullable,
        default_value=column.default_value if has_default else None,
        description=info.description if info is not None else "Unrecognized column type",
    )


def _empty_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def _integer_check(*, allow_none: bool):
    # Same bounds as the grid commit path: no booleans, 32-bit range.
    def check(value: Any) -> Any:
        if allow_none and _empty_to_none(value) is None:
            return None
        try:
            return convert_integer(value)
        except CellConversionError as exc:
            raise ValueError(str(exc)) from exc

    return check


def _text_check(parser: Callable[[str], object] | None, *, allow_empty: bool, label: str):
    def check(value: str) -> str:
        if value == "":
            if allow_empty:
                return value
            raise ValueError(f"{label} is required")
        if parser is not None:
            try:
                parser(value)
            except ValueError as exc:
                raise ValueError(f"{label} is not a valid {'date' if parser is parse_date else 'date and time'}") from exc
        return value

    return check


def _uuid_check(*, allow_empty: bool):
    def check(value: str) -> str:
        if value == "":
            if allow_empty:
                return value
            raise ValueError("A UUID value is required")
        try:
            return str(uuid.UUID(value))
        except ValueError as exc:
            raise ValueError("Invalid UUID") from exc

    return check


def _structured_check(*, allow_empty: bool, allow_none: bool):
    def check(value: Any) -> Any:
        if value is None:
            if allow_none:
                return value
            raise ValueError("JSON value is required")
        if isinstance(value, str):
            if value.strip() == "":
                if allow_empty:
                    return value
                raise ValueError("JSON value is required")
            try:
                return parse_structured(value)
            except CellConversionError as exc:
                raise ValueError(str(exc)) from exc
        return value

    return check


def _error_message(error: dict[str, Any]) -> str:
    message = str(error.get("msg") or "Invalid value")
    return message.removeprefix("Value error, ")


def _model_name(table_name: str) -> str:
    cleaned = "".join(part.capitalize() for part in table_name.replace("-", "_").split("_") if part.isidentifier())
    return f"{cleaned or 'Record'}RecordForm"
