"""Schemas for record form, grid and reference preview endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from table_studio.services.cells import GridColumn
from table_studio.services.record_form import FormField, RecordForm
from table_studio.services.references import ReferenceCandidate, ReferencePreview


class RecordFormFieldRead(BaseModel):
    """One input of the record-creation form."""

    name: str
    type: str
    widget: str
    required: bool
    nullable: bool
    default_value: str | None = None
    description: str

    @classmethod
    def from_field(cls, form_field: FormField) -> "RecordFormFieldRead":
        return cls(
            name=form_field.name,
            type=form_field.type,
            widget=form_field.widget.value,
            required=form_field.required,
            nullable=form_field.nullable,
            default_value=form_field.default_value,
            description=form_field.description,
        )


class RecordFormRead(BaseModel):
    """Form definition: JSON schema of the validation model plus starting values."""

    table: str
    fields: list[RecordFormFieldRead]
    json_schema: dict[str, Any]
    initial_values: dict[str, Any]

    @classmethod
    def from_form(cls, table: str, form: RecordForm) -> "RecordFormRead":
        return cls(
            table=table,
            fields=[RecordFormFieldRead.from_field(form_field) for form_field in form.fields],
            json_schema=form.json_schema(),
            initial_values=form.initial_values,
        )


class RecordValuesRequest(BaseModel):
    """Submitted record form values keyed by column name."""

    values: dict[str, Any] = Field(default_factory=dict)


class RecordValidationRead(BaseModel):
    valid: bool
    values: dict[str, Any] = Field(default_factory=dict)
    field_errors: dict[str, str] = Field(default_factory=dict)


class RecordCreatedRead(BaseModel):
    id: Any = None
    values: dict[str, Any]


class CellEditRequest(BaseModel):
    """A committed grid cell edit: the editor's raw value for one column."""

    column: str = Field(..., min_length=1)
    value: Any = None


class CellEditRead(BaseModel):
    id: Any = None
    column: str
    value: Any = None
    changed: bool
    record: dict[str, Any]


class RecordDeletedRead(BaseModel):
    id: Any = None
    deleted: bool


class ReferenceTargetRead(BaseModel):
    table: str
    column: str


class GridColumnRead(BaseModel):
    """Grid column descriptor as consumed by the hosting UI."""

    key: str
    name: str
    type: str
    kind: str
    editable: bool
    sortable: bool
    nullable: bool
    reference: ReferenceTargetRead | None = None

    @classmethod
    def from_column(cls, column: GridColumn) -> "GridColumnRead":
        return cls.model_validate(column.to_descriptor())


class ReferencePreviewRead(BaseModel):
    """Inline preview of the row a foreign key cell points at."""

    state: str
    table: str | None = None
    column: str | None = None
    value: Any = None
    record: dict[str, Any] | None = None
    rendered: dict[str, str] = Field(default_factory=dict)
    columns: list[GridColumnRead] = Field(default_factory=list)
    message: str | None = None

    @classmethod
    def from_preview(cls, preview: ReferencePreview) -> "ReferencePreviewRead":
        return cls(
            state=preview.state.value,
            table=preview.reference_table,
            column=preview.reference_column,
            value=preview.value,
            record=preview.record,
            rendered=preview.rendered_row(),
            columns=[GridColumnRead.from_column(column) for column in preview.columns],
            message=preview.message,
        )


class ReferenceCandidateRead(BaseModel):
    table: str
    column: str
    type: str
    disabled: bool
    reason: str | None = None

    @classmethod
    def from_candidate(cls, candidate: ReferenceCandidate) -> "ReferenceCandidateRead":
        return cls(
            table=candidate.table,
            column=candidate.column,
            type=candidate.type,
            disabled=candidate.disabled,
            reason=candidate.reason,
        )
