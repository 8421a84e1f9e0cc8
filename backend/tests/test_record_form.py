"""Unit tests for dynamic record form validation and initial values."""

import unittest

from table_studio.errors import RecordValidationError
from table_studio.schema.column_types import WidgetKind
from table_studio.schemas.table import ColumnDefinition
from table_studio.services.record_form import (
    build_record_form,
    build_validation_model,
    get_initial_values,
    validate_record_values,
)


def _columns() -> list[ColumnDefinition]:
    return [
        ColumnDefinition(
            name="id",
            type="uuid",
            is_nullable=False,
            is_primary_key=True,
            is_system_column=True,
            default_value="gen_random_uuid()",
        ),
        ColumnDefinition(name="title", type="string", is_nullable=False),
        ColumnDefinition(name="notes", type="text"),
        ColumnDefinition(name="age", type="integer"),
        ColumnDefinition(name="score", type="float", is_nullable=False, default_value="1.5"),
        ColumnDefinition(name="active", type="boolean", is_nullable=False, default_value="true"),
        ColumnDefinition(name="archived", type="boolean"),
        ColumnDefinition(name="born_on", type="date"),
        ColumnDefinition(name="seen_at", type="datetime", is_nullable=False, default_value="now()"),
        ColumnDefinition(name="profile", type="jsonb"),
        ColumnDefinition(name="created_at", type="timestamptz", is_system_column=True),
    ]


def _valid_values(**overrides: object) -> dict[str, object]:
    values: dict[str, object] = {
        "title": "Dune",
        "notes": "",
        "age": "",
        "score": 2.5,
        "active": True,
        "archived": None,
        "born_on": "",
        "seen_at": "",
        "profile": "",
    }
    values.update(overrides)
    return values


class RecordFormStructureTests(unittest.TestCase):
    def test_system_columns_are_not_part_of_the_form(self) -> None:
        form = build_record_form(_columns(), table_name="books")

        self.assertEqual(
            [field.name for field in form.fields],
            ["title", "notes", "age", "score", "active", "archived", "born_on", "seen_at", "profile"],
        )
        self.assertNotIn("id", form.initial_values)
        self.assertNotIn("created_at", form.initial_values)

    def test_fields_carry_widget_and_requiredness(self) -> None:
        fields = {field.name: field for field in build_record_form(_columns()).fields}

        self.assertTrue(fields["title"].required)
        self.assertFalse(fields["notes"].required)
        self.assertFalse(fields["seen_at"].required)
        self.assertEqual(fields["active"].widget, WidgetKind.TOGGLE)
        self.assertEqual(fields["profile"].widget, WidgetKind.STRUCTURED)
        self.assertEqual(fields["profile"].type, "json")

    def test_json_schema_uses_column_names(self) -> None:
        schema = build_record_form(_columns(), table_name="books").json_schema()

        self.assertIn("title", schema["properties"])
        self.assertIn("title", schema.get("required", []))
        self.assertNotIn("notes", schema.get("required", []))

    def test_initial_values_follow_defaults(self) -> None:
        values = get_initial_values(_columns())

        self.assertEqual(values["title"], "")
        self.assertIsNone(values["age"])
        self.assertEqual(values["score"], 1.5)
        self.assertIs(values["active"], True)
        self.assertIsNone(values["archived"])
        self.assertEqual(values["born_on"], "")
        self.assertEqual(values["seen_at"], "")
        self.assertEqual(values["profile"], "")

    def test_boolean_initial_value_without_default(self) -> None:
        values = get_initial_values(
            [
                ColumnDefinition(name="required_flag", type="boolean", is_nullable=False),
                ColumnDefinition(name="optional_flag", type="boolean", is_nullable=True),
                ColumnDefinition(name="falsy_flag", type="boolean", default_value="false"),
            ]
        )

        self.assertIs(values["required_flag"], False)
        self.assertIsNone(values["optional_flag"])
        self.assertIs(values["falsy_flag"], False)

    def test_uuid_initial_value_respects_generated_default(self) -> None:
        values = get_initial_values(
            [
                ColumnDefinition(name="external_ref", type="uuid", default_value="gen_random_uuid()"),
                ColumnDefinition(
                    name="fixed_ref",
                    type="uuid",
                    default_value="6f1c2f8e-3f4b-4d59-9a8e-2a7f3c1d0b11",
                ),
            ]
        )

        self.assertEqual(values["external_ref"], "")
        self.assertEqual(values["fixed_ref"], "6f1c2f8e-3f4b-4d59-9a8e-2a7f3c1d0b11")


class RecordFormValidationTests(unittest.TestCase):
    def test_valid_values_are_cleaned(self) -> None:
        cleaned = validate_record_values(_columns(), _valid_values(age="42", profile='{"tags": ["a"]}'))

        self.assertEqual(cleaned["title"], "Dune")
        self.assertEqual(cleaned["age"], 42)
        self.assertIsNone(cleaned["archived"])
        self.assertEqual(cleaned["profile"], {"tags": ["a"]})
        self.assertIsNone(cleaned["born_on"])
        # Empty input on a defaulted column is left to the database.
        self.assertNotIn("seen_at", cleaned)

    def test_required_string_rejects_empty_input(self) -> None:
        with self.assertRaises(RecordValidationError) as ctx:
            validate_record_values(_columns(), _valid_values(title=""))

        self.assertEqual(ctx.exception.field_errors["title"], "title is required")

    def test_errors_are_reported_per_field(self) -> None:
        with self.assertRaises(RecordValidationError) as ctx:
            validate_record_values(
                _columns(),
                _valid_values(age="abc", born_on="2024-02-30", profile="{bad json"),
            )

        self.assertEqual(set(ctx.exception.field_errors), {"age", "born_on", "profile"})

    def test_integer_fields_match_grid_bounds(self) -> None:
        required_age = [ColumnDefinition(name="age", type="integer", is_nullable=False)]

        for bad in (True, 9_999_999_999, -2_147_483_649):
            with self.subTest(value=bad):
                with self.assertRaises(RecordValidationError) as ctx:
                    validate_record_values(required_age, {"age": bad})
                self.assertIn("age", ctx.exception.field_errors)

        self.assertEqual(validate_record_values(required_age, {"age": 2_147_483_647}), {"age": 2_147_483_647})
        self.assertIsNone(validate_record_values(_columns(), _valid_values(age=""))["age"])

    def test_non_nullable_boolean_never_accepts_none(self) -> None:
        columns = [ColumnDefinition(name="flag", type="boolean", is_nullable=False)]

        with self.assertRaises(RecordValidationError) as ctx:
            validate_record_values(columns, {"flag": None})
        self.assertIn("flag", ctx.exception.field_errors)
        self.assertEqual(validate_record_values(columns, {"flag": False}), {"flag": False})

    def test_nullable_boolean_accepts_only_tri_state_values(self) -> None:
        columns = [ColumnDefinition(name="flag", type="boolean", is_nullable=True)]

        for value in (None, True, False):
            self.assertEqual(validate_record_values(columns, {"flag": value}), {"flag": value})
        for value in ("yes", 1, "true"):
            with self.assertRaises(RecordValidationError):
                validate_record_values(columns, {"flag": value})

    def test_float_rejects_non_finite_numbers(self) -> None:
        columns = [ColumnDefinition(name="ratio", type="float", is_nullable=False)]

        with self.assertRaises(RecordValidationError):
            validate_record_values(columns, {"ratio": float("inf")})
        self.assertEqual(validate_record_values(columns, {"ratio": "0.25"}), {"ratio": 0.25})

    def test_uuid_validation(self) -> None:
        columns = [ColumnDefinition(name="ref", type="uuid", is_nullable=False, default_value="gen_random_uuid()")]

        self.assertEqual(validate_record_values(columns, {"ref": ""}), {})
        with self.assertRaises(RecordValidationError) as ctx:
            validate_record_values(columns, {"ref": "not-a-uuid"})
        self.assertEqual(ctx.exception.field_errors["ref"], "Invalid UUID")

    def test_non_nullable_json_rejects_null(self) -> None:
        columns = [ColumnDefinition(name="payload", type="json", is_nullable=False)]

        with self.assertRaises(RecordValidationError):
            validate_record_values(columns, {"payload": None})
        self.assertEqual(validate_record_values(columns, {"payload": "[1, 2]"}), {"payload": [1, 2]})

    def test_unknown_types_pass_through(self) -> None:
        columns = [ColumnDefinition(name="shape", type="geometry", is_nullable=False)]

        model = build_validation_model(columns)
        instance = model.model_validate({"shape": {"type": "Point"}})

        self.assertEqual(instance.model_dump(by_alias=True), {"shape": {"type": "Point"}})

    def test_column_names_that_are_not_identifiers(self) -> None:
        columns = [ColumnDefinition(name="first name", type="string", is_nullable=False)]

        self.assertEqual(validate_record_values(columns, {"first name": "Ada"}), {"first name": "Ada"})


if __name__ == "__main__":
    unittest.main()
