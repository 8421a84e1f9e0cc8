"""Unit tests for type-driven cell dispatch and the cell commit path."""

import unittest

from table_studio.errors import InvalidEditError, RecordValidationError
from table_studio.schemas.table import ColumnDefinition, ForeignKeyDefinition, TableDefinition
from table_studio.services.cell_editors import (
    BooleanCellEditor,
    DateCellEditor,
    EditorResult,
    EditorStatus,
    JsonCellEditor,
    TextCellEditor,
)
from table_studio.services.cells import (
    CellKind,
    CellRegistry,
    CellVariant,
    build_default_registry,
    build_grid_columns,
    commit_cell_edit,
    render_text,
)


def _orders_table() -> TableDefinition:
    return TableDefinition(
        name="orders",
        columns=[
            ColumnDefinition(name="id", type="uuid", is_nullable=False, is_primary_key=True, is_system_column=True),
            ColumnDefinition(name="customer_id", type="uuid"),
            ColumnDefinition(name="paid", type="boolean"),
            ColumnDefinition(name="placed_on", type="date"),
            ColumnDefinition(name="shipped_at", type="datetime"),
            ColumnDefinition(name="meta", type="json"),
            ColumnDefinition(name="note", type="string"),
            ColumnDefinition(name="quantity", type="integer"),
            ColumnDefinition(name="area", type="geometry"),
        ],
        foreign_keys=[
            ForeignKeyDefinition(column_name="customer_id", reference_table="customers", reference_column="id"),
        ],
    )


class CellDispatchTests(unittest.TestCase):
    def test_dispatch_precedence(self) -> None:
        columns = {column.key: column for column in build_grid_columns(_orders_table())}

        self.assertEqual(columns["customer_id"].kind, CellKind.REFERENCE)
        self.assertEqual(columns["id"].kind, CellKind.IDENTITY)
        self.assertEqual(columns["paid"].kind, CellKind.BOOLEAN)
        self.assertEqual(columns["placed_on"].kind, CellKind.DATE)
        self.assertEqual(columns["shipped_at"].kind, CellKind.DATETIME)
        self.assertEqual(columns["meta"].kind, CellKind.JSON)
        self.assertEqual(columns["note"].kind, CellKind.TEXT)
        self.assertEqual(columns["quantity"].kind, CellKind.TEXT)

    def test_editability_and_sortability(self) -> None:
        columns = {column.key: column for column in build_grid_columns(_orders_table())}

        self.assertFalse(columns["id"].editable)
        self.assertFalse(columns["customer_id"].editable)
        self.assertFalse(columns["area"].editable)
        self.assertTrue(columns["note"].editable)
        self.assertTrue(columns["paid"].editable)
        self.assertFalse(columns["meta"].sortable)
        self.assertTrue(columns["placed_on"].sortable)

    def test_references_disabled_fall_back_to_type_variant(self) -> None:
        columns = {
            column.key: column
            for column in build_grid_columns(_orders_table(), allow_references=False, allow_editing=False)
        }

        self.assertEqual(columns["customer_id"].kind, CellKind.TEXT)
        self.assertTrue(all(not column.editable for column in columns.values()))

    def test_editor_factories_follow_kind(self) -> None:
        columns = {column.key: column for column in build_grid_columns(_orders_table())}

        self.assertIsInstance(columns["paid"].open_editor(None), BooleanCellEditor)
        self.assertIsInstance(columns["placed_on"].open_editor("2024-01-01"), DateCellEditor)
        self.assertIsInstance(columns["meta"].open_editor({}), JsonCellEditor)
        self.assertIsInstance(columns["quantity"].open_editor(3), TextCellEditor)
        with self.assertRaises(InvalidEditError):
            columns["customer_id"].open_editor("abc")

    def test_renderers(self) -> None:
        columns = {column.key: column for column in build_grid_columns(_orders_table())}

        self.assertEqual(columns["customer_id"].render(None), "null")
        self.assertEqual(columns["customer_id"].render("c-1"), "c-1")
        self.assertEqual(columns["paid"].render(None), "null")
        self.assertEqual(columns["paid"].render(False), "false")
        self.assertEqual(columns["placed_on"].render("2024-01-02"), "Jan 02, 2024")
        self.assertEqual(columns["meta"].render({"k": 1}), '{"k":1}')

    def test_descriptor_includes_reference_target(self) -> None:
        columns = {column.key: column for column in build_grid_columns(_orders_table())}

        descriptor = columns["customer_id"].to_descriptor()
        self.assertEqual(descriptor["kind"], "reference")
        self.assertEqual(descriptor["reference"], {"table": "customers", "column": "id"})
        self.assertNotIn("reference", columns["note"].to_descriptor())


class CellRegistryTests(unittest.TestCase):
    def test_registered_variant_is_placed_ahead_of_text(self) -> None:
        registry = CellRegistry([variant for variant in build_default_registry().variants if variant.kind != CellKind.JSON])
        meta = ColumnDefinition(name="meta", type="json")
        self.assertEqual(registry.resolve(meta).kind, CellKind.TEXT)

        registry.register(
            CellVariant(
                kind=CellKind.JSON,
                matches=lambda column, foreign_key: column.type == "json",
                renderer=render_text,
            )
        )

        self.assertEqual(registry.resolve(meta).kind, CellKind.JSON)
        self.assertEqual(registry.variants[-1].kind, CellKind.TEXT)

    def test_resolve_without_catch_all_raises(self) -> None:
        registry = CellRegistry([variant for variant in build_default_registry().variants if variant.kind != CellKind.TEXT])

        with self.assertRaises(LookupError):
            registry.resolve(ColumnDefinition(name="email", type="string"))

    def test_duplicate_kind_is_rejected(self) -> None:
        registry = build_default_registry()

        with self.assertRaises(ValueError):
            registry.register(CellVariant(kind=CellKind.JSON, matches=lambda column, foreign_key: True, renderer=render_text))


class CommitCellEditTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls: list[tuple[dict, str, object]] = []

    def _record(self, row: dict, column_name: str, value: object) -> None:
        self.calls.append((row, column_name, value))

    def test_changed_value_is_converted_and_reported(self) -> None:
        column = ColumnDefinition(name="quantity", type="integer")
        row = {"id": "r1", "quantity": 2}

        updated = commit_cell_edit(row, column, EditorResult(EditorStatus.COMMITTED, "5"), self._record)

        self.assertEqual(updated["quantity"], 5)
        self.assertEqual(row["quantity"], 2)
        self.assertEqual(len(self.calls), 1)
        self.assertEqual(self.calls[0][1:], ("quantity", 5))

    def test_unchanged_value_skips_callback(self) -> None:
        column = ColumnDefinition(name="quantity", type="integer")

        commit_cell_edit({"quantity": 5}, column, EditorResult(EditorStatus.COMMITTED, "5"), self._record)
        commit_cell_edit({"quantity": 5}, column, EditorResult(EditorStatus.CANCELLED, 5), self._record)

        self.assertEqual(self.calls, [])

    def test_boolean_change_from_one_to_true_counts_as_change(self) -> None:
        column = ColumnDefinition(name="flag", type="boolean")

        commit_cell_edit({"flag": 1}, column, EditorResult(EditorStatus.COMMITTED, True), self._record)

        self.assertEqual(len(self.calls), 1)

    def test_rows_are_copied_not_shared(self) -> None:
        column = ColumnDefinition(name="note", type="string")
        row = {"note": "a", "meta": {"nested": [1]}}

        updated = commit_cell_edit(row, column, EditorResult(EditorStatus.COMMITTED, "b"))
        updated["meta"]["nested"].append(2)

        self.assertEqual(row["meta"], {"nested": [1]})

    def test_conversion_failure_is_a_validation_error(self) -> None:
        column = ColumnDefinition(name="quantity", type="integer", is_nullable=False)

        with self.assertRaises(RecordValidationError) as ctx:
            commit_cell_edit({"quantity": 1}, column, EditorResult(EditorStatus.COMMITTED, "many"), self._record)

        self.assertIn("quantity", ctx.exception.field_errors)
        self.assertEqual(self.calls, [])

    def test_json_editor_values_survive_the_commit_path(self) -> None:
        column = ColumnDefinition(name="meta", type="json")
        cases = [("42", 42), ("true", True), ('"hello"', "hello"), ('"[1, 2]"', "[1, 2]"), ("[1, 2]", [1, 2])]

        for text, expected in cases:
            with self.subTest(text=text):
                editor = JsonCellEditor(column, None)
                editor.set_text(text)

                updated = commit_cell_edit({"meta": None}, column, editor.save())

                self.assertEqual(updated["meta"], expected)
                self.assertIs(type(updated["meta"]), type(expected))


if __name__ == "__main__":
    unittest.main()
