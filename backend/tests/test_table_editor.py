"""Integration tests for the edit-session orchestrator against the in-memory gateway."""

import threading
import unittest
from unittest import mock

from table_studio.errors import (
    DiffConflictError,
    InvalidEditError,
    PersistenceError,
    StaleSchemaError,
    SubmitInProgressError,
)
from table_studio.schemas.table import ColumnDefinition, ForeignKeyDefinition, TableDefinition
from table_studio.services.gateways import InMemorySchemaGateway
from table_studio.services.schema_diff import compute_schema_diff
from table_studio.services.table_editor import EditState, TableEditOrchestrator

TEAMS = TableDefinition(
    name="teams",
    columns=[
        ColumnDefinition(name="id", type="uuid", is_nullable=False, is_primary_key=True, is_system_column=True),
        ColumnDefinition(name="label", type="string"),
    ],
)
PEOPLE = TableDefinition(
    name="people",
    columns=[
        ColumnDefinition(name="id", type="uuid", is_nullable=False, is_primary_key=True, is_system_column=True),
        ColumnDefinition(name="name", type="string", is_nullable=False),
        ColumnDefinition(name="age", type="integer"),
        ColumnDefinition(name="team_id", type="uuid"),
    ],
    foreign_keys=[ForeignKeyDefinition(column_name="team_id", reference_table="teams", reference_column="id")],
)


class _FlakyWriter:
    """Fails the first ``failures`` schema writes, then delegates."""

    def __init__(self, gateway: InMemorySchemaGateway, failures: int = 1, error: Exception | None = None) -> None:
        self.gateway = gateway
        self.failures = failures
        self.error = error or PersistenceError("schema service timed out")
        self.calls = 0

    def update_table_schema(self, table_name, diff):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.gateway.update_table_schema(table_name, diff)

    def create_table(self, table_name, columns, foreign_keys):
        return self.gateway.create_table(table_name, columns, foreign_keys)


class _ReentrantWriter:
    """Tries to submit and edit again while a submit is in flight."""

    def __init__(self, gateway: InMemorySchemaGateway) -> None:
        self.gateway = gateway
        self.orchestrator: TableEditOrchestrator | None = None
        self.errors: list[Exception] = []

    def update_table_schema(self, table_name, diff):
        try:
            self.orchestrator.submit()
        except SubmitInProgressError as exc:
            self.errors.append(exc)
        try:
            self.orchestrator.add_column(ColumnDefinition(name="late"))
        except InvalidEditError as exc:
            self.errors.append(exc)
        return self.gateway.update_table_schema(table_name, diff)

    def create_table(self, table_name, columns, foreign_keys):
        return self.gateway.create_table(table_name, columns, foreign_keys)


class _GatedWriter:
    """Holds the schema write until ``release`` is set."""

    def __init__(self, gateway: InMemorySchemaGateway) -> None:
        self.gateway = gateway
        self.release = threading.Event()

    def update_table_schema(self, table_name, diff):
        self.release.wait(timeout=5)
        return self.gateway.update_table_schema(table_name, diff)

    def create_table(self, table_name, columns, foreign_keys):
        return self.gateway.create_table(table_name, columns, foreign_keys)


def _gateway() -> InMemorySchemaGateway:
    return InMemorySchemaGateway(
        tables=[TEAMS, PEOPLE],
        rows={"people": [{"id": "p-1", "name": "Ada", "age": 36, "team_id": None}]},
    )


class LoadAndEditTests(unittest.TestCase):
    def setUp(self) -> None:
        self.gateway = _gateway()
        self.orchestrator = TableEditOrchestrator(self.gateway, self.gateway, reference_reader=self.gateway)
        self.orchestrator.load("people")

    def test_load_tags_current_and_keeps_original_untagged(self) -> None:
        self.assertEqual(self.orchestrator.state, EditState.LOADED)
        self.assertTrue(all(column.original_name == column.name for column in self.orchestrator.current.columns))
        self.assertTrue(all(column.original_name is None for column in self.orchestrator.original.columns))
        self.assertEqual(self.orchestrator.original.record_count, 1)
        self.assertTrue(self.orchestrator.preview_diff().is_empty)

    def test_added_column_gets_catalog_nullability_unless_explicit(self) -> None:
        self.orchestrator.add_column(ColumnDefinition(name="active", type="boolean"))
        self.orchestrator.add_column(ColumnDefinition(name="retired", type="boolean", is_nullable=True))

        current = self.orchestrator.current
        self.assertFalse(current.get_column("active").is_nullable)
        self.assertTrue(current.get_column("retired").is_nullable)
        self.assertEqual(self.orchestrator.state, EditState.EDITING)
        self.assertTrue(self.orchestrator.session.is_dirty)

    def test_reserved_and_duplicate_names_are_rejected(self) -> None:
        with self.assertRaises(InvalidEditError):
            self.orchestrator.add_column(ColumnDefinition(name="created_at", type="datetime"))
        with self.assertRaises(InvalidEditError):
            self.orchestrator.add_column(ColumnDefinition(name="age", type="integer"))
        with self.assertRaises(InvalidEditError):
            self.orchestrator.rename_column("age", "name")
        with self.assertRaises(InvalidEditError):
            self.orchestrator.remove_column("id")

    def test_remove_column_drops_its_foreign_key(self) -> None:
        self.orchestrator.remove_column("team_id")

        self.assertEqual(self.orchestrator.current.foreign_keys, ())
        diff = self.orchestrator.preview_diff()
        self.assertEqual(diff.drop_columns, ["team_id"])
        self.assertEqual(diff.drop_foreign_keys, [])

    def test_rename_carries_foreign_key_along(self) -> None:
        self.orchestrator.rename_column("team_id", "squad_id")

        self.assertEqual(self.orchestrator.current.foreign_keys[0].column_name, "squad_id")
        diff = self.orchestrator.preview_diff()
        self.assertEqual(diff.rename_columns, {"team_id": "squad_id"})
        self.assertEqual(diff.update_foreign_keys, [])

    def test_only_new_columns_accept_definition_changes(self) -> None:
        with self.assertRaises(InvalidEditError):
            self.orchestrator.update_column("age", is_nullable=False)
        with self.assertRaises(InvalidEditError):
            self.orchestrator.retype_column("age", "string")

        self.orchestrator.add_column(ColumnDefinition(name="score", type="integer"))
        self.orchestrator.update_column("score", type="float", default_value="0")

        score = self.orchestrator.current.get_column("score")
        self.assertEqual(score.type, "float")
        self.assertEqual(score.default_value, "0")

    def test_foreign_key_targets_must_be_unique(self) -> None:
        self.orchestrator.add_column(ColumnDefinition(name="mentor_id", type="uuid"))

        with self.assertRaises(InvalidEditError):
            self.orchestrator.add_foreign_key(
                ForeignKeyDefinition(column_name="mentor_id", reference_table="people", reference_column="name")
            )
        with self.assertRaises(InvalidEditError):
            self.orchestrator.add_foreign_key(
                ForeignKeyDefinition(column_name="mentor_id", reference_table="ghosts", reference_column="id")
            )
        self.orchestrator.add_foreign_key(
            ForeignKeyDefinition(column_name="mentor_id", reference_table="people", reference_column="id")
        )

        self.assertEqual(len(self.orchestrator.current.foreign_keys), 2)

    def test_update_and_remove_foreign_key(self) -> None:
        with self.assertRaises(InvalidEditError):
            self.orchestrator.update_foreign_key(
                ForeignKeyDefinition(column_name="age", reference_table="teams", reference_column="id")
            )

        self.orchestrator.update_foreign_key(
            ForeignKeyDefinition(column_name="team_id", reference_table="teams", reference_column="id", on_delete="CASCADE")
        )
        self.assertEqual(len(self.orchestrator.preview_diff().update_foreign_keys), 1)

        self.orchestrator.remove_foreign_key("team_id")
        self.assertEqual(self.orchestrator.preview_diff().drop_foreign_keys, ["team_id"])

    def test_failed_batch_restores_previous_snapshot(self) -> None:
        orchestrator = self.orchestrator
        orchestrator.rename_column("age", "years")
        before = orchestrator.current

        with self.assertRaises(InvalidEditError):
            with orchestrator.batch():
                orchestrator.add_column(ColumnDefinition(name="email"))
                orchestrator.remove_column("missing")

        self.assertIs(orchestrator.current, before)
        self.assertEqual(orchestrator.session.dirty_columns, {"age"})
        self.assertEqual(orchestrator.state, EditState.EDITING)

    def test_cancel_returns_to_idle(self) -> None:
        self.orchestrator.add_column(ColumnDefinition(name="email"))

        self.orchestrator.cancel()

        self.assertEqual(self.orchestrator.state, EditState.IDLE)
        self.assertIsNone(self.orchestrator.current)
        with self.assertRaises(InvalidEditError):
            self.orchestrator.refresh_base()


class SubmitTests(unittest.TestCase):
    def test_successful_submit_adopts_confirmed_schema(self) -> None:
        gateway = _gateway()
        orchestrator = TableEditOrchestrator(gateway, gateway)
        orchestrator.load("people")
        orchestrator.rename_column("age", "years")
        orchestrator.add_column(ColumnDefinition(name="email", type="string"))

        confirmed = orchestrator.submit()

        self.assertEqual(confirmed.column_names, ["id", "name", "years", "team_id", "email"])
        self.assertEqual(orchestrator.state, EditState.SUCCESS)
        self.assertFalse(orchestrator.session.is_dirty)
        self.assertEqual(orchestrator.original.column_names, confirmed.column_names)
        self.assertEqual(orchestrator.current.get_column("years").original_name, "years")
        table_name, diff = gateway.applied_diffs[0]
        self.assertEqual(table_name, "people")
        self.assertEqual(diff.rename_columns, {"age": "years"})
        self.assertEqual(gateway.list_records("people")[0]["years"], 36)

    def test_empty_diff_makes_no_call(self) -> None:
        gateway = _gateway()
        orchestrator = TableEditOrchestrator(gateway, gateway)
        orchestrator.load("people")

        result = orchestrator.submit()

        self.assertEqual(result.name, "people")
        self.assertEqual(gateway.applied_diffs, [])

    def test_failed_submit_marks_base_stale_until_refreshed(self) -> None:
        gateway = _gateway()
        writer = _FlakyWriter(gateway)
        orchestrator = TableEditOrchestrator(gateway, writer)
        orchestrator.load("people")
        orchestrator.rename_column("age", "years")

        with self.assertLogs("table_studio.services.table_editor", level="ERROR"):
            with self.assertRaises(PersistenceError):
                orchestrator.submit()

        self.assertEqual(orchestrator.state, EditState.FAILED)
        self.assertTrue(orchestrator.session.base_is_stale)
        self.assertIn("timed out", orchestrator.session.last_error)
        with self.assertRaises(StaleSchemaError):
            orchestrator.add_column(ColumnDefinition(name="email"))

        orchestrator.refresh_base()

        self.assertEqual(orchestrator.state, EditState.EDITING)
        self.assertIsNotNone(orchestrator.current.get_column("years"))
        orchestrator.add_column(ColumnDefinition(name="email"))

    def test_submit_after_failure_refreshes_base_first(self) -> None:
        gateway = _gateway()
        writer = _FlakyWriter(gateway)
        orchestrator = TableEditOrchestrator(gateway, writer)
        orchestrator.load("people")
        orchestrator.rename_column("age", "years")
        with self.assertLogs("table_studio.services.table_editor", level="ERROR"):
            with self.assertRaises(PersistenceError):
                orchestrator.submit()

        confirmed = orchestrator.submit()

        self.assertEqual(writer.calls, 2)
        self.assertIn("years", confirmed.column_names)
        self.assertEqual(orchestrator.state, EditState.SUCCESS)
        self.assertFalse(orchestrator.session.base_is_stale)

    def test_conflicting_edit_is_not_submitted(self) -> None:
        gateway = _gateway()
        orchestrator = TableEditOrchestrator(gateway, gateway)
        orchestrator.load("people")
        orchestrator.rename_column("name", "label")
        orchestrator.rename_column("age", "name")

        with self.assertRaises(DiffConflictError) as ctx:
            orchestrator.submit()

        self.assertTrue(any("collides" in conflict for conflict in ctx.exception.conflicts))
        self.assertEqual(gateway.applied_diffs, [])
        self.assertIsNotNone(orchestrator.session.last_error)

    def test_second_submit_and_edits_are_rejected_while_in_flight(self) -> None:
        gateway = _gateway()
        writer = _ReentrantWriter(gateway)
        orchestrator = TableEditOrchestrator(gateway, writer)
        writer.orchestrator = orchestrator
        orchestrator.load("people")
        orchestrator.add_column(ColumnDefinition(name="email"))

        orchestrator.submit()

        self.assertEqual([type(error) for error in writer.errors], [SubmitInProgressError, InvalidEditError])
        self.assertEqual(len(gateway.applied_diffs), 1)
        self.assertIsNone(orchestrator.current.get_column("late"))

    def test_non_persistence_failure_still_marks_submit_failed(self) -> None:
        gateway = _gateway()
        writer = _FlakyWriter(gateway, error=TimeoutError("read timed out"))
        orchestrator = TableEditOrchestrator(gateway, writer)
        orchestrator.load("people")
        orchestrator.rename_column("age", "years")

        with self.assertLogs("table_studio.services.table_editor", level="ERROR"):
            with self.assertRaises(TimeoutError):
                orchestrator.submit()

        self.assertEqual(orchestrator.state, EditState.FAILED)
        self.assertTrue(orchestrator.session.base_is_stale)
        self.assertIsNotNone(orchestrator.current.get_column("years"))
        orchestrator.refresh_base()
        orchestrator.rename_column("years", "age_years")
        self.assertEqual(orchestrator.submit().column_names, ["id", "name", "age_years", "team_id"])

    def test_edit_racing_the_diff_is_rejected_not_lost(self) -> None:
        gateway = _gateway()
        writer = _GatedWriter(gateway)
        orchestrator = TableEditOrchestrator(gateway, writer)
        orchestrator.load("people")
        orchestrator.rename_column("age", "years")
        outcomes: list[object] = []

        def late_rename() -> None:
            try:
                orchestrator.rename_column("name", "full_name")
            except InvalidEditError as exc:
                outcomes.append(exc)
            else:
                outcomes.append("applied")
            finally:
                writer.release.set()

        editor = threading.Thread(target=late_rename)

        def diff_with_concurrent_edit(*args, **kwargs):
            editor.start()
            editor.join(timeout=0.2)
            return compute_schema_diff(*args, **kwargs)

        with mock.patch(
            "table_studio.services.table_editor.compute_schema_diff",
            side_effect=diff_with_concurrent_edit,
        ):
            confirmed = orchestrator.submit()
        editor.join(timeout=5)

        self.assertEqual([type(outcome) for outcome in outcomes], [InvalidEditError])
        self.assertIn("in flight", str(outcomes[0]))
        self.assertEqual(confirmed.column_names, ["id", "name", "years", "team_id"])
        self.assertEqual(gateway.applied_diffs[0][1].rename_columns, {"age": "years"})


class CreateTableTests(unittest.TestCase):
    def test_new_table_is_seeded_with_system_columns(self) -> None:
        orchestrator = TableEditOrchestrator(_gateway(), _gateway())

        table = orchestrator.start_new_table("projects")

        self.assertEqual(table.column_names, ["id", "created_at", "updated_at"])
        self.assertTrue(table.get_column("id").is_primary_key)
        self.assertTrue(all(column.is_system_column for column in table.columns))
        self.assertTrue(orchestrator.session.creating)

    def test_create_requires_a_user_column(self) -> None:
        gateway = _gateway()
        orchestrator = TableEditOrchestrator(gateway, gateway)
        orchestrator.start_new_table("projects")

        with self.assertRaises(InvalidEditError):
            orchestrator.submit()
        self.assertNotIn("projects", gateway.list_tables())

    def test_create_submit_persists_table(self) -> None:
        gateway = _gateway()
        orchestrator = TableEditOrchestrator(gateway, gateway, reference_reader=gateway)
        orchestrator.start_new_table("projects")
        orchestrator.add_column(ColumnDefinition(name="title", type="string"))
        orchestrator.update_column("title", is_nullable=False)
        orchestrator.add_column(ColumnDefinition(name="team_id", type="uuid"))
        orchestrator.add_foreign_key(
            ForeignKeyDefinition(column_name="team_id", reference_table="teams", reference_column="id")
        )

        confirmed = orchestrator.submit()

        self.assertIn("projects", gateway.list_tables())
        self.assertFalse(confirmed.get_column("title").is_nullable)
        self.assertEqual(confirmed.foreign_keys[0].reference_table, "teams")
        self.assertFalse(orchestrator.session.creating)
        self.assertEqual(orchestrator.state, EditState.SUCCESS)

    def test_create_of_existing_table_fails(self) -> None:
        gateway = _gateway()
        orchestrator = TableEditOrchestrator(gateway, gateway)
        orchestrator.start_new_table("people")
        orchestrator.add_column(ColumnDefinition(name="title"))

        with self.assertLogs("table_studio.services.table_editor", level="ERROR"):
            with self.assertRaises(PersistenceError):
                orchestrator.submit()
        self.assertEqual(orchestrator.state, EditState.FAILED)


if __name__ == "__main__":
    unittest.main()
