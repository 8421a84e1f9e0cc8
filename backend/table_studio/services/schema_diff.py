"""Schema diff computation between an original and an edited table definition."""

from __future__ import annotations

from collections import Counter

from table_studio.schemas.schema_diff import SchemaDiff
from table_studio.schemas.table import (
    SYSTEM_COLUMNS,
    ColumnDefinition,
    ForeignKeyDefinition,
    TableDefinition,
)


def compute_schema_diff(
    original: TableDefinition,
    edited: TableDefinition,
    *,
    system_columns: tuple[str, ...] = SYSTEM_COLUMNS,
) -> SchemaDiff:
    """Compute add/drop/rename column and foreign key operations.

    Renames are detected only through ``original_name``: an edited column that
    carries one is an existing column, one without it is new. Rename swaps and
    chains are reported as given; ``find_diff_conflicts`` flags them.
    """

    diff = SchemaDiff()
    original_user_columns = original.user_columns(system_columns)
    original_names = {column.name for column in original.columns}
    seen_original_names: set[str] = set()

    for column in edited.columns:
        if column.original_name is not None:
            seen_original_names.add(column.original_name)
            if column.original_name != column.name:
                diff.rename_columns[column.original_name] = column.name
            continue
        if _is_system_column(column, system_columns) and column.name in original_names:
            # Platform columns re-listed without edit tags are unchanged.
            seen_original_names.add(column.name)
            continue
        diff.add_columns.append(_normalize_new_column(column))

    diff.drop_columns = [
        column.name for column in original_user_columns if column.name not in seen_original_names
    ]
    dropped = set(diff.drop_columns)

    original_foreign_keys = {fk.column_name: fk for fk in original.foreign_keys}
    matched_original_keys: set[str] = set()
    for foreign_key in edited.foreign_keys:
        identity = _original_identity(edited, foreign_key.column_name, original_names)
        existing = original_foreign_keys.get(identity) if identity is not None else None
        if existing is None:
            diff.add_foreign_keys.append(foreign_key)
            continue
        matched_original_keys.add(identity)
        if not existing.same_target(foreign_key):
            diff.update_foreign_keys.append(foreign_key)

    diff.drop_foreign_keys = [
        column_name
        for column_name in original_foreign_keys
        if column_name not in matched_original_keys and column_name not in dropped
    ]
    return diff


def find_diff_conflicts(
    original: TableDefinition,
    edited: TableDefinition,
    *,
    system_columns: tuple[str, ...] = SYSTEM_COLUMNS,
) -> list[str]:
    """Return human-readable reasons why an edit cannot be submitted safely."""

    conflicts: list[str] = []
    original_by_name = {column.name: column for column in original.columns}
    edited_names = [column.name for column in edited.columns]

    for name, count in Counter(edited_names).items():
        if count > 1:
            conflicts.append(f"Column name '{name}' is used {count} times.")

    tag_counts = Counter(column.original_name for column in edited.columns if column.original_name is not None)
    for tag, count in tag_counts.items():
        if count > 1:
            conflicts.append(f"Original column '{tag}' is claimed by {count} edited columns.")

    for column in edited.columns:
        if column.original_name is None:
            continue
        source = original_by_name.get(column.original_name)
        if source is None:
            conflicts.append(f"Column '{column.name}' refers to unknown original column '{column.original_name}'.")
            continue
        if column.type != source.type:
            conflicts.append(f"Changing the type of existing column '{source.name}' is not supported.")
        if column.original_name != column.name and column.name in original_by_name:
            conflicts.append(
                f"Rename of '{column.original_name}' to '{column.name}' collides with existing column '{column.name}'."
            )

    for name in system_columns:
        source = original_by_name.get(name)
        if source is None:
            continue
        survivor = next(
            (
                column
                for column in edited.columns
                if column.original_name == name or (column.original_name is None and column.name == name)
            ),
            None,
        )
        if survivor is None:
            conflicts.append(f"System column '{name}' cannot be dropped.")
        elif survivor.name != name:
            conflicts.append(f"System column '{name}' cannot be renamed.")
        elif survivor.type != source.type:
            conflicts.append(f"System column '{name}' cannot be retyped.")

    edited_name_set = set(edited_names)
    for foreign_key in edited.foreign_keys:
        if foreign_key.column_name not in edited_name_set:
            conflicts.append(
                f"Foreign key on '{foreign_key.column_name}' references a column that is not in the table."
            )
    return conflicts


def apply_schema_diff(original: TableDefinition, diff: SchemaDiff) -> TableDefinition:
    """Apply a diff to a table definition, producing the resulting schema."""

    dropped = set(diff.drop_columns)
    columns: list[ColumnDefinition] = []
    for column in original.columns:
        if column.name in dropped:
            continue
        new_name = diff.rename_columns.get(column.name, column.name)
        columns.append(column.model_copy(update={"name": new_name, "original_name": None}))
    columns.extend(column.model_copy(update={"original_name": None}) for column in diff.add_columns)

    dropped_keys = set(diff.drop_foreign_keys) | dropped
    updates = {fk.column_name: fk for fk in diff.update_foreign_keys}
    foreign_keys: list[ForeignKeyDefinition] = []
    for foreign_key in original.foreign_keys:
        if foreign_key.column_name in dropped_keys:
            continue
        new_column_name = diff.rename_columns.get(foreign_key.column_name, foreign_key.column_name)
        replacement = updates.pop(new_column_name, None)
        if replacement is not None:
            foreign_keys.append(replacement)
        else:
            foreign_keys.append(foreign_key.model_copy(update={"column_name": new_column_name}))
    foreign_keys.extend(updates.values())
    foreign_keys.extend(diff.add_foreign_keys)

    return TableDefinition(
        name=original.name,
        columns=columns,
        foreign_keys=foreign_keys,
        record_count=original.record_count,
    )


def strip_edit_tags(table: TableDefinition) -> TableDefinition:
    """Drop edit-session identity tags and normalize empty defaults."""

    return table.model_copy(
        update={
            "columns": tuple(
                column.model_copy(update={"original_name": None, "default_value": column.default_value or None})
                for column in table.columns
            )
        }
    )


def _normalize_new_column(column: ColumnDefinition) -> ColumnDefinition:
    return column.model_copy(update={"default_value": column.default_value or None, "original_name": None})


def _is_system_column(column: ColumnDefinition, system_columns: tuple[str, ...]) -> bool:
    return column.is_system_column or column.name in system_columns


def _original_identity(edited: TableDefinition, column_name: str, original_names: set[str]) -> str | None:
    column = edited.get_column(column_name)
    if column is None:
        return None
    if column.original_name is not None:
        return column.original_name
    if column.is_system_column and column.name in original_names:
        return column.name
    return None
