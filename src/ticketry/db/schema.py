"""
Schema migration steps.

A plugin describes its schema as an ordered list of steps. The host applies
the steps it has not yet applied, recording the index of the last one that
succeeded, so a schema only ever grows by appending steps.

Example:
    >>> def schema(plugin):
    >>>     return [
    >>>         CreateTable(plugin.table("note"), [
    >>>             Column("id", Integer, primary_key=True),
    >>>             Column("body", Text, nullable=False),
    >>>         ]),
    >>>         CreateIndex("idx_note_body", plugin.table("note"), ["body"]),
    >>>     ]
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Sequence

import sqlalchemy as sa
from alembic.operations import Operations

if TYPE_CHECKING:
    from ticketry.db.database import Database


class SchemaStep:
    """A single structural database operation."""

    @property
    def target(self) -> str:
        """Name of the table the step operates on."""
        raise NotImplementedError

    def apply(self, ops: Operations, db: "Database") -> None:
        """Execute the step."""
        raise NotImplementedError


@dataclass
class CreateTable(SchemaStep):
    name: str
    columns: Sequence[Any]
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str:
        return self.name

    def apply(self, ops: Operations, db: "Database") -> None:
        ops.create_table(self.name, *self.columns, **self.options)


@dataclass
class DropTable(SchemaStep):
    name: str

    @property
    def target(self) -> str:
        return self.name

    def apply(self, ops: Operations, db: "Database") -> None:
        ops.drop_table(self.name)


@dataclass
class RenameTable(SchemaStep):
    old_name: str
    new_name: str

    @property
    def target(self) -> str:
        return self.old_name

    def apply(self, ops: Operations, db: "Database") -> None:
        ops.rename_table(self.old_name, self.new_name)


@dataclass
class AddColumn(SchemaStep):
    table: str
    column: sa.Column

    @property
    def target(self) -> str:
        return self.table

    def apply(self, ops: Operations, db: "Database") -> None:
        ops.add_column(self.table, self.column)


@dataclass
class AlterColumn(SchemaStep):
    """
    Change a column's type, nullability, default or name.

    Runs in batch mode so it also works on SQLite, which cannot alter
    columns in place.
    """

    table: str
    column_name: str
    changes: Dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str:
        return self.table

    def apply(self, ops: Operations, db: "Database") -> None:
        with ops.batch_alter_table(self.table) as batch:
            batch.alter_column(self.column_name, **self.changes)


@dataclass
class DropColumn(SchemaStep):
    table: str
    column_name: str

    @property
    def target(self) -> str:
        return self.table

    def apply(self, ops: Operations, db: "Database") -> None:
        with ops.batch_alter_table(self.table) as batch:
            batch.drop_column(self.column_name)


@dataclass
class CreateIndex(SchemaStep):
    name: str
    table: str
    columns: List[str]
    unique: bool = False

    @property
    def target(self) -> str:
        return self.table

    def apply(self, ops: Operations, db: "Database") -> None:
        ops.create_index(self.name, self.table, self.columns, unique=self.unique)


@dataclass
class DropIndex(SchemaStep):
    name: str
    table: str

    @property
    def target(self) -> str:
        return self.table

    def apply(self, ops: Operations, db: "Database") -> None:
        ops.drop_index(self.name, table_name=self.table)


@dataclass
class InsertData(SchemaStep):
    """Insert rows (dicts keyed by column name) into a table."""

    table: str
    rows: List[Dict[str, Any]]

    @property
    def target(self) -> str:
        return self.table

    def apply(self, ops: Operations, db: "Database") -> None:
        if not self.rows:
            return
        keys: List[str] = []
        for row in self.rows:
            keys.extend(key for key in row if key not in keys)
        table = sa.table(self.table, *[sa.column(key) for key in keys])
        # Rows are inserted as one batch, so every row needs every key
        ops.bulk_insert(table, [{key: row.get(key) for key in keys} for row in self.rows])


@dataclass
class UpdateSQL(SchemaStep):
    """Run a raw ``?``-bound statement."""

    sql: str
    params: Sequence[Any] = ()

    @property
    def target(self) -> str:
        return self.sql

    def apply(self, ops: Operations, db: "Database") -> None:
        db.query_bound(self.sql, list(self.params))
