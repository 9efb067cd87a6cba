"""
Persistence processors: where imported rows end up.

The executor hands every row that survived the pipeline to a
:class:`RowProcessor`.  The SQLite implementation stages rows as JSON
payloads in one generic table; it does not know anything about the
columns of a particular subject.

Writes are grouped per file: ``persist`` only executes, ``commit`` is
called by the executor once the whole file succeeded and ``rollback``
when it failed.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from bunch_import.core.protocols import Connection
from bunch_import.framework.observers.base import Row

if TYPE_CHECKING:
    from bunch_import.framework.subjects.base import Subject


@runtime_checkable
class RowProcessor(Protocol):
    """Persistence collaborator used by subjects and executors."""

    def get_connection(self) -> Connection:
        """Connection rows are written through."""
        ...

    def persist(self, subject: Subject, row: Row, line: int) -> None:
        """Write one row read from ``line`` of the subject's current file."""
        ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class SqliteRowProcessor:
    """Stage rows in the ``import_rows`` table.

    Example:
        processor = SqliteRowProcessor(SqliteConnection("import.db"))
        processor.persist(subject, {"sku": "A-1"}, line=2)
        processor.commit()
    """

    TABLE = "import_rows"

    def __init__(self, conn: Connection) -> None:
        self.conn = conn
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                serial TEXT NOT NULL,
                uid TEXT,
                subject TEXT NOT NULL,
                line INTEGER NOT NULL,
                payload TEXT NOT NULL,
                imported_at TEXT NOT NULL
            )
            """
        )
        self.conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{self.TABLE}_uid ON {self.TABLE} (uid)")
        self.conn.commit()

    def get_connection(self) -> Connection:
        return self.conn

    def persist(self, subject: Subject, row: Row, line: int) -> None:
        self.conn.execute(
            f"""
            INSERT INTO {self.TABLE} (serial, uid, subject, line, payload, imported_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                subject.serial,
                subject.uid,
                subject.configuration.id,
                line,
                json.dumps(row, default=str),
                datetime.now(UTC).isoformat(),
            ),
        )

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()

    def count_rows(self, *, serial: str | None = None, uid: str | None = None) -> int:
        """Number of staged rows, optionally filtered by run serial or file uid."""
        clauses: list[str] = []
        params: list[Any] = []
        if serial is not None:
            clauses.append("serial = ?")
            params.append(serial)
        if uid is not None:
            clauses.append("uid = ?")
            params.append(uid)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        self.conn.execute(f"SELECT COUNT(*) FROM {self.TABLE}{where}", tuple(params))
        return self.conn.fetchone()[0]

    def fetch_rows(self, uid: str) -> list[Row]:
        """Payloads staged for one file, in line order."""
        self.conn.execute(f"SELECT payload FROM {self.TABLE} WHERE uid = ? ORDER BY line", (uid,))
        return [json.loads(row[0]) for row in self.conn.fetchall()]


__all__ = ["RowProcessor", "SqliteRowProcessor"]
