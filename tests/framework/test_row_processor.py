"""
Tests for bunch_import.framework.processors module.
"""

import json
from unittest.mock import MagicMock

import pytest

from bunch_import.core.sqlite_conn import SqliteConnection
from bunch_import.framework.processors import RowProcessor, SqliteRowProcessor


@pytest.fixture
def processor():
    conn = SqliteConnection(":memory:")
    yield SqliteRowProcessor(conn)
    conn.close()


@pytest.fixture
def subject():
    subject = MagicMock(name="subject")
    subject.serial = "serial-1"
    subject.uid = "uid-1"
    subject.configuration.id = "products"
    return subject


class TestSqliteRowProcessor:
    def test_satisfies_protocol(self, processor):
        assert isinstance(processor, RowProcessor)

    def test_persist_and_commit(self, processor, subject):
        processor.persist(subject, {"sku": "A-1", "qty": 2}, line=2)
        processor.persist(subject, {"sku": "A-2", "qty": None}, line=3)
        processor.commit()

        assert processor.count_rows() == 2
        assert processor.count_rows(uid="uid-1") == 2
        assert processor.count_rows(serial="other") == 0
        assert processor.fetch_rows("uid-1") == [{"sku": "A-1", "qty": 2}, {"sku": "A-2", "qty": None}]

    def test_stored_columns(self, processor, subject):
        processor.persist(subject, {"sku": "A-1"}, line=7)
        processor.commit()

        conn = processor.get_connection()
        conn.execute("SELECT serial, uid, subject, line, payload FROM import_rows")
        row = conn.fetchone()
        assert (row["serial"], row["uid"], row["subject"], row["line"]) == ("serial-1", "uid-1", "products", 7)
        assert json.loads(row["payload"]) == {"sku": "A-1"}

    def test_rollback_discards_file(self, processor, subject):
        processor.persist(subject, {"sku": "A-1"}, line=2)
        processor.commit()
        processor.persist(subject, {"sku": "A-2"}, line=3)
        processor.rollback()
        assert processor.count_rows() == 1

    def test_schema_is_idempotent(self, processor):
        SqliteRowProcessor(processor.get_connection())
        assert processor.count_rows() == 0

    def test_on_disk_database(self, tmp_path, subject):
        path = tmp_path / "nested" / "rows.db"
        conn = SqliteConnection(path)
        SqliteRowProcessor(conn).persist(subject, {"sku": "A-1"}, line=2)
        conn.commit()
        conn.close()

        reopened = SqliteConnection(path)
        try:
            assert SqliteRowProcessor(reopened).count_rows() == 1
        finally:
            reopened.close()
