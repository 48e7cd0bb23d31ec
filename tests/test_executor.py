"""Tests for query execution on a borrowed connection."""

import pytest

from sql_gateway.core.exceptions import QueryError, TimeoutError
from sql_gateway.core.executor import execute
from sql_gateway.core.models import ColumnDescriptor
from sql_gateway.core.types import SQL_INTEGER, SQL_VARCHAR
from tests.fakes import FakeCursor, FakeDriver, FakeDriverError, FakeTimeout


@pytest.fixture
def handle(provisioner):
    handle = provisioner.acquire()
    yield handle
    provisioner.release(handle)


@pytest.mark.unit
class TestExecute:
    def test_returns_columns_and_rows(self, handle):
        result = execute(handle, "SELECT id, name FROM people")
        assert result.columns == [
            ColumnDescriptor(name="id", type_code=SQL_INTEGER),
            ColumnDescriptor(name="name", type_code=SQL_VARCHAR),
        ]
        assert result.rows == [(1, "alice"), (2, "bob")]
        assert result.row_count == 2

    def test_params_bound_in_order(self, handle, fake_driver):
        execute(handle, "SELECT * FROM people WHERE id = ? AND name = ?", [1, "alice"])
        assert fake_driver.cursor.executed == [
            ("SELECT * FROM people WHERE id = ? AND name = ?", [1, "alice"])
        ]

    def test_cursor_closed(self, handle, fake_driver):
        execute(handle, "SELECT 1")
        assert fake_driver.cursor.closed is True

    def test_statement_without_result_set(self, provisioner, fake_driver):
        fake_driver.cursor = FakeCursor(description=None)
        with provisioner.connection() as handle:
            result = execute(handle, "SET search_path TO public")
        assert result.columns == []
        assert result.rows == []
        assert result.row_count == 0


@pytest.mark.unit
class TestExecuteErrors:
    def make_handle(self, provisioner, fake_driver, error):
        fake_driver.cursor = FakeCursor(error=error)
        return provisioner.acquire()

    def test_driver_error_becomes_query_error(self, provisioner, fake_driver):
        handle = self.make_handle(
            provisioner, fake_driver, FakeDriverError("no such table", sqlstate="42S02")
        )
        with pytest.raises(QueryError, match="no such table") as exc_info:
            execute(handle, "SELECT * FROM missing")
        assert exc_info.value.code == "42S02"
        assert not isinstance(exc_info.value, TimeoutError)
        assert isinstance(exc_info.value.__cause__, FakeDriverError)
        assert fake_driver.cursor.closed is True
        assert handle.broken is False

    def test_timeout(self, provisioner, fake_driver):
        handle = self.make_handle(provisioner, fake_driver, FakeTimeout())
        with pytest.raises(TimeoutError) as exc_info:
            execute(handle, "SELECT pg_sleep(100)")
        assert exc_info.value.code == "HYT00"

    def test_disconnect_marks_handle_broken(self, provisioner, fake_driver):
        error = FakeDriverError("connection reset", sqlstate="08S01", disconnect=True)
        handle = self.make_handle(provisioner, fake_driver, error)
        with pytest.raises(QueryError):
            execute(handle, "SELECT 1")
        assert handle.broken is True

    def test_foreign_error_propagates_unchanged(self, provisioner, fake_driver):
        handle = self.make_handle(provisioner, fake_driver, RuntimeError("bug"))
        with pytest.raises(RuntimeError, match="bug"):
            execute(handle, "SELECT 1")
        assert fake_driver.cursor.closed is True

    def test_unclosable_cursor_does_not_mask_result(self, provisioner):
        class StickyCursor(FakeCursor):
            def close(self):
                raise OSError("already gone")

        driver = FakeDriver(
            StickyCursor(description=[("id", SQL_INTEGER)], rows=[(1,)])
        )
        handle = provisioner.acquire()
        handle.driver = driver
        handle.connection.next_cursor = driver.cursor
        result = execute(handle, "SELECT 1")
        assert result.rows == [(1,)]
