import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from datajobs.modules.scheduler.exceptions import QueryExecutionError
from datajobs.modules.scheduler.query_executors import SqlAlchemyQueryExecutor, build_query_executors


@pytest.fixture
def sqlite_executor():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    executor = SqlAlchemyQueryExecutor("redshift", "sqlite://", engine=engine)
    yield executor
    executor.dispose()


@pytest.mark.asyncio
async def test_select_returns_rows(sqlite_executor):
    result = await sqlite_executor.execute_query("SELECT 1 AS a, 'x' AS b UNION ALL SELECT 2, 'y'")

    assert result.columns == ["a", "b"]
    assert result.rows == [{"a": 1, "b": "x"}, {"a": 2, "b": "y"}]
    assert result.row_count == 2


@pytest.mark.asyncio
async def test_statements_without_rows(sqlite_executor):
    await sqlite_executor.execute_query("CREATE TABLE t (id INTEGER)")
    result = await sqlite_executor.execute_query("INSERT INTO t (id) VALUES (1), (2)")
    assert result.rows == []
    assert result.row_count == 2

    selected = await sqlite_executor.execute_query("SELECT id FROM t ORDER BY id")
    assert [row["id"] for row in selected.rows] == [1, 2]


@pytest.mark.asyncio
async def test_query_error_is_wrapped(sqlite_executor):
    with pytest.raises(QueryExecutionError, match="Redshift query error"):
        await sqlite_executor.execute_query("SELECT * FROM no_such_table")


def test_build_query_executors():
    executors = build_query_executors({"sqlserver": "mssql+pyodbc://example"})
    assert list(executors) == ["sqlserver"]
    assert executors["sqlserver"].label == "SQL Server"
