import asyncio
from typing import Dict, Optional, Protocol

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from datajobs.util import logger_util
from datajobs.util.config_util import config
from .exceptions import QueryExecutionError
from .schemas import QueryResult

logger = logger_util.get_logger(__name__)

BACKEND_LABELS = {
    'sqlserver': 'SQL Server',
    'redshift': 'Redshift',
}


class QueryExecutor(Protocol):
    """Runs one SQL text against a backend and returns every row."""

    async def execute_query(self, sql: str) -> QueryResult:
        ...


class SqlAlchemyQueryExecutor:
    """
    QueryExecutor over a SQLAlchemy URL, e.g. ``mssql+pyodbc://...`` for SQL
    Server or ``postgresql+psycopg2://...`` for Redshift. The DBAPI driver for
    the URL must be installed separately.
    """

    def __init__(self, name: str, url: str, engine: Optional[Engine] = None):
        self.name = name
        self.url = url
        self._engine = engine

    @property
    def label(self) -> str:
        return BACKEND_LABELS.get(self.name, self.name)

    def _get_engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(self.url, pool_pre_ping=True)
        return self._engine

    def _execute(self, sql: str) -> QueryResult:
        with self._get_engine().connect() as conn:
            result = conn.execute(text(sql))
            if not result.returns_rows:
                conn.commit()
                return QueryResult(columns=[], rows=[], row_count=max(result.rowcount, 0))
            columns = list(result.keys())
            rows = [dict(row._mapping) for row in result]
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    async def execute_query(self, sql: str) -> QueryResult:
        try:
            return await asyncio.to_thread(self._execute, sql)
        except SQLAlchemyError as e:
            logger.error(f"{self.label} query error: {e}")
            raise QueryExecutionError(f"{self.label} query error: {e}") from e

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()


def build_query_executors(backend_urls: Optional[Dict[str, str]] = None) -> Dict[str, SqlAlchemyQueryExecutor]:
    """One executor per configured backend name (``sqlserver``, ``redshift``)."""
    urls = config.backend_urls if backend_urls is None else backend_urls
    executors = {name: SqlAlchemyQueryExecutor(name, url) for name, url in urls.items()}
    for name in BACKEND_LABELS:
        if name not in executors:
            logger.warning(f"No connection URL configured for backend '{name}'; its steps will fail.")
    return executors
