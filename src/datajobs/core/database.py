from typing import Optional
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, declarative_base
from tenacity import retry, wait_fixed, stop_after_attempt, before_log, after_log, retry_if_exception_type

from datajobs.util.config_util import config

logger = logging.getLogger(__name__)

Base = declarative_base()

# Job store engine; query backends get their own engines in query_executors.
engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """WAL lets the scheduler read jobs while an execution is being written."""
    if dbapi_connection.__class__.__module__ != 'sqlite3':
        return
    try:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.close()
    except Exception as e:
        logger.warning(f"Could not set journal_mode to WAL: {e}")


@retry(
    wait=wait_fixed(3),
    stop=stop_after_attempt(5),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARNING),
    reraise=True,
    retry=retry_if_exception_type(OperationalError)
)
def _connect(database_url: str) -> Engine:
    logger.info("Connecting to the job store...")
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Sessions run on worker threads.
        connect_args = {"check_same_thread": False, "timeout": 15}
    new_engine = create_engine(database_url, connect_args=connect_args)
    with new_engine.connect():
        pass
    return new_engine


def init_db(database_url: Optional[str] = None) -> None:
    global engine, SessionLocal
    if engine is not None:
        return
    url = database_url or config.database_url
    try:
        engine = _connect(url)
    except Exception as e:
        logger.critical(f"Failed to connect to the job store at {url}: {e}", exc_info=True)
        raise
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info("Job store connected.")


def create_tables() -> None:
    """Creates the jobs and job_executions tables if they are missing."""
    if engine is None:
        init_db()
    Base.metadata.create_all(bind=engine)


def get_session_factory() -> sessionmaker:
    if SessionLocal is None:
        init_db()
    return SessionLocal


def dispose_db() -> None:
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    engine = None
    SessionLocal = None
