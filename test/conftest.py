import uuid
from typing import Dict, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from datajobs.core.database import Base
from datajobs.modules.scheduler import models  # noqa: F401
from datajobs.modules.scheduler import schemas
from datajobs.modules.scheduler.exceptions import QueryExecutionError
from datajobs.modules.scheduler.service import JobService
from datajobs.util import time_util

_UNSET = object()


class FakeQueryExecutor:
    """Returns canned rows per SQL text; SQL listed in `errors` raises instead."""

    def __init__(self, name: str):
        self.name = name
        self.results: Dict[str, List[dict]] = {}
        self.errors: Dict[str, str] = {}
        self.calls: List[str] = []

    async def execute_query(self, sql: str) -> schemas.QueryResult:
        self.calls.append(sql)
        if sql in self.errors:
            raise QueryExecutionError(self.errors[sql])
        rows = self.results.get(sql, [])
        return schemas.QueryResult(columns=list(rows[0]) if rows else [], rows=rows, row_count=len(rows))


class FakeJobService:
    """In-memory stand-in for JobService with the same coroutine interface."""

    def __init__(self):
        self.jobs: Dict[str, schemas.Job] = {}
        self.executions: Dict[str, schemas.Execution] = {}
        self.step_result_updates: List[int] = []
        self.last_run_updates: List[str] = []

    def add_job(self, job: schemas.Job) -> schemas.Job:
        self.jobs[job.id] = job
        return job

    async def get_job(self, job_id):
        return self.jobs.get(job_id)

    async def get_jobs(self, *, is_active=None, limit=50, **_filters):
        jobs = [j for j in self.jobs.values() if is_active is None or j.is_active == is_active]
        return jobs[:limit], len(jobs)

    async def create_execution(self, job_id, trigger_type):
        execution = schemas.Execution(
            id=uuid.uuid4().hex,
            job_id=job_id,
            status='pending',
            trigger_type=trigger_type,
            started_at=time_util.get_current_utc_time(),
        )
        self.executions[execution.id] = execution
        return execution

    async def update_execution(self, execution_id, *, status=None, error_message=_UNSET,
                               rows_processed=_UNSET, step_results=None, completed=False):
        patch = {}
        if status:
            patch['status'] = status
        if error_message is not _UNSET:
            patch['error_message'] = error_message
        if rows_processed is not _UNSET:
            patch['rows_processed'] = rows_processed
        if step_results is not None:
            patch['step_results'] = list(step_results)
            self.step_result_updates.append(len(step_results))
        if completed:
            patch['completed_at'] = time_util.get_current_utc_time()
            patch['duration_seconds'] = 0
        updated = self.executions[execution_id].model_copy(update=patch)
        self.executions[execution_id] = updated
        return updated

    async def get_execution(self, execution_id):
        return self.executions.get(execution_id)

    async def update_last_run_time(self, job_id):
        self.last_run_updates.append(job_id)


class RecordingBroadcaster:
    def __init__(self):
        self.messages = []

    def broadcast(self, job_id, message):
        self.messages.append((job_id, message))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def job_service(session_factory):
    return JobService(session_factory)


@pytest.fixture
def fake_job_service():
    return FakeJobService()


@pytest.fixture
def executors():
    return {
        'sqlserver': FakeQueryExecutor('sqlserver'),
        'redshift': FakeQueryExecutor('redshift'),
    }


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def make_job():
    def _make_job(steps=None, error_handling='stop', **overrides) -> schemas.Job:
        data = {
            'id': uuid.uuid4().hex,
            'job_name': 'test_job',
            'job_type': 'workflow',
            'is_active': True,
        }
        if steps is not None:
            data['workflow_definition'] = {'steps': steps, 'error_handling': error_handling}
        data.update(overrides)
        return schemas.Job.model_validate(data)
    return _make_job
