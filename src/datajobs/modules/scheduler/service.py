import asyncio
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from datajobs.core import database
from datajobs.util import logger_util, time_util
from . import models, schemas

logger = logger_util.get_logger(__name__)

_UNSET = object()


class JobService:
    """
    Persistent store for job definitions and their executions.

    Every public method is a coroutine; the SQLAlchemy work runs on a worker
    thread so the event loop is never blocked by the database.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def _session(self) -> Session:
        factory = self._session_factory or database.get_session_factory()
        return factory()

    async def _run(self, fn, *args, **kwargs):
        return await asyncio.to_thread(self._in_session, fn, *args, **kwargs)

    def _in_session(self, fn, *args, **kwargs):
        db = self._session()
        try:
            return fn(db, *args, **kwargs)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # --- Jobs ---

    async def create_job(self, job_in: schemas.JobCreate) -> schemas.Job:
        return await self._run(self._create_job, job_in)

    def _create_job(self, db: Session, job_in: schemas.JobCreate) -> schemas.Job:
        data = job_in.model_dump(mode='json', exclude={'id'})
        if job_in.id:
            data['id'] = job_in.id
        schedule = data.get('schedule_config')
        data['schedule_type'] = schedule['schedule_type'] if schedule else None
        db_obj = models.Job(**data)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        logger.info(f"Created job '{db_obj.job_name}' ({db_obj.id}).")
        return schemas.Job.model_validate(db_obj)

    async def get_jobs(
        self,
        *,
        author: Optional[str] = None,
        job_type: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[schemas.Job], int]:
        return await self._run(self._get_jobs, author, job_type, is_active, limit, offset)

    def _get_jobs(self, db: Session, author, job_type, is_active, limit, offset):
        query = select(models.Job)
        if author:
            query = query.where(models.Job.author == author)
        if job_type:
            query = query.where(models.Job.job_type == job_type)
        if is_active is not None:
            query = query.where(models.Job.is_active == is_active)

        total = db.scalar(select(func.count()).select_from(query.subquery()))
        rows = db.scalars(
            query.order_by(models.Job.created_at.desc()).offset(offset).limit(limit)
        ).all()
        return [schemas.Job.model_validate(row) for row in rows], total

    async def get_job(self, job_id: str) -> Optional[schemas.Job]:
        return await self._run(self._get_job, job_id)

    def _get_job(self, db: Session, job_id: str) -> Optional[schemas.Job]:
        db_obj = db.get(models.Job, job_id)
        return schemas.Job.model_validate(db_obj) if db_obj else None

    async def update_job(self, job_id: str, job_in: schemas.JobUpdate) -> Optional[schemas.Job]:
        return await self._run(self._update_job, job_id, job_in)

    def _update_job(self, db: Session, job_id: str, job_in: schemas.JobUpdate) -> Optional[schemas.Job]:
        db_obj = db.get(models.Job, job_id)
        if not db_obj:
            return None
        update_data = job_in.model_dump(mode='json', exclude_unset=True)
        if 'schedule_config' in update_data:
            schedule = update_data['schedule_config']
            db_obj.schedule_type = schedule['schedule_type'] if schedule else None
        for field, value in update_data.items():
            setattr(db_obj, field, value)
        db_obj.updated_at = time_util.get_current_utc_time()
        db.commit()
        db.refresh(db_obj)
        return schemas.Job.model_validate(db_obj)

    async def update_schedule(self, job_id: str, schedule_config: Optional[schemas.ScheduleConfig]) -> Optional[schemas.Job]:
        return await self.update_job(job_id, schemas.JobUpdate(schedule_config=schedule_config))

    async def toggle_job(self, job_id: str) -> Optional[schemas.Job]:
        return await self._run(self._toggle_job, job_id)

    def _toggle_job(self, db: Session, job_id: str) -> Optional[schemas.Job]:
        db_obj = db.get(models.Job, job_id)
        if not db_obj:
            return None
        db_obj.is_active = not db_obj.is_active
        db_obj.updated_at = time_util.get_current_utc_time()
        db.commit()
        db.refresh(db_obj)
        return schemas.Job.model_validate(db_obj)

    async def delete_job(self, job_id: str) -> bool:
        return await self._run(self._delete_job, job_id)

    def _delete_job(self, db: Session, job_id: str) -> bool:
        db_obj = db.get(models.Job, job_id)
        if not db_obj:
            return False
        db.delete(db_obj)
        db.commit()
        return True

    async def update_last_run_time(self, job_id: str) -> None:
        await self._run(self._update_last_run_time, job_id)

    def _update_last_run_time(self, db: Session, job_id: str) -> None:
        db_obj = db.get(models.Job, job_id)
        if db_obj:
            db_obj.last_run_time = time_util.get_current_utc_time()
            db.commit()

    # --- Executions ---

    async def create_execution(self, job_id: str, trigger_type: str) -> schemas.Execution:
        return await self._run(self._create_execution, job_id, trigger_type)

    def _create_execution(self, db: Session, job_id: str, trigger_type: str) -> schemas.Execution:
        db_obj = models.JobExecution(
            job_id=job_id,
            status='pending',
            trigger_type=trigger_type,
            started_at=time_util.get_current_utc_time(),
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return schemas.Execution.model_validate(db_obj)

    async def update_execution(
        self,
        execution_id: str,
        *,
        status: Optional[str] = None,
        error_message: Any = _UNSET,
        rows_processed: Any = _UNSET,
        step_results: Optional[List[schemas.StepResult]] = None,
        completed: bool = False,
    ) -> Optional[schemas.Execution]:
        """
        Applies a partial update to an execution. `completed=True` stamps
        completed_at and the total duration.
        """
        patch: Dict[str, Any] = {}
        if status:
            patch['status'] = status
        if error_message is not _UNSET:
            patch['error_message'] = error_message
        if rows_processed is not _UNSET:
            patch['rows_processed'] = rows_processed
        if step_results is not None:
            patch['step_results'] = [r.model_dump(mode='json') for r in step_results]
        if not patch and not completed:
            return None
        return await self._run(self._update_execution, execution_id, patch, completed)

    def _update_execution(self, db: Session, execution_id: str, patch: Dict[str, Any], completed: bool):
        db_obj = db.get(models.JobExecution, execution_id)
        if not db_obj:
            return None
        for field, value in patch.items():
            setattr(db_obj, field, value)
        if completed:
            now = time_util.get_current_utc_time()
            db_obj.completed_at = now
            db_obj.duration_seconds = time_util.seconds_between(db_obj.started_at, now)
        db.commit()
        db.refresh(db_obj)
        return schemas.Execution.model_validate(db_obj)

    async def get_execution(self, execution_id: str) -> Optional[schemas.Execution]:
        return await self._run(self._get_execution, execution_id)

    def _get_execution(self, db: Session, execution_id: str) -> Optional[schemas.Execution]:
        db_obj = db.get(models.JobExecution, execution_id)
        return schemas.Execution.model_validate(db_obj) if db_obj else None

    async def get_executions(self, job_id: str, limit: Optional[int] = None) -> List[schemas.Execution]:
        return await self._run(self._get_executions, job_id, limit)

    def _get_executions(self, db: Session, job_id: str, limit: Optional[int]) -> List[schemas.Execution]:
        query = (select(models.JobExecution)
            .where(models.JobExecution.job_id == job_id)
            .order_by(models.JobExecution.started_at.desc()))
        if limit:
            query = query.limit(limit)
        return [schemas.Execution.model_validate(row) for row in db.scalars(query).all()]
