import json
from typing import Any, Dict, List, Mapping, Optional

from datajobs.util import logger_util, time_util
from datajobs.util.config_util import config
from . import merge, schemas
from .events import EventBroadcaster
from .exceptions import (
    JobConfigurationError,
    JobNotFoundError,
    StepConfigurationError,
    WorkflowStepError,
)
from .functions import FunctionRegistry
from .query_executors import BACKEND_LABELS, QueryExecutor
from .service import JobService

logger = logger_util.get_logger(__name__)

Rows = List[Dict[str, Any]]


def _json_default(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value)


def json_safe_rows(rows: Rows) -> Rows:
    """Copy of `rows` holding only JSON types, so previews always persist.

    Binary values (rowversion, varbinary) become hex strings; dates, decimals
    and other driver types become their str() form.
    """
    return json.loads(json.dumps(rows, default=_json_default))


class JobRunner:
    """
    Runs a job once: creates the execution record, executes the workflow
    steps (or the target function), publishes progress and records the outcome.

    Rows saved by a step under its ``save_as`` alias are kept in a scratch
    table that belongs to a single execution and is dropped when it ends.
    """

    def __init__(
        self,
        job_service: JobService,
        query_executors: Mapping[str, QueryExecutor],
        broadcaster: Optional[EventBroadcaster] = None,
        function_registry: Optional[FunctionRegistry] = None,
        preview_rows: Optional[int] = None,
    ):
        self.job_service = job_service
        self.query_executors = dict(query_executors)
        self.broadcaster = broadcaster
        self.function_registry = function_registry or FunctionRegistry()
        self.preview_rows = config.preview_rows if preview_rows is None else preview_rows
        # execution id -> alias -> rows
        self._scratch_tables: Dict[str, Dict[str, Rows]] = {}

    # --- Utility ---

    def _publish(self, job_id: str, event) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.broadcast(job_id, event)
        except Exception as e:
            logger.error(f"Failed to publish {event.type} for job {job_id}: {e}", exc_info=True)

    def scratch_table(self, execution_id: str) -> Dict[str, Rows]:
        return self._scratch_tables.setdefault(execution_id, {})

    def active_scratch_tables(self) -> int:
        return len(self._scratch_tables)

    # --- Jobs ---

    async def execute_job(self, job_id: str, trigger_type: str = 'manual') -> schemas.Execution:
        job = await self.job_service.get_job(job_id)
        if not job:
            raise JobNotFoundError(job_id)

        execution = await self.job_service.create_execution(job_id, trigger_type)
        await self.job_service.update_execution(execution.id, status='running')
        self._publish(job_id, schemas.JobStatusEvent(
            execution_id=execution.id,
            job_id=job_id,
            status='running',
            message='Job execution started',
        ))
        logger.info(f"Executing job '{job.job_name}' ({job_id}), execution {execution.id}, trigger {trigger_type}")

        try:
            if job.job_type == 'workflow' and job.workflow_definition:
                await self.execute_workflow(job, execution)
            elif job.job_type == 'function' and job.target_function:
                await self._execute_function(job, execution)
            else:
                raise JobConfigurationError(f"Invalid job configuration for job {job_id}")

            finished = await self.job_service.update_execution(
                execution.id, status='completed', completed=True)
            self._publish(job_id, schemas.JobCompletedEvent(
                execution_id=execution.id,
                job_id=job_id,
                status='completed',
                duration_seconds=self._duration(execution, finished),
            ))
            await self.job_service.update_last_run_time(job_id)
            logger.info(f"Job {job_id} execution {execution.id} completed.")

            return await self.job_service.get_execution(execution.id)
        except Exception as e:
            logger.error(f"Job {job_id} execution {execution.id} failed: {e}")
            finished = await self.job_service.update_execution(
                execution.id, status='failed', error_message=str(e), completed=True)
            self._publish(job_id, schemas.JobCompletedEvent(
                execution_id=execution.id,
                job_id=job_id,
                status='failed',
                error=str(e),
                duration_seconds=self._duration(execution, finished),
            ))
            raise
        finally:
            self._scratch_tables.pop(execution.id, None)

    @staticmethod
    def _duration(execution: schemas.Execution, finished: Optional[schemas.Execution]) -> int:
        if finished is not None and finished.duration_seconds is not None:
            return finished.duration_seconds
        return time_util.seconds_between(execution.started_at, time_util.get_current_utc_time())

    async def execute_workflow(self, job: schemas.Job, execution: schemas.Execution) -> None:
        workflow = job.workflow_definition
        step_results: List[schemas.StepResult] = []

        for step in workflow.steps:
            step_id = f"step_{step.step_number}"
            self._publish(job.id, schemas.StepProgressEvent(
                execution_id=execution.id,
                job_id=job.id,
                step_id=step_id,
                step_name=step.step_name,
                status='running',
            ))

            step_result = await self.execute_step(step, execution.id)
            step_results.append(step_result)
            await self.job_service.update_execution(execution.id, step_results=step_results)

            self._publish(job.id, schemas.StepProgressEvent(
                execution_id=execution.id,
                job_id=job.id,
                step_id=step_id,
                step_name=step.step_name,
                status=step_result.status,
                rows_processed=step_result.rows_returned,
                duration_seconds=step_result.duration_seconds,
            ))

            if step_result.status == 'failed':
                if workflow.error_handling == 'stop':
                    raise WorkflowStepError(f"Step {step.step_name} failed: {step_result.error_message}")
                logger.warning(f"Step '{step.step_name}' failed; continuing ({workflow.error_handling}).")

    # --- Steps ---

    async def execute_step(self, step: schemas.WorkflowStep, execution_id: str) -> schemas.StepResult:
        """Runs one step. Any error is captured into a failed StepResult."""
        start_time = time_util.get_current_utc_time()
        try:
            if step.step_type in schemas.QUERY_STEP_BACKENDS:
                result = await self._execute_query(step)
            elif step.step_type == 'merge':
                result = self._execute_merge(step, execution_id)
            else:
                raise StepConfigurationError(f"Unknown step type: {step.step_type}")

            if step.save_as:
                self.scratch_table(execution_id)[step.save_as] = result.rows

            end_time = time_util.get_current_utc_time()
            return schemas.StepResult(
                step_number=step.step_number,
                step_name=step.step_name,
                step_type=step.step_type,
                status='completed',
                started_at=start_time,
                completed_at=end_time,
                duration_seconds=time_util.seconds_between(start_time, end_time),
                rows_returned=result.row_count,
                output_preview=json_safe_rows(result.rows[:self.preview_rows]),
            )
        except Exception as e:
            logger.error(f"Step '{step.step_name}' ({step.step_type}) failed: {e}")
            end_time = time_util.get_current_utc_time()
            return schemas.StepResult(
                step_number=step.step_number,
                step_name=step.step_name,
                step_type=step.step_type,
                status='failed',
                started_at=start_time,
                completed_at=end_time,
                duration_seconds=time_util.seconds_between(start_time, end_time),
                error_message=str(e),
            )

    async def _execute_query(self, step: schemas.WorkflowStep) -> schemas.QueryResult:
        backend = schemas.QUERY_STEP_BACKENDS[step.step_type]
        label = BACKEND_LABELS.get(backend, backend)
        if not step.query or not step.query.strip():
            raise StepConfigurationError(f"No query provided for {label} step")
        executor = self.query_executors.get(backend)
        if executor is None:
            raise StepConfigurationError(f"No query executor configured for {label}")
        return await executor.execute_query(step.query)

    def _execute_merge(self, step: schemas.WorkflowStep, execution_id: str) -> schemas.QueryResult:
        source_tables = step.source_tables or []
        if len(source_tables) < 2:
            raise StepConfigurationError('Merge step requires at least 2 source tables')
        scratch = self.scratch_table(execution_id)
        tables = [scratch.get(alias) for alias in source_tables]
        return merge.merge_tables(tables, step.merge_type, step.join_keys)

    # --- Functions ---

    async def _execute_function(self, job: schemas.Job, execution: schemas.Execution) -> None:
        start_time = time_util.get_current_utc_time()
        summary = await self.function_registry.invoke(job.target_function, job.parameters or {})
        end_time = time_util.get_current_utc_time()

        rows_returned = summary.get('rows_returned', 0)
        preview = summary.get('output_preview')
        step_result = schemas.StepResult(
            step_number=1,
            step_name=job.target_function,
            step_type='function',
            status='completed',
            started_at=start_time,
            completed_at=end_time,
            duration_seconds=time_util.seconds_between(start_time, end_time),
            rows_returned=rows_returned,
            output_preview=json_safe_rows(preview[:self.preview_rows]) if preview else None,
        )
        await self.job_service.update_execution(
            execution.id, rows_processed=rows_returned, step_results=[step_result])
