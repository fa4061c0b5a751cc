from typing import Any, Dict, List, Optional, Literal
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, model_validator, field_validator

JobType = Literal['workflow', 'function']
ScheduleType = Literal['cron', 'interval', 'date']
ExecutionStatus = Literal['pending', 'running', 'completed', 'failed', 'cancelled']
ErrorHandlingMode = Literal['stop', 'continue', 'retry']
TriggerType = Literal['manual', 'scheduled']
OutputFormat = Literal['csv', 'excel', 'json']

QUERY_STEP_BACKENDS = {
    'sqlserver_query': 'sqlserver',
    'redshift_query': 'redshift',
}
STEP_TYPES = (*QUERY_STEP_BACKENDS, 'merge')
MERGE_TYPES = ('union', 'union_all', 'inner_join', 'left_join')
JOIN_MERGE_TYPES = ('inner_join', 'left_join')

# --- Schedule ---

_SCHEDULE_FIELDS = {
    'cron': 'cron_expression',
    'interval': 'interval_seconds',
    'date': 'run_date',
}

class ScheduleConfig(BaseModel):
    schedule_type: ScheduleType
    cron_expression: Optional[str] = None
    interval_seconds: Optional[float] = Field(None, gt=0)
    run_date: Optional[datetime] = None
    # Stored for display; trigger times are computed in process local time.
    timezone: str = 'UTC'

    @model_validator(mode='after')
    def keep_type_specific_field(self):
        """Only the field matching schedule_type is meaningful; the others are cleared."""
        keep = _SCHEDULE_FIELDS[self.schedule_type]
        for field_name in _SCHEDULE_FIELDS.values():
            if field_name != keep:
                setattr(self, field_name, None)
        return self

# --- Workflow ---

class WorkflowStep(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: Optional[str] = None
    step_number: Optional[int] = None
    step_name: str
    step_type: str
    query: Optional[str] = None
    save_as: Optional[str] = None
    output_table: Optional[str] = None
    description: Optional[str] = None
    depends_on: Optional[List[str]] = None
    timeout_seconds: Optional[int] = None
    merge_type: Optional[str] = None
    source_tables: Optional[List[str]] = None
    join_keys: Optional[List[str]] = None

    @model_validator(mode='before')
    @classmethod
    def accept_editor_format(cls, data: Any) -> Any:
        """Steps saved by the workflow editor use name/type instead of step_name/step_type."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get('step_name') and data.get('name'):
            data['step_name'] = data['name']
        if not data.get('step_type') and data.get('type'):
            data['step_type'] = data['type']
        if not data.get('step_name') or not data.get('step_type'):
            raise ValueError("Step must have either (name, type) or (step_name, step_type)")
        return data

class WorkflowDefinition(BaseModel):
    version: Optional[str] = None
    steps: List[WorkflowStep]
    error_handling: ErrorHandlingMode = 'stop'

    @field_validator('error_handling', mode='before')
    @classmethod
    def normalize_error_handling(cls, v: Any) -> Any:
        if v is None:
            return 'stop'
        if isinstance(v, dict):
            return v.get('on_step_failure') or 'stop'
        return v

    @model_validator(mode='after')
    def number_steps(self):
        for position, step in enumerate(self.steps, start=1):
            if step.step_number is None:
                step.step_number = position
        return self

# --- Jobs ---

class JobBase(BaseModel):
    job_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    job_type: JobType
    schedule_config: Optional[ScheduleConfig] = None
    workflow_definition: Optional[WorkflowDefinition] = None
    target_function: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    output_format: OutputFormat = 'csv'
    author: Optional[str] = None
    is_active: bool = True
    # Accepted and stored; the engine does not act on them.
    max_retries: int = 0
    retry_delay_seconds: int = 60
    notify_on_success: bool = False
    notify_on_failure: bool = True
    timeout_seconds: Optional[int] = None
    tags: Optional[List[str]] = None

class JobCreate(JobBase):
    id: Optional[str] = None

    @model_validator(mode='after')
    def check_definition_matches_type(self):
        if self.job_type == 'workflow':
            if self.workflow_definition is None:
                raise ValueError("workflow_definition is required for workflow jobs")
            for step in self.workflow_definition.steps:
                if step.step_type not in STEP_TYPES:
                    raise ValueError(f"Unknown step type: {step.step_type}")
                if step.step_type == 'merge' and step.merge_type not in MERGE_TYPES:
                    raise ValueError(f"Unknown merge type: {step.merge_type}")
        elif self.job_type == 'function' and not self.target_function:
            raise ValueError("target_function is required for function jobs")
        return self

class JobUpdate(BaseModel):
    job_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    job_type: Optional[JobType] = None
    schedule_config: Optional[ScheduleConfig] = None
    workflow_definition: Optional[WorkflowDefinition] = None
    target_function: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    output_format: Optional[OutputFormat] = None
    author: Optional[str] = None
    is_active: Optional[bool] = None
    max_retries: Optional[int] = None
    retry_delay_seconds: Optional[int] = None
    notify_on_success: Optional[bool] = None
    notify_on_failure: Optional[bool] = None
    timeout_seconds: Optional[int] = None
    tags: Optional[List[str]] = None

class Job(JobBase):
    id: str
    schedule_type: Optional[ScheduleType] = None
    next_run_time: Optional[datetime] = None
    last_run_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# --- Executions ---

class StepResult(BaseModel):
    step_number: Optional[int] = None
    step_name: str
    step_type: str
    status: ExecutionStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    error_message: Optional[str] = None
    rows_returned: Optional[int] = None
    output_preview: Optional[List[Dict[str, Any]]] = None

class Execution(BaseModel):
    id: str
    job_id: str
    status: ExecutionStatus
    trigger_type: TriggerType
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    error_message: Optional[str] = None
    rows_processed: Optional[int] = None
    step_results: List[StepResult] = []

    model_config = ConfigDict(from_attributes=True)

    @field_validator('step_results', mode='before')
    @classmethod
    def default_step_results(cls, v: Any) -> Any:
        return [] if v is None else v

class QueryResult(BaseModel):
    columns: List[str]
    rows: List[Dict[str, Any]]
    row_count: int

# --- Events ---

class JobStatusEvent(BaseModel):
    type: Literal['job_status'] = 'job_status'
    execution_id: str
    job_id: str
    status: ExecutionStatus
    message: str

class StepProgressEvent(BaseModel):
    type: Literal['step_progress'] = 'step_progress'
    execution_id: str
    job_id: str
    step_id: str
    step_name: str
    status: ExecutionStatus
    rows_processed: Optional[int] = None
    duration_seconds: Optional[int] = None

class JobCompletedEvent(BaseModel):
    type: Literal['job_completed'] = 'job_completed'
    execution_id: str
    job_id: str
    status: ExecutionStatus
    error: Optional[str] = None
    duration_seconds: int = 0

# --- Scheduler introspection ---

class CronValidation(BaseModel):
    valid: bool
    error: Optional[str] = None
    description: Optional[str] = None
    next_runs: Optional[List[str]] = None

class ScheduledJobInfo(BaseModel):
    job_id: str
    next_run: Optional[datetime] = None

class SchedulerStatus(BaseModel):
    running: bool
    scheduled_jobs: int
    jobs: List[ScheduledJobInfo]
