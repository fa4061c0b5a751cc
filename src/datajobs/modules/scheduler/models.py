# SQLAlchemy models for the job engine
import uuid

from sqlalchemy import Boolean, Column, Integer, JSON, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from datajobs.core.database import Base
from datajobs.util import time_util


def _new_id() -> str:
    return uuid.uuid4().hex


class Job(Base):
    __tablename__ = 'jobs'

    id = Column(String(32), primary_key=True, default=_new_id)
    job_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    job_type = Column(String(50), nullable=False, index=True)
    schedule_type = Column(String(50), nullable=True)
    schedule_config = Column(JSON, nullable=True)
    workflow_definition = Column(JSON, nullable=True)
    target_function = Column(String(255), nullable=True)
    parameters = Column(JSON, nullable=True)
    output_format = Column(String(20), default='csv', nullable=False)
    author = Column(String(255), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    next_run_time = Column(DateTime(timezone=True), nullable=True)
    last_run_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=time_util.get_current_utc_time, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=time_util.get_current_utc_time, nullable=False)
    max_retries = Column(Integer, default=0, nullable=False)
    retry_delay_seconds = Column(Integer, default=60, nullable=False)
    notify_on_success = Column(Boolean, default=False, nullable=False)
    notify_on_failure = Column(Boolean, default=True, nullable=False)
    timeout_seconds = Column(Integer, nullable=True)
    tags = Column(JSON, nullable=True)

    executions = relationship("JobExecution", back_populates="job", cascade="all, delete-orphan")


class JobExecution(Base):
    __tablename__ = 'job_executions'

    id = Column(String(32), primary_key=True, default=_new_id)
    job_id = Column(String(32), ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(String(50), nullable=False, default='pending', index=True)
    trigger_type = Column(String(50), nullable=False, default='manual')
    started_at = Column(DateTime(timezone=True), default=time_util.get_current_utc_time, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    rows_processed = Column(Integer, nullable=True)
    step_results = Column(JSON, nullable=True)

    job = relationship("Job", back_populates="executions")
