from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from datajobs.util import logger_util, time_util
from datajobs.util.config_util import config
from . import cron, schemas
from .job_executors import JobRunner
from .service import JobService

logger = logger_util.get_logger(__name__)

DATE_CHECK_JOB_ID = "date_check"

job_defaults = {
    "coalesce": False,
    "max_instances": 3,
}


@dataclass
class ScheduledJob:
    job_id: str
    # APScheduler job id driving this trigger; None for one-shot date triggers.
    timer_id: Optional[str]
    next_run: Optional[datetime]


class JobScheduler:
    """
    Turns job schedule configurations into live triggers.

    interval jobs fire from an APScheduler interval job; cron jobs are polled
    every `cron_poll_seconds` against their precomputed next run; date jobs
    have no timer of their own and are picked up by a sweep that runs every
    `date_check_seconds`. Trigger times are naive local datetimes.
    """

    def __init__(
        self,
        job_service: JobService,
        job_runner: JobRunner,
        scheduler: Optional[AsyncIOScheduler] = None,
        cron_poll_seconds: Optional[int] = None,
        date_check_seconds: Optional[int] = None,
        recovery_limit: Optional[int] = None,
    ):
        self.job_service = job_service
        self.job_runner = job_runner
        self.scheduler = scheduler or AsyncIOScheduler(job_defaults=job_defaults)
        self.cron_poll_seconds = cron_poll_seconds or config.cron_poll_seconds
        self.date_check_seconds = date_check_seconds or config.date_check_seconds
        self.recovery_limit = recovery_limit or config.recovery_limit
        self._scheduled_jobs: Dict[str, ScheduledJob] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info("Scheduler service starting...")
        if not self.scheduler.running:
            self.scheduler.start()

        await self.recover_jobs()

        self.scheduler.add_job(
            self._check_date_jobs,
            "interval",
            seconds=self.date_check_seconds,
            id=DATE_CHECK_JOB_ID,
            replace_existing=True,
        )
        logger.info("Scheduler service started")

    def stop(self) -> None:
        for scheduled in list(self._scheduled_jobs.values()):
            self._cancel_timer(scheduled)
        self._scheduled_jobs.clear()

        if not self._running:
            return
        self._running = False
        self._remove_timer(DATE_CHECK_JOB_ID)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler service stopped")

    async def recover_jobs(self) -> None:
        try:
            jobs, _total = await self.job_service.get_jobs(is_active=True, limit=self.recovery_limit)
        except Exception as e:
            logger.error(f"Error recovering jobs: {e}", exc_info=True)
            return

        for job in jobs:
            if not job.schedule_config:
                continue
            try:
                self.schedule_job(job)
            except Exception as e:
                logger.error(f"Error scheduling job {job.id}: {e}", exc_info=True)
        logger.info(f"Recovered {len(self._scheduled_jobs)} scheduled jobs")

    # --- Triggers ---

    def schedule_job(self, job: schemas.Job) -> None:
        if not job.schedule_config or not job.is_active:
            self.unschedule_job(job.id)
            return

        self.unschedule_job(job.id)

        schedule = job.schedule_config
        if schedule.schedule_type == 'interval':
            self._schedule_interval(job.id, schedule)
        elif schedule.schedule_type == 'cron':
            self._schedule_cron(job.id, schedule)
        elif schedule.schedule_type == 'date':
            self._schedule_date(job.id, schedule)
        else:
            logger.error(f"Unknown schedule type '{schedule.schedule_type}' for job {job.id}")

    def unschedule_job(self, job_id: str) -> None:
        scheduled = self._scheduled_jobs.pop(job_id, None)
        if scheduled:
            self._cancel_timer(scheduled)

    def _cancel_timer(self, scheduled: ScheduledJob) -> None:
        if scheduled.timer_id:
            self._remove_timer(scheduled.timer_id)

    def _remove_timer(self, timer_id: str) -> None:
        try:
            self.scheduler.remove_job(timer_id)
        except JobLookupError:
            pass

    @staticmethod
    def _timer_id(job_id: str) -> str:
        return f"job_{job_id}"

    def _schedule_interval(self, job_id: str, schedule: schemas.ScheduleConfig) -> None:
        if not schedule.interval_seconds:
            logger.error(f"No interval specified for job {job_id}")
            return

        timer_id = self._timer_id(job_id)
        self.scheduler.add_job(
            self._run_interval_job,
            "interval",
            seconds=schedule.interval_seconds,
            args=[job_id, schedule.interval_seconds],
            id=timer_id,
            replace_existing=True,
        )
        next_run = time_util.get_current_local_time() + timedelta(seconds=schedule.interval_seconds)
        self._scheduled_jobs[job_id] = ScheduledJob(job_id, timer_id, next_run)
        logger.info(f"Scheduled job {job_id} to run every {schedule.interval_seconds} seconds")

    def _schedule_cron(self, job_id: str, schedule: schemas.ScheduleConfig) -> None:
        if not schedule.cron_expression:
            logger.error(f"No cron expression specified for job {job_id}")
            return
        validation = cron.validate_cron(schedule.cron_expression)
        if not validation.valid:
            logger.error(f"Invalid cron expression for job {job_id}: {validation.error}")
            return

        next_run = cron.get_next_cron_run(schedule.cron_expression)
        timer_id = self._timer_id(job_id)
        self.scheduler.add_job(
            self._poll_cron_job,
            "interval",
            seconds=self.cron_poll_seconds,
            args=[job_id, schedule.cron_expression],
            id=timer_id,
            replace_existing=True,
        )
        self._scheduled_jobs[job_id] = ScheduledJob(job_id, timer_id, next_run)
        logger.info(f"Scheduled job {job_id} with cron: {schedule.cron_expression}, next run: {next_run.isoformat()}")

    def _schedule_date(self, job_id: str, schedule: schemas.ScheduleConfig) -> None:
        if not schedule.run_date:
            logger.error(f"No run date specified for job {job_id}")
            return

        run_date = time_util.to_local_naive(schedule.run_date)
        if run_date <= time_util.get_current_local_time():
            logger.warning(f"Job {job_id} run date has already passed")
            return

        self._scheduled_jobs[job_id] = ScheduledJob(job_id, None, run_date)
        logger.info(f"Scheduled job {job_id} for {run_date.isoformat()}")

    # --- Timer callbacks ---

    async def _run_interval_job(self, job_id: str, interval_seconds: float) -> None:
        scheduled = self._scheduled_jobs.get(job_id)
        if scheduled:
            scheduled.next_run = time_util.get_current_local_time() + timedelta(seconds=interval_seconds)
        await self._execute_scheduled_job(job_id)

    async def _poll_cron_job(self, job_id: str, cron_expression: str) -> None:
        scheduled = self._scheduled_jobs.get(job_id)
        now = time_util.get_current_local_time()
        if scheduled and scheduled.next_run and now >= scheduled.next_run:
            # Advance before running so a long or manual run cannot shift the cadence.
            scheduled.next_run = cron.get_next_cron_run(cron_expression, now)
            await self._execute_scheduled_job(job_id)

    async def _check_date_jobs(self) -> None:
        now = time_util.get_current_local_time()
        due = [
            job_id for job_id, scheduled in self._scheduled_jobs.items()
            if scheduled.timer_id is None and scheduled.next_run and now >= scheduled.next_run
        ]
        for job_id in due:
            # One-shot: drop the trigger first so an overlapping sweep cannot fire it twice.
            self.unschedule_job(job_id)
            await self._execute_scheduled_job(job_id)

    async def _execute_scheduled_job(self, job_id: str) -> None:
        try:
            logger.info(f"Executing scheduled job {job_id}")
            await self.job_runner.execute_job(job_id, 'scheduled')
        except Exception as e:
            logger.error(f"Error executing scheduled job {job_id}: {e}", exc_info=True)

    # --- Introspection ---

    def validate_cron(self, expression: str) -> schemas.CronValidation:
        return cron.validate_cron(expression)

    def get_scheduled_job_count(self) -> int:
        return len(self._scheduled_jobs)

    def get_job_next_run(self, job_id: str) -> Optional[datetime]:
        scheduled = self._scheduled_jobs.get(job_id)
        return scheduled.next_run if scheduled else None

    def get_status(self) -> schemas.SchedulerStatus:
        return schemas.SchedulerStatus(
            running=self._running,
            scheduled_jobs=len(self._scheduled_jobs),
            jobs=[
                schemas.ScheduledJobInfo(job_id=job_id, next_run=scheduled.next_run)
                for job_id, scheduled in self._scheduled_jobs.items()
            ],
        )
