from dotenv import load_dotenv
load_dotenv()

import asyncio
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Optional

from datajobs.core import database
from datajobs.util import logger_util
from datajobs.util.config_util import config
from datajobs.modules.scheduler import models, loader  # noqa: F401 (models registers the tables)
from datajobs.modules.scheduler.events import EventBroadcaster
from datajobs.modules.scheduler.functions import FunctionRegistry
from datajobs.modules.scheduler.job_executors import JobRunner
from datajobs.modules.scheduler.query_executors import QueryExecutor, build_query_executors
from datajobs.modules.scheduler.scheduler_instance import JobScheduler
from datajobs.modules.scheduler.service import JobService

logger = logger_util.get_logger(__name__)


@dataclass
class Services:
    job_service: JobService
    broadcaster: EventBroadcaster
    functions: FunctionRegistry
    runner: JobRunner
    scheduler: JobScheduler


def create_services(
    job_service: Optional[JobService] = None,
    query_executors: Optional[Mapping[str, QueryExecutor]] = None,
    broadcaster: Optional[EventBroadcaster] = None,
    functions: Optional[FunctionRegistry] = None,
) -> Services:
    """Wires the engine together; anything not passed in is built from config."""
    job_service = job_service or JobService()
    broadcaster = broadcaster or EventBroadcaster()
    functions = functions or FunctionRegistry()
    if query_executors is None:
        query_executors = build_query_executors()
    runner = JobRunner(job_service, query_executors, broadcaster, functions)
    scheduler = JobScheduler(job_service, runner)
    return Services(job_service, broadcaster, functions, runner, scheduler)


@asynccontextmanager
async def lifespan(services: Optional[Services] = None) -> AsyncIterator[Services]:
    logger.info("Application startup...")
    database.init_db()
    database.create_tables()
    services = services or create_services()
    if config.seed_file:
        await loader.seed_db_from_yaml(services.job_service, config.seed_file)
    await services.scheduler.start()
    try:
        yield services
    finally:
        logger.info("Application shutdown...")
        services.scheduler.stop()
        for executor in services.runner.query_executors.values():
            dispose = getattr(executor, 'dispose', None)
            if dispose:
                dispose()
        database.dispose_db()


async def serve() -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    async with lifespan() as services:
        logger.info(f"Scheduler running with {services.scheduler.get_scheduled_job_count()} scheduled jobs.")
        await stop_event.wait()


def run() -> None:
    logger_util.setup_logging(
        log_file_path=config.log_file,
        console_level=config.console_log_level,
    )
    asyncio.run(serve())


if __name__ == "__main__":
    run()
