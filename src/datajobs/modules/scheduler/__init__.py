from .events import EventBroadcaster
from .functions import FunctionRegistry
from .job_executors import JobRunner
from .scheduler_instance import JobScheduler
from .service import JobService

__all__ = [
    "EventBroadcaster",
    "FunctionRegistry",
    "JobRunner",
    "JobScheduler",
    "JobService",
]
