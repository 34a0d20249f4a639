"""Job table, runners and the per-tenant scheduler."""

from .job_table import JobKey, JobTable, ScheduledJob
from .retry import RetryPolicy
from .service import Scheduler

__all__ = ["JobKey", "JobTable", "RetryPolicy", "ScheduledJob", "Scheduler"]
