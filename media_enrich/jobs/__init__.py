"""Job definitions, pagination and the in-process job queue."""

from .pagination import JOBS_ASSET_PAGINATION_SIZE, dispatch_pages, paginate
from .queue import JobCounts, JobQueue
from .types import (
    JOBS_TO_QUEUE,
    QUEUE_SCAN_JOBS,
    AssetJob,
    BaseJob,
    EntityJob,
    Job,
    JobName,
    QueueName,
    extraction_job_for,
)

__all__ = [
    "AssetJob",
    "BaseJob",
    "EntityJob",
    "Job",
    "JobCounts",
    "JobName",
    "JobQueue",
    "JOBS_ASSET_PAGINATION_SIZE",
    "JOBS_TO_QUEUE",
    "QUEUE_SCAN_JOBS",
    "QueueName",
    "dispatch_pages",
    "extraction_job_for",
    "paginate",
]
