"""
Read-only queue projections over a job collection.
Recomputed on every call; callers that cache must refetch after any job write.
"""

from typing import Iterable

from carwash.models.job import Job, JobStatus, JobPaymentStatus


ACTIVE_STATUSES = frozenset({
    JobStatus.CHECKED_IN,
    JobStatus.IN_QUEUE,
    JobStatus.WASHING,
    JobStatus.DETAILING,
})

COMPLETED_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.PAID})


def active_jobs(jobs: Iterable[Job]) -> list[Job]:
    """Jobs still being worked on."""
    return [job for job in jobs if job.status in ACTIVE_STATUSES]


def completed_jobs(jobs: Iterable[Job]) -> list[Job]:
    """Jobs whose work is done, settled or not."""
    return [job for job in jobs if job.status in COMPLETED_STATUSES]


def unpaid_jobs(jobs: Iterable[Job]) -> list[Job]:
    """Completed jobs still waiting for settlement."""
    return [
        job for job in jobs
        if job.status == JobStatus.COMPLETED
        and job.payment_status != JobPaymentStatus.PAID
    ]


VIEWS = {
    "active": active_jobs,
    "completed": completed_jobs,
    "unpaid": unpaid_jobs,
}
