"""
Job lifecycle state machine.

    checked_in -> in_queue -> washing -> detailing -> completed -> paid
    (any non-terminal, non-completed state) -> cancelled

Forward moves happen one step at a time. ``completed -> paid`` is reserved
for payment settlement. ``paid`` and ``cancelled`` are terminal.
"""

import logging
from typing import Optional

from carwash.core.exceptions import InvalidTransition
from carwash.models.job import Job, JobStatus

logger = logging.getLogger(__name__)


FORWARD_FLOW: dict[JobStatus, JobStatus] = {
    JobStatus.CHECKED_IN: JobStatus.IN_QUEUE,
    JobStatus.IN_QUEUE: JobStatus.WASHING,
    JobStatus.WASHING: JobStatus.DETAILING,
    JobStatus.DETAILING: JobStatus.COMPLETED,
}

TERMINAL_STATUSES = frozenset({JobStatus.PAID, JobStatus.CANCELLED})

NOT_CANCELLABLE = frozenset({JobStatus.COMPLETED, JobStatus.PAID, JobStatus.CANCELLED})


def next_status(current: JobStatus) -> Optional[JobStatus]:
    """Return the single forward successor, or None when there is none."""
    return FORWARD_FLOW.get(JobStatus(current))


def can_cancel(current: JobStatus) -> bool:
    return JobStatus(current) not in NOT_CANCELLABLE


def is_terminal(current: JobStatus) -> bool:
    return JobStatus(current) in TERMINAL_STATUSES


def check_transition(current: JobStatus, new_status: JobStatus) -> None:
    """Raise InvalidTransition unless current -> new_status is allowed."""
    current = JobStatus(current)
    new_status = JobStatus(new_status)

    if current in TERMINAL_STATUSES:
        raise InvalidTransition(f"Job is {current.value}; no further status changes are allowed")

    if new_status == JobStatus.CANCELLED:
        if not can_cancel(current):
            raise InvalidTransition(f"A {current.value} job cannot be cancelled")
        return

    expected = next_status(current)
    if new_status != expected:
        if expected is None:
            raise InvalidTransition(f"No status change is possible from {current.value}")
        raise InvalidTransition(
            f"Cannot move from {current.value} to {new_status.value}; "
            f"next status is {expected.value}"
        )


def transition(job: Job, new_status: JobStatus) -> Job:
    """
    Move a job to ``new_status``.

    Only the next forward status or a permitted cancellation is accepted.
    payment_status is left untouched; settlement owns it.

    Raises:
        InvalidTransition: If the move is not allowed. The job is unchanged.
    """
    try:
        check_transition(job.status, new_status)
    except InvalidTransition as exc:
        logger.warning(f"Rejected transition for job {job.job_number}: {exc.detail}")
        raise

    previous = job.status
    job.status = JobStatus(new_status)
    logger.info(f"Job {job.job_number}: {JobStatus(previous).value} -> {job.status.value}")
    return job


def mark_paid(job: Job) -> Job:
    """Settlement-only move from completed to paid."""
    if JobStatus(job.status) != JobStatus.COMPLETED:
        raise InvalidTransition(
            f"Only completed jobs can be marked paid (job is {JobStatus(job.status).value})"
        )
    job.status = JobStatus.PAID
    logger.info(f"Job {job.job_number}: completed -> paid")
    return job
