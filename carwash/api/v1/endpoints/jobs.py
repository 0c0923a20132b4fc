"""
Job endpoints.
Check-in, status flow, job edits, bay/staff assignment and queue views.
"""

from datetime import date, datetime
from typing import Literal
from fastapi import APIRouter, Query, status

from carwash.api.deps import DbSession, CurrentUser, ManagerUser
from carwash.schemas.base import PageMeta
from carwash.schemas.job import (
    CheckInRequest,
    JobServiceLine,
    DiscountRequest,
    StatusUpdateRequest,
    CancelRequest,
    AssignBayRequest,
    AssignStaffRequest,
    JobResponse,
    JobSummary,
    JobListResponse,
    QueueViewResponse,
    NextStatusResponse,
)
from carwash.models.job import JobStatus, JobPaymentStatus
from carwash.services import lifecycle
from carwash.services.job import JobService


router = APIRouter()


@router.post(
    "/check-in",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Check in a vehicle",
    description="Open a job for a vehicle with the requested services",
)
async def check_in(
    data: CheckInRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> JobResponse:
    service = JobService(db)
    job = await service.check_in(data, checked_in_by=current_user)
    return JobResponse.model_validate(job)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="Paginated job list with filters",
)
async def list_jobs(
    current_user: CurrentUser,
    db: DbSession,
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(20, ge=1, le=100, description="Items per page"),
    status: JobStatus | None = Query(None, description="Filter by status"),
    payment_status: JobPaymentStatus | None = Query(None, description="Filter by payment status"),
    bay_id: int | None = Query(None),
    staff_id: int | None = Query(None),
    customer_id: int | None = Query(None),
    on_date: date | None = Query(None, description="Check-in date"),
    search: str | None = Query(None, description="Job number or registration"),
) -> JobListResponse:
    service = JobService(db)
    skip = (page - 1) * per_page

    jobs, total = await service.list(
        skip=skip,
        limit=per_page,
        status_filter=status,
        payment_status=payment_status,
        bay_id=bay_id,
        staff_id=staff_id,
        customer_id=customer_id,
        on_date=on_date,
        search=search,
    )

    return JobListResponse(
        items=[JobSummary.model_validate(j) for j in jobs],
        total=total,
        page=page,
        per_page=per_page,
        pages=PageMeta.count_pages(total, per_page),
    )


@router.get(
    "/queue/{view}",
    response_model=QueueViewResponse,
    summary="Queue view",
    description="Active, completed or unpaid jobs, recomputed on every call",
)
async def get_queue(
    view: Literal["active", "completed", "unpaid"],
    current_user: CurrentUser,
    db: DbSession,
    since: datetime | None = Query(None, description="Only jobs checked in after this time"),
) -> QueueViewResponse:
    service = JobService(db)
    jobs = await service.queue(view, since=since)
    return QueueViewResponse(
        view=view,
        count=len(jobs),
        items=[JobSummary.model_validate(j) for j in jobs],
    )


@router.get(
    "/number/{job_number}",
    response_model=JobResponse,
    summary="Find job by number",
)
async def get_job_by_number(
    job_number: str,
    current_user: CurrentUser,
    db: DbSession,
) -> JobResponse:
    service = JobService(db)
    job = await service.get_by_number_or_404(job_number)
    return JobResponse.model_validate(job)


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Job details",
)
async def get_job(
    job_id: int,
    current_user: CurrentUser,
    db: DbSession,
) -> JobResponse:
    service = JobService(db)
    job = await service.get_or_404(job_id)
    return JobResponse.model_validate(job)


@router.get(
    "/{job_id}/next-status",
    response_model=NextStatusResponse,
    summary="Next status",
    description="The single forward status and whether the job can be cancelled",
)
async def get_next_status(
    job_id: int,
    current_user: CurrentUser,
    db: DbSession,
) -> NextStatusResponse:
    service = JobService(db)
    job = await service.get_or_404(job_id)
    return NextStatusResponse(
        job_id=job.id,
        status=job.status,
        next_status=lifecycle.next_status(job.status),
        can_cancel=lifecycle.can_cancel(job.status),
        is_terminal=lifecycle.is_terminal(job.status),
    )


@router.put(
    "/{job_id}/status",
    response_model=JobResponse,
    summary="Update status",
    description="Move the job one step forward, or cancel it",
)
async def update_job_status(
    job_id: int,
    data: StatusUpdateRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> JobResponse:
    service = JobService(db)
    job = await service.get_or_404(job_id)
    job = await service.update_status(job, data.status, notes=data.notes)
    return JobResponse.model_validate(job)


@router.put(
    "/{job_id}/cancel",
    response_model=JobResponse,
    summary="Cancel job",
)
async def cancel_job(
    job_id: int,
    current_user: CurrentUser,
    db: DbSession,
    data: CancelRequest | None = None,
) -> JobResponse:
    service = JobService(db)
    job = await service.get_or_404(job_id)
    job = await service.cancel(job, reason=data.reason if data else None)
    return JobResponse.model_validate(job)


@router.put(
    "/{job_id}/assign-bay",
    response_model=JobResponse,
    summary="Assign bay",
)
async def assign_bay(
    job_id: int,
    data: AssignBayRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> JobResponse:
    service = JobService(db)
    job = await service.get_or_404(job_id)
    job = await service.assign_bay(job, data.bay_id)
    return JobResponse.model_validate(job)


@router.put(
    "/{job_id}/assign-staff",
    response_model=JobResponse,
    summary="Assign staff",
)
async def assign_staff(
    job_id: int,
    data: AssignStaffRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> JobResponse:
    service = JobService(db)
    job = await service.get_or_404(job_id)
    job = await service.assign_staff(job, data.staff_id)
    return JobResponse.model_validate(job)


@router.put(
    "/{job_id}/services",
    response_model=JobResponse,
    summary="Add service",
    description="Add a catalog service to an open job",
)
async def add_job_service(
    job_id: int,
    data: JobServiceLine,
    current_user: CurrentUser,
    db: DbSession,
) -> JobResponse:
    service = JobService(db)
    job = await service.get_or_404(job_id)
    job = await service.add_service(job, data)
    return JobResponse.model_validate(job)


@router.put(
    "/{job_id}/discount",
    response_model=JobResponse,
    summary="Apply discount",
    description="Set a percentage or fixed discount on the job (manager only)",
)
async def apply_job_discount(
    job_id: int,
    data: DiscountRequest,
    current_user: ManagerUser,
    db: DbSession,
) -> JobResponse:
    service = JobService(db)
    job = await service.get_or_404(job_id)
    job = await service.apply_discount(
        job, data.discount_type, data.discount_value, reason=data.reason
    )
    return JobResponse.model_validate(job)
