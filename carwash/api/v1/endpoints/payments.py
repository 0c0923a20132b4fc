"""
Payment endpoints.
Payments against jobs, the M-Pesa STK flow and daily totals.
"""

import logging
from datetime import date
from typing import Annotated
from fastapi import APIRouter, Body, HTTPException, Query, Request, status
from fastapi.responses import FileResponse

from carwash.api.deps import DbSession, CurrentUser, ManagerUser, Gateway
from carwash.schemas.base import PageMeta, MessageResponse
from carwash.schemas.payment import (
    PaymentCreateUnion,
    PaymentResponse,
    PaymentListResponse,
    PaymentHandleResponse,
    MpesaStatusResponse,
    ReconcileRequest,
    CallbackAck,
    JobPaymentSummary,
    DailyTotalsResponse,
)
from carwash.models.payment import PaymentMethod, PaymentStatus
from carwash.core.exceptions import PaymentFailed
from carwash.services.mpesa import parse_stk_callback
from carwash.services.job import JobService
from carwash.services.payment import PaymentService
from carwash.services.polling import MpesaPoller, poll_registry
from carwash.services.receipt import ReceiptService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=PaymentHandleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Take a payment",
    description=(
        "Cash, card and loyalty payments complete immediately. "
        "M-Pesa sends an STK push and returns a checkout request id to poll."
    ),
)
async def create_payment(
    data: Annotated[PaymentCreateUnion, Body(discriminator="payment_method")],
    current_user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
) -> PaymentHandleResponse:
    service = PaymentService(db, gateway)
    handle = await service.initiate(data, received_by=current_user)

    if handle.requires_polling:
        message = "STK push sent. Ask the customer to enter their M-Pesa PIN."
    else:
        message = "Payment recorded"

    return PaymentHandleResponse(
        payment=PaymentResponse.model_validate(handle.payment),
        checkout_request_id=handle.checkout_request_id,
        requires_polling=handle.requires_polling,
        job_status=handle.job.status,
        job_payment_status=handle.job.payment_status,
        balance_due=handle.job.balance_due,
        message=message,
    )


@router.get(
    "",
    response_model=PaymentListResponse,
    summary="List payments",
)
async def list_payments(
    current_user: CurrentUser,
    db: DbSession,
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(20, ge=1, le=100, description="Items per page"),
    job_id: int | None = Query(None),
    payment_method: PaymentMethod | None = Query(None),
    payment_status: PaymentStatus | None = Query(None),
    from_date: date | None = Query(None, description="Start date"),
    to_date: date | None = Query(None, description="End date"),
) -> PaymentListResponse:
    service = PaymentService(db)
    skip = (page - 1) * per_page

    payments, total = await service.list(
        skip=skip,
        limit=per_page,
        job_id=job_id,
        payment_method=payment_method,
        payment_status=payment_status,
        from_date=from_date,
        to_date=to_date,
    )

    return PaymentListResponse(
        items=[PaymentResponse.model_validate(p) for p in payments],
        total=total,
        page=page,
        per_page=per_page,
        pages=PageMeta.count_pages(total, per_page),
    )


@router.get(
    "/today/totals",
    response_model=DailyTotalsResponse,
    summary="Today's totals",
    description="Completed payments today, by method",
)
async def get_today_totals(
    current_user: CurrentUser,
    db: DbSession,
    day: date | None = Query(None, description="Another day instead of today"),
) -> DailyTotalsResponse:
    service = PaymentService(db)
    return DailyTotalsResponse.model_validate(await service.daily_totals(day))


@router.get(
    "/job/{job_id}/summary",
    response_model=JobPaymentSummary,
    summary="Job payment summary",
)
async def get_job_payment_summary(
    job_id: int,
    current_user: CurrentUser,
    db: DbSession,
) -> JobPaymentSummary:
    service = PaymentService(db)
    return JobPaymentSummary.model_validate(await service.job_summary(job_id))


@router.get(
    "/job/{job_id}/receipt",
    summary="Download receipt",
    description="Generate and download the job receipt as PDF",
    response_class=FileResponse,
)
async def download_receipt(
    job_id: int,
    current_user: CurrentUser,
    db: DbSession,
):
    job = await JobService(db).get_or_404(job_id)
    pdf_path = await ReceiptService().generate_job_receipt(job)

    return FileResponse(
        path=pdf_path,
        filename=f"receipt_{job.job_number}.pdf",
        media_type="application/pdf",
    )


@router.post(
    "/mpesa/callback",
    response_model=CallbackAck,
    summary="M-Pesa callback",
    description="STK push result posted by Safaricom",
)
async def mpesa_callback(
    request: Request,
    db: DbSession,
    gateway: Gateway,
) -> CallbackAck:
    try:
        callback = parse_stk_callback(await request.json())
    except ValueError as exc:
        logger.warning(f"Rejected M-Pesa callback: {exc}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid callback data",
        )

    service = PaymentService(db, gateway)
    await service.handle_callback(callback)
    return CallbackAck()


@router.get(
    "/mpesa/{checkout_request_id}/status",
    response_model=MpesaStatusResponse,
    summary="Check M-Pesa status",
    description="Query the gateway once and apply the answer",
)
async def get_mpesa_status(
    checkout_request_id: str,
    current_user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
) -> MpesaStatusResponse:
    service = PaymentService(db, gateway)
    payment_status = await service.poll_status(checkout_request_id)
    payment = await service.get_by_checkout_id_or_404(checkout_request_id)

    return MpesaStatusResponse(
        checkout_request_id=checkout_request_id,
        status=payment_status,
        payment_id=payment.id,
        job_id=payment.job_id,
        amount=payment.amount,
        mpesa_receipt_number=payment.mpesa_receipt_number,
    )


@router.post(
    "/mpesa/{checkout_request_id}/wait",
    response_model=MpesaStatusResponse,
    summary="Wait for M-Pesa confirmation",
    description=(
        "Poll the gateway until the payment completes, fails or the "
        "polling budget runs out (504, payment left pending)."
    ),
)
async def wait_for_mpesa(
    checkout_request_id: str,
    current_user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
) -> MpesaStatusResponse:
    service = PaymentService(db, gateway)
    payment = await service.get_by_checkout_id_or_404(checkout_request_id)
    if payment.status == PaymentStatus.FAILED:
        raise PaymentFailed()

    async def check(cid: str) -> PaymentStatus:
        result = await service.poll_status(cid)
        # Each answer is kept even if a later attempt fails
        await db.commit()
        return result

    poller = MpesaPoller(checkout_request_id, check)
    if payment.status == PaymentStatus.COMPLETED:
        payment_status = payment.status
    else:
        payment_status = await poll_registry.run(poller)

    return MpesaStatusResponse(
        checkout_request_id=checkout_request_id,
        status=payment_status,
        payment_id=payment.id,
        job_id=payment.job_id,
        amount=payment.amount,
        mpesa_receipt_number=payment.mpesa_receipt_number,
        attempts=poller.attempts,
    )


@router.delete(
    "/mpesa/{checkout_request_id}/wait",
    response_model=MessageResponse,
    summary="Stop waiting",
    description="Cancel a running confirmation poll. The payment itself is not cancelled.",
)
async def cancel_mpesa_wait(
    checkout_request_id: str,
    current_user: CurrentUser,
) -> MessageResponse:
    if not poll_registry.cancel(checkout_request_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No confirmation poll is running for this payment",
        )
    return MessageResponse(message="Polling cancelled; the payment may still complete")


@router.post(
    "/mpesa/{checkout_request_id}/reconcile",
    response_model=PaymentResponse,
    summary="Reconcile M-Pesa payment",
    description="Resolve a pending M-Pesa payment after checking the statement (managers only)",
)
async def reconcile_mpesa(
    checkout_request_id: str,
    data: ReconcileRequest,
    current_user: ManagerUser,
    db: DbSession,
) -> PaymentResponse:
    service = PaymentService(db)
    payment = await service.reconcile(
        checkout_request_id,
        PaymentStatus(data.status),
        receipt_number=data.mpesa_receipt_number,
        notes=data.notes,
        user=current_user,
    )
    return PaymentResponse.model_validate(payment)


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Payment details",
)
async def get_payment(
    payment_id: int,
    current_user: CurrentUser,
    db: DbSession,
) -> PaymentResponse:
    service = PaymentService(db)
    payment = await service.get_or_404(payment_id)
    return PaymentResponse.model_validate(payment)
