"""
Payment settlement tests: cash, card, loyalty and the M-Pesa STK flow.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from carwash.core.config import settings
from carwash.core.exceptions import PaymentNotAllowed, PaymentTimeout, TransientQueryError
from carwash.models.job import JobStatus, JobPaymentStatus
from carwash.models.payment import PaymentStatus
from carwash.schemas.payment import CashPaymentCreate, LoyaltyPaymentCreate, MpesaPaymentCreate
from carwash.services.job import JobService
from carwash.services.payment import PaymentService
from carwash.services.polling import MpesaPoller, PollState, poll_registry
from carwash.services.receipt import ReceiptService


class SleepSpy:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


def callback_body(checkout_request_id: str, result_code: int = 0, receipt: str = "NLJ7RT61SV") -> dict:
    callback = {
        "MerchantRequestID": "mr_1",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": "ok" if result_code == 0 else "Request cancelled by user",
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": 2000},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "PhoneNumber", "Value": 254712345678},
            ]
        }
    return {"Body": {"stkCallback": callback}}


@pytest.fixture(autouse=True)
def clear_poll_registry():
    poll_registry._active.clear()
    yield
    poll_registry._active.clear()


# ---------------------------------------------------------------------------
# Service level
# ---------------------------------------------------------------------------


async def test_cash_payment_settles_job(db_session: AsyncSession, make_job):
    job = await make_job()
    assert job.total_amount == Decimal("1500.00")

    handle = await PaymentService(db_session).initiate(
        CashPaymentCreate(job_id=job.id, amount=Decimal("1500.00"), payment_method="cash")
    )

    assert handle.payment.status == PaymentStatus.COMPLETED
    assert not handle.requires_polling
    assert handle.job.payment_status == JobPaymentStatus.PAID
    assert handle.job.status == JobStatus.PAID
    assert handle.job.balance_due == Decimal("0.00")


async def test_partial_cash_payment(db_session: AsyncSession, make_job):
    job = await make_job()

    handle = await PaymentService(db_session).initiate(
        CashPaymentCreate(job_id=job.id, amount=Decimal("1000.00"), payment_method="cash")
    )

    assert handle.job.payment_status == JobPaymentStatus.PARTIAL
    assert handle.job.status == JobStatus.COMPLETED
    assert handle.job.balance_due == Decimal("500.00")


async def test_payment_before_completion_is_rejected(db_session: AsyncSession, make_job):
    job = await make_job(status=JobStatus.WASHING)

    with pytest.raises(PaymentNotAllowed):
        await PaymentService(db_session).initiate(
            CashPaymentCreate(job_id=job.id, amount=Decimal("1500.00"), payment_method="cash")
        )


async def test_payment_on_cancelled_job_is_rejected(db_session: AsyncSession, make_job):
    job = await make_job(status=JobStatus.CANCELLED)

    with pytest.raises(PaymentNotAllowed):
        await PaymentService(db_session).initiate(
            CashPaymentCreate(job_id=job.id, amount=Decimal("100.00"), payment_method="cash")
        )


async def test_prepayment_settles_on_completion(
    db_session: AsyncSession, make_job, monkeypatch
):
    monkeypatch.setattr(settings, "ALLOW_PREPAYMENT", True)
    job = await make_job(status=JobStatus.IN_QUEUE)

    handle = await PaymentService(db_session).initiate(
        CashPaymentCreate(job_id=job.id, amount=Decimal("1500.00"), payment_method="cash")
    )
    assert handle.job.payment_status == JobPaymentStatus.PAID
    assert handle.job.status == JobStatus.IN_QUEUE

    service = JobService(db_session)
    job = handle.job
    for step in (JobStatus.WASHING, JobStatus.DETAILING, JobStatus.COMPLETED):
        job = await service.update_status(job, step)

    assert job.status == JobStatus.PAID
    assert job.customer.loyalty_points == 15


async def test_mpesa_payment_sends_stk_push(db_session: AsyncSession, make_job, fake_gateway):
    job = await make_job(services=("premium",))

    handle = await PaymentService(db_session, fake_gateway).initiate(
        MpesaPaymentCreate(
            job_id=job.id,
            amount=Decimal("2000.00"),
            payment_method="mpesa",
            phone="0712345678",
        )
    )

    assert handle.checkout_request_id == "ws_1"
    assert handle.requires_polling
    assert handle.payment.status == PaymentStatus.PENDING
    assert handle.payment.phone_number == "254712345678"
    assert handle.job.status == JobStatus.COMPLETED
    assert handle.job.pending_amount == Decimal("2000.00")

    push = fake_gateway.pushes[0]
    assert push["phone"] == "254712345678"
    assert push["amount"] == Decimal("2000.00")
    assert push["account_reference"] == job.job_number


async def test_mpesa_confirmed_on_third_poll(db_session: AsyncSession, make_job, fake_gateway):
    job = await make_job(services=("premium",))
    service = PaymentService(db_session, fake_gateway)
    handle = await service.initiate(
        MpesaPaymentCreate(
            job_id=job.id, amount=Decimal("2000.00"), payment_method="mpesa", phone="0712345678",
        )
    )
    fake_gateway.statuses = [PaymentStatus.PENDING, PaymentStatus.PENDING, PaymentStatus.COMPLETED]
    sleep = SleepSpy()

    poller = MpesaPoller(handle.checkout_request_id, service.poll_status, sleep=sleep)
    result = await poller.run()

    assert result == PaymentStatus.COMPLETED
    assert poller.attempts == 3
    assert 4.0 <= sleep.total <= 6.0
    assert len(fake_gateway.queries) == 3

    job = await JobService(db_session).get_or_404(job.id)
    assert job.status == JobStatus.PAID
    assert job.payment_status == JobPaymentStatus.PAID
    assert job.payments[0].status == PaymentStatus.COMPLETED


async def test_mpesa_poll_timeout_leaves_payment_pending(
    db_session: AsyncSession, make_job, fake_gateway
):
    job = await make_job(services=("premium",))
    service = PaymentService(db_session, fake_gateway)
    handle = await service.initiate(
        MpesaPaymentCreate(
            job_id=job.id, amount=Decimal("2000.00"), payment_method="mpesa", phone="0712345678",
        )
    )

    poller = MpesaPoller(handle.checkout_request_id, service.poll_status, sleep=SleepSpy())
    with pytest.raises(PaymentTimeout):
        await poller.run()

    assert poller.state == PollState.TIMED_OUT
    assert len(fake_gateway.queries) == settings.MPESA_POLL_MAX_ATTEMPTS

    payment = await service.get_by_checkout_id_or_404(handle.checkout_request_id)
    assert payment.status == PaymentStatus.PENDING
    job = await JobService(db_session).get_or_404(job.id)
    assert job.status == JobStatus.COMPLETED


async def test_transient_query_error_propagates_from_poll_status(
    db_session: AsyncSession, make_job, fake_gateway
):
    job = await make_job(services=("premium",))
    service = PaymentService(db_session, fake_gateway)
    handle = await service.initiate(
        MpesaPaymentCreate(
            job_id=job.id, amount=Decimal("2000.00"), payment_method="mpesa", phone="0712345678",
        )
    )
    fake_gateway.statuses = [TransientQueryError()]

    with pytest.raises(TransientQueryError):
        await service.poll_status(handle.checkout_request_id)

    payment = await service.get_by_checkout_id_or_404(handle.checkout_request_id)
    assert payment.status == PaymentStatus.PENDING


async def test_second_payment_blocked_while_mpesa_pending(
    db_session: AsyncSession, make_job, fake_gateway
):
    job = await make_job()
    service = PaymentService(db_session, fake_gateway)
    await service.initiate(
        MpesaPaymentCreate(
            job_id=job.id, amount=Decimal("1000.00"), payment_method="mpesa", phone="0712345678",
        )
    )

    with pytest.raises(PaymentNotAllowed):
        await service.initiate(
            CashPaymentCreate(job_id=job.id, amount=Decimal("500.00"), payment_method="cash")
        )


async def test_failed_mpesa_allows_retry(db_session: AsyncSession, make_job, fake_gateway):
    job = await make_job()
    service = PaymentService(db_session, fake_gateway)
    handle = await service.initiate(
        MpesaPaymentCreate(
            job_id=job.id, amount=Decimal("1500.00"), payment_method="mpesa", phone="0712345678",
        )
    )
    fake_gateway.statuses = [PaymentStatus.FAILED]

    assert await service.poll_status(handle.checkout_request_id) == PaymentStatus.FAILED

    retry = await service.initiate(
        CashPaymentCreate(job_id=job.id, amount=Decimal("1500.00"), payment_method="cash")
    )
    assert retry.job.status == JobStatus.PAID


async def test_poll_status_skips_gateway_once_resolved(
    db_session: AsyncSession, make_job, fake_gateway
):
    job = await make_job()
    service = PaymentService(db_session, fake_gateway)
    handle = await service.initiate(
        MpesaPaymentCreate(
            job_id=job.id, amount=Decimal("1500.00"), payment_method="mpesa", phone="0712345678",
        )
    )
    fake_gateway.statuses = [PaymentStatus.COMPLETED]

    await service.poll_status(handle.checkout_request_id)
    await service.poll_status(handle.checkout_request_id)

    assert len(fake_gateway.queries) == 1


async def test_loyalty_points_earned_on_settlement(db_session: AsyncSession, make_job):
    job = await make_job()

    handle = await PaymentService(db_session).initiate(
        CashPaymentCreate(job_id=job.id, amount=Decimal("1500.00"), payment_method="cash")
    )

    customer = handle.job.customer
    assert customer.loyalty_points == 15
    assert customer.total_spent == Decimal("1500.00")
    assert customer.total_visits == 1


async def test_loyalty_redemption(db_session: AsyncSession, make_job):
    job = await make_job(services=("exterior",))
    job.customer.loyalty_points = 600
    await db_session.commit()

    handle = await PaymentService(db_session).initiate(
        LoyaltyPaymentCreate(job_id=job.id, amount=Decimal("500.00"), payment_method="loyalty_points")
    )

    assert handle.job.status == JobStatus.PAID
    assert handle.job.customer.loyalty_points == 100


async def test_loyalty_redemption_needs_enough_points(db_session: AsyncSession, make_job):
    job = await make_job(services=("exterior",))

    with pytest.raises(PaymentNotAllowed):
        await PaymentService(db_session).initiate(
            LoyaltyPaymentCreate(job_id=job.id, amount=Decimal("500.00"), payment_method="loyalty_points")
        )


async def test_receipt_is_written(db_session: AsyncSession, make_job, tmp_path):
    job = await make_job()
    handle = await PaymentService(db_session).initiate(
        CashPaymentCreate(job_id=job.id, amount=Decimal("1500.00"), payment_method="cash")
    )

    path = await ReceiptService(storage_path=str(tmp_path)).generate_job_receipt(handle.job)

    with open(path, "rb") as f:
        assert f.read(4) == b"%PDF"
    assert path.endswith(f"receipt_{job.job_number}.pdf")


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


async def test_api_cash_payment(client: AsyncClient, cashier_headers, make_job):
    job = await make_job()

    response = await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1500.00", "payment_method": "cash"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["requires_polling"] is False
    assert data["job_status"] == "paid"
    assert data["job_payment_status"] == "paid"
    assert data["payment"]["status"] == "completed"
    assert data["payment"]["received_by_name"] == "Cashier"


async def test_api_card_requires_reference(client: AsyncClient, cashier_headers, make_job):
    job = await make_job()

    response = await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1500.00", "payment_method": "card"},
    )

    assert response.status_code == 422


async def test_api_unknown_method(client: AsyncClient, cashier_headers, make_job):
    job = await make_job()

    response = await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1500.00", "payment_method": "cheque"},
    )

    assert response.status_code == 422


async def test_api_overpayment_rejected(client: AsyncClient, cashier_headers, make_job):
    job = await make_job()

    response = await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "2000.00", "payment_method": "cash"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "PaymentNotAllowed"


async def test_api_payment_before_completion(client: AsyncClient, cashier_headers, make_job):
    job = await make_job(status=JobStatus.CHECKED_IN)

    response = await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1500.00", "payment_method": "cash"},
    )

    assert response.status_code == 400


async def test_api_payment_unknown_job(client: AsyncClient, cashier_headers, wash_services):
    response = await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": 999, "amount": "100.00", "payment_method": "cash"},
    )

    assert response.status_code == 404


async def test_api_mpesa_gateway_error(
    client: AsyncClient, cashier_headers, make_job, fake_gateway
):
    from carwash.core.exceptions import PaymentGatewayError

    fake_gateway.push_error = PaymentGatewayError("STK push request failed")
    job = await make_job()

    response = await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1500.00", "payment_method": "mpesa", "phone": "0712345678"},
    )

    assert response.status_code == 502
    assert response.json()["error"] == "PaymentGatewayError"


async def test_api_mpesa_invalid_phone(client: AsyncClient, cashier_headers, make_job, fake_gateway):
    job = await make_job()

    response = await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1500.00", "payment_method": "mpesa", "phone": "0812345678"},
    )

    assert response.status_code == 502
    assert fake_gateway.pushes == []


async def _start_mpesa(client: AsyncClient, headers: dict, job_id: int, amount: str) -> str:
    response = await client.post(
        "/api/v1/payments",
        headers=headers,
        json={"job_id": job_id, "amount": amount, "payment_method": "mpesa", "phone": "0712345678"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["requires_polling"] is True
    assert data["payment"]["status"] == "pending"
    return data["checkout_request_id"]


async def test_api_mpesa_callback_success(
    client: AsyncClient, cashier_headers, make_job
):
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")

    response = await client.post(
        "/api/v1/payments/mpesa/callback",
        json=callback_body(checkout_id),
    )

    assert response.status_code == 200
    assert response.json() == {"ResultCode": 0, "ResultDesc": "Accepted"}

    summary = await client.get(f"/api/v1/payments/job/{job.id}/summary", headers=cashier_headers)
    data = summary.json()
    assert data["payment_status"] == "paid"
    assert data["payments"][0]["mpesa_receipt_number"] == "NLJ7RT61SV"

    job_response = await client.get(f"/api/v1/jobs/{job.id}", headers=cashier_headers)
    assert job_response.json()["status"] == "paid"


async def test_api_mpesa_callback_failure(
    client: AsyncClient, cashier_headers, make_job
):
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")

    await client.post(
        "/api/v1/payments/mpesa/callback",
        json=callback_body(checkout_id, result_code=1032),
    )

    status_response = await client.get(
        f"/api/v1/payments/mpesa/{checkout_id}/status", headers=cashier_headers,
    )
    assert status_response.status_code == 200
    assert status_response.json()["status"] == "failed"

    job_response = await client.get(f"/api/v1/jobs/{job.id}", headers=cashier_headers)
    assert job_response.json()["status"] == "completed"
    assert job_response.json()["payment_status"] == "unpaid"


async def test_api_mpesa_callback_unknown_checkout(client: AsyncClient):
    response = await client.post(
        "/api/v1/payments/mpesa/callback",
        json=callback_body("ws_unknown"),
    )

    assert response.status_code == 200
    assert response.json()["ResultCode"] == 0


async def test_api_mpesa_callback_invalid_body(client: AsyncClient):
    response = await client.post("/api/v1/payments/mpesa/callback", json={"foo": "bar"})

    assert response.status_code == 400


async def test_api_mpesa_duplicate_callback_is_ignored(
    client: AsyncClient, cashier_headers, make_job
):
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")

    await client.post("/api/v1/payments/mpesa/callback", json=callback_body(checkout_id))
    await client.post(
        "/api/v1/payments/mpesa/callback",
        json=callback_body(checkout_id, result_code=1032),
    )

    summary = await client.get(f"/api/v1/payments/job/{job.id}/summary", headers=cashier_headers)
    assert summary.json()["payments"][0]["status"] == "completed"


async def test_api_mpesa_status_query(
    client: AsyncClient, cashier_headers, make_job, fake_gateway
):
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")

    pending = await client.get(f"/api/v1/payments/mpesa/{checkout_id}/status", headers=cashier_headers)
    assert pending.json()["status"] == "pending"

    fake_gateway.statuses = [PaymentStatus.COMPLETED]
    completed = await client.get(f"/api/v1/payments/mpesa/{checkout_id}/status", headers=cashier_headers)
    assert completed.json()["status"] == "completed"


async def test_api_mpesa_status_transient_error(
    client: AsyncClient, cashier_headers, make_job, fake_gateway
):
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")
    fake_gateway.statuses = [TransientQueryError()]

    response = await client.get(f"/api/v1/payments/mpesa/{checkout_id}/status", headers=cashier_headers)

    assert response.status_code == 503


async def test_api_wait_for_mpesa(
    client: AsyncClient, cashier_headers, make_job, fake_gateway, monkeypatch
):
    monkeypatch.setattr(settings, "MPESA_POLL_INTERVAL_SECONDS", 0.0)
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")
    fake_gateway.statuses = [PaymentStatus.PENDING, PaymentStatus.PENDING, PaymentStatus.COMPLETED]

    response = await client.post(f"/api/v1/payments/mpesa/{checkout_id}/wait", headers=cashier_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["attempts"] == 3
    assert not poll_registry.is_polling(checkout_id)


async def test_api_wait_for_mpesa_timeout(
    client: AsyncClient, cashier_headers, make_job, fake_gateway, monkeypatch
):
    monkeypatch.setattr(settings, "MPESA_POLL_INTERVAL_SECONDS", 0.0)
    monkeypatch.setattr(settings, "MPESA_POLL_MAX_ATTEMPTS", 3)
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")

    response = await client.post(f"/api/v1/payments/mpesa/{checkout_id}/wait", headers=cashier_headers)

    assert response.status_code == 504
    assert response.json()["error"] == "PaymentTimeout"
    assert len(fake_gateway.queries) == 3


async def test_api_wait_for_failed_mpesa(
    client: AsyncClient, cashier_headers, make_job, fake_gateway, monkeypatch
):
    monkeypatch.setattr(settings, "MPESA_POLL_INTERVAL_SECONDS", 0.0)
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")
    fake_gateway.statuses = [PaymentStatus.FAILED]

    response = await client.post(f"/api/v1/payments/mpesa/{checkout_id}/wait", headers=cashier_headers)

    assert response.status_code == 402


async def test_api_cancel_wait_without_poll(client: AsyncClient, cashier_headers):
    response = await client.delete("/api/v1/payments/mpesa/ws_1/wait", headers=cashier_headers)

    assert response.status_code == 404


async def test_api_reconcile_by_manager(
    client: AsyncClient, cashier_headers, manager_headers, make_job
):
    job = await make_job(services=("premium",))
    checkout_id = await _start_mpesa(client, cashier_headers, job.id, "2000.00")

    forbidden = await client.post(
        f"/api/v1/payments/mpesa/{checkout_id}/reconcile",
        headers=cashier_headers,
        json={"status": "completed", "mpesa_receipt_number": "NLJ7RT61SV"},
    )
    assert forbidden.status_code == 403

    response = await client.post(
        f"/api/v1/payments/mpesa/{checkout_id}/reconcile",
        headers=manager_headers,
        json={"status": "completed", "mpesa_receipt_number": "NLJ7RT61SV", "notes": "Seen on statement"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["mpesa_receipt_number"] == "NLJ7RT61SV"
    assert "Reconciled as completed" in data["notes"]

    again = await client.post(
        f"/api/v1/payments/mpesa/{checkout_id}/reconcile",
        headers=manager_headers,
        json={"status": "failed"},
    )
    assert again.status_code == 409


async def test_api_job_payment_summary(client: AsyncClient, cashier_headers, make_job):
    job = await make_job()
    await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1000.00", "payment_method": "cash"},
    )

    response = await client.get(f"/api/v1/payments/job/{job.id}/summary", headers=cashier_headers)

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["total_amount"]) == Decimal("1500.00")
    assert Decimal(data["amount_paid"]) == Decimal("1000.00")
    assert Decimal(data["balance_due"]) == Decimal("500.00")
    assert data["payment_status"] == "partial"


async def test_api_today_totals(client: AsyncClient, cashier_headers, make_job):
    job = await make_job()
    await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1000.00", "payment_method": "cash"},
    )
    await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "500.00", "payment_method": "card", "reference_number": "SLIP-42"},
    )

    response = await client.get("/api/v1/payments/today/totals", headers=cashier_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["by_method"]["cash"]["count"] == 1
    assert Decimal(data["by_method"]["card"]["amount"]) == Decimal("500.00")
    assert data["by_method"]["mpesa"]["count"] == 0
    assert data["total"]["count"] == 2
    assert Decimal(data["total"]["amount"]) == Decimal("1500.00")


async def test_api_list_payments(client: AsyncClient, cashier_headers, make_job):
    job = await make_job()
    await client.post(
        "/api/v1/payments",
        headers=cashier_headers,
        json={"job_id": job.id, "amount": "1500.00", "payment_method": "cash"},
    )

    response = await client.get(
        "/api/v1/payments", headers=cashier_headers, params={"job_id": job.id},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["payment_method"] == "cash"


async def test_api_download_receipt(
    client: AsyncClient, cashier_headers, make_job, tmp_path, monkeypatch
):
    monkeypatch.setattr(settings, "RECEIPTS_PATH", str(tmp_path))
    job = await make_job()

    response = await client.get(f"/api/v1/payments/job/{job.id}/receipt", headers=cashier_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")
