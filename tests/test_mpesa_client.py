"""
Daraja client tests against a mocked transport.
"""

import base64
import json
from decimal import Decimal

import httpx
import pytest

from carwash.core.exceptions import PaymentGatewayError, TransientQueryError
from carwash.models.payment import PaymentStatus
from carwash.services.mpesa import (
    MpesaClient,
    generate_password,
    parse_stk_callback,
    round_amount,
)


class Daraja:
    """Records requests and answers them from per-path handlers."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_calls = 0
        self.push_response = httpx.Response(
            200,
            json={
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": "ws_CO_191220191020363925",
                "ResponseCode": "0",
                "ResponseDescription": "Success. Request accepted for processing",
                "CustomerMessage": "Success. Request accepted for processing",
            },
        )
        self.query_response = httpx.Response(200, json={"ResultCode": "0", "ResultDesc": "ok"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/v1/generate":
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": "token-123", "expires_in": "3599"})
        if request.url.path == "/mpesa/stkpush/v1/processrequest":
            return self.push_response
        if request.url.path == "/mpesa/stkpushquery/v1/query":
            if isinstance(self.query_response, Exception):
                raise self.query_response
            return self.query_response
        return httpx.Response(404)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def daraja() -> Daraja:
    return Daraja()


@pytest.fixture
async def mpesa(daraja: Daraja):
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(daraja),
        base_url="https://sandbox.safaricom.co.ke",
    )
    client = MpesaClient(http_client=http_client)
    yield client
    await client.aclose()


def test_generate_password():
    password = generate_password("174379", "passkey", "20260101120000")
    assert base64.b64decode(password).decode() == "174379passkey20260101120000"


@pytest.mark.parametrize(
    "amount, expected",
    [
        (Decimal("1500.00"), 1500),
        (Decimal("99.50"), 100),
        (Decimal("99.49"), 99),
    ],
)
def test_round_amount(amount, expected):
    assert round_amount(amount) == expected


async def test_access_token_is_cached(mpesa: MpesaClient, daraja: Daraja):
    assert await mpesa.get_access_token() == "token-123"
    assert await mpesa.get_access_token() == "token-123"
    assert daraja.token_calls == 1


async def test_stk_push_payload(mpesa: MpesaClient, daraja: Daraja):
    result = await mpesa.initiate_stk_push(
        phone="0712345678",
        amount=Decimal("1500.40"),
        account_reference="CW-20260101-0001",
        description="Wash KDA 123A payment",
    )

    assert result.checkout_request_id == "ws_CO_191220191020363925"

    push = daraja.requests[-1]
    assert push.headers["Authorization"] == "Bearer token-123"

    body = daraja.body()
    assert body["PhoneNumber"] == "254712345678"
    assert body["PartyA"] == "254712345678"
    assert body["Amount"] == 1500
    assert body["TransactionType"] == "CustomerPayBillOnline"
    assert len(body["AccountReference"]) <= 12
    assert len(body["TransactionDesc"]) <= 13

    decoded = base64.b64decode(body["Password"]).decode()
    assert decoded.startswith(body["BusinessShortCode"])
    assert decoded.endswith(body["Timestamp"])


async def test_stk_push_invalid_phone(mpesa: MpesaClient, daraja: Daraja):
    with pytest.raises(PaymentGatewayError):
        await mpesa.initiate_stk_push("12345", Decimal("100"), "CW-1", "Wash")

    assert daraja.requests == []


async def test_stk_push_rejected(mpesa: MpesaClient, daraja: Daraja):
    daraja.push_response = httpx.Response(
        400,
        json={"errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid Amount"},
    )

    with pytest.raises(PaymentGatewayError) as exc_info:
        await mpesa.initiate_stk_push("0712345678", Decimal("100"), "CW-1", "Wash")

    assert "Invalid Amount" in exc_info.value.detail


async def test_stk_push_non_zero_response_code(mpesa: MpesaClient, daraja: Daraja):
    daraja.push_response = httpx.Response(
        200,
        json={"ResponseCode": "1", "ResponseDescription": "Rejected"},
    )

    with pytest.raises(PaymentGatewayError):
        await mpesa.initiate_stk_push("0712345678", Decimal("100"), "CW-1", "Wash")


@pytest.mark.parametrize(
    "response, expected",
    [
        (
            httpx.Response(500, json={"errorCode": "500.001.1001", "errorMessage": "The transaction is being processed"}),
            PaymentStatus.PENDING,
        ),
        (httpx.Response(200, json={"ResultCode": "0", "ResultDesc": "ok"}), PaymentStatus.COMPLETED),
        (httpx.Response(200, json={"ResultCode": "1032", "ResultDesc": "Request cancelled by user"}), PaymentStatus.FAILED),
        (httpx.Response(200, json={"ResultCode": "4999", "ResultDesc": "still processing"}), PaymentStatus.PENDING),
    ],
)
async def test_query_status(mpesa: MpesaClient, daraja: Daraja, response, expected):
    daraja.query_response = response

    result = await mpesa.query_stk_status("ws_CO_1")

    assert result.status == expected
    assert daraja.body()["CheckoutRequestID"] == "ws_CO_1"


async def test_query_network_error_is_transient(mpesa: MpesaClient, daraja: Daraja):
    daraja.query_response = httpx.ConnectError("connection reset")

    with pytest.raises(TransientQueryError):
        await mpesa.query_stk_status("ws_CO_1")


async def test_query_unexpected_error_is_transient(mpesa: MpesaClient, daraja: Daraja):
    daraja.query_response = httpx.Response(503, text="Service Unavailable")

    with pytest.raises(TransientQueryError):
        await mpesa.query_stk_status("ws_CO_1")


def test_parse_successful_callback():
    callback = parse_stk_callback({
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": "ws_CO_1",
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": 1500.0},
                        {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                        {"Name": "TransactionDate", "Value": 20260101120000},
                        {"Name": "PhoneNumber", "Value": 254712345678},
                    ]
                },
            }
        }
    })

    assert callback.success
    assert callback.checkout_request_id == "ws_CO_1"
    assert callback.amount == Decimal("1500.0")
    assert callback.mpesa_receipt_number == "NLJ7RT61SV"
    assert callback.phone_number == "254712345678"


def test_parse_failed_callback():
    callback = parse_stk_callback({
        "Body": {
            "stkCallback": {
                "CheckoutRequestID": "ws_CO_1",
                "ResultCode": 1032,
                "ResultDesc": "Request cancelled by user",
            }
        }
    })

    assert not callback.success
    assert callback.mpesa_receipt_number is None


@pytest.mark.parametrize("body", [{}, {"Body": {}}, {"Body": {"stkCallback": {"ResultCode": 0}}}])
def test_parse_invalid_callback(body):
    with pytest.raises(ValueError):
        parse_stk_callback(body)
