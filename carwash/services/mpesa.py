"""
M-Pesa (Safaricom Daraja) gateway client.
STK push initiation, STK status query and callback parsing.
"""

import base64
import logging
import time
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Protocol
from zoneinfo import ZoneInfo

import httpx
from pydantic import BaseModel

from carwash.core.config import settings
from carwash.core.exceptions import PaymentGatewayError, TransientQueryError
from carwash.core.phone import format_phone_number, is_valid_phone_number, mask_phone_number
from carwash.models.payment import PaymentStatus

logger = logging.getLogger(__name__)

NAIROBI = ZoneInfo("Africa/Nairobi")

OAUTH_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"

# Token is valid for 60 minutes; refresh a little early
TOKEN_TTL_SECONDS = 50 * 60

# Query answers meaning "customer has not responded yet"
STILL_PROCESSING_ERROR_CODE = "500.001.1001"
STILL_PROCESSING_RESULT_CODES = {"4999"}


class StkPushResult(BaseModel):
    """Accepted STK push."""
    checkout_request_id: str
    merchant_request_id: Optional[str] = None
    customer_message: Optional[str] = None


class StkQueryResult(BaseModel):
    """Gateway view of an STK push."""
    status: PaymentStatus
    result_code: Optional[str] = None
    result_desc: Optional[str] = None


class StkCallback(BaseModel):
    """Parsed body of the STK callback posted by Safaricom."""
    checkout_request_id: str
    merchant_request_id: Optional[str] = None
    result_code: int
    result_desc: Optional[str] = None
    amount: Optional[Decimal] = None
    mpesa_receipt_number: Optional[str] = None
    phone_number: Optional[str] = None
    transaction_date: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.result_code == 0


class PaymentGateway(Protocol):
    """What settlement needs from a mobile-money gateway."""

    async def initiate_stk_push(
        self,
        phone: str,
        amount: Decimal,
        account_reference: str,
        description: str,
    ) -> StkPushResult:
        ...

    async def query_stk_status(self, checkout_request_id: str) -> StkQueryResult:
        ...


def get_timestamp(now: Optional[datetime] = None) -> str:
    """Daraja timestamp (YYYYMMDDHHMMSS, Nairobi time)."""
    now = now or datetime.now(NAIROBI)
    return now.strftime("%Y%m%d%H%M%S")


def generate_password(short_code: str, passkey: str, timestamp: str) -> str:
    """Daraja password: base64(shortcode + passkey + timestamp)."""
    raw = f"{short_code}{passkey}{timestamp}"
    return base64.b64encode(raw.encode("utf-8")).decode("utf-8")


def round_amount(amount: Decimal) -> int:
    """M-Pesa only accepts whole shillings."""
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_stk_callback(body: dict[str, Any]) -> StkCallback:
    """
    Parse ``{"Body": {"stkCallback": {...}}}`` into an StkCallback.

    Raises:
        ValueError: If the body does not contain an stkCallback
    """
    callback = (body or {}).get("Body", {}).get("stkCallback")
    if not callback or "CheckoutRequestID" not in callback:
        raise ValueError("Invalid callback data")

    parsed: dict[str, Any] = {
        "checkout_request_id": callback["CheckoutRequestID"],
        "merchant_request_id": callback.get("MerchantRequestID"),
        "result_code": int(callback.get("ResultCode", -1)),
        "result_desc": callback.get("ResultDesc"),
    }

    if parsed["result_code"] == 0:
        items = (callback.get("CallbackMetadata") or {}).get("Item", [])
        for item in items:
            name, value = item.get("Name"), item.get("Value")
            if name == "Amount":
                parsed["amount"] = Decimal(str(value))
            elif name == "MpesaReceiptNumber":
                parsed["mpesa_receipt_number"] = str(value)
            elif name == "PhoneNumber":
                parsed["phone_number"] = str(value)
            elif name == "TransactionDate":
                parsed["transaction_date"] = str(value)

    return StkCallback(**parsed)


class MpesaClient:
    """Daraja API client. One instance is shared so the OAuth token is reused."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.mpesa_base_url,
            timeout=settings.MPESA_TIMEOUT_SECONDS,
        )
        self.short_code = settings.MPESA_SHORT_CODE
        self.passkey = settings.MPESA_PASSKEY or ""
        self.callback_url = settings.MPESA_CALLBACK_URL
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_access_token(self) -> str:
        """Return the cached OAuth token, fetching a new one when expired."""
        if self._access_token and time.monotonic() < self._token_expiry:
            return self._access_token

        try:
            response = await self._client.get(
                OAUTH_PATH,
                params={"grant_type": "client_credentials"},
                auth=(settings.MPESA_CONSUMER_KEY or "", settings.MPESA_CONSUMER_SECRET or ""),
            )
            response.raise_for_status()
            token = response.json()["access_token"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.error(f"Failed to get M-Pesa access token: {exc}")
            raise PaymentGatewayError("Failed to authenticate with M-Pesa") from exc

        self._access_token = token
        self._token_expiry = time.monotonic() + TOKEN_TTL_SECONDS
        return token

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        token = await self.get_access_token()
        return await self._client.post(
            path,
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def initiate_stk_push(
        self,
        phone: str,
        amount: Decimal,
        account_reference: str,
        description: str,
    ) -> StkPushResult:
        """
        Send a Lipa Na M-Pesa Online (STK push) request.

        Raises:
            PaymentGatewayError: Invalid phone, auth failure, or request rejected
        """
        if not is_valid_phone_number(phone):
            raise PaymentGatewayError("Invalid phone number")

        msisdn = format_phone_number(phone)
        timestamp = get_timestamp()
        payload = {
            "BusinessShortCode": self.short_code,
            "Password": generate_password(self.short_code, self.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": round_amount(amount),
            "PartyA": msisdn,
            "PartyB": self.short_code,
            "PhoneNumber": msisdn,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference[:12],
            "TransactionDesc": description[:13],
        }

        try:
            response = await self._post(STK_PUSH_PATH, payload)
        except httpx.HTTPError as exc:
            logger.error(f"M-Pesa STK push request failed: {exc}")
            raise PaymentGatewayError("STK push request failed") from exc

        data = _json_or_empty(response)
        if response.is_error:
            logger.error(f"M-Pesa STK push error ({response.status_code}): {data}")
            raise PaymentGatewayError(data.get("errorMessage") or "STK push request failed")

        if str(data.get("ResponseCode")) != "0" or not data.get("CheckoutRequestID"):
            raise PaymentGatewayError(data.get("ResponseDescription") or "STK push failed")

        logger.info(
            f"STK push sent to {mask_phone_number(msisdn)} for {payload['Amount']} "
            f"({data['CheckoutRequestID']})"
        )
        return StkPushResult(
            checkout_request_id=data["CheckoutRequestID"],
            merchant_request_id=data.get("MerchantRequestID"),
            customer_message=data.get("CustomerMessage"),
        )

    async def query_stk_status(self, checkout_request_id: str) -> StkQueryResult:
        """
        Ask the gateway where an STK push stands.

        Raises:
            TransientQueryError: Network failure or unexpected gateway answer
        """
        timestamp = get_timestamp()
        payload = {
            "BusinessShortCode": self.short_code,
            "Password": generate_password(self.short_code, self.passkey, timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }

        try:
            response = await self._post(STK_QUERY_PATH, payload)
        except (httpx.HTTPError, PaymentGatewayError) as exc:
            logger.warning(f"M-Pesa status query for {checkout_request_id} failed: {exc}")
            raise TransientQueryError() from exc

        data = _json_or_empty(response)

        if response.is_error:
            if data.get("errorCode") == STILL_PROCESSING_ERROR_CODE:
                return StkQueryResult(
                    status=PaymentStatus.PENDING,
                    result_desc=data.get("errorMessage"),
                )
            logger.warning(
                f"M-Pesa status query for {checkout_request_id} returned "
                f"{response.status_code}: {data}"
            )
            raise TransientQueryError()

        result_code = data.get("ResultCode")
        if result_code is None:
            logger.error(f"Unexpected M-Pesa query payload for {checkout_request_id}: {data}")
            raise TransientQueryError()

        result_code = str(result_code)
        if result_code == "0":
            status = PaymentStatus.COMPLETED
        elif result_code in STILL_PROCESSING_RESULT_CODES:
            status = PaymentStatus.PENDING
        else:
            status = PaymentStatus.FAILED

        return StkQueryResult(
            status=status,
            result_code=result_code,
            result_desc=data.get("ResultDesc"),
        )


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
