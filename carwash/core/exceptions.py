"""
Domain errors for the job lifecycle and payment settlement.

Every error carries the HTTP status it is rendered with by the
exception handler registered in ``carwash.main``.
"""

from fastapi import status


class CarwashError(Exception):
    """Base class for all domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidTransition(CarwashError):
    """Requested status change violates the job state machine."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Invalid job status transition"


class PaymentNotAllowed(CarwashError):
    """A settlement precondition does not hold for this job."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Payment is not allowed for this job"


class PaymentGatewayError(CarwashError):
    """The mobile-money gateway rejected the request."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Failed to initiate M-Pesa payment"


class PaymentFailed(CarwashError):
    """The gateway confirmed that the payment did not complete."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = "M-Pesa payment failed. You may retry the payment."


class PaymentTimeout(CarwashError):
    """No terminal gateway answer within the polling budget."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_detail = (
        "M-Pesa confirmation timed out. The charge may still be pending: "
        "check the payment status before retrying."
    )


class TransientQueryError(CarwashError):
    """A single status query failed at the network layer."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "M-Pesa status query failed"


class PollInProgress(CarwashError):
    """A poll loop is already running for this checkout request."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "A confirmation poll is already running for this payment"


class PollCancelled(CarwashError):
    """The poll loop was cancelled before a terminal answer."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Confirmation polling was cancelled; the payment may still complete"
