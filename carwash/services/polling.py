"""
M-Pesa confirmation polling.

The poll loop is an explicit state machine:

    idle -> polling -> completed | failed | timed_out | cancelled

Each attempt waits ``interval`` seconds and then queries the status once.
At most ``max_attempts`` queries are made. A transient query error uses up
an attempt and the loop carries on. Cancelling only stops the loop; the
gateway request itself may still complete and must be reconciled.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from carwash.core.config import settings
from carwash.core.exceptions import (
    PaymentFailed,
    PaymentTimeout,
    PollCancelled,
    PollInProgress,
    TransientQueryError,
)
from carwash.models.payment import PaymentStatus

logger = logging.getLogger(__name__)

StatusCheck = Callable[[str], Awaitable[PaymentStatus]]
Sleep = Callable[[float], Awaitable[None]]


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class CancellationToken:
    """Set once to stop a poll loop."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds; True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


class MpesaPoller:
    """
    Polls one checkout request until the gateway gives a terminal answer.

    Args:
        checkout_request_id: Gateway correlation id
        check: Coroutine returning the current status for the id
        interval: Seconds between attempts
        max_attempts: Upper bound on status queries
        token: Cancellation token, a fresh one by default
        sleep: Replacement for the inter-attempt wait (tests)
    """

    def __init__(
        self,
        checkout_request_id: str,
        check: StatusCheck,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.checkout_request_id = checkout_request_id
        self.check = check
        self.interval = settings.MPESA_POLL_INTERVAL_SECONDS if interval is None else interval
        self.max_attempts = settings.MPESA_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.token = token or CancellationToken()
        self._sleep = sleep

        self.state = PollState.IDLE
        self.attempts = 0
        self.transient_errors = 0

    def cancel(self) -> None:
        self.token.cancel()

    async def _pause(self) -> None:
        if self._sleep is not None:
            await self._sleep(self.interval)
        else:
            await self.token.wait(self.interval)

    def _stop_if_cancelled(self) -> None:
        if self.token.cancelled:
            self.state = PollState.CANCELLED
            logger.info(
                f"Polling for {self.checkout_request_id} cancelled after {self.attempts} attempts"
            )
            raise PollCancelled()

    async def run(self) -> PaymentStatus:
        """
        Poll until completed, failed, timed out or cancelled.

        Returns:
            PaymentStatus.COMPLETED

        Raises:
            PaymentFailed: Gateway reported the payment failed
            PaymentTimeout: max_attempts used without a terminal answer
            PollCancelled: The token was cancelled
        """
        if self.state != PollState.IDLE:
            raise RuntimeError(f"Poller for {self.checkout_request_id} has already run")

        self.state = PollState.POLLING
        try:
            while self.attempts < self.max_attempts:
                self._stop_if_cancelled()
                await self._pause()
                self._stop_if_cancelled()

                self.attempts += 1
                try:
                    status = PaymentStatus(await self.check(self.checkout_request_id))
                except TransientQueryError:
                    self.transient_errors += 1
                    logger.warning(
                        f"Transient error polling {self.checkout_request_id} "
                        f"(attempt {self.attempts}/{self.max_attempts})"
                    )
                    continue

                logger.debug(
                    f"Poll {self.attempts}/{self.max_attempts} for "
                    f"{self.checkout_request_id}: {status.value}"
                )

                if status == PaymentStatus.COMPLETED:
                    self.state = PollState.COMPLETED
                    return status
                if status == PaymentStatus.FAILED:
                    self.state = PollState.FAILED
                    raise PaymentFailed()
        except asyncio.CancelledError:
            self.state = PollState.CANCELLED
            raise

        self.state = PollState.TIMED_OUT
        logger.warning(
            f"Polling for {self.checkout_request_id} timed out after {self.attempts} attempts; "
            f"payment left pending for reconciliation"
        )
        raise PaymentTimeout()


class PollRegistry:
    """Tracks in-flight poll loops so one checkout id is never polled twice at once."""

    def __init__(self) -> None:
        self._active: dict[str, MpesaPoller] = {}

    def is_polling(self, checkout_request_id: str) -> bool:
        return checkout_request_id in self._active

    def register(self, poller: MpesaPoller) -> None:
        if poller.checkout_request_id in self._active:
            raise PollInProgress()
        self._active[poller.checkout_request_id] = poller

    def cancel(self, checkout_request_id: str) -> bool:
        """Cancel a running loop; False if none is running."""
        poller = self._active.get(checkout_request_id)
        if poller is None:
            return False
        poller.cancel()
        return True

    async def run(self, poller: MpesaPoller) -> PaymentStatus:
        """Register, run and always unregister a poller."""
        self.register(poller)
        try:
            return await poller.run()
        finally:
            self._active.pop(poller.checkout_request_id, None)


# One registry per process
poll_registry = PollRegistry()
