"""
M-Pesa confirmation poll loop tests.
"""

import asyncio
import pytest

from carwash.core.exceptions import (
    PaymentFailed,
    PaymentTimeout,
    PollCancelled,
    PollInProgress,
    TransientQueryError,
)
from carwash.models.payment import PaymentStatus
from carwash.services.polling import MpesaPoller, PollRegistry, PollState


class Script:
    """Status check returning scripted answers and counting the pauses."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = 0
        self.slept = 0.0

    async def check(self, checkout_request_id: str) -> PaymentStatus:
        self.calls += 1
        answer = self.answers.pop(0) if self.answers else PaymentStatus.PENDING
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def sleep(self, seconds: float) -> None:
        self.slept += seconds


def poller_for(script: Script, **kwargs) -> MpesaPoller:
    kwargs.setdefault("interval", 2.0)
    kwargs.setdefault("max_attempts", 30)
    return MpesaPoller("ws_1", script.check, sleep=script.sleep, **kwargs)


async def test_completes_on_third_poll():
    script = Script(PaymentStatus.PENDING, PaymentStatus.PENDING, PaymentStatus.COMPLETED)
    poller = poller_for(script)

    result = await poller.run()

    assert result == PaymentStatus.COMPLETED
    assert poller.state == PollState.COMPLETED
    assert poller.attempts == 3
    assert 4.0 <= script.slept <= 6.0


async def test_failed_answer_raises_payment_failed():
    script = Script(PaymentStatus.PENDING, PaymentStatus.FAILED)
    poller = poller_for(script)

    with pytest.raises(PaymentFailed):
        await poller.run()

    assert poller.state == PollState.FAILED
    assert script.calls == 2


async def test_times_out_after_max_attempts():
    script = Script()
    poller = poller_for(script)

    with pytest.raises(PaymentTimeout):
        await poller.run()

    assert poller.state == PollState.TIMED_OUT
    assert script.calls == 30
    assert script.slept == pytest.approx(60.0)


async def test_transient_error_consumes_an_attempt():
    script = Script(TransientQueryError(), PaymentStatus.COMPLETED)
    poller = poller_for(script)

    assert await poller.run() == PaymentStatus.COMPLETED
    assert poller.attempts == 2
    assert poller.transient_errors == 1


async def test_transient_errors_until_timeout():
    script = Script(*[TransientQueryError()] * 3)
    poller = poller_for(script, max_attempts=3)

    with pytest.raises(PaymentTimeout):
        await poller.run()

    assert poller.transient_errors == 3


async def test_cancel_before_first_attempt():
    script = Script(PaymentStatus.COMPLETED)
    poller = poller_for(script)
    poller.cancel()

    with pytest.raises(PollCancelled):
        await poller.run()

    assert poller.state == PollState.CANCELLED
    assert script.calls == 0


async def test_cancel_interrupts_the_wait():
    script = Script()
    poller = MpesaPoller("ws_1", script.check, interval=30.0, max_attempts=5)

    task = asyncio.create_task(poller.run())
    await asyncio.sleep(0.01)
    poller.cancel()

    with pytest.raises(PollCancelled):
        await asyncio.wait_for(task, timeout=1.0)
    assert script.calls == 0


async def test_poller_runs_once():
    script = Script(PaymentStatus.COMPLETED)
    poller = poller_for(script)
    await poller.run()

    with pytest.raises(RuntimeError):
        await poller.run()


async def test_registry_rejects_duplicate_poll():
    registry = PollRegistry()
    script = Script()
    first = MpesaPoller("ws_1", script.check, interval=30.0, max_attempts=5)

    task = asyncio.create_task(registry.run(first))
    await asyncio.sleep(0.01)
    assert registry.is_polling("ws_1")

    with pytest.raises(PollInProgress):
        await registry.run(MpesaPoller("ws_1", script.check))

    assert registry.cancel("ws_1") is True
    with pytest.raises(PollCancelled):
        await task
    assert not registry.is_polling("ws_1")


async def test_registry_cancel_unknown():
    assert PollRegistry().cancel("ws_404") is False
