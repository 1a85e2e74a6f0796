"""
Bounded-lifetime repeated status polling with cooperative cancellation.

A session runs `check` right away and then every `interval` seconds until
a terminal result, the deadline, or cancellation. The next check is only
scheduled once the previous result has been processed, so at most one
check is in flight per session and updates are delivered in issue order.
Results also carry a sequence number; a stale one is dropped, never applied.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, Iterable, Optional, Protocol, Union

from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException, PollingConflictException
from domain.payment.entity import PaymentResult, PaymentStatus, Rail, TERMINAL_STATUSES


logger = get_logger(__name__)

CheckFn = Callable[[], Awaitable[PaymentResult]]
UpdateFn = Callable[[PaymentResult], Union[None, Awaitable[None]]]

DEFAULT_INTERVAL = 3.0
DEFAULT_TIMEOUT = 300.0


class Clock(Protocol):
    def now(self) -> float: ...

    async def sleep(self, delay: float) -> None: ...


class MonotonicClock:
    """Event loop time."""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


class CancellationToken:
    """Cooperative cancellation flag that can also wake a sleeping poller."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class PollingSession:
    """One polling loop for one payment. Await it for the final result."""

    def __init__(
        self,
        payment_id: Optional[str],
        interval: float,
        deadline_at: float,
        token: Optional[CancellationToken] = None,
    ) -> None:
        self.payment_id = payment_id
        self.interval = interval
        self.deadline_at = deadline_at
        self.token = token or CancellationToken()
        self.checks_issued = 0
        self.in_flight = False
        self.last_result: Optional[PaymentResult] = None
        self._applied_seq = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        """Stop polling. Safe to call repeatedly or after completion."""
        if not self.token.cancelled:
            self.token.cancel()
            logger.info("payment_poll_cancel", payment_id=self.payment_id, checks=self.checks_issued)

    async def wait(self) -> PaymentResult:
        if self._task is None:
            raise RuntimeError("polling session was never started")
        return await asyncio.shield(self._task)

    def __await__(self):
        return self.wait().__await__()

    def _apply(self, seq: int, result: PaymentResult) -> bool:
        if seq <= self._applied_seq:
            logger.warning("payment_poll_stale_result", payment_id=self.payment_id, seq=seq, applied=self._applied_seq)
            return False
        self._applied_seq = seq
        self.last_result = result
        return True

    def _fallback(self, status: PaymentStatus, detail: str) -> PaymentResult:
        if self.last_result is not None:
            return self.last_result.with_status(status, status_detail=detail)
        return PaymentResult(payment_id=self.payment_id or "", status=status, rail=Rail.PIX, status_detail=detail)


class PollingScheduler:
    """Starts polling sessions; at most one active session per payment id."""

    def __init__(
        self,
        *,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Optional[Clock] = None,
        terminal_statuses: Iterable[PaymentStatus] = TERMINAL_STATUSES,
    ) -> None:
        self.interval = interval
        self.timeout = timeout
        self._clock = clock or MonotonicClock()
        self._terminal = frozenset(terminal_statuses)
        self._sessions: dict[str, PollingSession] = {}

    def active(self, payment_id: str) -> Optional[PollingSession]:
        session = self._sessions.get(payment_id)
        if session is None or session.done:
            return None
        return session

    def start(
        self,
        check: CheckFn,
        on_update: Optional[UpdateFn] = None,
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        payment_id: Optional[str] = None,
    ) -> PollingSession:
        """Begin polling `check`; must be called from a running event loop."""
        interval = self.interval if interval is None else interval
        timeout = self.timeout if timeout is None else timeout
        if interval <= 0:
            raise DomainValidationException(f"interval must be positive: {interval}", field="interval")
        if timeout <= 0:
            raise DomainValidationException(f"timeout must be positive: {timeout}", field="timeout")
        if payment_id is not None and self.active(payment_id) is not None:
            raise PollingConflictException(payment_id)

        session = PollingSession(payment_id, interval, self._clock.now() + timeout)
        session._task = asyncio.get_running_loop().create_task(self._run(session, check, on_update))
        if payment_id is not None:
            self._sessions[payment_id] = session
            session._task.add_done_callback(lambda _task: self._release(session))
        logger.info("payment_poll_start", payment_id=payment_id, interval=interval, timeout=timeout)
        return session

    def cancel(self, session: PollingSession) -> None:
        session.cancel()

    def _release(self, session: PollingSession) -> None:
        if session.payment_id is not None and self._sessions.get(session.payment_id) is session:
            del self._sessions[session.payment_id]

    async def _run(self, session: PollingSession, check: CheckFn, on_update: Optional[UpdateFn]) -> PaymentResult:
        while True:
            if session.cancelled:
                return session._fallback(PaymentStatus.CANCELLED, "Polling cancelled")

            session.checks_issued += 1
            seq = session.checks_issued
            session.in_flight = True
            try:
                result = await check()
            except Exception as exc:
                logger.warning("payment_poll_check_failed", payment_id=session.payment_id, seq=seq, error=str(exc))
                rail = session.last_result.rail if session.last_result else Rail.PIX
                result = PaymentResult.error(rail, f"Status check failed: {exc}", payment_id=session.payment_id or "")
            finally:
                session.in_flight = False

            if session.cancelled:
                # the call was already dispatched when cancel() ran
                logger.info("payment_poll_result_dropped", payment_id=session.payment_id, seq=seq)
                return session._fallback(PaymentStatus.CANCELLED, "Polling cancelled")

            if session._apply(seq, result):
                await self._notify(session, on_update, result)
                if result.status in self._terminal:
                    logger.info("payment_poll_finished", payment_id=session.payment_id, status=result.status.value, checks=seq)
                    return result

            remaining = session.deadline_at - self._clock.now()
            if remaining <= 0:
                logger.info("payment_poll_expired", payment_id=session.payment_id, checks=seq)
                return session._fallback(PaymentStatus.EXPIRED, "Payment not confirmed before the deadline")
            await self._pause(session, min(session.interval, remaining))

    async def _notify(self, session: PollingSession, on_update: Optional[UpdateFn], result: PaymentResult) -> None:
        if on_update is None or session.cancelled:
            return
        try:
            outcome = on_update(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            # callback errors never stop polling
            logger.exception("payment_poll_update_callback_failed", payment_id=session.payment_id)

    async def _pause(self, session: PollingSession, delay: float) -> None:
        sleeper = asyncio.ensure_future(self._clock.sleep(delay))
        waiter = asyncio.ensure_future(session.token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
