"""
Application service orchestrating one checkout payment across both rails.

The orchestrator depends only on the rail ports. Gateway implementations
are provided by infrastructure and injected from the composition root,
keeping dependencies one-way. Rails report failures as results; the only
exceptions leaving this service are programmer errors.
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field, replace
from typing import Optional

from application.dtos.payments import PaymentRequest
from application.ports.payment_gateway import CardGateway, PixGateway
from application.services.polling import PollingScheduler, PollingSession, UpdateFn
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException, UnsupportedPaymentMethodException
from domain.payment.entity import (
    CancelResult,
    DeviceStatus,
    OrchestratorState,
    PaymentMethod,
    PaymentResult,
    PaymentStatus,
    Rail,
)


logger = get_logger(__name__)


@dataclass(eq=False)
class PaymentAttempt:
    """Single-owner handle for one checkout attempt."""

    request: PaymentRequest
    state: OrchestratorState = OrchestratorState.IDLE
    result: Optional[PaymentResult] = None
    session: Optional[PollingSession] = None
    cancel_requested: bool = False
    cancel_outcome: Optional[CancelResult] = None
    # set while a cancellation is being carried out for this attempt
    cancel_done: Optional[asyncio.Future] = None
    cancel_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def rail(self) -> Rail:
        return self.request.method.rail

    @property
    def payment_id(self) -> Optional[str]:
        return self.result.payment_id if self.result and self.result.payment_id else None

    @property
    def finished(self) -> bool:
        return self.state.is_final


class PaymentOrchestrator:
    def __init__(
        self,
        pix: PixGateway,
        card: CardGateway,
        scheduler: Optional[PollingScheduler] = None,
    ) -> None:
        self.pix = pix
        self.card = card
        self.scheduler = scheduler or PollingScheduler()
        self._active: Optional[PaymentAttempt] = None

    @property
    def active(self) -> Optional[PaymentAttempt]:
        return self._active

    @property
    def state(self) -> OrchestratorState:
        return self._active.state if self._active else OrchestratorState.IDLE

    def status(self) -> Optional[PaymentResult]:
        """Snapshot of the current attempt's latest known result."""
        if self._active is None or self._active.result is None:
            return None
        return replace(self._active.result)

    async def device_status(self) -> DeviceStatus:
        return await self.card.status()

    async def pay(self, request: PaymentRequest, on_update: Optional[UpdateFn] = None) -> PaymentResult:
        """Run one payment to its final result.

        PIX resolves once polling sees a terminal status, the deadline passes,
        or the attempt is cancelled; card resolves with the pin pad decision.
        `on_update` receives intermediate results (the first one carries the QR code).
        """
        if not isinstance(request, PaymentRequest):
            raise DomainValidationException("request must be a PaymentRequest", field="request")
        if not isinstance(request.method, PaymentMethod):
            raise UnsupportedPaymentMethodException(request.method)
        if request.amount_cents <= 0:
            raise DomainValidationException(f"Amount must be greater than 0: {request.amount_cents}", field="amount_cents")

        previous = self._active
        if previous is not None and not previous.finished:
            logger.warning("payment_attempt_replaced", order_id=previous.request.order_id, state=previous.state.value)
            await self.cancel(previous)

        attempt = PaymentAttempt(request=request, state=OrchestratorState.CREATING)
        self._active = attempt
        logger.info(
            "payment_attempt_start",
            order_id=request.order_id,
            method=request.method.value,
            amount_cents=request.amount_cents,
        )
        if attempt.rail is Rail.PIX:
            return await self._pay_pix(attempt, on_update)
        return await self._pay_card(attempt)

    async def _pay_card(self, attempt: PaymentAttempt) -> PaymentResult:
        request = attempt.request
        try:
            result = await self.card.charge(request.amount_cents, request.method, request.installments)
        except asyncio.CancelledError:
            # the device may still complete the charge; its outcome is unknown here
            self._abandon(attempt, PaymentStatus.ERROR, "Card charge interrupted; check the pin pad")
            raise
        result.order_id = result.order_id or request.order_id
        return self._finish(attempt, result)

    async def _pay_pix(self, attempt: PaymentAttempt, on_update: Optional[UpdateFn]) -> PaymentResult:
        try:
            created = await self.pix.create(attempt.request)
        except asyncio.CancelledError:
            self._abandon(attempt, PaymentStatus.CANCELLED, "Payment creation interrupted")
            raise
        attempt.result = created

        if attempt.cancel_requested:
            # cancel() arrived while the charge was being created
            if created.status is PaymentStatus.ERROR:
                outcome = CancelResult(success=True, message="Payment was not created")
                self._finish(attempt, created)
            else:
                outcome = await self._cancel_created_pix(attempt)
            attempt.cancel_outcome = outcome
            if attempt.cancel_done is not None and not attempt.cancel_done.done():
                attempt.cancel_done.set_result(outcome)
            return attempt.result

        if created.status is not PaymentStatus.PENDING:
            return self._finish(attempt, created)

        attempt.state = OrchestratorState.AWAITING_CONFIRMATION
        await _deliver(on_update, created)
        if attempt.cancel_requested:
            # cancelled before polling started
            await asyncio.shield(attempt.cancel_done)
            return attempt.result

        def _track(result: PaymentResult):
            attempt.result = _merge(created, result)
            return on_update(attempt.result) if on_update else None

        payment_id = created.payment_id
        attempt.session = self.scheduler.start(
            lambda: self.pix.check_status(payment_id),
            _track,
            payment_id=payment_id,
        )
        try:
            polled = await attempt.session
        except asyncio.CancelledError:
            attempt.session.cancel()
            attempt.cancel_requested = True
            raise

        if polled.status is PaymentStatus.CANCELLED and attempt.cancel_done is not None:
            # cancel() owns the provider call; report its reconciled outcome
            await asyncio.shield(attempt.cancel_done)
            return attempt.result
        return self._finish(attempt, _merge(created, polled))

    async def cancel(self, attempt: Optional[PaymentAttempt] = None) -> CancelResult:
        """Cancel the given (or current) attempt.

        Already-final attempts are a no-op reported as success; the one
        exception is an approved card charge, which is reversed on the pin pad.
        """
        attempt = attempt or self._active
        if attempt is None:
            return CancelResult(success=True, message="No payment in progress")

        async with attempt.cancel_lock:
            if attempt.cancel_outcome is not None and attempt.cancel_outcome.success:
                return attempt.cancel_outcome
            if attempt.rail is Rail.PIX:
                outcome = await self._cancel_pix(attempt)
            else:
                outcome = await self._cancel_card(attempt)
            if outcome.success:
                attempt.cancel_outcome = outcome
            return outcome

    async def _cancel_pix(self, attempt: PaymentAttempt) -> CancelResult:
        if attempt.state is OrchestratorState.CREATING:
            attempt.cancel_requested = True
            if attempt.cancel_done is None:
                attempt.cancel_done = asyncio.get_running_loop().create_future()
            logger.info("payment_cancel_deferred", order_id=attempt.request.order_id)
            return await asyncio.shield(attempt.cancel_done)

        if attempt.finished:
            return _noop(attempt)

        attempt.cancel_requested = True
        attempt.cancel_done = asyncio.get_running_loop().create_future()
        try:
            if attempt.session is not None:
                # stop and drain polling before touching the payment
                attempt.session.cancel()
                polled = await attempt.session.wait()
                if polled.status is not PaymentStatus.CANCELLED:
                    # settled before cancellation took effect
                    self._finish(attempt, _merge(attempt.result, polled))
                    return _noop(attempt)
            return await self._cancel_created_pix(attempt)
        finally:
            if not attempt.cancel_done.done():
                attempt.cancel_done.set_result(attempt.cancel_outcome)

    async def _cancel_created_pix(self, attempt: PaymentAttempt) -> CancelResult:
        payment_id = attempt.payment_id or ""
        outcome = await self.pix.cancel(payment_id)
        base = attempt.result
        if outcome.success:
            self._finish(attempt, base.with_status(PaymentStatus.CANCELLED, status_detail=outcome.message))
        else:
            # the provider refused; find out whether the payment settled meanwhile
            latest = await self.pix.check_status(payment_id)
            if latest.is_terminal:
                self._finish(attempt, _merge(base, latest))
            else:
                self._finish(
                    attempt,
                    base.with_status(PaymentStatus.CANCELLED, error_reason=outcome.message),
                )
        logger.info(
            "payment_pix_cancel_result",
            payment_id=payment_id,
            success=outcome.success,
            status=attempt.result.status.value,
        )
        if attempt.cancel_done is not None and not attempt.cancel_done.done():
            attempt.cancel_done.set_result(outcome)
        return outcome

    async def _cancel_card(self, attempt: PaymentAttempt) -> CancelResult:
        if attempt.state is OrchestratorState.CREATING:
            return CancelResult(success=False, message="Card charge in progress; cancel it on the pin pad")
        result = attempt.result
        if result is None or result.status is not PaymentStatus.APPROVED or not result.payment_id:
            return _noop(attempt)

        outcome = await self.card.cancel(result.payment_id, attempt.request.amount_cents)
        logger.info("payment_card_reversal_result", nsu=result.payment_id, success=outcome.success)
        if outcome.success:
            self._finish(attempt, result.with_status(PaymentStatus.CANCELLED, status_detail=outcome.message))
        return outcome

    async def aclose(self) -> None:
        """Cancel an unfinished PIX charge, then close rail resources."""
        active = self._active
        if active is not None and active.rail is Rail.PIX and not active.finished:
            await self.cancel(active)
        for gateway in (self.pix, self.card):
            close = getattr(gateway, "close", None)
            if callable(close):
                await close()

    def _abandon(self, attempt: PaymentAttempt, status: PaymentStatus, reason: str) -> None:
        """End an attempt whose `pay()` was cancelled before the rail answered."""
        request = attempt.request
        self._finish(
            attempt,
            PaymentResult(
                payment_id="",
                status=status,
                rail=attempt.rail,
                error_reason=reason,
                order_id=request.order_id,
                amount_cents=request.amount_cents,
            ),
        )
        if attempt.cancel_done is not None and not attempt.cancel_done.done():
            attempt.cancel_done.set_result(CancelResult(success=True, message="Payment was not created"))

    def _finish(self, attempt: PaymentAttempt, result: PaymentResult) -> PaymentResult:
        attempt.result = result
        attempt.state = OrchestratorState.from_status(result.status)
        logger.info(
            "payment_attempt_result",
            order_id=attempt.request.order_id,
            payment_id=result.payment_id,
            rail=result.rail.value,
            status=result.status.value,
            detail=result.message,
        )
        return result


def _merge(created: PaymentResult, polled: PaymentResult) -> PaymentResult:
    """Polled status on top of what creation already knew (QR, order, amount)."""
    return replace(
        polled,
        payment_id=polled.payment_id or created.payment_id,
        order_id=polled.order_id or created.order_id,
        amount_cents=polled.amount_cents or created.amount_cents,
        qr_code=polled.qr_code or created.qr_code,
        qr_code_copy_paste=polled.qr_code_copy_paste or created.qr_code_copy_paste,
    )


def _noop(attempt: PaymentAttempt) -> CancelResult:
    status = attempt.result.status.value if attempt.result else attempt.state.value
    return CancelResult(success=True, message=f"Payment already {status}; nothing to cancel")


async def _deliver(on_update: Optional[UpdateFn], result: PaymentResult) -> None:
    if on_update is None:
        return
    try:
        outcome = on_update(result)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        logger.exception("payment_update_callback_failed", payment_id=result.payment_id)
