"""
PIX rail adapter talking to the kiosk backend.

The backend fronts the real PIX provider; this client only creates the
charge, queries its status and cancels it. Polling lives in the
application layer (PollingScheduler) so callers may choose not to poll.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.dtos.payments import PaymentRequest
from core.logging_config import get_logger
from core.settings import PixSettings, PaymentRetry
from domain.common.exceptions import DomainValidationException, UnsupportedPaymentMethodException
from domain.payment.entity import CancelResult, PaymentMethod, PaymentResult, PaymentStatus, Rail, to_minor_units
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.models import (
    PixCreateBody,
    PixCreateResponse,
    PixStatusResponse,
    ProviderMessage,
)


logger = get_logger(__name__)

CREATE_PATH = "/api/payment/create-pix"
STATUS_PATH = "/api/payment/status/{payment_id}"
CANCEL_PATH = "/api/payment/cancel/{payment_id}"

DEFAULT_CREATE_ERROR = "Could not create PIX payment"
DEFAULT_STATUS_ERROR = "Could not check payment status"
DEFAULT_CANCEL_ERROR = "Could not cancel PIX payment"


def _provider_reason(exc: Exception, default: str) -> str:
    if isinstance(exc, PaymentProviderError):
        body = BasePaymentClient._parse(ProviderMessage, exc.body)
        if body and (body.error or body.message):
            return str(body.error or body.message)
        return default
    if isinstance(exc, PaymentRecoverableError):
        return f"{default}: {exc.message}"
    return default


class PixClient(BasePaymentClient):
    provider = "pix"

    def __init__(
        self,
        config: Optional[PixSettings] = None,
        *,
        retry: Optional[PaymentRetry] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or PixSettings()
        retry = retry or PaymentRetry()
        super().__init__(
            self.config.base_url,
            timeout=self.config.timeout,
            retry={"max": retry.max, "base": retry.base_backoff},
            headers=self.config.headers,
            auth_token=self.config.auth_token,
            client=client,
        )

    async def create(self, request: PaymentRequest) -> PaymentResult:
        """Create a PIX charge; PENDING with QR payloads, or ERROR."""
        if request.method is not PaymentMethod.PIX:
            raise UnsupportedPaymentMethodException(request.method)

        body = PixCreateBody(
            amount=float(request.amount),
            description=request.description or f"Pedido {request.order_id}",
            order_id=request.order_id,
            email=request.email or self.config.default_email,
            payer_name=request.payer_name or self.config.default_payer_name,
        )
        self._log("payment_pix_create_request", order_id=request.order_id, amount_cents=request.amount_cents)
        try:
            response = await self._send(
                lambda: self.post(CREATE_PATH, json_data=body.model_dump(by_alias=True))
            )
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            self._log_failure("payment_pix_create_failed", exc, order_id=request.order_id)
            return PaymentResult.error(
                Rail.PIX,
                _provider_reason(exc, DEFAULT_CREATE_ERROR),
                order_id=request.order_id,
                amount_cents=request.amount_cents,
            )

        created = self._parse(PixCreateResponse, response.data)
        if created is None or not created.resolved_id:
            logger.warning("payment_pix_create_missing_id", order_id=request.order_id)
            return PaymentResult.error(
                Rail.PIX,
                f"{DEFAULT_CREATE_ERROR}: provider response has no payment id",
                order_id=request.order_id,
                amount_cents=request.amount_cents,
            )

        result = PaymentResult(
            payment_id=created.resolved_id,
            status=PaymentStatus.PENDING,
            rail=Rail.PIX,
            order_id=request.order_id,
            amount_cents=request.amount_cents,
            provider_status=created.status,
            qr_code=created.resolved_qr_image,
            qr_code_copy_paste=created.resolved_qr_text,
        )
        self._log("payment_pix_created", order_id=request.order_id, payment_id=result.payment_id)
        return result

    async def check_status(self, payment_id: str) -> PaymentResult:
        """Query the provider once; failures come back as an ERROR result."""
        try:
            response = await self._send(
                lambda: self.get(STATUS_PATH.format(payment_id=payment_id))
            )
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            self._log_failure("payment_pix_status_failed", exc, payment_id=payment_id)
            return PaymentResult.error(
                Rail.PIX, _provider_reason(exc, DEFAULT_STATUS_ERROR), payment_id=payment_id
            )

        status = self._parse(PixStatusResponse, response.data) or PixStatusResponse()
        amount_cents = None
        if status.amount is not None:
            try:
                amount_cents = to_minor_units(status.amount)
            except DomainValidationException:
                amount_cents = None
        return PaymentResult(
            payment_id=status.resolved_id or payment_id,
            status=self._map_status(status.status),
            rail=Rail.PIX,
            status_detail=status.resolved_detail,
            order_id=status.order_id,
            amount_cents=amount_cents,
            provider_status=status.status,
        )

    async def cancel(self, payment_id: str) -> CancelResult:
        """Cancel a pending PIX charge, forwarding whatever the provider answers."""
        self._log("payment_pix_cancel_request", payment_id=payment_id)
        try:
            response = await self._send(
                lambda: self.delete(CANCEL_PATH.format(payment_id=payment_id))
            )
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            self._log_failure("payment_pix_cancel_failed", exc, payment_id=payment_id)
            return CancelResult(success=False, message=_provider_reason(exc, DEFAULT_CANCEL_ERROR))

        answer = self._parse(ProviderMessage, response.data)
        return CancelResult(success=True, message=answer.message if answer else None)
