"""
Card rail adapter for the local pin pad service.

One request, one bounded-time answer. Charges are never retried: a
replayed POST could charge the customer twice.
"""
from __future__ import annotations

from typing import Optional

import httpx

from core.logging_config import get_logger
from core.settings import PinpadSettings, PaymentRetry
from domain.common.exceptions import DomainValidationException, UnsupportedPaymentMethodException
from domain.payment.entity import CancelResult, DeviceStatus, PaymentMethod, PaymentResult, PaymentStatus, Rail
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.models import (
    PinpadCancelBody,
    PinpadChargeBody,
    PinpadResponse,
    PinpadStatusResponse,
)
from shared.codes.payment_codes import PINPAD_PAYMENT_TYPES


logger = get_logger(__name__)

ONLINE_STATUSES = {"online", "ok", "ready", "conectado", "connected"}


class PinpadClient(BasePaymentClient):
    provider = "pinpad"

    def __init__(
        self,
        config: Optional[PinpadSettings] = None,
        *,
        retry: Optional[PaymentRetry] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or PinpadSettings()
        retry = retry or PaymentRetry()
        super().__init__(
            self.config.base_url,
            timeout=self.config.charge_timeout,
            retry={"max": retry.max, "base": retry.base_backoff},
            client=client,
        )

    async def _decision(self, path: str, body: dict, timeout: float) -> Optional[PinpadResponse]:
        """POST to the device; the parsed decision, or None when there is no usable answer.

        An error status whose body still carries `aprovado` counts as an answer.
        """
        try:
            response = await self._send(lambda: self.post(path, json_data=body, timeout=timeout))
            data = response.data
        except PaymentProviderError as exc:
            data = exc.body
            if not data or data.get("aprovado") is None:
                raise
        return self._parse(PinpadResponse, data)

    async def charge(self, amount_cents: int, method: PaymentMethod, installments: int = 1) -> PaymentResult:
        """Charge the card on the pin pad; APPROVED, REJECTED or ERROR."""
        method = PaymentMethod(method)
        if method.rail is not Rail.CARD:
            raise UnsupportedPaymentMethodException(method)
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise DomainValidationException(f"amount_cents must be a positive integer: {amount_cents!r}", field="amount_cents")
        if installments < 1:
            raise DomainValidationException(f"installments must be >= 1: {installments}", field="installments")

        body = PinpadChargeBody(valor=amount_cents, tipo=PINPAD_PAYMENT_TYPES[method.value], parcelas=installments)
        self._log("payment_card_charge_request", amount_cents=amount_cents, tipo=body.tipo, parcelas=installments)
        try:
            answer = await self._decision("/pagamento", body.model_dump(), self.config.charge_timeout)
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            self._log_failure("payment_card_charge_failed", exc, amount_cents=amount_cents)
            return PaymentResult.error(
                Rail.CARD,
                f"Pin pad error: {exc.message}",
                amount_cents=amount_cents,
                installments=installments,
            )
        if answer is None:
            return PaymentResult.error(
                Rail.CARD,
                "Pin pad returned an unreadable response",
                amount_cents=amount_cents,
                installments=installments,
            )

        approved = answer.aprovado is True
        result = PaymentResult(
            payment_id=answer.nsu or "",
            status=PaymentStatus.APPROVED if approved else PaymentStatus.REJECTED,
            rail=Rail.CARD,
            status_detail=answer.mensagem,
            amount_cents=amount_cents,
            installments=installments,
        )
        self._log("payment_card_charge_response", nsu=result.payment_id, status=result.status.value)
        return result

    async def cancel(self, payment_id: str, amount_cents: int) -> CancelResult:
        """Reverse one transaction/amount pair; double reversal is refused by the device."""
        body = PinpadCancelBody(nsu=payment_id, valor=amount_cents)
        self._log("payment_card_cancel_request", nsu=payment_id, amount_cents=amount_cents)
        try:
            answer = await self._decision("/cancelar", body.model_dump(), self.config.cancel_timeout)
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            self._log_failure("payment_card_cancel_failed", exc, nsu=payment_id)
            return CancelResult(success=False, message=f"Pin pad error: {exc.message}")
        if answer is None:
            return CancelResult(success=False, message="Pin pad returned an unreadable response")
        return CancelResult(success=answer.aprovado is True, message=answer.mensagem)

    async def status(self) -> DeviceStatus:
        """Whether the pin pad service answers; never raises."""
        try:
            response = await self._send(lambda: self.get("/status", timeout=self.config.status_timeout, retry=False))
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            self._log_failure("payment_pinpad_status_failed", exc)
            return DeviceStatus(online=False, message=exc.message)

        answer = self._parse(PinpadStatusResponse, response.data)
        if answer is None:
            return DeviceStatus(online=True)
        online = answer.online
        if online is None:
            online = answer.status is None or answer.status.strip().lower() in ONLINE_STATUSES
        return DeviceStatus(online=online, message=answer.mensagem or answer.status)
