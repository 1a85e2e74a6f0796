"""Checkout flows over real rail clients with a mocked HTTP transport."""
import json

import httpx
import pytest

from application.dtos.payments import PaymentRequest
from application.services.payment_service import PaymentOrchestrator
from application.services.polling import PollingScheduler
from core.settings import PaymentRetry, PinpadSettings, PixSettings
from domain.payment.entity import OrchestratorState, PaymentMethod, PaymentStatus
from infrastructure.external.payments.pinpad_client import PinpadClient
from infrastructure.external.payments.pix_client import PixClient


class FakeBackends:
    """Answers both the kiosk backend and the pin pad service."""

    def __init__(self, pix_statuses):
        self.pix_statuses = list(pix_statuses)
        self.requests: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        path = request.url.path
        if path == "/api/payment/create-pix":
            return httpx.Response(201, json={"id": 1234, "qr_code_base64": "img", "qr_code": "txt", "status": "pending"})
        if path.startswith("/api/payment/status/"):
            status = self.pix_statuses.pop(0) if len(self.pix_statuses) > 1 else self.pix_statuses[0]
            return httpx.Response(200, json={"id": 1234, "status": status})
        if path.startswith("/api/payment/cancel/"):
            return httpx.Response(200, json={"message": "Pagamento cancelado"})
        if path == "/api/pagamento":
            body = json.loads(request.content)
            return httpx.Response(200, json={"aprovado": body["valor"] < 100000, "nsu": 555, "mensagem": "ok"})
        if path == "/api/cancelar":
            return httpx.Response(200, json={"aprovado": True, "mensagem": "Cancelamento aprovado"})
        return httpx.Response(404, json={"error": "not found"})


def _orchestrator(backends: FakeBackends, mock_http, scheduler: PollingScheduler) -> PaymentOrchestrator:
    retry = PaymentRetry(max=0, base_backoff=0.0)
    pix = PixClient(PixSettings(base_url="http://backend.local"), retry=retry, client=mock_http(backends))
    card = PinpadClient(PinpadSettings(base_url="http://pinpad.local/api"), retry=retry, client=mock_http(backends))
    return PaymentOrchestrator(pix, card, scheduler)


@pytest.mark.asyncio
async def test_pix_checkout_end_to_end(mock_http, fake_clock):
    backends = FakeBackends(["pending", "in_process", "approved"])
    orchestrator = _orchestrator(backends, mock_http, PollingScheduler(interval=3.0, timeout=300.0, clock=fake_clock))
    updates = []

    result = await orchestrator.pay(PaymentRequest.from_amount(PaymentMethod.PIX, 19.9, "order-7"), updates.append)

    assert result.status is PaymentStatus.APPROVED
    assert result.payment_id == "1234"
    assert result.amount_cents == 1990
    assert updates[0].qr_code == "img"
    assert backends.requests.count(("GET", "/api/payment/status/1234")) == 3
    assert orchestrator.state is OrchestratorState.APPROVED


@pytest.mark.asyncio
async def test_card_checkout_and_reversal_end_to_end(mock_http, fake_clock):
    backends = FakeBackends(["pending"])
    orchestrator = _orchestrator(backends, mock_http, PollingScheduler(clock=fake_clock))

    result = await orchestrator.pay(PaymentRequest(method=PaymentMethod.DEBIT, amount_cents=4590, order_id="order-8"))
    assert result.status is PaymentStatus.APPROVED
    assert result.payment_id == "555"

    outcome = await orchestrator.cancel()
    assert outcome.success is True
    assert backends.requests[-1] == ("POST", "/api/cancelar")
    assert orchestrator.state is OrchestratorState.CANCELLED
