import json

import httpx
import pytest

from core.settings import PaymentRetry, PinpadSettings
from domain.common.exceptions import UnsupportedPaymentMethodException
from domain.payment.entity import PaymentMethod, PaymentStatus, Rail
from infrastructure.external.payments.pinpad_client import PinpadClient


PINPAD = PinpadSettings(base_url="http://pinpad.local/api")


def _client(mock_http, handler) -> PinpadClient:
    return PinpadClient(PINPAD, retry=PaymentRetry(max=0, base_backoff=0.0), client=mock_http(handler))


@pytest.mark.asyncio
async def test_charge_rejected_carries_device_message(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"aprovado": False, "mensagem": "saldo insuficiente"})

    result = await _client(mock_http, handler).charge(1000, PaymentMethod.CREDIT)
    assert result.status is PaymentStatus.REJECTED
    assert result.rail is Rail.CARD
    assert result.message == "saldo insuficiente"


@pytest.mark.asyncio
async def test_charge_approved_sends_cents_type_and_installments(mock_http):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"aprovado": True, "nsu": 123456, "mensagem": "APROVADA"})

    result = await _client(mock_http, handler).charge(1990, PaymentMethod.DEBIT, installments=3)
    assert seen["url"] == "http://pinpad.local/api/pagamento"
    assert seen["body"] == {"valor": 1990, "tipo": "debito", "parcelas": 3}
    assert result.status is PaymentStatus.APPROVED
    assert result.payment_id == "123456"
    assert result.installments == 3
    assert result.amount_cents == 1990


@pytest.mark.asyncio
async def test_charge_network_failure_is_error_result(mock_http):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    # retries configured, but a charge is never replayed
    client = PinpadClient(PINPAD, retry=PaymentRetry(max=3, base_backoff=0.0), client=mock_http(handler))
    result = await client.charge(500, PaymentMethod.CREDIT)
    assert result.status is PaymentStatus.ERROR
    assert result.error_reason and "Pin pad error" in result.error_reason
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_charge_timeout_is_error_result(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("device did not answer", request=request)

    result = await _client(mock_http, handler).charge(500, PaymentMethod.CREDIT)
    assert result.status is PaymentStatus.ERROR
    assert "timeout" in result.error_reason.lower()


@pytest.mark.asyncio
async def test_charge_error_status_without_body_is_error(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="Bad Gateway")

    result = await _client(mock_http, handler).charge(500, PaymentMethod.CREDIT)
    assert result.status is PaymentStatus.ERROR


@pytest.mark.asyncio
async def test_charge_error_status_with_decision_is_rejection(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"aprovado": False, "mensagem": "cartao bloqueado"})

    result = await _client(mock_http, handler).charge(500, PaymentMethod.CREDIT)
    assert result.status is PaymentStatus.REJECTED
    assert result.status_detail == "cartao bloqueado"


@pytest.mark.asyncio
async def test_charge_unreadable_body_is_error(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["not", "an", "object"])

    result = await _client(mock_http, handler).charge(500, PaymentMethod.CREDIT)
    assert result.status is PaymentStatus.ERROR


@pytest.mark.asyncio
async def test_charge_rejects_pix_method(mock_http):
    client = _client(mock_http, lambda request: httpx.Response(200, json={}))
    with pytest.raises(UnsupportedPaymentMethodException):
        await client.charge(500, PaymentMethod.PIX)


@pytest.mark.asyncio
async def test_cancel_posts_nsu_and_amount(mock_http):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"aprovado": True, "mensagem": "estornado"})

    outcome = await _client(mock_http, handler).cancel("123456", 1990)
    assert seen["url"] == "http://pinpad.local/api/cancelar"
    assert seen["body"] == {"nsu": "123456", "valor": 1990}
    assert outcome.success is True
    assert outcome.message == "estornado"


@pytest.mark.asyncio
async def test_cancel_surfaces_provider_refusal(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"aprovado": False, "mensagem": "transacao ja cancelada"})

    outcome = await _client(mock_http, handler).cancel("123456", 1990)
    assert outcome.success is False
    assert outcome.message == "transacao ja cancelada"


@pytest.mark.asyncio
async def test_cancel_network_failure(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    outcome = await _client(mock_http, handler).cancel("1", 100)
    assert outcome.success is False
    assert outcome.message


@pytest.mark.asyncio
async def test_status_online_and_offline(mock_http):
    online = _client(mock_http, lambda request: httpx.Response(200, json={"status": "online", "mensagem": "PINPAD OK"}))
    status = await online.status()
    assert status.online is True
    assert status.message == "PINPAD OK"

    def down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    status = await _client(mock_http, down).status()
    assert status.online is False
