import json

import httpx
import pytest

from application.dtos.payments import PaymentRequest
from core.settings import PaymentRetry, PixSettings
from domain.payment.entity import PaymentMethod, PaymentStatus, Rail
from infrastructure.external.payments.pix_client import PixClient


BACKEND = PixSettings(base_url="http://backend.local", auth_token="tok_123", headers={"x-store-id": "loja-1"})
NO_RETRY = PaymentRetry(max=0, base_backoff=0.0)


def _client(mock_http, handler, retry: PaymentRetry = NO_RETRY) -> PixClient:
    return PixClient(BACKEND, retry=retry, client=mock_http(handler))


def _request(**kwargs) -> PaymentRequest:
    return PaymentRequest.from_amount(PaymentMethod.PIX, kwargs.pop("amount", "25.00"), kwargs.pop("order_id", "o1"), **kwargs)


@pytest.mark.asyncio
async def test_create_returns_pending_with_qr_payloads(mock_http):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            201,
            json={"id": 987654321, "qr_code_base64": "iVBORw0KGgo=", "qr_code": "00020126580014br.gov.bcb.pix", "status": "pending"},
        )

    result = await _client(mock_http, handler).create(_request())
    assert seen["method"] == "POST"
    assert seen["url"] == "http://backend.local/api/payment/create-pix"
    assert seen["headers"]["authorization"] == "Bearer tok_123"
    assert seen["headers"]["x-store-id"] == "loja-1"
    assert seen["body"] == {
        "amount": 25.0,
        "description": "Pedido o1",
        "orderId": "o1",
        "email": "cliente@totem.com.br",
        "payerName": "Cliente",
    }
    assert result.status is PaymentStatus.PENDING
    assert result.rail is Rail.PIX
    assert result.payment_id == "987654321"
    assert result.qr_code == "iVBORw0KGgo="
    assert result.qr_code_copy_paste == "00020126580014br.gov.bcb.pix"
    assert result.amount_cents == 2500
    assert result.order_id == "o1"


@pytest.mark.asyncio
async def test_create_uses_payer_metadata_and_camel_case_fallbacks(mock_http):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"paymentId": "p-1", "qrCodeBase64": "img", "qrCodeCopyPaste": "txt"})

    req = _request(email="ana@example.com", payer_name="Ana", description="Combo 3")
    result = await _client(mock_http, handler).create(req)
    assert seen["body"]["email"] == "ana@example.com"
    assert seen["body"]["payerName"] == "Ana"
    assert seen["body"]["description"] == "Combo 3"
    assert result.payment_id == "p-1"
    assert result.qr_code == "img"
    assert result.qr_code_copy_paste == "txt"


@pytest.mark.asyncio
async def test_create_failure_is_error_with_provider_reason(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "Access Token do Mercado Pago nao configurado"})

    result = await _client(mock_http, handler).create(_request())
    assert result.status is PaymentStatus.ERROR
    assert result.error_reason == "Access Token do Mercado Pago nao configurado"
    assert result.qr_code is None


@pytest.mark.asyncio
async def test_create_without_id_is_error(mock_http):
    result = await _client(mock_http, lambda request: httpx.Response(200, json={"status": "pending"})).create(_request())
    assert result.status is PaymentStatus.ERROR
    assert "no payment id" in result.error_reason


@pytest.mark.asyncio
async def test_create_network_failure_is_error(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    result = await _client(mock_http, handler).create(_request())
    assert result.status is PaymentStatus.ERROR
    assert result.error_reason.startswith("Could not create PIX payment")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider_status, expected",
    [
        ("approved", PaymentStatus.APPROVED),
        ("rejected", PaymentStatus.REJECTED),
        ("cancelled", PaymentStatus.CANCELLED),
        ("expired", PaymentStatus.EXPIRED),
        ("pending", PaymentStatus.PENDING),
        ("in_process", PaymentStatus.PENDING),
        ("brand_new_status", PaymentStatus.PENDING),
    ],
)
async def test_check_status_maps_provider_status(mock_http, provider_status, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert str(request.url) == "http://backend.local/api/payment/status/pay-1"
        return httpx.Response(
            200,
            json={"id": "pay-1", "status": provider_status, "statusDetail": "accredited", "amount": 25.0, "orderId": "o1"},
        )

    result = await _client(mock_http, handler).check_status("pay-1")
    assert result.status is expected
    assert result.provider_status == provider_status
    assert result.status_detail == "accredited"
    assert result.amount_cents == 2500
    assert result.order_id == "o1"


@pytest.mark.asyncio
async def test_check_status_with_empty_body_defaults_safely(mock_http):
    result = await _client(mock_http, lambda request: httpx.Response(200, json={})).check_status("pay-2")
    assert result.status is PaymentStatus.PENDING
    assert result.payment_id == "pay-2"
    assert result.amount_cents is None


@pytest.mark.asyncio
async def test_check_status_transport_failure_is_error(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    result = await _client(mock_http, handler).check_status("pay-3")
    assert result.status is PaymentStatus.ERROR
    assert result.payment_id == "pay-3"


@pytest.mark.asyncio
async def test_check_status_retries_transient_errors(mock_http):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, json={"error": "busy"})
        return httpx.Response(200, json={"id": "pay-4", "status": "approved"})

    result = await _client(mock_http, handler, retry=PaymentRetry(max=2, base_backoff=0.0)).check_status("pay-4")
    assert result.status is PaymentStatus.APPROVED
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_cancel_forwards_provider_message(mock_http):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"message": "Pagamento cancelado"})

    outcome = await _client(mock_http, handler).cancel("pay-5")
    assert seen == {"method": "DELETE", "url": "http://backend.local/api/payment/cancel/pay-5"}
    assert outcome.success is True
    assert outcome.message == "Pagamento cancelado"


@pytest.mark.asyncio
async def test_cancel_on_settled_payment_forwards_refusal(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "Payment already approved"})

    outcome = await _client(mock_http, handler).cancel("pay-6")
    assert outcome.success is False
    assert outcome.message == "Payment already approved"


@pytest.mark.asyncio
async def test_malformed_field_does_not_hide_approval(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "1", "status": "approved", "amount": "R$ 25,00"})

    result = await _client(mock_http, handler).check_status("1")
    assert result.status is PaymentStatus.APPROVED
    assert result.provider_status == "approved"
    assert result.amount_cents is None


@pytest.mark.asyncio
async def test_check_status_reads_camel_case_fallbacks(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"paymentId": 1234.0, "status": "refunded", "paymentStatus": "refunded", "statusDetail": "other"}
        )

    result = await _client(mock_http, handler).check_status("pay-7")
    assert result.payment_id == "1234"
    assert result.status is PaymentStatus.REJECTED
    assert result.status_detail == "refunded"
