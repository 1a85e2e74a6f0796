"""
Payment rail ports (application/ports) exposing replaceable protocols.

The orchestrator depends on these Protocols; infrastructure implements
the HTTP adapters. Implementations must not raise for transport failures
or provider outcomes: they return results carrying the failure instead.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import PaymentRequest
from domain.payment.entity import CancelResult, DeviceStatus, PaymentMethod, PaymentResult


@runtime_checkable
class PixGateway(Protocol):
    """Asynchronous QR rail: create once, then query until settled."""

    async def create(self, request: PaymentRequest) -> PaymentResult: ...

    async def check_status(self, payment_id: str) -> PaymentResult: ...

    async def cancel(self, payment_id: str) -> CancelResult: ...


@runtime_checkable
class CardGateway(Protocol):
    """Synchronous pin pad rail: one request, one bounded-time decision."""

    async def charge(self, amount_cents: int, method: PaymentMethod, installments: int = 1) -> PaymentResult: ...

    async def cancel(self, payment_id: str, amount_cents: int) -> CancelResult: ...

    async def status(self) -> DeviceStatus: ...
