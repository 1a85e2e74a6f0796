"""
Factories for the payment rails and the orchestrator, built from settings.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings, payment_settings
from application.services.payment_service import PaymentOrchestrator
from application.services.polling import PollingScheduler
from infrastructure.external.payments.pix_client import PixClient
from infrastructure.external.payments.pinpad_client import PinpadClient


def get_pix_client(settings: Optional[PaymentSettings] = None) -> PixClient:
    cfg = settings or payment_settings
    return PixClient(cfg.pix, retry=cfg.retry)


def get_pinpad_client(settings: Optional[PaymentSettings] = None) -> PinpadClient:
    cfg = settings or payment_settings
    return PinpadClient(cfg.pinpad, retry=cfg.retry)


def get_payment_orchestrator(settings: Optional[PaymentSettings] = None) -> PaymentOrchestrator:
    cfg = settings or payment_settings
    return PaymentOrchestrator(
        pix=get_pix_client(cfg),
        card=get_pinpad_client(cfg),
        scheduler=PollingScheduler(interval=cfg.polling.interval, timeout=cfg.polling.timeout),
    )


__all__ = [
    "PixClient",
    "PinpadClient",
    "get_pix_client",
    "get_pinpad_client",
    "get_payment_orchestrator",
]
