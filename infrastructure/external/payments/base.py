"""
Base payment rail client implementing shared concerns: http, error translation, logging, mapping.

Concrete rails subclass it and convert every failure into a result object
at their public boundary.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from core.logging_config import get_logger
from domain.payment.entity import PaymentStatus
from infrastructure.external.api_clients.base import APIError, APIResponse, BaseAPIClient, TransportError
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class BasePaymentClient(BaseAPIClient):
    provider: str = "base"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        retry: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        auth_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        retry_cfg = retry or {"max": 2, "base": 0.2}
        super().__init__(
            base_url,
            timeout=timeout,
            max_retries=int(retry_cfg["max"]),
            retry_delay=float(retry_cfg["base"]),
            headers=headers,
            auth_token=auth_token,
            client=client,
        )

    async def _send(self, call: Callable[[], Awaitable[APIResponse]]) -> APIResponse:
        """Run one HTTP call, translating client errors into rail errors."""
        try:
            return await call()
        except TransportError as exc:
            raise PaymentRecoverableError(exc.message, provider=self.provider) from exc
        except APIError as exc:
            raise PaymentProviderError(
                exc.message,
                provider=self.provider,
                provider_code=str(exc.status_code) if exc.status_code else None,
                details={"body": exc.body},
            ) from exc

    @staticmethod
    def _parse(model: Type[M], data: Any) -> Optional[M]:
        """Parse a response body leniently; None when it is not a usable object."""
        if not isinstance(data, dict):
            return None
        try:
            return model.model_validate(data)
        except ValidationError:
            return None

    # Helpers
    def _map_status(self, provider_status: Optional[str]) -> PaymentStatus:
        """Map a provider status string; unknown or missing means still pending."""
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        internal = mapping.get((provider_status or "").strip().lower())
        return PaymentStatus(internal) if internal else PaymentStatus.PENDING

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )

    def _log_failure(self, event: str, exc: Exception, **kwargs) -> None:
        logger.warning(
            event,
            provider=self.provider,
            error=str(getattr(exc, "message", exc)),
            error_type=getattr(exc, "error_type", type(exc).__name__),
            recoverable=isinstance(exc, PaymentRecoverableError),
            **kwargs,
        )
