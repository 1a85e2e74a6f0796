"""
Rail-internal exceptions mapped to unified BusinessException variants.

They never leave a rail: public rail methods convert them into
ERROR results (or unsuccessful cancel results).
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(BusinessException):
    """Provider answered with an error status."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )

    @property
    def body(self) -> Optional[dict]:
        return (self.details or {}).get("body")


class PaymentRecoverableError(BusinessException):
    """No answer from the provider (network down, timeout): safe to try again."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="PaymentRecoverableError",
            details=full_details,
        )

    @property
    def body(self) -> Optional[dict]:
        return None
