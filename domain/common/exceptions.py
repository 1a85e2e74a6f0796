"""Domain business exceptions, shared by the domain, application and infrastructure layers.

Rails never raise these for provider outcomes: they are reserved for
programmer errors (bad input, misuse of the polling primitive).
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for business exceptions."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class UnsupportedPaymentMethodException(BusinessException):
    def __init__(self, method: object):
        super().__init__(
            code=PaymentCode.UNSUPPORTED_METHOD,
            message=f"Unsupported payment method: {method!r}",
            error_type="UnsupportedPaymentMethod",
            details={"method": str(method)},
            field="method",
        )


class PollingConflictException(BusinessException):
    def __init__(self, payment_id: str):
        super().__init__(
            code=PaymentCode.POLLING_CONFLICT,
            message=f"A polling session is already active for payment {payment_id}",
            error_type="PollingConflict",
            details={"payment_id": payment_id},
        )
