"""
Payment domain types: methods, rails, statuses and the per-attempt result.

`PaymentResult` is a tagged variant: `rail` is the discriminant, shared
terminal-state fields live on every result and the rail-specific fields
(QR payloads for PIX, installments for card) stay empty on the other rail.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Optional, Union

from domain.common.exceptions import DomainValidationException


class Rail(str, Enum):
    """Payment backend with its own completion model."""
    PIX = "pix"      # create, then poll
    CARD = "card"    # blocking call-response


class PaymentMethod(str, Enum):
    PIX = "pix"
    CREDIT = "credit"
    DEBIT = "debit"

    @property
    def rail(self) -> Rail:
        return Rail.PIX if self is PaymentMethod.PIX else Rail.CARD


class PaymentStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    ERROR = "error"


TERMINAL_STATUSES = frozenset(
    {
        PaymentStatus.APPROVED,
        PaymentStatus.REJECTED,
        PaymentStatus.EXPIRED,
        PaymentStatus.CANCELLED,
    }
)


class OrchestratorState(str, Enum):
    """Checkout attempt lifecycle as seen by the orchestrator."""
    IDLE = "idle"
    CREATING = "creating"
    AWAITING_CONFIRMATION = "awaiting_confirmation"  # PIX only
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    ERROR = "error"

    @classmethod
    def from_status(cls, status: PaymentStatus) -> "OrchestratorState":
        if status in (PaymentStatus.CREATED, PaymentStatus.PENDING):
            return cls.AWAITING_CONFIRMATION
        return cls(status.value)

    @property
    def is_final(self) -> bool:
        return self not in (
            OrchestratorState.IDLE,
            OrchestratorState.CREATING,
            OrchestratorState.AWAITING_CONFIRMATION,
        )


def to_minor_units(amount: Union[Decimal, str, int, float]) -> int:
    """Convert a decimal currency amount to integer cents, rounding half-up once.

    Floats go through `str()` so that 19.9 becomes 1990 and not 1989.
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation as exc:
        raise DomainValidationException(f"Invalid amount: {amount!r}", field="amount") from exc
    if not value.is_finite():
        raise DomainValidationException(f"Invalid amount: {amount!r}", field="amount")
    cents = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise DomainValidationException(f"Amount must be greater than 0: {amount}", field="amount")
    return cents


def from_minor_units(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


@dataclass
class PaymentResult:
    """Projection of the provider state for one checkout attempt."""

    payment_id: str
    status: PaymentStatus
    rail: Rail

    status_detail: Optional[str] = None
    error_reason: Optional[str] = None
    order_id: Optional[str] = None
    amount_cents: Optional[int] = None
    provider_status: Optional[str] = None

    # PIX only
    qr_code: Optional[str] = None
    qr_code_copy_paste: Optional[str] = None

    # CARD only
    installments: Optional[int] = None

    def __post_init__(self):
        if self.rail is not Rail.PIX and (self.qr_code or self.qr_code_copy_paste):
            raise DomainValidationException("QR payloads only exist on the PIX rail", field="qr_code")
        if self.rail is not Rail.CARD and self.installments is not None:
            raise DomainValidationException("Installments only exist on the card rail", field="installments")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def message(self) -> Optional[str]:
        return self.status_detail or self.error_reason

    def with_status(self, status: PaymentStatus, **changes) -> "PaymentResult":
        return replace(self, status=status, **changes)

    @classmethod
    def error(cls, rail: Rail, reason: str, *, payment_id: str = "", **fields) -> "PaymentResult":
        return cls(payment_id=payment_id, status=PaymentStatus.ERROR, rail=rail, error_reason=reason, **fields)


@dataclass(frozen=True)
class CancelResult:
    success: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class DeviceStatus:
    """Reachability of the local pin pad service."""
    online: bool
    message: Optional[str] = None
