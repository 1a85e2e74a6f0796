"""
Payment DTOs (Pydantic v2) used at the checkout boundary.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.payment.entity import PaymentMethod, to_minor_units, from_minor_units


class PaymentRequest(BaseModel):
    """One checkout payment attempt, amounts in integer cents."""

    model_config = ConfigDict(frozen=True)

    method: PaymentMethod
    amount_cents: int = Field(gt=0)
    order_id: str = Field(min_length=1)
    email: Optional[str] = None
    payer_name: Optional[str] = None
    description: Optional[str] = None
    installments: int = Field(default=1, ge=1)

    @field_validator("amount_cents", mode="before")
    @classmethod
    def _reject_fractional_cents(cls, v):
        # bool is an int subclass; floats must be converted with from_amount()
        if isinstance(v, (bool, float)):
            raise ValueError("amount_cents must be an integer; use PaymentRequest.from_amount for decimals")
        return v

    @classmethod
    def from_amount(
        cls,
        method: Union[PaymentMethod, str],
        amount: Union[Decimal, str, int, float],
        order_id: str,
        **kwargs,
    ) -> "PaymentRequest":
        """Build a request from a decimal currency amount (rounded once to cents)."""
        return cls(method=method, amount_cents=to_minor_units(amount), order_id=order_id, **kwargs)

    @property
    def amount(self) -> Decimal:
        return from_minor_units(self.amount_cents)
