"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001

    # Orchestration errors (61xxx)
    POLLING_CONFLICT = 61000
    UNSUPPORTED_METHOD = 61001


# Provider→internal status mapping (values are PaymentStatus values)
PROVIDER_STATUS_TO_INTERNAL = {
    "pix": {
        "pending": "pending",
        "in_process": "pending",
        "in_mediation": "pending",
        "authorized": "pending",
        "approved": "approved",
        "rejected": "rejected",
        "cancelled": "cancelled",
        "canceled": "cancelled",
        "expired": "expired",
        # final without approval
        "refunded": "rejected",
        "finished": "rejected",
    },
}

# Pin pad `tipo` field per card payment method
PINPAD_PAYMENT_TYPES = {
    "credit": "credito",
    "debit": "debito",
}
