"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    INTENT_NOT_FOUND = 60005
    NOT_CONFIGURED = 60006

    # Client poll budget exhausted
    POLL_TIMEOUT = 61000


# Gateway payment statuses that confirm money was captured or reserved.
CONFIRMED_PAYMENT_STATUSES = frozenset({"approved", "authorized"})

# Webhook actions that carry a payment id worth looking up.
PAYMENT_WEBHOOK_ACTIONS = frozenset({"payment.created", "payment.updated"})

# Requested payment method -> forced payment block on the terminal.
METHOD_TO_TERMINAL_PAYMENT = {
    "pix": {"type": "pix"},
    "debit": {"type": "debit_card", "installments": 1},
    "credit": {"type": "credit_card", "installments": 1, "installments_cost": "buyer"},
}

# Intent ids issued by the simulated terminal.
MOCK_INTENT_PREFIX = "mock_pay"
