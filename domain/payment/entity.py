"""
Point payment domain types: terminal intents, gateway payments and the
records used to reconcile push notifications with client polls.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional
import time

from shared.codes.payment_codes import CONFIRMED_PAYMENT_STATUSES


class IntentState(str, Enum):
    """Lifecycle of a payment intent queued on a terminal device."""
    CREATED = "CREATED"
    ON_DEVICE = "ON_DEVICE"
    FINISHED = "FINISHED"
    PROCESSED = "PROCESSED"
    CANCELED = "CANCELED"
    ERROR = "ERROR"
    # Anything the gateway reports that we do not know yet.
    OPEN = "OPEN"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "IntentState":
        try:
            return cls((raw or "").upper())
        except ValueError:
            return cls.OPEN

    @property
    def is_completed(self) -> bool:
        return self in (IntentState.FINISHED, IntentState.PROCESSED)

    @property
    def is_failed(self) -> bool:
        return self in (IntentState.CANCELED, IntentState.ERROR)


# States the passive sweep removes; PROCESSED intents are left for the
# aggressive sweep that follows resolution.
SWEEPABLE_STATES = frozenset({IntentState.FINISHED, IntentState.CANCELED, IntentState.ERROR})


class PaymentKind(str, Enum):
    CARD = "CARD"
    PIX = "PIX"

    @classmethod
    def from_method(cls, method: Optional[str]) -> "PaymentKind":
        return cls.PIX if (method or "").lower() == "pix" else cls.CARD


class ResolutionStatus(str, Enum):
    APPROVED = "approved"
    PENDING = "pending"
    CANCELED = "canceled"


def to_cents(amount: Decimal | float | int | str) -> int:
    """Convert a major-unit amount (e.g. 15.5) into integer cents (1550)."""
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    device_id: Optional[str]
    amount_cents: int
    state: IntentState
    payment_id: Optional[str] = None
    external_reference: Optional[str] = None


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    amount_cents: int
    status: str
    payment_method_id: Optional[str] = None

    @property
    def is_confirmed(self) -> bool:
        return self.status in CONFIRMED_PAYMENT_STATUSES


@dataclass(frozen=True)
class ConfirmedPaymentRecord:
    """A gateway confirmation waiting to be claimed by a poll.

    Keyed by amount because push notifications do not carry the originating
    intent id. Two concurrent payments with the same amount are ambiguous and
    the first poller wins.
    """
    payment_id: str
    amount_cents: int
    gateway_status: str
    confirmed_at_ms: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class Resolution:
    status: ResolutionStatus
    payment_id: Optional[str] = None

    @classmethod
    def pending(cls) -> "Resolution":
        return cls(ResolutionStatus.PENDING)

    @classmethod
    def canceled(cls) -> "Resolution":
        return cls(ResolutionStatus.CANCELED)

    @classmethod
    def approved(cls, payment_id: Optional[str] = None) -> "Resolution":
        return cls(ResolutionStatus.APPROVED, payment_id)

    def as_dict(self) -> dict:
        body: dict = {"status": self.status.value}
        if self.payment_id:
            body["paymentId"] = self.payment_id
        return body


@dataclass
class PendingPollState:
    """Book-keeping for one in-flight payment attempt."""
    intent_id: str
    kind: PaymentKind
    order_id: str
    cancel_requested: bool = False
    attempts_elapsed: int = 0
    started_at_ms: int = field(default_factory=now_ms)

    def as_dict(self) -> dict:
        return {
            "intentId": self.intent_id,
            "kind": self.kind.value,
            "orderId": self.order_id,
            "cancelRequested": self.cancel_requested,
            "attemptsElapsed": self.attempts_elapsed,
            "startedAt": self.started_at_ms,
        }
