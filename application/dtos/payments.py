"""
Payment DTOs (Pydantic v2) used at application boundaries.

Field aliases follow the storefront's camelCase JSON contract.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Literal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

PaymentMethod = Literal["credit", "debit", "pix"]


class CreatePaymentRequest(BaseModel):
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    description: Optional[str] = None
    order_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("orderId", "order_id"))
    method: Optional[PaymentMethod] = Field(
        default=None,
        validation_alias=AliasChoices("paymentMethod", "method"),
    )

    @field_validator("method", mode="before")
    @classmethod
    def _lower_method(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v


class CreateIntent(BaseModel):
    """Gateway-facing request to queue an intent on a terminal."""
    device_id: str
    amount_cents: int = Field(gt=0)
    description: Optional[str] = None
    external_reference: Optional[str] = None
    method: Optional[PaymentMethod] = None
    operating_mode: str = "PDV"
    print_on_terminal: bool = True


class DeviceInfo(BaseModel):
    id: str
    operating_mode: Optional[str] = None
    status: Optional[str] = None
    model: Optional[str] = None


class OrderItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    product_id: Optional[str] = Field(default=None, alias="productId")
    name: str
    quantity: int = Field(default=1, gt=0)
    price: Decimal = Field(ge=0)


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    user_name: Optional[str] = Field(default=None, alias="userName")
    items: list[OrderItem] = Field(default_factory=list)
    total: condecimal(gt=0)  # type: ignore[valid-type]


class PayOrderRequest(BaseModel):
    method: Optional[PaymentMethod] = Field(
        default=None,
        validation_alias=AliasChoices("paymentMethod", "method"),
    )
    description: Optional[str] = None


class MarkOrderPaidRequest(BaseModel):
    payment_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("paymentId", "payment_id"))


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: Optional[str] = None


class WebhookNotification(BaseModel):
    """JSON body pushed by the gateway webhook channel."""
    model_config = ConfigDict(extra="allow")

    action: Optional[str] = None
    type: Optional[str] = None
    data: Optional[WebhookData] = None


class NotificationEvent(BaseModel):
    """Normalized push notification: only the payment id is trusted."""
    gateway_payment_id: str
    source: Literal["webhook", "ipn"]
    raw: Optional[dict[str, Any]] = None
