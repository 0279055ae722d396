"""
Gateway exceptions mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode

def _provider_details(provider: str, provider_code: Optional[str], details: Optional[dict]) -> dict:
    full_details = {"provider": provider, "provider_code": provider_code}
    if details:
        full_details.update(details)
    return full_details

class GatewayError(BusinessException):
    """Non-recoverable gateway failure (4xx other than 404, malformed payloads)."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="GatewayError",
            details=_provider_details(provider, provider_code, details),
        )

class TransientGatewayError(BusinessException):
    """Network error, timeout or 5xx; the caller may try again later."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="TransientGatewayError",
            details=_provider_details(provider, provider_code, details),
        )

class IntentNotFoundError(BusinessException):
    def __init__(self, intent_id: str, *, provider: str):
        super().__init__(
            code=PaymentCode.INTENT_NOT_FOUND,
            message=f"Payment intent {intent_id} not found",
            error_type="IntentNotFoundError",
            details={"provider": provider, "intent_id": intent_id},
        )

class GatewayNotConfiguredError(BusinessException):
    def __init__(self, message: str = "Point terminal is not configured"):
        super().__init__(
            code=PaymentCode.NOT_CONFIGURED,
            message=message,
            error_type="GatewayNotConfiguredError",
        )
