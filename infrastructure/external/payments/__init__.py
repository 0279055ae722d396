"""
Factory for Point gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import GatewaySettings, gateway_settings
from core.logging_config import get_logger
from application.ports.payment_gateway import PointGateway


logger = get_logger(__name__)


def get_point_gateway(settings: Optional[GatewaySettings] = None) -> PointGateway:
    cfg = settings or gateway_settings
    if cfg.simulation:
        from .simulated_client import SimulatedPointClient
        reason = "forced" if cfg.force_simulation else "missing MP_ACCESS_TOKEN or MP_DEVICE_ID"
        logger.warning("point_gateway_simulated", reason=reason)
        return SimulatedPointClient()
    from .mercadopago_client import MercadoPagoPointClient
    return MercadoPagoPointClient(cfg)
