# Payment Gateways
from typing import Dict, Type
from seminar_api.services.gateways.base import (
    BaseGateway, GatewayError, GatewaySession, SessionRequest
)
from seminar_api.services.gateways.komoju import KomojuGateway

GATEWAYS: Dict[str, Type[BaseGateway]] = {
    'komoju': KomojuGateway,
}

def get_gateway(name: str = 'komoju') -> BaseGateway:
    """Get gateway instance by name"""
    gateway_class = GATEWAYS.get(name.lower())
    if not gateway_class:
        raise ValueError(f"Unknown gateway: {name}. Available: {list(GATEWAYS.keys())}")
    return gateway_class()
