"""
Base Payment Gateway Interface

Hosted-checkout gateways implement this interface: the API opens a payment
session, the buyer pays on the gateway's page, and the gateway reports the
outcome through signed webhooks.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from decimal import Decimal


class GatewayError(Exception):
    """Gateway call failed, timed out or returned an unusable response"""


@dataclass
class SessionRequest:
    """Data needed to open a hosted payment session"""
    external_order_num: str
    amount: Decimal
    currency: str
    payment_methods: List[str]
    customer_email: Optional[str] = None
    return_url: Optional[str] = None
    locale: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewaySession:
    """Result of opening a hosted payment session"""
    session_id: str
    payment_url: str
    external_order_num: str
    raw_data: Optional[Dict[str, Any]] = None


class BaseGateway(ABC):
    """
    Abstract base class for payment gateways.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier (e.g., 'komoju')"""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable gateway name"""
        pass

    @abstractmethod
    async def create_session(self, data: SessionRequest) -> GatewaySession:
        """
        Open a hosted payment session.

        Raises:
            GatewayError: on transport failure, timeout or non-2xx response
        """
        pass

    @abstractmethod
    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """
        Verify a webhook signature against the raw request body.

        Returns:
            True only if the signature is present and valid
        """
        pass

    def map_payment_method(self, method: str) -> str:
        """
        Map an internal payment method to the gateway's code.
        Override in subclasses for gateway-specific mappings.
        """
        return method.lower()
