"""
KOMOJU Payment Gateway (komoju.com)

Japanese hosted checkout supporting:
- Credit cards
- Konbini (convenience store) payments
- PayPay
- Bank transfer

Documentation: https://doc.komoju.com/reference/createsession
"""
import hashlib
import hmac
import logging
import httpx
from typing import Dict, Optional

from seminar_api.config import settings
from seminar_api.services.gateways.base import (
    BaseGateway, GatewayError, GatewaySession, SessionRequest
)

logger = logging.getLogger(__name__)

PAYMENT_METHOD_CODES = {
    'CREDIT_CARD': 'credit_card',
    'KONBINI': 'konbini',
    'PAYPAY': 'paypay',
    'BANK_TRANSFER': 'bank_transfer',
}


class KomojuGateway(BaseGateway):
    """KOMOJU gateway implementation using the Sessions API"""

    def __init__(self):
        self.base_url = settings.komoju_api_url.rstrip('/')
        self.secret_key = settings.komoju_secret_key
        self.webhook_secret = settings.komoju_webhook_secret
        self.timeout = settings.gateway_timeout_seconds

    @property
    def name(self) -> str:
        return "komoju"

    @property
    def display_name(self) -> str:
        return "KOMOJU"

    def map_payment_method(self, method: str) -> str:
        return PAYMENT_METHOD_CODES.get(method, method.lower())

    async def create_session(self, data: SessionRequest) -> GatewaySession:
        """
        Create a hosted payment session.

        KOMOJU Sessions flow:
        1. POST /sessions with amount and external_order_num
        2. Redirect the buyer to session_url
        3. KOMOJU reports the payment outcome via webhook
        """
        if not self.secret_key:
            raise GatewayError("KOMOJU secret key is not configured")

        payload = {
            "amount": int(data.amount),
            "currency": data.currency,
            "default_locale": data.locale or settings.komoju_default_locale,
            "payment_methods": [self.map_payment_method(m) for m in data.payment_methods],
            "external_order_num": data.external_order_num,
            "return_url": data.return_url or settings.komoju_return_url,
            "metadata": data.metadata,
            "mode": "payment",
            "payment_data": {
                "capture": "auto",
                "tax": 0,
            },
        }
        if data.customer_email:
            payload["email"] = data.customer_email

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/sessions",
                    json=payload,
                    auth=(self.secret_key, ""),
                    headers={"Accept": "application/json"}
                )
        except httpx.TimeoutException as e:
            logger.error(f"KOMOJU session request timed out for {data.external_order_num}: {e}")
            raise GatewayError("KOMOJU request timed out") from e
        except httpx.RequestError as e:
            logger.error(f"KOMOJU API request failed: {e}")
            raise GatewayError(f"Failed to connect to KOMOJU: {e}") from e

        if response.status_code not in (200, 201):
            logger.error(f"KOMOJU API error: {response.status_code} - {response.text}")
            raise GatewayError(f"KOMOJU session creation failed with status {response.status_code}")

        try:
            response_data = response.json()
        except ValueError as e:
            raise GatewayError("KOMOJU returned a non-JSON response") from e

        session_id = response_data.get("id")
        session_url = response_data.get("session_url")
        if not session_id or not session_url:
            logger.error(f"KOMOJU response missing session fields: {response_data}")
            raise GatewayError("KOMOJU response missing session id or url")

        logger.info(f"Created KOMOJU session {session_id} for order {data.external_order_num}")

        return GatewaySession(
            session_id=session_id,
            payment_url=session_url,
            external_order_num=data.external_order_num,
            raw_data=response_data
        )

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """
        Verify the X-Komoju-Signature header.

        The signature is the hex HMAC-SHA256 of the raw body keyed with the
        webhook secret. Without a configured secret every event is rejected.
        """
        if not self.webhook_secret:
            logger.warning("KOMOJU webhook secret is not configured, rejecting webhook")
            return False
        if not signature:
            return False

        expected = compute_signature(self.webhook_secret, body)
        return hmac.compare_digest(expected.encode(), signature.strip().encode("utf-8", "replace"))


def compute_signature(secret: str, body: bytes) -> str:
    """Signature KOMOJU would send for `body`"""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
