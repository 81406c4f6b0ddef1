"""
Discord webhook notification service
Posts sales activity to a Discord channel via webhooks
"""
import logging
import httpx
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal
from seminar_api.config import settings

logger = logging.getLogger(__name__)


class DiscordWebhookService:
    """Service for sending notifications to Discord via webhooks"""

    def __init__(self, webhook_url: str):
        self.webhook_url = webhook_url

    async def send_notification(
        self,
        title: str,
        description: str,
        color: int = 3447003,
        fields: Optional[list[Dict[str, Any]]] = None,
        footer: Optional[str] = None
    ) -> bool:
        """Send a notification to Discord webhook"""
        embed = {
            "title": title,
            "description": description,
            "color": color,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

        if fields:
            embed["fields"] = fields

        if footer:
            embed["footer"] = {"text": footer}

        payload = {"embeds": [embed]}

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.TimeoutException:
            logger.error(f"Discord webhook timeout: {title}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Discord webhook error: {e}")
            return False

        if response.status_code in (200, 204):
            return True
        logger.error(f"Discord webhook failed: {response.status_code}")
        return False

    async def notify_payment_completed(
        self,
        session_title: str,
        order_number: str,
        tickets_count: int,
        total_amount: Decimal,
        currency: str,
        buyer_email: str,
        buyer_name: Optional[str] = None,
        payment_method: Optional[str] = None
    ) -> bool:
        """Notify about a captured order"""
        description = (
            f"**Session:** {session_title}\n"
            f"**Order:** {order_number}\n"
            f"**Tickets:** {tickets_count}\n"
            f"**Total:** {total_amount:,.0f} {currency}\n"
            f"**Buyer:** {buyer_name or buyer_email}"
        )

        if payment_method:
            description += f"\n**Method:** {payment_method}"

        return await self.send_notification(
            title="Payment Completed",
            description=description,
            color=3066993,  # Green
            footer=buyer_email
        )


discord_sales_service = None

if settings.discord_sales_webhook_url:
    discord_sales_service = DiscordWebhookService(settings.discord_sales_webhook_url)
