"""
Participant sync

Registers the participants of a paid order with the external webinar
registration service configured by PARTICIPANT_SYNC_URL.
"""
import logging
import httpx
from uuid import UUID
from seminar_api.config import settings
from seminar_api.database import get_db_connection

logger = logging.getLogger(__name__)


async def register_participants(order_id: UUID) -> bool:
    """Push participants to the sync endpoint. Never raises."""
    if not settings.participant_sync_url:
        logger.debug("Participant sync not configured, skipping")
        return False

    try:
        async with get_db_connection(use_transaction=False) as conn:
            order = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
            if not order:
                logger.warning(f"Participant sync skipped: order {order_id} not found")
                return False
            participants = await conn.fetch(
                "SELECT * FROM participants WHERE order_id = $1 ORDER BY id",
                order_id
            )

        payload = {
            "order_number": order['order_number'],
            "session_id": str(order['session_id']),
            "participants": [
                {"email": p['email'], "name": p['name'], "company": p['company']}
                for p in participants
            ],
        }
        headers = {}
        if settings.participant_sync_token:
            headers["Authorization"] = f"Bearer {settings.participant_sync_token}"

        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(settings.participant_sync_url, json=payload, headers=headers)

        if response.status_code >= 400:
            logger.error(f"Participant sync failed for {order['order_number']}: {response.status_code}")
            return False

        logger.info(f"Synced {len(participants)} participants for order {order['order_number']}")
        return True

    except Exception as e:
        logger.error(f"Participant sync error for order {order_id}: {e}", exc_info=True)
        return False
