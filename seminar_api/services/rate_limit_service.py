import logging
from datetime import datetime, timedelta
from typing import Optional
from seminar_api.config import settings
from seminar_api.core.exceptions import RateLimitError

logger = logging.getLogger(__name__)

RATE_WINDOW = timedelta(hours=1)


async def check_order_rate(conn, ip_address: Optional[str], now: datetime) -> int:
    """
    Reject the checkout if this client created too many orders in the last hour.

    Counts rows in the shared orders table so every API replica sees the
    same total. An advisory lock keyed on the address serializes concurrent
    checks for one client until the caller's transaction ends.

    Returns:
        Number of orders already placed inside the window
    """
    if not ip_address or ip_address == "unknown":
        return 0

    await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", f"order-rate:{ip_address}")

    recent = await conn.fetchval(
        "SELECT COUNT(*) FROM orders WHERE ip_address = $1 AND created_at >= $2",
        ip_address, now - RATE_WINDOW
    )
    recent = int(recent or 0)

    if recent >= settings.order_rate_limit_per_hour:
        logger.warning(f"Order rate limit hit for {ip_address}: {recent} orders in the last hour")
        raise RateLimitError(details={"limit": settings.order_rate_limit_per_hour, "window_seconds": int(RATE_WINDOW.total_seconds())})

    return recent
