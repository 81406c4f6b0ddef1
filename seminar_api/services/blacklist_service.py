import logging
from typing import Optional
from seminar_api.config import settings
from seminar_api.core.exceptions import BlacklistedError

logger = logging.getLogger(__name__)


def email_domain(email: str) -> Optional[str]:
    _, sep, domain = email.rpartition("@")
    return domain.lower() if sep and domain else None


async def check_blacklist(conn, email: str, ip_address: Optional[str]) -> None:
    """
    Reject orders from blocked email domains or client addresses.

    Domains come from BLACKLISTED_EMAIL_DOMAINS; addresses from the
    blacklisted_ips table, so blocks apply without a redeploy.
    """
    domain = email_domain(email)
    blocked_domains = {d.lower() for d in settings.blacklisted_email_domains}
    if domain and domain in blocked_domains:
        logger.warning(f"Blacklisted order attempt: domain {domain} from {ip_address or 'unknown'}")
        raise BlacklistedError()

    if not ip_address or ip_address == "unknown":
        return

    blocked = await conn.fetchval(
        "SELECT 1 FROM blacklisted_ips WHERE ip_address = $1 LIMIT 1",
        ip_address
    )
    if blocked:
        logger.warning(f"Blacklisted order attempt: ip {ip_address} ({email})")
        raise BlacklistedError()
