import hmac
import logging
from typing import Optional
from fastapi import Header, Request
from seminar_api.config import settings
from seminar_api.core.exceptions import APIError
from seminar_api.core.middleware import get_client_ip

logger = logging.getLogger(__name__)


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """
    Dependency guarding scheduler trigger endpoints.
    Expects `Authorization: Bearer <CRON_SECRET>`.
    """
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        logger.warning("Rejected cron trigger with missing or invalid secret")
        raise APIError("Unauthorized", 401)


def get_request_ip(request: Request) -> str:
    """Dependency returning the caller's IP for rate limiting"""
    return get_client_ip(request)
