import logging
import time
from datetime import datetime
from fastapi import Request
from seminar_api.config import settings

logger = logging.getLogger(__name__)

def get_client_ip(request: Request) -> str:
    """
    Client address as seen by the outermost trusted proxy.

    Each of the TRUSTED_PROXY_HOPS proxies appends to X-Forwarded-For, so the
    entry that many places from the end is the last one a client cannot forge.
    With zero hops the forwarding headers are ignored.
    """
    hops = settings.trusted_proxy_hops
    if hops > 0:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            chain = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
            if chain:
                return chain[-hops] if len(chain) >= hops else chain[0]
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else "unknown"

async def request_logging_middleware(request: Request, call_next):
    """Simple request logging middleware"""
    start_time = time.time()

    method = request.method
    path = request.url.path

    response = await call_next(request)

    duration = round((time.time() - start_time) * 1000, 2)

    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    logger.info(f"{timestamp} | {method} {path} | {response.status_code} | {duration}ms")

    return response
