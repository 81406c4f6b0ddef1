"""
Webhooks Router

Inbound settlement notifications from the payment gateway.
"""
from typing import Optional
from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from seminar_api.services import webhook_service

router = APIRouter()

STATUS_MESSAGES = {
    200: {"success": True},
    400: {"error": "Malformed event"},
    500: {"error": "Internal server error"},
}


@router.post("/komoju")
async def komoju_webhook(
    request: Request,
    x_komoju_signature: Optional[str] = Header(default=None)
):
    """
    Webhook endpoint for KOMOJU payment notifications.

    The signature header is checked against the raw body before anything
    is parsed; a mismatch answers 401 through the API error handler.
    A 500 answer makes KOMOJU redeliver the event.
    """
    raw_body = await request.body()
    status_code = await webhook_service.ingest(raw_body, x_komoju_signature)
    return JSONResponse(status_code=status_code, content=STATUS_MESSAGES.get(status_code, {}))
