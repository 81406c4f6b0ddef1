from fastapi import Request
from fastapi.responses import JSONResponse
import logging
from typing import Dict, Any
from seminar_api.core.logging import log_request_context

logger = logging.getLogger(__name__)

class APIError(Exception):
    """Base API exception"""

    def __init__(self, message: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(APIError):
    """Validation related errors"""

    def __init__(self, message: str = "Validation failed", details: Dict[str, Any] = None):
        super().__init__(message, 400, details)

class NotFoundError(APIError):
    """Requested record does not exist"""

    def __init__(self, message: str = "Not found", details: Dict[str, Any] = None):
        super().__init__(message, 404, details)

class InvalidSignatureError(APIError):
    """Webhook payload failed authenticity check"""

    def __init__(self, message: str = "Invalid signature", details: Dict[str, Any] = None):
        super().__init__(message, 401, details)

class SessionNotOpenError(APIError):
    """Target session does not accept orders"""

    def __init__(self, message: str = "Session is not accepting orders", details: Dict[str, Any] = None):
        super().__init__(message, 400, details)

class SalesClosedError(SessionNotOpenError):
    """Ticket type inactive or outside its sales window"""

    def __init__(self, message: str = "Ticket sales are closed", details: Dict[str, Any] = None):
        super().__init__(message, details)

class InsufficientStockError(APIError):
    """Not enough remaining stock for a ticket type"""

    def __init__(self, message: str = "Insufficient stock", details: Dict[str, Any] = None):
        super().__init__(message, 409, details)

class DuplicateRegistrationError(APIError):
    """Identity already holds a live order for the session"""

    def __init__(self, message: str = "Already registered for this session", details: Dict[str, Any] = None):
        super().__init__(message, 409, details)

class InvalidTransitionError(APIError):
    """Order state machine rejected the requested transition"""

    def __init__(self, message: str = "Invalid order transition", details: Dict[str, Any] = None):
        super().__init__(message, 409, details)

class RateLimitError(APIError):
    """Too many orders from one client"""

    def __init__(self, message: str = "Too many orders, try again later", details: Dict[str, Any] = None):
        super().__init__(message, 429, details)

class BlacklistedError(APIError):
    """Buyer email domain or client IP is blocked from ordering"""

    def __init__(self, message: str = "This order cannot be accepted", details: Dict[str, Any] = None):
        super().__init__(message, 403, details)

class GatewayUnavailableError(APIError):
    """Payment gateway could not open a checkout session"""

    def __init__(self, message: str = "Payment gateway unavailable", details: Dict[str, Any] = None):
        super().__init__(message, 503, details)

async def api_exception_handler(request: Request, exc: APIError):
    """Handle custom API exceptions with logging"""

    context = log_request_context(request.client.host if request.client else None)
    context.update({
        "error_type": exc.__class__.__name__,
        "status_code": exc.status_code,
        "path": str(request.url.path),
        "method": request.method
    })

    if exc.status_code >= 500:
        logger.error(f"API Error: {exc.message}", extra={"context": context})
    else:
        logger.warning(f"API Error: {exc.message}", extra={"context": context})

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "message": exc.message,
            "details": exc.details,
            "timestamp": context["timestamp"]
        }
    )

async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""

    context = log_request_context(request.client.host if request.client else None)
    context.update({
        "error_type": exc.__class__.__name__,
        "path": str(request.url.path),
        "method": request.method
    })

    logger.error(f"Unexpected error: {str(exc)}", extra={"context": context}, exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "message": "Internal server error",
            "timestamp": context["timestamp"]
        }
    )
