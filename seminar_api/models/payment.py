from pydantic import BaseModel, Field
from typing import Optional, Any, Dict
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PaymentStatus(str, Enum):
    """Gateway-reported payment attempt states"""
    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class GatewayEventType(str, Enum):
    """Webhook event types the pipeline acts on"""
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_AUTHORIZED = "payment.authorized"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_EXPIRED = "payment.expired"
    PAYMENT_REFUNDED = "payment.refunded"


class Payment(BaseModel):
    id: int
    order_id: UUID
    gateway_payment_id: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    method: Optional[str] = None
    refunded_amount: Decimal = Decimal("0")
    captured_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GatewayPaymentData(BaseModel):
    """`data` object of a gateway webhook body"""
    id: str
    external_order_num: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    payment_method_type: Optional[str] = None
    captured_at: Optional[datetime] = None
    refunded_amount: Optional[Decimal] = None

    class Config:
        extra = "allow"


class GatewayEvent(BaseModel):
    """Parsed webhook body"""
    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    created_at: Optional[datetime] = None
    data: Optional[GatewayPaymentData] = None

    class Config:
        extra = "allow"


class WebhookEvent(BaseModel):
    id: int
    event_id: str
    event_type: str
    payload: Dict[str, Any]
    signature: Optional[str] = None
    processed: bool = False
    processed_at: Optional[datetime] = None
    retries: int = 0
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
