from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID
from seminar_api.models.payment import Payment


class OrderStatus(str, Enum):
    """Order lifecycle states"""
    PENDING = "PENDING"       # Created, waiting for settlement
    PAID = "PAID"             # Captured by the gateway
    CANCELLED = "CANCELLED"   # Failed repeatedly or gateway unavailable
    REFUNDED = "REFUNDED"     # Fully refunded after payment
    EXPIRED = "EXPIRED"       # Deferred payment never arrived


# Only source state from which each target can be reached
TRANSITION_SOURCES = {
    OrderStatus.PAID: OrderStatus.PENDING,
    OrderStatus.CANCELLED: OrderStatus.PENDING,
    OrderStatus.EXPIRED: OrderStatus.PENDING,
    OrderStatus.REFUNDED: OrderStatus.PAID,
}

# Transitions that hand reserved seats back to inventory
RELEASING_STATUSES = {OrderStatus.CANCELLED, OrderStatus.EXPIRED, OrderStatus.REFUNDED}


class PaymentMethod(str, Enum):
    """Payment methods offered on the hosted checkout"""
    CREDIT_CARD = "CREDIT_CARD"
    KONBINI = "KONBINI"
    PAYPAY = "PAYPAY"
    BANK_TRANSFER = "BANK_TRANSFER"


MAX_TICKET_LINES = 5
MAX_QUANTITY_PER_LINE = 10
MAX_TICKETS_PER_ORDER = 20


class TicketLine(BaseModel):
    """One ticket type and how many seats of it"""
    ticket_type_id: UUID
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY_PER_LINE)


class Buyer(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    company: Optional[str] = Field(None, max_length=100)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class ParticipantIn(BaseModel):
    """Attendee occupying one reserved seat"""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    company: Optional[str] = Field(None, max_length=100)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class OrderDraft(BaseModel):
    """Checkout submission body"""
    session_id: UUID
    tickets: List[TicketLine] = Field(..., min_length=1, max_length=MAX_TICKET_LINES)
    buyer: Buyer
    participants: List[ParticipantIn] = Field(..., min_length=1)
    payment_method: PaymentMethod

    @field_validator('tickets')
    @classmethod
    def validate_tickets(cls, v):
        ids = [line.ticket_type_id for line in v]
        if len(set(ids)) != len(ids):
            raise ValueError("Each ticket type may appear only once")
        if sum(line.quantity for line in v) > MAX_TICKETS_PER_ORDER:
            raise ValueError(f"At most {MAX_TICKETS_PER_ORDER} tickets per order")
        return v

    @field_validator('participants')
    @classmethod
    def validate_participants(cls, v):
        emails = [p.email for p in v]
        if len(set(emails)) != len(emails):
            raise ValueError("Participant emails must be unique")
        return v

    @model_validator(mode='after')
    def participants_match_quantity(self):
        if len(self.participants) != self.total_quantity:
            raise ValueError("Number of participants must equal the number of tickets")
        return self

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.tickets)

    @property
    def identity_emails(self) -> List[str]:
        """Buyer plus participant emails, lowercased and de-duplicated"""
        emails = {self.buyer.email.lower()}
        emails.update(p.email.lower() for p in self.participants)
        return sorted(emails)


class Order(BaseModel):
    id: UUID
    order_number: str
    session_id: UUID
    email: str
    name: str
    phone: Optional[str] = None
    company: Optional[str] = None
    status: OrderStatus
    subtotal: Decimal
    tax: Decimal = Decimal("0")
    total: Decimal
    currency: str
    payment_method: PaymentMethod
    gateway_session_id: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderLineItem(BaseModel):
    id: int
    order_id: UUID
    ticket_type_id: UUID
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class Participant(BaseModel):
    id: int
    order_id: UUID
    email: str
    name: str
    company: Optional[str] = None

    class Config:
        from_attributes = True


class OrderDetail(Order):
    """Order with its line items, participants and payment history"""
    items: List[OrderLineItem] = []
    participants: List[Participant] = []
    payments: List[Payment] = []


class CheckoutResponse(BaseModel):
    order_id: UUID
    order_number: str
    payment_url: str


class TransitionEvidence(BaseModel):
    """Why a transition is requested and when the underlying fact occurred"""
    reason: str
    occurred_at: datetime
    gateway_payment_id: Optional[str] = None
    event_id: Optional[str] = None


class TransitionResult(BaseModel):
    order: Order
    applied: bool
