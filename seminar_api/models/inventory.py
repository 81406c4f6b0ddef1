from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class SessionStatus(str, Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class TicketType(BaseModel):
    id: UUID
    session_id: UUID
    name: str
    price: Decimal
    stock: int
    max_per_order: int
    sales_start_at: Optional[datetime] = None
    sales_end_at: Optional[datetime] = None
    is_active: bool = True

    class Config:
        from_attributes = True

    def on_sale(self, now: datetime) -> bool:
        """Active and inside its sales window"""
        if not self.is_active:
            return False
        if self.sales_start_at and now < self.sales_start_at:
            return False
        if self.sales_end_at and now > self.sales_end_at:
            return False
        return True


class Reservation(BaseModel):
    """Result of a committed stock decrement or release"""
    ticket_type_id: UUID
    quantity: int
    remaining: int
