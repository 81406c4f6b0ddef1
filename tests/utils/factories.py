"""
Factories for test data.

`create` builds a row dict; `insert` also stores it in a FakeDatabase.
"""
import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, List, Tuple
from seminar_api.services.gateways.komoju import compute_signature

WEBHOOK_SECRET = "whsec_test"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionFactory:
    """Seminar sessions."""

    _counter = 0

    @classmethod
    def create(cls, **kwargs) -> dict:
        cls._counter += 1
        now = utcnow()
        return {
            "id": kwargs.get("id", uuid.uuid4()),
            "title": kwargs.get("title", f"Seminar {cls._counter}"),
            "status": kwargs.get("status", "SCHEDULED"),
            "starts_at": kwargs.get("starts_at", now + timedelta(days=14)),
            "created_at": now,
            "updated_at": now,
        }

    @classmethod
    def insert(cls, db, **kwargs) -> dict:
        row = cls.create(**kwargs)
        db.sessions[row["id"]] = row
        return row


class TicketTypeFactory:
    """Ticket types belonging to a session."""

    _counter = 0

    @classmethod
    def create(cls, session_id, **kwargs) -> dict:
        cls._counter += 1
        now = utcnow()
        return {
            "id": kwargs.get("id", uuid.uuid4()),
            "session_id": session_id,
            "name": kwargs.get("name", f"General {cls._counter}"),
            "price": kwargs.get("price", Decimal("5000")),
            "stock": kwargs.get("stock", 10),
            "max_per_order": kwargs.get("max_per_order", 10),
            "sales_start_at": kwargs.get("sales_start_at"),
            "sales_end_at": kwargs.get("sales_end_at"),
            "is_active": kwargs.get("is_active", True),
            "created_at": now,
            "updated_at": now,
        }

    @classmethod
    def insert(cls, db, session_id, **kwargs) -> dict:
        row = cls.create(session_id, **kwargs)
        db.ticket_types[row["id"]] = row
        return row


class OrderFactory:
    """Orders with line items and participants, stock already reserved."""

    _counter = 0

    @classmethod
    def insert(
        cls,
        db,
        session_id,
        items: List[Tuple[dict, int]],
        status: str = "PENDING",
        payment_method: str = "CREDIT_CARD",
        created_at: Optional[datetime] = None,
        email: Optional[str] = None,
        ip_address: str = "203.0.113.10",
        reserve_stock: bool = True
    ) -> dict:
        cls._counter += 1
        created_at = created_at or utcnow()
        subtotal = sum((Decimal(str(tt["price"])) * qty for tt, qty in items), Decimal("0"))
        order = {
            "id": uuid.uuid4(),
            "order_number": f"ORD250101T{cls._counter:05d}",
            "session_id": session_id,
            "email": email or f"buyer{cls._counter}@example.com",
            "name": f"Buyer {cls._counter}",
            "phone": None,
            "company": None,
            "status": status,
            "subtotal": subtotal,
            "tax": Decimal("0"),
            "total": subtotal,
            "currency": "JPY",
            "payment_method": payment_method,
            "gateway_session_id": f"sess_{cls._counter}",
            "ip_address": ip_address,
            "created_at": created_at,
            "paid_at": created_at if status in ("PAID", "REFUNDED") else None,
            "cancelled_at": None,
            "updated_at": created_at,
        }
        db.orders[order["id"]] = order

        seat = 0
        for tt, qty in items:
            db.order_items.append({
                "id": db.next_id(),
                "order_id": order["id"],
                "ticket_type_id": tt["id"],
                "quantity": qty,
                "unit_price": tt["price"],
                "subtotal": Decimal(str(tt["price"])) * qty,
            })
            if reserve_stock:
                db.ticket_types[tt["id"]]["stock"] -= qty
            for _ in range(qty):
                seat += 1
                db.participants.append({
                    "id": db.next_id(),
                    "order_id": order["id"],
                    "email": f"attendee{cls._counter}-{seat}@example.com",
                    "name": f"Attendee {seat}",
                    "company": None,
                })
        return order


def order_payload(
    session_id,
    lines: List[Tuple[dict, int]],
    buyer_email: str = "buyer@example.com",
    payment_method: str = "CREDIT_CARD",
    participant_emails: Optional[List[str]] = None
) -> dict:
    """JSON body for POST /orders; one participant per seat."""
    total = sum(qty for _, qty in lines)
    emails = participant_emails or [f"guest{i}-{uuid.uuid4().hex[:6]}@example.com" for i in range(total)]
    return {
        "session_id": str(session_id),
        "tickets": [{"ticket_type_id": str(tt["id"]), "quantity": qty} for tt, qty in lines],
        "buyer": {"email": buyer_email, "name": "Taro Yamada", "phone": "090-0000-0000"},
        "participants": [{"email": e, "name": f"Guest {i}"} for i, e in enumerate(emails)],
        "payment_method": payment_method,
    }


def webhook_body(
    event_type: str,
    order_number: str,
    payment_id: str = "pay_123",
    amount: Decimal = Decimal("5000"),
    event_id: Optional[str] = None,
    **data
) -> bytes:
    """Raw gateway webhook body."""
    payload = {
        "id": event_id or f"evt_{uuid.uuid4().hex[:12]}",
        "type": event_type,
        "data": {
            "id": payment_id,
            "external_order_num": order_number,
            "amount": int(amount),
            "currency": "JPY",
            **data,
        },
    }
    return json.dumps(payload).encode()


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(secret, body)
