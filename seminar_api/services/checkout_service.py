import asyncio
import logging
from typing import Optional, Dict
from datetime import datetime, timezone
from uuid import UUID
from seminar_api.config import settings
from seminar_api.database import get_db_connection
from seminar_api.models.order import (
    OrderDraft, Order, CheckoutResponse, TransitionEvidence, OrderStatus
)
from seminar_api.models.inventory import TicketType, SessionStatus
from seminar_api.services import inventory_service, orders_service, rate_limit_service, blacklist_service
from seminar_api.services.gateways import get_gateway, GatewayError, SessionRequest
from seminar_api.core.exceptions import (
    ValidationError, SessionNotOpenError, SalesClosedError,
    DuplicateRegistrationError, GatewayUnavailableError
)

logger = logging.getLogger(__name__)

LIVE_ORDER_STATUSES = [OrderStatus.PENDING.value, OrderStatus.PAID.value]


async def _load_open_session(conn, session_id: UUID, now: datetime):
    session = await conn.fetchrow("""
        SELECT id, title, status, starts_at
        FROM sessions
        WHERE id = $1
        FOR SHARE
    """, session_id)

    if not session:
        raise SessionNotOpenError("Session not found", {"session_id": str(session_id)})
    if session['status'] != SessionStatus.SCHEDULED.value:
        raise SessionNotOpenError(
            "Session is not open for registration",
            {"session_id": str(session_id), "status": session['status']}
        )
    if session['starts_at'] <= now:
        raise SessionNotOpenError("Session has already started", {"session_id": str(session_id)})
    return session


async def _load_ticket_types(conn, draft: OrderDraft, now: datetime) -> Dict[UUID, TicketType]:
    ids = [line.ticket_type_id for line in draft.tickets]
    rows = await conn.fetch("SELECT * FROM ticket_types WHERE id = ANY($1::uuid[])", ids)
    ticket_types = {row['id']: TicketType(**dict(row)) for row in rows}

    for line in draft.tickets:
        ticket_type = ticket_types.get(line.ticket_type_id)
        if not ticket_type or ticket_type.session_id != draft.session_id:
            raise SalesClosedError(
                "Ticket type is not sold for this session",
                {"ticket_type_id": str(line.ticket_type_id)}
            )
        if not ticket_type.on_sale(now):
            raise SalesClosedError(
                f"Sales for {ticket_type.name} are closed",
                {"ticket_type_id": str(line.ticket_type_id)}
            )
        if line.quantity > ticket_type.max_per_order:
            raise ValidationError(
                f"At most {ticket_type.max_per_order} tickets of {ticket_type.name} per order",
                {"ticket_type_id": str(line.ticket_type_id), "max_per_order": ticket_type.max_per_order}
            )

    return ticket_types


async def _check_duplicate_registration(conn, draft: OrderDraft) -> None:
    """
    Reject if any buyer/participant email already holds a live order for the session.

    Advisory locks per (session, email) are taken in sorted order and held
    until commit, so two concurrent submissions for one identity are checked
    one after the other.
    """
    emails = draft.identity_emails
    for email in emails:
        await conn.execute(
            "SELECT pg_advisory_xact_lock(hashtext($1))",
            f"registration:{draft.session_id}:{email}"
        )

    existing = await conn.fetchrow("""
        SELECT o.id, o.order_number
        FROM orders o
        WHERE o.session_id = $1
          AND o.status = ANY($2::text[])
          AND (
              LOWER(o.email) = ANY($3::text[])
              OR EXISTS (
                  SELECT 1 FROM participants p
                  WHERE p.order_id = o.id AND LOWER(p.email) = ANY($3::text[])
              )
          )
        LIMIT 1
    """, draft.session_id, LIVE_ORDER_STATUSES, emails)

    if existing:
        logger.info(f"Duplicate registration for session {draft.session_id} (order {existing['order_number']})")
        raise DuplicateRegistrationError(details={"session_id": str(draft.session_id)})


async def submit(
    draft: OrderDraft,
    ip_address: Optional[str] = None,
    now: Optional[datetime] = None
) -> CheckoutResponse:
    """
    Validate a purchase, reserve stock, create a PENDING order and open a
    gateway payment session.

    Every precondition runs on one transaction together with the stock
    reservation and the order insert; any failure leaves nothing behind.
    If the gateway cannot open a session the order is cancelled and its
    stock released.
    """
    now = now or datetime.now(timezone.utc)

    async with get_db_connection() as conn:
        await _load_open_session(conn, draft.session_id, now)
        ticket_types = await _load_ticket_types(conn, draft, now)
        await rate_limit_service.check_order_rate(conn, ip_address, now)
        await blacklist_service.check_blacklist(conn, draft.buyer.email, ip_address)
        await _check_duplicate_registration(conn, draft)
        await inventory_service.reserve_lines(conn, draft.tickets)
        order = await orders_service.create_pending(conn, draft, ticket_types, ip_address)

    payment_url = await _open_payment_session(order, draft)

    return CheckoutResponse(
        order_id=order.id,
        order_number=order.order_number,
        payment_url=payment_url
    )


async def _open_payment_session(order: Order, draft: OrderDraft) -> str:
    gateway = get_gateway()
    request = SessionRequest(
        external_order_num=order.order_number,
        amount=order.total,
        currency=order.currency,
        payment_methods=[order.payment_method.value],
        customer_email=draft.buyer.email,
        metadata={
            "order_id": str(order.id),
            "session_id": str(order.session_id),
        }
    )

    try:
        session = await asyncio.wait_for(
            gateway.create_session(request),
            timeout=settings.gateway_timeout_seconds
        )
    except (GatewayError, asyncio.TimeoutError) as e:
        logger.error(f"Gateway session failed for order {order.order_number}: {e}")
        await orders_service.transition(
            order.id,
            OrderStatus.CANCELLED,
            TransitionEvidence(reason="gateway_unavailable", occurred_at=datetime.now(timezone.utc))
        )
        raise GatewayUnavailableError(details={"order_number": order.order_number})

    await orders_service.attach_gateway_session(order.id, session.session_id)
    logger.info(f"Order {order.order_number} awaiting payment via {gateway.display_name}")
    return session.payment_url
