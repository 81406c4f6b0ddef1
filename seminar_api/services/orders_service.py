import logging
import secrets
import string
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID
from seminar_api.config import settings
from seminar_api.database import get_db_connection
from seminar_api.models.order import (
    Order, OrderDetail, OrderDraft, OrderLineItem, Participant,
    TransitionEvidence, TransitionResult, OrderStatus,
    TRANSITION_SOURCES, RELEASING_STATUSES
)
from seminar_api.models.inventory import TicketType
from seminar_api.models.payment import Payment, PaymentStatus
from seminar_api.services import inventory_service
from seminar_api.core.exceptions import NotFoundError, InvalidTransitionError

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.digits + string.ascii_uppercase
ORDER_NUMBER_MAX_ATTEMPTS = 5


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD + YYMMDD + 6 random base36 characters"""
    now = now or datetime.now(timezone.utc)
    suffix = ''.join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"ORD{now.strftime('%y%m%d')}{suffix}"


async def get_order(order_id: UUID, conn=None) -> Optional[Order]:
    if conn is None:
        async with get_db_connection(use_transaction=False) as conn:
            return await get_order(order_id, conn)

    row = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
    return Order(**dict(row)) if row else None


async def get_order_by_number(order_number: str, conn=None) -> Optional[Order]:
    if conn is None:
        async with get_db_connection(use_transaction=False) as conn:
            return await get_order_by_number(order_number, conn)

    row = await conn.fetchrow("SELECT * FROM orders WHERE order_number = $1", order_number)
    return Order(**dict(row)) if row else None


async def get_order_detail(order_id: UUID) -> OrderDetail:
    """Order with line items, participants and payments"""
    async with get_db_connection(use_transaction=False) as conn:
        row = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
        if not row:
            raise NotFoundError("Order not found", {"order_id": str(order_id)})

        items = await conn.fetch(
            "SELECT * FROM order_items WHERE order_id = $1 ORDER BY id",
            order_id
        )
        participants = await conn.fetch(
            "SELECT * FROM participants WHERE order_id = $1 ORDER BY id",
            order_id
        )
        payments = await conn.fetch(
            "SELECT * FROM payments WHERE order_id = $1 ORDER BY id",
            order_id
        )

        order_dict = dict(row)
        order_dict['items'] = [OrderLineItem(**dict(i)) for i in items]
        order_dict['participants'] = [Participant(**dict(p)) for p in participants]
        order_dict['payments'] = [Payment(**dict(p)) for p in payments]
        return OrderDetail(**order_dict)


async def _unique_order_number(conn) -> str:
    for _ in range(ORDER_NUMBER_MAX_ATTEMPTS):
        candidate = generate_order_number()
        exists = await conn.fetchrow("SELECT * FROM orders WHERE order_number = $1", candidate)
        if not exists:
            return candidate
    raise RuntimeError("Could not generate a unique order number")


async def create_pending(
    conn,
    draft: OrderDraft,
    ticket_types: Dict[UUID, TicketType],
    ip_address: Optional[str] = None
) -> Order:
    """
    Insert a PENDING order with its line items and participants.

    Prices are snapshotted from `ticket_types`; the caller has already
    reserved stock on the same transaction.
    """
    subtotal = Decimal("0")
    line_totals = []
    for line in draft.tickets:
        unit_price = Decimal(str(ticket_types[line.ticket_type_id].price))
        line_subtotal = unit_price * line.quantity
        subtotal += line_subtotal
        line_totals.append((line, unit_price, line_subtotal))

    order_number = await _unique_order_number(conn)

    row = await conn.fetchrow("""
        INSERT INTO orders (
            order_number, session_id, email, name, phone, company, status,
            subtotal, tax, total, currency, payment_method, ip_address
        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
        RETURNING *
    """,
        order_number, draft.session_id, draft.buyer.email, draft.buyer.name,
        draft.buyer.phone, draft.buyer.company, OrderStatus.PENDING.value,
        subtotal, Decimal("0"), subtotal, settings.currency,
        draft.payment_method.value, ip_address
    )
    order_id = row['id']

    for line, unit_price, line_subtotal in line_totals:
        await conn.fetchrow("""
            INSERT INTO order_items (order_id, ticket_type_id, quantity, unit_price, subtotal)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
        """, order_id, line.ticket_type_id, line.quantity, unit_price, line_subtotal)

    for participant in draft.participants:
        await conn.fetchrow("""
            INSERT INTO participants (order_id, email, name, company)
            VALUES ($1, $2, $3, $4)
            RETURNING *
        """, order_id, participant.email, participant.name, participant.company)

    logger.info(f"Order {order_number} created: {draft.total_quantity} tickets, total {subtotal} {settings.currency}")
    return Order(**dict(row))


async def transition(
    order_id: UUID,
    target_status: OrderStatus,
    evidence: TransitionEvidence,
    conn=None
) -> TransitionResult:
    """
    Move an order to `target_status` if it is still in the required source state.

    Re-applying a transition that already happened, or targeting an order that
    already reached a terminal state, succeeds with applied=False and has no
    side effects. Stock is released on the same transaction when the order
    leaves its reservation behind (cancel, expiry, full refund).
    """
    if conn is None:
        async with get_db_connection() as conn:
            return await transition(order_id, target_status, evidence, conn)

    target_status = OrderStatus(target_status)
    source_status = TRANSITION_SOURCES[target_status]

    paid_at = evidence.occurred_at if target_status == OrderStatus.PAID else None
    cancelled_at = (
        evidence.occurred_at
        if target_status in (OrderStatus.CANCELLED, OrderStatus.EXPIRED)
        else None
    )

    row = await conn.fetchrow("""
        UPDATE orders
        SET status = $2,
            paid_at = COALESCE($4, paid_at),
            cancelled_at = COALESCE($5, cancelled_at),
            updated_at = NOW()
        WHERE id = $1 AND status = $3
        RETURNING *
    """, order_id, target_status.value, source_status.value, paid_at, cancelled_at)

    if row:
        if target_status in RELEASING_STATUSES:
            await inventory_service.release_order(conn, order_id)
        logger.info(
            f"Order {row['order_number']} {source_status.value} -> {target_status.value} "
            f"({evidence.reason})"
        )
        return TransitionResult(order=Order(**dict(row)), applied=True)

    current = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
    if not current:
        raise NotFoundError("Order not found", {"order_id": str(order_id)})

    if current['status'] == OrderStatus.PENDING.value:
        raise InvalidTransitionError(
            f"Cannot move order from {current['status']} to {target_status.value}",
            {"order_id": str(order_id), "status": current['status'], "target": target_status.value}
        )

    logger.info(
        f"Order {current['order_number']} already {current['status']}, "
        f"skipping transition to {target_status.value}"
    )
    return TransitionResult(order=Order(**dict(current)), applied=False)


async def record_payment(
    conn,
    order_id: UUID,
    gateway_payment_id: str,
    amount: Decimal,
    currency: str,
    status: PaymentStatus,
    method: Optional[str] = None,
    captured_at: Optional[datetime] = None,
    failed_at: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> Optional[Payment]:
    """
    Append a payment row.

    AUTHORIZED and CAPTURED rows are unique per gateway payment; recording one
    a second time returns None instead of inserting a duplicate.
    """
    row = await conn.fetchrow("""
        INSERT INTO payments (
            order_id, gateway_payment_id, amount, currency, status,
            method, captured_at, failed_at, metadata
        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        ON CONFLICT (gateway_payment_id, status) WHERE status IN ('AUTHORIZED', 'CAPTURED')
        DO NOTHING
        RETURNING *
    """,
        order_id, gateway_payment_id, amount, currency, PaymentStatus(status).value,
        method, captured_at, failed_at, metadata
    )

    if not row:
        logger.info(f"Payment {gateway_payment_id} already recorded as {PaymentStatus(status).value}")
        return None
    return Payment(**dict(row))


async def count_failed_payments(conn, order_id: UUID) -> int:
    count = await conn.fetchval(
        "SELECT COUNT(*) FROM payments WHERE order_id = $1 AND status = 'FAILED'",
        order_id
    )
    return int(count or 0)


async def apply_refund(
    conn,
    order_id: UUID,
    gateway_payment_id: str,
    refunded_amount: Decimal
) -> Optional[Payment]:
    """
    Store the cumulative refunded amount on the captured payment row.

    The row flips to REFUNDED once the refund covers the whole amount.
    """
    row = await conn.fetchrow("""
        UPDATE payments
        SET refunded_amount = $3,
            status = CASE WHEN $3 >= amount THEN 'REFUNDED' ELSE status END,
            updated_at = NOW()
        WHERE order_id = $1 AND gateway_payment_id = $2
          AND status IN ('CAPTURED', 'REFUNDED')
        RETURNING *
    """, order_id, gateway_payment_id, refunded_amount)

    if not row:
        logger.warning(f"No captured payment {gateway_payment_id} to refund for order {order_id}")
        return None
    return Payment(**dict(row))


async def attach_gateway_session(order_id: UUID, gateway_session_id: str) -> None:
    async with get_db_connection() as conn:
        await conn.execute("""
            UPDATE orders
            SET gateway_session_id = $2, updated_at = NOW()
            WHERE id = $1
        """, order_id, gateway_session_id)
