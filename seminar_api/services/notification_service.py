import logging
from enum import Enum
from typing import Optional, Dict, Any, Tuple
from uuid import UUID
from seminar_api.database import get_db_connection
from seminar_api.services import email_service, discord_service

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_INSTRUCTIONS = "payment_instructions"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_EXPIRED = "order_expired"
    REFUND_COMPLETED = "refund_completed"
    PARTIAL_REFUND = "partial_refund"
    UNPAID_REMINDER = "unpaid_reminder"


def _render(kind: NotificationKind, order: Dict[str, Any], extra: Dict[str, Any]) -> Tuple[str, str]:
    """Subject and plain text body for a notification"""
    title = order['session_title']
    starts = order['starts_at'].strftime('%Y-%m-%d %H:%M') if order.get('starts_at') else 'TBD'
    header = f"Dear {order['name']},\n\n"
    footer = (
        f"\n\nOrder number: {order['order_number']}\n"
        f"Session: {title} ({starts})\n"
        f"Total: {order['total']:,.0f} {order['currency']}\n"
    )

    if kind == NotificationKind.PAYMENT_COMPLETED:
        return (
            f"Payment received - {title}",
            header + "Your payment has been confirmed and your registration is complete." + footer
        )
    if kind == NotificationKind.PAYMENT_INSTRUCTIONS:
        return (
            f"Payment instructions - {title}",
            header + "Your order is reserved. Please complete the payment using the "
            "instructions shown on the checkout page before the deadline." + footer
        )
    if kind == NotificationKind.ORDER_CANCELLED:
        return (
            f"Order cancelled - {title}",
            header + "Your order was cancelled because the payment could not be completed." + footer
        )
    if kind == NotificationKind.ORDER_EXPIRED:
        return (
            f"Order expired - {title}",
            header + "Your order expired because payment was not received in time. "
            "The reserved seats have been released." + footer
        )
    if kind == NotificationKind.REFUND_COMPLETED:
        return (
            f"Refund completed - {title}",
            header + "Your payment has been fully refunded." + footer
        )
    if kind == NotificationKind.PARTIAL_REFUND:
        amount = extra.get('refunded_amount')
        refunded = f" of {amount:,.0f} {order['currency']}" if amount is not None else ""
        return (
            f"Partial refund - {title}",
            header + f"A partial refund{refunded} has been issued for your order." + footer
        )
    if kind == NotificationKind.UNPAID_REMINDER:
        days = extra.get('day_offset')
        age = f" {days} day(s) ago" if days else ""
        return (
            f"Payment reminder - {title}",
            header + f"We have not received the payment for the order you placed{age}. "
            "Please complete it before the deadline or the order will expire." + footer
        )
    raise ValueError(f"Unknown notification kind: {kind}")


async def notify(
    order_id: UUID,
    event_kind: NotificationKind,
    extra: Optional[Dict[str, Any]] = None
) -> bool:
    """
    Send the buyer notification for an order event.

    Best effort: failures are logged and reported as False, never raised,
    so callers can run it after their transaction committed.
    """
    try:
        kind = NotificationKind(event_kind)
        async with get_db_connection(use_transaction=False) as conn:
            order = await conn.fetchrow("""
                SELECT o.*, s.title AS session_title, s.starts_at
                FROM orders o
                JOIN sessions s ON s.id = o.session_id
                WHERE o.id = $1
            """, order_id)
            if not order:
                logger.warning(f"Notification {kind.value} skipped: order {order_id} not found")
                return False

            tickets_count = await conn.fetchval(
                "SELECT COALESCE(SUM(quantity), 0) FROM order_items WHERE order_id = $1",
                order_id
            )

        order = dict(order)
        subject, body = _render(kind, order, extra or {})
        sent = await email_service.send_email(order['email'], subject, body)

        if kind == NotificationKind.PAYMENT_COMPLETED and discord_service.discord_sales_service:
            await discord_service.discord_sales_service.notify_payment_completed(
                session_title=order['session_title'],
                order_number=order['order_number'],
                tickets_count=int(tickets_count or 0),
                total_amount=order['total'],
                currency=order['currency'],
                buyer_email=order['email'],
                buyer_name=order['name'],
                payment_method=order['payment_method']
            )

        logger.info(f"Notification {kind.value} for order {order['order_number']}: {'sent' if sent else 'not sent'}")
        return sent

    except Exception as e:
        logger.error(f"Notification {event_kind} failed for order {order_id}: {e}", exc_info=True)
        return False
