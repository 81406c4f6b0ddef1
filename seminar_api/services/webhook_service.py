import json
import logging
from functools import partial
from typing import Optional, List, Callable, Awaitable, Dict, Any
from datetime import datetime, timezone
from pydantic import ValidationError as PydanticValidationError
from seminar_api.config import settings
from seminar_api.core.exceptions import InvalidSignatureError
from seminar_api.database import get_db_connection
from seminar_api.models.order import Order, OrderStatus, TransitionEvidence
from seminar_api.models.payment import GatewayEvent, GatewayEventType, PaymentStatus, WebhookEvent
from seminar_api.services import orders_service, notification_service, participant_sync_service
from seminar_api.services.gateways import get_gateway
from seminar_api.services.notification_service import NotificationKind

logger = logging.getLogger(__name__)

AfterCommit = Callable[[], Awaitable[Any]]


class OrderNotFound(LookupError):
    """Settlement event references an order number we do not know"""


def parse_event(raw_body: bytes) -> Optional[GatewayEvent]:
    """Parse a webhook body, None when it is not a usable event"""
    try:
        payload = json.loads(raw_body)
        return GatewayEvent.model_validate(payload)
    except (ValueError, PydanticValidationError) as e:
        logger.warning(f"Malformed webhook body: {e}")
        return None


async def ingest(raw_body: bytes, signature: Optional[str]) -> int:
    """
    Process one gateway webhook delivery and return the HTTP status to answer with.

    200 handled or duplicate, 400 malformed, 500 retry later. A bad signature
    raises InvalidSignatureError before anything is parsed or stored.
    The event row is committed before any side effect so a crash mid-handler
    leaves a retryable record; state changes and the processed flag commit
    together; notifications run only after that commit.
    """
    gateway = get_gateway()
    if not gateway.verify_signature(raw_body, signature):
        logger.warning("Invalid webhook signature")
        raise InvalidSignatureError()

    event = parse_event(raw_body)
    if event is None:
        return 400

    logger.info(f"Webhook received: {event.type} ({event.id})")

    record = await _register_event(event, raw_body, signature)
    if record is None:
        logger.info(f"Event already processed: {event.id}")
        return 200

    try:
        async with get_db_connection() as conn:
            locked = await conn.fetchrow(
                "SELECT processed FROM webhook_events WHERE event_id = $1 FOR UPDATE",
                event.id
            )
            if locked and locked['processed']:
                logger.info(f"Event processed concurrently: {event.id}")
                return 200

            after_commit = await dispatch(conn, event)

            await conn.execute("""
                UPDATE webhook_events
                SET processed = TRUE, processed_at = NOW(), error = NULL, updated_at = NOW()
                WHERE event_id = $1
            """, event.id)
    except Exception as e:
        logger.error(f"Webhook processing error for {event.id}: {e}", exc_info=True)
        await _record_error(event.id, str(e) or e.__class__.__name__)
        return 500

    for action in after_commit:
        await action()

    return 200


async def _register_event(event: GatewayEvent, raw_body: bytes, signature: Optional[str]) -> Optional[WebhookEvent]:
    """
    Record first sight of an event, or count a redelivery.

    Returns None when the event was already processed.
    """
    async with get_db_connection() as conn:
        existing = await conn.fetchrow(
            "SELECT * FROM webhook_events WHERE event_id = $1",
            event.id
        )

        if existing is None:
            inserted = await conn.fetchrow("""
                INSERT INTO webhook_events (event_id, event_type, payload, signature)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (event_id) DO NOTHING
                RETURNING *
            """, event.id, event.type, json.loads(raw_body), signature)
            if inserted:
                return WebhookEvent(**dict(inserted))

            # Lost the insert race to a concurrent delivery
            existing = await conn.fetchrow(
                "SELECT * FROM webhook_events WHERE event_id = $1",
                event.id
            )

        if existing['processed']:
            return None

        row = await conn.fetchrow("""
            UPDATE webhook_events
            SET retries = retries + 1, updated_at = NOW()
            WHERE event_id = $1
            RETURNING *
        """, event.id)
        logger.info(f"Retrying event {event.id} (attempt {row['retries'] + 1})")
        return WebhookEvent(**dict(row))


async def _record_error(event_id: str, error: str) -> None:
    try:
        async with get_db_connection() as conn:
            await conn.execute("""
                UPDATE webhook_events
                SET error = $2, updated_at = NOW()
                WHERE event_id = $1
            """, event_id, error[:2000])
    except Exception as e:
        logger.error(f"Could not record error for event {event_id}: {e}")


async def dispatch(conn, event: GatewayEvent) -> List[AfterCommit]:
    """Apply an event on `conn`; returns the actions to run after commit"""
    handlers = {
        GatewayEventType.PAYMENT_CAPTURED.value: handle_payment_captured,
        GatewayEventType.PAYMENT_AUTHORIZED.value: handle_payment_authorized,
        GatewayEventType.PAYMENT_FAILED.value: handle_payment_failed,
        GatewayEventType.PAYMENT_EXPIRED.value: handle_payment_expired,
        GatewayEventType.PAYMENT_REFUNDED.value: handle_payment_refunded,
    }
    handler = handlers.get(event.type)
    if handler is None:
        logger.info(f"Unhandled event type: {event.type}")
        return []
    return await handler(conn, event)


async def _find_order(conn, event: GatewayEvent) -> Optional[Order]:
    order_number = event.data.external_order_num if event.data else None
    if not order_number:
        return None
    return await orders_service.get_order_by_number(order_number, conn)


def _payment_metadata(event: GatewayEvent) -> Dict[str, Any]:
    return event.data.model_dump(mode="json") if event.data else {}


def _evidence(event: GatewayEvent, occurred_at: Optional[datetime] = None) -> TransitionEvidence:
    return TransitionEvidence(
        reason=event.type,
        occurred_at=occurred_at or datetime.now(timezone.utc),
        gateway_payment_id=event.data.id if event.data else None,
        event_id=event.id
    )


async def handle_payment_captured(conn, event: GatewayEvent) -> List[AfterCommit]:
    order = await _find_order(conn, event)
    if not order:
        # Raise so the gateway redelivers once the order is visible
        raise OrderNotFound(f"Order not found: {event.data.external_order_num if event.data else None}")

    data = event.data
    captured_at = data.captured_at or datetime.now(timezone.utc)

    await orders_service.record_payment(
        conn, order.id, data.id,
        amount=data.amount if data.amount is not None else order.total,
        currency=data.currency or order.currency,
        status=PaymentStatus.CAPTURED,
        method=data.payment_method_type or order.payment_method.value,
        captured_at=captured_at,
        metadata=_payment_metadata(event)
    )

    result = await orders_service.transition(order.id, OrderStatus.PAID, _evidence(event, captured_at), conn)
    if not result.applied:
        if result.order.status != OrderStatus.PAID:
            logger.warning(
                f"Captured payment {data.id} for order {order.order_number} "
                f"in status {result.order.status.value}, needs manual refund"
            )
        return []

    return [
        partial(notification_service.notify, order.id, NotificationKind.PAYMENT_COMPLETED),
        partial(participant_sync_service.register_participants, order.id),
    ]


async def handle_payment_authorized(conn, event: GatewayEvent) -> List[AfterCommit]:
    order = await _find_order(conn, event)
    if not order:
        raise OrderNotFound(f"Order not found: {event.data.external_order_num if event.data else None}")

    data = event.data
    payment = await orders_service.record_payment(
        conn, order.id, data.id,
        amount=data.amount if data.amount is not None else order.total,
        currency=data.currency or order.currency,
        status=PaymentStatus.AUTHORIZED,
        method=data.payment_method_type or order.payment_method.value,
        metadata=_payment_metadata(event)
    )

    if payment and order.status == OrderStatus.PENDING:
        return [partial(notification_service.notify, order.id, NotificationKind.PAYMENT_INSTRUCTIONS)]
    return []


async def handle_payment_failed(conn, event: GatewayEvent) -> List[AfterCommit]:
    order = await _find_order(conn, event)
    if not order:
        logger.error(f"Order not found for failed payment: {event.data.external_order_num if event.data else None}")
        return []

    data = event.data
    await orders_service.record_payment(
        conn, order.id, data.id,
        amount=data.amount if data.amount is not None else order.total,
        currency=data.currency or order.currency,
        status=PaymentStatus.FAILED,
        method=data.payment_method_type or order.payment_method.value,
        failed_at=datetime.now(timezone.utc),
        metadata=_payment_metadata(event)
    )

    failed_count = await orders_service.count_failed_payments(conn, order.id)
    if failed_count < settings.payment_failure_threshold:
        logger.info(f"Payment failed for order {order.order_number} ({failed_count}/{settings.payment_failure_threshold})")
        return []

    result = await orders_service.transition(order.id, OrderStatus.CANCELLED, _evidence(event), conn)
    if result.applied:
        logger.info(f"Order {order.order_number} cancelled after {failed_count} failed payments")
        return [partial(notification_service.notify, order.id, NotificationKind.ORDER_CANCELLED)]
    return []


async def handle_payment_expired(conn, event: GatewayEvent) -> List[AfterCommit]:
    order = await _find_order(conn, event)
    if not order:
        logger.error(f"Order not found for expired payment: {event.data.external_order_num if event.data else None}")
        return []

    result = await orders_service.transition(order.id, OrderStatus.EXPIRED, _evidence(event), conn)
    if result.applied:
        return [partial(notification_service.notify, order.id, NotificationKind.ORDER_EXPIRED)]
    return []


async def handle_payment_refunded(conn, event: GatewayEvent) -> List[AfterCommit]:
    order = await _find_order(conn, event)
    if not order:
        logger.error(f"Order not found for refund: {event.data.external_order_num if event.data else None}")
        return []

    data = event.data
    if data.refunded_amount is None:
        # Cumulative amount unknown, keep the stored one
        logger.warning(f"Refund event {event.id} for order {order.order_number} has no refunded_amount, ignoring")
        return []

    refunded_amount = data.refunded_amount
    amount = data.amount if data.amount is not None else order.total

    payment = await orders_service.apply_refund(conn, order.id, data.id, refunded_amount)

    if refunded_amount >= amount:
        result = await orders_service.transition(order.id, OrderStatus.REFUNDED, _evidence(event), conn)
        if result.applied:
            return [partial(notification_service.notify, order.id, NotificationKind.REFUND_COMPLETED)]
        return []

    if payment is None:
        return []

    logger.info(f"Partial refund of {refunded_amount} on order {order.order_number}")
    return [
        partial(
            notification_service.notify, order.id, NotificationKind.PARTIAL_REFUND,
            {"refunded_amount": refunded_amount}
        )
    ]
