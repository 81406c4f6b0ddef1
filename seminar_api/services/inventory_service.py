import logging
from typing import List
from uuid import UUID
from seminar_api.models.inventory import Reservation
from seminar_api.models.order import TicketLine
from seminar_api.core.exceptions import ValidationError, NotFoundError, InsufficientStockError

logger = logging.getLogger(__name__)


async def reserve(conn, ticket_type_id: UUID, quantity: int) -> Reservation:
    """
    Decrement stock for a ticket type on the caller's transaction.

    The decrement is a single conditional update, so two concurrent
    reservations can never both succeed against the last seats.

    Raises:
        ValidationError: quantity is not positive
        NotFoundError: ticket type does not exist
        InsufficientStockError: fewer than `quantity` seats remain
    """
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", {"quantity": quantity})

    row = await conn.fetchrow("""
        UPDATE ticket_types
        SET stock = stock - $2, updated_at = NOW()
        WHERE id = $1 AND stock >= $2
        RETURNING id, stock
    """, ticket_type_id, quantity)

    if row:
        logger.debug(f"Reserved {quantity} of ticket type {ticket_type_id}, {row['stock']} left")
        return Reservation(ticket_type_id=row['id'], quantity=quantity, remaining=row['stock'])

    # No row updated: distinguish unknown ticket type from sold out
    existing = await conn.fetchrow(
        "SELECT id, name, stock FROM ticket_types WHERE id = $1",
        ticket_type_id
    )
    if not existing:
        raise NotFoundError("Ticket type not found", {"ticket_type_id": str(ticket_type_id)})

    raise InsufficientStockError(
        f"Not enough stock for {existing['name']}",
        {
            "ticket_type_id": str(ticket_type_id),
            "requested": quantity,
            "available": existing['stock']
        }
    )


async def release(conn, ticket_type_id: UUID, quantity: int) -> Reservation:
    """Return previously reserved seats to stock"""
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", {"quantity": quantity})

    row = await conn.fetchrow("""
        UPDATE ticket_types
        SET stock = stock + $2, updated_at = NOW()
        WHERE id = $1
        RETURNING id, stock
    """, ticket_type_id, quantity)

    if not row:
        raise NotFoundError("Ticket type not found", {"ticket_type_id": str(ticket_type_id)})

    logger.debug(f"Released {quantity} of ticket type {ticket_type_id}, {row['stock']} left")
    return Reservation(ticket_type_id=row['id'], quantity=quantity, remaining=row['stock'])


async def reserve_lines(conn, lines: List[TicketLine]) -> List[Reservation]:
    """
    Reserve every line or none.

    Must run inside the transaction that inserts the order; a failure on any
    line propagates and the rollback undoes the lines already reserved.
    """
    reservations = []
    # Stable lock order across concurrent checkouts
    for line in sorted(lines, key=lambda l: str(l.ticket_type_id)):
        reservations.append(await reserve(conn, line.ticket_type_id, line.quantity))
    return reservations


async def release_order(conn, order_id: UUID) -> List[Reservation]:
    """Release the stock held by every line item of an order"""
    items = await conn.fetch(
        "SELECT * FROM order_items WHERE order_id = $1 ORDER BY id",
        order_id
    )
    released = []
    for item in items:
        released.append(await release(conn, item['ticket_type_id'], item['quantity']))

    if released:
        logger.info(f"Released stock for order {order_id}: {sum(r.quantity for r in released)} seats")
    return released
