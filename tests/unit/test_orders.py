"""
Tests for the order aggregate store and its state machine.
"""
import re
import uuid
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from seminar_api.services import orders_service
from seminar_api.models.order import OrderStatus, TransitionEvidence
from seminar_api.models.payment import PaymentStatus
from seminar_api.core.exceptions import InvalidTransitionError, NotFoundError
from tests.utils.factories import SessionFactory, TicketTypeFactory, OrderFactory


def evidence(reason="test"):
    return TransitionEvidence(reason=reason, occurred_at=datetime.now(timezone.utc))


@pytest.fixture
def ticket_type(db):
    session = SessionFactory.insert(db)
    return TicketTypeFactory.insert(db, session["id"], stock=10)


@pytest.fixture
def pending_order(db, ticket_type):
    return OrderFactory.insert(db, ticket_type["session_id"], [(ticket_type, 2)])


class TestOrderNumber:

    def test_format(self):
        number = orders_service.generate_order_number(datetime(2025, 3, 9, tzinfo=timezone.utc))
        assert re.fullmatch(r"ORD250309[0-9A-Z]{6}", number)

    def test_numbers_differ(self):
        numbers = {orders_service.generate_order_number() for _ in range(50)}
        assert len(numbers) == 50


class TestTransition:
    """Tests for transition()"""

    @pytest.mark.asyncio
    async def test_pending_to_paid(self, db, pending_order, ticket_type):
        occurred = datetime(2025, 1, 2, 3, 4, tzinfo=timezone.utc)
        result = await orders_service.transition(
            pending_order["id"], OrderStatus.PAID,
            TransitionEvidence(reason="payment.captured", occurred_at=occurred)
        )

        assert result.applied is True
        assert result.order.status == OrderStatus.PAID
        assert db.order(pending_order["id"])["paid_at"] == occurred
        assert db.stock(ticket_type["id"]) == 8

    @pytest.mark.asyncio
    async def test_paid_twice_applies_once(self, db, pending_order):
        first = await orders_service.transition(pending_order["id"], OrderStatus.PAID, evidence())
        second = await orders_service.transition(pending_order["id"], OrderStatus.PAID, evidence())

        assert first.applied is True
        assert second.applied is False
        assert second.order.status == OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_cancel_releases_stock_once(self, db, pending_order, ticket_type):
        first = await orders_service.transition(pending_order["id"], OrderStatus.CANCELLED, evidence())
        second = await orders_service.transition(pending_order["id"], OrderStatus.CANCELLED, evidence())

        assert first.applied is True
        assert second.applied is False
        assert db.stock(ticket_type["id"]) == 10
        assert db.order(pending_order["id"])["cancelled_at"] is not None

    @pytest.mark.asyncio
    async def test_expired_order_cannot_be_paid(self, db, ticket_type):
        order = OrderFactory.insert(db, ticket_type["session_id"], [(ticket_type, 1)], status="EXPIRED")

        result = await orders_service.transition(order["id"], OrderStatus.PAID, evidence())

        assert result.applied is False
        assert db.order(order["id"])["status"] == "EXPIRED"

    @pytest.mark.asyncio
    async def test_refund_from_pending_is_invalid(self, db, pending_order):
        with pytest.raises(InvalidTransitionError):
            await orders_service.transition(pending_order["id"], OrderStatus.REFUNDED, evidence())

        assert db.order(pending_order["id"])["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_refund_releases_stock(self, db, ticket_type):
        order = OrderFactory.insert(db, ticket_type["session_id"], [(ticket_type, 3)], status="PAID")

        result = await orders_service.transition(order["id"], OrderStatus.REFUNDED, evidence())

        assert result.applied is True
        assert db.stock(ticket_type["id"]) == 10

    @pytest.mark.asyncio
    async def test_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            await orders_service.transition(uuid.uuid4(), OrderStatus.PAID, evidence())

    @pytest.mark.asyncio
    async def test_rollback_undoes_transition_and_release(self, db, pending_order, ticket_type):
        with pytest.raises(RuntimeError):
            async with db.connection_factory()() as conn:
                await orders_service.transition(pending_order["id"], OrderStatus.CANCELLED, evidence(), conn)
                raise RuntimeError("abort")

        assert db.order(pending_order["id"])["status"] == "PENDING"
        assert db.stock(ticket_type["id"]) == 8


class TestPayments:
    """Tests for payment bookkeeping"""

    @pytest.mark.asyncio
    async def test_captured_payment_recorded_once(self, db, pending_order):
        async with db.connection_factory()() as conn:
            first = await orders_service.record_payment(
                conn, pending_order["id"], "pay_1", Decimal("10000"), "JPY", PaymentStatus.CAPTURED
            )
            second = await orders_service.record_payment(
                conn, pending_order["id"], "pay_1", Decimal("10000"), "JPY", PaymentStatus.CAPTURED
            )

        assert first is not None
        assert second is None
        assert len(db.payments_for(pending_order["id"], "CAPTURED")) == 1

    @pytest.mark.asyncio
    async def test_failed_payments_are_counted(self, db, pending_order):
        async with db.connection_factory()() as conn:
            for _ in range(2):
                await orders_service.record_payment(
                    conn, pending_order["id"], "pay_f", Decimal("10000"), "JPY", PaymentStatus.FAILED
                )
            count = await orders_service.count_failed_payments(conn, pending_order["id"])

        assert count == 2

    @pytest.mark.asyncio
    async def test_partial_then_full_refund(self, db, pending_order):
        async with db.connection_factory()() as conn:
            await orders_service.record_payment(
                conn, pending_order["id"], "pay_r", Decimal("10000"), "JPY", PaymentStatus.CAPTURED
            )
            partial = await orders_service.apply_refund(conn, pending_order["id"], "pay_r", Decimal("4000"))
            full = await orders_service.apply_refund(conn, pending_order["id"], "pay_r", Decimal("10000"))

        assert partial.status == PaymentStatus.CAPTURED
        assert partial.refunded_amount == Decimal("4000")
        assert full.status == PaymentStatus.REFUNDED

    @pytest.mark.asyncio
    async def test_refund_without_capture(self, db, pending_order):
        async with db.connection_factory()() as conn:
            payment = await orders_service.apply_refund(conn, pending_order["id"], "pay_x", Decimal("1"))

        assert payment is None


class TestOrderDetail:

    @pytest.mark.asyncio
    async def test_detail_includes_children(self, db, pending_order):
        detail = await orders_service.get_order_detail(pending_order["id"])

        assert detail.order_number == pending_order["order_number"]
        assert len(detail.items) == 1
        assert len(detail.participants) == 2
        assert detail.payments == []

    @pytest.mark.asyncio
    async def test_detail_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            await orders_service.get_order_detail(uuid.uuid4())
