"""
Orders Router

Public checkout submission and order lookup.
"""
from uuid import UUID
from fastapi import APIRouter, Depends
from seminar_api.core.dependencies import get_request_ip
from seminar_api.models.order import OrderDraft, OrderDetail, CheckoutResponse
from seminar_api.services import checkout_service, orders_service

router = APIRouter()


@router.post("", response_model=CheckoutResponse, status_code=201)
async def create_order(data: OrderDraft, ip_address: str = Depends(get_request_ip)):
    """
    Submit a checkout (PUBLIC).

    Reserves the requested seats, creates a PENDING order and opens a
    hosted payment session.

    **Request Body:**
    - `session_id`: Seminar session to register for
    - `tickets`: Ticket type ids and quantities (1-5 lines)
    - `buyer`: Buyer contact details
    - `participants`: One attendee per ticket
    - `payment_method`: CREDIT_CARD, KONBINI, PAYPAY or BANK_TRANSFER

    **Returns:**
    - `order_id`, `order_number`
    - `payment_url`: Redirect URL for the hosted checkout
    """
    return await checkout_service.submit(data, ip_address)


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order(order_id: UUID):
    """Get an order with its line items, participants and payments"""
    return await orders_service.get_order_detail(order_id)
