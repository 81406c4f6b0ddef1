# Models module for the seminar registration API
from seminar_api.models.order import (
    Order, OrderDetail, OrderDraft, OrderLineItem, Participant,
    Buyer, ParticipantIn, TicketLine, CheckoutResponse,
    TransitionEvidence, TransitionResult, OrderStatus, PaymentMethod
)
from seminar_api.models.payment import (
    Payment, PaymentStatus, GatewayEvent, GatewayEventType,
    GatewayPaymentData, WebhookEvent
)
from seminar_api.models.inventory import TicketType, Reservation, SessionStatus
from seminar_api.models.job import ReconciliationResult, SweepResult
