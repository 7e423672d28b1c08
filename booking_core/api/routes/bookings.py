from fastapi import APIRouter, Depends

from booking_core.api.dependencies import (
    Pagination,
    current_user_id,
    get_booking_service,
)
from booking_core.api.routes.presenters import (
    booking_intent,
    booking_page_response,
    booking_response,
)
from booking_core.api.schemas.schemas import (
    BookingEnvelope,
    BookingPageResponse,
    CancelBookingRequest,
    CreateOrderRequest,
    CreateOrderResponse,
    ErrorResponse,
    VerifyPaymentRequest,
    WalletBookingRequest,
)
from booking_core.application.booking_service import BookingService
from booking_core.domain.state_machine import CancelledBy
from booking_core.domain.value_objects import PaymentConfirmation

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


@router.post("/order", response_model=CreateOrderResponse)
def create_order(
    request: CreateOrderRequest,
    user_id: str = Depends(current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    order = service.create_order(user_id=user_id, total_amount=request.total_amount)
    return CreateOrderResponse(
        order_id=order.order_id,
        amount=order.amount_minor_units,
        currency=order.currency,
    )


@router.post("/verify-payment", response_model=BookingEnvelope)
def verify_payment(
    request: VerifyPaymentRequest,
    user_id: str = Depends(current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.verify_payment(
        user_id=user_id,
        confirmation=PaymentConfirmation(
            order_id=request.order_id,
            payment_id=request.payment_id,
            signature=request.signature,
        ),
        intent=booking_intent(request),
    )
    return BookingEnvelope(booking=booking_response(booking))


@router.post("", response_model=BookingEnvelope)
def create_wallet_booking(
    request: WalletBookingRequest,
    user_id: str = Depends(current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.create_wallet_booking(
        user_id=user_id,
        intent=booking_intent(request),
        idempotency_key=request.idempotency_key,
    )
    return BookingEnvelope(booking=booking_response(booking))


@router.get("/mine", response_model=BookingPageResponse)
def list_my_bookings(
    pagination: Pagination = Depends(),
    user_id: str = Depends(current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    page = service.list_user_bookings(user_id, pagination.page, pagination.limit)
    return booking_page_response(page)


@router.get("/{booking_id}", response_model=BookingEnvelope)
def get_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.get_booking(user_id=user_id, booking_id=booking_id)
    return BookingEnvelope(booking=booking_response(booking))


@router.put("/{booking_id}/cancel", response_model=BookingEnvelope)
def cancel_booking(
    booking_id: str,
    request: CancelBookingRequest | None = None,
    user_id: str = Depends(current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.cancel_booking(
        booking_id=booking_id,
        actor_id=user_id,
        cancelled_by=CancelledBy.USER,
        reason=request.reason if request else None,
    )
    return BookingEnvelope(booking=booking_response(booking))
