from booking_core.api.schemas.schemas import (
    BookingPageResponse,
    BookingResponse,
    CancellationResponse,
    EventResponse,
    TicketLineResponse,
    TicketTypeResponse,
)
from booking_core.domain.value_objects import BookingIntent, Page, TicketLine
from booking_core.infrastructure.db.models import Booking, Event, EventTicketType


def booking_response(booking: Booking) -> BookingResponse:
    cancellation = None
    if booking.cancelled_by is not None and booking.cancelled_at is not None:
        cancellation = CancellationResponse(
            cancelled_by=booking.cancelled_by.value,
            cancelled_at=booking.cancelled_at,
            reason=booking.cancellation_reason,
        )
    return BookingResponse(
        id=booking.id,
        user_id=booking.user_id,
        event_id=booking.event_id,
        tickets=[
            TicketLineResponse(
                ticket_type=ticket.ticket_type,
                quantity=ticket.quantity,
                unit_price=ticket.unit_price,
            )
            for ticket in booking.tickets
        ],
        coupon_id=booking.coupon_id,
        total_amount=booking.total_amount,
        discounted_amount=booking.discounted_amount,
        status=booking.status.value,
        payment_method=booking.payment_method.value,
        payment_status=booking.payment_status.value,
        payment_id=booking.payment_id,
        ticket_number=booking.ticket_number,
        cancellation=cancellation,
        created_at=booking.created_at,
    )


def booking_page_response(page: Page[Booking]) -> BookingPageResponse:
    return BookingPageResponse(
        items=[booking_response(booking) for booking in page.items],
        total=page.total,
        page=page.page,
        pages=page.pages,
    )


def event_response(event: Event, ticket_types: list[EventTicketType]) -> EventResponse:
    return EventResponse(
        id=event.id,
        host_id=event.host_id,
        title=event.title,
        venue=event.venue,
        starts_at=event.starts_at,
        is_cancelled=event.is_cancelled,
        cancellation_reason=event.cancellation_reason,
        ticket_types=[
            TicketTypeResponse(
                ticket_type=ticket.ticket_type,
                unit_price=ticket.unit_price,
                capacity=ticket.capacity,
                remaining_count=ticket.remaining_count,
            )
            for ticket in ticket_types
        ],
    )


def booking_intent(request) -> BookingIntent:
    return BookingIntent(
        event_id=request.event_id,
        tickets=tuple(
            TicketLine(
                ticket_type=line.ticket_type,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in request.tickets
        ),
        total_amount=request.total_amount,
        discounted_amount=request.discounted_amount,
        coupon_ref=request.coupon_id,
    )
