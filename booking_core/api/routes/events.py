from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from booking_core.api.dependencies import (
    Pagination,
    current_host_id,
    get_booking_service,
    get_db,
)
from booking_core.api.routes.presenters import (
    booking_page_response,
    booking_response,
    event_response,
)
from booking_core.api.schemas.schemas import (
    BookingEnvelope,
    BookingPageResponse,
    CancelBookingRequest,
    CancelEventRequest,
    CancelEventResponse,
    ErrorResponse,
    EventCreate,
    EventResponse,
)
from booking_core.application.booking_service import BookingService
from booking_core.application.event_service import EventService
from booking_core.domain.state_machine import CancelledBy

router = APIRouter(
    tags=["events"],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


@router.post("/events", response_model=EventResponse)
def create_event(
    request: EventCreate,
    host_id: str = Depends(current_host_id),
    db: Session = Depends(get_db),
):
    event, ticket_types = EventService(db).create_event(
        host_id=host_id,
        title=request.title,
        venue=request.venue,
        starts_at=request.starts_at,
        ticket_types=[
            (ticket.ticket_type, ticket.unit_price, ticket.capacity)
            for ticket in request.ticket_types
        ],
    )
    return event_response(event, ticket_types)


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    event, ticket_types = EventService(db).get_event(event_id)
    return event_response(event, ticket_types)


@router.get("/events/{event_id}/bookings", response_model=BookingPageResponse)
def list_event_bookings(
    event_id: str,
    pagination: Pagination = Depends(),
    host_id: str = Depends(current_host_id),
    service: BookingService = Depends(get_booking_service),
):
    page = service.list_event_bookings(
        host_id=host_id,
        event_id=event_id,
        page=pagination.page,
        limit=pagination.limit,
    )
    return booking_page_response(page)


@router.put("/events/{event_id}/cancel", response_model=CancelEventResponse)
def cancel_event(
    event_id: str,
    request: CancelEventRequest,
    host_id: str = Depends(current_host_id),
    service: BookingService = Depends(get_booking_service),
):
    result = service.cancel_event(host_id=host_id, event_id=event_id, reason=request.reason)
    return CancelEventResponse(
        event_id=result.event_id,
        cancelled_count=len(result.cancelled_booking_ids),
        cancelled_booking_ids=result.cancelled_booking_ids,
        notified_users=result.notified_user_ids,
    )


@router.put("/host/bookings/{booking_id}/cancel", response_model=BookingEnvelope)
def host_cancel_booking(
    booking_id: str,
    request: CancelBookingRequest | None = None,
    host_id: str = Depends(current_host_id),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.cancel_booking(
        booking_id=booking_id,
        actor_id=host_id,
        cancelled_by=CancelledBy.HOST,
        reason=request.reason if request else None,
    )
    return BookingEnvelope(booking=booking_response(booking))
