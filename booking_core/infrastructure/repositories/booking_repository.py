# booking_core/infrastructure/repositories/booking_repository.py

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from booking_core.domain.state_machine import (
    BookingStatus,
    CancelledBy,
    PaymentMethod,
    PaymentStatus,
)
from booking_core.domain.value_objects import Page, TicketLine
from booking_core.infrastructure.db.models import Booking, BookingTicket


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .options(selectinload(Booking.tickets))
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_payment_id(
        self,
        payment_id: str,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.payment_id == payment_id)
            .options(selectinload(Booking.tickets))
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def create_booking(
        self,
        user_id: str,
        event_id: str,
        tickets: tuple[TicketLine, ...],
        total_amount: int,
        discounted_amount: int,
        coupon_id: str | None,
        payment_method: PaymentMethod,
        payment_id: str,
        ticket_number: str,
        order_id: str | None = None,
    ) -> Booking:

        booking = Booking(
            user_id=user_id,
            event_id=event_id,
            coupon_id=coupon_id,
            total_amount=total_amount,
            discounted_amount=discounted_amount,
            status=BookingStatus.CONFIRMED,
            payment_method=payment_method,
            payment_status=PaymentStatus.PAID,
            payment_id=payment_id,
            order_id=order_id,
            ticket_number=ticket_number,
            tickets=[
                BookingTicket(
                    position=position,
                    ticket_type=line.ticket_type,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for position, line in enumerate(tickets)
            ],
        )

        self.db.add(booking)
        self.db.flush()
        return booking

    def mark_cancelled(
        self,
        booking_id: str,
        cancelled_by: CancelledBy,
        cancelled_at: datetime,
        reason: str | None,
    ) -> bool:
        """
        Compare-and-swap confirmed -> cancelled.
        Returns False when the booking was not confirmed at the time of the update.
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.status == BookingStatus.CONFIRMED)
            .values(
                status=BookingStatus.CANCELLED,
                payment_status=PaymentStatus.REFUNDED,
                cancelled_by=cancelled_by,
                cancelled_at=cancelled_at,
                cancellation_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def list_by_user(self, user_id: str, page: int, limit: int) -> Page[Booking]:
        return self._paginate(Booking.user_id == user_id, page, limit)

    def list_by_event(self, event_id: str, page: int, limit: int) -> Page[Booking]:
        return self._paginate(Booking.event_id == event_id, page, limit)

    def list_confirmed_for_event(self, event_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.event_id == event_id)
            .where(Booking.status == BookingStatus.CONFIRMED)
            .options(selectinload(Booking.tickets))
            .order_by(Booking.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_user_ids_by_event(self, event_id: str) -> set[str]:
        stmt = (
            select(Booking.user_id)
            .where(Booking.event_id == event_id)
            .where(Booking.status == BookingStatus.CONFIRMED)
            .distinct()
        )
        return set(self.db.execute(stmt).scalars().all())

    def user_holds_coupon(self, user_id: str, coupon_id: str) -> bool:
        stmt = (
            select(Booking.id)
            .where(Booking.user_id == user_id)
            .where(Booking.coupon_id == coupon_id)
            .where(Booking.status.in_([BookingStatus.PENDING, BookingStatus.CONFIRMED]))
            .limit(1)
        )
        return self.db.execute(stmt).first() is not None

    def _paginate(self, criterion, page: int, limit: int) -> Page[Booking]:
        total = self.db.execute(
            select(func.count()).select_from(Booking).where(criterion)
        ).scalar_one()
        stmt = (
            select(Booking)
            .where(criterion)
            .options(selectinload(Booking.tickets))
            .order_by(Booking.created_at.desc(), Booking.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list(self.db.execute(stmt).scalars().all())
        return Page(items=items, total=total, page=page, limit=limit)
