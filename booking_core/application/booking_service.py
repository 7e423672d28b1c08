import hashlib
import logging
import secrets
from datetime import timedelta
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_core.application.coupon_validator import CouponValidator
from booking_core.config import Settings, get_settings
from booking_core.domain.clock import as_utc, utc_now
from booking_core.domain.exceptions import (
    BookingCoreError,
    CouponRejectedError,
    ForbiddenError,
    GatewayUnavailableError,
    InvalidStateError,
    NotFoundError,
    PaymentVerificationFailed,
    ValidationError,
)
from booking_core.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    CancelledBy,
    PaymentMethod,
)
from booking_core.domain.value_objects import (
    BookingIntent,
    EventCancellationResult,
    GatewayOrder,
    Page,
    PaymentConfirmation,
    TicketLine,
)
from booking_core.infrastructure.db.models import Booking
from booking_core.infrastructure.gateways.razorpay_gateway import PaymentGateway
from booking_core.infrastructure.notifications.outbox_dispatcher import (
    NotificationDispatcher,
    OutboxNotificationDispatcher,
)
from booking_core.infrastructure.repositories.booking_repository import BookingRepository
from booking_core.infrastructure.repositories.inventory_repository import InventoryRepository
from booking_core.infrastructure.repositories.outbox_repository import OutboxRepository
from booking_core.infrastructure.repositories.payment_order_repository import (
    PURPOSE_BOOKING,
    STATUS_CREATED,
    PaymentOrderRepository,
)
from booking_core.infrastructure.repositories.wallet_repository import WalletRepository

logger = logging.getLogger(__name__)

BOOKING_PAYMENT_DESCRIPTION = "Booking payment for event"
REFUND_DESCRIPTION = "Refund for booking cancellation"


class BookingService:
    """
    Application service coordinating the booking workflow.

    Every operation that touches more than one store (inventory, wallet,
    coupon usage, booking) runs inside a single savepoint, so a failure in a
    later step leaves no partial effect from an earlier one.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        notifier: NotificationDispatcher | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.booking_repository = BookingRepository(db)
        self.inventory_repository = InventoryRepository(db)
        self.wallet_repository = WalletRepository(db)
        self.payment_order_repository = PaymentOrderRepository(db)
        self.coupon_validator = CouponValidator(db)
        self.notifier = notifier or OutboxNotificationDispatcher(OutboxRepository(db))

    # -----------------------------
    # Protocol A: gateway payment
    # -----------------------------
    def create_order(self, user_id: str, total_amount: int) -> GatewayOrder:
        if total_amount <= 0:
            raise ValidationError("Order amount must be greater than zero")

        gateway = self._require_gateway()
        receipt = f"rcpt_{user_id[:6]}_{uuid4().hex[:8]}"
        order = gateway.create_order(
            amount_minor_units=total_amount * 100,
            currency=self.settings.payment_currency,
            receipt_id=receipt,
        )
        self.payment_order_repository.record(
            user_id=user_id,
            purpose=PURPOSE_BOOKING,
            amount=total_amount,
            order=order,
        )
        return order

    def verify_payment(
        self,
        user_id: str,
        confirmation: PaymentConfirmation,
        intent: BookingIntent,
    ) -> Booking:
        gateway = self._require_gateway()
        if not gateway.verify_signature(
            confirmation.order_id,
            confirmation.payment_id,
            confirmation.signature,
        ):
            logger.warning(
                "Payment signature mismatch. user_id=%s order_id=%s payment_id=%s",
                user_id,
                confirmation.order_id,
                confirmation.payment_id,
            )
            raise PaymentVerificationFailed("Payment signature verification failed")

        existing = self._existing_booking(user_id, confirmation.payment_id)
        if existing:
            return existing

        # The payment is captured from here on: any rejection needs a manual refund.
        try:
            booking = self._confirm_gateway_payment(user_id, confirmation, intent)
        except IntegrityError:
            # A concurrent confirmation for the same payment committed first.
            existing = self._existing_booking(user_id, confirmation.payment_id)
            if existing:
                return existing
            raise
        except BookingCoreError as exc:
            logger.error(
                "Reconciliation required: payment captured but no booking created. "
                "user_id=%s event_id=%s order_id=%s payment_id=%s amount=%s code=%s error=%s",
                user_id,
                intent.event_id,
                confirmation.order_id,
                confirmation.payment_id,
                intent.discounted_amount,
                exc.code.value,
                exc.message,
            )
            raise

        self.notifier.booking_confirmed(booking)
        logger.info(
            "Booking confirmed via gateway. booking_id=%s user_id=%s event_id=%s payment_id=%s",
            booking.id,
            user_id,
            booking.event_id,
            booking.payment_id,
        )
        return booking

    # -----------------------------
    # Protocol B: wallet payment
    # -----------------------------
    def create_wallet_booking(
        self,
        user_id: str,
        intent: BookingIntent,
        idempotency_key: str | None = None,
    ) -> Booking:
        payment_id = self._wallet_payment_id(user_id, idempotency_key)
        if idempotency_key:
            existing = self._existing_booking(user_id, payment_id)
            if existing:
                return existing

        lines, coupon_id = self._validate_intent(user_id, intent)
        self.inventory_repository.check_availability(intent.event_id, lines)

        try:
            # Reserve first: it is the cheap, reversible step. The debit can
            # then fail without leaving funds held for a booking that never exists.
            with self.db.begin_nested():
                self.inventory_repository.lock_for_booking(intent.event_id)
                self.inventory_repository.reserve(intent.event_id, lines)
                if intent.discounted_amount > 0:
                    self.wallet_repository.debit(
                        user_id=user_id,
                        amount=intent.discounted_amount,
                        payment_id=payment_id,
                        description=BOOKING_PAYMENT_DESCRIPTION,
                    )
                self._redeem_coupon(coupon_id)
                booking = self.booking_repository.create_booking(
                    user_id=user_id,
                    event_id=intent.event_id,
                    tickets=lines,
                    total_amount=intent.total_amount,
                    discounted_amount=intent.discounted_amount,
                    coupon_id=coupon_id,
                    payment_method=PaymentMethod.WALLET,
                    payment_id=payment_id,
                    ticket_number=self._new_ticket_number(),
                )
        except IntegrityError:
            existing = self._existing_booking(user_id, payment_id) if idempotency_key else None
            if existing:
                return existing
            raise

        self.notifier.booking_confirmed(booking)
        logger.info(
            "Booking confirmed via wallet. booking_id=%s user_id=%s event_id=%s amount=%s",
            booking.id,
            user_id,
            booking.event_id,
            booking.discounted_amount,
        )
        return booking

    # -----------------------------
    # Cancellation
    # -----------------------------
    def cancel_booking(
        self,
        booking_id: str,
        actor_id: str,
        cancelled_by: CancelledBy,
        reason: str | None = None,
    ) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")

        event = self.inventory_repository.require_event(booking.event_id)
        if cancelled_by == CancelledBy.USER and booking.user_id != actor_id:
            raise ForbiddenError("Booking belongs to another user")
        if cancelled_by == CancelledBy.HOST and event.host_id != actor_id:
            raise ForbiddenError("Booking belongs to another host's event")

        if BookingStateMachine.is_terminal(booking.status):
            raise InvalidStateError(f"Booking is already {booking.status.value}")
        BookingStateMachine.validate_transition(booking.status, BookingStatus.CANCELLED)

        if cancelled_by == CancelledBy.USER:
            cutoff = as_utc(event.starts_at) - timedelta(
                hours=self.settings.cancellation_cutoff_hours
            )
            if utc_now() > cutoff:
                raise InvalidStateError(
                    "Bookings can no longer be cancelled this close to the event"
                )

        return self._cancel(booking, cancelled_by, reason)

    def cancel_event(
        self,
        host_id: str,
        event_id: str,
        reason: str,
    ) -> EventCancellationResult:
        event = self.inventory_repository.require_event(event_id, lock=True)
        if event.host_id != host_id:
            raise ForbiddenError("Event belongs to another host")
        if event.is_cancelled:
            raise InvalidStateError("Event is already cancelled")

        user_ids = self.booking_repository.find_user_ids_by_event(event_id)
        self.inventory_repository.mark_cancelled(event, reason)

        cancelled_ids = []
        for booking in self.booking_repository.list_confirmed_for_event(event_id):
            try:
                self._cancel(booking, CancelledBy.HOST, f"Event cancelled: {reason}")
            except InvalidStateError as exc:
                logger.warning(
                    "Skipped booking during event cancellation. booking_id=%s error=%s",
                    booking.id,
                    exc,
                )
                continue
            cancelled_ids.append(booking.id)

        self.notifier.event_cancelled(event, user_ids, reason)
        logger.info(
            "Event cancelled by host. event_id=%s host_id=%s bookings_cancelled=%s",
            event_id,
            host_id,
            len(cancelled_ids),
        )
        return EventCancellationResult(
            event_id=event_id,
            cancelled_booking_ids=cancelled_ids,
            notified_user_ids=sorted(user_ids),
        )

    # -----------------------------
    # Queries
    # -----------------------------
    def get_booking(self, user_id: str, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.user_id != user_id:
            raise ForbiddenError("Booking belongs to another user")
        return booking

    def list_user_bookings(self, user_id: str, page: int, limit: int) -> Page[Booking]:
        return self.booking_repository.list_by_user(user_id, page, limit)

    def list_event_bookings(
        self,
        host_id: str,
        event_id: str,
        page: int,
        limit: int,
    ) -> Page[Booking]:
        event = self.inventory_repository.require_event(event_id)
        if event.host_id != host_id:
            raise ForbiddenError("Event belongs to another host")
        return self.booking_repository.list_by_event(event_id, page, limit)

    def find_user_ids_by_event(self, event_id: str) -> set[str]:
        return self.booking_repository.find_user_ids_by_event(event_id)

    # -----------------------------
    # Internals
    # -----------------------------
    def _cancel(
        self,
        booking: Booking,
        cancelled_by: CancelledBy,
        reason: str | None,
    ) -> Booking:
        lines = [
            TicketLine(ticket.ticket_type, ticket.quantity, ticket.unit_price)
            for ticket in booking.tickets
        ]
        with self.db.begin_nested():
            if not self.booking_repository.mark_cancelled(
                booking.id,
                cancelled_by=cancelled_by,
                cancelled_at=utc_now(),
                reason=reason,
            ):
                raise InvalidStateError("Booking is no longer confirmed")
            self.inventory_repository.release(booking.event_id, lines)
            if booking.total_amount > 0:
                self.wallet_repository.credit(
                    user_id=booking.user_id,
                    amount=booking.total_amount,
                    payment_id=booking.payment_id,
                    description=REFUND_DESCRIPTION,
                )
            if booking.coupon_id:
                self.coupon_validator.release(booking.coupon_id)

        cancelled = self.booking_repository.get_by_id(booking.id)
        self.notifier.booking_cancelled(cancelled)
        logger.info(
            "Booking cancelled. booking_id=%s cancelled_by=%s refund=%s",
            cancelled.id,
            cancelled_by.value,
            cancelled.total_amount,
        )
        return cancelled

    def _confirm_gateway_payment(
        self,
        user_id: str,
        confirmation: PaymentConfirmation,
        intent: BookingIntent,
    ) -> Booking:
        order = self.payment_order_repository.get_by_order_id(confirmation.order_id)
        if not order or order.user_id != user_id or order.purpose != PURPOSE_BOOKING:
            raise PaymentVerificationFailed("Payment order was not issued for this booking")
        if order.status != STATUS_CREATED:
            raise PaymentVerificationFailed("Payment order has already been used")
        if order.amount != intent.discounted_amount:
            raise PaymentVerificationFailed("Paid amount does not match the booking amount")

        lines, coupon_id = self._validate_intent(user_id, intent)
        # Availability may have changed since the order was created.
        self.inventory_repository.check_availability(intent.event_id, lines)

        with self.db.begin_nested():
            self.inventory_repository.lock_for_booking(intent.event_id)
            self.inventory_repository.reserve(intent.event_id, lines)
            self._redeem_coupon(coupon_id)
            booking = self.booking_repository.create_booking(
                user_id=user_id,
                event_id=intent.event_id,
                tickets=lines,
                total_amount=intent.total_amount,
                discounted_amount=intent.discounted_amount,
                coupon_id=coupon_id,
                payment_method=PaymentMethod.GATEWAY,
                payment_id=confirmation.payment_id,
                order_id=confirmation.order_id,
                ticket_number=self._new_ticket_number(),
            )
            if not self.payment_order_repository.mark_paid(
                confirmation.order_id,
                confirmation.payment_id,
            ):
                raise PaymentVerificationFailed("Payment order has already been used")
        return booking

    def _validate_intent(
        self,
        user_id: str,
        intent: BookingIntent,
    ) -> tuple[tuple[TicketLine, ...], str | None]:
        if not intent.tickets:
            raise ValidationError("At least one ticket line is required")

        seen = set()
        for line in intent.tickets:
            if line.quantity <= 0:
                raise ValidationError(f"Quantity for {line.ticket_type} must be positive")
            if line.unit_price < 0:
                raise ValidationError(f"Price for {line.ticket_type} cannot be negative")
            if line.ticket_type in seen:
                raise ValidationError(f"Ticket type {line.ticket_type} appears more than once")
            seen.add(line.ticket_type)

        event = self.inventory_repository.require_event(intent.event_id)
        if event.is_cancelled:
            raise InvalidStateError("Event has been cancelled")

        prices = {
            ticket.ticket_type: ticket.unit_price
            for ticket in self.inventory_repository.get_ticket_types(intent.event_id)
        }
        for line in intent.tickets:
            # Unknown ticket types surface as InsufficientStock from the availability check.
            if line.ticket_type in prices and prices[line.ticket_type] != line.unit_price:
                raise ValidationError(f"Price for {line.ticket_type} does not match the event")

        subtotal = sum(line.line_total for line in intent.tickets)
        if intent.total_amount != subtotal:
            raise ValidationError("Total amount does not match the ticket prices")
        if not 0 <= intent.discounted_amount <= intent.total_amount:
            raise ValidationError("Discounted amount must be between zero and the total amount")

        discount = 0
        coupon_id = None
        if intent.coupon_ref:
            result = self.coupon_validator.validate(intent.coupon_ref, subtotal, user_id)
            if not result.valid:
                logger.warning(
                    "Coupon rejected. user_id=%s coupon=%s reason=%s",
                    user_id,
                    intent.coupon_ref,
                    result.reason,
                )
                if result.reason == "already_used":
                    raise InvalidStateError("Coupon is already applied to one of your bookings")
                raise CouponRejectedError(result.reason or "invalid")
            discount = result.discount_amount
            coupon_id = result.coupon_id

        if intent.discounted_amount != subtotal - discount:
            raise ValidationError("Discounted amount does not match the applied discount")

        return intent.tickets, coupon_id

    def _redeem_coupon(self, coupon_id: str | None) -> None:
        if coupon_id and not self.coupon_validator.redeem(coupon_id):
            raise CouponRejectedError("usage_cap_reached")

    def _existing_booking(self, user_id: str, payment_id: str) -> Booking | None:
        existing = self.booking_repository.get_by_payment_id(payment_id)
        if not existing:
            return None
        if existing.user_id != user_id:
            raise InvalidStateError("Payment is already linked to another booking")
        logger.warning(
            "Duplicate booking confirmation ignored. booking_id=%s payment_id=%s",
            existing.id,
            payment_id,
        )
        return existing

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise GatewayUnavailableError("Payment gateway is not configured")
        return self.gateway

    @staticmethod
    def _wallet_payment_id(user_id: str, idempotency_key: str | None) -> str:
        if not idempotency_key:
            return f"wallet_{uuid4().hex}"
        digest = hashlib.sha256(f"{user_id}:{idempotency_key}".encode("utf-8")).hexdigest()
        return f"wallet_{digest[:32]}"

    @staticmethod
    def _new_ticket_number() -> str:
        return secrets.token_hex(6).upper()
