from datetime import datetime, timedelta, timezone

import pytest

from booking_core.application.coupon_validator import CouponValidator
from booking_core.domain.state_machine import BookingStatus, PaymentMethod
from booking_core.domain.value_objects import TicketLine
from booking_core.infrastructure.repositories.booking_repository import BookingRepository
from booking_core.infrastructure.repositories.coupon_repository import CouponRepository


def test_valid_coupon_gives_fixed_discount(db, make_coupon):
    coupon_id = make_coupon(fixed_amount=150)

    result = CouponValidator(db).validate(coupon_id, order_subtotal=1000, user_id="user_1")

    assert result.valid
    assert result.discount_amount == 150
    assert result.coupon_id == coupon_id


def test_coupon_can_be_referenced_by_code(db, make_coupon):
    coupon_id = make_coupon(code="FEST50", fixed_amount=50)

    result = CouponValidator(db).validate("FEST50", order_subtotal=500, user_id="user_1")

    assert result.valid
    assert result.coupon_id == coupon_id


def test_discount_never_exceeds_subtotal(db, make_coupon):
    coupon_id = make_coupon(fixed_amount=800)

    result = CouponValidator(db).validate(coupon_id, order_subtotal=500, user_id="user_1")

    assert result.discount_amount == 500


@pytest.mark.parametrize(
    ("coupon_kwargs", "subtotal", "reason"),
    [
        ({"is_blocked": True}, 1000, "blocked"),
        ({"starts_at": datetime.now(timezone.utc) + timedelta(days=1)}, 1000, "not_started"),
        ({"ends_at": datetime.now(timezone.utc) - timedelta(minutes=1)}, 1000, "expired"),
        ({"usage_cap": 3, "used_count": 3}, 1000, "usage_cap_reached"),
        ({"minimum_order_amount": 2000}, 1999, "below_minimum_order"),
    ],
)
def test_ineligible_coupons_are_rejected(db, make_coupon, coupon_kwargs, subtotal, reason):
    coupon_id = make_coupon(**coupon_kwargs)

    result = CouponValidator(db).validate(coupon_id, order_subtotal=subtotal, user_id="user_1")

    assert not result.valid
    assert result.reason == reason
    assert result.discount_amount == 0


def test_unknown_coupon_is_not_found(db):
    result = CouponValidator(db).validate("NOPE", order_subtotal=1000, user_id="user_1")

    assert not result.valid
    assert result.reason == "not_found"


def test_coupon_held_by_active_booking_is_already_used(db, make_event, make_coupon):
    event_id = make_event()
    coupon_id = make_coupon()
    BookingRepository(db).create_booking(
        user_id="user_1",
        event_id=event_id,
        tickets=(TicketLine("Regular", 1, 500),),
        total_amount=500,
        discounted_amount=400,
        coupon_id=coupon_id,
        payment_method=PaymentMethod.WALLET,
        payment_id="wallet_prior",
        ticket_number="ABC123",
    )
    db.flush()

    validator = CouponValidator(db)
    assert validator.validate(coupon_id, 1000, "user_1").reason == "already_used"
    assert validator.validate(coupon_id, 1000, "user_2").valid


def test_cancelled_booking_frees_coupon_for_user(db, make_event, make_coupon):
    event_id = make_event()
    coupon_id = make_coupon()
    repository = BookingRepository(db)
    booking = repository.create_booking(
        user_id="user_1",
        event_id=event_id,
        tickets=(TicketLine("Regular", 1, 500),),
        total_amount=500,
        discounted_amount=400,
        coupon_id=coupon_id,
        payment_method=PaymentMethod.WALLET,
        payment_id="wallet_prior",
        ticket_number="ABC124",
    )
    booking.status = BookingStatus.CANCELLED
    db.flush()

    assert CouponValidator(db).validate(coupon_id, 1000, "user_1").valid


def test_redeem_stops_at_usage_cap(db, make_coupon):
    coupon_id = make_coupon(usage_cap=2)
    validator = CouponValidator(db)

    assert validator.redeem(coupon_id)
    assert validator.redeem(coupon_id)
    assert not validator.redeem(coupon_id)

    assert validator.release(coupon_id)
    coupon = CouponRepository(db).get_by_reference(coupon_id)
    db.refresh(coupon)
    assert coupon.used_count == 1
