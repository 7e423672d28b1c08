from datetime import datetime

from sqlalchemy.orm import Session

from booking_core.domain.clock import as_utc, utc_now
from booking_core.domain.value_objects import CouponValidation
from booking_core.infrastructure.repositories.booking_repository import BookingRepository
from booking_core.infrastructure.repositories.coupon_repository import CouponRepository


class CouponValidator:
    """Eligibility check and usage accounting for discount coupons."""

    def __init__(self, db: Session):
        self.coupon_repository = CouponRepository(db)
        self.booking_repository = BookingRepository(db)

    def validate(
        self,
        coupon_ref: str,
        order_subtotal: int,
        user_id: str,
        now: datetime | None = None,
    ) -> CouponValidation:
        now = now or utc_now()
        coupon = self.coupon_repository.get_by_reference(coupon_ref)

        if not coupon:
            return CouponValidation(valid=False, reason="not_found")
        if coupon.is_blocked:
            return CouponValidation(valid=False, coupon_id=coupon.id, reason="blocked")
        if now < as_utc(coupon.starts_at):
            return CouponValidation(valid=False, coupon_id=coupon.id, reason="not_started")
        if now > as_utc(coupon.ends_at):
            return CouponValidation(valid=False, coupon_id=coupon.id, reason="expired")
        if coupon.used_count >= coupon.usage_cap:
            return CouponValidation(valid=False, coupon_id=coupon.id, reason="usage_cap_reached")
        if order_subtotal < coupon.minimum_order_amount:
            return CouponValidation(valid=False, coupon_id=coupon.id, reason="below_minimum_order")
        if self.booking_repository.user_holds_coupon(user_id, coupon.id):
            return CouponValidation(valid=False, coupon_id=coupon.id, reason="already_used")

        return CouponValidation(
            valid=True,
            discount_amount=min(coupon.fixed_amount, order_subtotal),
            coupon_id=coupon.id,
        )

    def redeem(self, coupon_id: str) -> bool:
        return self.coupon_repository.increment_usage(coupon_id)

    def release(self, coupon_id: str) -> bool:
        return self.coupon_repository.decrement_usage(coupon_id)
