# booking_core/infrastructure/repositories/coupon_repository.py

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from booking_core.infrastructure.db.models import Coupon


class CouponRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_reference(self, coupon_ref: str) -> Coupon | None:
        """Look a coupon up by id, falling back to its code."""
        stmt = select(Coupon).where(or_(Coupon.id == coupon_ref, Coupon.code == coupon_ref))
        return self.db.execute(stmt).scalars().first()

    def increment_usage(self, coupon_id: str) -> bool:
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .where(Coupon.used_count < Coupon.usage_cap)
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def decrement_usage(self, coupon_id: str) -> bool:
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .where(Coupon.used_count > 0)
            .values(used_count=Coupon.used_count - 1)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
