# booking_core/infrastructure/repositories/payment_order_repository.py

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from booking_core.domain.value_objects import GatewayOrder
from booking_core.infrastructure.db.models import PaymentOrder

PURPOSE_BOOKING = "booking"
PURPOSE_WALLET_TOPUP = "wallet_topup"

STATUS_CREATED = "created"
STATUS_PAID = "paid"


class PaymentOrderRepository:
    """Gateway orders issued by this service, so callbacks can be matched to them."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        user_id: str,
        purpose: str,
        amount: int,
        order: GatewayOrder,
    ) -> PaymentOrder:
        payment_order = PaymentOrder(
            order_id=order.order_id,
            user_id=user_id,
            purpose=purpose,
            amount=amount,
            amount_minor_units=order.amount_minor_units,
            currency=order.currency,
            receipt=order.receipt,
            status=STATUS_CREATED,
        )
        self.db.add(payment_order)
        self.db.flush()
        return payment_order

    def get_by_order_id(self, order_id: str) -> PaymentOrder | None:
        stmt = (
            select(PaymentOrder)
            .where(PaymentOrder.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def mark_paid(self, order_id: str, payment_id: str) -> bool:
        """Consume a created order exactly once."""
        stmt = (
            update(PaymentOrder)
            .where(PaymentOrder.order_id == order_id)
            .where(PaymentOrder.status == STATUS_CREATED)
            .values(status=STATUS_PAID, payment_id=payment_id)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
