import logging
from uuid import uuid4

from sqlalchemy.orm import Session

from booking_core.config import Settings, get_settings
from booking_core.domain.exceptions import (
    GatewayUnavailableError,
    PaymentVerificationFailed,
    ValidationError,
)
from booking_core.domain.value_objects import GatewayOrder, Page, PaymentConfirmation
from booking_core.infrastructure.db.models import WalletTransaction
from booking_core.infrastructure.gateways.razorpay_gateway import PaymentGateway
from booking_core.infrastructure.repositories.payment_order_repository import (
    PURPOSE_WALLET_TOPUP,
    PaymentOrderRepository,
)
from booking_core.infrastructure.repositories.wallet_repository import (
    CREDIT,
    WalletRepository,
)

logger = logging.getLogger(__name__)

TOPUP_DESCRIPTION = "Wallet recharge"


class WalletService:
    """Wallet balance queries and gateway-funded top-ups."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.wallet_repository = WalletRepository(db)
        self.payment_order_repository = PaymentOrderRepository(db)

    def get_wallet(
        self,
        user_id: str,
        page: int,
        limit: int,
    ) -> tuple[int, Page[WalletTransaction]]:
        balance = self.wallet_repository.get_balance(user_id)
        transactions = self.wallet_repository.list_transactions(user_id, page, limit)
        return balance, transactions

    def create_topup_order(self, user_id: str, amount: int) -> GatewayOrder:
        if amount <= 0:
            raise ValidationError("Top-up amount must be greater than zero")

        gateway = self._require_gateway()
        order = gateway.create_order(
            amount_minor_units=amount * 100,
            currency=self.settings.payment_currency,
            receipt_id=f"wallet_{user_id[:6]}_{uuid4().hex[:8]}",
        )
        self.payment_order_repository.record(
            user_id=user_id,
            purpose=PURPOSE_WALLET_TOPUP,
            amount=amount,
            order=order,
        )
        return order

    def verify_topup(self, user_id: str, confirmation: PaymentConfirmation) -> int:
        """Credit the wallet for a paid top-up order. Returns the new balance."""
        gateway = self._require_gateway()
        if not gateway.verify_signature(
            confirmation.order_id,
            confirmation.payment_id,
            confirmation.signature,
        ):
            logger.warning(
                "Top-up signature mismatch. user_id=%s order_id=%s",
                user_id,
                confirmation.order_id,
            )
            raise PaymentVerificationFailed("Payment signature verification failed")

        order = self.payment_order_repository.get_by_order_id(confirmation.order_id)
        if not order or order.user_id != user_id or order.purpose != PURPOSE_WALLET_TOPUP:
            raise PaymentVerificationFailed("Payment order was not issued for this wallet")

        if order.payment_id == confirmation.payment_id and self.wallet_repository.has_transaction(
            user_id, confirmation.payment_id, CREDIT
        ):
            logger.warning(
                "Duplicate top-up confirmation ignored. user_id=%s payment_id=%s",
                user_id,
                confirmation.payment_id,
            )
            return self.wallet_repository.get_balance(user_id)

        with self.db.begin_nested():
            if not self.payment_order_repository.mark_paid(
                confirmation.order_id,
                confirmation.payment_id,
            ):
                raise PaymentVerificationFailed("Payment order has already been used")
            self.wallet_repository.credit(
                user_id=user_id,
                amount=order.amount,
                payment_id=confirmation.payment_id,
                description=TOPUP_DESCRIPTION,
            )

        return self.wallet_repository.get_balance(user_id)

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise GatewayUnavailableError("Payment gateway is not configured")
        return self.gateway
