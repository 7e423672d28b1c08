# booking_core/infrastructure/repositories/wallet_repository.py

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_core.domain.exceptions import InsufficientFundsError, ValidationError
from booking_core.domain.value_objects import Page
from booking_core.infrastructure.db.models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)

CREDIT = "credit"
DEBIT = "debit"


class WalletRepository:
    """
    One wallet per user: a running balance plus an append-only ledger.
    Balance changes are conditional UPDATEs, never read-modify-write.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: str) -> Wallet | None:
        stmt = select(Wallet).where(Wallet.user_id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_balance(self, user_id: str) -> int:
        stmt = select(Wallet.balance).where(Wallet.user_id == user_id)
        balance = self.db.execute(stmt).scalar_one_or_none()
        return balance or 0

    def credit(
        self,
        user_id: str,
        amount: int,
        payment_id: str | None,
        description: str,
    ) -> WalletTransaction:
        self._ensure_positive(amount)
        wallet = self._get_or_create(user_id)

        self.db.execute(
            update(Wallet)
            .where(Wallet.id == wallet.id)
            .values(balance=Wallet.balance + amount)
            .execution_options(synchronize_session=False)
        )
        txn = self._append(wallet, CREDIT, amount, payment_id, description)
        logger.info(
            "Wallet credited. user_id=%s amount=%s payment_id=%s",
            user_id,
            amount,
            payment_id,
        )
        return txn

    def debit(
        self,
        user_id: str,
        amount: int,
        payment_id: str,
        description: str,
    ) -> WalletTransaction:
        self._ensure_positive(amount)
        wallet = self.get_by_user(user_id)
        if not wallet:
            raise InsufficientFundsError()

        result = self.db.execute(
            update(Wallet)
            .where(Wallet.id == wallet.id)
            .where(Wallet.balance >= amount)
            .values(balance=Wallet.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Wallet debit refused, insufficient balance. user_id=%s amount=%s",
                user_id,
                amount,
            )
            raise InsufficientFundsError()

        txn = self._append(wallet, DEBIT, amount, payment_id, description)
        logger.info(
            "Wallet debited. user_id=%s amount=%s payment_id=%s",
            user_id,
            amount,
            payment_id,
        )
        return txn

    def list_transactions(
        self,
        user_id: str,
        page: int,
        limit: int,
    ) -> Page[WalletTransaction]:
        wallet = self.get_by_user(user_id)
        if not wallet:
            return Page(items=[], total=0, page=page, limit=limit)

        total = self.db.execute(
            select(func.count())
            .select_from(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet.id)
        ).scalar_one()
        stmt = (
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet.id)
            .order_by(WalletTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list(self.db.execute(stmt).scalars().all())
        return Page(items=items, total=total, page=page, limit=limit)

    def has_transaction(self, user_id: str, payment_id: str, txn_type: str) -> bool:
        stmt = (
            select(WalletTransaction.id)
            .join(Wallet, Wallet.id == WalletTransaction.wallet_id)
            .where(Wallet.user_id == user_id)
            .where(WalletTransaction.payment_id == payment_id)
            .where(WalletTransaction.type == txn_type)
            .limit(1)
        )
        return self.db.execute(stmt).first() is not None

    def _get_or_create(self, user_id: str) -> Wallet:
        wallet = self.get_by_user(user_id)
        if wallet:
            return wallet

        try:
            with self.db.begin_nested():
                wallet = Wallet(user_id=user_id, balance=0)
                self.db.add(wallet)
        except IntegrityError:
            # Lost a race with a concurrent first credit for the same user.
            wallet = self.get_by_user(user_id)
            if not wallet:
                raise
        return wallet

    def _append(
        self,
        wallet: Wallet,
        txn_type: str,
        amount: int,
        payment_id: str | None,
        description: str,
    ) -> WalletTransaction:
        txn = WalletTransaction(
            wallet_id=wallet.id,
            type=txn_type,
            amount=amount,
            payment_id=payment_id,
            description=description,
        )
        self.db.add(txn)
        self.db.flush()
        return txn

    @staticmethod
    def _ensure_positive(amount: int) -> None:
        if amount <= 0:
            raise ValidationError("Wallet amount must be greater than zero")
