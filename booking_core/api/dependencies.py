from functools import lru_cache

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from booking_core.application.booking_service import BookingService
from booking_core.application.wallet_service import WalletService
from booking_core.config import Settings, get_settings
from booking_core.infrastructure.db.session import SessionLocal
from booking_core.infrastructure.gateways.razorpay_gateway import (
    PaymentGateway,
    RazorpayGateway,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@lru_cache
def _razorpay_gateway(key_id: str, key_secret: str, timeout: float) -> RazorpayGateway:
    return RazorpayGateway(key_id=key_id, key_secret=key_secret, timeout=timeout)


def get_payment_gateway(
    settings: Settings = Depends(get_settings),
) -> PaymentGateway | None:
    # Without credentials only gateway operations fail; wallet bookings still work.
    if not settings.razorpay_key_id or not settings.razorpay_key_secret:
        return None
    return _razorpay_gateway(
        settings.razorpay_key_id,
        settings.razorpay_key_secret,
        settings.gateway_timeout_seconds,
    )


def get_booking_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway | None = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
) -> BookingService:
    return BookingService(db, gateway=gateway, settings=settings)


def get_wallet_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway | None = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
) -> WalletService:
    return WalletService(db, gateway=gateway, settings=settings)


def current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Identity established upstream by the auth layer."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHORIZED", "message": "User identity required"},
        )
    return x_user_id


def current_host_id(x_host_id: str | None = Header(default=None)) -> str:
    if not x_host_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHORIZED", "message": "Host identity required"},
        )
    return x_host_id


class Pagination:
    def __init__(
        self,
        page: int = Query(default=1, ge=1),
        limit: int | None = Query(default=None, ge=1),
        settings: Settings = Depends(get_settings),
    ):
        self.page = page
        self.limit = min(limit or settings.default_page_size, settings.max_page_size)
