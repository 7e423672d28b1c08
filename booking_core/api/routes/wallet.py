from fastapi import APIRouter, Depends

from booking_core.api.dependencies import Pagination, current_user_id, get_wallet_service
from booking_core.api.schemas.schemas import (
    CreateOrderResponse,
    ErrorResponse,
    WalletOrderRequest,
    WalletResponse,
    WalletTransactionResponse,
    WalletVerifyRequest,
)
from booking_core.application.wallet_service import WalletService
from booking_core.domain.value_objects import PaymentConfirmation

router = APIRouter(
    prefix="/wallet",
    tags=["wallet"],
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)


def _wallet_response(service: WalletService, user_id: str, page: int, limit: int) -> WalletResponse:
    balance, transactions = service.get_wallet(user_id, page, limit)
    return WalletResponse(
        balance=balance,
        transactions=[
            WalletTransactionResponse(
                type=item.type,
                amount=item.amount,
                description=item.description,
                payment_id=item.payment_id,
                date=item.created_at,
            )
            for item in transactions.items
        ],
        total=transactions.total,
        page=transactions.page,
        pages=transactions.pages,
    )


@router.get("", response_model=WalletResponse)
def get_wallet(
    pagination: Pagination = Depends(),
    user_id: str = Depends(current_user_id),
    service: WalletService = Depends(get_wallet_service),
):
    return _wallet_response(service, user_id, pagination.page, pagination.limit)


@router.post("/order", response_model=CreateOrderResponse)
def create_topup_order(
    request: WalletOrderRequest,
    user_id: str = Depends(current_user_id),
    service: WalletService = Depends(get_wallet_service),
):
    order = service.create_topup_order(user_id=user_id, amount=request.amount)
    return CreateOrderResponse(
        order_id=order.order_id,
        amount=order.amount_minor_units,
        currency=order.currency,
    )


@router.post("/verify-payment", response_model=WalletResponse)
def verify_topup(
    request: WalletVerifyRequest,
    pagination: Pagination = Depends(),
    user_id: str = Depends(current_user_id),
    service: WalletService = Depends(get_wallet_service),
):
    service.verify_topup(
        user_id=user_id,
        confirmation=PaymentConfirmation(
            order_id=request.order_id,
            payment_id=request.payment_id,
            signature=request.signature,
        ),
    )
    return _wallet_response(service, user_id, pagination.page, pagination.limit)
