# booking_core/infrastructure/gateways/razorpay_gateway.py

import logging
from typing import Protocol

import razorpay
import requests

from booking_core.domain.exceptions import GatewayUnavailableError
from booking_core.domain.value_objects import GatewayOrder

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def create_order(
        self,
        amount_minor_units: int,
        currency: str,
        receipt_id: str,
    ) -> GatewayOrder: ...

    def verify_signature(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
    ) -> bool: ...


class RazorpayGateway:
    """
    Razorpay adapter. Order creation goes over the network with a bounded
    timeout; signature verification is a local HMAC-SHA256 check over
    "order_id|payment_id" keyed by the account secret.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        timeout: float = 10.0,
        client: razorpay.Client | None = None,
    ):
        self.key_id = key_id
        self.timeout = timeout
        self._client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_order(
        self,
        amount_minor_units: int,
        currency: str,
        receipt_id: str,
    ) -> GatewayOrder:
        try:
            order = self._client.order.create(
                {
                    "amount": amount_minor_units,
                    "currency": currency,
                    "receipt": receipt_id,
                },
                timeout=self.timeout,
            )
        except (
            razorpay.errors.BadRequestError,
            razorpay.errors.GatewayError,
            razorpay.errors.ServerError,
            requests.RequestException,
        ) as exc:
            logger.warning(
                "Gateway order creation failed. receipt=%s error=%s",
                receipt_id,
                exc,
            )
            raise GatewayUnavailableError("Payment gateway is unavailable") from exc

        order_id = order.get("id") if isinstance(order, dict) else None
        if not order_id:
            raise GatewayUnavailableError("Payment gateway returned no order id")

        logger.info(
            "Gateway order created. order_id=%s amount=%s currency=%s receipt=%s",
            order_id,
            amount_minor_units,
            currency,
            receipt_id,
        )
        return GatewayOrder(
            order_id=order_id,
            amount_minor_units=amount_minor_units,
            currency=currency,
            receipt=receipt_id,
        )

    def verify_signature(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
    ) -> bool:
        try:
            self._client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": order_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
        except (razorpay.errors.SignatureVerificationError, TypeError, ValueError):
            return False
        return True
