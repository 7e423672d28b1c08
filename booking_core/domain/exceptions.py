from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    COUPON_INVALID = "COUPON_INVALID"
    PAYMENT_VERIFICATION_FAILED = "PAYMENT_VERIFICATION_FAILED"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_STATE = "INVALID_STATE"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    GATEWAY_UNAVAILABLE = "GATEWAY_UNAVAILABLE"


class BookingCoreError(Exception):
    """
    Base exception for all expected failure modes of the booking core.
    Carries a stable machine-readable code plus a human message.
    """

    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def extra(self) -> dict:
        """Additional fields exposed alongside code and message."""
        return {}


class ValidationError(BookingCoreError):
    """Raised when a request is malformed or inconsistent with the event."""

    code = ErrorCode.VALIDATION_ERROR


class CouponRejectedError(BookingCoreError):
    code = ErrorCode.COUPON_INVALID

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Coupon cannot be applied: {reason}")

    def extra(self) -> dict:
        return {"reason": self.reason}


class PaymentVerificationFailed(BookingCoreError):
    code = ErrorCode.PAYMENT_VERIFICATION_FAILED


class InsufficientStockError(BookingCoreError):
    code = ErrorCode.INSUFFICIENT_STOCK

    def __init__(self, ticket_type: str):
        self.ticket_type = ticket_type
        super().__init__(f"Not enough tickets available for {ticket_type}")

    def extra(self) -> dict:
        return {"ticketType": self.ticket_type}


class InsufficientFundsError(BookingCoreError):
    code = ErrorCode.INSUFFICIENT_FUNDS

    def __init__(self, message: str = "Insufficient wallet balance"):
        super().__init__(message)


class InvalidStateError(BookingCoreError):
    code = ErrorCode.INVALID_STATE


class InvalidStateTransitionError(InvalidStateError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class ForbiddenError(BookingCoreError):
    code = ErrorCode.FORBIDDEN


class NotFoundError(BookingCoreError):
    code = ErrorCode.NOT_FOUND


class GatewayUnavailableError(BookingCoreError):
    """Raised when the payment provider is unreachable, times out or errors."""

    code = ErrorCode.GATEWAY_UNAVAILABLE
