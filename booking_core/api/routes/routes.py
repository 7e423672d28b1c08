from fastapi import APIRouter

from booking_core.api.routes import bookings, events, outbox, wallet

router = APIRouter()


@router.get("/health")
def health():
    return {"message": "Booking core is running"}


router.include_router(bookings.router)
router.include_router(events.router)
router.include_router(wallet.router)
router.include_router(outbox.router)
