from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from booking_core.infrastructure.db.models import Coupon, Event
from booking_core.infrastructure.db.session import Base, engine, get_db_session
from booking_core.infrastructure.repositories.inventory_repository import InventoryRepository
from booking_core.infrastructure.repositories.wallet_repository import WalletRepository

DEMO_HOST_ID = "host_demo"
DEMO_USER_ID = "user_demo"


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    ist = timezone(timedelta(hours=5, minutes=30))
    now_ist = datetime.now(ist)
    target = now_ist + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def seed_events(db) -> None:
    event_defs = [
        {
            "title": "Sunidhi Chauhan Live Concert",
            "starts_at": _dt(days_from_now=10, hour=19, minute=30),
            "venue": "Indira Gandhi Arena, New Delhi",
            "ticket_types": [("Regular", 1800, 400), ("VIP", 4500, 120)],
        },
        {
            "title": "Holi Festival 2026",
            "starts_at": _dt(days_from_now=15, hour=11, minute=0),
            "venue": "Jawaharlal Nehru Stadium Grounds, Delhi",
            "ticket_types": [("General", 1200, 700), ("Premium", 2800, 180)],
        },
    ]

    inventory = InventoryRepository(db)
    for item in event_defs:
        existing = db.execute(
            select(Event).where(Event.title == item["title"])
        ).scalar_one_or_none()
        if existing:
            continue
        inventory.create_event(
            host_id=DEMO_HOST_ID,
            title=item["title"],
            venue=item["venue"],
            starts_at=item["starts_at"],
            ticket_types=item["ticket_types"],
        )


def seed_coupons(db) -> None:
    existing = db.execute(select(Coupon).where(Coupon.code == "WELCOME200")).scalar_one_or_none()
    if existing:
        return
    db.add(
        Coupon(
            code="WELCOME200",
            fixed_amount=200,
            minimum_order_amount=1000,
            starts_at=_dt(days_from_now=-1, hour=0, minute=0),
            ends_at=_dt(days_from_now=30, hour=23, minute=59),
            usage_cap=100,
            used_count=0,
            is_blocked=False,
        )
    )


def seed_wallet(db) -> None:
    wallets = WalletRepository(db)
    if wallets.get_balance(DEMO_USER_ID) == 0:
        wallets.credit(
            user_id=DEMO_USER_ID,
            amount=5000,
            payment_id=None,
            description="Demo wallet credit",
        )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        seed_events(db)
        seed_coupons(db)
        seed_wallet(db)
    print("Seed complete: two events, WELCOME200 coupon, demo wallet with 5000.")


if __name__ == "__main__":
    main()
