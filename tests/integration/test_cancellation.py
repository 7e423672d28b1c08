from datetime import timedelta

import pytest
from sqlalchemy import update

from conftest import intent_payload, sign
from booking_core.application.booking_service import BookingService
from booking_core.domain.exceptions import InvalidStateError
from booking_core.domain.value_objects import BookingIntent, PaymentConfirmation, TicketLine
from booking_core.infrastructure.db.models import Event
from booking_core.infrastructure.repositories.inventory_repository import InventoryRepository
from booking_core.infrastructure.repositories.outbox_repository import OutboxRepository
from booking_core.infrastructure.repositories.wallet_repository import WalletRepository

USER = {"X-User-Id": "user_1"}
HOST = {"X-Host-Id": "host_1"}


def _remaining(db, event_id):
    return {
        ticket.ticket_type: ticket.remaining_count
        for ticket in InventoryRepository(db).get_ticket_types(event_id)
    }


def _book(client, event_id, tickets, headers=USER, **intent):
    response = client.post("/bookings", json=intent_payload(event_id, tickets, **intent), headers=headers)
    assert response.status_code == 200
    return response.json()["booking"]


def test_user_cancellation_refunds_and_restocks(client, db, make_event, fund_wallet):
    event_id = make_event()
    fund_wallet("user_1", 2000)
    booking = _book(client, event_id, [("Regular", 1, 500), ("VIP", 1, 1500)])
    assert WalletRepository(db).get_balance("user_1") == 0

    response = client.put(
        f"/bookings/{booking['id']}/cancel",
        json={"reason": "Cannot attend"},
        headers=USER,
    )

    assert response.status_code == 200
    cancelled = response.json()["booking"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["paymentStatus"] == "refunded"
    assert cancelled["cancellation"]["cancelledBy"] == "user"
    assert cancelled["cancellation"]["reason"] == "Cannot attend"
    assert WalletRepository(db).get_balance("user_1") == 2000
    assert _remaining(db, event_id) == {"Regular": 10, "VIP": 2}

    wallet = client.get("/wallet", headers=USER).json()
    assert wallet["transactions"][0]["description"] == "Refund for booking cancellation"
    assert wallet["transactions"][0]["paymentId"] == booking["paymentId"]


def test_second_cancellation_is_invalid_state(client, db, make_event, fund_wallet):
    event_id = make_event()
    fund_wallet("user_1", 500)
    booking = _book(client, event_id, [("Regular", 1, 500)])
    client.put(f"/bookings/{booking['id']}/cancel", headers=USER)

    response = client.put(f"/bookings/{booking['id']}/cancel", headers=USER)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATE"
    assert response.json()["message"] == "Booking is already cancelled"
    assert WalletRepository(db).get_balance("user_1") == 500
    assert _remaining(db, event_id)["Regular"] == 10


def test_refund_is_full_ticket_price_and_coupon_is_released(
    client, db, make_event, make_coupon, fund_wallet
):
    event_id = make_event()
    coupon_id = make_coupon(fixed_amount=200, usage_cap=1)
    fund_wallet("user_1", 1300)
    booking = _book(client, event_id, [("VIP", 1, 1500)], coupon_id=coupon_id, discount=200)
    assert WalletRepository(db).get_balance("user_1") == 0

    client.put(f"/bookings/{booking['id']}/cancel", headers=USER)

    assert WalletRepository(db).get_balance("user_1") == 1500
    rebooked = client.post(
        "/bookings",
        json=intent_payload(event_id, [("VIP", 1, 1500)], coupon_id=coupon_id, discount=200),
        headers=USER,
    )
    assert rebooked.status_code == 200


def test_gateway_booking_is_refunded_to_wallet(client, db, make_event):
    event_id = make_event()
    order_id = client.post("/bookings/order", json={"totalAmount": 500}, headers=USER).json()["orderId"]
    payload = intent_payload(event_id, [("Regular", 1, 500)])
    payload.update({"orderId": order_id, "paymentId": "pay_100", "signature": sign(order_id, "pay_100")})
    booking = client.post("/bookings/verify-payment", json=payload, headers=USER).json()["booking"]

    response = client.put(f"/bookings/{booking['id']}/cancel", headers=USER)

    assert response.status_code == 200
    assert WalletRepository(db).get_balance("user_1") == 500


def test_user_cannot_cancel_inside_cutoff(client, db, make_event, fund_wallet):
    event_id = make_event(starts_in=timedelta(hours=3))
    fund_wallet("user_1", 500)
    booking = _book(client, event_id, [("Regular", 1, 500)])

    response = client.put(f"/bookings/{booking['id']}/cancel", headers=USER)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATE"
    assert WalletRepository(db).get_balance("user_1") == 0


def test_user_cannot_cancel_someone_elses_booking(client, make_event, fund_wallet):
    event_id = make_event()
    fund_wallet("user_1", 500)
    booking = _book(client, event_id, [("Regular", 1, 500)])

    response = client.put(f"/bookings/{booking['id']}/cancel", headers={"X-User-Id": "user_2"})

    assert response.status_code == 403


def test_host_can_cancel_inside_cutoff(client, db, make_event, fund_wallet):
    event_id = make_event(starts_in=timedelta(hours=3))
    fund_wallet("user_1", 500)
    booking = _book(client, event_id, [("Regular", 1, 500)])

    response = client.put(
        f"/host/bookings/{booking['id']}/cancel",
        json={"reason": "Overbooked venue"},
        headers=HOST,
    )

    assert response.status_code == 200
    assert response.json()["booking"]["cancellation"]["cancelledBy"] == "host"
    assert WalletRepository(db).get_balance("user_1") == 500


def test_other_host_cannot_cancel_booking(client, make_event, fund_wallet):
    event_id = make_event()
    fund_wallet("user_1", 500)
    booking = _book(client, event_id, [("Regular", 1, 500)])

    response = client.put(
        f"/host/bookings/{booking['id']}/cancel",
        headers={"X-Host-Id": "host_2"},
    )

    assert response.status_code == 403


def test_event_cancellation_refunds_every_booking(client, db, make_event, fund_wallet):
    event_id = make_event()
    fund_wallet("user_1", 1000)
    fund_wallet("user_2", 1500)
    first = _book(client, event_id, [("Regular", 2, 500)])
    second = _book(client, event_id, [("VIP", 1, 1500)], headers={"X-User-Id": "user_2"})

    response = client.put(
        f"/events/{event_id}/cancel",
        json={"reason": "Artist unwell"},
        headers=HOST,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["cancelledCount"] == 2
    assert set(body["cancelledBookingIds"]) == {first["id"], second["id"]}
    assert body["notifiedUsers"] == ["user_1", "user_2"]
    assert WalletRepository(db).get_balance("user_1") == 1000
    assert WalletRepository(db).get_balance("user_2") == 1500
    assert _remaining(db, event_id) == {"Regular": 10, "VIP": 2}

    fetched = client.get(f"/bookings/{first['id']}", headers=USER).json()["booking"]
    assert fetched["cancellation"]["reason"] == "Event cancelled: Artist unwell"

    notices = [
        item for item in OutboxRepository(db).list_by_status("PENDING", 50)
        if item.event_type == "EVENT_CANCELLED"
    ]
    assert len(notices) == 2

    event = client.get(f"/events/{event_id}").json()
    assert event["isCancelled"] is True


def test_cancelled_event_rejects_new_bookings_and_second_cancel(client, make_event, fund_wallet):
    event_id = make_event()
    fund_wallet("user_1", 500)
    client.put(f"/events/{event_id}/cancel", json={"reason": "Rain"}, headers=HOST)

    booking = client.post(
        "/bookings",
        json=intent_payload(event_id, [("Regular", 1, 500)]),
        headers=USER,
    )
    again = client.put(f"/events/{event_id}/cancel", json={"reason": "Rain"}, headers=HOST)

    assert booking.status_code == 400
    assert booking.json()["code"] == "INVALID_STATE"
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_STATE"


def test_only_owning_host_cancels_event(client, make_event):
    event_id = make_event()

    response = client.put(
        f"/events/{event_id}/cancel",
        json={"reason": "Rain"},
        headers={"X-Host-Id": "host_2"},
    )

    assert response.status_code == 403


def test_attendees_are_distinct_confirmed_users(client, db, make_event, fund_wallet):
    event_id = make_event()
    fund_wallet("user_1", 1000)
    fund_wallet("user_2", 500)
    _book(client, event_id, [("Regular", 1, 500)])
    _book(client, event_id, [("Regular", 1, 500)])
    dropped = _book(client, event_id, [("Regular", 1, 500)], headers={"X-User-Id": "user_2"})
    client.put(f"/bookings/{dropped['id']}/cancel", headers={"X-User-Id": "user_2"})

    assert BookingService(db).find_user_ids_by_event(event_id) == {"user_1"}


def _cancel_event_after_check(db, service, monkeypatch):
    """Commits an event cancellation right after the availability check, as a racing host would."""
    check_availability = service.inventory_repository.check_availability

    def check_then_cancel(event_id, lines):
        check_availability(event_id, lines)
        db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(is_cancelled=True)
            .execution_options(synchronize_session=False)
        )

    monkeypatch.setattr(service.inventory_repository, "check_availability", check_then_cancel)


def test_wallet_booking_racing_event_cancellation_is_rejected(db, make_event, fund_wallet, monkeypatch):
    event_id = make_event()
    fund_wallet("user_1", 1500)
    service = BookingService(db)
    _cancel_event_after_check(db, service, monkeypatch)
    intent = BookingIntent(
        event_id=event_id,
        tickets=(TicketLine("VIP", 1, 1500),),
        total_amount=1500,
        discounted_amount=1500,
    )

    with pytest.raises(InvalidStateError):
        service.create_wallet_booking("user_1", intent)

    assert WalletRepository(db).get_balance("user_1") == 1500
    assert _remaining(db, event_id)["VIP"] == 2
    assert service.find_user_ids_by_event(event_id) == set()


def test_gateway_booking_racing_event_cancellation_is_rejected(
    db, make_event, gateway, monkeypatch, caplog
):
    event_id = make_event()
    service = BookingService(db, gateway=gateway)
    order = service.create_order("user_1", 1500)
    db.commit()
    _cancel_event_after_check(db, service, monkeypatch)
    intent = BookingIntent(
        event_id=event_id,
        tickets=(TicketLine("VIP", 1, 1500),),
        total_amount=1500,
        discounted_amount=1500,
    )

    with pytest.raises(InvalidStateError):
        service.verify_payment(
            "user_1",
            PaymentConfirmation(
                order_id=order.order_id,
                payment_id="pay_race",
                signature=sign(order.order_id, "pay_race"),
            ),
            intent,
        )

    assert _remaining(db, event_id)["VIP"] == 2
    assert "Reconciliation required" in caplog.text
    assert "pay_race" in caplog.text
