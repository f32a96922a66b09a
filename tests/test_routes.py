import hashlib
import hmac
import json
import time

from conftest import DAY
from models import db
from models.audit_log import AuditLog
from models.booking import Booking, BookingStatus
from models.facility import FacilityStatus
from models.payment import PaymentStatus


def _stripe_signature(payload: str, secret: str) -> str:
    ts = int(time.time())
    sig = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_availability_endpoint(client, factory):
    court = factory.court()
    factory.booking(court, start="10:00", end="11:00")

    resp = client.get(f"/courts/{court.id}/availability?date={DAY.isoformat()}")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["summary"]["total"] == 16
    assert body["summary"]["booked"] == 1

    assert client.get(f"/courts/{court.id}/availability").status_code == 400
    bad = client.get(f"/courts/{court.id}/availability?date=12-03-2026")
    assert bad.status_code == 400
    assert bad.get_json()["code"] == "INVALID_DATE"
    assert client.get(f"/courts/999/availability?date={DAY.isoformat()}").status_code == 404


def test_booking_requires_authentication(client, factory):
    court = factory.court()
    resp = client.post("/bookings", json={"court_id": court.id, "date": DAY.isoformat(),
                                          "start_time": "10:00", "end_time": "11:00"})
    assert resp.status_code == 401


def test_create_booking_and_conflict(client, factory, auth_headers):
    court = factory.court()
    player = factory.user()
    headers = auth_headers(player)
    payload = {"court_id": court.id, "date": DAY.isoformat(), "start_time": "10:00", "end_time": "11:00"}

    created = client.post("/bookings", json=payload, headers=headers)
    assert created.status_code == 201
    assert created.get_json()["status"] == BookingStatus.PENDING
    assert created.get_json()["total_amount"] == "1500.00"

    clash = client.post("/bookings", json=dict(payload, start_time="10:30", end_time="11:30"), headers=headers)
    assert clash.status_code == 409
    body = clash.get_json()
    assert body["code"] == "SLOT_UNAVAILABLE"
    assert body["conflicts"][0]["start_time"] == "10:00"

    mine = client.get("/bookings/me", headers=headers).get_json()
    assert [b["start_time"] for b in mine] == ["10:00"]

    actions = [row.action for row in AuditLog.query.order_by(AuditLog.id).all()]
    assert "BOOKING_CREATE" in actions
    assert "BOOKING_FAIL_UNAVAILABLE" in actions


def test_create_booking_validates_body(client, factory, auth_headers):
    headers = auth_headers(factory.user())
    assert client.post("/bookings", json={}, headers=headers).status_code == 400

    court = factory.court()
    resp = client.post("/bookings", json={"court_id": court.id, "date": DAY.isoformat(),
                                          "start_time": "10:00", "end_time": "9:00"}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "INVALID_RANGE"


def test_cancel_own_booking_only(client, factory, auth_headers):
    court = factory.court()
    owner = factory.user()
    stranger = factory.user()
    booking = factory.booking(court, user=owner)
    factory.payment(booking)

    assert client.post(f"/bookings/{booking.id}/cancel", headers=auth_headers(stranger)).status_code == 404
    assert client.get(f"/bookings/{booking.id}", headers=auth_headers(stranger)).status_code == 404

    preview = client.get(f"/bookings/{booking.id}/cancellation-preview", headers=auth_headers(owner))
    assert preview.get_json()["decision"]["code"] == "FULL_REFUND"

    resp = client.post(f"/bookings/{booking.id}/cancel", json={"reason": "Injured"}, headers=auth_headers(owner))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["booking"]["status"] == BookingStatus.CANCELLED
    assert body["refund"]["status"] == "COMPLETED"

    again = client.post(f"/bookings/{booking.id}/cancel", headers=auth_headers(owner))
    assert again.status_code == 409
    assert again.get_json()["code"] == "ALREADY_CANCELLED"


def test_facility_owner_sees_bookings_on_their_courts(client, factory, auth_headers):
    owner = factory.user(roles=("PLAYER", "FACILITY_OWNER"))
    court = factory.court(facility=factory.facility(owner=owner))
    booking = factory.booking(court)

    resp = client.get(f"/bookings/{booking.id}", headers=auth_headers(owner))
    assert resp.status_code == 200
    assert resp.get_json()["court"]["id"] == court.id


def test_block_slots_endpoint(client, factory, auth_headers):
    owner = factory.user(roles=("PLAYER", "FACILITY_OWNER"))
    court = factory.court(facility=factory.facility(owner=owner))
    booking = factory.booking(court, start="09:00", end="10:00")
    headers = auth_headers(owner)
    payload = {
        "dates": [DAY.isoformat()],
        "time_slots": [{"start_time": "09:00", "end_time": "10:00"}],
        "reason": "Resurfacing the turf",
    }

    assert client.post(f"/courts/{court.id}/block-slots", json=payload,
                       headers=auth_headers(factory.user())).status_code == 404

    conflict = client.post(f"/courts/{court.id}/block-slots", json=payload, headers=headers)
    assert conflict.status_code == 409
    assert conflict.get_json()["code"] == "BLOCK_CONFLICT"

    forced = client.post(f"/courts/{court.id}/block-slots", json=dict(payload, allow_override=True), headers=headers)
    assert forced.status_code == 201
    assert forced.get_json()["cancelled"][0]["id"] == booking.id

    listed = client.get(f"/courts/{court.id}/blocked-slots", headers=headers).get_json()
    assert [s["start_time"] for s in listed] == ["09:00"]

    removed = client.delete(f"/courts/{court.id}/block-slots", json={"dates": [DAY.isoformat()]}, headers=headers)
    assert removed.get_json() == {"unblocked": 1}


def test_facility_registration_and_verification(client, factory, auth_headers):
    applicant = factory.user()
    admin = factory.user(roles=("ADMIN",))

    created = client.post("/facilities", json={"name": "Goal Zone", "location": "Lalitpur"},
                          headers=auth_headers(applicant))
    assert created.status_code == 201
    facility_id = created.get_json()["id"]

    dup = client.post("/facilities", json={"name": " goal zone ", "location": "LALITPUR"},
                      headers=auth_headers(applicant))
    assert dup.status_code == 409

    assert client.get("/admin/facilities", headers=auth_headers(applicant)).status_code == 403
    pending = client.get("/admin/facilities", headers=auth_headers(admin)).get_json()
    assert [f["id"] for f in pending] == [facility_id]

    verified = client.post(f"/admin/facilities/{facility_id}/verify", json={"status": "APPROVED"},
                           headers=auth_headers(admin))
    assert verified.status_code == 200
    assert verified.get_json()["status"] == FacilityStatus.APPROVED

    db.session.expire_all()
    assert "FACILITY_OWNER" in applicant.role_names

    court = client.post(f"/facilities/{facility_id}/courts",
                        json={"name": "Court A", "price_per_hour": "1200", "opening_time": "7:00"},
                        headers=auth_headers(applicant))
    assert court.status_code == 201
    assert court.get_json()["opening_time"] == "07:00"

    listed = client.get(f"/facilities/{facility_id}/courts").get_json()
    assert [c["name"] for c in listed] == ["Court A"]


def test_admin_cancel_endpoint(client, factory, auth_headers, gateway):
    admin = factory.user(roles=("ADMIN",))
    booking = factory.booking(factory.court())
    factory.payment(booking)

    resp = client.post(f"/admin/bookings/{booking.id}/cancel", json={"reason": "Venue closed"},
                       headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.get_json()["refund"]["percentage"] == 100
    assert len(gateway.refunds) == 1


def test_payment_start_and_webhook_confirmation(app, client, factory, auth_headers):
    player = factory.user()
    booking = factory.booking(factory.court(), user=player, status=BookingStatus.PENDING)

    started = client.post("/payments/start", json={"booking_id": booking.id}, headers=auth_headers(player))
    assert started.status_code == 200
    payment_id = started.get_json()["payment_id"]

    event = json.dumps({
        "id": "evt_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_test_1",
            "object": "checkout.session",
            "payment_intent": "pi_abc",
            "metadata": {"payment_id": str(payment_id), "booking_id": str(booking.id)},
        }},
    })
    secret = app.config["STRIPE_WEBHOOK_SECRET"]

    bad = client.post("/webhooks/stripe", data=event, content_type="application/json",
                      headers={"Stripe-Signature": "t=1,v1=deadbeef"})
    assert bad.status_code == 400

    resp = client.post("/webhooks/stripe", data=event, content_type="application/json",
                       headers={"Stripe-Signature": _stripe_signature(event, secret)})
    assert resp.status_code == 200

    db.session.expire_all()
    assert Booking.query.get(booking.id).status == BookingStatus.CONFIRMED
    assert booking.payments[0].status == PaymentStatus.COMPLETED


def test_admin_retries_pending_refunds(client, factory, auth_headers, gateway):
    admin = factory.user(roles=("ADMIN",))
    booking = factory.booking(factory.court())
    factory.payment(booking)
    gateway.fail_refunds = True
    resp = client.post(f"/admin/bookings/{booking.id}/cancel", json={"reason": "Venue closed"},
                       headers=auth_headers(admin))
    assert resp.get_json()["refund"]["status"] == "PENDING"

    player = factory.user()
    assert client.post("/admin/refunds/retry", headers=auth_headers(player)).status_code == 403

    gateway.fail_refunds = False
    resp = client.post("/admin/refunds/retry", headers=auth_headers(admin))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["retried"] == 1
    assert body["refunds"][0]["status"] == "COMPLETED"
    assert AuditLog.query.filter_by(action="REFUND_RETRY").count() == 1
