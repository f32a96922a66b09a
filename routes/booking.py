from flask import Blueprint, request, jsonify, g

from models.booking import Booking, BookingStatus
from security.rbac import can_manage_facility
from services import lifecycle
from services.admission import admit_booking
from services.cancellation import cancel_booking as cancel_with_policy, get_booking, preview_cancellation
from services.errors import ConflictError
from services.payment_gateway import get_payment_gateway
from services.timeutils import parse_date
from utils.auth_context import login_required
from utils.audit import log_event
from utils.clock import now

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def _visible_booking(booking_id: int):
    """Booking if the caller owns it or manages its facility, else None."""
    booking = Booking.query.get(booking_id)
    if not booking:
        return None
    if booking.user_id == g.user.id or can_manage_facility(booking.court.facility):
        return booking
    return None


def _booking_dict(b: Booking, moment):
    out = b.to_dict()
    out["effective_status"] = lifecycle.effective_status(b, moment)
    out["court"] = {"id": b.court.id, "name": b.court.name, "facility_id": b.court.facility_id}
    return out


# ---------- PLAYERS: book a time range (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    court_id = data.get("court_id")
    date_str = data.get("date")
    start_time = data.get("start_time")
    end_time = data.get("end_time")

    if not court_id or not date_str or not start_time or not end_time:
        return jsonify(error="court_id, date, start_time, end_time are required"), 400
    try:
        court_id = int(court_id)
    except (TypeError, ValueError):
        return jsonify(error="court_id must be an integer"), 400

    day = parse_date(date_str)
    try:
        booking = admit_booking(court_id, day, start_time, end_time, g.user.id, now())
    except ConflictError as exc:
        log_event(
            "BOOKING_FAIL_UNAVAILABLE",
            user_id=g.user.id,
            entity="court",
            entity_id=court_id,
            metadata={"date": date_str, "start_time": start_time, "end_time": end_time, "code": exc.code},
        )
        raise

    log_event(
        "BOOKING_CREATE",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"court_id": court_id, "date": date_str, "start_time": booking.start_time, "end_time": booking.end_time},
    )
    return jsonify(booking.to_dict()), 201


# ---------- PLAYERS: view my bookings ----------
@booking_bp.get("/me")
@login_required
def my_bookings():
    # optional: status filter
    status = (request.args.get("status") or "").strip().upper()
    q = Booking.query.filter_by(user_id=g.user.id)
    if status:
        if status not in BookingStatus.ALL:
            return jsonify(error="Unknown status", allowed=list(BookingStatus.ALL)), 400
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.booking_date.desc(), Booking.start_time.desc()).limit(200).all()
    moment = now()
    return jsonify([_booking_dict(b, moment) for b in rows]), 200


@booking_bp.get("/<int:booking_id>")
@login_required
def booking_detail(booking_id: int):
    booking = _visible_booking(booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404

    out = _booking_dict(booking, now())
    out["payments"] = [p.to_dict() for p in booking.payments]
    return jsonify(out), 200


# ---------- PLAYERS: cancel booking (refund policy) ----------
@booking_bp.get("/<int:booking_id>/cancellation-preview")
@login_required
def cancellation_preview(booking_id: int):
    booking = get_booking(booking_id)
    if booking.user_id != g.user.id:
        return jsonify(error="Booking not found"), 404
    return jsonify(preview_cancellation(booking.id, now())), 200


@booking_bp.post("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None

    booking = get_booking(booking_id)
    if booking.user_id != g.user.id:
        return jsonify(error="Booking not found"), 404

    outcome = cancel_with_policy(booking.id, g.user.id, reason=reason, now=now(), gateway=get_payment_gateway())

    refund = outcome.refund
    log_event(
        "BOOKING_CANCEL",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={
            "reason": reason,
            "policy": outcome.decision.code,
            "refund_id": refund.id if refund else None,
            "refund_status": refund.status if refund else None,
        },
    )
    return jsonify(
        message="Cancelled",
        booking=outcome.booking.to_dict(),
        decision=outcome.decision.to_dict(),
        refund=refund.to_dict() if refund else None,
    ), 200
