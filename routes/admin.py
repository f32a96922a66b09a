from flask import Blueprint, jsonify, g, request

from models import db
from models.facility import Facility, FacilityStatus
from models.user import User, Role
from security.rbac import require_roles, can_manage_facility
from services.cancellation import admin_cancel_booking, get_booking, retry_pending_refunds
from services.payment_gateway import get_payment_gateway
from utils.audit import log_event
from utils.clock import now

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.get("/facilities")
@require_roles("ADMIN")
def list_facilities():
    status = (request.args.get("status") or FacilityStatus.PENDING).strip().upper()
    rows = (
        Facility.query
        .filter(Facility.status == status)
        .order_by(Facility.created_at.asc())
        .limit(200)
        .all()
    )
    owners = {u.id: u for u in User.query.filter(User.id.in_([f.owner_user_id for f in rows])).all()} if rows else {}

    return jsonify([
        {
            "id": f.id,
            "name": f.name,
            "location": f.location,
            "description": f.description,
            "status": f.status,
            "created_at": f.created_at.isoformat(),
            "owner": {
                "id": f.owner_user_id,
                "email": owners[f.owner_user_id].email if f.owner_user_id in owners else None,
                "full_name": owners[f.owner_user_id].full_name if f.owner_user_id in owners else None,
            },
        }
        for f in rows
    ]), 200


@admin_bp.post("/facilities/<int:facility_id>/verify")
@require_roles("ADMIN")
def verify_facility(facility_id: int):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip().upper()
    reason = (data.get("reason") or "").strip() or None

    if status not in (FacilityStatus.APPROVED, FacilityStatus.REJECTED):
        return jsonify(error="status must be APPROVED or REJECTED"), 400

    facility = Facility.query.get(facility_id)
    if not facility:
        return jsonify(error="Facility not found"), 404

    facility.status = status
    facility.verified_by = g.user.id
    facility.verified_at = now()
    facility.rejected_reason = reason if status == FacilityStatus.REJECTED else None

    if status == FacilityStatus.APPROVED:
        owner = User.query.get(facility.owner_user_id)
        owner_role = Role.query.filter_by(name="FACILITY_OWNER").first()
        if not owner_role:
            owner_role = Role(name="FACILITY_OWNER")
            db.session.add(owner_role)
            db.session.flush()
        if owner and owner_role not in owner.roles:
            owner.roles.append(owner_role)

    db.session.commit()

    log_event(
        "FACILITY_VERIFY",
        user_id=g.user.id,
        entity="facility",
        entity_id=facility.id,
        metadata={"status": status, "reason": reason},
    )
    return jsonify(id=facility.id, status=facility.status), 200


# ---------- ADMIN / OWNER: cancel any booking on a managed court ----------
@admin_bp.post("/bookings/<int:booking_id>/cancel")
@require_roles("ADMIN", "FACILITY_OWNER")
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or "Cancelled by facility"

    booking = get_booking(booking_id)
    if not can_manage_facility(booking.court.facility):
        return jsonify(error="Booking not found"), 404

    outcome = admin_cancel_booking(booking.id, reason, now(), get_payment_gateway())
    refund = outcome.refund

    log_event(
        "ADMIN_BOOKING_CANCEL",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"reason": reason, "refund_id": refund.id if refund else None},
    )
    return jsonify(
        message="Cancelled by admin",
        booking=outcome.booking.to_dict(),
        refund=refund.to_dict() if refund else None,
    ), 200


# ---------- ADMIN: re-send refunds the gateway rejected ----------
@admin_bp.post("/refunds/retry")
@require_roles("ADMIN")
def retry_refunds():
    rows = retry_pending_refunds(now(), get_payment_gateway())

    log_event(
        "REFUND_RETRY",
        user_id=g.user.id,
        entity="refund",
        metadata={"refund_ids": [r.id for r in rows]},
    )
    return jsonify(retried=len(rows), refunds=[r.to_dict() for r in rows]), 200
