from flask import Blueprint, request, jsonify, g

from security.rbac import can_manage_facility
from services.availability import get_court
from services.blocking import block_slots, list_blocked_slots, unblock_slots
from services.payment_gateway import get_payment_gateway
from services.timeutils import parse_date
from utils.auth_context import login_required
from utils.audit import log_event
from utils.clock import now

slots_bp = Blueprint("slots", __name__, url_prefix="/courts")


def _managed_court(court_id: int):
    court = get_court(court_id)
    if not can_manage_facility(court.facility):
        return None
    return court


# ---------- OWNERS: block ranges for maintenance ----------
@slots_bp.post("/<int:court_id>/block-slots")
@login_required
def block(court_id: int):
    court = _managed_court(court_id)
    if not court:
        return jsonify(error="Court not found"), 404

    data = request.get_json(silent=True) or {}
    allow_override = bool(data.get("allow_override", False))
    block_type = (data.get("block_type") or "maintenance").strip().lower()

    result = block_slots(
        court.id,
        data.get("dates"),
        data.get("time_slots"),
        data.get("reason"),
        allow_override=allow_override,
        block_type=block_type,
        now=now(),
        gateway=get_payment_gateway(),
    )

    log_event(
        "SLOTS_BLOCK",
        user_id=g.user.id,
        entity="court",
        entity_id=court.id,
        metadata={
            "dates": data.get("dates"),
            "block_type": block_type,
            "allow_override": allow_override,
            "blocked": len(result.blocked),
            "conflicts": len(result.conflicts),
            "cancelled_bookings": [b.id for b in result.cancelled],
        },
    )

    if not result.blocked and result.conflicts:
        body = result.to_dict()
        body["error"] = "Requested ranges overlap active bookings"
        body["code"] = "BLOCK_CONFLICT"
        return jsonify(body), 409
    return jsonify(result.to_dict()), 201


@slots_bp.delete("/<int:court_id>/block-slots")
@login_required
def unblock(court_id: int):
    court = _managed_court(court_id)
    if not court:
        return jsonify(error="Court not found"), 404

    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None
    count = unblock_slots(court.id, data.get("dates"), data.get("time_slots"), reason)

    log_event("SLOTS_UNBLOCK", user_id=g.user.id, entity="court", entity_id=court.id, metadata={"dates": data.get("dates"), "unblocked": count})
    return jsonify(unblocked=count), 200


@slots_bp.get("/<int:court_id>/blocked-slots")
@login_required
def blocked(court_id: int):
    court = _managed_court(court_id)
    if not court:
        return jsonify(error="Court not found"), 404

    start = request.args.get("start_date")
    end = request.args.get("end_date")
    rows = list_blocked_slots(
        court.id,
        now().date(),
        start_date=parse_date(start) if start else None,
        end_date=parse_date(end) if end else None,
    )
    return jsonify([s.to_dict() for s in rows]), 200
