from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.court import Court
from models.facility import Facility, FacilityStatus
from security.rbac import can_manage_facility
from services.availability import court_availability, get_court
from services.errors import ValidationError
from services.timeutils import format_time, parse_date, parse_time
from utils.auth_context import login_required
from utils.audit import log_event
from utils.clock import now

courts_bp = Blueprint("courts", __name__)

SPORT_TYPES = ("FOOTBALL", "FUTSAL", "BASKETBALL", "BADMINTON", "TENNIS", "CRICKET", "VOLLEYBALL")


def _normalize(text: str) -> str:
    return (text or "").strip().lower()


def _facility_dict(f: Facility):
    return {
        "id": f.id,
        "name": f.name,
        "location": f.location,
        "description": f.description,
        "status": f.status,
        "is_active": f.is_active,
        "created_at": f.created_at.isoformat(),
        "verified_at": f.verified_at.isoformat() if f.verified_at else None,
        "rejected_reason": f.rejected_reason,
    }


# ---------- OWNERS: register a facility (goes to admin review) ----------
@courts_bp.post("/facilities")
@login_required
def register_facility():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    location = (data.get("location") or "").strip()
    description = (data.get("description") or "").strip() or None

    if not name or not location:
        return jsonify(error="name and location are required"), 400

    facility = Facility(
        name=name,
        location=location,
        description=description,
        name_normalized=_normalize(name),
        location_normalized=_normalize(location),
        owner_user_id=g.user.id,
        status=FacilityStatus.PENDING,
    )
    db.session.add(facility)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Facility already exists"), 409

    log_event("FACILITY_REGISTER_SUBMIT", user_id=g.user.id, entity="facility", entity_id=facility.id)
    return jsonify(id=facility.id, status=facility.status), 201


@courts_bp.get("/facilities")
def list_facilities():
    name_query = (request.args.get("name") or "").strip()
    location_query = (request.args.get("location") or "").strip()

    q = Facility.query.filter(
        Facility.is_active.is_(True),
        Facility.status == FacilityStatus.APPROVED,
    )
    if name_query:
        q = q.filter(Facility.name.ilike(f"%{name_query}%"))
    if location_query:
        q = q.filter(Facility.location.ilike(f"%{location_query}%"))

    rows = q.order_by(Facility.created_at.desc()).limit(200).all()
    return jsonify([_facility_dict(f) for f in rows]), 200


@courts_bp.get("/facilities/me")
@login_required
def my_facilities():
    rows = (
        Facility.query
        .filter_by(owner_user_id=g.user.id)
        .order_by(Facility.created_at.desc())
        .all()
    )
    return jsonify([_facility_dict(f) for f in rows]), 200


# ---------- OWNERS: manage courts ----------
@courts_bp.post("/facilities/<int:facility_id>/courts")
@login_required
def create_court(facility_id: int):
    facility = Facility.query.get(facility_id)
    if not facility or not can_manage_facility(facility):
        return jsonify(error="Facility not found"), 404

    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    sport_type = (data.get("sport_type") or "FOOTBALL").strip().upper()
    if not name:
        return jsonify(error="Court name required"), 400
    if sport_type not in SPORT_TYPES:
        return jsonify(error="Unknown sport_type", allowed=list(SPORT_TYPES)), 400

    try:
        price = Decimal(str(data.get("price_per_hour")))
    except (InvalidOperation, ValueError):
        return jsonify(error="price_per_hour must be a number"), 400
    if not price.is_finite() or price <= 0:
        return jsonify(error="price_per_hour must be positive"), 400

    opening = parse_time(data.get("opening_time") or "06:00")
    closing = parse_time(data.get("closing_time") or "22:00")
    if opening >= closing:
        raise ValidationError(
            "opening_time must be before closing_time",
            code="INVALID_OPERATING_HOURS",
        )

    court = Court(
        facility_id=facility.id,
        name=name,
        sport_type=sport_type,
        description=(data.get("description") or "").strip() or None,
        price_per_hour=price,
        opening_time=format_time(opening),
        closing_time=format_time(closing),
    )
    db.session.add(court)
    db.session.commit()

    log_event("COURT_CREATE", user_id=g.user.id, entity="court", entity_id=court.id, metadata={"facility_id": facility.id})
    return jsonify(court.to_dict()), 201


@courts_bp.get("/facilities/<int:facility_id>/courts")
def list_courts(facility_id: int):
    facility = Facility.query.get(facility_id)
    if not facility:
        return jsonify(error="Facility not found"), 404

    courts = (
        Court.query
        .filter_by(facility_id=facility.id, is_active=True)
        .order_by(Court.name.asc())
        .all()
    )
    return jsonify([c.to_dict() for c in courts]), 200


@courts_bp.post("/courts/<int:court_id>/deactivate")
@login_required
def deactivate_court(court_id: int):
    court = get_court(court_id)
    if not can_manage_facility(court.facility):
        return jsonify(error="Court not found"), 404

    court.is_active = False
    db.session.commit()

    log_event("COURT_DEACTIVATE", user_id=g.user.id, entity="court", entity_id=court.id)
    return jsonify(message="Court deactivated"), 200


# ---------- PLAYERS: view availability ----------
@courts_bp.get("/courts/<int:court_id>/availability")
def availability(court_id: int):
    date_str = request.args.get("date")
    if not date_str:
        return jsonify(error="date is required (YYYY-MM-DD)"), 400

    day = parse_date(date_str)
    return jsonify(court_availability(court_id, day, now())), 200
