from flask import Blueprint, request, jsonify, g

from models.booking import Booking
from services.errors import GatewayError
from services.payment_gateway import get_payment_gateway
from services.payments import start_payment as open_order
from utils.auth_context import login_required
from utils.audit import log_event

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.post("/start")
@login_required
def start_payment():
    data = request.get_json(silent=True) or {}
    booking_id = data.get("booking_id")
    if not booking_id:
        return jsonify(error="booking_id required"), 400

    try:
        booking = Booking.query.get(int(booking_id))
    except (TypeError, ValueError):
        return jsonify(error="booking_id must be an integer"), 400
    if not booking or booking.user_id != g.user.id:
        return jsonify(error="Booking not found"), 404

    try:
        payment, checkout_url = open_order(booking, get_payment_gateway())
    except GatewayError as exc:
        log_event("PAYMENT_START_FAIL", user_id=g.user.id, entity="booking", entity_id=booking.id, metadata={"code": exc.code})
        raise

    log_event(
        "PAYMENT_SESSION_CREATED",
        user_id=g.user.id,
        entity="payment",
        entity_id=payment.id,
        metadata={"booking_id": booking.id, "order_ref": payment.gateway_order_ref},
    )
    return jsonify(payment_id=payment.id, checkout_url=checkout_url), 200
