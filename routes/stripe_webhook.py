import stripe
from flask import Blueprint, request, jsonify, current_app

from services.errors import InvalidStateError
from services.payment_gateway import get_payment_gateway
from services.payments import confirm_payment, fail_payment, find_payment, refund_orphaned_payment
from utils.audit import log_event
from utils.clock import now

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not endpoint_secret:
        return jsonify(error="Webhook secret not configured"), 500

    try:
        stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError):
        return jsonify(error="Invalid webhook signature"), 400

    # signature checked; read the event as plain JSON
    event = request.get_json(silent=True) or {}
    event_type = event.get("type")
    if event_type not in ("checkout.session.completed", "checkout.session.expired"):
        return jsonify(received=True), 200

    session = event["data"]["object"]
    session_id = session.get("id")
    meta = session.get("metadata") or {}

    payment = find_payment(payment_id=meta.get("payment_id"), order_ref=session_id)
    if not payment:
        current_app.logger.warning("Webhook %s for unknown checkout session %s", event_type, session_id)
        return jsonify(received=True), 200

    if event_type == "checkout.session.completed":
        try:
            booking = confirm_payment(payment, session.get("payment_intent"), now())
        except InvalidStateError:
            # booking was cancelled while the customer was paying
            refund = refund_orphaned_payment(payment, get_payment_gateway(), now())
            log_event(
                "PAYMENT_REFUND_ORPHANED",
                entity="payment",
                entity_id=payment.id,
                metadata={"booking_id": payment.booking_id, "refund_status": refund.status},
            )
            return jsonify(received=True), 200

        log_event(
            "PAYMENT_PAID",
            entity="payment",
            entity_id=payment.id,
            metadata={"stripe_session_id": session_id, "booking_id": booking.id},
        )
    else:
        fail_payment(payment)
        log_event(
            "PAYMENT_EXPIRED",
            entity="payment",
            entity_id=payment.id,
            metadata={"stripe_session_id": session_id, "booking_id": payment.booking_id},
        )

    return jsonify(received=True), 200
