"""Payment events that drive the booking lifecycle.

A booking only becomes CONFIRMED once its payment completes; an order that
fails or expires leaves it PENDING.
"""
from flask import current_app

from models import db
from models.booking import Booking, BookingStatus
from models.payment import Payment, PaymentStatus
from models.refund import Refund, RefundStatus
from services import lifecycle
from services.cancellation import settle_refund
from services.errors import GatewayError, InvalidStateError


def start_payment(booking: Booking, gateway) -> tuple:
    """Open a gateway order for a PENDING booking. Returns (payment, checkout_url)."""
    if booking.status != BookingStatus.PENDING:
        raise InvalidStateError(
            f"Only pending bookings can be paid (booking is {booking.status})",
            code="BOOKING_NOT_PAYABLE",
            current_status=booking.status,
        )

    payment = Payment(
        booking_id=booking.id,
        user_id=booking.user_id,
        amount=booking.total_amount,
        currency=(current_app.config.get("PAYMENT_CURRENCY") or "inr").upper(),
        status=PaymentStatus.PENDING,
    )
    db.session.add(payment)
    db.session.commit()

    try:
        order = gateway.create_order(
            booking.total_amount,
            {"booking_id": booking.id, "payment_id": payment.id, "user_id": booking.user_id},
        )
    except GatewayError:
        payment.status = PaymentStatus.FAILED
        db.session.commit()
        raise

    payment.gateway_order_ref = order["id"]
    db.session.commit()
    return payment, order.get("url")


def find_payment(payment_id=None, order_ref=None):
    payment = None
    if payment_id:
        payment = Payment.query.get(int(payment_id))
    if not payment and order_ref:
        payment = Payment.query.filter_by(gateway_order_ref=order_ref).first()
    return payment


def confirm_payment(payment: Payment, payment_ref, now) -> Booking:
    """Mark the payment COMPLETED and confirm its booking.

    Raises InvalidStateError (after recording the payment) when the booking
    was cancelled while the customer was paying.
    """
    # redelivered webhook
    if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
        return payment.booking

    payment.status = PaymentStatus.COMPLETED
    payment.gateway_payment_ref = payment_ref
    payment.paid_at = now

    booking = payment.booking
    try:
        lifecycle.transition(booking, BookingStatus.CONFIRMED, now)
    finally:
        db.session.commit()

    current_app.logger.info("Payment %s completed, booking %s confirmed", payment.id, booking.id)
    return booking


def fail_payment(payment: Payment) -> Payment:
    if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
        return payment
    payment.status = PaymentStatus.FAILED
    db.session.commit()
    current_app.logger.info("Payment %s failed, booking %s stays %s", payment.id, payment.booking_id, payment.booking.status)
    return payment


def refund_orphaned_payment(payment: Payment, gateway, now):
    """Fully refund a payment that completed after its booking stopped being payable."""
    refund = Refund(
        payment=payment,
        booking_id=payment.booking_id,
        amount=payment.amount,
        percentage=100,
        reason="Booking was no longer active when payment completed",
        status=RefundStatus.PENDING,
    )
    db.session.add(refund)
    db.session.commit()
    return settle_refund(refund, gateway, now)
