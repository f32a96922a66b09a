from datetime import datetime
from decimal import Decimal
from models.db import db

class PaymentStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    provider = db.Column(db.String(20), nullable=False, default="STRIPE")
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="INR")

    status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING)
    gateway_order_ref = db.Column(db.String(255), nullable=True, unique=True, index=True)
    gateway_payment_ref = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)

    booking = db.relationship("Booking", backref=db.backref("payments", lazy=True))
    refunds = db.relationship("Refund", back_populates="payment", lazy=True)

    @property
    def refunded_total(self):
        from models.refund import RefundStatus
        return sum(
            (r.amount for r in self.refunds if r.status == RefundStatus.COMPLETED),
            Decimal("0.00"),
        )

    @classmethod
    def completed_for_booking(cls, booking_id: int):
        return (
            cls.query
            .filter_by(booking_id=booking_id, status=PaymentStatus.COMPLETED)
            .order_by(cls.paid_at.desc())
            .first()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }
