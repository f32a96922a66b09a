from datetime import datetime
from models.db import db

class RefundStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Refund(db.Model):
    __tablename__ = "refunds"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    percentage = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=RefundStatus.PENDING)
    gateway_refund_ref = db.Column(db.String(255), nullable=True)
    failure_reason = db.Column(db.String(255), nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    processed_at = db.Column(db.DateTime, nullable=True)

    payment = db.relationship("Payment", back_populates="refunds")

    def to_dict(self):
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "booking_id": self.booking_id,
            "amount": str(self.amount),
            "percentage": self.percentage,
            "reason": self.reason,
            "status": self.status,
            "failure_reason": self.failure_reason,
            "attempts": self.attempts,
        }
