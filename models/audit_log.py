from datetime import datetime
from models.db import db

class AuditLog(db.Model):
    """Append-only trail of booking, blocking, payment and admin actions."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # None for webhook events
    action = db.Column(db.String(80), nullable=False, index=True)  # BOOKING_CREATE, SLOTS_BLOCK, PAYMENT_PAID...
    entity = db.Column(db.String(80), nullable=True)   # booking, court, facility, payment
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_audit_entity", "entity", "entity_id"),
    )
