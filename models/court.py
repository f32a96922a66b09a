from datetime import datetime
from models.db import db

class Court(db.Model):
    __tablename__ = "courts"

    id = db.Column(db.Integer, primary_key=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    sport_type = db.Column(db.String(30), nullable=False, default="FOOTBALL")
    description = db.Column(db.Text, nullable=True)

    price_per_hour = db.Column(db.Numeric(10, 2), nullable=False)
    # court-local wall clock, canonical "HH:MM"
    opening_time = db.Column(db.String(5), nullable=False, default="06:00")
    closing_time = db.Column(db.String(5), nullable=False, default="22:00")

    # soft-deactivated, never deleted once bookings exist
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    facility = db.relationship("Facility", back_populates="courts")

    __table_args__ = (
        db.CheckConstraint("opening_time < closing_time", name="ck_court_operating_hours"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "facility_id": self.facility_id,
            "name": self.name,
            "sport_type": self.sport_type,
            "description": self.description,
            "price_per_hour": str(self.price_per_hour),
            "opening_time": self.opening_time,
            "closing_time": self.closing_time,
            "is_active": self.is_active,
        }
