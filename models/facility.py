from datetime import datetime
from models.db import db

class FacilityStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Facility(db.Model):
    __tablename__ = "facilities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)
    name_normalized = db.Column(db.String(120), nullable=False)
    location_normalized = db.Column(db.String(160), nullable=False)

    status = db.Column(db.String(20), nullable=False, default=FacilityStatus.PENDING)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    verified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)
    rejected_reason = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    courts = db.relationship("Court", back_populates="facility", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("name_normalized", "location_normalized", name="uq_facility_name_location"),
    )

    @property
    def is_approved(self):
        return self.status == FacilityStatus.APPROVED
