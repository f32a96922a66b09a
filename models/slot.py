from datetime import datetime
from models.db import db
from services.timeutils import TimeRange

class TimeSlot(db.Model):
    """Explicit per-court block record (maintenance, events...)."""

    __tablename__ = "time_slots"

    id = db.Column(db.Integer, primary_key=True)

    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    slot_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)

    is_blocked = db.Column(db.Boolean, default=False, nullable=False)
    block_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        # One record per court/date/start; re-blocking updates it in place
        db.UniqueConstraint("court_id", "slot_date", "start_time", name="uq_court_date_start"),
    )

    @property
    def time_range(self):
        return TimeRange.from_strings(self.start_time, self.end_time)

    def to_dict(self):
        return {
            "id": self.id,
            "court_id": self.court_id,
            "date": self.slot_date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_blocked": self.is_blocked,
            "block_reason": self.block_reason,
        }
