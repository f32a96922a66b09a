from datetime import datetime
from sqlalchemy import update
from models.db import db

class CourtDayLock(db.Model):
    """Serialises writers of one court's availability for one date.

    Every transaction that admits, cancels or blocks on (court, date) bumps
    this row first, so competing writers queue on the row lock instead of
    reading a stale availability set.
    """

    __tablename__ = "court_day_locks"

    id = db.Column(db.Integer, primary_key=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False)
    lock_date = db.Column(db.Date, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("court_id", "lock_date", name="uq_court_day_lock"),
    )

    @classmethod
    def acquire(cls, court_id: int, lock_date):
        """Take the write lock for (court_id, lock_date) in the current transaction.

        The UPDATE is issued before any read so the database holds the row
        (PostgreSQL) or the write lock (SQLite) until commit/rollback. A first
        writer inserts the row; a concurrent first writer then collides on
        ``uq_court_day_lock`` and gets an IntegrityError.
        """
        result = db.session.execute(
            update(cls)
            .where(cls.court_id == court_id, cls.lock_date == lock_date)
            .values(version=cls.version + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.session.add(cls(court_id=court_id, lock_date=lock_date, version=1))
            db.session.flush()
