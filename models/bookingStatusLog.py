# models/bookingStatusLog.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from db.extensions import db
from utils.timeutils import utc_naive_now


class BookingStatusLog(db.Model):
    """Append-only history of booking status changes."""
    __tablename__ = 'booking_status_logs'

    id = Column(Integer, primary_key=True)
    # no FK: history outlives a deleted draft
    booking_id = Column(Integer, nullable=False, index=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    actor = Column(String(20), nullable=False)
    actor_id = Column(Integer, nullable=True)
    changed_at = Column(DateTime, default=utc_naive_now, nullable=False)

    def to_dict(self):
        return {
            'booking_id': self.booking_id,
            'from_status': self.from_status,
            'to_status': self.to_status,
            'actor': self.actor,
            'actor_id': self.actor_id,
            'changed_at': self.changed_at.isoformat() + "Z" if self.changed_at else None,
        }
