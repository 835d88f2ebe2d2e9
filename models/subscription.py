# models/subscription.py
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime
from sqlalchemy.orm import relationship
from db.extensions import db
from utils.timeutils import utc_naive_now

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_CANCELLED = "cancelled"
SUBSCRIPTION_PAUSED = "paused"


class Subscription(db.Model):
    __tablename__ = 'subscriptions'

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=SUBSCRIPTION_ACTIVE)
    auto_renewal = Column(Boolean, nullable=False, default=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=utc_naive_now, nullable=False)
    updated_at = Column(DateTime, default=utc_naive_now, onupdate=utc_naive_now, nullable=False)

    bookings = relationship('Booking', back_populates='subscription')

    def __repr__(self):
        return f"<Subscription id={self.id} owner_id={self.owner_id} status={self.status}>"

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'status': self.status,
            'auto_renewal': self.auto_renewal,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'linked_booking_ids': [b.id for b in self.bookings],
        }
