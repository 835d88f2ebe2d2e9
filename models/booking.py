# models/booking.py
from datetime import date

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from db.extensions import db
from utils.timeutils import utc_naive_now

DRAFT = "draft"
PENDING = "pending"
ACTIVE = "active"
PAUSED = "paused"
COMPLETED = "completed"
REJECTED = "rejected"
CANCELLED = "cancelled"

BOOKING_STATUSES = (DRAFT, PENDING, ACTIVE, PAUSED, COMPLETED, REJECTED, CANCELLED)
TERMINAL_STATUSES = (COMPLETED, REJECTED, CANCELLED)
# statuses that hold their resources for the booked dates
HOLDING_STATUSES = (PENDING, ACTIVE, PAUSED)

MODE_WEEKLY = "weekly"
MODE_SUBSCRIPTION = "subscription"

# reference stored on bookings that never reached the payment provider
NO_CHARGE_REFERENCE = "no-charge"


class BookingResource(db.Model):
    __tablename__ = 'booking_resources'

    booking_id = Column(Integer, ForeignKey('bookings.id', ondelete='CASCADE'), primary_key=True)
    resource_id = Column(Integer, ForeignKey('resources.id'), primary_key=True)
    position = Column(Integer, nullable=False, default=0)

    resource = relationship('Resource')


class Booking(db.Model):
    """An advertiser campaign: display slots bought on one or more resources."""
    __tablename__ = 'bookings'
    __table_args__ = (
        CheckConstraint('start_date < end_date', name='ck_bookings_date_order'),
        CheckConstraint('total_cost >= 0', name='ck_bookings_cost_non_negative'),
        # one provider payment backs at most one booking
        Index(
            'uq_bookings_payment_reference', 'payment_reference', unique=True,
            postgresql_where=text(f"payment_reference <> '{NO_CHARGE_REFERENCE}'"),
            sqlite_where=text(f"payment_reference <> '{NO_CHARGE_REFERENCE}'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    owner_email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)

    booking_mode = Column(String(20), nullable=False, default=MODE_SUBSCRIPTION)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_slots = Column(Integer, nullable=False, default=1)
    duration_months = Column(Integer, nullable=True)
    # weekly bookings: comma-separated ISO start dates of the selected windows
    window_starts = Column(String(64), nullable=True)

    total_cost = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    coupon_id = Column(Integer, ForeignKey('coupons.id'), nullable=True)
    payment_reference = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default=DRAFT, index=True)
    media_asset_id = Column(String(255), nullable=True)
    subscription_id = Column(Integer, ForeignKey('subscriptions.id'), nullable=True)

    created_at = Column(DateTime, default=utc_naive_now, nullable=False)
    updated_at = Column(DateTime, default=utc_naive_now, nullable=False)

    booking_resources = relationship(
        'BookingResource',
        order_by='BookingResource.position',
        cascade='all, delete-orphan',
    )
    subscription = relationship('Subscription', back_populates='bookings')

    def __repr__(self):
        return f"<Booking id={self.id} owner_id={self.owner_id} status={self.status}>"

    @property
    def resource_ids(self):
        return [br.resource_id for br in self.booking_resources]

    def set_resources(self, resource_ids):
        self.booking_resources = [
            BookingResource(resource_id=rid, position=i) for i, rid in enumerate(resource_ids)
        ]

    def get_window_starts(self):
        if not self.window_starts:
            return []
        return [date.fromisoformat(s) for s in self.window_starts.split(",")]

    def set_window_starts(self, starts):
        self.window_starts = ",".join(d.isoformat() for d in sorted(set(starts))) or None

    def to_dict(self):
        return {
            'booking_id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'status': self.status,
            'booking_mode': self.booking_mode,
            'resource_ids': self.resource_ids,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'total_slots': self.total_slots,
            'duration_months': self.duration_months,
            'window_starts': [d.isoformat() for d in self.get_window_starts()],
            'total_cost': float(self.total_cost) if self.total_cost is not None else None,
            'discount_amount': float(self.discount_amount or 0),
            'coupon_id': self.coupon_id,
            'media_asset_id': self.media_asset_id,
            'subscription_id': self.subscription_id,
            'created_at': self.created_at.isoformat() + "Z" if self.created_at else None,
            'updated_at': self.updated_at.isoformat() + "Z" if self.updated_at else None,
        }
