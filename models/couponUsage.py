# models/couponUsage.py
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint
from db.extensions import db
from utils.timeutils import utc_naive_now


class CouponUsage(db.Model):
    __tablename__ = 'coupon_usages'
    # Last-resort guard for the validate-then-apply race: a second usage
    # for the same (coupon, user) fails on insert.
    __table_args__ = (
        UniqueConstraint('coupon_id', 'user_id', name='uq_coupon_usage_coupon_user'),
    )

    id = Column(Integer, primary_key=True)
    coupon_id = Column(Integer, ForeignKey('coupons.id'), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    used_at = Column(DateTime, default=utc_naive_now, nullable=False)

    coupon = db.relationship("Coupon", backref="usages")
