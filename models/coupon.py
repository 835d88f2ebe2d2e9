# models/coupon.py
from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from db.extensions import db
from utils.timeutils import utc_naive_now

TYPE_PERCENTAGE = "percentage"
TYPE_FIXED = "fixed"
TYPE_FREE = "free"
COUPON_TYPES = (TYPE_PERCENTAGE, TYPE_FIXED, TYPE_FREE)

SCOPE_ROLE = "role"
SCOPE_RESOURCE = "resource"
SCOPE_PRODUCT = "product"
SCOPE_SUBSCRIPTION_TIER = "subscription_tier"
SCOPE_TYPES = (SCOPE_ROLE, SCOPE_RESOURCE, SCOPE_PRODUCT, SCOPE_SUBSCRIPTION_TIER)


class Coupon(db.Model):
    __tablename__ = 'coupons'

    id = Column(Integer, primary_key=True)
    # stored trimmed and upper-cased, looked up case-insensitively
    code = Column(String(64), unique=True, nullable=False, index=True)
    type = Column(String(16), nullable=False, default=TYPE_PERCENTAGE)
    value = Column(Numeric(10, 2), nullable=False, default=0)

    max_uses = Column(Integer, nullable=False, default=1)
    current_uses = Column(Integer, nullable=False, default=0)
    min_amount = Column(Numeric(12, 2), nullable=True)

    # naive UTC
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, default=utc_naive_now, nullable=False)
    updated_at = Column(DateTime, default=utc_naive_now, onupdate=utc_naive_now, nullable=False)

    scopes = relationship('CouponScope', back_populates='coupon', order_by='CouponScope.id',
                          cascade='all, delete-orphan', lazy='selectin')

    def __repr__(self):
        return f"<Coupon code={self.code} type={self.type} value={self.value}>"

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'type': self.type,
            'value': float(self.value),
            'max_uses': self.max_uses,
            'current_uses': self.current_uses,
            'min_amount': float(self.min_amount) if self.min_amount is not None else None,
            'valid_from': self.valid_from.isoformat() + "Z" if self.valid_from else None,
            'valid_until': self.valid_until.isoformat() + "Z" if self.valid_until else None,
            'is_active': self.is_active,
            'scopes': [s.to_dict() for s in self.scopes],
        }


class CouponScope(db.Model):
    __tablename__ = 'coupon_scopes'

    id = Column(Integer, primary_key=True)
    coupon_id = Column(Integer, ForeignKey('coupons.id', ondelete='CASCADE'), nullable=False, index=True)
    scope_type = Column(String(32), nullable=False)
    scope_value = Column(String(255), nullable=False)

    coupon = relationship('Coupon', back_populates='scopes')

    def to_dict(self):
        return {'scope_type': self.scope_type, 'scope_value': self.scope_value}
