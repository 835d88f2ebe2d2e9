# models/resource.py
from sqlalchemy import Column, Integer, String, Numeric, DateTime
from db.extensions import db
from utils.timeutils import utc_naive_now

RESOURCE_ACTIVE = "active"
RESOURCE_INACTIVE = "inactive"
RESOURCE_MAINTENANCE = "maintenance"
RESOURCE_STATUSES = (RESOURCE_ACTIVE, RESOURCE_INACTIVE, RESOURCE_MAINTENANCE)


class Resource(db.Model):
    """A physical kiosk that display slots are booked on."""
    __tablename__ = 'resources'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    # currency per slot per billing period
    base_rate = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=RESOURCE_ACTIVE)

    created_at = Column(DateTime, default=utc_naive_now, nullable=False)
    updated_at = Column(DateTime, default=utc_naive_now, onupdate=utc_naive_now, nullable=False)

    def __repr__(self):
        return f"<Resource id={self.id} name={self.name} status={self.status}>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'location': self.location,
            'base_rate': float(self.base_rate) if self.base_rate is not None else None,
            'status': self.status,
        }
