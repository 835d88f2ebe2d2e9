# models/systemSetting.py
from sqlalchemy import Column, String, DateTime
from db.extensions import db
from utils.timeutils import utc_naive_now


class SystemSetting(db.Model):
    """Tenant-configurable key/value settings."""
    __tablename__ = 'system_settings'

    key = Column(String(100), primary_key=True)
    value = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=utc_naive_now, onupdate=utc_naive_now, nullable=False)

    def __repr__(self):
        return f"<SystemSetting {self.key}={self.value}>"
