"""GlobalSettings model: tenant-wide developer-notification fallback."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from formrelay.db.base import Base
from formrelay.db.models._ids import new_id
from formrelay.domain.clock import utcnow


class GlobalSettings(Base):
    __tablename__ = "global_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), unique=True, nullable=False, index=True)

    developer_notifications_enabled = Column(Boolean, nullable=False, default=False)
    developer_email = Column(String(255), nullable=True)
    max_notifications_per_hour = Column(Integer, nullable=False, default=10)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="global_settings")
