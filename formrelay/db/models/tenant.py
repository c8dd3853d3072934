"""Tenant model: an account owning forms, billed under a plan tier."""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from formrelay.db.base import Base
from formrelay.db.models._ids import new_id
from formrelay.domain.clock import utcnow
from formrelay.domain.entitlements import PlanTier


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=new_id)
    clerk_user_id = Column(String(255), unique=True, nullable=False, index=True)

    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)

    # Written only by the billing flow
    plan = Column(String(20), nullable=False, default=PlanTier.FREE.value)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    forms = relationship("Form", back_populates="tenant")
    global_settings = relationship("GlobalSettings", back_populates="tenant", uselist=False)
