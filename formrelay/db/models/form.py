"""Form model: a tenant-owned form definition."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from formrelay.db.base import Base
from formrelay.db.models._ids import new_id
from formrelay.domain.clock import utcnow


class Form(Base):
    __tablename__ = "forms"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    schema = Column(Text, nullable=False, default="{}")
    schema_version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="forms")
    email_settings = relationship("EmailSettings", back_populates="form", uselist=False)
    submissions = relationship("Submission", back_populates="form")
