"""Submission model: one end-user payload against a form."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from formrelay.db.base import Base
from formrelay.db.models._ids import new_id
from formrelay.domain.clock import utcnow


class Submission(Base):
    __tablename__ = "submissions"
    # One submission per (form, email); rows without an email are not constrained
    __table_args__ = (UniqueConstraint("form_id", "email", name="uq_submissions_form_email"),)

    id = Column(String(36), primary_key=True, default=new_id)
    form_id = Column(String(36), ForeignKey("forms.id"), nullable=False, index=True)

    # Submitter payload plus the enricher's "_meta" object; never updated
    data = Column(JSON, nullable=False, default=dict)
    email = Column(String(255), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    form = relationship("Form", back_populates="submissions")
    notification_logs = relationship("NotificationLog", back_populates="submission")
