"""NotificationLog model: append-only record of one delivery attempt."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from formrelay.db.base import Base
from formrelay.db.models._ids import new_id
from formrelay.domain.clock import utcnow


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    submission_id = Column(String(36), ForeignKey("submissions.id"), nullable=False, index=True)
    form_id = Column(String(36), ForeignKey("forms.id"), nullable=False, index=True)

    type = Column(String(40), nullable=False)  # SUBMISSION_CONFIRMATION, DEVELOPER_NOTIFICATION, DIGEST
    status = Column(String(20), nullable=False)  # SENT, FAILED, SKIPPED
    error = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    submission = relationship("Submission", back_populates="notification_logs")
