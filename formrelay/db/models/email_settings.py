"""EmailSettings model: per-form confirmation and developer-notice config (1:1 with Form)."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from formrelay.db.base import Base
from formrelay.db.models._ids import new_id
from formrelay.domain.clock import utcnow


class EmailSettings(Base):
    __tablename__ = "email_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    form_id = Column(String(36), ForeignKey("forms.id"), unique=True, nullable=False, index=True)

    # Submitter confirmation
    enabled = Column(Boolean, nullable=False, default=False)
    from_email = Column(String(255), nullable=True)
    subject = Column(String(255), nullable=True)
    template = Column(Text, nullable=True)
    reply_to = Column(String(255), nullable=True)

    # Developer notifications
    developer_notifications_enabled = Column(Boolean, nullable=False, default=False)
    developer_email = Column(String(255), nullable=True)
    max_notifications_per_hour = Column(Integer, nullable=False, default=10)
    notification_conditions = Column(JSON, nullable=True)  # [{"field", "operator", "value"}]
    digest_frequency = Column(String(20), nullable=False, default="realtime")
    last_notification_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    form = relationship("Form", back_populates="email_settings")
