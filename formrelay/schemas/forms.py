"""Pydantic schemas for forms, templates and notification settings."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from formrelay.domain.conditions import ConditionOperator

DigestFrequency = Literal["realtime", "hourly", "daily", "weekly"]


# ==================== FORMS ====================


class FormCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    # Serialized schema descriptor; stored verbatim
    form_schema: str = Field("{}", alias="schema")


class FormFromTemplate(BaseModel):
    template_id: str


class FormTemplateResponse(BaseModel):
    id: str
    name: str
    description: str
    fields: list[dict[str, Any]]


class FormListItem(BaseModel):
    id: str
    name: str
    description: str | None
    created_at: datetime
    updated_at: datetime
    submission_count: int


class FormListResponse(BaseModel):
    items: list[FormListItem]
    next_cursor: str | None


# ==================== EMAIL SETTINGS ====================


class NotificationCondition(BaseModel):
    field: str = Field(..., min_length=1)
    operator: ConditionOperator
    value: str | int | float


class EmailSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    form_id: str
    enabled: bool
    from_email: str | None
    subject: str | None
    template: str | None
    reply_to: str | None
    developer_notifications_enabled: bool
    developer_email: str | None
    max_notifications_per_hour: int
    notification_conditions: list[dict[str, Any]] | None
    digest_frequency: str
    last_notification_sent_at: datetime | None


class DeveloperNotificationsToggle(BaseModel):
    enabled: bool
    digest_frequency: DigestFrequency = "realtime"
    conditions: list[NotificationCondition] = Field(default_factory=list)
    max_notifications_per_hour: int = Field(10, ge=1, le=100)


class EmailSettingsToggle(BaseModel):
    enabled: bool
    developer_notifications: DeveloperNotificationsToggle | None = None


class EmailSettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    enabled: bool | None = None
    from_email: EmailStr | None = None
    subject: str | None = Field(None, max_length=255)
    template: str | None = None
    reply_to: EmailStr | None = None
    developer_notifications_enabled: bool | None = None
    developer_email: EmailStr | None = None
    max_notifications_per_hour: int | None = Field(None, ge=1, le=100)


class GlobalSettingsUpdate(BaseModel):
    developer_notifications_enabled: bool | None = None
    developer_email: EmailStr | None = None
    max_notifications_per_hour: int | None = Field(None, ge=1, le=100)


class GlobalSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    developer_notifications_enabled: bool
    developer_email: str | None
    max_notifications_per_hour: int


class FormResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    name: str
    description: str | None
    form_schema: str = Field(validation_alias="schema", serialization_alias="schema")
    schema_version: int
    created_at: datetime
    updated_at: datetime
    email_settings: EmailSettingsResponse | None = None
