"""Pydantic schemas for submission intake, history and export."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationOutcome(BaseModel):
    type: str
    status: str
    error: str | None = None


class SubmissionCreateResponse(BaseModel):
    submission_id: str
    message: str
    created_at: datetime
    notifications: list[NotificationOutcome]


class NotificationLogEntry(BaseModel):
    """One reconciled log entry; ``synthetic`` entries were never persisted."""

    id: str
    type: str
    status: str
    error: str | None
    created_at: datetime
    synthetic: bool = False


class AnalyticsSummary(BaseModel):
    browser: str
    location: str


class SubmissionItem(BaseModel):
    id: str
    form_id: str
    form_name: str
    email: str | None
    data: dict[str, Any]
    created_at: datetime
    notification_logs: list[NotificationLogEntry]
    analytics: AnalyticsSummary


class SubmissionPage(BaseModel):
    items: list[SubmissionItem]
    total: int
    page: int
    limit: int
    pages: int


class FormSubmissionItem(BaseModel):
    id: str
    form_id: str
    email: str | None
    data: dict[str, Any]
    created_at: datetime
    analytics: AnalyticsSummary


class ExportRequest(BaseModel):
    start_date: date | None = None
    end_date: date | None = None


class ExportResponse(BaseModel):
    form_id: str
    count: int
    records: list[dict[str, Any]] = Field(default_factory=list)
