"""Notification decision and log reconciliation.

Pure domain functions. ``decide`` turns a submission, the form's email
settings and the tenant's entitlements into a delivery plan; ``reconcile``
turns possibly-sparse persisted log rows into exactly one display entry per
notification type. Neither touches the database.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Iterable

from formrelay.domain.clock import as_utc
from formrelay.domain.conditions import conditions_match
from formrelay.domain.entitlements import Entitlements

DEFAULT_MAX_NOTIFICATIONS_PER_HOUR = 10

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class NotificationType(StrEnum):
    SUBMISSION_CONFIRMATION = "SUBMISSION_CONFIRMATION"
    DEVELOPER_NOTIFICATION = "DEVELOPER_NOTIFICATION"
    DIGEST = "DIGEST"


class NotificationStatus(StrEnum):
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# Channels every submission has exactly one effective log entry for
ADDRESSABLE_TYPES = (
    NotificationType.SUBMISSION_CONFIRMATION,
    NotificationType.DEVELOPER_NOTIFICATION,
)

CONFIRMATION_PLAN_REASON = "Email not sent - plan does not include confirmation emails"
CONFIRMATION_NOT_CONFIGURED_REASON = "Email not sent - plan or settings not configured"
CONFIRMATION_DISABLED_REASON = "Email not sent - confirmation emails are disabled"
CONFIRMATION_NO_EMAIL_REASON = "Email not sent - submission has no valid email address"

DEVELOPER_PLAN_REASON = "Developer notification not sent - plan does not include developer notifications"
DEVELOPER_DISABLED_REASON = "Developer notifications are disabled"
DEVELOPER_NO_RECIPIENT_REASON = "Developer notification not sent - no developer email configured"
DEVELOPER_CONDITIONS_REASON = "Developer notification not sent - notification conditions not met"

NOT_RECORDED_REASON = "Notification was not recorded for this submission"


def is_plausible_email(value: Any) -> bool:
    return isinstance(value, str) and bool(_EMAIL_RE.match(value.strip()))


def submitter_email(data: dict[str, Any]) -> str | None:
    """The submitter's address, when ``data.email`` looks like one."""
    value = data.get("email")
    if is_plausible_email(value):
        return value.strip()
    return None


@dataclass(frozen=True)
class ChannelDecision:
    """Whether one channel should be attempted, and why not when it shouldn't."""

    attempt: bool
    reason: str | None = None
    recipient: str | None = None

    @classmethod
    def skip(cls, reason: str) -> "ChannelDecision":
        return cls(attempt=False, reason=reason)


@dataclass(frozen=True)
class DeliveryPlan:
    confirmation: ChannelDecision
    developer_notice: ChannelDecision

    @property
    def send_confirmation(self) -> bool:
        return self.confirmation.attempt

    @property
    def send_developer_notice(self) -> bool:
        return self.developer_notice.attempt

    def for_type(self, notification_type: NotificationType) -> ChannelDecision | None:
        if notification_type == NotificationType.SUBMISSION_CONFIRMATION:
            return self.confirmation
        if notification_type == NotificationType.DEVELOPER_NOTIFICATION:
            return self.developer_notice
        return None


def _decide_confirmation(data, email_settings, entitlements: Entitlements) -> ChannelDecision:
    if not entitlements.can_send_confirmations:
        return ChannelDecision.skip(CONFIRMATION_PLAN_REASON)
    # Confirmation has no tenant-level fallback
    if email_settings is None:
        return ChannelDecision.skip(CONFIRMATION_NOT_CONFIGURED_REASON)
    if not email_settings.enabled:
        return ChannelDecision.skip(CONFIRMATION_DISABLED_REASON)
    recipient = submitter_email(data)
    if recipient is None:
        return ChannelDecision.skip(CONFIRMATION_NO_EMAIL_REASON)
    return ChannelDecision(attempt=True, recipient=recipient)


def hourly_cap(email_settings, global_settings) -> int:
    source = email_settings if email_settings is not None else global_settings
    cap = getattr(source, "max_notifications_per_hour", None) if source is not None else None
    return cap or DEFAULT_MAX_NOTIFICATIONS_PER_HOUR


def _decide_developer_notice(
    data,
    email_settings,
    global_settings,
    entitlements: Entitlements,
    owner_email: str | None,
    recent_developer_notifications: int,
) -> ChannelDecision:
    if not entitlements.can_send_developer_notifications:
        return ChannelDecision.skip(DEVELOPER_PLAN_REASON)

    source = email_settings if email_settings is not None else global_settings
    if source is None or not source.developer_notifications_enabled:
        return ChannelDecision.skip(DEVELOPER_DISABLED_REASON)

    recipient = (
        (email_settings.developer_email if email_settings is not None else None)
        or (global_settings.developer_email if global_settings is not None else None)
        or owner_email
    )
    if not recipient:
        return ChannelDecision.skip(DEVELOPER_NO_RECIPIENT_REASON)

    if email_settings is not None and not conditions_match(email_settings.notification_conditions, data):
        return ChannelDecision.skip(DEVELOPER_CONDITIONS_REASON)

    cap = hourly_cap(email_settings, global_settings)
    if recent_developer_notifications >= cap:
        return ChannelDecision.skip(
            f"Developer notification not sent - hourly limit reached ({recent_developer_notifications}/{cap})"
        )

    return ChannelDecision(attempt=True, recipient=recipient)


def decide(
    data: dict[str, Any],
    email_settings,
    entitlements: Entitlements,
    *,
    global_settings=None,
    owner_email: str | None = None,
    recent_developer_notifications: int = 0,
) -> DeliveryPlan:
    """Decide which notification channels to attempt for a submission.

    Pure function -- the plan is executed by the delivery executor.

    Args:
        data: Submitted payload (with or without ``_meta``).
        email_settings: The form's EmailSettings row, or None when the form has none.
        entitlements: Capabilities of the owning tenant's plan.
        global_settings: Tenant GlobalSettings, consulted for the developer
            notice only when the form has no EmailSettings.
        owner_email: Fallback recipient for the developer notice.
        recent_developer_notifications: Developer notice attempts for this
            form within the trailing hour.

    Rules:
        - Confirmation needs a confirmation-capable plan, ``enabled`` settings
          and a plausible ``email`` field. It is not rate limited.
        - Developer notice is evaluated independently: plan, toggle (form
          settings, else global settings), a recipient, matching conditions
          and the hourly cap.
    """
    return DeliveryPlan(
        confirmation=_decide_confirmation(data, email_settings, entitlements),
        developer_notice=_decide_developer_notice(
            data,
            email_settings,
            global_settings,
            entitlements,
            owner_email,
            recent_developer_notifications,
        ),
    )


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DisplayLog:
    """One effective notification log entry as shown to a caller."""

    id: str
    type: NotificationType
    status: NotificationStatus
    error: str | None
    created_at: datetime
    synthetic: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "error": self.error,
            "created_at": as_utc(self.created_at).isoformat(),
            "synthetic": self.synthetic,
        }


def _synthetic_id(submission_id: str, notification_type: NotificationType) -> str:
    suffix = "user-email" if notification_type == NotificationType.SUBMISSION_CONFIRMATION else "dev-email"
    return f"temp-{submission_id}-{suffix}"


def _newest_first_key(log) -> tuple:
    return (as_utc(log.created_at), str(log.id))


def reconcile(
    submission_id: str,
    submission_created_at: datetime,
    persisted_logs: Iterable[Any],
    plan: DeliveryPlan,
) -> list[DisplayLog]:
    """Merge persisted logs with synthesized defaults, one entry per type.

    Read-time only: synthesized entries are never written back.

    Args:
        submission_id: The submission the logs belong to.
        submission_created_at: Timestamp given to synthesized entries.
        persisted_logs: NotificationLog rows (any object with id, type,
            status, error, created_at) for this submission.
        plan: Decision computed from the current settings, used to explain
            channels that have no persisted row.

    Returns:
        Entries ordered by type name, newest first within a type.
    """
    latest: dict[NotificationType, Any] = {}
    for log in sorted(persisted_logs, key=_newest_first_key, reverse=True):
        latest.setdefault(NotificationType(log.type), log)

    entries: list[DisplayLog] = [
        DisplayLog(
            id=str(log.id),
            type=notification_type,
            status=NotificationStatus(log.status),
            error=log.error or None,
            created_at=log.created_at,
        )
        for notification_type, log in latest.items()
    ]

    for notification_type in ADDRESSABLE_TYPES:
        if notification_type in latest:
            continue
        decision = plan.for_type(notification_type)
        reason = decision.reason if decision is not None and not decision.attempt else NOT_RECORDED_REASON
        entries.append(
            DisplayLog(
                id=_synthetic_id(submission_id, notification_type),
                type=notification_type,
                status=NotificationStatus.SKIPPED,
                error=reason,
                created_at=submission_created_at,
                synthetic=True,
            )
        )

    entries.sort(key=_newest_first_key, reverse=True)
    entries.sort(key=lambda entry: entry.type.value)
    return entries
