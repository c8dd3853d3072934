"""Tests for read-time notification log reconciliation."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from formrelay.domain.notifications import (
    DEVELOPER_DISABLED_REASON,
    NOT_RECORDED_REASON,
    ChannelDecision,
    DeliveryPlan,
    NotificationStatus,
    NotificationType,
    reconcile,
)

pytestmark = pytest.mark.unit

CREATED = datetime(2026, 5, 1, 9, 0, tzinfo=UTC)

BOTH_ATTEMPTED = DeliveryPlan(
    confirmation=ChannelDecision(attempt=True, recipient="a@b.com"),
    developer_notice=ChannelDecision(attempt=True, recipient="dev@example.com"),
)


def log(id, type, status, minutes=0, error=None):
    return SimpleNamespace(
        id=id,
        type=type.value,
        status=status.value,
        error=error,
        created_at=CREATED + timedelta(minutes=minutes),
    )


class TestReconcile:
    def test_synthesizes_both_channels_when_nothing_persisted(self):
        plan = DeliveryPlan(
            confirmation=ChannelDecision.skip("Email not sent - plan or settings not configured"),
            developer_notice=ChannelDecision.skip(DEVELOPER_DISABLED_REASON),
        )

        entries = reconcile("sub-1", CREATED, [], plan)

        assert [e.type for e in entries] == [
            NotificationType.DEVELOPER_NOTIFICATION,
            NotificationType.SUBMISSION_CONFIRMATION,
        ]
        assert all(e.status == NotificationStatus.SKIPPED for e in entries)
        assert all(e.synthetic for e in entries)
        assert entries[0].id == "temp-sub-1-dev-email"
        assert entries[0].error == DEVELOPER_DISABLED_REASON
        assert entries[1].id == "temp-sub-1-user-email"
        assert entries[1].error == "Email not sent - plan or settings not configured"
        assert entries[1].created_at == CREATED

    def test_keeps_only_newest_persisted_log_per_type(self):
        logs = [
            log("l1", NotificationType.SUBMISSION_CONFIRMATION, NotificationStatus.FAILED, minutes=1, error="boom"),
            log("l2", NotificationType.SUBMISSION_CONFIRMATION, NotificationStatus.SENT, minutes=5),
            log("l3", NotificationType.DEVELOPER_NOTIFICATION, NotificationStatus.SENT, minutes=2),
        ]

        entries = reconcile("sub-1", CREATED, logs, BOTH_ATTEMPTED)

        assert len(entries) == 2
        by_type = {e.type: e for e in entries}
        assert by_type[NotificationType.SUBMISSION_CONFIRMATION].id == "l2"
        assert by_type[NotificationType.SUBMISSION_CONFIRMATION].status == NotificationStatus.SENT
        assert by_type[NotificationType.DEVELOPER_NOTIFICATION].synthetic is False

    def test_missing_row_for_eligible_channel_is_marked_not_recorded(self):
        logs = [log("l1", NotificationType.SUBMISSION_CONFIRMATION, NotificationStatus.SENT)]

        entries = reconcile("sub-1", CREATED, logs, BOTH_ATTEMPTED)

        dev = next(e for e in entries if e.type == NotificationType.DEVELOPER_NOTIFICATION)
        assert dev.synthetic is True
        assert dev.status == NotificationStatus.SKIPPED
        assert dev.error == NOT_RECORDED_REASON

    def test_digest_logs_pass_through(self):
        logs = [log("d1", NotificationType.DIGEST, NotificationStatus.SENT, minutes=30)]

        entries = reconcile("sub-1", CREATED, logs, BOTH_ATTEMPTED)

        assert [e.type for e in entries] == [
            NotificationType.DEVELOPER_NOTIFICATION,
            NotificationType.DIGEST,
            NotificationType.SUBMISSION_CONFIRMATION,
        ]

    def test_deterministic_and_pure(self):
        logs = [log("l1", NotificationType.DEVELOPER_NOTIFICATION, NotificationStatus.FAILED, error="smtp down")]
        first = reconcile("sub-1", CREATED, logs, BOTH_ATTEMPTED)
        second = reconcile("sub-1", CREATED, logs, BOTH_ATTEMPTED)
        assert first == second
        assert len(logs) == 1

    def test_to_dict_serializes_enums_and_naive_timestamps(self):
        naive = SimpleNamespace(
            id="l1",
            type="SUBMISSION_CONFIRMATION",
            status="SENT",
            error="",
            created_at=datetime(2026, 5, 1, 9, 0),
        )
        entry = reconcile("sub-1", CREATED, [naive], BOTH_ATTEMPTED)[-1]
        assert entry.to_dict() == {
            "id": "l1",
            "type": "SUBMISSION_CONFIRMATION",
            "status": "SENT",
            "error": None,
            "created_at": "2026-05-01T09:00:00+00:00",
            "synthetic": False,
        }
