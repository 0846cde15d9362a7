"""Tests for mapping live event frames to notifications."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from docsynth_realtime.notifications.mapping import notification_from_message
from docsynth_realtime.notifications.models import NotificationType
from docsynth_realtime.types import InboundMessage

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)
NOW_MS = int(NOW.timestamp() * 1000)


@pytest.mark.unit
class TestNotificationFromMessage:
    """Test each recognized event type."""

    def test_job_completed(self) -> None:
        """Test the job completed notification."""
        notification = notification_from_message(
            InboundMessage(type="job:completed", data={"jobId": "42", "repositoryName": "acme/api"}),
            now=NOW,
        )

        assert notification is not None
        assert notification.id == f"job-{NOW_MS}"
        assert notification.type is NotificationType.JOB_COMPLETE
        assert notification.title == "Documentation Generated"
        assert notification.message == "Documentation for acme/api has been generated"
        assert notification.action_url == "/dashboard/jobs/42"
        assert notification.timestamp == "2024-05-01T12:00:00Z"
        assert notification.metadata == {"jobId": "42", "repositoryName": "acme/api"}
        assert notification.read is False

    def test_drift_detected(self) -> None:
        """Test the drift notification."""
        notification = notification_from_message(
            InboundMessage(
                type="drift:detected",
                data={"count": 3, "repositoryName": "acme/api", "repositoryId": "r1"},
            ),
            now=NOW,
        )

        assert notification is not None
        assert notification.type is NotificationType.DRIFT_DETECTED
        assert notification.title == "Documentation Drift Detected"
        assert notification.message == "3 document(s) may be out of sync in acme/api"
        assert notification.action_url == "/dashboard/repositories/r1"

    def test_health_warning(self) -> None:
        """Test the health warning notification."""
        notification = notification_from_message(
            InboundMessage(type="health:warning", data={"repositoryName": "acme/api", "score": 42}),
            now=NOW,
        )

        assert notification is not None
        assert notification.type is NotificationType.HEALTH_WARNING
        assert notification.message == "Documentation health for acme/api dropped to 42%"
        assert notification.action_url == "/dashboard/analytics"

    @pytest.mark.parametrize(
        ("data", "expected_url"),
        [({"prUrl": "https://github.com/acme/api/pull/7"}, "https://github.com/acme/api/pull/7"), ({}, None)],
    )
    def test_pr_created(self, data: dict[str, object], expected_url: str | None) -> None:
        """Test the PR notification, with and without a PR URL."""
        notification = notification_from_message(InboundMessage(type="pr:created", data=data), now=NOW)

        assert notification is not None
        assert notification.type is NotificationType.PR_CREATED
        assert notification.action_url == expected_url

    def test_missing_fields_render_unknown(self) -> None:
        """Test that missing data fields do not break rendering."""
        notification = notification_from_message(InboundMessage(type="job:completed", data=None), now=NOW)

        assert notification is not None
        assert notification.message == "Documentation for unknown has been generated"
        assert notification.action_url == "/dashboard/jobs/unknown"

    def test_frame_id_used_when_present(self) -> None:
        """Test that a server-provided id is kept."""
        notification = notification_from_message(
            InboundMessage(type="pr:created", data={"id": "pr-evt-9"}),
            now=NOW,
        )

        assert notification is not None
        assert notification.id == "pr-evt-9"

    @pytest.mark.parametrize("message_type", ["job:update", "activity:new", "pong", "chat:stream:chunk"])
    def test_unrecognized_types(self, message_type: str) -> None:
        """Test that other frame types produce no notification."""
        assert notification_from_message(InboundMessage(type=message_type, data={}), now=NOW) is None
