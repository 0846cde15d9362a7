"""Mapping from live event frames to notifications.

Each recognized frame type has a builder producing the title, message and
action URL shown to the user. Unrecognized frame types map to nothing.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from docsynth_realtime.notifications.models import Notification, NotificationType
from docsynth_realtime.types import InboundMessage


@dataclass(slots=True, frozen=True)
class _Rendered:
    title: str
    message: str
    action_url: str | None


@dataclass(slots=True, frozen=True)
class NotificationRule:
    """How one live event type becomes a notification."""

    id_prefix: str
    notification_type: NotificationType
    render: Callable[[Mapping[str, object]], _Rendered]


def _text(data: Mapping[str, object], key: str) -> str:
    value = data.get(key)
    if value is None:
        return "unknown"
    return str(value)


def _render_job_completed(data: Mapping[str, object]) -> _Rendered:
    return _Rendered(
        title="Documentation Generated",
        message=f"Documentation for {_text(data, 'repositoryName')} has been generated",
        action_url=f"/dashboard/jobs/{_text(data, 'jobId')}",
    )


def _render_drift_detected(data: Mapping[str, object]) -> _Rendered:
    return _Rendered(
        title="Documentation Drift Detected",
        message=f"{_text(data, 'count')} document(s) may be out of sync in {_text(data, 'repositoryName')}",
        action_url=f"/dashboard/repositories/{_text(data, 'repositoryId')}",
    )


def _render_health_warning(data: Mapping[str, object]) -> _Rendered:
    return _Rendered(
        title="Health Score Dropped",
        message=f"Documentation health for {_text(data, 'repositoryName')} dropped to {_text(data, 'score')}%",
        action_url="/dashboard/analytics",
    )


def _render_pr_created(data: Mapping[str, object]) -> _Rendered:
    pr_url = data.get("prUrl")
    return _Rendered(
        title="Documentation PR Created",
        message="A new PR with documentation updates is ready for review",
        action_url=pr_url if isinstance(pr_url, str) and pr_url else None,
    )


NOTIFICATION_RULES: dict[str, NotificationRule] = {
    "job:completed": NotificationRule("job", NotificationType.JOB_COMPLETE, _render_job_completed),
    "drift:detected": NotificationRule("drift", NotificationType.DRIFT_DETECTED, _render_drift_detected),
    "health:warning": NotificationRule("health", NotificationType.HEALTH_WARNING, _render_health_warning),
    "pr:created": NotificationRule("pr", NotificationType.PR_CREATED, _render_pr_created),
}


def notification_from_message(
    message: InboundMessage,
    *,
    now: datetime | None = None,
) -> Notification | None:
    """Build a notification for a live event frame.

    The id is ``<prefix>-<epoch milliseconds>`` unless the frame data
    carries its own ``id``.

    Args:
        message: Decoded inbound frame
        now: Creation time (default: current UTC time)

    Returns:
        The notification, or None if the frame type is not a notification event
    """
    rule = NOTIFICATION_RULES.get(message.type)
    if rule is None:
        return None

    created = now or datetime.now(UTC)
    data = message.data_mapping()
    rendered = rule.render(data)

    frame_id = data.get("id")
    if isinstance(frame_id, str) and frame_id:
        notification_id = frame_id
    else:
        notification_id = f"{rule.id_prefix}-{int(created.timestamp() * 1000)}"

    return Notification(
        id=notification_id,
        type=rule.notification_type,
        title=rendered.title,
        message=rendered.message,
        timestamp=created.isoformat().replace("+00:00", "Z"),
        action_url=rendered.action_url,
        metadata=dict(data),
    )
