"""Notification models."""

from __future__ import annotations

from enum import StrEnum
from typing import override

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NotificationType(StrEnum):
    """Closed set of notification kinds."""

    JOB_COMPLETE = "job_complete"
    DRIFT_DETECTED = "drift_detected"
    HEALTH_WARNING = "health_warning"
    PR_CREATED = "pr_created"
    INFO = "info"


class Notification(BaseModel):
    """User-facing notification.

    Stored and exchanged with camelCase keys (``actionUrl``). Instances are
    immutable; state changes such as marking read produce copies.
    """

    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(
        ...,
        description="Unique notification identifier",
        min_length=1,
    )

    type: NotificationType = Field(
        default=NotificationType.INFO,
        description="Kind of event the notification reports",
    )

    title: str = Field(
        ...,
        description="Short headline",
    )

    message: str = Field(
        default="",
        description="Notification body",
    )

    timestamp: str = Field(
        ...,
        description="ISO-8601 creation time",
    )

    read: bool = Field(
        default=False,
        description="Whether the user has seen the notification",
    )

    action_url: str | None = Field(
        default=None,
        description="Dashboard route or external URL to open",
    )

    metadata: dict[str, object] = Field(
        default_factory=dict,
        description="Opaque event payload",
    )

    def as_read(self) -> Notification:
        """Return a copy marked as read."""
        if self.read:
            return self
        return self.model_copy(update={"read": True})

    @override
    def __str__(self) -> str:
        return f"Notification(id='{self.id}', type='{self.type}', read={self.read})"
