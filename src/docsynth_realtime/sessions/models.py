"""Chat and activity models exchanged with the backend."""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class ChatSource(_WireModel):
    """Document excerpt cited by an assistant answer."""

    document_id: str = Field(..., description="Cited document identifier")
    document_path: str = Field(..., description="Repository path of the document")
    excerpt: str = Field(default="", description="Quoted passage")
    relevance_score: float = Field(default=0.0, description="Retrieval score")


class ChatMessage(_WireModel):
    """One chat turn."""

    id: str = Field(..., min_length=1, description="Message identifier")
    role: Literal["user", "assistant"] = Field(..., description="Author of the message")
    content: str = Field(default="", description="Message text")
    timestamp: str = Field(..., description="ISO-8601 creation time")
    sources: list[ChatSource] = Field(default_factory=list, description="Cited documents")


class ActivityType(StrEnum):
    """Kinds of events shown in the activity feed."""

    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    DOC_GENERATED = "doc_generated"
    DRIFT_DETECTED = "drift_detected"
    PR_CREATED = "pr_created"


class ActivityEvent(_WireModel):
    """Entry of the activity feed."""

    id: str = Field(..., min_length=1, description="Event identifier")
    type: ActivityType = Field(..., description="Event kind")
    title: str = Field(..., description="Short headline")
    description: str = Field(default="", description="Event details")
    repository_name: str | None = Field(default=None, description="Repository the event concerns")
    timestamp: str = Field(..., description="ISO-8601 event time")
    metadata: dict[str, object] = Field(default_factory=dict, description="Opaque event payload")
