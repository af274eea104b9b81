"""Typed progress and lifecycle events pushed through the event broadcaster.

Every variant carries the job identity and progress so a subscriber can render
status without polling. The ``event`` field is the discriminator; use
``EVENT_ADAPTER.validate_python`` to parse a payload back into its variant.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from contentfactory.orchestrator.state import JobState
from contentfactory.schemas.jobs import JobKind
from contentfactory.schemas.storyboard import Scene


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _EventBase(BaseModel):
    job_id: uuid.UUID
    kind: JobKind
    progress: float = 0.0
    timestamp: datetime = Field(default_factory=_now)


class JobStarted(_EventBase):
    event: Literal["job_started"] = "job_started"
    total_units: int = 0


class JobStatus(_EventBase):
    """Emitted after each persisted running -> running update."""

    event: Literal["job_status"] = "job_status"
    status: JobState = JobState.RUNNING
    current_stage: Optional[str] = None
    current_agent: Optional[str] = None
    iteration: Optional[int] = None
    total_iterations: Optional[int] = None
    completed_units: int = 0
    total_units: int = 0


class StoryboardCreated(_EventBase):
    event: Literal["storyboard_created"] = "storyboard_created"
    video_id: Optional[uuid.UUID] = None
    title: str
    scenes: list[Scene]


class SceneCompleted(_EventBase):
    event: Literal["scene_completed"] = "scene_completed"
    scene_number: int
    total_scenes: int
    media_url: str


class PostCreated(_EventBase):
    event: Literal["post_created"] = "post_created"
    post_id: uuid.UUID
    iteration: int
    niche: Optional[str] = None
    caption: Optional[str] = None
    media_url: Optional[str] = None
    status: str


class ItemFailed(_EventBase):
    """A single content-post iteration failed; the job continues."""

    event: Literal["item_failed"] = "item_failed"
    iteration: int
    stage: Optional[str] = None
    error: str
    post_id: Optional[uuid.UUID] = None


class JobCompleted(_EventBase):
    event: Literal["job_completed"] = "job_completed"
    progress: float = 100.0
    completed_units: int = 0
    total_units: int = 0
    result: Optional[dict] = None


class JobFailed(_EventBase):
    event: Literal["job_failed"] = "job_failed"
    error: str


class JobCancelledEvent(_EventBase):
    event: Literal["job_cancelled"] = "job_cancelled"
    completed_units: int = 0
    total_units: int = 0


JobEvent = Annotated[
    Union[
        JobStarted,
        JobStatus,
        StoryboardCreated,
        SceneCompleted,
        PostCreated,
        ItemFailed,
        JobCompleted,
        JobFailed,
        JobCancelledEvent,
    ],
    Field(discriminator="event"),
]

EVENT_ADAPTER: TypeAdapter[JobEvent] = TypeAdapter(JobEvent)

EVENT_NAMES = frozenset(
    {
        "job_started",
        "job_status",
        "storyboard_created",
        "scene_completed",
        "post_created",
        "item_failed",
        "job_completed",
        "job_failed",
        "job_cancelled",
    }
)

TERMINAL_EVENTS = frozenset({"job_completed", "job_failed", "job_cancelled"})
