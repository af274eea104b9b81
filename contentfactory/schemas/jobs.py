"""Job kinds, caller parameters and read-only snapshots exposed to callers."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contentfactory.config import settings
from contentfactory.orchestrator.state import JobState, is_terminal
from contentfactory.schemas.storyboard import Scene


class JobKind(str, Enum):
    """Which pipeline definition a job runs."""

    CONTENT_POST = "content_post"
    VIDEO = "video"


class ContentJobParams(BaseModel):
    """Parameters for a content-post job."""

    count: int = Field(
        default=settings.pipeline.default_post_count,
        ge=1,
        le=settings.pipeline.max_post_count,
        description="Number of posts to create, one per iteration",
    )


class VideoJobParams(BaseModel):
    """Parameters for a multi-scene video job."""

    prompt: str = Field(min_length=1, description="What the video is about")
    niche: Optional[str] = Field(default=None, description="Content niche, e.g. 'Travel'")
    scene_count: int = Field(
        default=settings.pipeline.default_scene_count,
        ge=1,
        le=settings.pipeline.max_scene_count,
    )
    total_duration: int = Field(
        default=settings.pipeline.default_total_duration,
        ge=15,
        le=60,
        description="Target total duration in seconds",
    )


JobParams = Union[ContentJobParams, VideoJobParams]

PARAMS_BY_KIND: dict[JobKind, type[BaseModel]] = {
    JobKind.CONTENT_POST: ContentJobParams,
    JobKind.VIDEO: VideoJobParams,
}


def parse_params(kind: JobKind, params: Union[BaseModel, dict[str, Any], None]) -> BaseModel:
    """Validate caller parameters against the schema for the job kind.

    Raises:
        pydantic.ValidationError: If params do not match the kind's schema.
    """
    schema = PARAMS_BY_KIND[JobKind(kind)]
    if isinstance(params, schema):
        return params
    if isinstance(params, BaseModel):
        params = params.model_dump()
    return schema.model_validate(params or {})


class JobSnapshot(BaseModel):
    """Persisted job state as seen by callers polling for status."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: JobKind
    status: JobState
    progress: float = 0.0
    total_units: int = 0
    completed_units: int = 0
    current_stage: Optional[str] = None
    current_agent: Optional[str] = None
    error_message: Optional[str] = None
    params: Optional[dict] = None
    result: Optional[dict] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.status == JobState.RUNNING

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


class PostRecord(BaseModel):
    """Post entity view."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    iteration: int
    niche: Optional[str] = None
    caption: Optional[str] = None
    media_url: Optional[str] = None
    keywords: Optional[list[str]] = None
    status: str
    external_post_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    published_at: Optional[datetime] = None


class VideoRecord(BaseModel):
    """Video entity view with its scene breakdown."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    prompt: str
    niche: str
    title: Optional[str] = None
    story_script: Optional[str] = None
    scenes: list[Scene] = Field(default_factory=list)
    status: str
    video_url: Optional[str] = None
    duration: int
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("scenes", mode="before")
    @classmethod
    def default_scenes(cls, v):
        """Videos have no scenes until the storyboard stage completes."""
        return v or []

    @property
    def completed_scenes(self) -> int:
        return sum(1 for scene in self.scenes if scene.media_url)


class AgentRecord(BaseModel):
    """Specialist agent status view."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    description: Optional[str] = None
    status: str
    tasks_completed: int
    last_active: Optional[datetime] = None
