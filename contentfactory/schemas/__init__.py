"""Pydantic schemas shared by the orchestrator, pipelines and API."""

from contentfactory.schemas.jobs import (
    AgentRecord,
    ContentJobParams,
    JobKind,
    JobSnapshot,
    PostRecord,
    VideoJobParams,
    VideoRecord,
    parse_params,
)
from contentfactory.schemas.storyboard import Scene, Storyboard, StoryboardOutput

__all__ = [
    "AgentRecord",
    "ContentJobParams",
    "JobKind",
    "JobSnapshot",
    "PostRecord",
    "Scene",
    "Storyboard",
    "StoryboardOutput",
    "VideoJobParams",
    "VideoRecord",
    "parse_params",
]
