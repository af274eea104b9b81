"""Pipeline definitions for the content-post and video job kinds."""

from contentfactory.pipeline.content import ContentCollaborators, build_content_pipeline
from contentfactory.pipeline.video import VideoCollaborators, build_video_pipeline

__all__ = [
    "ContentCollaborators",
    "VideoCollaborators",
    "build_content_pipeline",
    "build_video_pipeline",
]
