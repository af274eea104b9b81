"""Default wiring of stores, collaborators and pipelines into an Orchestrator.

Usage:
    orchestrator = build_orchestrator()
    job_id = await orchestrator.start("content_post", {"count": 3})

Tests pass their own session factory and fake collaborators.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentfactory.db.store import AgentStore, EntityStore, JobStore
from contentfactory.orchestrator.broadcaster import EventBroadcaster
from contentfactory.orchestrator.runner import Orchestrator
from contentfactory.pipeline.content import ContentCollaborators, build_content_pipeline
from contentfactory.pipeline.video import VideoCollaborators, build_video_pipeline
from contentfactory.schemas.jobs import JobKind

logger = logging.getLogger(__name__)


def default_content_collaborators() -> ContentCollaborators:
    """Vertex AI / Ollama agents, Gemini images and the Circlo publisher."""
    from contentfactory.services.agents import CaptionWriter, Showrunner, TrendExplorer
    from contentfactory.services.image_generation import ImageGenerator
    from contentfactory.services.publisher import CircloPublisher

    return ContentCollaborators(
        trend_explorer=TrendExplorer(),
        showrunner=Showrunner(),
        image_generator=ImageGenerator(),
        caption_writer=CaptionWriter(),
        publisher=CircloPublisher(),
    )


def default_video_collaborators() -> VideoCollaborators:
    """LLM storyboard agent, Veo scene generation and the passthrough combiner."""
    from contentfactory.services.combiner import PassthroughCombiner
    from contentfactory.services.storyboard_agent import StoryboardAgent
    from contentfactory.services.video_generation import VeoVideoGenerator

    return VideoCollaborators(
        storyboard_agent=StoryboardAgent(),
        video_generator=VeoVideoGenerator(),
        combiner=PassthroughCombiner(),
    )


def build_orchestrator(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    content: Optional[ContentCollaborators] = None,
    video: Optional[VideoCollaborators] = None,
    broadcaster: Optional[EventBroadcaster] = None,
) -> Orchestrator:
    """Create an Orchestrator with both pipeline kinds registered.

    Args:
        session_factory: Session factory for the stores; defaults to the
            configured database.
        content: Collaborators for content-post jobs.
        video: Collaborators for video jobs.
        broadcaster: Event broadcaster shared with subscribers.
    """
    content = content or default_content_collaborators()
    video = video or default_video_collaborators()

    return Orchestrator(
        {
            JobKind.CONTENT_POST: lambda params: build_content_pipeline(params, content),
            JobKind.VIDEO: lambda params: build_video_pipeline(params, video),
        },
        jobs=JobStore(session_factory),
        entities=EntityStore(session_factory),
        agents=AgentStore(session_factory),
        broadcaster=broadcaster,
    )
