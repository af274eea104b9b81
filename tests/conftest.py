"""Shared fixtures: a throwaway SQLite database and fake collaborators.

Fakes implement the collaborator interfaces the pipelines call, so jobs run
end to end through the real orchestrator, stores and broadcaster without any
network access.
"""

import uuid
from typing import Awaitable, Callable, Optional

import pytest

from contentfactory.db import init_database
from contentfactory.db.engine import build_engine, build_session_factory
from contentfactory.db.store import AgentStore, EntityStore, JobStore
from contentfactory.orchestrator.broadcaster import EventBroadcaster
from contentfactory.orchestrator.errors import StageError
from contentfactory.orchestrator.wiring import build_orchestrator
from contentfactory.pipeline.content import ContentCollaborators
from contentfactory.pipeline.video import VideoCollaborators
from contentfactory.schemas.content import ContentPlan, GeneratedImage, PublishResult, Topic
from contentfactory.schemas.storyboard import Scene, Storyboard

Hook = Optional[Callable[[int], Awaitable[None]]]


# ---------------------------------------------------------------------------
# Content collaborators
# ---------------------------------------------------------------------------

class FakeTrendExplorer:
    def __init__(self):
        self.calls = 0

    async def find_topic(self) -> Topic:
        self.calls += 1
        return Topic(niche="Travel", keywords=["beach", "sunset"], trend_score=0.8)


class FakeShowrunner:
    async def create_plan(self, topic: Topic) -> ContentPlan:
        return ContentPlan(
            niche=topic.niche,
            keywords=topic.keywords,
            image_prompt=f"A {topic.niche} photo of {', '.join(topic.keywords)}",
        )


class FakeImageGenerator:
    """Fails for the 1-based iterations listed in ``fail_on``."""

    def __init__(self, fail_on: tuple[int, ...] = ()):
        self.fail_on = set(fail_on)
        self.calls: list[int] = []

    async def generate(self, plan: ContentPlan, *, job_id: uuid.UUID, iteration: int) -> GeneratedImage:
        self.calls.append(iteration)
        if iteration in self.fail_on:
            raise StageError("Failed to generate image: quota exceeded")
        return GeneratedImage(url=f"https://media.test/{job_id}/post_{iteration}.png", prompt=plan.image_prompt)


class FakeCaptionWriter:
    async def write(self, plan: ContentPlan) -> str:
        return f"Golden hour in {plan.niche}. " + " ".join(plan.hashtags)


class FakePublisher:
    """Counts publishes; ``on_publish`` runs inside the call with its 1-based count."""

    def __init__(self, on_publish: Hook = None):
        self.on_publish = on_publish
        self.published: list[str] = []

    async def publish(self, *, niche: str, caption: str, media_url: str, keywords=None) -> PublishResult:
        self.published.append(media_url)
        if self.on_publish is not None:
            await self.on_publish(len(self.published))
        return PublishResult(external_post_id=f"circlo-{len(self.published)}")


# ---------------------------------------------------------------------------
# Video collaborators
# ---------------------------------------------------------------------------

class FakeStoryboardAgent:
    def __init__(self):
        self.calls = 0

    async def create_storyboard(self, prompt: str, *, niche=None, scene_count=3, total_duration=30) -> Storyboard:
        self.calls += 1
        per_scene = total_duration / scene_count
        return Storyboard(
            title=f"Story of {prompt}",
            niche=niche or "general",
            overall_prompt=prompt,
            total_duration=total_duration,
            scenes=[
                Scene(
                    scene_number=n,
                    description=f"Scene {n} of {prompt}",
                    camera_angle="wide",
                    action="The camera pans slowly",
                    transition="cut",
                    duration=per_scene,
                )
                for n in range(1, scene_count + 1)
            ],
        )


class FakeVideoGenerator:
    """Fails for scene numbers in ``fail_on``; ``on_generate`` runs before returning."""

    def __init__(self, fail_on: tuple[int, ...] = (), on_generate: Hook = None):
        self.fail_on = set(fail_on)
        self.on_generate = on_generate
        self.calls: list[int] = []

    async def generate(self, prompt: str, *, job_id, scene_number: int, duration: float, is_cancelled=None) -> str:
        self.calls.append(scene_number)
        if self.on_generate is not None:
            await self.on_generate(scene_number)
        if scene_number in self.fail_on:
            raise StageError(f"Scene {scene_number}: Video generation failed: content filtered")
        return f"https://media.test/{job_id}/scene_{scene_number}.mp4"


class FakeCombiner:
    def __init__(self):
        self.calls: list[list[str]] = []

    async def combine(self, media_urls: list[str], *, job_id) -> str:
        self.calls.append(list(media_urls))
        return f"https://media.test/{job_id}/final.mp4"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_database(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def job_store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def entity_store(session_factory):
    return EntityStore(session_factory)


@pytest.fixture
def agent_store(session_factory):
    return AgentStore(session_factory)


@pytest.fixture
def image_generator():
    return FakeImageGenerator()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def video_generator():
    return FakeVideoGenerator()


@pytest.fixture
def combiner():
    return FakeCombiner()


@pytest.fixture
def content_collaborators(image_generator, publisher):
    return ContentCollaborators(
        trend_explorer=FakeTrendExplorer(),
        showrunner=FakeShowrunner(),
        image_generator=image_generator,
        caption_writer=FakeCaptionWriter(),
        publisher=publisher,
    )


@pytest.fixture
def video_collaborators(video_generator, combiner):
    return VideoCollaborators(
        storyboard_agent=FakeStoryboardAgent(),
        video_generator=video_generator,
        combiner=combiner,
    )


@pytest.fixture
def broadcaster():
    return EventBroadcaster(max_queued=1000)


@pytest.fixture
async def orchestrator(session_factory, content_collaborators, video_collaborators, broadcaster):
    orch = build_orchestrator(
        session_factory,
        content=content_collaborators,
        video=video_collaborators,
        broadcaster=broadcaster,
    )
    yield orch
    await orch.shutdown()


@pytest.fixture
def events(broadcaster):
    """Subscription receiving every event; read with ``events.pending()``."""
    subscription = broadcaster.subscribe()
    yield subscription
    subscription.close()

