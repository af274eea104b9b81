"""Job, entity and agent stores over an async session factory.

Each operation opens one short session and commits before returning, so a
stage never proceeds until its checkpoint is durable. SQLAlchemy errors are
re-raised as PersistenceError, which always fails the enclosing job.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentfactory.db.engine import async_session
from contentfactory.db.models import Agent, Job, Post, Video, utcnow
from contentfactory.orchestrator.errors import JobNotFoundError, PersistenceError
from contentfactory.orchestrator.state import JobState, check_transition
from contentfactory.schemas.jobs import (
    AgentRecord,
    JobKind,
    JobSnapshot,
    PostRecord,
    VideoRecord,
)

logger = logging.getLogger(__name__)

# Specialist agents shown on the monitoring dashboard
DEFAULT_AGENTS = {
    "Trend Explorer": "Discovers trending topics and keywords for a niche",
    "Showrunner": "Plans each post: image concept and caption style",
    "Image Generator": "Renders post images from the content plan",
    "Caption Writer": "Writes engaging captions with hashtags",
    "Publisher": "Publishes finished posts to the social platform",
    "Storyboard Artist": "Breaks a video prompt into camera-ready scenes",
    "Video Generator": "Generates a video clip for each scene",
    "Video Editor": "Combines scene clips into the final video",
}


class _SessionStore:
    """Shared session handling for the stores."""

    def __init__(
        self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    ) -> None:
        self._session_factory = session_factory or async_session

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"{type(self).__name__} operation failed: {e}")
            raise PersistenceError(f"Database error: {e}") from e


def _column_values(fields: dict) -> dict:
    """Flatten enums and pydantic models into column values."""
    values = {}
    for key, value in fields.items():
        if isinstance(value, (JobState, JobKind)):
            value = value.value
        elif isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        elif isinstance(value, list):
            value = [
                item.model_dump(mode="json") if isinstance(item, BaseModel) else item
                for item in value
            ]
        values[key] = value
    return values


class JobStore(_SessionStore):
    """Durable record of jobs."""

    async def create_job(self, kind: JobKind, params: dict) -> JobSnapshot:
        """Persist a new job in the pending state."""
        async with self._session() as session:
            job = Job(
                kind=JobKind(kind).value,
                status=JobState.PENDING.value,
                params=params,
            )
            session.add(job)
            await session.commit()
            await session.refresh(job)
            return JobSnapshot.model_validate(job)

    async def update_job(self, job_id: uuid.UUID, **fields) -> JobSnapshot:
        """Apply a partial update, validating any status change.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidTransitionError: If ``status`` is not a legal next state.
        """
        async with self._session() as session:
            job = await session.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if "status" in fields:
                fields["status"] = check_transition(job.status, fields["status"])
            for key, value in _column_values(fields).items():
                setattr(job, key, value)
            await session.commit()
            await session.refresh(job)
            return JobSnapshot.model_validate(job)

    async def get_job(self, job_id: uuid.UUID) -> Optional[JobSnapshot]:
        async with self._session() as session:
            job = await session.get(Job, job_id)
            return JobSnapshot.model_validate(job) if job else None

    async def get_latest_running_job(
        self, kind: Optional[JobKind] = None
    ) -> Optional[JobSnapshot]:
        """Return the most recently started running job, optionally by kind."""
        async with self._session() as session:
            query = select(Job).where(Job.status == JobState.RUNNING.value)
            if kind is not None:
                query = query.where(Job.kind == JobKind(kind).value)
            query = query.order_by(Job.started_at.desc(), Job.created_at.desc()).limit(1)
            job = (await session.execute(query)).scalar_one_or_none()
            return JobSnapshot.model_validate(job) if job else None

    async def list_jobs(
        self, kind: Optional[JobKind] = None, limit: int = 20, offset: int = 0
    ) -> list[JobSnapshot]:
        async with self._session() as session:
            query = select(Job)
            if kind is not None:
                query = query.where(Job.kind == JobKind(kind).value)
            query = query.order_by(Job.created_at.desc()).limit(limit).offset(offset)
            jobs = (await session.execute(query)).scalars().all()
            return [JobSnapshot.model_validate(job) for job in jobs]

    async def list_unfinished_jobs(self) -> list[JobSnapshot]:
        """Jobs still pending or running, e.g. left behind by a previous process."""
        async with self._session() as session:
            query = select(Job).where(
                Job.status.in_([JobState.PENDING.value, JobState.RUNNING.value])
            )
            jobs = (await session.execute(query)).scalars().all()
            return [JobSnapshot.model_validate(job) for job in jobs]


class EntityStore(_SessionStore):
    """Posts and videos produced by jobs."""

    # -----------------------------------------------------------------------
    # Posts
    # -----------------------------------------------------------------------
    async def create_post(self, job_id: uuid.UUID, iteration: int, **fields) -> PostRecord:
        async with self._session() as session:
            post = Post(job_id=job_id, iteration=iteration, **_column_values(fields))
            session.add(post)
            await session.commit()
            await session.refresh(post)
            return PostRecord.model_validate(post)

    async def update_post(self, post_id: uuid.UUID, **fields) -> PostRecord:
        async with self._session() as session:
            post = await session.get(Post, post_id)
            if post is None:
                raise PersistenceError(f"Post {post_id} not found")
            for key, value in _column_values(fields).items():
                setattr(post, key, value)
            await session.commit()
            await session.refresh(post)
            return PostRecord.model_validate(post)

    async def get_post(self, post_id: uuid.UUID) -> Optional[PostRecord]:
        async with self._session() as session:
            post = await session.get(Post, post_id)
            return PostRecord.model_validate(post) if post else None

    async def list_posts(
        self,
        job_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PostRecord]:
        """List posts, newest first; a job's posts come back in iteration order."""
        async with self._session() as session:
            query = select(Post)
            if job_id is not None:
                query = query.where(Post.job_id == job_id).order_by(Post.iteration)
            else:
                query = query.order_by(Post.created_at.desc(), Post.iteration.desc())
            if status is not None:
                query = query.where(Post.status == status)
            posts = (await session.execute(query.limit(limit).offset(offset))).scalars().all()
            return [PostRecord.model_validate(post) for post in posts]

    # -----------------------------------------------------------------------
    # Videos
    # -----------------------------------------------------------------------
    async def create_video(
        self,
        job_id: uuid.UUID,
        prompt: str,
        niche: Optional[str] = None,
        duration: int = 30,
        status: str = "pending",
    ) -> VideoRecord:
        async with self._session() as session:
            video = Video(
                job_id=job_id,
                prompt=prompt,
                niche=niche or "general",
                duration=duration,
                status=status,
            )
            session.add(video)
            await session.commit()
            await session.refresh(video)
            return VideoRecord.model_validate(video)

    async def update_video(self, video_id: uuid.UUID, **fields) -> VideoRecord:
        async with self._session() as session:
            video = await session.get(Video, video_id)
            if video is None:
                raise PersistenceError(f"Video {video_id} not found")
            for key, value in _column_values(fields).items():
                setattr(video, key, value)
            await session.commit()
            await session.refresh(video)
            return VideoRecord.model_validate(video)

    async def get_video(self, video_id: uuid.UUID) -> Optional[VideoRecord]:
        async with self._session() as session:
            video = await session.get(Video, video_id)
            return VideoRecord.model_validate(video) if video else None

    async def get_video_for_job(self, job_id: uuid.UUID) -> Optional[VideoRecord]:
        async with self._session() as session:
            query = select(Video).where(Video.job_id == job_id)
            video = (await session.execute(query)).scalar_one_or_none()
            return VideoRecord.model_validate(video) if video else None

    async def list_videos(self, limit: int = 20, offset: int = 0) -> list[VideoRecord]:
        async with self._session() as session:
            query = select(Video).order_by(Video.created_at.desc()).limit(limit).offset(offset)
            videos = (await session.execute(query)).scalars().all()
            return [VideoRecord.model_validate(video) for video in videos]


class AgentStore(_SessionStore):
    """Status of the specialist agents that run stages."""

    async def seed_agents(self, agents: Optional[dict[str, str]] = None) -> int:
        """Idempotent: insert any missing agents. Returns the number inserted."""
        agents = DEFAULT_AGENTS if agents is None else agents
        async with self._session() as session:
            existing = set((await session.execute(select(Agent.name))).scalars().all())
            missing = [name for name in agents if name not in existing]
            for name in missing:
                session.add(Agent(name=name, description=agents[name], status="idle"))
            await session.commit()
        if missing:
            logger.info(f"Seeded {len(missing)} agents")
        return len(missing)

    async def set_status(self, name: str, status: str) -> None:
        async with self._session() as session:
            await session.execute(
                update(Agent)
                .where(Agent.name == name)
                .values(status=status, last_active=utcnow())
            )
            await session.commit()

    async def record_task(self, name: str) -> None:
        """Count one finished task and return the agent to idle."""
        async with self._session() as session:
            await session.execute(
                update(Agent)
                .where(Agent.name == name)
                .values(
                    status="idle",
                    tasks_completed=Agent.tasks_completed + 1,
                    last_active=utcnow(),
                )
            )
            await session.commit()

    async def list_agents(self) -> list[AgentRecord]:
        async with self._session() as session:
            agents = (await session.execute(select(Agent).order_by(Agent.id))).scalars().all()
            return [AgentRecord.model_validate(agent) for agent in agents]
