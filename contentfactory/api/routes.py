"""API routes for content factory jobs.

Endpoints:
- POST /api/factory/start: Start a content-post job
- POST /api/factory/{id}/stop: Stop a content-post job
- GET /api/factory/status: Latest running content-post job
- GET /api/posts: List posts
- GET /api/posts/{id}: One post
- POST /api/videos: Start a video job
- POST /api/videos/{id}/cancel: Cancel a video job
- GET /api/videos: List videos
- GET /api/videos/{id}: One video with its scenes
- GET /api/jobs/{id}: Job snapshot with the entities it produced
- GET /api/agents: Specialist agent status
- POST /api/video-prompter: Generate a niche-templated video prompt
- GET /api/video-prompter/suggestions: Several prompts for one niche
- GET /api/video-prompter/niches: Niches with templates
- GET /api/video-prompter/niches/{niche}: Template for one niche
- WS /api/events: Live job events as JSON
"""

import logging
import uuid
from typing import Optional, Union

from fastapi import APIRouter, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from contentfactory.db.store import AgentStore
from contentfactory.orchestrator.errors import JobNotFoundError, PromptGenerationError
from contentfactory.orchestrator.runner import Orchestrator
from contentfactory.schemas.jobs import (
    AgentRecord,
    ContentJobParams,
    JobKind,
    JobSnapshot,
    PostRecord,
    VideoJobParams,
    VideoRecord,
)
from contentfactory.schemas.prompter import (
    NicheTemplate,
    VideoMood,
    VideoPromptRequest,
    VideoPromptResult,
)
from contentfactory.services.video_prompter import VideoPrompter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ============================================================================
# Request/Response Models
# ============================================================================

class StartResponse(BaseModel):
    """Response schema for job start endpoints."""
    job_id: str
    kind: JobKind
    status: str
    status_url: str


class FactoryStatusResponse(BaseModel):
    """Response schema for GET /api/factory/status."""
    running: bool
    job: Optional[JobSnapshot] = None


class JobDetailResponse(BaseModel):
    """Response schema for GET /api/jobs/{id}."""
    job: JobSnapshot
    posts: list[PostRecord] = []
    video: Optional[VideoRecord] = None


class PromptSuggestionsResponse(BaseModel):
    """Response schema for GET /api/video-prompter/suggestions."""
    suggestions: list[VideoPromptResult]


class NichesResponse(BaseModel):
    """Response schema for GET /api/video-prompter/niches."""
    niches: list[str]


# ============================================================================
# Helpers
# ============================================================================

def _orchestrator(request: Union[Request, WebSocket]) -> Orchestrator:
    return request.app.state.orchestrator


def _video_prompter(request: Request) -> VideoPrompter:
    prompter = getattr(request.app.state, "video_prompter", None)
    if prompter is None:
        prompter = request.app.state.video_prompter = VideoPrompter()
    return prompter


async def _start(request: Request, kind: JobKind, params: BaseModel) -> StartResponse:
    try:
        job_id = await _orchestrator(request).start(kind, params)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return StartResponse(
        job_id=str(job_id),
        kind=kind,
        status="pending",
        status_url=f"/api/jobs/{job_id}",
    )


async def _stop(request: Request, job_id: uuid.UUID, kind: JobKind) -> JobSnapshot:
    orchestrator = _orchestrator(request)
    try:
        snapshot = await orchestrator.get_status(job_id)
        if snapshot.kind is not kind:
            raise HTTPException(
                status_code=404, detail=f"No {kind.value} job {job_id}"
            )
        snapshot = await orchestrator.stop(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    logger.info(f"Stop requested for {kind.value} job {job_id}")
    return snapshot


# ============================================================================
# Content posts
# ============================================================================

@router.post("/factory/start", status_code=202, response_model=StartResponse)
async def start_factory(request: Request, params: Optional[ContentJobParams] = None):
    """Start a content-post job creating ``count`` posts one after another."""
    return await _start(request, JobKind.CONTENT_POST, params or ContentJobParams())


@router.post("/factory/{job_id}/stop", response_model=JobSnapshot)
async def stop_factory(request: Request, job_id: uuid.UUID):
    """Stop a content-post job at its next stage boundary.

    Stopping a finished job returns its snapshot unchanged.
    """
    return await _stop(request, job_id, JobKind.CONTENT_POST)


@router.get("/factory/status", response_model=FactoryStatusResponse)
async def factory_status(request: Request):
    """Latest running content-post job, if any."""
    snapshot = await _orchestrator(request).get_status(kind=JobKind.CONTENT_POST)
    return FactoryStatusResponse(running=snapshot is not None, job=snapshot)


@router.get("/posts", response_model=list[PostRecord])
async def list_posts(
    request: Request,
    job_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
):
    """List posts newest first, optionally for one job or status."""
    return await _orchestrator(request).entities.list_posts(
        job_id=job_id, status=status, limit=limit, offset=offset
    )


@router.get("/posts/{post_id}", response_model=PostRecord)
async def get_post(request: Request, post_id: uuid.UUID):
    """Get a single post by id."""
    post = await _orchestrator(request).entities.get_post(post_id)
    if post is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


# ============================================================================
# Videos
# ============================================================================

@router.post("/videos", status_code=202, response_model=StartResponse)
async def create_video(request: Request, params: VideoJobParams):
    """Start a multi-scene video job."""
    return await _start(request, JobKind.VIDEO, params)


@router.post("/videos/{job_id}/cancel", response_model=JobSnapshot)
async def cancel_video(request: Request, job_id: uuid.UUID):
    """Cancel a video job; the scene being generated is abandoned."""
    return await _stop(request, job_id, JobKind.VIDEO)


@router.get("/videos", response_model=list[VideoRecord])
async def list_videos(request: Request, limit: int = 20, offset: int = 0):
    """List videos ordered by creation date (newest first)."""
    return await _orchestrator(request).list_entities(JobKind.VIDEO, limit=limit, offset=offset)


@router.get("/videos/{video_id}", response_model=VideoRecord)
async def get_video(request: Request, video_id: uuid.UUID):
    """Get a single video with its storyboard scenes."""
    video = await _orchestrator(request).entities.get_video(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return video


# ============================================================================
# Video prompter
# ============================================================================

@router.post("/video-prompter", response_model=VideoPromptResult)
async def generate_video_prompt(request: Request, body: VideoPromptRequest):
    """Generate a niche-templated prompt that can seed POST /api/videos."""
    try:
        return await _video_prompter(request).generate_prompt(body)
    except PromptGenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/video-prompter/suggestions", response_model=PromptSuggestionsResponse)
async def video_prompt_suggestions(
    request: Request,
    niche: str = Query(..., min_length=1),
    count: int = Query(3, ge=1, le=5),
    topic: Optional[str] = None,
    mood: VideoMood = "professional",
):
    """Several prompt ideas for one niche; failed generations are left out."""
    body = VideoPromptRequest(niche=niche, topic=topic, mood=mood)
    suggestions = await _video_prompter(request).generate_multiple_prompts(body, count)
    return PromptSuggestionsResponse(suggestions=suggestions)


@router.get("/video-prompter/niches", response_model=NichesResponse)
async def video_prompter_niches(request: Request):
    """Niches with dedicated prompt templates."""
    return NichesResponse(niches=_video_prompter(request).available_niches())


@router.get("/video-prompter/niches/{niche}", response_model=NicheTemplate)
async def video_prompter_niche_info(request: Request, niche: str):
    """Template the prompter uses for one niche."""
    template = _video_prompter(request).niche_info(niche)
    if template is None:
        raise HTTPException(status_code=404, detail="Niche not found")
    return template


# ============================================================================
# Jobs and agents
# ============================================================================

@router.get("/jobs/{job_id}", response_model=JobDetailResponse)
async def get_job(request: Request, job_id: uuid.UUID):
    """Job snapshot plus the posts or video it produced so far."""
    orchestrator = _orchestrator(request)
    try:
        snapshot = await orchestrator.get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")

    if snapshot.kind is JobKind.VIDEO:
        video = await orchestrator.entities.get_video_for_job(job_id)
        return JobDetailResponse(job=snapshot, video=video)
    posts = await orchestrator.entities.list_posts(job_id=job_id)
    return JobDetailResponse(job=snapshot, posts=posts)


@router.get("/agents", response_model=list[AgentRecord])
async def list_agents(request: Request):
    """Specialist agents with their status and completed task counts."""
    agents = _orchestrator(request).agents or AgentStore()
    return await agents.list_agents()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": "0.1.0"
    }


# ============================================================================
# Live events
# ============================================================================

@router.websocket("/events")
async def event_stream(
    websocket: WebSocket,
    job_id: Optional[uuid.UUID] = None,
    events: Optional[str] = None,
):
    """Stream job events as JSON.

    Query parameters narrow the stream: ``job_id`` to one job, ``events`` to a
    comma-separated list of event names.
    """
    names = [name.strip() for name in (events or "").split(",") if name.strip()]
    try:
        subscription = _orchestrator(websocket).broadcaster.subscribe(*names, job_id=job_id)
    except ValueError as e:
        await websocket.close(code=1008, reason=str(e))
        return

    await websocket.accept()
    async with subscription:
        try:
            async for event in subscription:
                await websocket.send_text(event.model_dump_json())
        except WebSocketDisconnect:
            logger.info("Event stream client disconnected")
    if subscription.dropped:
        logger.warning(f"Event stream closed after dropping {subscription.dropped} event(s)")
