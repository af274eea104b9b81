"""Orchestrator surface: start validation, stop, status queries, supervision."""

import asyncio
import uuid

import pytest
from pydantic import ValidationError

from contentfactory.orchestrator.errors import JobNotFoundError
from contentfactory.orchestrator.runner import INTERRUPTED_MESSAGE
from contentfactory.orchestrator.state import JobState
from contentfactory.schemas.jobs import JobKind


def _for_job(events, job_id):
    return [event for event in events if event.job_id == job_id]


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------

async def test_start_returns_before_any_stage_runs(orchestrator, video_generator):
    job_id = await orchestrator.start(JobKind.VIDEO, {"prompt": "city lights"})

    assert orchestrator.is_running(job_id)
    assert video_generator.calls == []

    snapshot = await orchestrator.wait(job_id)
    assert not orchestrator.is_running(job_id)
    assert snapshot.params["prompt"] == "city lights"
    assert snapshot.params["scene_count"] == 3


@pytest.mark.parametrize(
    "kind, params",
    [
        (JobKind.CONTENT_POST, {"count": 0}),
        (JobKind.CONTENT_POST, {"count": 50}),
        (JobKind.VIDEO, {"prompt": ""}),
        (JobKind.VIDEO, {"prompt": "x", "total_duration": 5}),
    ],
)
async def test_start_rejects_invalid_params(orchestrator, job_store, kind, params):
    with pytest.raises(ValidationError):
        await orchestrator.start(kind, params)
    assert await job_store.list_jobs() == []


# ---------------------------------------------------------------------------
# stop
# ---------------------------------------------------------------------------

async def test_stop_unknown_job(orchestrator):
    with pytest.raises(JobNotFoundError):
        await orchestrator.stop(uuid.uuid4())


async def test_stop_finished_job_is_a_no_op(orchestrator, events):
    job_id = await orchestrator.start(JobKind.CONTENT_POST, {"count": 1})
    finished = await orchestrator.wait(job_id)
    before = len(_for_job(events.pending(), job_id))

    again = await orchestrator.stop(job_id)

    assert before > 0
    assert again.status == JobState.COMPLETED
    assert again.progress == finished.progress
    assert _for_job(events.pending(), job_id) == []


async def test_stop_twice_emits_one_cancellation(orchestrator, events, publisher):
    job_id = None

    async def stop_twice(count):
        await orchestrator.stop(job_id)
        await orchestrator.stop(job_id)

    publisher.on_publish = stop_twice

    job_id = await orchestrator.start(JobKind.CONTENT_POST, {"count": 3})
    snapshot = await orchestrator.wait(job_id)
    third = await orchestrator.stop(job_id)

    assert snapshot.status == JobState.CANCELLED
    assert third.status == JobState.CANCELLED
    names = [e.event for e in _for_job(events.pending(), job_id)]
    assert names.count("job_cancelled") == 1


async def test_stop_job_without_task_cancels_it(orchestrator, job_store, events):
    snapshot = await job_store.create_job(JobKind.VIDEO, {"prompt": "left over"})

    stopped = await orchestrator.stop(snapshot.id)

    assert stopped.status == JobState.CANCELLED
    assert stopped.completed_at is not None
    assert [e.event for e in events.pending()] == ["job_cancelled"]


# ---------------------------------------------------------------------------
# status queries
# ---------------------------------------------------------------------------

async def test_get_status_unknown_job(orchestrator):
    with pytest.raises(JobNotFoundError):
        await orchestrator.get_status(uuid.uuid4())


async def test_get_status_without_id_returns_running_job(orchestrator, video_generator):
    assert await orchestrator.get_status() is None

    entered = asyncio.Event()
    release = asyncio.Event()

    async def hold(scene_number):
        entered.set()
        await release.wait()

    video_generator.on_generate = hold
    job_id = await orchestrator.start(JobKind.VIDEO, {"prompt": "slow", "scene_count": 1})
    await asyncio.wait_for(entered.wait(), 5)

    running = await orchestrator.get_status()
    assert running.id == job_id
    assert running.status == JobState.RUNNING
    assert running.current_stage == "Generating scenes"
    assert running.current_agent == "Video Generator"
    assert await orchestrator.get_status(kind=JobKind.CONTENT_POST) is None

    release.set()
    await orchestrator.wait(job_id)
    assert await orchestrator.get_status() is None


async def test_list_entities_by_kind(orchestrator):
    await orchestrator.wait(await orchestrator.start(JobKind.CONTENT_POST, {"count": 2}))
    await orchestrator.wait(await orchestrator.start(JobKind.VIDEO, {"prompt": "forest"}))

    posts = await orchestrator.list_entities(JobKind.CONTENT_POST)
    videos = await orchestrator.list_entities("video")

    assert len(posts) == 2
    assert len(videos) == 1
    assert videos[0].prompt == "forest"
    assert len(await orchestrator.list_entities(JobKind.CONTENT_POST, limit=1)) == 1


# ---------------------------------------------------------------------------
# concurrency and supervision
# ---------------------------------------------------------------------------

async def test_concurrent_jobs_are_isolated(orchestrator, events):
    content_id = await orchestrator.start(JobKind.CONTENT_POST, {"count": 3})
    video_id = await orchestrator.start(JobKind.VIDEO, {"prompt": "mountains"})

    results = await asyncio.gather(orchestrator.wait(content_id), orchestrator.wait(video_id))

    assert [r.status for r in results] == [JobState.COMPLETED, JobState.COMPLETED]
    received = events.pending()
    for job_id, kind in ((content_id, JobKind.CONTENT_POST), (video_id, JobKind.VIDEO)):
        mine = _for_job(received, job_id)
        assert {e.kind for e in mine} == {kind}
        assert mine[0].event == "job_started"
        assert mine[-1].event == "job_completed"
    assert len(await orchestrator.entities.list_posts(job_id=content_id)) == 3
    assert len(await orchestrator.entities.list_posts(job_id=video_id)) == 0


async def test_unexpected_error_fails_job_at_task_boundary(orchestrator, events):
    async def broken_create_video(*args, **kwargs):
        raise RuntimeError("disk full")

    orchestrator.entities.create_video = broken_create_video

    job_id = await orchestrator.start(JobKind.VIDEO, {"prompt": "anything"})
    snapshot = await orchestrator.wait(job_id)

    assert snapshot.status == JobState.FAILED
    assert snapshot.error_message == "disk full"
    assert [e.event for e in _for_job(events.pending(), job_id)] == ["job_started", "job_failed"]
    assert not orchestrator.is_running(job_id)


async def test_shutdown_cancels_running_jobs(orchestrator, events, video_generator):
    entered = asyncio.Event()

    async def hang(scene_number):
        entered.set()
        await asyncio.Event().wait()

    video_generator.on_generate = hang
    job_id = await orchestrator.start(JobKind.VIDEO, {"prompt": "never ends"})
    await asyncio.wait_for(entered.wait(), 5)

    await orchestrator.shutdown()

    snapshot = await orchestrator.get_status(job_id)
    assert snapshot.status == JobState.CANCELLED
    video = await orchestrator.entities.get_video_for_job(job_id)
    assert video.status == "cancelled"
    names = [e.event for e in _for_job(events.pending(), job_id)]
    assert names[-1] == "job_cancelled"


# ---------------------------------------------------------------------------
# restart reconciliation
# ---------------------------------------------------------------------------

async def test_reconcile_orphans_fails_unfinished_jobs(orchestrator, job_store, events):
    pending = await job_store.create_job(JobKind.CONTENT_POST, {"count": 2})
    running = await job_store.create_job(JobKind.VIDEO, {"prompt": "half done"})
    await job_store.update_job(running.id, status=JobState.RUNNING, progress=46.0, completed_units=1)
    done = await job_store.create_job(JobKind.VIDEO, {"prompt": "done"})
    await job_store.update_job(done.id, status=JobState.RUNNING)
    await job_store.update_job(done.id, status=JobState.COMPLETED, progress=100.0)

    count = await orchestrator.reconcile_orphans()

    assert count == 2
    for job_id in (pending.id, running.id):
        snapshot = await orchestrator.get_status(job_id)
        assert snapshot.status == JobState.FAILED
        assert snapshot.error_message == INTERRUPTED_MESSAGE
    interrupted = await orchestrator.get_status(running.id)
    assert interrupted.progress == 46.0
    assert interrupted.completed_units == 1
    assert (await orchestrator.get_status(done.id)).status == JobState.COMPLETED

    failed = [e for e in events.pending() if e.event == "job_failed"]
    assert {e.job_id for e in failed} == {pending.id, running.id}
    assert await orchestrator.reconcile_orphans() == 0
