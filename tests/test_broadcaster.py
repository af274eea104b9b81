"""Event broadcaster fan-out, filtering and bounded subscriber queues."""

import asyncio
import uuid

import pytest

from contentfactory.orchestrator.broadcaster import EventBroadcaster
from contentfactory.schemas.events import (
    EVENT_ADAPTER,
    JobCompleted,
    JobStarted,
    JobStatus,
    SceneCompleted,
)
from contentfactory.schemas.jobs import JobKind


def _status(job_id, progress=10.0):
    return JobStatus(job_id=job_id, kind=JobKind.VIDEO, progress=progress, current_stage="Generating scenes")


def test_emit_reaches_every_matching_subscriber():
    broadcaster = EventBroadcaster(max_queued=10)
    first = broadcaster.subscribe()
    second = broadcaster.subscribe()
    job_id = uuid.uuid4()

    delivered = broadcaster.emit(_status(job_id))

    assert delivered == 2
    assert [e.event for e in first.pending()] == ["job_status"]
    assert [e.event for e in second.pending()] == ["job_status"]


def test_subscription_filters_by_event_name_and_job():
    broadcaster = EventBroadcaster(max_queued=10)
    job_id, other_id = uuid.uuid4(), uuid.uuid4()
    scenes_only = broadcaster.subscribe("scene_completed")
    one_job = broadcaster.subscribe(job_id=job_id)

    broadcaster.emit(_status(job_id))
    broadcaster.emit(_status(other_id))
    broadcaster.emit(
        SceneCompleted(
            job_id=other_id,
            kind=JobKind.VIDEO,
            progress=40.0,
            scene_number=1,
            total_scenes=3,
            media_url="https://media.test/scene_1.mp4",
        )
    )

    assert [e.event for e in scenes_only.pending()] == ["scene_completed"]
    assert [e.job_id for e in one_job.pending()] == [job_id]


def test_unknown_event_name_is_rejected():
    broadcaster = EventBroadcaster()
    with pytest.raises(ValueError):
        broadcaster.subscribe("job_exploded")


def test_full_queue_drops_without_blocking():
    broadcaster = EventBroadcaster(max_queued=2)
    slow = broadcaster.subscribe()
    fast = broadcaster.subscribe(max_queued=10)
    job_id = uuid.uuid4()

    for progress in (10.0, 20.0, 30.0):
        broadcaster.emit(_status(job_id, progress))

    assert slow.dropped == 1
    assert [e.progress for e in slow.pending()] == [10.0, 20.0]
    assert [e.progress for e in fast.pending()] == [10.0, 20.0, 30.0]


def test_closed_subscription_stops_receiving():
    broadcaster = EventBroadcaster(max_queued=10)
    subscription = broadcaster.subscribe()
    subscription.close()

    assert broadcaster.subscriber_count == 0
    assert broadcaster.emit(_status(uuid.uuid4())) == 0
    assert subscription.closed


async def test_async_iteration_ends_when_closed():
    broadcaster = EventBroadcaster(max_queued=10)
    job_id = uuid.uuid4()
    received = []

    async def consume(subscription):
        async for event in subscription:
            received.append(event.event)

    async with broadcaster.subscribe(job_id=job_id) as subscription:
        consumer = asyncio.create_task(consume(subscription))
        broadcaster.emit(JobStarted(job_id=job_id, kind=JobKind.CONTENT_POST, total_units=2))
        broadcaster.emit(JobCompleted(job_id=job_id, kind=JobKind.CONTENT_POST, completed_units=2, total_units=2))
        await asyncio.sleep(0)
    await asyncio.wait_for(consumer, 1)

    assert received == ["job_started", "job_completed"]
    assert broadcaster.subscriber_count == 0


def test_events_parse_back_to_their_variant():
    job_id = uuid.uuid4()
    payload = JobCompleted(
        job_id=job_id, kind=JobKind.VIDEO, completed_units=3, total_units=3, result={"video_url": "x"}
    ).model_dump(mode="json")

    event = EVENT_ADAPTER.validate_python(payload)

    assert isinstance(event, JobCompleted)
    assert event.progress == 100.0
    assert event.job_id == job_id
