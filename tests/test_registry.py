"""Running-job registry bookkeeping."""

import asyncio
import uuid

import pytest

from contentfactory.orchestrator.registry import RunningJobRegistry


def test_register_and_cancel():
    registry = RunningJobRegistry()
    job_id = uuid.uuid4()
    registry.register(job_id, "video")

    assert job_id in registry
    assert len(registry) == 1
    assert not registry.is_cancel_requested(job_id)
    assert registry.request_cancel(job_id)
    assert registry.is_cancel_requested(job_id)


def test_register_twice_is_rejected():
    registry = RunningJobRegistry()
    job_id = uuid.uuid4()
    registry.register(job_id, "content_post")
    with pytest.raises(ValueError):
        registry.register(job_id, "content_post")


def test_unknown_job_is_not_cancelled():
    registry = RunningJobRegistry()
    assert not registry.request_cancel(uuid.uuid4())
    assert not registry.is_cancel_requested(uuid.uuid4())


def test_remove_is_idempotent():
    registry = RunningJobRegistry()
    job_id = uuid.uuid4()
    registry.register(job_id, "video")
    registry.remove(job_id)
    registry.remove(job_id)
    assert job_id not in registry
    assert registry.job_ids() == []


async def test_tasks_lists_attached_tasks():
    registry = RunningJobRegistry()
    first, second = uuid.uuid4(), uuid.uuid4()
    registry.register(first, "video")
    registry.register(second, "video")
    task = asyncio.create_task(asyncio.sleep(0))
    registry.attach_task(first, task)

    assert registry.tasks() == [task]
    assert registry.get(first).task is task
    assert registry.get(second).task is None
    await task
