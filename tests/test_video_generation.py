"""Veo scene generation with bounded polling, against a fake genai client."""

import uuid
from types import SimpleNamespace

import pytest

from contentfactory.orchestrator.errors import GenerationTimeoutError, JobCancelled, StageError
from contentfactory.services.file_manager import FileManager
from contentfactory.services.video_generation import VeoVideoGenerator, veo_duration


def _operation(done, video_bytes=b"mp4-bytes", error=None):
    video = SimpleNamespace(video_bytes=video_bytes, uri=None)
    response = SimpleNamespace(
        generated_videos=[SimpleNamespace(video=video)],
        rai_media_filtered_count=0,
    )
    return SimpleNamespace(name="operations/veo-1", done=done, error=error, response=response if done else None)


class FakeClient:
    """Operation finishes after ``done_after`` polls; None means never."""

    def __init__(self, done_after=1, submit_error=None, error=None):
        self.done_after = done_after
        self.submit_error = submit_error
        self.error = error
        self.polls = 0
        self.submitted = []
        self.aio = SimpleNamespace(
            models=SimpleNamespace(generate_videos=self._generate_videos),
            operations=SimpleNamespace(get=self._get),
        )

    async def _generate_videos(self, model, prompt, config):
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append((model, prompt, config.duration_seconds))
        return _operation(done=False)

    async def _get(self, operation):
        self.polls += 1
        done = self.done_after is not None and self.polls >= self.done_after
        return _operation(done=done, error=self.error if done else None)


@pytest.fixture
def file_manager(tmp_path):
    return FileManager(tmp_path / "media", public_base_url="https://cdn.test/media/")


def _generator(client, file_manager, max_polls=5):
    return VeoVideoGenerator(
        file_manager=file_manager,
        video_model="veo-test",
        poll_interval=0,
        max_polls=max_polls,
        client=client,
    )


@pytest.mark.parametrize("seconds, expected", [(3, 4), (5.5, 6), (10, 8), (7.5, 8)])
def test_veo_duration_snaps_to_supported_lengths(seconds, expected):
    assert veo_duration(seconds) == expected


async def test_clip_is_saved_after_polling(file_manager):
    client = FakeClient(done_after=2)
    job_id = uuid.uuid4()

    url = await _generator(client, file_manager).generate(
        "A quiet harbour", job_id=job_id, scene_number=2, duration=10
    )

    assert url == f"https://cdn.test/media/{job_id}/clips/scene_2.mp4"
    assert client.submitted == [("veo-test", "A quiet harbour", 8)]
    assert client.polls == 2
    assert (file_manager.base_dir / str(job_id) / "clips" / "scene_2.mp4").read_bytes() == b"mp4-bytes"


async def test_polling_budget_is_bounded(file_manager):
    client = FakeClient(done_after=None)

    with pytest.raises(GenerationTimeoutError) as exc_info:
        await _generator(client, file_manager, max_polls=3).generate(
            "Never finishes", job_id=uuid.uuid4(), scene_number=1, duration=8
        )

    assert client.polls == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.retryable


async def test_cancellation_is_observed_between_polls(file_manager):
    client = FakeClient(done_after=None)

    with pytest.raises(JobCancelled):
        await _generator(client, file_manager).generate(
            "Stopped", job_id=uuid.uuid4(), scene_number=1, duration=8, is_cancelled=lambda: True
        )

    assert client.polls == 0


async def test_failed_operation_is_a_stage_error(file_manager):
    client = FakeClient(done_after=1, error={"code": 3, "message": "prompt rejected"})

    with pytest.raises(StageError, match="prompt rejected"):
        await _generator(client, file_manager).generate(
            "Rejected", job_id=uuid.uuid4(), scene_number=3, duration=6
        )


async def test_submit_error_is_a_stage_error(file_manager):
    client = FakeClient(submit_error=ValueError("invalid model"))

    with pytest.raises(StageError) as exc_info:
        await _generator(client, file_manager).generate(
            "Bad model", job_id=uuid.uuid4(), scene_number=1, duration=6
        )

    assert not exc_info.value.retryable
    assert "Scene 1" in str(exc_info.value)
