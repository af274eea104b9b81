"""Scene clip generation using Veo on Vertex AI.

Submits one long-running generate_videos operation per scene and polls it at
a fixed interval with a bounded attempt count:
- Transient RPC errors (429/5xx) on submit and poll are retried with tenacity
- Exhausting the poll budget raises GenerationTimeoutError (a StageError)
- A stop request is observed between polls and raises JobCancelled
- Finished clips are saved through FileManager

Usage:
    generator = VeoVideoGenerator()
    url = await generator.generate(prompt, job_id=job_id, scene_number=1, duration=8)
"""

import asyncio
import logging
import uuid
from typing import Callable, Optional

import httpx
from google.genai import types
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from contentfactory.config import settings
from contentfactory.orchestrator.errors import GenerationTimeoutError, JobCancelled, StageError
from contentfactory.services.file_manager import FileManager
from contentfactory.services.image_generation import is_retriable
from contentfactory.services.vertex_client import get_vertex_client, location_for_model

logger = logging.getLogger(__name__)

# Clip lengths Veo accepts, in seconds
VEO_DURATIONS = (4, 6, 8)


def veo_duration(seconds: float) -> int:
    """Closest clip length Veo supports for a requested scene duration."""
    return min(VEO_DURATIONS, key=lambda allowed: abs(allowed - seconds))


@retry(
    stop=stop_after_attempt(7),
    wait=wait_exponential(multiplier=2, min=4, max=120) + wait_random(0, 5),
    retry=retry_if_exception(is_retriable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _submit_video_job(client, video_model: str, prompt: str, duration_seconds: int):
    """Submit a Veo video generation job with retry on transient 429/5xx errors."""
    video_config = types.GenerateVideosConfig(
        aspect_ratio="9:16",
        duration_seconds=duration_seconds,
        number_of_videos=1,
        negative_prompt="text overlay, watermark, logo, blurry, deformed",
    )
    return await client.aio.models.generate_videos(
        model=video_model,
        prompt=prompt,
        config=video_config,
    )


@retry(
    stop=stop_after_attempt(7),
    wait=wait_exponential(multiplier=2, min=4, max=120) + wait_random(0, 5),
    retry=retry_if_exception(is_retriable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _poll_operation_get(client, operation_name: str):
    """Fetch operation status with retry on transient HTTP errors (429/5xx)."""
    op_obj = types.GenerateVideosOperation(name=operation_name)
    return await client.aio.operations.get(operation=op_obj)


async def _download_from_gcs(gcs_uri: str) -> bytes:
    """Download video bytes from Google Cloud Storage URI."""
    if gcs_uri.startswith("gs://"):
        http_url = gcs_uri.replace("gs://", "https://storage.googleapis.com/")
    else:
        http_url = gcs_uri

    async with httpx.AsyncClient() as client:
        response = await client.get(http_url)
        response.raise_for_status()
        return response.content


def _operation_failure(operation) -> Optional[str]:
    """Error text for a finished operation that produced no usable video."""
    error = getattr(operation, "error", None)
    if error:
        return f"Video generation failed: {error}"
    response = getattr(operation, "response", None)
    if response is None:
        return "Video generation failed: empty response"
    if getattr(response, "rai_media_filtered_count", None):
        return "Video generation failed: content filtered by responsible AI"
    if not getattr(response, "generated_videos", None):
        return "Video generation failed: no video in response"
    return None


class VeoVideoGenerator:
    """Generates one clip per scene with bounded polling."""

    def __init__(
        self,
        file_manager: Optional[FileManager] = None,
        video_model: Optional[str] = None,
        poll_interval: Optional[float] = None,
        max_polls: Optional[int] = None,
        client=None,
    ) -> None:
        self._file_manager = file_manager
        self._client = client
        self.video_model = video_model or settings.models.video_gen
        self.poll_interval = (
            settings.pipeline.video_poll_interval if poll_interval is None else poll_interval
        )
        self.max_polls = settings.pipeline.video_poll_max if max_polls is None else max_polls

    @property
    def file_manager(self) -> FileManager:
        if self._file_manager is None:
            self._file_manager = FileManager()
        return self._file_manager

    @property
    def client(self):
        if self._client is None:
            self._client = get_vertex_client(location=location_for_model(self.video_model))
        return self._client

    async def generate(
        self,
        prompt: str,
        *,
        job_id: uuid.UUID,
        scene_number: int,
        duration: float,
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> str:
        """Generate, save and return the media URL of one scene clip.

        Raises:
            StageError: If the operation fails or returns no video.
            GenerationTimeoutError: If the poll budget is exhausted.
            JobCancelled: If a stop was requested between polls.
        """
        try:
            operation = await _submit_video_job(
                self.client, self.video_model, prompt, veo_duration(duration)
            )
        except Exception as e:
            raise StageError(
                f"Scene {scene_number}: video submission failed: {e}",
                retryable=is_retriable(e),
            ) from e
        logger.info(f"Job {job_id}: scene {scene_number} submitted as {operation.name}")

        polls = 0
        while not operation.done:
            if polls >= self.max_polls:
                logger.error(f"Job {job_id}: scene {scene_number} poll timed out")
                raise GenerationTimeoutError(
                    f"scene {scene_number} ({operation.name})", polls, self.poll_interval
                )
            await asyncio.sleep(self.poll_interval)
            if is_cancelled():
                raise JobCancelled(f"Job {job_id} cancelled while polling scene {scene_number}")
            try:
                operation = await _poll_operation_get(self.client, operation.name)
            except Exception as e:
                raise StageError(f"Scene {scene_number}: polling failed: {e}") from e
            polls += 1

        failure = _operation_failure(operation)
        if failure:
            raise StageError(f"Scene {scene_number}: {failure}")

        video = operation.response.generated_videos[0].video
        if video is not None and video.video_bytes:
            data = video.video_bytes
        elif video is not None and video.uri:
            data = await _download_from_gcs(video.uri)
        else:
            raise StageError(f"Scene {scene_number}: no video data in response")

        path = self.file_manager.save_clip(job_id, scene_number, data)
        logger.info(f"Job {job_id}: scene {scene_number} done after {polls} poll(s), saved to {path}")
        return self.file_manager.url_for(path)
