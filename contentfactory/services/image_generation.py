"""Post image generation with Gemini image models on Vertex AI."""

import logging
import uuid
from typing import Optional

from google.genai import types
from google.genai.errors import ClientError, ServerError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from contentfactory.config import settings
from contentfactory.orchestrator.errors import StageError
from contentfactory.schemas.content import ContentPlan, GeneratedImage
from contentfactory.services.file_manager import FileManager
from contentfactory.services.vertex_client import get_vertex_client, location_for_model

logger = logging.getLogger(__name__)

PHOTO_STYLE = (
    "Realistic iPhone photo style, natural lighting, high quality, professional "
    "photography, candid moment, authentic, 3:4 aspect ratio."
)


def is_retriable(exc: BaseException) -> bool:
    """Return True only for transient errors worth retrying (429, 5xx)."""
    if isinstance(exc, ServerError):
        return True
    if isinstance(exc, ClientError):
        return getattr(exc, "code", 0) == 429
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return True
    return False


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=2, min=4, max=60) + wait_random(0, 3),
    retry=retry_if_exception(is_retriable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _generate_image_bytes(client, image_model: str, prompt: str) -> bytes:
    response = await client.aio.models.generate_content(
        model=image_model,
        contents=prompt,
        config=types.GenerateContentConfig(
            response_modalities=["IMAGE"],
        ),
    )
    for part in response.candidates[0].content.parts:
        if part.inline_data:
            return part.inline_data.data

    raise ValueError("No image generated in response")


class ImageGenerator:
    """Renders the plan's image prompt and stores the result."""

    def __init__(
        self,
        file_manager: Optional[FileManager] = None,
        image_model: Optional[str] = None,
    ) -> None:
        self._file_manager = file_manager
        self.image_model = image_model or settings.models.image_gen

    @property
    def file_manager(self) -> FileManager:
        if self._file_manager is None:
            self._file_manager = FileManager()
        return self._file_manager

    async def generate(
        self, plan: ContentPlan, *, job_id: uuid.UUID, iteration: int
    ) -> GeneratedImage:
        """Generate and save the image for one post.

        Raises:
            StageError: If generation fails after retries.
        """
        prompt = f"{plan.image_prompt.rstrip('.')}. {PHOTO_STYLE}"
        try:
            client = get_vertex_client(location=location_for_model(self.image_model))
            data = await _generate_image_bytes(client, self.image_model, prompt)
        except Exception as e:
            raise StageError(
                f"Failed to generate image: {e}", retryable=is_retriable(e)
            ) from e

        path = self.file_manager.save_image(job_id, iteration, data)
        logger.info(f"Job {job_id}: saved image for post {iteration} to {path}")
        return GeneratedImage(url=self.file_manager.url_for(path), prompt=prompt)
