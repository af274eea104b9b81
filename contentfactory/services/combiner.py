"""Scene combination.

Combining is an opaque operation: frame-level concatenation is out of
scope. A single clip passes through unchanged; for several clips the first
scene's media stands in for the combined video and a warning is logged.
"""

import logging
import uuid

from contentfactory.orchestrator.errors import StageError

logger = logging.getLogger(__name__)


class PassthroughCombiner:
    """Returns a representative clip instead of concatenating scenes."""

    async def combine(self, media_urls: list[str], *, job_id: uuid.UUID) -> str:
        if not media_urls:
            raise StageError("No scene clips to combine")
        if len(media_urls) > 1:
            logger.warning(
                f"Job {job_id}: combining {len(media_urls)} clips is not supported, "
                "using the first scene as the video"
            )
        return media_urls[0]
