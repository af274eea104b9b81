"""
File management service for contentfactory.

Handles structured filesystem media storage with path traversal protection.
Creates per-job directories with subdirectories for images and clips.
"""
import uuid
from pathlib import Path
from typing import Optional

from contentfactory.config import settings


class FileManager:
    """
    Manage media files produced by jobs.

    Creates structured directories:
    - {base_dir}/{job_id}/images/ - Post images
    - {base_dir}/{job_id}/clips/ - Individual scene video clips

    Implements path traversal protection to prevent directory escape attacks.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        public_base_url: Optional[str] = None,
    ):
        """
        Initialize FileManager with base directory.

        Args:
            base_dir: Root directory for all job media.
                     If None, uses settings.storage.media_dir
            public_base_url: URL prefix under which base_dir is served.
                     If None, uses settings.storage.public_base_url; when
                     that is unset too, media URLs are file:// URIs.
        """
        if base_dir is None:
            base_dir = settings.storage.media_dir
        if public_base_url is None:
            public_base_url = settings.storage.public_base_url

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def get_job_dir(self, job_id: uuid.UUID) -> Path:
        """
        Get or create job directory with subdirectories.

        Raises:
            ValueError: If job_id creates path outside base_dir (traversal attack)
        """
        job_dir = (self.base_dir / str(job_id)).resolve()

        if not job_dir.is_relative_to(self.base_dir):
            raise ValueError("Invalid job path")

        job_dir.mkdir(exist_ok=True)
        (job_dir / "images").mkdir(exist_ok=True)
        (job_dir / "clips").mkdir(exist_ok=True)

        return job_dir

    def save_image(self, job_id: uuid.UUID, iteration: int, data: bytes) -> Path:
        """Save the image for one content-post iteration (1-based)."""
        filepath = self.get_job_dir(job_id) / "images" / f"post_{iteration}.png"
        filepath.write_bytes(data)
        return filepath

    def save_clip(self, job_id: uuid.UUID, scene_number: int, data: bytes) -> Path:
        """Save video clip for a scene (1-based scene number)."""
        filepath = self.get_job_dir(job_id) / "clips" / f"scene_{scene_number}.mp4"
        filepath.write_bytes(data)
        return filepath

    def url_for(self, path: Path) -> str:
        """Media URL for a stored file."""
        path = Path(path).resolve()
        if self.public_base_url is None:
            return path.as_uri()
        relative = path.relative_to(self.base_dir)
        return f"{self.public_base_url}/{relative.as_posix()}"
