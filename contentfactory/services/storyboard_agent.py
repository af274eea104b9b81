"""Storyboard generation for multi-scene videos.

Asks the text LLM for a StoryboardOutput and normalizes it into a Storyboard:
scenes are renumbered 1..N in the order returned, missing durations get an
even share of the total, and the niche falls back to the caller's.
"""

import logging
from typing import Optional

from contentfactory.orchestrator.errors import StageError
from contentfactory.schemas.storyboard import Scene, Storyboard, StoryboardOutput
from contentfactory.services.llm import LLMAdapter, get_adapter

logger = logging.getLogger(__name__)

STORYBOARD_SYSTEM_PROMPT = (
    "You are a professional video storyboard creator. Create engaging, cinematic "
    "video stories with multiple camera angles and smooth transitions."
)

CAMERA_INSTRUCTIONS = {
    "wide": "Wide angle shot, showing the full environment",
    "medium": "Medium shot, balanced view of subject and surroundings",
    "close-up": "Close-up shot, focusing on details",
    "overhead": "Overhead shot, bird's eye view",
    "pov": "Point of view shot, first-person perspective",
}


def build_scene_prompt(scene: Scene) -> str:
    """Video generation prompt for one scene with camera and quality cues."""
    return (
        f"{scene.description.rstrip('.')}. {CAMERA_INSTRUCTIONS[scene.camera_angle]}. "
        f"{scene.action.rstrip('.')}. "
        "Cinematic lighting, high quality, professional video production."
    )


def normalize_storyboard(
    output: StoryboardOutput,
    niche: Optional[str],
    total_duration: int,
    scene_count: int,
) -> Storyboard:
    """Renumber scenes 1..N and fill in defaults."""
    per_scene = max(total_duration // max(scene_count, 1), 1)
    scenes = [
        Scene(
            scene_number=index,
            description=raw.description,
            camera_angle=raw.camera_angle,
            action=raw.action,
            transition=raw.transition,
            duration=raw.duration if raw.duration and raw.duration > 0 else per_scene,
        )
        for index, raw in enumerate(output.scenes, start=1)
    ]
    return Storyboard(
        title=output.title,
        niche=output.niche or niche or "general",
        overall_prompt=output.overall_prompt,
        total_duration=total_duration,
        scenes=scenes,
    )


class StoryboardAgent:
    """Breaks a video prompt into an ordered scene breakdown."""

    def __init__(self, adapter: Optional[LLMAdapter] = None) -> None:
        self._adapter = adapter

    @property
    def adapter(self) -> LLMAdapter:
        if self._adapter is None:
            self._adapter = get_adapter()
        return self._adapter

    async def create_storyboard(
        self,
        prompt: str,
        *,
        niche: Optional[str] = None,
        scene_count: int = 3,
        total_duration: int = 30,
    ) -> Storyboard:
        """Generate a storyboard.

        Raises:
            StageError: If the LLM call fails or returns no usable scenes.
        """
        per_scene = total_duration // scene_count
        niche_line = f"Niche: {niche}\n" if niche else ""
        user_prompt = (
            "Create a video storyboard for the following:\n\n"
            f"Topic: {prompt}\n"
            f"{niche_line}"
            f"Number of scenes: {scene_count}\n"
            f"Total duration: {total_duration} seconds\n\n"
            "Requirements:\n"
            f"1. Create a compelling story that flows naturally across {scene_count} scenes\n"
            "2. Each scene should have a clear action and purpose\n"
            "3. Use varied camera angles (wide, medium, close-up, overhead, pov)\n"
            "4. Choose appropriate transitions between scenes (cut, fade, dissolve, wipe)\n"
            "5. Make it visually engaging and dynamic\n"
            f"Each scene should last about {per_scene} seconds."
        )
        try:
            output = await self.adapter.generate_text(
                user_prompt,
                StoryboardOutput,
                system_prompt=STORYBOARD_SYSTEM_PROMPT,
            )
        except Exception as e:
            raise StageError(f"Storyboard generation failed: {e}", retryable=True) from e

        if len(output.scenes) > scene_count:
            logger.warning(
                f"Storyboard returned {len(output.scenes)} scenes, keeping first {scene_count}"
            )
            output.scenes = output.scenes[:scene_count]

        storyboard = normalize_storyboard(output, niche, total_duration, scene_count)
        logger.info(f"Storyboard '{storyboard.title}' with {storyboard.total_scenes} scenes")
        return storyboard
