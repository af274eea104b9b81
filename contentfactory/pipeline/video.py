"""Video pipeline: storyboard -> scene[1..N] -> combine.

Scenes are generated one at a time in scene-number order. Any stage error
aborts the job: a missing scene invalidates the combined video, so the
combine stage never runs after a scene failure.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from contentfactory.db.models import utcnow
from contentfactory.orchestrator.errors import StageError
from contentfactory.orchestrator.stages import (
    EntityRecorder,
    ErrorPolicy,
    PipelineDefinition,
    RepeatedStage,
    Stage,
    StageContext,
    WeightedStage,
)
from contentfactory.orchestrator.state import JobState
from contentfactory.schemas.events import SceneCompleted, StoryboardCreated
from contentfactory.schemas.jobs import JobKind, VideoJobParams
from contentfactory.schemas.storyboard import Scene, Storyboard
from contentfactory.services.storyboard_agent import build_scene_prompt

logger = logging.getLogger(__name__)

STORYBOARD = "storyboard"
SCENES = "scenes"
COMBINE = "combine"

STAGE_WEIGHTS = {
    STORYBOARD: 0.20,
    SCENES: 0.60,
    COMBINE: 0.20,
}

# Video entity status per terminal job state
_VIDEO_STATUS = {
    JobState.COMPLETED: "completed",
    JobState.FAILED: "failed",
    JobState.CANCELLED: "cancelled",
}


@dataclass
class VideoCollaborators:
    """External services the video stages call.

    storyboard_agent.create_storyboard(prompt, niche=, scene_count=, total_duration=) -> Storyboard
    video_generator.generate(prompt, job_id=, scene_number=, duration=, is_cancelled=) -> str
    combiner.combine(media_urls, job_id=) -> str
    """

    storyboard_agent: Any
    video_generator: Any
    combiner: Any


def check_storyboard(storyboard: Storyboard, expected_scenes: int) -> None:
    """Validate scene numbering is contiguous 1..N.

    Raises:
        StageError: If the storyboard is empty or misnumbered.
    """
    if not storyboard.scenes:
        raise StageError("Storyboard has no scenes")
    numbers = [scene.scene_number for scene in storyboard.scenes]
    if numbers != list(range(1, len(numbers) + 1)):
        raise StageError(f"Storyboard scene numbers are not contiguous: {numbers}")
    if len(numbers) != expected_scenes:
        logger.warning(
            f"Storyboard returned {len(numbers)} scenes, {expected_scenes} requested"
        )


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------
class StoryboardStage(Stage):
    name = STORYBOARD
    label = "Creating storyboard"
    agent = "Storyboard Artist"

    def __init__(self, storyboard_agent) -> None:
        self.storyboard_agent = storyboard_agent

    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> Storyboard:
        params: VideoJobParams = context.params
        storyboard = await self.storyboard_agent.create_storyboard(
            params.prompt,
            niche=params.niche,
            scene_count=params.scene_count,
            total_duration=params.total_duration,
        )
        check_storyboard(storyboard, params.scene_count)
        return storyboard


class SceneGenerationStage(RepeatedStage):
    """Generates one clip per scene and attaches its media URL."""

    name = SCENES
    label = "Generating scenes"
    agent = "Video Generator"

    def __init__(self, video_generator) -> None:
        self.video_generator = video_generator

    def units(self, outputs: dict[str, Any]) -> Sequence[Scene]:
        return outputs[STORYBOARD].scenes

    async def execute_unit(
        self, context: StageContext, outputs: dict[str, Any], unit: Scene
    ) -> Scene:
        total = len(outputs[STORYBOARD].scenes)
        logger.info(f"Job {context.job_id}: generating scene {unit.scene_number}/{total}")
        media_url = await self.video_generator.generate(
            build_scene_prompt(unit),
            job_id=context.job_id,
            scene_number=unit.scene_number,
            duration=unit.duration,
            is_cancelled=context.is_cancelled,
        )
        if not media_url:
            raise StageError(f"Scene {unit.scene_number} generation returned no video")
        unit.media_url = media_url
        return unit


class CombineStage(Stage):
    name = COMBINE
    label = "Combining scenes"
    agent = "Video Editor"

    def __init__(self, combiner) -> None:
        self.combiner = combiner

    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> str:
        scenes: list[Scene] = outputs[STORYBOARD].scenes
        missing = [scene.scene_number for scene in scenes if not scene.media_url]
        if missing:
            raise StageError(f"Cannot combine, scenes without video: {missing}")
        return await self.combiner.combine(
            [scene.media_url for scene in scenes], job_id=context.job_id
        )


# ---------------------------------------------------------------------------
# Entity recording
# ---------------------------------------------------------------------------
class VideoRecorder(EntityRecorder):
    """Keeps the job's video row in step with its storyboard and scenes."""

    def __init__(self) -> None:
        self.video_id = None
        self.storyboard: Optional[Storyboard] = None
        self.video_url: Optional[str] = None

    async def job_started(self, context: StageContext) -> None:
        params: VideoJobParams = context.params
        video = await context.entities.create_video(
            context.job_id,
            params.prompt,
            niche=params.niche,
            duration=params.total_duration,
            status="processing",
        )
        self.video_id = video.id

    async def stage_completed(
        self, context: StageContext, stage: Stage, output: Any, outputs: dict[str, Any]
    ) -> dict:
        if stage.name == STORYBOARD:
            self.storyboard = output
            await context.entities.update_video(
                self.video_id,
                title=output.title,
                niche=output.niche,
                story_script=output.overall_prompt,
                scenes=output.scenes,
            )
            context.emit(
                StoryboardCreated(
                    job_id=context.job_id,
                    kind=context.kind,
                    progress=context.progress,
                    video_id=self.video_id,
                    title=output.title,
                    scenes=[scene.model_copy() for scene in output.scenes],
                )
            )
            return {"total_units": len(output.scenes)}
        if stage.name == COMBINE:
            self.video_url = output
            await context.entities.update_video(self.video_id, video_url=output)
        return {}

    async def unit_completed(
        self, context: StageContext, stage: RepeatedStage, unit: Scene, output: Any
    ) -> dict:
        await context.entities.update_video(self.video_id, scenes=self.storyboard.scenes)
        context.emit(
            SceneCompleted(
                job_id=context.job_id,
                kind=context.kind,
                progress=context.progress,
                scene_number=unit.scene_number,
                total_scenes=len(self.storyboard.scenes),
                media_url=unit.media_url,
            )
        )
        return {}

    async def job_finished(
        self,
        context: StageContext,
        state: JobState,
        outputs: dict[str, Any],
        error: Optional[str] = None,
    ) -> Optional[dict]:
        if self.video_id is None:
            return None
        fields: dict[str, Any] = {"status": _VIDEO_STATUS[state]}
        if state is JobState.COMPLETED:
            fields["completed_at"] = utcnow()
        if state is JobState.FAILED:
            fields["error_message"] = error
        await context.entities.update_video(self.video_id, **fields)
        scenes = self.storyboard.scenes if self.storyboard else []
        return {
            "video_id": str(self.video_id),
            "video_url": self.video_url,
            "scenes": [scene.model_dump(mode="json") for scene in scenes],
        }


def build_video_pipeline(
    params: VideoJobParams, collaborators: VideoCollaborators
) -> PipelineDefinition:
    """Pipeline definition for one video job."""
    stages = [
        StoryboardStage(collaborators.storyboard_agent),
        SceneGenerationStage(collaborators.video_generator),
        CombineStage(collaborators.combiner),
    ]
    return PipelineDefinition(
        kind=JobKind.VIDEO,
        policy=ErrorPolicy.ABORT_ON_ERROR,
        stages=[WeightedStage(stage, STAGE_WEIGHTS[stage.name]) for stage in stages],
        recorder=VideoRecorder(),
    )
