"""Content-post pipeline: topic -> plan -> image -> caption -> publish.

Runs ``count`` iterations in sequence, one post per iteration. A stage error
fails only its iteration: the post is recorded as failed and the job moves
on. The post row is created as a draft once the caption exists and flipped
to published when the platform acknowledges it.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from contentfactory.db.models import utcnow
from contentfactory.orchestrator.errors import StageError
from contentfactory.orchestrator.stages import (
    EntityRecorder,
    ErrorPolicy,
    PipelineDefinition,
    Stage,
    StageContext,
    WeightedStage,
)
from contentfactory.orchestrator.state import JobState
from contentfactory.schemas.content import ContentPlan, GeneratedImage, PublishResult, Topic
from contentfactory.schemas.events import PostCreated
from contentfactory.schemas.jobs import ContentJobParams, JobKind

logger = logging.getLogger(__name__)

TOPIC = "topic"
PLAN = "plan"
IMAGE = "image"
CAPTION = "caption"
PUBLISH = "publish"

STAGE_WEIGHTS = {
    TOPIC: 0.25,
    PLAN: 0.25,
    IMAGE: 0.25,
    CAPTION: 0.15,
    PUBLISH: 0.10,
}


@dataclass
class ContentCollaborators:
    """External services the content stages call.

    trend_explorer.find_topic() -> Topic
    showrunner.create_plan(topic) -> ContentPlan
    image_generator.generate(plan, job_id=, iteration=) -> GeneratedImage
    caption_writer.write(plan) -> str
    publisher.publish(niche=, caption=, media_url=, keywords=) -> PublishResult
    """

    trend_explorer: Any
    showrunner: Any
    image_generator: Any
    caption_writer: Any
    publisher: Any


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------
class FindTopicStage(Stage):
    name = TOPIC
    label = "Finding trending topic"
    agent = "Trend Explorer"

    def __init__(self, trend_explorer) -> None:
        self.trend_explorer = trend_explorer

    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> Topic:
        topic = await self.trend_explorer.find_topic()
        logger.info(f"Job {context.job_id}: topic {topic.niche} {topic.keywords}")
        return topic


class CreatePlanStage(Stage):
    name = PLAN
    label = "Creating content plan"
    agent = "Showrunner"

    def __init__(self, showrunner) -> None:
        self.showrunner = showrunner

    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> ContentPlan:
        return await self.showrunner.create_plan(outputs[TOPIC])


class GenerateImageStage(Stage):
    name = IMAGE
    label = "Generating image"
    agent = "Image Generator"

    def __init__(self, image_generator) -> None:
        self.image_generator = image_generator

    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> GeneratedImage:
        image = await self.image_generator.generate(
            outputs[PLAN], job_id=context.job_id, iteration=context.iteration + 1
        )
        if not image.url:
            raise StageError("Image generation failed: no URL returned")
        return image


class WriteCaptionStage(Stage):
    name = CAPTION
    label = "Writing caption"
    agent = "Caption Writer"

    def __init__(self, caption_writer) -> None:
        self.caption_writer = caption_writer

    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> str:
        return await self.caption_writer.write(outputs[PLAN])


class PublishStage(Stage):
    name = PUBLISH
    label = "Publishing post"
    agent = "Publisher"

    def __init__(self, publisher) -> None:
        self.publisher = publisher

    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> PublishResult:
        plan: ContentPlan = outputs[PLAN]
        return await self.publisher.publish(
            niche=plan.niche,
            caption=outputs[CAPTION],
            media_url=outputs[IMAGE].url,
            keywords=plan.keywords,
        )


# ---------------------------------------------------------------------------
# Entity recording
# ---------------------------------------------------------------------------
class ContentPostRecorder(EntityRecorder):
    """Creates one post row per attempted iteration."""

    def __init__(self) -> None:
        self.post_ids: list[uuid.UUID] = []
        self.failed_post_ids: list[uuid.UUID] = []
        self._drafts: dict[int, uuid.UUID] = {}

    async def stage_completed(
        self, context: StageContext, stage: Stage, output: Any, outputs: dict[str, Any]
    ) -> dict:
        if stage.name == CAPTION:
            plan: ContentPlan = outputs[PLAN]
            post = await context.entities.create_post(
                context.job_id,
                context.iteration + 1,
                niche=plan.niche,
                caption=output,
                media_url=outputs[IMAGE].url,
                keywords=plan.keywords,
                status="draft",
            )
            self._drafts[context.iteration] = post.id
        elif stage.name == PUBLISH:
            post_id = self._drafts.pop(context.iteration)
            post = await context.entities.update_post(
                post_id,
                status="published",
                external_post_id=output.external_post_id,
                published_at=utcnow(),
            )
            self.post_ids.append(post.id)
            context.emit(
                PostCreated(
                    job_id=context.job_id,
                    kind=context.kind,
                    progress=context.progress,
                    post_id=post.id,
                    iteration=post.iteration,
                    niche=post.niche,
                    caption=post.caption,
                    media_url=post.media_url,
                    status=post.status,
                )
            )
        return {}

    async def iteration_failed(
        self, context: StageContext, error: StageError, outputs: dict[str, Any]
    ) -> Optional[uuid.UUID]:
        draft_id = self._drafts.pop(context.iteration, None)
        message = str(error) or "Stage failed"
        if draft_id is not None:
            post = await context.entities.update_post(
                draft_id, status="failed", error_message=message
            )
        else:
            source = outputs.get(PLAN) or outputs.get(TOPIC)
            post = await context.entities.create_post(
                context.job_id,
                context.iteration + 1,
                niche=source.niche if source else None,
                keywords=source.keywords if source else None,
                media_url=outputs[IMAGE].url if IMAGE in outputs else None,
                status="failed",
                error_message=message,
            )
        self.failed_post_ids.append(post.id)
        return post.id

    async def job_finished(
        self,
        context: StageContext,
        state: JobState,
        outputs: dict[str, Any],
        error: Optional[str] = None,
    ) -> Optional[dict]:
        # A job that ends between caption and publish leaves its draft unpublished.
        leftover = list(self._drafts.values())
        self._drafts.clear()
        if leftover and state is not JobState.COMPLETED:
            status = "cancelled" if state is JobState.CANCELLED else "failed"
            message = error or "Job cancelled before the post was published"
            for post_id in leftover:
                await context.entities.update_post(post_id, status=status, error_message=message)
                self.failed_post_ids.append(post_id)
            logger.info(f"Job {context.job_id}: settled {len(leftover)} unpublished draft(s) as {status}")
        return {
            "post_ids": [str(post_id) for post_id in self.post_ids],
            "failed_post_ids": [str(post_id) for post_id in self.failed_post_ids],
        }


def build_content_pipeline(
    params: ContentJobParams, collaborators: ContentCollaborators
) -> PipelineDefinition:
    """Pipeline definition for one content-post job."""
    stages = [
        FindTopicStage(collaborators.trend_explorer),
        CreatePlanStage(collaborators.showrunner),
        GenerateImageStage(collaborators.image_generator),
        WriteCaptionStage(collaborators.caption_writer),
        PublishStage(collaborators.publisher),
    ]
    return PipelineDefinition(
        kind=JobKind.CONTENT_POST,
        policy=ErrorPolicy.CONTINUE_PER_ITERATION,
        stages=[WeightedStage(stage, STAGE_WEIGHTS[stage.name]) for stage in stages],
        recorder=ContentPostRecorder(),
        iterations=params.count,
        iteration_is_unit=True,
        total_units=params.count,
    )
