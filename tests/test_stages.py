"""Pipeline definitions validate their stages; repeated stages honour stops."""

import uuid

import pytest

from contentfactory.orchestrator.errors import JobCancelled, StageError
from contentfactory.orchestrator.stages import (
    ErrorPolicy,
    PipelineDefinition,
    RepeatedStage,
    Stage,
    StageContext,
    WeightedStage,
)
from contentfactory.pipeline.content import STAGE_WEIGHTS as CONTENT_WEIGHTS
from contentfactory.pipeline.video import STAGE_WEIGHTS as VIDEO_WEIGHTS
from contentfactory.schemas.jobs import JobKind


class EchoStage(Stage):
    def __init__(self, name):
        self.name = name

    async def execute(self, context, outputs):
        return self.name


class CountingStage(RepeatedStage):
    name = "units"

    def units(self, outputs):
        return [1, 2, 3]

    async def execute_unit(self, context, outputs, unit):
        return unit * 10


def _context(is_cancelled=lambda: False):
    return StageContext(
        job_id=uuid.uuid4(),
        kind=JobKind.VIDEO,
        params=None,
        entities=None,
        emit=lambda event: None,
        is_cancelled=is_cancelled,
    )


def test_stage_weights_sum_to_one():
    assert sum(CONTENT_WEIGHTS.values()) == pytest.approx(1.0)
    assert sum(VIDEO_WEIGHTS.values()) == pytest.approx(1.0)


def test_weights_must_sum_to_one():
    with pytest.raises(ValueError, match="sum to 1.0"):
        PipelineDefinition(
            kind=JobKind.VIDEO,
            policy=ErrorPolicy.ABORT_ON_ERROR,
            stages=[WeightedStage(EchoStage("a"), 0.5), WeightedStage(EchoStage("b"), 0.3)],
        )


def test_stage_names_must_be_unique():
    with pytest.raises(ValueError, match="Duplicate"):
        PipelineDefinition(
            kind=JobKind.VIDEO,
            policy=ErrorPolicy.ABORT_ON_ERROR,
            stages=[WeightedStage(EchoStage("a"), 0.5), WeightedStage(EchoStage("a"), 0.5)],
        )


def test_definition_needs_stages_and_iterations():
    with pytest.raises(ValueError):
        PipelineDefinition(kind=JobKind.VIDEO, policy=ErrorPolicy.ABORT_ON_ERROR, stages=[])
    with pytest.raises(ValueError):
        PipelineDefinition(
            kind=JobKind.CONTENT_POST,
            policy=ErrorPolicy.CONTINUE_PER_ITERATION,
            stages=[WeightedStage(EchoStage("a"), 1.0)],
            iterations=0,
        )


def test_error_policy_can_be_overridden_by_the_error():
    definition = PipelineDefinition(
        kind=JobKind.CONTENT_POST,
        policy=ErrorPolicy.CONTINUE_PER_ITERATION,
        stages=[WeightedStage(EchoStage("a"), 1.0)],
    )
    assert definition.stage_names == ["a"]
    assert not definition.aborts_on(StageError("flaky"))
    assert definition.aborts_on(StageError("credentials revoked", abort_job=True))


async def test_repeated_stage_reports_each_unit():
    reported = []

    async def unit_completed(stage, unit, output, done, total):
        reported.append((unit, output, done, total))

    context = _context()
    context.unit_completed = unit_completed

    results = await CountingStage().execute(context, {})

    assert results == [10, 20, 30]
    assert reported == [(1, 10, 1, 3), (2, 20, 2, 3), (3, 30, 3, 3)]


async def test_repeated_stage_stops_between_units():
    stop = {"requested": False}

    async def unit_completed(stage, unit, output, done, total):
        if done == 2:
            stop["requested"] = True

    context = _context(lambda: stop["requested"])
    context.unit_completed = unit_completed

    with pytest.raises(JobCancelled):
        await CountingStage().execute(context, {})
