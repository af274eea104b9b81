"""Stage abstraction and pipeline definitions.

A pipeline definition is data: an ordered list of weighted stages, an error
policy and an entity recorder. The orchestrator drives every definition with
the same loop and knows nothing about what a stage does beyond its name,
label, agent and weight.
"""

import math
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Sequence

from pydantic import BaseModel

from contentfactory.orchestrator.errors import JobCancelled, StageError
from contentfactory.orchestrator.state import JobState

if TYPE_CHECKING:
    from contentfactory.db.store import EntityStore
    from contentfactory.schemas.events import JobEvent
    from contentfactory.schemas.jobs import JobKind


class ErrorPolicy(str, Enum):
    """What a StageError does to the job when the error does not say."""

    ABORT_ON_ERROR = "abort_on_error"
    CONTINUE_PER_ITERATION = "continue_per_iteration"


UnitCallback = Callable[["RepeatedStage", Any, Any, int, int], Awaitable[None]]


async def _ignore_unit(stage, unit, output, done, total) -> None:
    return None


@dataclass
class StageContext:
    """Per-job execution context handed to every stage and recorder hook.

    The orchestrator owns it and updates ``iteration`` and ``progress`` as the
    job advances. Nothing in it is shared with other jobs.
    """

    job_id: uuid.UUID
    kind: "JobKind"
    params: BaseModel
    entities: "EntityStore"
    emit: Callable[["JobEvent"], None]
    is_cancelled: Callable[[], bool]
    iteration: int = 0
    total_iterations: int = 1
    progress: float = 0.0
    unit_completed: UnitCallback = _ignore_unit

    def raise_if_cancelled(self) -> None:
        """Raise JobCancelled when a stop has been requested for this job."""
        if self.is_cancelled():
            raise JobCancelled(f"Job {self.job_id} cancelled")


@dataclass
class StageExecution:
    """In-memory record of one stage run, kept only while the job runs."""

    index: int
    name: str
    attempt: int = 1
    started: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started


class Stage(ABC):
    """One named unit of pipeline work calling an external collaborator.

    Attributes:
        name: Key under which the stage output is stored for later stages.
        label: Human-readable status text shown while the stage runs.
        agent: Specialist agent credited with the work, if any.
    """

    name: str = "stage"
    label: str = "Working"
    agent: Optional[str] = None

    @abstractmethod
    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> Any:
        """Run the stage.

        Args:
            context: Execution context of the owning job.
            outputs: Outputs of the stages already completed in this iteration,
                keyed by stage name.

        Returns:
            The stage output, stored under ``outputs[self.name]``.

        Raises:
            StageError: If the collaborator failed or returned an invalid result.
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class RepeatedStage(Stage):
    """Stage that runs once per unit, in order, e.g. one video scene.

    Cancellation is checked before every unit and each finished unit is
    reported to the orchestrator, which counts it as one completed job unit.
    """

    @abstractmethod
    def units(self, outputs: dict[str, Any]) -> Sequence[Any]:
        ...

    @abstractmethod
    async def execute_unit(
        self, context: StageContext, outputs: dict[str, Any], unit: Any
    ) -> Any:
        ...

    async def execute(self, context: StageContext, outputs: dict[str, Any]) -> list:
        units = list(self.units(outputs))
        results = []
        for done, unit in enumerate(units, start=1):
            context.raise_if_cancelled()
            result = await self.execute_unit(context, outputs, unit)
            results.append(result)
            await context.unit_completed(self, unit, result, done, len(units))
        return results


class EntityRecorder:
    """Persists the domain entities a pipeline produces.

    Hooks run inside the job's task right after the corresponding state
    change, so their writes complete before the next stage starts. The
    default implementation records nothing.
    """

    async def job_started(self, context: StageContext) -> None:
        return None

    async def stage_completed(
        self, context: StageContext, stage: Stage, output: Any, outputs: dict[str, Any]
    ) -> dict:
        """Return extra job fields to persist with the stage's progress update."""
        return {}

    async def unit_completed(
        self, context: StageContext, stage: RepeatedStage, unit: Any, output: Any
    ) -> dict:
        return {}

    async def iteration_failed(
        self, context: StageContext, error: StageError, outputs: dict[str, Any]
    ) -> Optional[uuid.UUID]:
        """Record the failed item of one iteration; return its entity id."""
        return None

    async def job_finished(
        self,
        context: StageContext,
        state: JobState,
        outputs: dict[str, Any],
        error: Optional[str] = None,
    ) -> Optional[dict]:
        """Finalize entities for a terminal state; return the job result."""
        return None


@dataclass(frozen=True)
class WeightedStage:
    """A stage and its fraction of one iteration's progress."""

    stage: Stage
    weight: float


@dataclass
class PipelineDefinition:
    """Ordered weighted stages plus the policy that governs failures.

    Attributes:
        kind: Job kind this definition runs.
        policy: Default handling of StageError.
        stages: Stages in execution order; weights must sum to 1.0.
        recorder: Entity persistence hooks.
        iterations: How many times the stage sequence runs.
        iteration_is_unit: Count each attempted iteration as a completed unit.
        total_units: Initial total_units of the job.
    """

    kind: "JobKind"
    policy: ErrorPolicy
    stages: list[WeightedStage]
    recorder: EntityRecorder = field(default_factory=EntityRecorder)
    iterations: int = 1
    iteration_is_unit: bool = False
    total_units: int = 0

    def __post_init__(self) -> None:
        if not self.stages:
            raise ValueError("A pipeline needs at least one stage")
        if self.iterations < 1:
            raise ValueError(f"iterations must be >= 1, got {self.iterations}")
        if any(ws.weight < 0 for ws in self.stages):
            raise ValueError("Stage weights must be non-negative")
        total = sum(ws.weight for ws in self.stages)
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"Stage weights must sum to 1.0, got {total:.3f}")
        names = [ws.stage.name for ws in self.stages]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate stage names: {names}")

    @property
    def stage_names(self) -> list[str]:
        return [ws.stage.name for ws in self.stages]

    def aborts_on(self, error: StageError) -> bool:
        """Whether this error ends the job under this definition's policy."""
        if error.abort_job is not None:
            return error.abort_job
        return self.policy is ErrorPolicy.ABORT_ON_ERROR
