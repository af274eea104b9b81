"""Job runner driving pipeline definitions stage by stage.

Each job runs as one asyncio task owned by the Orchestrator:
- State machine transitions persisted through the JobStore
- Progress from stage weights, never decreasing while running
- Cooperative cancellation checked before each iteration, stage and unit
- Per-stage timing and logging
- Error policy per pipeline: abort the job or isolate the iteration
- Supervision at the task boundary: unexpected errors become a failed job

Usage:
    orchestrator = Orchestrator({JobKind.VIDEO: video_factory}, jobs=JobStore(), ...)
    job_id = await orchestrator.start(JobKind.VIDEO, {"prompt": "..."})
    snapshot = await orchestrator.get_status(job_id)
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel

from contentfactory.db.models import utcnow
from contentfactory.db.store import AgentStore, EntityStore, JobStore
from contentfactory.orchestrator.broadcaster import EventBroadcaster
from contentfactory.orchestrator.errors import (
    InvalidTransitionError,
    JobCancelled,
    JobNotFoundError,
    PersistenceError,
    StageError,
)
from contentfactory.orchestrator.registry import RunningJobRegistry
from contentfactory.orchestrator.stages import (
    PipelineDefinition,
    RepeatedStage,
    Stage,
    StageContext,
    StageExecution,
)
from contentfactory.orchestrator.state import JobState
from contentfactory.schemas.events import (
    ItemFailed,
    JobCancelledEvent,
    JobCompleted,
    JobEvent,
    JobFailed,
    JobStarted,
    JobStatus,
)
from contentfactory.schemas.jobs import (
    JobKind,
    JobSnapshot,
    PostRecord,
    VideoRecord,
    parse_params,
)

logger = logging.getLogger(__name__)

PipelineFactory = Callable[[BaseModel], PipelineDefinition]

INTERRUPTED_MESSAGE = "Interrupted by process restart"


@dataclass
class _JobRun:
    """Mutable counters owned by one job's task."""

    job_id: uuid.UUID
    kind: JobKind
    definition: Optional[PipelineDefinition] = None
    context: Optional[StageContext] = None
    progress: float = 0.0
    completed_units: int = 0
    total_units: int = 0
    terminal_emitted: bool = False


class Orchestrator:
    """Runs jobs concurrently, one task per job, and answers status queries."""

    def __init__(
        self,
        pipelines: Mapping[JobKind, PipelineFactory],
        *,
        jobs: Optional[JobStore] = None,
        entities: Optional[EntityStore] = None,
        agents: Optional[AgentStore] = None,
        broadcaster: Optional[EventBroadcaster] = None,
    ) -> None:
        self._pipelines = {JobKind(kind): factory for kind, factory in pipelines.items()}
        self.jobs = jobs or JobStore()
        self.entities = entities or EntityStore()
        self.agents = agents
        self.broadcaster = broadcaster or EventBroadcaster()
        self.registry = RunningJobRegistry()

    # -----------------------------------------------------------------------
    # Caller-facing surface
    # -----------------------------------------------------------------------
    async def start(
        self, kind: Union[JobKind, str], params: Union[BaseModel, dict, None] = None
    ) -> uuid.UUID:
        """Create a job and launch its stage sequence in the background.

        Returns:
            The new job id, before any stage has run.

        Raises:
            ValueError: If no pipeline is registered for the kind.
            pydantic.ValidationError: If params are invalid for the kind.
        """
        kind = JobKind(kind)
        if kind not in self._pipelines:
            raise ValueError(f"No pipeline registered for {kind.value}")
        validated = parse_params(kind, params)

        snapshot = await self.jobs.create_job(kind, validated.model_dump(mode="json"))
        self.registry.register(snapshot.id, kind.value)
        task = asyncio.create_task(
            self._supervise(snapshot.id, kind, validated),
            name=f"job-{snapshot.id}",
        )
        self.registry.attach_task(snapshot.id, task)
        logger.info(f"Started {kind.value} job {snapshot.id}")
        return snapshot.id

    async def stop(self, job_id: uuid.UUID) -> JobSnapshot:
        """Request cooperative cancellation of a job.

        Terminal jobs are left unchanged. A live job stops at its next
        boundary. A non-terminal job with no task in this process is
        cancelled directly.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        snapshot = await self.jobs.get_job(job_id)
        if snapshot is None:
            raise JobNotFoundError(job_id)
        if snapshot.is_terminal:
            logger.info(f"Stop requested for job {job_id} already {snapshot.status.value}")
            return snapshot
        if self.registry.request_cancel(job_id):
            return snapshot

        logger.warning(f"Job {job_id} has no live task, cancelling directly")
        try:
            snapshot = await self.jobs.update_job(
                job_id,
                status=JobState.CANCELLED,
                completed_at=utcnow(),
                current_stage=None,
                current_agent=None,
            )
        except InvalidTransitionError:
            # Finished between the read and the update
            return await self.jobs.get_job(job_id)
        self._emit(
            JobCancelledEvent(
                job_id=job_id,
                kind=snapshot.kind,
                progress=snapshot.progress,
                completed_units=snapshot.completed_units,
                total_units=snapshot.total_units,
            )
        )
        return snapshot

    async def get_status(
        self,
        job_id: Optional[uuid.UUID] = None,
        kind: Optional[JobKind] = None,
    ) -> Optional[JobSnapshot]:
        """Snapshot of a job, or of the latest running job when no id is given.

        Raises:
            JobNotFoundError: If an explicit job id does not exist.
        """
        if job_id is None:
            return await self.jobs.get_latest_running_job(kind)
        snapshot = await self.jobs.get_job(job_id)
        if snapshot is None:
            raise JobNotFoundError(job_id)
        return snapshot

    async def list_entities(
        self, kind: Union[JobKind, str], limit: int = 20, offset: int = 0
    ) -> list[Union[PostRecord, VideoRecord]]:
        """Entities produced by jobs of a kind, newest first."""
        if JobKind(kind) is JobKind.CONTENT_POST:
            return await self.entities.list_posts(limit=limit, offset=offset)
        return await self.entities.list_videos(limit=limit, offset=offset)

    async def wait(self, job_id: uuid.UUID) -> JobSnapshot:
        """Wait for a job's task to finish and return its final snapshot."""
        entry = self.registry.get(job_id)
        if entry is not None and entry.task is not None:
            await asyncio.gather(entry.task, return_exceptions=True)
        return await self.get_status(job_id)

    def is_running(self, job_id: uuid.UUID) -> bool:
        return job_id in self.registry

    async def reconcile_orphans(self) -> int:
        """Fail jobs left pending or running by a previous process.

        Returns:
            Number of jobs marked failed.
        """
        count = 0
        for snapshot in await self.jobs.list_unfinished_jobs():
            if snapshot.id in self.registry:
                continue
            try:
                snapshot = await self.jobs.update_job(
                    snapshot.id,
                    status=JobState.FAILED,
                    error_message=INTERRUPTED_MESSAGE,
                    completed_at=utcnow(),
                    current_stage=None,
                    current_agent=None,
                )
            except InvalidTransitionError:
                continue
            logger.warning(
                f"Job {snapshot.id} ({snapshot.kind.value}) interrupted at "
                f"{snapshot.progress:.0f}%, marked failed"
            )
            self._emit(
                JobFailed(
                    job_id=snapshot.id,
                    kind=snapshot.kind,
                    progress=snapshot.progress,
                    error=INTERRUPTED_MESSAGE,
                )
            )
            count += 1
        return count

    async def shutdown(self) -> None:
        """Cancel live job tasks and close all subscriptions."""
        tasks = self.registry.tasks()
        if tasks:
            logger.info(f"Cancelling {len(tasks)} running job(s)")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        self.broadcaster.close_all()

    # -----------------------------------------------------------------------
    # Task supervision
    # -----------------------------------------------------------------------
    async def _supervise(self, job_id: uuid.UUID, kind: JobKind, params: BaseModel) -> None:
        """Task boundary: no exception escapes except shutdown cancellation."""
        run = _JobRun(job_id=job_id, kind=kind)
        try:
            await self._run(run, params)
        except asyncio.CancelledError:
            logger.warning(f"Job {job_id} task cancelled during shutdown")
            await self._record_terminal_quietly(run, JobState.CANCELLED)
            raise
        except Exception as e:
            logger.exception(f"Job {job_id} failed: {type(e).__name__}: {e}")
            await self._record_terminal_quietly(
                run, JobState.FAILED, str(e) or type(e).__name__
            )
        finally:
            self.registry.remove(job_id)

    async def _record_terminal_quietly(
        self, run: _JobRun, state: JobState, error: Optional[str] = None
    ) -> None:
        """Best-effort terminal bookkeeping after an escaped exception."""
        if run.terminal_emitted:
            return
        result = None
        if run.definition is not None and run.context is not None:
            try:
                result = await run.definition.recorder.job_finished(run.context, state, {}, error)
            except Exception as record_err:
                logger.error(f"Could not settle entities of job {run.job_id}: {record_err}")
        try:
            await self.jobs.update_job(
                run.job_id,
                status=state,
                error_message=error,
                result=result,
                completed_at=utcnow(),
                current_stage=None,
                current_agent=None,
            )
        except Exception as persist_err:
            logger.error(f"Could not record {state.value} for job {run.job_id}: {persist_err}")
        self.registry.remove(run.job_id)
        self._emit_terminal(run, state, error)

    # -----------------------------------------------------------------------
    # Stage loop
    # -----------------------------------------------------------------------
    async def _run(self, run: _JobRun, params: BaseModel) -> None:
        definition = self._pipelines[run.kind](params)
        run.definition = definition
        run.total_units = definition.total_units
        context = StageContext(
            job_id=run.job_id,
            kind=run.kind,
            params=params,
            entities=self.entities,
            emit=self._emit,
            is_cancelled=lambda: self.registry.is_cancel_requested(run.job_id),
            total_iterations=definition.iterations,
        )
        run.context = context

        await self.jobs.update_job(
            run.job_id,
            status=JobState.RUNNING,
            started_at=utcnow(),
            progress=0.0,
            total_units=run.total_units,
        )
        self._emit(
            JobStarted(
                job_id=run.job_id,
                kind=run.kind,
                total_units=run.total_units,
            )
        )
        await definition.recorder.job_started(context)
        logger.info(
            f"Job {run.job_id}: running {len(definition.stages)} stage(s) "
            f"x {definition.iterations} iteration(s), policy={definition.policy.value}"
        )

        outputs: dict[str, Any] = {}
        for iteration in range(definition.iterations):
            if context.is_cancelled():
                await self._finish(run, JobState.CANCELLED, outputs)
                return
            context.iteration = iteration
            outputs = {}
            try:
                await self._run_iteration(run, outputs)
            except JobCancelled:
                await self._finish(run, JobState.CANCELLED, outputs)
                return
            except StageError as e:
                if definition.aborts_on(e):
                    logger.error(f"Job {run.job_id}: stage '{e.stage}' failed, aborting: {e}")
                    await self._finish(run, JobState.FAILED, outputs, str(e) or "Stage failed")
                    return
                await self._fail_iteration(run, outputs, e)

        await self._finish(run, JobState.COMPLETED, outputs)

    async def _run_iteration(self, run: _JobRun, outputs: dict[str, Any]) -> None:
        definition = run.definition
        context = run.context
        completed_weight = 0.0
        last_index = len(definition.stages) - 1

        for index, weighted in enumerate(definition.stages):
            context.raise_if_cancelled()
            stage = weighted.stage
            execution = StageExecution(index=index, name=stage.name)
            await self._enter_stage(run, stage)

            if isinstance(stage, RepeatedStage):
                context.unit_completed = self._unit_callback(
                    run, completed_weight, weighted.weight
                )
            try:
                output = await stage.execute(context, outputs)
            except (StageError, JobCancelled, PersistenceError) as e:
                if isinstance(e, StageError) and e.stage is None:
                    e.stage = stage.name
                await self._release_agent(stage)
                raise
            except Exception as e:
                await self._release_agent(stage)
                raise StageError(
                    f"{stage.label} failed: {type(e).__name__}: {e}", stage=stage.name
                ) from e

            outputs[stage.name] = output
            completed_weight += weighted.weight
            self._bump_progress(run, completed_weight)
            fields = await definition.recorder.stage_completed(context, stage, output, outputs)
            if index == last_index and definition.iteration_is_unit:
                run.completed_units += 1
            await self._advance(run, completed_weight, stage, fields)
            if self.agents is not None and stage.agent:
                await self.agents.record_task(stage.agent)
            logger.info(
                f"Job {run.job_id}: stage '{stage.name}' completed in {execution.elapsed:.2f}s "
                f"(iteration {context.iteration + 1}/{definition.iterations})"
            )

    def _unit_callback(
        self,
        run: _JobRun,
        base_weight: float,
        stage_weight: float,
    ):
        async def unit_completed(stage: RepeatedStage, unit, output, done: int, total: int) -> None:
            run.completed_units += 1
            fraction = base_weight + stage_weight * done / max(total, 1)
            self._bump_progress(run, fraction)
            fields = await run.definition.recorder.unit_completed(run.context, stage, unit, output)
            await self._advance(run, fraction, stage, fields)

        return unit_completed

    async def _fail_iteration(
        self, run: _JobRun, outputs: dict[str, Any], error: StageError
    ) -> None:
        """Isolate a failed iteration and move the job on to the next one."""
        context = run.context
        iteration = context.iteration + 1
        logger.warning(
            f"Job {run.job_id}: iteration {iteration}/{run.definition.iterations} "
            f"failed at '{error.stage}': {error}"
        )
        entity_id = await run.definition.recorder.iteration_failed(context, error, outputs)
        if run.definition.iteration_is_unit:
            run.completed_units += 1
        await self._advance(run, 1.0, None, {})
        self._emit(
            ItemFailed(
                job_id=run.job_id,
                kind=run.kind,
                progress=run.progress,
                iteration=iteration,
                stage=error.stage,
                error=str(error),
                post_id=entity_id,
            )
        )

    # -----------------------------------------------------------------------
    # Persistence + events
    # -----------------------------------------------------------------------
    async def _enter_stage(self, run: _JobRun, stage: Stage) -> None:
        await self.jobs.update_job(
            run.job_id,
            status=JobState.RUNNING,
            current_stage=stage.label,
            current_agent=stage.agent,
        )
        if self.agents is not None and stage.agent:
            await self.agents.set_status(stage.agent, "active")
        self._emit_status(run, stage.label, stage.agent)

    async def _release_agent(self, stage: Stage) -> None:
        if self.agents is not None and stage.agent:
            await self.agents.set_status(stage.agent, "idle")

    @staticmethod
    def _bump_progress(run: _JobRun, fraction: float) -> None:
        """Move progress to ``fraction`` of the current iteration, never back."""
        iterations = run.definition.iterations
        target = 100.0 * (run.context.iteration + fraction) / iterations
        run.progress = max(run.progress, min(target, 100.0))
        run.context.progress = run.progress

    async def _advance(
        self,
        run: _JobRun,
        fraction: float,
        stage: Optional[Stage],
        fields: dict,
    ) -> None:
        """Persist progress after a stage, unit or failed iteration."""
        fields = dict(fields)
        if "total_units" in fields:
            run.total_units = fields.pop("total_units")
        self._bump_progress(run, fraction)

        await self.jobs.update_job(
            run.job_id,
            status=JobState.RUNNING,
            progress=run.progress,
            completed_units=run.completed_units,
            total_units=run.total_units,
            **fields,
        )
        if stage is not None:
            self._emit_status(run, stage.label, stage.agent)
        else:
            self._emit_status(run, None, None)

    async def _finish(
        self,
        run: _JobRun,
        state: JobState,
        outputs: dict[str, Any],
        error: Optional[str] = None,
    ) -> None:
        """Persist a terminal state, drop registry bookkeeping, then emit."""
        result = await run.definition.recorder.job_finished(run.context, state, outputs, error)
        fields: dict[str, Any] = {
            "status": state,
            "completed_at": utcnow(),
            "current_stage": None,
            "current_agent": None,
            "completed_units": run.completed_units,
            "total_units": run.total_units,
            "result": result,
        }
        if state is JobState.COMPLETED:
            run.progress = 100.0
            fields["progress"] = 100.0
        if state is JobState.FAILED:
            fields["error_message"] = error
        await self.jobs.update_job(run.job_id, **fields)
        self.registry.remove(run.job_id)
        logger.info(
            f"Job {run.job_id} {state.value}: {run.completed_units}/{run.total_units} units"
        )
        self._emit_terminal(run, state, error, result)

    def _emit_status(self, run: _JobRun, label: Optional[str], agent: Optional[str]) -> None:
        self._emit(
            JobStatus(
                job_id=run.job_id,
                kind=run.kind,
                progress=run.progress,
                current_stage=label,
                current_agent=agent,
                iteration=run.context.iteration + 1,
                total_iterations=run.definition.iterations,
                completed_units=run.completed_units,
                total_units=run.total_units,
            )
        )

    def _emit_terminal(
        self,
        run: _JobRun,
        state: JobState,
        error: Optional[str] = None,
        result: Optional[dict] = None,
    ) -> None:
        if run.terminal_emitted:
            return
        run.terminal_emitted = True
        if state is JobState.COMPLETED:
            event = JobCompleted(
                job_id=run.job_id,
                kind=run.kind,
                completed_units=run.completed_units,
                total_units=run.total_units,
                result=result,
            )
        elif state is JobState.FAILED:
            event = JobFailed(
                job_id=run.job_id,
                kind=run.kind,
                progress=run.progress,
                error=error or "Job failed",
            )
        else:
            event = JobCancelledEvent(
                job_id=run.job_id,
                kind=run.kind,
                progress=run.progress,
                completed_units=run.completed_units,
                total_units=run.total_units,
            )
        self._emit(event)

    def _emit(self, event: JobEvent) -> None:
        self.broadcaster.emit(event)
