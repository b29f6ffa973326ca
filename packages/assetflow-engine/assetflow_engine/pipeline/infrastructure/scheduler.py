"""
Build scheduler - incremental pipeline rebuilds.

Per pipeline state machine::

    IDLE --event--> SCHEDULED --debounce elapsed, deps idle--> RUNNING --> IDLE
                      ^   |                                      |
                      |   +-- event: debounce timer reset         +-- event: rerun_requested
                      +------------------------------------------------- (one follow-up run)

- Debounce: a pipeline joins the run queue only after ``debounce_ms`` without
  further matching events.
- Mutual exclusion: never two runs of the same pipeline at once.
- Ordering: a queued pipeline waits while any (transitive) dependency is
  SCHEDULED or RUNNING. Unrelated pipelines run concurrently.
- Failure: a failed run goes back to IDLE and is reported. Dependents of a
  pipeline whose latest run failed are released as SKIPPED, keep their pending
  inputs, and are re-scheduled once the dependency succeeds.
- Full builds: a trigger without paths stays requested until a run starts,
  through skips too. Path events arriving meanwhile do not narrow it.

All bookkeeping happens under one asyncio.Lock; notifications are sent after
the lock is released.
"""

import asyncio
from collections import deque
from collections.abc import AsyncIterable, Iterable, Sequence
from dataclasses import dataclass, field

from assetflow_engine.pipeline.domain.models import (
    ChangeEvent,
    PipelineRun,
    PipelineSpec,
    PipelineStatus,
    RunState,
    utcnow,
)
from assetflow_engine.pipeline.domain.ports import NotifierPort, PipelineExecutorPort
from assetflow_engine.pipeline.infrastructure.registry import PipelineRegistry
from assetflow_shared.common.exceptions import TransformError
from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)


@dataclass
class _PipelineSlot:
    """Mutable scheduler state of one pipeline."""

    spec: PipelineSpec
    status: PipelineStatus = PipelineStatus.IDLE
    # insertion-ordered set of changed paths since the last run started
    pending: dict[str, None] = field(default_factory=dict)
    rerun_requested: bool = False
    # a trigger without paths asked for every entry file
    full_build: bool = False
    debounce_task: asyncio.Task | None = None
    debounce_token: int = 0
    run_task: asyncio.Task | None = None
    current: PipelineRun | None = None
    last_state: RunState | None = None


class BuildScheduler:
    """
    Consumes ChangeEvents and runs the affected pipelines.

    Example:
        scheduler = BuildScheduler(specs, executor=PipelineExecutor(root), notifier=LoggingNotifier())
        await scheduler.trigger_all()
        await scheduler.wait_idle()
        await scheduler.consume(detector.events())
    """

    def __init__(
        self,
        pipelines: PipelineRegistry | Iterable[PipelineSpec],
        executor: PipelineExecutorPort,
        notifier: NotifierPort | None = None,
        history_size: int = 200,
    ):
        """
        Args:
            pipelines: registry or plain list of specs (registered in order)
            executor: runs a pipeline's stage chain
            notifier: receives every run result
            history_size: finished runs kept in ``history``

        Raises:
            ConfigurationError: duplicate names, cycles, unknown dependencies
        """
        self._registry = pipelines if isinstance(pipelines, PipelineRegistry) else PipelineRegistry(pipelines)
        self._registry.validate()
        self._executor = executor
        self._notifier = notifier

        self._slots: dict[str, _PipelineSlot] = {spec.name: _PipelineSlot(spec) for spec in self._registry}
        self._ancestors = {name: self._registry.ancestors(name) for name in self._slots}
        self._descendants = {name: self._registry.descendants(name) for name in self._slots}

        # RunQueue: debounced pipelines waiting for promotion, deduplicated
        self._queue: list[str] = []
        self._outbox: list[PipelineRun] = []
        self._notifying = 0
        self._history: deque[PipelineRun] = deque(maxlen=history_size)

        self._lock = asyncio.Lock()
        # one drainer at a time keeps results in completion order
        self._drain_lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    # ========================================================================
    # Public API
    # ========================================================================

    @property
    def registry(self) -> PipelineRegistry:
        return self._registry

    async def submit(self, event: ChangeEvent) -> list[str]:
        """
        Route one change event to the pipelines whose sources match it.

        Returns:
            Names of the affected pipelines
        """
        specs = self._registry.match_pipelines(event.path)
        names = [name for name in self._slots if self._slots[name].spec in specs]

        if not names:
            logger.debug("change_ignored", path=event.path)
            return []

        async with self._lock:
            if self._closed:
                logger.warning("scheduler_closed", path=event.path)
                return []
            for name in names:
                self._trigger(name, (event.path,))
            self._update_idle()

        logger.debug("change_routed", path=event.path, kind=event.kind.value, pipelines=names)
        return names

    async def trigger(self, name: str, paths: Sequence[str] = ()) -> None:
        """Schedule a pipeline explicitly (full build when ``paths`` is empty)."""
        self._registry.get(name)
        async with self._lock:
            if self._closed:
                logger.warning("scheduler_closed", pipeline=name)
                return
            self._trigger(name, tuple(paths))
            self._update_idle()

    async def trigger_all(self) -> None:
        """Schedule every registered pipeline."""
        async with self._lock:
            if self._closed:
                return
            for name in self._slots:
                self._trigger(name, ())
            self._update_idle()

    async def consume(self, events: AsyncIterable[ChangeEvent]) -> None:
        """Drive the scheduler from a ChangeEvent stream until it ends."""
        async for event in events:
            await self.submit(event)

    async def wait_idle(self, timeout: float | None = None) -> None:
        """
        Wait until no pipeline is scheduled or running and all results are sent.

        Raises:
            asyncio.TimeoutError: not idle within ``timeout`` seconds
        """
        await asyncio.wait_for(self._idle.wait(), timeout)

    async def stop(self) -> None:
        """Cancel debounce timers and wait for in-flight runs to finish."""
        async with self._lock:
            self._closed = True
            for slot in self._slots.values():
                if slot.debounce_task and not slot.debounce_task.done():
                    slot.debounce_task.cancel()
                slot.debounce_task = None
                slot.debounce_token += 1
                if slot.status is PipelineStatus.SCHEDULED:
                    slot.status = PipelineStatus.IDLE
            self._queue.clear()
            running = [slot.run_task for slot in self._slots.values() if slot.run_task]

        if running:
            await asyncio.gather(*running, return_exceptions=True)

        async with self._lock:
            self._update_idle()
        logger.info("scheduler_stopped", runs=len(self._history))

    def status(self, name: str) -> PipelineStatus:
        self._registry.get(name)
        return self._slots[name].status

    @property
    def history(self) -> list[PipelineRun]:
        return list(self._history)

    def last_run(self, name: str) -> PipelineRun | None:
        for run in reversed(self._history):
            if run.name == name:
                return run
        return None

    def snapshot(self) -> dict:
        return {
            "queue": list(self._queue),
            "idle": self._idle.is_set(),
            "pipelines": {
                name: {
                    "status": slot.status.value,
                    "pending": len(slot.pending),
                    "rerun_requested": slot.rerun_requested,
                    "full_build": slot.full_build,
                    "last_state": slot.last_state.value if slot.last_state else None,
                }
                for name, slot in self._slots.items()
            },
        }

    # ========================================================================
    # Transitions (lock held)
    # ========================================================================

    def _trigger(self, name: str, paths: tuple[str, ...], full_build: bool | None = None) -> None:
        slot = self._slots[name]
        if full_build is None:
            full_build = not paths
        slot.full_build = slot.full_build or full_build
        for path in paths:
            slot.pending[path] = None

        if slot.status is PipelineStatus.IDLE:
            slot.status = PipelineStatus.SCHEDULED
            logger.debug("pipeline_scheduled", pipeline=name, pending=len(slot.pending))
            self._arm_debounce(slot)
        elif slot.status is PipelineStatus.SCHEDULED:
            if name in self._queue:
                self._queue.remove(name)
            self._arm_debounce(slot)
        else:
            slot.rerun_requested = True

    def _arm_debounce(self, slot: _PipelineSlot) -> None:
        if slot.debounce_task and not slot.debounce_task.done():
            slot.debounce_task.cancel()
        slot.debounce_token += 1
        slot.debounce_task = asyncio.create_task(
            self._debounce(slot.spec.name, slot.debounce_token),
            name=f"debounce:{slot.spec.name}",
        )

    async def _debounce(self, name: str, token: int) -> None:
        slot = self._slots[name]
        try:
            await asyncio.sleep(slot.spec.debounce_ms / 1000)
            async with self._lock:
                if slot.debounce_token != token or slot.status is not PipelineStatus.SCHEDULED:
                    return
                slot.debounce_task = None
                if name not in self._queue:
                    self._queue.append(name)
                self._dispatch()
                self._update_idle()
        except asyncio.CancelledError:
            # timer reset
            return
        await self._drain_outbox()

    def _dispatch(self) -> None:
        """Promote queued pipelines whose dependencies are all idle."""
        for name in list(self._queue):
            ancestors = self._ancestors[name]
            blockers = sorted(dep for dep in ancestors if self._slots[dep].status is not PipelineStatus.IDLE)
            if blockers:
                logger.debug("pipeline_deferred", pipeline=name, waiting_for=blockers)
                continue

            self._queue.remove(name)
            failed = sorted(dep for dep in ancestors if self._slots[dep].last_state is RunState.FAILED)
            if failed:
                self._skip(self._slots[name], failed[0])
            else:
                self._start(self._slots[name])

    def _start(self, slot: _PipelineSlot) -> None:
        run = PipelineRun(
            pipeline=slot.spec,
            inputs=tuple(slot.pending),
            state=RunState.RUNNING,
            started_at=utcnow(),
            full_build=slot.full_build,
        )
        slot.pending.clear()
        slot.full_build = False
        slot.rerun_requested = False
        slot.status = PipelineStatus.RUNNING
        slot.current = run
        slot.run_task = asyncio.create_task(self._execute(slot, run), name=f"run:{slot.spec.name}")
        logger.info(
            "pipeline_started",
            pipeline=run.name,
            run_id=run.run_id,
            inputs=len(run.inputs),
            full_build=run.full_build,
        )

    def _skip(self, slot: _PipelineSlot, dependency: str) -> None:
        # pending inputs and full_build stay for the re-run after the dependency recovers
        now = utcnow()
        run = PipelineRun(
            pipeline=slot.spec,
            inputs=tuple(slot.pending),
            state=RunState.SKIPPED,
            full_build=slot.full_build,
            started_at=now,
            finished_at=now,
            error=f"skipped: dependency '{dependency}' failed",
        )
        slot.status = PipelineStatus.IDLE
        slot.rerun_requested = False
        slot.last_state = RunState.SKIPPED
        self._finish(run)
        logger.warning("pipeline_skipped", pipeline=run.name, dependency=dependency)

    def _complete(self, slot: _PipelineSlot, run: PipelineRun) -> None:
        slot.current = None
        slot.run_task = None
        slot.last_state = run.state
        self._finish(run)

        if (slot.pending or slot.rerun_requested) and not self._closed:
            slot.rerun_requested = False
            slot.status = PipelineStatus.SCHEDULED
            logger.debug("pipeline_rerun_scheduled", pipeline=run.name, pending=len(slot.pending))
            self._arm_debounce(slot)
        else:
            slot.rerun_requested = False
            slot.status = PipelineStatus.IDLE

        if run.state is RunState.SUCCEEDED and not self._closed:
            for dependent in sorted(self._descendants[run.name]):
                other = self._slots[dependent]
                if other.status is PipelineStatus.IDLE and other.last_state is RunState.SKIPPED:
                    logger.info("pipeline_released", pipeline=dependent, dependency=run.name)
                    self._trigger(dependent, (), full_build=False)

        self._dispatch()

    def _finish(self, run: PipelineRun) -> None:
        self._history.append(run)
        self._outbox.append(run)

    def _update_idle(self) -> None:
        busy = self._queue or self._outbox or self._notifying or any(
            slot.status is not PipelineStatus.IDLE for slot in self._slots.values()
        )
        if busy:
            self._idle.clear()
        else:
            self._idle.set()

    # ========================================================================
    # Run boundary
    # ========================================================================

    async def _execute(self, slot: _PipelineSlot, run: PipelineRun) -> None:
        try:
            outputs = await self._executor.execute(run.pipeline, () if run.full_build else run.inputs)
        except TransformError as e:
            run.state = RunState.FAILED
            run.error = e.message
            run.failed_stage = e.stage
            logger.error("pipeline_failed", pipeline=run.name, run_id=run.run_id, stage=e.stage, error=e.message)
        except Exception as e:
            run.state = RunState.FAILED
            run.error = str(e) or type(e).__name__
            logger.exception("pipeline_crashed", pipeline=run.name, run_id=run.run_id)
        else:
            run.state = RunState.SUCCEEDED
            run.outputs = tuple(outputs)
            logger.info(
                "pipeline_succeeded",
                pipeline=run.name,
                run_id=run.run_id,
                outputs=len(run.outputs),
            )
        run.finished_at = utcnow()

        async with self._lock:
            self._complete(slot, run)
            self._update_idle()
        await self._drain_outbox()

    async def _drain_outbox(self) -> None:
        async with self._drain_lock:
            while self._outbox:
                run = self._outbox.pop(0)
                self._notifying += 1
                try:
                    await self._notify(run)
                finally:
                    self._notifying -= 1
        async with self._lock:
            self._update_idle()

    async def _notify(self, run: PipelineRun) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.on_run_result(run.name, run.state, run.error, outputs=run.outputs)
        except Exception:
            logger.exception("notifier_failed", pipeline=run.name, run_id=run.run_id)
