"""
Pipeline ports (interfaces).

The scheduler depends only on these; concrete stages, executors and
notifiers live in the infrastructure, stages and notify packages.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from assetflow_engine.pipeline.domain.models import Asset, PipelineSpec, RunState, StageContext


@runtime_checkable
class TransformStage(Protocol):
    """One opaque transform step of a pipeline."""

    name: str

    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        """Transform assets. Raises TransformError(stage, message) on failure."""
        ...


class PipelineExecutorPort(Protocol):
    """Runs a pipeline's stage chain for a set of changed paths."""

    async def execute(self, spec: PipelineSpec, inputs: Sequence[str]) -> list[str]:
        """Return output paths. Raises TransformError on failure."""
        ...


class NotifierPort(Protocol):
    """Terminal sink for run results."""

    async def on_run_result(
        self,
        name: str,
        state: RunState,
        error: str | None = None,
        *,
        outputs: Sequence[str] = (),
    ) -> None: ...
