"""Pipeline executor - loads sources and runs a stage chain off the event loop."""

import asyncio
from collections.abc import Sequence
from pathlib import Path, PurePosixPath

from structlog.contextvars import bound_contextvars

from assetflow_engine.pipeline.domain.models import Asset, BuildMode, PipelineSpec, StageContext
from assetflow_engine.pipeline.infrastructure.glob_matcher import expand, glob_match, glob_parent
from assetflow_shared.common.exceptions import TransformError, wrap_stage_error
from assetflow_shared.infra.observability import LogPerformance, get_logger

logger = get_logger(__name__)


class PipelineExecutor:
    """
    Runs ``spec.stages`` over the pipeline's source files.

    Full pipelines load every file matching the entry patterns; incremental
    pipelines load only the changed inputs that still exist (falling back to
    the full set when nothing specific changed).
    """

    def __init__(self, root: Path, mode: BuildMode = BuildMode.DEVELOPMENT):
        self.root = Path(root).resolve()
        self.mode = mode

    async def execute(self, spec: PipelineSpec, inputs: Sequence[str]) -> list[str]:
        return await asyncio.to_thread(self.run_sync, spec, tuple(inputs))

    def run_sync(self, spec: PipelineSpec, inputs: tuple[str, ...] = ()) -> list[str]:
        """
        Run the stage chain.

        Returns:
            Output paths (written file paths relative to the root when a
            stage wrote them, asset paths otherwise)

        Raises:
            TransformError: a stage failed
        """
        with bound_contextvars(pipeline=spec.name):
            assets = self.load_sources(spec, inputs)
            context = StageContext(root=self.root, pipeline=spec.name, mode=self.mode, changed=inputs)
            logger.debug("sources_loaded", files=len(assets), stages=spec.stage_names)

            for stage in spec.stages:
                stage_name = getattr(stage, "name", type(stage).__name__)
                with LogPerformance(logger, "stage", stage=stage_name, assets=len(assets)):
                    try:
                        assets = list(stage.run(assets, context))
                    except TransformError:
                        raise
                    except Exception as e:
                        raise wrap_stage_error(e, stage_name) from e

            return [self._output_path(asset) for asset in assets]

    def load_sources(self, spec: PipelineSpec, inputs: tuple[str, ...] = ()) -> list[Asset]:
        if spec.incremental and inputs:
            files = [
                (pattern, self.root / path)
                for path in inputs
                for pattern in self._first_match(spec.entries, path)
                if (self.root / path).is_file()
            ]
        else:
            files = expand(self.root, spec.entries)

        assets = []
        for pattern, path in files:
            base = self.root / (spec.base or glob_parent(pattern))
            try:
                relative = path.relative_to(base)
            except ValueError:
                relative = Path(path.name)
            try:
                content = path.read_bytes()
            except OSError as e:
                raise TransformError("read", f"Cannot read {path}: {e}") from e
            assets.append(Asset(path=PurePosixPath(relative.as_posix()), content=content, source=path))
        return assets

    @staticmethod
    def _first_match(patterns: tuple[str, ...], path: str) -> list[str]:
        for pattern in patterns:
            if glob_match(pattern, path):
                return [pattern]
        return []

    def _output_path(self, asset: Asset) -> str:
        if asset.written_to is None:
            return str(asset.path)
        try:
            return asset.written_to.relative_to(self.root).as_posix()
        except ValueError:
            return asset.written_to.as_posix()
