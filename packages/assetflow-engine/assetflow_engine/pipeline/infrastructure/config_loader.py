"""
Pipeline file loader.

Reads the YAML pipeline declarations, validates them with pydantic and builds
PipelineSpecs with instantiated stages. Stages marked ``when: production`` or
``when: development`` are kept only in that build mode.
"""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from assetflow_engine.pipeline.domain.models import BuildMode, PipelineSpec
from assetflow_engine.stages import STAGE_TYPES, build_stage
from assetflow_shared.common.exceptions import ConfigurationError
from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)


class StageConfig(BaseModel):
    """One stage entry. Keys other than ``type``/``when`` are stage options."""

    model_config = ConfigDict(extra="allow")

    type: str
    when: Literal["always", "development", "production"] = "always"

    @field_validator("type")
    @classmethod
    def known_type(cls, value: str) -> str:
        if value not in STAGE_TYPES:
            raise ValueError(f"unknown stage type '{value}' (known: {', '.join(sorted(STAGE_TYPES))})")
        return value

    @property
    def options(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def applies_to(self, mode: BuildMode) -> bool:
        return self.when == "always" or self.when == mode.value


class PipelineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    sources: list[str] = Field(min_length=1)
    entries: list[str] = Field(default_factory=list)
    debounce_ms: int | None = Field(default=None, ge=0)
    depends_on: list[str] = Field(default_factory=list)
    base: str | None = None
    incremental: bool = False
    description: str = ""
    stages: list[StageConfig] = Field(default_factory=list)


class PipelineFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pipelines: list[PipelineConfig] = Field(default_factory=list)


def parse_pipelines(
    data: dict[str, Any],
    mode: BuildMode = BuildMode.DEVELOPMENT,
    default_debounce_ms: int = 100,
) -> list[PipelineSpec]:
    """
    Build PipelineSpecs from already parsed YAML data.

    Raises:
        ConfigurationError: invalid structure or stage options
    """
    try:
        parsed = PipelineFile.model_validate(data or {})
    except ValidationError as e:
        raise ConfigurationError("Invalid pipeline configuration", details={"errors": e.errors()}) from e

    specs = []
    for pipeline in parsed.pipelines:
        stages = []
        for index, stage in enumerate(pipeline.stages):
            if not stage.applies_to(mode):
                continue
            try:
                stages.append(build_stage(stage.type, stage.options))
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid options for stage '{stage.type}' in pipeline '{pipeline.name}': {e}",
                    details={"pipeline": pipeline.name, "stage_index": index},
                ) from e

        try:
            spec = PipelineSpec(
                name=pipeline.name,
                source_patterns=tuple(pipeline.sources),
                entry_patterns=tuple(pipeline.entries),
                debounce_ms=default_debounce_ms if pipeline.debounce_ms is None else pipeline.debounce_ms,
                depends_on=frozenset(pipeline.depends_on),
                stages=tuple(stages),
                base=pipeline.base,
                incremental=pipeline.incremental,
                description=pipeline.description,
            )
        except ValueError as e:
            raise ConfigurationError(str(e), details={"pipeline": pipeline.name}) from e
        specs.append(spec)

    return specs


def load_pipelines(
    path: Path,
    mode: BuildMode = BuildMode.DEVELOPMENT,
    default_debounce_ms: int = 100,
) -> list[PipelineSpec]:
    """Load PipelineSpecs from a YAML file."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Pipeline file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(f"Pipeline file must contain a mapping: {path}")

    specs = parse_pipelines(data or {}, mode=mode, default_debounce_ms=default_debounce_ms)
    logger.info("pipelines_loaded", path=str(path), mode=mode.value, pipelines=[spec.name for spec in specs])
    return specs
