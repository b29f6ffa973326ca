"""Pipeline domain models."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BuildMode(Enum):
    """Build mode. Stages may be restricted to one mode."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "BuildMode":
        try:
            return cls(value.lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Invalid build mode '{value}'. Valid: {valid}") from None


class ChangeKind(Enum):
    """File event type."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


class PipelineStatus(Enum):
    """Scheduler-side state of a pipeline."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


class RunState(Enum):
    """State of a single pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SUCCEEDED, RunState.FAILED, RunState.SKIPPED)


@dataclass(frozen=True)
class PipelineSpec:
    """
    Declaration of a named build pipeline.

    ``source_patterns`` decide which changes trigger the pipeline;
    ``entry_patterns`` (defaulting to the source patterns) decide which files
    are loaded into the stage chain. Pattern order is kept: it is the
    concatenation order.
    """

    name: str
    source_patterns: tuple[str, ...]
    debounce_ms: int = 0
    depends_on: frozenset[str] = frozenset()
    stages: tuple[Any, ...] = field(default=(), compare=False)
    entry_patterns: tuple[str, ...] = ()
    base: str | None = None
    incremental: bool = False
    description: str = field(default="", compare=False)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Pipeline name must not be empty")
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0 (pipeline '{self.name}')")
        # dict.fromkeys keeps first-seen order
        object.__setattr__(self, "source_patterns", tuple(dict.fromkeys(self.source_patterns)))
        object.__setattr__(self, "entry_patterns", tuple(dict.fromkeys(self.entry_patterns)))
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))
        object.__setattr__(self, "stages", tuple(self.stages))
        if self.name in self.depends_on:
            raise ValueError(f"Pipeline '{self.name}' cannot depend on itself")

    @property
    def entries(self) -> tuple[str, ...]:
        return self.entry_patterns or self.source_patterns

    @property
    def stage_names(self) -> list[str]:
        return [getattr(stage, "name", type(stage).__name__) for stage in self.stages]


@dataclass(frozen=True)
class ChangeEvent:
    """Single filesystem change, relative to the watched root."""

    path: str
    timestamp: datetime = field(default_factory=utcnow)
    kind: ChangeKind = ChangeKind.MODIFIED


@dataclass
class PipelineRun:
    """One execution (or skip) of a pipeline. Owned by the scheduler."""

    pipeline: PipelineSpec
    inputs: tuple[str, ...] = ()
    state: RunState = RunState.PENDING
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    failed_stage: str | None = None
    outputs: tuple[str, ...] = ()
    # inputs are informational; the executor loaded every entry file
    full_build: bool = False

    @property
    def name(self) -> str:
        return self.pipeline.name

    @property
    def duration_ms(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.name,
            "state": self.state.value,
            "inputs": list(self.inputs),
            "full_build": self.full_build,
            "outputs": list(self.outputs),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "failed_stage": self.failed_stage,
        }


@dataclass(frozen=True)
class Asset:
    """
    In-memory file flowing through a stage chain.

    ``path`` is the output path relative to the destination directory.
    """

    path: PurePosixPath
    content: bytes
    source: Path | None = None
    written_to: Path | None = None

    @property
    def suffix(self) -> str:
        return self.path.suffix.lower()

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def with_content(self, content: bytes | str, suffix: str | None = None) -> "Asset":
        if isinstance(content, str):
            content = content.encode("utf-8")
        path = self.path.with_suffix(suffix) if suffix is not None else self.path
        return replace(self, path=path, content=content)


@dataclass(frozen=True)
class StageContext:
    """Run-time information handed to every stage of a run."""

    root: Path
    pipeline: str
    mode: BuildMode = BuildMode.DEVELOPMENT
    changed: tuple[str, ...] = ()

    def resolve(self, path: str | Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.root / path
