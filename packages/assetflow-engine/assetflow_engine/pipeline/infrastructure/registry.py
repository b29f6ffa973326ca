"""Pipeline registry - named PipelineSpec declarations and their dependency graph."""

from collections.abc import Iterable

from assetflow_engine.pipeline.domain.models import PipelineSpec
from assetflow_engine.pipeline.infrastructure.glob_matcher import glob_match
from assetflow_shared.common.exceptions import (
    DependencyCycleError,
    DuplicateNameError,
    PipelineNotFoundError,
    UnknownDependencyError,
)
from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)


class PipelineRegistry:
    """
    Holds pipeline declarations in registration order.

    Dependencies may reference pipelines registered later; ``validate()``
    checks that every reference resolves. Cycles are rejected as soon as the
    closing edge is registered.

    Example:
        registry = PipelineRegistry()
        registry.register(PipelineSpec("styles", ("app/scss/**/*.scss",)))
        registry.register(PipelineSpec("dist", ("app/css/*.css",), depends_on={"styles"}))
        registry.match_pipelines("app/scss/main.scss")  # {styles}
    """

    def __init__(self, specs: Iterable[PipelineSpec] | None = None):
        self._specs: dict[str, PipelineSpec] = {}
        for spec in specs or ():
            self.register(spec)

    def register(self, spec: PipelineSpec) -> None:
        """
        Register a pipeline.

        Raises:
            DuplicateNameError: name already registered
            DependencyCycleError: spec closes a depends_on cycle
        """
        if spec.name in self._specs:
            raise DuplicateNameError(spec.name)

        cycle = self._find_cycle(spec)
        if cycle:
            raise DependencyCycleError(cycle)

        self._specs[spec.name] = spec
        logger.debug(
            "pipeline_registered",
            pipeline=spec.name,
            patterns=list(spec.source_patterns),
            depends_on=sorted(spec.depends_on),
        )

    def _find_cycle(self, spec: PipelineSpec) -> list[str] | None:
        """Path spec -> ... -> spec through registered deps, if any."""

        def deps_of(name: str) -> frozenset[str]:
            if name == spec.name:
                return spec.depends_on
            existing = self._specs.get(name)
            return existing.depends_on if existing else frozenset()

        stack: list[tuple[str, list[str]]] = [(dep, [spec.name, dep]) for dep in sorted(spec.depends_on)]
        visited: set[str] = set()
        while stack:
            name, path = stack.pop()
            if name == spec.name:
                return path
            if name in visited:
                continue
            visited.add(name)
            for dep in sorted(deps_of(name)):
                stack.append((dep, [*path, dep]))
        return None

    def validate(self) -> None:
        """Raises UnknownDependencyError if a depends_on reference is unresolved."""
        for spec in self._specs.values():
            for dep in sorted(spec.depends_on):
                if dep not in self._specs:
                    raise UnknownDependencyError(spec.name, dep)

    def get(self, name: str) -> PipelineSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise PipelineNotFoundError(name) from None

    def match_pipelines(self, path: str) -> set[PipelineSpec]:
        """All pipelines with a source pattern matching ``path``."""
        return {
            spec
            for spec in self._specs.values()
            if any(glob_match(pattern, path) for pattern in spec.source_patterns)
        }

    def ancestors(self, name: str) -> set[str]:
        """Transitive depends_on of ``name``."""
        result: set[str] = set()
        stack = list(self.get(name).depends_on)
        while stack:
            dep = stack.pop()
            if dep in result:
                continue
            result.add(dep)
            if dep in self._specs:
                stack.extend(self._specs[dep].depends_on)
        return result

    def descendants(self, name: str) -> set[str]:
        """Pipelines that (transitively) depend on ``name``."""
        return {other for other in self._specs if other != name and name in self.ancestors(other)}

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def __iter__(self):
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs
