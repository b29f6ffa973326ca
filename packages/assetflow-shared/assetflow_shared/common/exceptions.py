"""
Assetflow Exception Hierarchy

Standardized exceptions for consistent error handling.

Usage guide:
    1. Configuration errors → abort start-up
    2. Transform errors → record on the run, report, keep the scheduler alive
    3. External library errors → wrap in a custom exception

Example:
    try:
        css = sass.compile(filename=path)
    except sass.CompileError as e:
        raise TransformError("sass", str(e)) from e
"""

from typing import Any


class AssetflowError(Exception):
    """Base exception for all Assetflow errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """
        Initialize Assetflow error.

        Args:
            message: Human-readable error message
            details: Optional additional details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


# ============================================================
# Configuration Errors (fatal at start-up)
# ============================================================


class ConfigurationError(AssetflowError):
    """Invalid pipeline or application configuration."""

    pass


class DuplicateNameError(ConfigurationError):
    """A pipeline with the same name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Pipeline '{name}' is already registered", details={"name": name})
        self.name = name


class DependencyCycleError(ConfigurationError):
    """depends_on edges form a cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__(f"Dependency cycle: {' -> '.join(cycle)}", details={"cycle": cycle})
        self.cycle = cycle


class UnknownDependencyError(ConfigurationError):
    """depends_on names a pipeline that was never registered."""

    def __init__(self, name: str, dependency: str):
        super().__init__(
            f"Pipeline '{name}' depends on unknown pipeline '{dependency}'",
            details={"name": name, "dependency": dependency},
        )
        self.name = name
        self.dependency = dependency


class PipelineNotFoundError(ConfigurationError):
    """Pipeline name is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown pipeline '{name}'", details={"name": name})
        self.name = name


# ============================================================
# Run-time Errors
# ============================================================


class TransformError(AssetflowError):
    """A transform stage failed. Isolated to one pipeline run."""

    def __init__(self, stage: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details=details)
        self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class WatchOverflowError(AssetflowError):
    """Change event stream is full; excess events must be coalesced."""

    def __init__(self, capacity: int):
        super().__init__(f"Change event stream is full (capacity={capacity})", details={"capacity": capacity})
        self.capacity = capacity


# ============================================================
# Helper Functions
# ============================================================


def wrap_stage_error(error: Exception, stage: str) -> TransformError:
    """
    Wrap a third-party exception raised inside a stage in a TransformError.

    Args:
        error: Original exception
        stage: Name of the stage that raised it

    Returns:
        Wrapped exception with the original chained as __cause__

    Example:
        try:
            assets = stage.run(assets, context)
        except Exception as e:
            raise wrap_stage_error(e, stage.name) from e
    """
    exc = TransformError(stage, str(error) or type(error).__name__, details={"error_type": type(error).__name__})
    exc.__cause__ = error
    return exc
