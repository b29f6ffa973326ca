"""
Settings groups.

Settings are split into logical groups. Each group can be used on its own
and is assembled by Settings.
"""

from pydantic import BaseModel, Field


def split_csv(value: str) -> list[str]:
    """Split a comma separated setting into trimmed, non-empty items."""
    return [item.strip() for item in value.split(",") if item.strip()]


class ObservabilityConfig(BaseModel):
    """Logging settings."""

    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="console", pattern="^(console|json)$", description="console or json")


class FileWatcherConfig(BaseModel):
    """File watcher settings."""

    enabled: bool = Field(default=True, description="Enable file watching in watch mode")
    default_debounce_ms: int = Field(default=100, ge=0, le=10000, description="Debounce for pipelines without one (ms)")
    max_queue_size: int = Field(default=10000, ge=1, description="Change event stream capacity before coalescing")
    exclude_patterns: str = Field(
        default=".git/**,**/.git/**,node_modules/**,**/node_modules/**,dist/**,**/*.swp,**/*~,**/.DS_Store",
        description="Globs ignored by the watcher",
    )

    @property
    def exclude_list(self) -> list[str]:
        return split_csv(self.exclude_patterns)


class SchedulerConfig(BaseModel):
    """Build scheduler settings."""

    history_size: int = Field(default=200, ge=1, description="Finished runs kept for inspection")
    build_timeout_s: float = Field(default=600.0, gt=0, description="Max wait for a one-shot build (s)")


class DevServerConfig(BaseModel):
    """Live-reload development server settings."""

    enabled: bool = Field(default=True, description="Serve files and the reload channel in watch mode")
    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    base_dir: str = Field(default="app", description="Directory served, relative to the project root")
