from functools import cached_property
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from assetflow_shared.infra.config.groups import (
    DevServerConfig,
    FileWatcherConfig,
    ObservabilityConfig,
    SchedulerConfig,
)


class Settings(BaseSettings):
    """
    Assetflow Application Settings

    Environment variables use the ASSETFLOW_ prefix.
    Example: ASSETFLOW_ROOT, ASSETFLOW_DEVSERVER_PORT

    Grouped access:
        settings.observability  # ObservabilityConfig
        settings.watcher        # FileWatcherConfig
        settings.scheduler      # SchedulerConfig
        settings.devserver      # DevServerConfig
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ASSETFLOW_",
        extra="ignore",
    )

    # ========================================================================
    # Grouped Config Accessors
    # ========================================================================

    @cached_property
    def observability(self) -> ObservabilityConfig:
        return ObservabilityConfig(log_level=self.log_level, log_format=self.log_format)

    @cached_property
    def watcher(self) -> FileWatcherConfig:
        return FileWatcherConfig(
            enabled=self.watcher_enabled,
            default_debounce_ms=self.watcher_default_debounce_ms,
            max_queue_size=self.watcher_max_queue_size,
            exclude_patterns=self.watcher_exclude_patterns,
        )

    @cached_property
    def scheduler(self) -> SchedulerConfig:
        return SchedulerConfig(
            history_size=self.scheduler_history_size,
            build_timeout_s=self.scheduler_build_timeout_s,
        )

    @cached_property
    def devserver(self) -> DevServerConfig:
        return DevServerConfig(
            enabled=self.devserver_enabled,
            host=self.devserver_host,
            port=self.devserver_port,
            base_dir=self.devserver_base_dir,
        )

    @property
    def root_path(self) -> Path:
        return Path(self.root).resolve()

    @property
    def config_path(self) -> Path:
        path = Path(self.config_file)
        return path if path.is_absolute() else self.root_path / path

    # ========================================================================
    # Project
    # ========================================================================
    root: str = "."
    config_file: str = "assetflow.yaml"
    mode: str = "development"  # development | production

    # ========================================================================
    # Observability
    # ========================================================================
    log_level: str = "INFO"
    log_format: str = "console"

    # ========================================================================
    # File Watcher
    # ========================================================================
    watcher_enabled: bool = True
    watcher_default_debounce_ms: int = 100
    watcher_max_queue_size: int = 10000
    watcher_exclude_patterns: str = FileWatcherConfig().exclude_patterns

    # ========================================================================
    # Scheduler
    # ========================================================================
    scheduler_history_size: int = 200
    scheduler_build_timeout_s: float = 600.0

    # ========================================================================
    # Dev Server
    # ========================================================================
    devserver_enabled: bool = True
    devserver_host: str = "127.0.0.1"
    devserver_port: int = 3000
    devserver_base_dir: str = "app"
