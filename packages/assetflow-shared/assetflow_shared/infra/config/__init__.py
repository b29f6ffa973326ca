from assetflow_shared.infra.config.groups import (
    DevServerConfig,
    FileWatcherConfig,
    ObservabilityConfig,
    SchedulerConfig,
)
from assetflow_shared.infra.config.settings import Settings

__all__ = [
    # Settings
    "Settings",
    # Config Groups
    "DevServerConfig",
    "FileWatcherConfig",
    "ObservabilityConfig",
    "SchedulerConfig",
]
