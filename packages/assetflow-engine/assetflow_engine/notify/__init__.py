from assetflow_engine.notify.notifiers import CompositeNotifier, LoggingNotifier, ReloadNotifier

__all__ = ["CompositeNotifier", "LoggingNotifier", "ReloadNotifier"]
