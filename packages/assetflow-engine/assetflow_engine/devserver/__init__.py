from assetflow_engine.devserver.app import create_app, run_server
from assetflow_engine.devserver.hub import ReloadHub

__all__ = ["ReloadHub", "create_app", "run_server"]
