from assetflow_engine.pipeline.domain.models import (
    Asset,
    BuildMode,
    ChangeEvent,
    ChangeKind,
    PipelineRun,
    PipelineSpec,
    PipelineStatus,
    RunState,
    StageContext,
)
from assetflow_engine.pipeline.domain.ports import NotifierPort, PipelineExecutorPort, TransformStage

__all__ = [
    "Asset",
    "BuildMode",
    "ChangeEvent",
    "ChangeKind",
    "NotifierPort",
    "PipelineExecutorPort",
    "PipelineRun",
    "PipelineSpec",
    "PipelineStatus",
    "RunState",
    "StageContext",
    "TransformStage",
]
